# Copyright 2026 The pgpverify Authors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
APIs for describing verification "policies".

Aggregate policies decide whether a set of per-signature results amounts to
a successful verification. `AlgorithmPolicy` decides which algorithms a
signature may use at all.
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from typing import Protocol, Sequence

from pydantic import BaseModel

from pgpverify.errors import VerificationError
from pgpverify.hashes import HashAlgorithm
from pgpverify.models import PublicKeyAlgorithm
from pgpverify.verify.models import SignatureResult

_logger = logging.getLogger(__name__)


class AggregatePolicy(Protocol):
    """
    A protocol type describing the interface that all aggregate policies
    conform to.
    """

    @abstractmethod
    def verify(self, results: Sequence[SignatureResult]) -> None:
        """
        Verify the given per-signature `results` against this policy,
        raising `VerificationError` on failure.
        """
        raise NotImplementedError  # pragma: no cover


class AnyOf:
    """
    The "any of" policy: at least one signature must be valid.

    An empty list of signatures is considered trivially invalid.
    """

    def verify(self, results: Sequence[SignatureResult]) -> None:
        """
        Verify `results` against the policy.

        Raises `VerificationError` on failure.
        """
        if not results:
            raise VerificationError("no signatures to verify")

        if not any(results):
            raise VerificationError(f"0 of {len(results)} signatures are valid")

    def __repr__(self) -> str:
        return "AnyOf()"


class AllOf:
    """
    The "all of" policy: every signature must be valid.

    An empty list of signatures is considered trivially invalid.
    """

    def verify(self, results: Sequence[SignatureResult]) -> None:
        """
        Verify `results` against the policy.

        Raises `VerificationError` on failure.
        """
        if not results:
            raise VerificationError("no signatures to verify")

        failures = [str(result) for result in results if not result]
        for failure in failures:
            _logger.debug(f"signature failed: {failure}")

        if failures:
            raise VerificationError(
                f"{len(results) - len(failures)} of {len(results)} signatures are valid: "
                + "; ".join(failures)
            )

    def __repr__(self) -> str:
        return "AllOf()"


class AlgorithmPolicy(BaseModel, frozen=True):
    """
    The hash and public-key algorithms a signature may use.

    Signatures using anything else are reported as
    `Outcome.UNSUPPORTED_ALGORITHM`.
    """

    hash_algorithms: frozenset[HashAlgorithm] = frozenset(
        {
            HashAlgorithm.SHA1,
            HashAlgorithm.SHA224,
            HashAlgorithm.SHA256,
            HashAlgorithm.SHA384,
            HashAlgorithm.SHA512,
            HashAlgorithm.SHA3_256,
            HashAlgorithm.SHA3_512,
        }
    )
    """
    Accepted hash algorithms. MD5 is excluded by default.
    """

    public_key_algorithms: frozenset[PublicKeyAlgorithm] = frozenset(
        {
            PublicKeyAlgorithm.RSA,
            PublicKeyAlgorithm.RSA_SIGN_ONLY,
            PublicKeyAlgorithm.DSA,
            PublicKeyAlgorithm.ECDSA,
            PublicKeyAlgorithm.EDDSA_LEGACY,
            PublicKeyAlgorithm.ED25519,
        }
    )
    """
    Accepted signing algorithms.
    """

    def allows_hash(self, algorithm: int) -> bool:
        return algorithm in self.hash_algorithms

    def allows_key(self, algorithm: int) -> bool:
        return algorithm in self.public_key_algorithms

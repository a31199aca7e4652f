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
Hashing APIs.
"""

from __future__ import annotations

import enum

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed
from pydantic import BaseModel

from pgpverify.errors import Error


class HashAlgorithm(enum.IntEnum):
    """
    OpenPGP hash algorithm identifiers.

    See: <https://www.rfc-editor.org/rfc/rfc9580#section-9.5>
    """

    MD5 = 1
    SHA1 = 2
    RIPEMD160 = 3
    SHA256 = 8
    SHA384 = 9
    SHA512 = 10
    SHA224 = 11
    SHA3_256 = 12
    SHA3_512 = 14

    @classmethod
    def from_id(cls, value: int) -> HashAlgorithm | None:
        """
        Returns the algorithm for `value`, or `None` if it is not a
        recognized identifier.
        """
        try:
            return cls(value)
        except ValueError:
            return None


# RIPEMD-160 is recognized but has no `cryptography` implementation.
_HASHES: dict[HashAlgorithm, type[hashes.HashAlgorithm]] = {
    HashAlgorithm.MD5: hashes.MD5,
    HashAlgorithm.SHA1: hashes.SHA1,
    HashAlgorithm.SHA224: hashes.SHA224,
    HashAlgorithm.SHA256: hashes.SHA256,
    HashAlgorithm.SHA384: hashes.SHA384,
    HashAlgorithm.SHA512: hashes.SHA512,
    HashAlgorithm.SHA3_256: hashes.SHA3_256,
    HashAlgorithm.SHA3_512: hashes.SHA3_512,
}


def is_implemented(algorithm: HashAlgorithm) -> bool:
    """
    Returns `True` if a digest can be computed for `algorithm`.
    """
    return algorithm in _HASHES


def _hash_for(algorithm: HashAlgorithm) -> hashes.HashAlgorithm:
    try:
        return _HASHES[algorithm]()
    except KeyError:
        raise Error(f"unknown hash algorithm: {algorithm}")


class Hashed(BaseModel, frozen=True):
    """
    Represents a hashed value.
    """

    algorithm: HashAlgorithm
    """
    The digest algorithm used to compute the digest.
    """

    digest: bytes
    """
    The digest representing the hash value.
    """

    @classmethod
    def of(cls, algorithm: HashAlgorithm, *chunks: bytes) -> Hashed:
        """
        Computes the `algorithm` digest over the concatenation of `chunks`.
        """
        hasher = hashes.Hash(_hash_for(algorithm))
        for chunk in chunks:
            hasher.update(chunk)
        return cls(algorithm=algorithm, digest=hasher.finalize())

    @property
    def left16(self) -> bytes:
        """
        The leftmost 16 bits of the digest, as stored in signature packets.
        """
        return self.digest[:2]

    def _as_hash(self) -> hashes.HashAlgorithm:
        """
        Returns an appropriate Cryptography `HashAlgorithm` for this `Hashed`.
        """
        return _hash_for(self.algorithm)

    def _as_prehashed(self) -> Prehashed:
        """
        Returns an appropriate Cryptography `Prehashed` for this `Hashed`.
        """
        return Prehashed(self._as_hash())

    def __str__(self) -> str:
        """
        Returns a str representation of this `Hashed`.
        """
        return f"{self.algorithm.name}:{self.digest.hex()}"

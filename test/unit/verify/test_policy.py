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

import pytest

from pgpverify.errors import VerificationError
from pgpverify.hashes import HashAlgorithm
from pgpverify.models import PublicKeyAlgorithm
from pgpverify.verify import policy
from pgpverify.verify.models import Outcome, SignatureResult


def _result(valid):
    if valid:
        return SignatureResult(outcome=Outcome.VALID, fingerprint="ABCD")
    return SignatureResult(outcome=Outcome.INVALID, reason="bad signature", fingerprint="ABCD")


class TestAnyOf:
    def test_empty(self):
        with pytest.raises(VerificationError, match="no signatures to verify"):
            policy.AnyOf().verify([])

    def test_none_valid(self):
        with pytest.raises(VerificationError, match="0 of 2 signatures are valid"):
            policy.AnyOf().verify([_result(False), _result(False)])

    @pytest.mark.parametrize(
        "results",
        [[True], [False, True], [True, False, False]],
    )
    def test_some_valid(self, results):
        policy.AnyOf().verify([_result(valid) for valid in results])

    def test_repr(self):
        assert repr(policy.AnyOf()) == "AnyOf()"


class TestAllOf:
    def test_empty(self):
        with pytest.raises(VerificationError, match="no signatures to verify"):
            policy.AllOf().verify([])

    def test_all_valid(self):
        policy.AllOf().verify([_result(True), _result(True)])

    def test_one_invalid(self):
        with pytest.raises(VerificationError) as exc_info:
            policy.AllOf().verify([_result(True), _result(False)])

        assert str(exc_info.value) == (
            "1 of 2 signatures are valid: ABCD: invalid (bad signature)"
        )

    def test_repr(self):
        assert repr(policy.AllOf()) == "AllOf()"


class TestAlgorithmPolicy:
    def test_defaults(self):
        algorithms = policy.AlgorithmPolicy()

        assert algorithms.allows_hash(HashAlgorithm.SHA256)
        assert algorithms.allows_hash(HashAlgorithm.SHA1)
        assert not algorithms.allows_hash(HashAlgorithm.MD5)
        assert not algorithms.allows_hash(HashAlgorithm.RIPEMD160)
        assert not algorithms.allows_hash(99)

        assert algorithms.allows_key(PublicKeyAlgorithm.RSA)
        assert algorithms.allows_key(PublicKeyAlgorithm.EDDSA_LEGACY)
        assert not algorithms.allows_key(PublicKeyAlgorithm.ELGAMAL_ENCRYPT_ONLY)
        assert not algorithms.allows_key(99)

    def test_restricted(self):
        algorithms = policy.AlgorithmPolicy(
            hash_algorithms=frozenset({HashAlgorithm.SHA512}),
            public_key_algorithms=frozenset({PublicKeyAlgorithm.RSA}),
        )

        assert algorithms.allows_hash(HashAlgorithm.SHA512)
        assert not algorithms.allows_hash(HashAlgorithm.SHA256)
        assert not algorithms.allows_key(PublicKeyAlgorithm.DSA)

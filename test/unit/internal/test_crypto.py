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

import dataclasses

import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed25519, rsa

from pgpverify._internal.crypto import UnsupportedKey, load_public_key, verify_signature
from pgpverify.hashes import HashAlgorithm, Hashed
from pgpverify.models import ECMaterial, Ed25519Material, PublicKeyAlgorithm


def _self_signature(certificate):
    """
    The first user ID self-signature of `certificate`, with the digest it
    was made over.
    """
    identity = certificate.identities[0]
    signature = identity.signatures[0]
    hashed = Hashed.of(
        HashAlgorithm(signature.hash_algorithm),
        certificate.primary.hash_material(),
        identity.user_id.hash_material(signature.version),
        signature.trailer(),
    )
    return signature, hashed


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("alice", ed25519.Ed25519PublicKey),
        ("bob", rsa.RSAPublicKey),
        ("carol", ec.EllipticCurvePublicKey),
        ("dave", dsa.DSAPublicKey),
    ],
)
def test_load_public_key(keyring, fingerprints, name, expected):
    certificate = keyring.lookup(fingerprints[name])
    assert isinstance(load_public_key(certificate.primary), expected)


def test_load_public_key_curve(keyring, fingerprints):
    carol = keyring.lookup(fingerprints["carol"]).primary
    public_key = load_public_key(carol)

    assert isinstance(public_key.curve, ec.SECP256R1)


def test_load_public_key_unsupported_curve(keyring, fingerprints):
    carol = keyring.lookup(fingerprints["carol"]).primary
    material = dataclasses.replace(carol.material, curve_oid=b"\x2b\x65\x70")
    key = dataclasses.replace(carol, material=material)

    with pytest.raises(UnsupportedKey, match="unsupported ECDSA curve"):
        load_public_key(key)


def test_load_public_key_malformed_eddsa_point(keyring, fingerprints):
    alice = keyring.lookup(fingerprints["alice"]).primary
    key = dataclasses.replace(
        alice, material=ECMaterial(curve_oid=alice.material.curve_oid, point=b"\x04" * 33)
    )

    with pytest.raises(ValueError, match="malformed Ed25519 point"):
        load_public_key(key)


def test_load_public_key_unknown_algorithm(keyring, fingerprints):
    alice = keyring.lookup(fingerprints["alice"]).primary
    key = dataclasses.replace(alice, algorithm=100, material=None)

    with pytest.raises(UnsupportedKey):
        load_public_key(key)


@pytest.mark.parametrize("name", ["alice", "bob", "carol", "dave"])
def test_verify_self_signature(keyring, fingerprints, name):
    certificate = keyring.lookup(fingerprints[name])
    signature, hashed = _self_signature(certificate)

    verify_signature(certificate.primary, signature, hashed)


@pytest.mark.parametrize("name", ["alice", "bob", "carol", "dave"])
def test_verify_wrong_digest(keyring, fingerprints, name):
    certificate = keyring.lookup(fingerprints[name])
    signature, hashed = _self_signature(certificate)
    tampered = Hashed.of(hashed.algorithm, b"something else")

    with pytest.raises(InvalidSignature):
        verify_signature(certificate.primary, signature, tampered)


def test_verify_native_ed25519(keyring, fingerprints):
    alice = keyring.lookup(fingerprints["alice"])
    signature, hashed = _self_signature(alice)

    private_key = ed25519.Ed25519PrivateKey.generate()
    raw_public = private_key.public_key().public_bytes(
        serialization.Encoding.Raw, serialization.PublicFormat.Raw
    )
    key = dataclasses.replace(
        alice.primary,
        algorithm=PublicKeyAlgorithm.ED25519,
        material=Ed25519Material(key=raw_public),
    )
    native = dataclasses.replace(
        signature,
        public_key_algorithm=PublicKeyAlgorithm.ED25519,
        mpis=(private_key.sign(hashed.digest),),
    )

    verify_signature(key, native, hashed)
    with pytest.raises(InvalidSignature):
        verify_signature(key, native, Hashed.of(hashed.algorithm, b"other"))

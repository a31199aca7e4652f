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
The seam between OpenPGP key material and `cryptography`.
"""

from __future__ import annotations

from typing import Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric import dsa, ec, ed25519, padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import encode_dss_signature

from pgpverify.hashes import Hashed
from pgpverify.models import (
    DSAMaterial,
    ECMaterial,
    Ed25519Material,
    PublicKey,
    PublicKeyAlgorithm,
    RSAMaterial,
    Signature,
)

VerifyingKey = Union[
    rsa.RSAPublicKey,
    dsa.DSAPublicKey,
    ec.EllipticCurvePublicKey,
    ed25519.Ed25519PublicKey,
]

# Curve OIDs, as encoded in key packets (without the DER tag and length).
_ECDSA_CURVES: dict[bytes, type[ec.EllipticCurve]] = {
    bytes.fromhex("2A8648CE3D030107"): ec.SECP256R1,
    bytes.fromhex("2B81040022"): ec.SECP384R1,
    bytes.fromhex("2B81040023"): ec.SECP521R1,
    bytes.fromhex("2B2403030208010107"): ec.BrainpoolP256R1,
    bytes.fromhex("2B240303020801010B"): ec.BrainpoolP384R1,
    bytes.fromhex("2B240303020801010D"): ec.BrainpoolP512R1,
}

_ED25519_LEGACY_OID = bytes.fromhex("2B06010401DA470F01")


class UnsupportedKey(Exception):
    """
    Raised when key material has no `cryptography` counterpart (an unknown
    curve, for example).

    This is an internal exception; users should not see it.
    """


def load_public_key(key: PublicKey) -> VerifyingKey:
    """
    Converts OpenPGP key material into a `cryptography` public key.

    Raises `UnsupportedKey` for unsupported algorithms and curves, and
    `ValueError` for material `cryptography` rejects.
    """
    material = key.material

    if isinstance(material, RSAMaterial):
        return rsa.RSAPublicNumbers(e=material.e, n=material.n).public_key()

    if isinstance(material, DSAMaterial):
        parameters = dsa.DSAParameterNumbers(p=material.p, q=material.q, g=material.g)
        return dsa.DSAPublicNumbers(y=material.y, parameter_numbers=parameters).public_key()

    if isinstance(material, ECMaterial):
        if key.algorithm == PublicKeyAlgorithm.ECDSA:
            curve = _ECDSA_CURVES.get(material.curve_oid)
            if curve is None:
                raise UnsupportedKey(f"unsupported ECDSA curve {material.curve_oid.hex()}")
            return ec.EllipticCurvePublicKey.from_encoded_point(curve(), material.point)

        if key.algorithm == PublicKeyAlgorithm.EDDSA_LEGACY:
            if material.curve_oid != _ED25519_LEGACY_OID:
                raise UnsupportedKey(f"unsupported EdDSA curve {material.curve_oid.hex()}")
            # Native point encoding, behind a 0x40 prefix octet.
            if len(material.point) != 33 or material.point[0] != 0x40:
                raise ValueError("malformed Ed25519 point")
            return ed25519.Ed25519PublicKey.from_public_bytes(material.point[1:])

    if isinstance(material, Ed25519Material):
        return ed25519.Ed25519PublicKey.from_public_bytes(material.key)

    raise UnsupportedKey(f"no signature support for public key algorithm {key.algorithm}")


def _mpi_int(value: bytes) -> int:
    return int.from_bytes(value, "big")


def verify_signature(key: PublicKey, signature: Signature, hashed: Hashed) -> None:
    """
    Checks `signature` over the digest `hashed` with `key`.

    Raises `cryptography.exceptions.InvalidSignature` on a bad signature,
    `UnsupportedKey` for unsupported key material, and `ValueError` for
    malformed key or signature values. A backend lacking an algorithm (such
    as Ed25519 on an old OpenSSL) raises
    `cryptography.exceptions.UnsupportedAlgorithm`.
    """
    public_key = load_public_key(key)

    if isinstance(public_key, rsa.RSAPublicKey):
        (value,) = signature.mpis
        # MPIs drop leading zero octets; PKCS#1 wants the full modulus width.
        width = (public_key.key_size + 7) // 8
        if len(value) > width:
            raise InvalidSignature("RSA signature longer than modulus")
        public_key.verify(
            value.rjust(width, b"\x00"),
            hashed.digest,
            padding.PKCS1v15(),
            hashed._as_prehashed(),
        )
    elif isinstance(public_key, dsa.DSAPublicKey):
        r, s = signature.mpis
        public_key.verify(
            encode_dss_signature(_mpi_int(r), _mpi_int(s)),
            hashed.digest,
            hashed._as_prehashed(),
        )
    elif isinstance(public_key, ec.EllipticCurvePublicKey):
        r, s = signature.mpis
        public_key.verify(
            encode_dss_signature(_mpi_int(r), _mpi_int(s)),
            hashed.digest,
            ec.ECDSA(hashed._as_prehashed()),
        )
    else:
        # EdDSA signs the digest itself, not the data.
        if len(signature.mpis) == 2:
            r, s = signature.mpis
            if len(r) > 32 or len(s) > 32:
                raise InvalidSignature("EdDSA signature component too long")
            raw = r.rjust(32, b"\x00") + s.rjust(32, b"\x00")
        else:
            (raw,) = signature.mpis
        public_key.verify(raw, hashed.digest)

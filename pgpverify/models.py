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
Models for OpenPGP keys, user IDs and signatures.

These are parsed from the bodies of `pgpverify.packets.Packet`s. Parsing
is purely structural: nothing here checks a signature or decides whether a
key can be trusted.
"""

from __future__ import annotations

import enum
import hashlib
import logging
from dataclasses import dataclass
from typing import Optional, Union

from pgpverify._utils import Fingerprint, KeyID, hexstr
from pgpverify.errors import PacketError, UnsupportedVersion
from pgpverify.packets import BodyReader

_logger = logging.getLogger(__name__)


class PublicKeyAlgorithm(enum.IntEnum):
    """
    OpenPGP public-key algorithm identifiers.

    See: <https://www.rfc-editor.org/rfc/rfc9580#section-9.1>
    """

    RSA = 1
    RSA_ENCRYPT_ONLY = 2
    RSA_SIGN_ONLY = 3
    ELGAMAL_ENCRYPT_ONLY = 16
    DSA = 17
    ECDH = 18
    ECDSA = 19
    ELGAMAL = 20
    EDDSA_LEGACY = 22
    X25519 = 25
    X448 = 26
    ED25519 = 27
    ED448 = 28

    @classmethod
    def from_id(cls, value: int) -> Optional[PublicKeyAlgorithm]:
        try:
            return cls(value)
        except ValueError:
            return None


_RSA_FAMILY = frozenset(
    {
        PublicKeyAlgorithm.RSA,
        PublicKeyAlgorithm.RSA_ENCRYPT_ONLY,
        PublicKeyAlgorithm.RSA_SIGN_ONLY,
    }
)


def same_algorithm_family(a: int, b: int) -> bool:
    """
    Returns `True` if public-key algorithm identifiers `a` and `b` denote
    the same key type. The RSA variants are interchangeable.
    """
    return a == b or (a in _RSA_FAMILY and b in _RSA_FAMILY)


class SignatureType(enum.IntEnum):
    """
    OpenPGP signature types.

    See: <https://www.rfc-editor.org/rfc/rfc4880#section-5.2.1>
    """

    BINARY = 0x00
    TEXT = 0x01
    STANDALONE = 0x02
    GENERIC_CERTIFICATION = 0x10
    PERSONA_CERTIFICATION = 0x11
    CASUAL_CERTIFICATION = 0x12
    POSITIVE_CERTIFICATION = 0x13
    SUBKEY_BINDING = 0x18
    PRIMARY_KEY_BINDING = 0x19
    DIRECT_KEY = 0x1F
    KEY_REVOCATION = 0x20
    SUBKEY_REVOCATION = 0x28
    CERTIFICATION_REVOCATION = 0x30
    TIMESTAMP = 0x40
    THIRD_PARTY_CONFIRMATION = 0x50

    @classmethod
    def from_id(cls, value: int) -> Optional[SignatureType]:
        try:
            return cls(value)
        except ValueError:
            return None

    @property
    def is_certification(self) -> bool:
        return 0x10 <= self <= 0x13

    @property
    def is_document(self) -> bool:
        """
        Whether this type signs a document (as opposed to key material).
        """
        return self in (SignatureType.BINARY, SignatureType.TEXT)


class SubpacketType(enum.IntEnum):
    """
    Signature subpacket types.

    See: <https://www.rfc-editor.org/rfc/rfc4880#section-5.2.3.1>
    """

    CREATION_TIME = 2
    EXPIRATION_TIME = 3
    EXPORTABLE = 4
    TRUST = 5
    REGULAR_EXPRESSION = 6
    REVOCABLE = 7
    KEY_EXPIRATION_TIME = 9
    PREFERRED_SYMMETRIC = 11
    REVOCATION_KEY = 12
    ISSUER = 16
    NOTATION_DATA = 20
    PREFERRED_HASH = 21
    PREFERRED_COMPRESSION = 22
    KEY_SERVER_PREFERENCES = 23
    PREFERRED_KEY_SERVER = 24
    PRIMARY_USER_ID = 25
    POLICY_URI = 26
    KEY_FLAGS = 27
    SIGNERS_USER_ID = 28
    REVOCATION_REASON = 29
    FEATURES = 30
    SIGNATURE_TARGET = 31
    EMBEDDED_SIGNATURE = 32
    ISSUER_FINGERPRINT = 33
    INTENDED_RECIPIENT = 35
    PREFERRED_AEAD_CIPHERSUITES = 39


_KNOWN_SUBPACKETS = frozenset(SubpacketType)


class KeyFlags(enum.IntFlag):
    """
    The first octet of the key flags subpacket.
    """

    CERTIFY = 0x01
    SIGN = 0x02
    ENCRYPT_COMMUNICATIONS = 0x04
    ENCRYPT_STORAGE = 0x08
    SPLIT = 0x10
    AUTHENTICATE = 0x20
    GROUP = 0x80


class RevocationReason(enum.IntEnum):
    NO_REASON = 0
    SUPERSEDED = 1
    COMPROMISED = 2
    RETIRED = 3
    USER_ID_INVALID = 32


# Revocations for these reasons only apply to signatures made after them.
SOFT_REVOCATION_REASONS = frozenset(
    {
        RevocationReason.SUPERSEDED,
        RevocationReason.RETIRED,
        RevocationReason.USER_ID_INVALID,
    }
)


@dataclass(frozen=True)
class RSAMaterial:
    n: int
    e: int


@dataclass(frozen=True)
class DSAMaterial:
    p: int
    q: int
    g: int
    y: int


@dataclass(frozen=True)
class ECMaterial:
    """
    Elliptic-curve key material: a curve OID and an encoded point.

    Used for ECDSA, ECDH and the legacy EdDSA encoding, where Ed25519
    points carry a `0x40` prefix octet.
    """

    curve_oid: bytes
    point: bytes


@dataclass(frozen=True)
class Ed25519Material:
    """
    Native (RFC 9580) Ed25519 key material: 32 raw octets.
    """

    key: bytes


KeyMaterial = Union[RSAMaterial, DSAMaterial, ECMaterial, Ed25519Material]


def _read_oid(reader: BodyReader) -> bytes:
    length = reader.u8()
    if length in (0, 0xFF):
        raise PacketError(f"reserved curve OID length {length}")
    return reader.read(length)


def _parse_material(algorithm: int, reader: BodyReader) -> Optional[KeyMaterial]:
    """
    Parses algorithm-specific public key material, or returns `None` for
    algorithms that have no verification support.
    """

    if algorithm in _RSA_FAMILY:
        n = reader.mpi_int()
        e = reader.mpi_int()
        return RSAMaterial(n=n, e=e)
    if algorithm == PublicKeyAlgorithm.DSA:
        p, q, g, y = (reader.mpi_int() for _ in range(4))
        return DSAMaterial(p=p, q=q, g=g, y=y)
    if algorithm in (
        PublicKeyAlgorithm.ECDSA,
        PublicKeyAlgorithm.EDDSA_LEGACY,
        PublicKeyAlgorithm.ECDH,
    ):
        # ECDH's trailing KDF parameters are irrelevant to verification.
        oid = _read_oid(reader)
        return ECMaterial(curve_oid=oid, point=reader.mpi())
    if algorithm == PublicKeyAlgorithm.ED25519:
        return Ed25519Material(key=reader.read(32))
    return None


@dataclass(frozen=True)
class PublicKey:
    """
    A public key or public subkey.

    The fingerprint and key ID are pure functions of the packet body.
    """

    version: int
    algorithm: int
    created: int
    """
    Key creation time, in seconds since the epoch.
    """

    material: Optional[KeyMaterial]
    """
    The key material, or `None` if the algorithm or version is unsupported.
    """

    fingerprint: Fingerprint
    key_id: KeyID
    body: bytes

    validity_days: int = 0
    """
    Version 3 keys only: the key's lifetime in days, or 0 if it never expires.
    """

    @classmethod
    def parse(cls, body: bytes) -> PublicKey:
        """
        Parses the body of a public key or public subkey packet.

        Raises `UnsupportedVersion` for unknown key versions and
        `PacketError` for malformed bodies.
        """
        reader = BodyReader(body, "public key packet")
        version = reader.u8()

        if version in (2, 3):
            created = reader.u32()
            validity_days = reader.u16()
            algorithm = reader.u8()
            material = _parse_material(algorithm, reader)
            if not isinstance(material, RSAMaterial):
                raise PacketError(f"version 3 key with non-RSA algorithm {algorithm}")
            n = material.n.to_bytes((material.n.bit_length() + 7) // 8, "big")
            e = material.e.to_bytes((material.e.bit_length() + 7) // 8, "big")
            fingerprint = hashlib.md5(n + e).digest()
            return cls(
                version=version,
                algorithm=algorithm,
                created=created,
                material=material,
                fingerprint=Fingerprint(fingerprint),
                key_id=KeyID(n[-8:].rjust(8, b"\x00")),
                body=body,
                validity_days=validity_days,
            )

        if version == 4:
            created = reader.u32()
            algorithm = reader.u8()
            material = _parse_material(algorithm, reader)
            fingerprint = hashlib.sha1(_v4_prefix(body) + body).digest()
            return cls(
                version=version,
                algorithm=algorithm,
                created=created,
                material=material,
                fingerprint=Fingerprint(fingerprint),
                key_id=KeyID(fingerprint[-8:]),
                body=body,
            )

        if version in (5, 6):
            created = reader.u32()
            algorithm = reader.u8()
            prefix = (b"\x9a" if version == 5 else b"\x9b") + len(body).to_bytes(4, "big")
            fingerprint = hashlib.sha256(prefix + body).digest()
            return cls(
                version=version,
                algorithm=algorithm,
                created=created,
                material=None,
                fingerprint=Fingerprint(fingerprint),
                key_id=KeyID(fingerprint[:8]),
                body=body,
            )

        raise UnsupportedVersion(f"public key version {version}")

    @property
    def public_key_algorithm(self) -> Optional[PublicKeyAlgorithm]:
        return PublicKeyAlgorithm.from_id(self.algorithm)

    @property
    def is_supported(self) -> bool:
        """
        Whether signatures by this key can be checked at all.
        """
        return self.version in (2, 3, 4) and self.material is not None

    @property
    def expires(self) -> Optional[int]:
        """
        The expiry encoded in the key packet itself (version 3 only).
        """
        if self.validity_days:
            return self.created + self.validity_days * 86400
        return None

    def hash_material(self) -> bytes:
        """
        Returns the key as it is hashed into key signatures.

        See: <https://www.rfc-editor.org/rfc/rfc4880#section-5.2.4>
        """
        return _v4_prefix(self.body) + self.body

    def __str__(self) -> str:
        return hexstr(self.fingerprint)


def _v4_prefix(body: bytes) -> bytes:
    if len(body) > 0xFFFF:
        raise PacketError("key packet too large to fingerprint")
    return b"\x99" + len(body).to_bytes(2, "big")


@dataclass(frozen=True)
class UserID:
    """
    A user ID or user attribute packet body.
    """

    data: bytes
    attribute: bool = False

    def hash_material(self, signature_version: int) -> bytes:
        if signature_version < 4:
            return self.data
        prefix = b"\xd1" if self.attribute else b"\xb4"
        return prefix + len(self.data).to_bytes(4, "big") + self.data

    def __str__(self) -> str:
        if self.attribute:
            return f"[user attribute, {len(self.data)} bytes]"
        return self.data.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class Subpacket:
    type: int
    critical: bool
    data: bytes

    @property
    def known(self) -> bool:
        return self.type in _KNOWN_SUBPACKETS


def _parse_subpackets(data: bytes) -> tuple[Subpacket, ...]:
    """
    Parses a signature subpacket area.

    See: <https://www.rfc-editor.org/rfc/rfc4880#section-5.2.3.1>
    """
    reader = BodyReader(data, "signature subpacket area")
    subpackets: list[Subpacket] = []
    while reader.remaining:
        first = reader.u8()
        if first < 192:
            length = first
        elif first < 255:
            length = ((first - 192) << 8) + reader.u8() + 192
        else:
            length = reader.u32()
        if length == 0:
            raise PacketError("signature subpacket without a type octet")
        body = reader.read(length)
        subpackets.append(
            Subpacket(type=body[0] & 0x7F, critical=bool(body[0] & 0x80), data=body[1:])
        )
    return tuple(subpackets)


@dataclass(frozen=True)
class Signature:
    """
    A version 3 or 4 signature packet.
    """

    version: int
    type: int
    """
    The raw signature type; see `SignatureType`.
    """

    public_key_algorithm: int
    hash_algorithm: int
    created: int
    hashed_subpackets: tuple[Subpacket, ...]
    unhashed_subpackets: tuple[Subpacket, ...]
    left16: bytes
    mpis: tuple[bytes, ...]
    """
    The algorithm-specific signature values, as big-endian magnitudes.
    """

    hashed_portion: bytes
    """
    The part of the packet body that is hashed after the signed data.
    """

    v3_issuer: Optional[bytes] = None

    @classmethod
    def parse(cls, body: bytes) -> Signature:
        """
        Parses the body of a signature packet.

        Raises `UnsupportedVersion` for signature versions other than 3 and 4,
        and `PacketError` for malformed bodies.
        """
        reader = BodyReader(body, "signature packet")
        version = reader.u8()

        if version in (2, 3):
            if reader.u8() != 5:
                raise PacketError("version 3 signature with bad hashed length")
            hashed_portion = reader.read(5)
            issuer = reader.read(8)
            public_key_algorithm = reader.u8()
            hash_algorithm = reader.u8()
            left16 = reader.read(2)
            return cls(
                version=version,
                type=hashed_portion[0],
                public_key_algorithm=public_key_algorithm,
                hash_algorithm=hash_algorithm,
                created=int.from_bytes(hashed_portion[1:], "big"),
                hashed_subpackets=(),
                unhashed_subpackets=(),
                left16=left16,
                mpis=_parse_signature_values(public_key_algorithm, reader),
                hashed_portion=hashed_portion,
                v3_issuer=issuer,
            )

        if version == 4:
            signature_type = reader.u8()
            public_key_algorithm = reader.u8()
            hash_algorithm = reader.u8()
            hashed_area = reader.read(reader.u16())
            hashed_portion = body[: reader.position]
            unhashed_area = reader.read(reader.u16())
            left16 = reader.read(2)
            hashed = _parse_subpackets(hashed_area)

            creation = [s for s in hashed if s.type == SubpacketType.CREATION_TIME]
            if not creation or len(creation[0].data) != 4:
                raise PacketError("version 4 signature without a creation time")

            return cls(
                version=version,
                type=signature_type,
                public_key_algorithm=public_key_algorithm,
                hash_algorithm=hash_algorithm,
                created=int.from_bytes(creation[0].data, "big"),
                hashed_subpackets=hashed,
                unhashed_subpackets=_parse_subpackets(unhashed_area),
                left16=left16,
                mpis=_parse_signature_values(public_key_algorithm, reader),
                hashed_portion=hashed_portion,
            )

        raise UnsupportedVersion(f"signature version {version}")

    @property
    def signature_type(self) -> Optional[SignatureType]:
        return SignatureType.from_id(self.type)

    def trailer(self) -> bytes:
        """
        Returns the bytes hashed after the signed data.

        See: <https://www.rfc-editor.org/rfc/rfc4880#section-5.2.4>
        """
        if self.version < 4:
            return self.hashed_portion
        length = len(self.hashed_portion).to_bytes(4, "big")
        return self.hashed_portion + b"\x04\xff" + length

    def _hashed(self, type_: SubpacketType) -> Optional[Subpacket]:
        for subpacket in self.hashed_subpackets:
            if subpacket.type == type_:
                return subpacket
        return None

    def _any(self, type_: SubpacketType) -> Optional[Subpacket]:
        return self._hashed(type_) or next(
            (s for s in self.unhashed_subpackets if s.type == type_), None
        )

    @property
    def issuer_fingerprint(self) -> Optional[Fingerprint]:
        subpacket = self._any(SubpacketType.ISSUER_FINGERPRINT)
        if subpacket is None or len(subpacket.data) < 2:
            return None
        # The first octet is the key version.
        return Fingerprint(subpacket.data[1:])

    @property
    def issuer_key_id(self) -> Optional[KeyID]:
        """
        The issuer's 64-bit key ID, from the packet, the issuer subpacket,
        or the issuer fingerprint subpacket, in that order.
        """
        if self.v3_issuer is not None:
            return KeyID(self.v3_issuer)
        subpacket = self._any(SubpacketType.ISSUER)
        if subpacket is not None and len(subpacket.data) == 8:
            return KeyID(subpacket.data)
        fingerprint = self.issuer_fingerprint
        if fingerprint is not None and len(fingerprint) == 20:
            return KeyID(fingerprint[-8:])
        return None

    def _hashed_u32(self, type_: SubpacketType) -> Optional[int]:
        subpacket = self._hashed(type_)
        if subpacket is None or len(subpacket.data) != 4:
            return None
        return int.from_bytes(subpacket.data, "big") or None

    @property
    def expiration(self) -> Optional[int]:
        """
        Seconds after creation at which the signature expires, if ever.
        """
        return self._hashed_u32(SubpacketType.EXPIRATION_TIME)

    @property
    def expires(self) -> Optional[int]:
        expiration = self.expiration
        return None if expiration is None else self.created + expiration

    @property
    def key_expiration(self) -> Optional[int]:
        """
        Seconds after key creation at which the key expires, if ever.
        """
        return self._hashed_u32(SubpacketType.KEY_EXPIRATION_TIME)

    @property
    def key_flags(self) -> Optional[KeyFlags]:
        subpacket = self._hashed(SubpacketType.KEY_FLAGS)
        if subpacket is None:
            return None
        return KeyFlags(subpacket.data[0] if subpacket.data else 0)

    @property
    def revocation_reason(self) -> Optional[int]:
        subpacket = self._hashed(SubpacketType.REVOCATION_REASON)
        if subpacket is None or not subpacket.data:
            return None
        return subpacket.data[0]

    @property
    def is_hard_revocation(self) -> bool:
        """
        Whether this revocation invalidates every signature the key ever
        made, rather than only those made after it.
        """
        return self.revocation_reason not in SOFT_REVOCATION_REASONS

    @property
    def embedded_signatures(self) -> tuple[Signature, ...]:
        """
        Signatures embedded in this one, e.g. the primary key binding
        ("back signature") of a signing subkey binding.
        """
        embedded = []
        for subpacket in self.hashed_subpackets + self.unhashed_subpackets:
            if subpacket.type != SubpacketType.EMBEDDED_SIGNATURE:
                continue
            try:
                embedded.append(Signature.parse(subpacket.data))
            except PacketError as exc:
                _logger.debug(f"skipping malformed embedded signature: {exc}")
        return tuple(embedded)

    @property
    def has_unknown_critical(self) -> bool:
        return any(
            s.critical and not s.known
            for s in self.hashed_subpackets + self.unhashed_subpackets
        )

    def issued_by(self, key: PublicKey) -> bool:
        """
        Returns `True` unless this signature names an issuer other than `key`.
        """
        fingerprint = self.issuer_fingerprint
        if fingerprint is not None:
            return fingerprint == key.fingerprint
        key_id = self.issuer_key_id
        return key_id is None or key_id == key.key_id


def _parse_signature_values(algorithm: int, reader: BodyReader) -> tuple[bytes, ...]:
    if algorithm in _RSA_FAMILY:
        return (reader.mpi(),)
    if algorithm in (
        PublicKeyAlgorithm.DSA,
        PublicKeyAlgorithm.ECDSA,
        PublicKeyAlgorithm.EDDSA_LEGACY,
    ):
        return (reader.mpi(), reader.mpi())
    if algorithm == PublicKeyAlgorithm.ED25519:
        return (reader.read(64),)
    return (reader.rest(),)

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
The in-memory keyring: certificates folded out of a stream of key packets.

Example:
```python
from pathlib import Path

from pgpverify.keyring import Keyring

keyring = Keyring.from_bytes(Path("keyring.asc").read_bytes(), armored=True)
certificate = keyring.lookup("BAC8 6C0C E59B F48C F83C 373B 8970 146E D3E3 3861")
print(certificate.user_ids)
```
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Optional, Union

from pgpverify import armor
from pgpverify._utils import Fingerprint, KeyIdentifier, hexstr, normalize_key_identifier
from pgpverify.errors import AmbiguousKeyId, KeyNotFound, PacketError, UnsupportedVersion
from pgpverify.models import PublicKey, Signature, SignatureType, UserID
from pgpverify.packets import Packet, PacketStream, Tag

_logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """
    A user ID (or user attribute) and the signatures made over it.
    """

    user_id: UserID
    signatures: tuple[Signature, ...] = ()


@dataclass(frozen=True)
class Subkey:
    """
    A subkey and the signatures that bind or revoke it.
    """

    key: PublicKey
    signatures: tuple[Signature, ...] = ()


@dataclass(frozen=True)
class Certificate:
    """
    A transferable public key: a primary key plus its identities and
    subkeys, each with the signatures attached to it.
    """

    primary: PublicKey
    signatures: tuple[Signature, ...] = ()
    """
    Signatures directly over the primary key (direct-key signatures and
    key revocations).
    """

    identities: tuple[Identity, ...] = ()
    subkeys: tuple[Subkey, ...] = ()

    @property
    def fingerprint(self) -> Fingerprint:
        return self.primary.fingerprint

    @property
    def user_ids(self) -> list[str]:
        return [str(i.user_id) for i in self.identities if not i.user_id.attribute]

    @property
    def keys(self) -> Iterator[PublicKey]:
        """
        The primary key, followed by every subkey.
        """
        yield self.primary
        for subkey in self.subkeys:
            yield subkey.key

    def key_for(self, identifier: KeyIdentifier) -> PublicKey:
        """
        Returns the primary key or subkey matching `identifier`, a key ID or
        fingerprint.

        Raises `KeyNotFound` if no key in this certificate matches.
        """
        raw = normalize_key_identifier(identifier)
        for key in self.keys:
            if raw in (key.fingerprint, key.key_id):
                return key
        raise KeyNotFound(f"no key {hexstr(raw)} in certificate {self}")

    def subkey(self, key: PublicKey) -> Optional[Subkey]:
        for subkey in self.subkeys:
            if subkey.key.fingerprint == key.fingerprint:
                return subkey
        return None

    def is_usable_subkey(self, key: PublicKey) -> bool:
        """
        Returns `True` if `key` is a subkey of this certificate carrying at
        least one binding signature issued by the primary key.

        This is a structural check only: the binding is not verified.
        """
        subkey = self.subkey(key)
        if subkey is None:
            return False
        return any(
            sig.type == SignatureType.SUBKEY_BINDING and sig.issued_by(self.primary)
            for sig in subkey.signatures
        )

    def __str__(self) -> str:
        return hexstr(self.fingerprint)


class _State(enum.Enum):
    AWAITING_PRIMARY = enum.auto()
    IN_PRIMARY = enum.auto()
    IN_USER_ID = enum.auto()
    IN_SUBKEY = enum.auto()
    SKIPPING = enum.auto()


_PRIMARY_SIGNATURE_TYPES = frozenset(
    {SignatureType.DIRECT_KEY, SignatureType.KEY_REVOCATION}
)
_SUBKEY_SIGNATURE_TYPES = frozenset(
    {SignatureType.SUBKEY_BINDING, SignatureType.SUBKEY_REVOCATION}
)


@dataclass
class _CertificateBuilder:
    primary: PublicKey
    signatures: list[Signature] = field(default_factory=list)
    identities: dict[UserID, list[Signature]] = field(default_factory=dict)
    subkeys: dict[bytes, tuple[PublicKey, list[Signature]]] = field(default_factory=dict)

    def build(self) -> Certificate:
        return Certificate(
            primary=self.primary,
            signatures=tuple(self.signatures),
            identities=tuple(
                Identity(user_id=uid, signatures=tuple(sigs))
                for uid, sigs in self.identities.items()
            ),
            subkeys=tuple(
                Subkey(key=key, signatures=tuple(sigs))
                for key, sigs in self.subkeys.values()
            ),
        )


def _attach(signatures: list[Signature], signature: Signature) -> None:
    if signature not in signatures:
        signatures.append(signature)


class _Loader:
    """
    The keyring state machine. Consumes packets one at a time.
    """

    def __init__(self) -> None:
        self.state = _State.AWAITING_PRIMARY
        self.builders: dict[bytes, _CertificateBuilder] = {}
        self.warnings: list[str] = []

        self._current: Optional[_CertificateBuilder] = None
        # `None` while inside a component that is being discarded.
        self._component: Optional[list[Signature]] = None

    def warn(self, packet: Packet, message: str) -> None:
        warning = f"offset {packet.offset}: {message}"
        _logger.warning(warning)
        self.warnings.append(warning)

    def feed(self, packet: Packet) -> None:
        tag = packet.tag

        if tag in (Tag.TRUST, Tag.MARKER):
            return

        if tag == Tag.PUBLIC_KEY:
            self._open_certificate(packet)
            return

        if tag == Tag.SECRET_KEY:
            self.warn(packet, "skipping secret key packet and its components")
            self._current = None
            self.state = _State.SKIPPING
            return

        if self.state == _State.SKIPPING:
            _logger.debug(f"skipping {packet!r}")
            return

        if self.state == _State.AWAITING_PRIMARY:
            self.warn(packet, f"discarding {tag.name} packet before any public key")
            return

        if tag in (Tag.USER_ID, Tag.USER_ATTRIBUTE):
            self._open_identity(packet)
        elif tag == Tag.PUBLIC_SUBKEY:
            self._open_subkey(packet)
        elif tag == Tag.SECRET_SUBKEY:
            self.warn(packet, "skipping secret subkey packet")
            self._component = None
            self.state = _State.IN_SUBKEY
        elif tag == Tag.SIGNATURE:
            self._attach_signature(packet)
        else:
            self.warn(packet, f"discarding unexpected {tag.name} packet (tag {packet.raw_tag})")

    def _open_certificate(self, packet: Packet) -> None:
        try:
            key = PublicKey.parse(packet.body)
        except UnsupportedVersion as exc:
            self.warn(packet, f"skipping certificate: {exc}")
            self._current = None
            self.state = _State.SKIPPING
            return

        # Repeated certificates are merged into the first occurrence.
        current = self.builders.get(key.fingerprint)
        if current is None:
            current = _CertificateBuilder(primary=key)
            self.builders[key.fingerprint] = current

        _logger.debug(f"certificate {key}")
        self._current = current
        self._component = current.signatures
        self.state = _State.IN_PRIMARY

    def _open_identity(self, packet: Packet) -> None:
        assert self._current is not None
        user_id = UserID(data=packet.body, attribute=packet.tag == Tag.USER_ATTRIBUTE)
        self._component = self._current.identities.setdefault(user_id, [])
        self.state = _State.IN_USER_ID

    def _open_subkey(self, packet: Packet) -> None:
        assert self._current is not None
        try:
            key = PublicKey.parse(packet.body)
        except UnsupportedVersion as exc:
            self.warn(packet, f"skipping subkey: {exc}")
            self._component = None
            self.state = _State.IN_SUBKEY
            return

        _, signatures = self._current.subkeys.setdefault(key.fingerprint, (key, []))
        self._component = signatures
        self.state = _State.IN_SUBKEY

    def _attach_signature(self, packet: Packet) -> None:
        assert self._current is not None
        try:
            signature = Signature.parse(packet.body)
        except PacketError as exc:
            self.warn(packet, f"skipping unusable signature: {exc}")
            return

        if signature.type in _PRIMARY_SIGNATURE_TYPES:
            _attach(self._current.signatures, signature)
            return

        if self.state == _State.IN_SUBKEY and signature.type not in _SUBKEY_SIGNATURE_TYPES:
            self.warn(packet, f"discarding signature type 0x{signature.type:02x} on a subkey")
            return
        if self.state != _State.IN_SUBKEY and signature.type in _SUBKEY_SIGNATURE_TYPES:
            self.warn(packet, f"discarding subkey signature type 0x{signature.type:02x} outside a subkey")
            return

        if self._component is None:
            _logger.debug("dropping signature on a skipped component")
            return
        _attach(self._component, signature)


class Keyring:
    """
    An immutable collection of certificates, indexed by fingerprint and
    key ID (primary keys and subkeys alike).
    """

    def __init__(self, certificates: Iterable[Certificate], warnings: Iterable[str] = ()):
        """
        Create a new `Keyring`. Most users should use `load` or `from_bytes`.
        """
        self._certificates: dict[bytes, Certificate] = {}
        self._by_fingerprint: dict[bytes, list[Certificate]] = {}
        self._by_key_id: dict[bytes, list[Certificate]] = {}
        self._warnings = tuple(warnings)

        for cert in certificates:
            self._certificates[cert.fingerprint] = cert
            for key in cert.keys:
                for index, value in (
                    (self._by_fingerprint, key.fingerprint),
                    (self._by_key_id, key.key_id),
                ):
                    entries = index.setdefault(value, [])
                    if cert not in entries:
                        entries.append(cert)

    @classmethod
    def load(cls, packets: Iterable[Packet]) -> Keyring:
        """
        Folds a sequence of packets into a `Keyring`.

        Malformed framing or key packets raise `PacketError`. Unusable
        signatures, stray packets, secret keys and unsupported key versions
        are skipped and recorded in `warnings`.
        """
        loader = _Loader()
        for packet in packets:
            loader.feed(packet)

        keyring = cls(
            (builder.build() for builder in loader.builders.values()),
            loader.warnings,
        )
        _logger.debug(f"loaded {len(keyring)} certificate(s)")
        return keyring

    @classmethod
    def from_bytes(cls, data: Union[bytes, str], armored: bool = False) -> Keyring:
        """
        Loads a `Keyring` from binary packets or from ASCII-armored public key
        blocks. Every armored block is loaded, so concatenated exports such as
        `cat alice.asc bob.asc` yield every certificate.
        """
        if armored:
            blocks = armor.iter_armor(data, expected=[armor.ArmorType.PUBLIC_KEY_BLOCK])
            data = b"".join(block.data for block in blocks)
        elif isinstance(data, str):
            raise TypeError("binary keyrings must be bytes")
        return cls.load(PacketStream(data))

    @property
    def warnings(self) -> tuple[str, ...]:
        """
        Problems encountered (and tolerated) while loading.
        """
        return self._warnings

    @property
    def fingerprints(self) -> list[str]:
        """
        The primary key fingerprints of every certificate, in load order.
        """
        return [hexstr(fpr) for fpr in self._certificates]

    def lookup(self, identifier: KeyIdentifier) -> Certificate:
        """
        Returns the certificate holding the key named by `identifier`: a
        fingerprint or 64-bit key ID, as bytes or hex.

        Raises `KeyNotFound` if no key matches, `AmbiguousKeyId` if more
        than one certificate matches, and `ValueError` if `identifier` is
        malformed.
        """
        raw = normalize_key_identifier(identifier)
        index = self._by_key_id if len(raw) == 8 else self._by_fingerprint
        candidates = index.get(raw, [])

        if not candidates:
            raise KeyNotFound(f"no key {hexstr(raw)} in keyring")
        if len(candidates) > 1:
            fingerprints = ", ".join(str(c) for c in candidates)
            raise AmbiguousKeyId(
                f"key ID {hexstr(raw)} matches {len(candidates)} certificates: {fingerprints}"
            )
        return candidates[0]

    def __len__(self) -> int:
        return len(self._certificates)

    def __iter__(self) -> Iterator[Certificate]:
        return iter(self._certificates.values())

    def __contains__(self, identifier: object) -> bool:
        if not isinstance(identifier, (str, bytes)):
            return False
        try:
            self.lookup(identifier)
        except (KeyNotFound, ValueError):
            return False
        except AmbiguousKeyId:
            pass
        return True

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Keyring):
            return NotImplemented
        return list(self) == list(other)

    def __repr__(self) -> str:
        return f"<Keyring: {len(self)} certificate(s)>"

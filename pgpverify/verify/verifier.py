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
Verification API machinery.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import NamedTuple, Optional, Union

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm

from pgpverify import armor
from pgpverify._internal.crypto import UnsupportedKey, verify_signature
from pgpverify._utils import canonicalize_text, from_timestamp, hexstr, to_timestamp
from pgpverify.errors import (
    AmbiguousKeyId,
    KeyNotFound,
    PacketError,
    UnsupportedVersion,
    VerificationError,
)
from pgpverify.hashes import Hashed, HashAlgorithm, is_implemented
from pgpverify.keyring import Certificate, Keyring, Subkey
from pgpverify.models import (
    KeyFlags,
    PublicKey,
    Signature,
    SignatureType,
    same_algorithm_family,
)
from pgpverify.packets import (
    LiteralData,
    OnePassSignature,
    Packet,
    PacketStream,
    Tag,
    flatten,
)
from pgpverify.verify.models import Outcome, SignatureResult, VerificationResult
from pgpverify.verify.policy import AggregatePolicy, AlgorithmPolicy, AllOf

_logger = logging.getLogger(__name__)


class _Failure(NamedTuple):
    outcome: Outcome
    reason: str


class SignatureVerifier:
    """
    Checks a single signature against a single key.
    """

    def __init__(self, *, algorithm_policy: Optional[AlgorithmPolicy] = None):
        """
        Create a new `SignatureVerifier`.

        `algorithm_policy` restricts the hash and public-key algorithms that
        signatures may use; see `AlgorithmPolicy` for the defaults.
        """
        self._algorithm_policy = algorithm_policy or AlgorithmPolicy()

    def verify(
        self,
        signature: Signature,
        signed_data: bytes,
        key: PublicKey,
        *,
        certificate: Optional[Certificate] = None,
        at: Optional[datetime] = None,
    ) -> SignatureResult:
        """
        Verifies a document `signature` over `signed_data`, made by `key`.

        When `certificate` (the certificate holding `key`) is given, the key's
        validity is also checked: subkey bindings, key expiry and
        revocations, all taken from self-signatures that verify.

        `at` is the verification time, defaulting to now.
        """
        now = to_timestamp(at or datetime.now(timezone.utc))

        failure = self._check_document(signature, signed_data, key)
        if failure is None:
            failure = self._check_validity(signature, key, certificate, now)

        result = SignatureResult(
            outcome=Outcome.VALID if failure is None else failure.outcome,
            reason="" if failure is None else failure.reason,
            key_id=_issuer_hex(signature),
            fingerprint=hexstr(key.fingerprint),
            signature_type=signature.type,
            created=from_timestamp(signature.created),
        )
        _logger.debug(f"signature by {result.fingerprint}: {result.outcome} {result.reason}")
        return result

    def _check_document(
        self, signature: Signature, signed_data: bytes, key: PublicKey
    ) -> Optional[_Failure]:
        signature_type = signature.signature_type
        if signature_type is None or not signature_type.is_document:
            return _Failure(
                Outcome.INVALID,
                f"signature type 0x{signature.type:02x} does not sign a document",
            )

        if signature_type == SignatureType.TEXT:
            signed_data = canonicalize_text(signed_data)
        return self._check(signature, key, signed_data)

    def _check(self, signature: Signature, key: PublicKey, material: bytes) -> Optional[_Failure]:
        """
        The algorithm gate, digest and cryptographic check shared by document
        signatures and self-signatures.
        """
        if not self._algorithm_policy.allows_key(signature.public_key_algorithm):
            return _Failure(
                Outcome.UNSUPPORTED_ALGORITHM,
                f"public key algorithm {signature.public_key_algorithm} not allowed",
            )

        hash_algorithm = HashAlgorithm.from_id(signature.hash_algorithm)
        if (
            hash_algorithm is None
            or not is_implemented(hash_algorithm)
            or not self._algorithm_policy.allows_hash(hash_algorithm)
        ):
            return _Failure(
                Outcome.UNSUPPORTED_ALGORITHM,
                f"hash algorithm {signature.hash_algorithm} not allowed",
            )

        if not key.is_supported:
            return _Failure(
                Outcome.UNSUPPORTED_ALGORITHM,
                f"unsupported version {key.version} key with algorithm {key.algorithm}",
            )

        if not same_algorithm_family(signature.public_key_algorithm, key.algorithm):
            return _Failure(
                Outcome.INVALID,
                f"signature algorithm {signature.public_key_algorithm} does not match "
                f"key algorithm {key.algorithm}",
            )

        if signature.has_unknown_critical:
            return _Failure(Outcome.INVALID, "signature has an unknown critical subpacket")

        hashed = Hashed.of(hash_algorithm, material, signature.trailer())
        if hashed.left16 != signature.left16:
            return _Failure(Outcome.INVALID, "digest prefix mismatch")

        try:
            verify_signature(key, signature, hashed)
        except (UnsupportedKey, UnsupportedAlgorithm) as exc:
            return _Failure(Outcome.UNSUPPORTED_ALGORITHM, str(exc))
        except InvalidSignature:
            return _Failure(Outcome.INVALID, "bad signature")
        except ValueError as exc:
            return _Failure(Outcome.INVALID, f"malformed key or signature: {exc}")

        return None

    def _verifies(
        self, signature: Signature, key: PublicKey, material: bytes, now: int
    ) -> bool:
        """
        Whether a key signature was made by `key` over `material` and is in
        effect at `now`.
        """
        if not signature.issued_by(key) or signature.created > now:
            return False
        if signature.expires is not None and now > signature.expires:
            return False
        return self._check(signature, key, material) is None

    def _check_validity(
        self,
        signature: Signature,
        key: PublicKey,
        certificate: Optional[Certificate],
        now: int,
    ) -> Optional[_Failure]:
        if signature.created > now:
            return _Failure(Outcome.INVALID, "signature created in the future")

        if signature.expires is not None and now > signature.expires:
            return _Failure(
                Outcome.EXPIRED_SIGNATURE,
                f"signature expired at {from_timestamp(signature.expires)}",
            )

        if key.created > signature.created:
            return _Failure(Outcome.INVALID, "key created after the signature")

        if certificate is None:
            if key.expires is not None and signature.created > key.expires:
                return _Failure(Outcome.EXPIRED_KEY, f"key expired at {from_timestamp(key.expires)}")
            return None

        primary = certificate.primary
        subkey: Optional[Subkey] = None
        binding: Optional[Signature] = None
        if key.fingerprint != primary.fingerprint:
            subkey = certificate.subkey(key)
            if subkey is None:
                return _Failure(Outcome.INVALID, "key does not belong to the certificate")
            if certificate.is_usable_subkey(key):
                binding = self._subkey_binding(primary, subkey, now)
            if binding is None:
                return _Failure(Outcome.INVALID, "subkey has no valid binding signature")
            if binding.key_flags is not None and not binding.key_flags & KeyFlags.SIGN:
                return _Failure(Outcome.INVALID, "subkey is not bound for signing")
            if not self._has_back_signature(primary, subkey, binding, now):
                return _Failure(
                    Outcome.INVALID, "signing subkey has no valid primary key binding"
                )

        self_signature = self._primary_self_signature(certificate, now)
        if (
            subkey is None
            and self_signature is not None
            and self_signature.key_flags is not None
            and not self_signature.key_flags & KeyFlags.SIGN
        ):
            return _Failure(Outcome.INVALID, "primary key is not certified for signing")

        primary_expires = primary.expires
        if (
            primary_expires is None
            and self_signature is not None
            and self_signature.key_expiration is not None
        ):
            primary_expires = primary.created + self_signature.key_expiration
        if primary_expires is not None and signature.created > primary_expires:
            return _Failure(
                Outcome.EXPIRED_KEY,
                f"primary key expired at {from_timestamp(primary_expires)}",
            )

        if subkey is not None and binding is not None and binding.key_expiration is not None:
            subkey_expires = subkey.key.created + binding.key_expiration
            if signature.created > subkey_expires:
                return _Failure(
                    Outcome.EXPIRED_KEY,
                    f"subkey expired at {from_timestamp(subkey_expires)}",
                )

        revocation = self._revocation(
            certificate.signatures,
            SignatureType.KEY_REVOCATION,
            primary,
            primary.hash_material(),
            signature,
            now,
        )
        if revocation is None and subkey is not None:
            revocation = self._revocation(
                subkey.signatures,
                SignatureType.SUBKEY_REVOCATION,
                primary,
                primary.hash_material() + subkey.key.hash_material(),
                signature,
                now,
            )
        if revocation is not None:
            return _Failure(
                Outcome.REVOKED,
                f"key revoked at {from_timestamp(revocation.created)} "
                f"(reason {revocation.revocation_reason})",
            )

        return None

    def _subkey_binding(self, primary: PublicKey, subkey: Subkey, now: int) -> Optional[Signature]:
        """
        Returns the newest binding signature for `subkey` that verifies.
        """
        material = primary.hash_material() + subkey.key.hash_material()
        bindings = [
            sig
            for sig in subkey.signatures
            if sig.type == SignatureType.SUBKEY_BINDING
            and self._verifies(sig, primary, material, now)
        ]
        return max(bindings, key=lambda sig: sig.created, default=None)

    def _has_back_signature(
        self, primary: PublicKey, subkey: Subkey, binding: Signature, now: int
    ) -> bool:
        """
        Whether a signing subkey's binding embeds a primary key binding
        signature made by the subkey itself.

        See: <https://www.rfc-editor.org/rfc/rfc4880#section-11.1>
        """
        material = primary.hash_material() + subkey.key.hash_material()
        return any(
            embedded.type == SignatureType.PRIMARY_KEY_BINDING
            and self._verifies(embedded, subkey.key, material, now)
            for embedded in binding.embedded_signatures
        )

    def _primary_self_signature(
        self, certificate: Certificate, now: int
    ) -> Optional[Signature]:
        """
        Returns the primary key's newest direct-key or certification
        self-signature that verifies, if any. Its key flags and key
        expiration apply to the primary key.
        """
        primary = certificate.primary
        self_signatures: list[Signature] = [
            sig
            for sig in certificate.signatures
            if sig.type == SignatureType.DIRECT_KEY
            and self._verifies(sig, primary, primary.hash_material(), now)
        ]
        for identity in certificate.identities:
            for sig in identity.signatures:
                signature_type = sig.signature_type
                if signature_type is None or not signature_type.is_certification:
                    continue
                material = primary.hash_material() + identity.user_id.hash_material(sig.version)
                if self._verifies(sig, primary, material, now):
                    self_signatures.append(sig)

        return max(self_signatures, key=lambda sig: sig.created, default=None)

    def _revocation(
        self,
        candidates: tuple[Signature, ...],
        type_: SignatureType,
        primary: PublicKey,
        material: bytes,
        signature: Signature,
        now: int,
    ) -> Optional[Signature]:
        """
        Returns a self-revocation among `candidates` that applies to
        `signature`, if any.

        Revocations issued by other keys (designated revokers included) are
        ignored.
        """
        for revocation in candidates:
            if revocation.type != type_:
                continue
            if not self._verifies(revocation, primary, material, now):
                _logger.debug("ignoring revocation that does not verify")
                continue
            if revocation.is_hard_revocation or revocation.created <= signature.created:
                return revocation
        return None


def _issuer_hex(signature: Signature) -> Optional[str]:
    key_id = signature.issuer_key_id
    return None if key_id is None else hexstr(key_id)


MessageInput = Union[bytes, str]


class Verifier:
    """
    The primary API for verification operations.
    """

    def __init__(
        self,
        *,
        signature_verifier: Optional[SignatureVerifier] = None,
        policy: Optional[AggregatePolicy] = None,
    ):
        """
        Create a new `Verifier`.

        `policy` is the default aggregate policy; it can be overridden per
        call. It defaults to `AllOf`.
        """
        self._signature_verifier = signature_verifier or SignatureVerifier()
        self._policy: AggregatePolicy = policy or AllOf()

    def verify_stream(
        self,
        input_: MessageInput,
        armored: bool,
        keyring: Keyring,
        detached_data: Optional[bytes] = None,
        *,
        policy: Optional[AggregatePolicy] = None,
        at: Optional[datetime] = None,
    ) -> VerificationResult:
        """
        Verifies every signature in a signed message or detached signature
        against `keyring`.

        Without `detached_data`, `input_` must be a signed message carrying
        exactly one literal data packet. With it, `input_` holds detached
        signatures over `detached_data`. Armored cleartext-signed messages
        carry their own text and need no `detached_data`.

        Raises `ArmorError` or `PacketError` if `input_` is structurally
        malformed. Per-signature problems are reported in the result.
        """
        policy = policy or self._policy

        hash_names: tuple[str, ...] = ()
        if armored:
            if armor.is_cleartext(input_):
                cleartext = armor.decode_cleartext(input_)
                if detached_data is not None:
                    _logger.debug("ignoring detached data for a cleartext-signed message")
                detached_data = cleartext.text
                hash_names = cleartext.hash_algorithms
                data = cleartext.signature.data
            else:
                data = armor.decode(
                    input_, expected=[armor.ArmorType.MESSAGE, armor.ArmorType.SIGNATURE]
                )
        elif isinstance(input_, str):
            raise TypeError("binary messages must be bytes")
        else:
            data = input_

        packets = PacketStream(data)
        signed_data: bytes
        if detached_data is not None:
            signed_data = detached_data
            signature_packets = [p for p in packets if p.tag == Tag.SIGNATURE]
        else:
            signed_data, signature_packets = _split_message(packets)

        results = [
            self._verify_packet(packet, signed_data, keyring, at, hash_names)
            for packet in signature_packets
        ]

        try:
            policy.verify(results)
        except VerificationError as exc:
            _logger.debug(f"aggregate policy {policy!r} failed: {exc}")
            return VerificationResult(success=False, signatures=results, reason=str(exc))

        return VerificationResult(success=True, signatures=results)

    def _verify_packet(
        self,
        packet: Packet,
        signed_data: bytes,
        keyring: Keyring,
        at: Optional[datetime],
        hash_names: tuple[str, ...] = (),
    ) -> SignatureResult:
        """
        Verifies one signature packet. `hash_names` are the algorithms a
        cleartext-signed message declared in its `Hash:` headers; when any
        are declared, the signature's hash must be among them.
        """
        try:
            signature = Signature.parse(packet.body)
        except UnsupportedVersion as exc:
            return SignatureResult(outcome=Outcome.UNSUPPORTED_ALGORITHM, reason=str(exc))
        except PacketError as exc:
            return SignatureResult(outcome=Outcome.MALFORMED_PACKET, reason=str(exc))

        def _failed(outcome: Outcome, reason: str) -> SignatureResult:
            return SignatureResult(
                outcome=outcome,
                reason=reason,
                key_id=_issuer_hex(signature),
                signature_type=signature.type,
                created=from_timestamp(signature.created),
            )

        if hash_names and not _declares_hash(hash_names, signature.hash_algorithm):
            return _failed(
                Outcome.INVALID,
                f"hash algorithm {signature.hash_algorithm} is not listed in the "
                f"cleartext Hash header ({', '.join(hash_names)})",
            )

        identifier = signature.issuer_fingerprint or signature.issuer_key_id
        if identifier is None:
            return _failed(Outcome.KEY_NOT_FOUND, "signature does not name its issuer")

        try:
            certificate = keyring.lookup(identifier)
            key = certificate.key_for(identifier)
        except AmbiguousKeyId as exc:
            return _failed(Outcome.AMBIGUOUS_KEY, str(exc))
        except (KeyNotFound, ValueError) as exc:
            return _failed(Outcome.KEY_NOT_FOUND, str(exc))

        return self._signature_verifier.verify(
            signature, signed_data, key, certificate=certificate, at=at
        )


def _declares_hash(names: tuple[str, ...], algorithm: int) -> bool:
    hash_algorithm = HashAlgorithm.from_id(algorithm)
    if hash_algorithm is None:
        # Left for the algorithm gate to report.
        return True
    # Header names spell SHA3_256 as "SHA3-256".
    expected = hash_algorithm.name.replace("_", "-")
    return any(name.upper() == expected for name in names)


def _split_message(packets: PacketStream) -> tuple[bytes, list[Packet]]:
    """
    Splits a signed message into its literal data and its signature packets,
    looking inside compressed data.

    One-pass signature packets are only cross-checked against the trailing
    signatures; a mismatch is logged, not fatal.
    """
    literals: list[Packet] = []
    signatures: list[Packet] = []
    one_pass: list[OnePassSignature] = []
    for packet in flatten(packets):
        if packet.tag == Tag.LITERAL_DATA:
            literals.append(packet)
        elif packet.tag == Tag.SIGNATURE:
            signatures.append(packet)
        elif packet.tag == Tag.ONE_PASS_SIGNATURE:
            try:
                one_pass.append(OnePassSignature.parse(packet.body))
            except PacketError as exc:
                _logger.warning(f"ignoring one-pass signature packet: {exc}")
        elif packet.tag != Tag.MARKER:
            _logger.debug(f"ignoring {packet!r} in message")

    if len(literals) != 1:
        raise PacketError(
            f"expected exactly one literal data packet in message, found {len(literals)}"
        )

    if one_pass and len(one_pass) != len(signatures):
        _logger.warning(
            f"message announces {len(one_pass)} one-pass signature(s) "
            f"but carries {len(signatures)} signature packet(s)"
        )

    return LiteralData.parse(literals[0].body).data, signatures

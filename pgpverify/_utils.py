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
Shared utilities.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import NewType, Union

HexStr = NewType("HexStr", str)
"""
A newtype for `str` objects that contain hexadecimal strings (e.g. `ffabcd00ff`).
"""
KeyID = NewType("KeyID", bytes)
"""
A newtype for `bytes` objects that contain a 64-bit OpenPGP key ID.
"""
Fingerprint = NewType("Fingerprint", bytes)
"""
A newtype for `bytes` objects that contain an OpenPGP key fingerprint.
"""

KeyIdentifier = Union[str, bytes]
"""
A key ID or fingerprint, either as raw bytes or as a hexadecimal string.
"""

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")

# v3 (MD5) and v4 (SHA-1) fingerprints, plus v5/v6 (SHA-256).
_IDENTIFIER_LENGTHS = (8, 16, 20, 32)


def normalize_key_identifier(value: KeyIdentifier) -> bytes:
    """
    Normalizes a key ID or fingerprint to its raw byte form.

    Hexadecimal strings may carry a `0x` prefix and embedded whitespace,
    as printed by `gpg --fingerprint`. Raises `ValueError` for anything
    that is not 8, 16, 20 or 32 bytes long once decoded.
    """

    if isinstance(value, str):
        text = "".join(value.split())
        if text[:2].lower() == "0x":
            text = text[2:]
        if not text or len(text) % 2 or not _HEX_RE.match(text):
            raise ValueError(f"malformed key identifier: {value!r}")
        raw = bytes.fromhex(text)
    else:
        raw = bytes(value)

    if len(raw) not in _IDENTIFIER_LENGTHS:
        raise ValueError(
            f"key identifier must be a key ID or fingerprint, got {len(raw)} bytes"
        )
    return raw


def hexstr(value: bytes) -> HexStr:
    """
    Returns the uppercase hexadecimal form of `value`, as GnuPG prints it.
    """
    return HexStr(value.hex().upper())


def canonicalize_text(data: bytes) -> bytes:
    """
    Converts all line endings in `data` to `<CR><LF>`, as required for
    signatures over canonical text.

    See: <https://www.rfc-editor.org/rfc/rfc4880#section-5.2.1>
    """
    return re.sub(rb"\r?\n|\r", b"\r\n", data)


def from_timestamp(value: int) -> datetime:
    """
    Converts an OpenPGP timestamp (seconds since the epoch, UTC) into an
    aware `datetime`.
    """
    return datetime.fromtimestamp(value, tz=timezone.utc)


def to_timestamp(value: datetime) -> int:
    """
    Converts `value` into an OpenPGP timestamp. Naive datetimes are taken
    to be in UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp())


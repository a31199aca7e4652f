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
ASCII armor: the reversible transform between armored text and the binary
OpenPGP packet stream it carries.

See: <https://www.rfc-editor.org/rfc/rfc4880#section-6>
"""

from __future__ import annotations

import base64
import binascii
import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Union

from pgpverify.errors import ArmorError

_logger = logging.getLogger(__name__)

CRC24_INIT = 0xB704CE
CRC24_POLY = 0x1864CFB

ARMOR_LINE_LENGTH = 76
"""
The line width used when encoding. Decoding accepts any width.
"""

_BEGIN_RE = re.compile(r"^-----BEGIN PGP (?P<type>[A-Z0-9 ,/]+)-----\s*$")
_END_RE = re.compile(r"^-----END PGP (?P<type>[A-Z0-9 ,/]+)-----\s*$")
_HEADER_RE = re.compile(r"^(?P<key>[^:\s]+):\s?(?P<value>.*)$")
_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")
_CHECKSUM_RE = re.compile(r"^=[A-Za-z0-9+/]{4}$")

ArmorInput = Union[str, bytes]


def _crc24_table() -> tuple[int, ...]:
    table = []
    for byte in range(256):
        crc = byte << 16
        for _ in range(8):
            crc <<= 1
            if crc & 0x1000000:
                crc ^= CRC24_POLY
        table.append(crc & 0xFFFFFF)
    return tuple(table)


_CRC24_TABLE = _crc24_table()


def crc24(data: bytes) -> int:
    """
    Computes the OpenPGP CRC-24 of `data`.

    See: <https://www.rfc-editor.org/rfc/rfc4880#section-6.1>
    """
    crc = CRC24_INIT
    table = _CRC24_TABLE
    for byte in data:
        crc = (table[((crc >> 16) ^ byte) & 0xFF] ^ (crc << 8)) & 0xFFFFFF
    return crc


class ArmorType(str, enum.Enum):
    """
    The armor types this package reads and writes.
    """

    PUBLIC_KEY_BLOCK = "PUBLIC KEY BLOCK"
    MESSAGE = "MESSAGE"
    SIGNATURE = "SIGNATURE"
    SIGNED_MESSAGE = "SIGNED MESSAGE"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Armored:
    """
    A decoded armor block.
    """

    type: str
    """
    The armor type from the `-----BEGIN PGP <TYPE>-----` line.
    """

    data: bytes
    """
    The binary packet stream carried by the block.
    """

    headers: tuple[tuple[str, str], ...] = field(default=())
    """
    The armor headers (`Version`, `Comment`, ...), in order.
    """


@dataclass(frozen=True)
class Cleartext:
    """
    A decoded cleartext-signed message.

    See: <https://www.rfc-editor.org/rfc/rfc4880#section-7>
    """

    text: bytes
    """
    The signed text in canonical form: dash-escaping removed, trailing
    whitespace stripped from each line, lines joined with CRLF and no
    final line ending.
    """

    hash_algorithms: tuple[str, ...]
    """
    The algorithm names listed in the `Hash:` headers, if any.
    """

    signature: Armored
    """
    The armored signature block following the text.
    """


def _to_lines(text: ArmorInput) -> list[str]:
    if isinstance(text, bytes):
        # surrogateescape keeps non-UTF-8 cleartext bytes intact.
        text = text.decode("utf-8", errors="surrogateescape")
    return [line[:-1] if line.endswith("\r") else line for line in text.split("\n")]


def _find_begin(lines: list[str], start: int = 0) -> tuple[int, str] | None:
    for index in range(start, len(lines)):
        match = _BEGIN_RE.match(lines[index])
        if match:
            return index, match.group("type")
    return None


def _read_headers(lines: list[str], index: int) -> tuple[list[tuple[str, str]], int]:
    """
    Reads armor headers starting at `index`, returning them along with the
    index of the first body line.
    """
    headers: list[tuple[str, str]] = []
    while index < len(lines):
        line = lines[index]
        if not line.strip():
            return headers, index + 1

        match = _HEADER_RE.match(line)
        if match is None:
            # No headers and no separating blank line; some encoders do this.
            return headers, index

        headers.append((match.group("key"), match.group("value")))
        index += 1

    raise ArmorError("unexpected end of input while reading armor headers")


def _decode_block(lines: list[str], begin: int, type_: str) -> tuple[Armored, int]:
    headers, index = _read_headers(lines, begin + 1)

    body: list[str] = []
    checksum: str | None = None
    while True:
        if index >= len(lines):
            raise ArmorError(f"missing -----END PGP {type_}----- line")

        line = lines[index].strip()
        index += 1

        end = _END_RE.match(line)
        if end:
            if end.group("type") != type_:
                raise ArmorError(
                    f"armor footer type {end.group('type')!r} does not match "
                    f"header type {type_!r}"
                )
            break

        if checksum is not None:
            if line:
                raise ArmorError("armor body continues after the checksum line")
            continue

        if line.startswith("="):
            if not _CHECKSUM_RE.match(line):
                raise ArmorError(f"malformed armor checksum line: {line!r}")
            checksum = line
            continue

        body.append(line)

    encoded = "".join("".join(body).split())
    if len(encoded) % 4 or not _BASE64_RE.match(encoded):
        raise ArmorError("armor body contains characters outside the base64 alphabet")

    try:
        data = base64.b64decode(encoded, validate=True)
    except binascii.Error as exc:
        raise ArmorError(f"invalid base64 in armor body: {exc}") from exc

    # Stray bits in the final quantum are rejected.
    if base64.b64encode(data).decode() != encoded:
        raise ArmorError("armor body is not canonically base64-encoded")

    if checksum is None:
        _logger.debug("armor block has no checksum line; accepting without CRC")
    else:
        expected = int.from_bytes(base64.b64decode(checksum[1:]), "big")
        actual = crc24(data)
        if expected != actual:
            raise ArmorError(
                f"armor checksum mismatch: expected {expected:06X}, computed {actual:06X}"
            )

    return Armored(type=type_, data=data, headers=tuple(headers)), index


def iter_armor(
    text: ArmorInput, *, expected: Iterable[str] | None = None
) -> Iterator[Armored]:
    """
    Lazily decodes every armor block in `text`, in order. Text between
    blocks is ignored.

    `expected`, if supplied, restricts the acceptable armor types.

    Raises `ArmorError` if no block is present, a block is malformed, or
    a CRC-24 checksum does not match the decoded body.
    """
    lines = _to_lines(text)
    allowed = None if expected is None else {str(t) for t in expected}

    found = _find_begin(lines)
    if found is None:
        raise ArmorError("no -----BEGIN PGP ...----- armor header found")

    while found is not None:
        begin, type_ = found
        if type_ == ArmorType.SIGNED_MESSAGE:
            raise ArmorError("input is a cleartext-signed message, not an armor block")

        if allowed is not None and type_ not in allowed:
            raise ArmorError(
                f"unexpected armor type {type_!r} (expected one of {sorted(allowed)})"
            )

        armored, index = _decode_block(lines, begin, type_)
        _logger.debug(f"decoded {type_} armor block ({len(armored.data)} bytes)")
        yield armored

        found = _find_begin(lines, index)


def decode_armor(
    text: ArmorInput, *, expected: Iterable[str] | None = None
) -> Armored:
    """
    Decodes the first armor block in `text`. Anything after it is ignored;
    see `iter_armor` for inputs carrying several blocks.

    Raises `ArmorError` under the same conditions as `iter_armor`.
    """
    return next(iter_armor(text, expected=expected))


def decode(text: ArmorInput, *, expected: Iterable[str] | None = None) -> bytes:
    """
    Decodes the first armor block in `text`, returning the binary data it
    carries.

    See `decode_armor`.
    """
    return decode_armor(text, expected=expected).data


def encode(
    data: bytes,
    type_: str = ArmorType.MESSAGE,
    headers: Iterable[tuple[str, str]] | None = None,
) -> str:
    """
    Armors `data` as a block of type `type_`.

    This is the exact inverse of `decode`: `decode(encode(b, t)) == b`.
    """
    lines = [f"-----BEGIN PGP {type_}-----"]
    for key, value in headers or ():
        lines.append(f"{key}: {value}")
    lines.append("")

    encoded = base64.b64encode(data).decode()
    lines.extend(
        encoded[i : i + ARMOR_LINE_LENGTH]
        for i in range(0, len(encoded), ARMOR_LINE_LENGTH)
    )
    lines.append("=" + base64.b64encode(crc24(data).to_bytes(3, "big")).decode())
    lines.append(f"-----END PGP {type_}-----")

    return "\n".join(lines) + "\n"


def is_cleartext(text: ArmorInput) -> bool:
    """
    Returns `True` if the first armor line in `text` opens a cleartext-signed
    message.
    """
    found = _find_begin(_to_lines(text))
    return found is not None and found[1] == ArmorType.SIGNED_MESSAGE


def decode_cleartext(text: ArmorInput) -> Cleartext:
    """
    Decodes a cleartext-signed message into its canonical text and the
    armored signature that follows it.

    Raises `ArmorError` if the framing is malformed.
    """
    lines = _to_lines(text)
    found = _find_begin(lines)
    if found is None or found[1] != ArmorType.SIGNED_MESSAGE:
        raise ArmorError("no -----BEGIN PGP SIGNED MESSAGE----- header found")

    begin, _ = found
    headers, index = _read_headers(lines, begin + 1)

    hash_algorithms: list[str] = []
    for key, value in headers:
        if key != "Hash":
            raise ArmorError(f"unexpected cleartext header: {key!r}")
        hash_algorithms.extend(name.strip() for name in value.split(","))

    text_lines: list[str] = []
    while True:
        if index >= len(lines):
            raise ArmorError("cleartext message is not followed by a signature block")

        line = lines[index]
        match = _BEGIN_RE.match(line)
        if match:
            if match.group("type") != ArmorType.SIGNATURE:
                raise ArmorError(
                    f"expected a SIGNATURE block after the cleartext, got {match.group('type')!r}"
                )
            break

        if line.startswith("- "):
            line = line[2:]
        text_lines.append(line.rstrip(" \t"))
        index += 1

    signature, _ = _decode_block(lines, index, ArmorType.SIGNATURE.value)
    canonical = "\r\n".join(text_lines).encode("utf-8", errors="surrogateescape")

    return Cleartext(
        text=canonical,
        hash_algorithms=tuple(hash_algorithms),
        signature=signature,
    )

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
The OpenPGP packet decoder.

`PacketStream` turns a binary buffer into a lazy, restartable sequence of
`Packet`s. Packet bodies are returned as opaque bytes; the readers at the
bottom of this module (and in `pgpverify.models`) interpret them.

See: <https://www.rfc-editor.org/rfc/rfc4880#section-4>
"""

from __future__ import annotations

import bz2
import enum
import logging
import zlib
from dataclasses import dataclass
from typing import Iterable, Iterator

from pgpverify.errors import PacketError

_logger = logging.getLogger(__name__)

MAX_PARTIAL_CHUNKS: int = 8192
"""
The maximum number of partial-body chunks accepted for a single packet.
"""

MIN_FIRST_PARTIAL_LENGTH: int = 512
"""
The first chunk of a partial-body packet must be at least this long.
"""

MAX_COMPRESSION_DEPTH: int = 8
"""
The maximum nesting of compressed-data packets.
"""

MAX_DECOMPRESSED_SIZE: int = 256 * 1024 * 1024
"""
The maximum size of a single decompressed packet body.
"""


class Tag(enum.IntEnum):
    """
    Packet tags recognized by the decoder. Every other tag decodes as
    `Tag.UNKNOWN`, with the wire value kept in `Packet.raw_tag`.
    """

    UNKNOWN = -1
    SIGNATURE = 2
    ONE_PASS_SIGNATURE = 4
    SECRET_KEY = 5
    PUBLIC_KEY = 6
    SECRET_SUBKEY = 7
    COMPRESSED_DATA = 8
    MARKER = 10
    LITERAL_DATA = 11
    TRUST = 12
    USER_ID = 13
    PUBLIC_SUBKEY = 14
    USER_ATTRIBUTE = 17

    @classmethod
    def from_wire(cls, value: int) -> Tag:
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


# Only data-carrying packets may use partial body lengths.
_PARTIAL_TAGS = frozenset({8, 9, 11, 18, 20})


@dataclass(frozen=True)
class Packet:
    """
    A single decoded packet.
    """

    tag: Tag
    """
    The packet's tag, or `Tag.UNKNOWN`.
    """

    raw_tag: int
    """
    The tag as encoded on the wire.
    """

    body: bytes
    """
    The packet body, with any partial-body chunks already joined.
    """

    new_format: bool
    """
    Whether the header used the new (RFC 4880 4.2.2) length format.
    """

    offset: int
    """
    The offset of the packet header in its enclosing buffer.
    """

    @property
    def length(self) -> int:
        """
        The length of the (logical) packet body.
        """
        return len(self.body)

    def __repr__(self) -> str:
        return f"<Packet {self.tag.name} (tag {self.raw_tag}), {self.length} bytes @ {self.offset}>"


class PacketStream:
    """
    A lazy, restartable sequence of packets decoded from a binary buffer.

    Iterating raises `PacketError` at the first malformed header; packets
    before it have already been yielded.
    """

    def __init__(self, data: bytes, *, max_partial_chunks: int = MAX_PARTIAL_CHUNKS):
        """
        Create a new `PacketStream` over `data`.
        """
        self._data = bytes(data)
        self._max_partial_chunks = max_partial_chunks

    def __iter__(self) -> Iterator[Packet]:
        offset = 0
        while offset < len(self._data):
            packet, offset = self._read_packet(offset)
            yield packet

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}: length {len(self._data)}>"

    def _need(self, offset: int, count: int, what: str) -> None:
        if offset + count > len(self._data):
            raise PacketError(
                f"truncated {what} at offset {offset}: need {count} bytes, "
                f"{len(self._data) - offset} available"
            )

    def _read_packet(self, offset: int) -> tuple[Packet, int]:
        data = self._data
        ctb = data[offset]
        if not ctb & 0x80:
            raise PacketError(f"invalid packet header octet 0x{ctb:02x} at offset {offset}")

        new_format = bool(ctb & 0x40)
        raw_tag = ctb & 0x3F if new_format else (ctb >> 2) & 0x0F
        if raw_tag == 0:
            raise PacketError(f"reserved packet tag 0 at offset {offset}")

        pos = offset + 1
        if new_format:
            body, pos = self._read_new_format_body(pos, raw_tag)
        else:
            body, pos = self._read_old_format_body(pos, ctb & 0x03)

        packet = Packet(
            tag=Tag.from_wire(raw_tag),
            raw_tag=raw_tag,
            body=body,
            new_format=new_format,
            offset=offset,
        )
        _logger.debug(f"decoded {packet!r}")
        return packet, pos

    def _read_old_format_body(self, pos: int, length_type: int) -> tuple[bytes, int]:
        data = self._data
        if length_type == 3:
            # Indeterminate length: the packet runs to the end of the buffer.
            return data[pos:], len(data)

        size = (1, 2, 4)[length_type]
        self._need(pos, size, "packet length")
        length = int.from_bytes(data[pos : pos + size], "big")
        pos += size

        self._need(pos, length, "packet body")
        return data[pos : pos + length], pos + length

    def _read_new_format_length(self, pos: int) -> tuple[int, bool, int]:
        """
        Reads a new-format length, returning `(length, partial, new_pos)`.
        """
        data = self._data
        self._need(pos, 1, "packet length")
        first = data[pos]
        if first < 192:
            return first, False, pos + 1
        if first < 224:
            self._need(pos, 2, "packet length")
            return ((first - 192) << 8) + data[pos + 1] + 192, False, pos + 2
        if first == 255:
            self._need(pos, 5, "packet length")
            return int.from_bytes(data[pos + 1 : pos + 5], "big"), False, pos + 5
        return 1 << (first & 0x1F), True, pos + 1

    def _read_new_format_body(self, pos: int, raw_tag: int) -> tuple[bytes, int]:
        data = self._data
        length, partial, pos = self._read_new_format_length(pos)
        if not partial:
            self._need(pos, length, "packet body")
            return data[pos : pos + length], pos + length

        if raw_tag not in _PARTIAL_TAGS:
            raise PacketError(f"partial body length not permitted for packet tag {raw_tag}")
        if length < MIN_FIRST_PARTIAL_LENGTH:
            raise PacketError(
                f"first partial body chunk is {length} bytes "
                f"(minimum {MIN_FIRST_PARTIAL_LENGTH})"
            )

        chunks: list[bytes] = []
        while partial:
            if len(chunks) >= self._max_partial_chunks:
                raise PacketError(
                    f"too many partial body chunks (limit {self._max_partial_chunks})"
                )
            if pos + length > len(data):
                raise PacketError("partial body chunks do not terminate before end of input")
            chunks.append(data[pos : pos + length])
            pos += length

            if pos >= len(data):
                raise PacketError("partial body chunks do not terminate before end of input")
            length, partial, pos = self._read_new_format_length(pos)

        # The final chunk carries a regular (non-partial) length.
        self._need(pos, length, "final partial body chunk")
        chunks.append(data[pos : pos + length])
        return b"".join(chunks), pos + length


class BodyReader:
    """
    A bounds-checked cursor over a packet body.

    Every read raises `PacketError` rather than returning short data.
    """

    def __init__(self, body: bytes, what: str = "packet"):
        self._body = body
        self._pos = 0
        self._what = what

    @property
    def remaining(self) -> int:
        return len(self._body) - self._pos

    @property
    def position(self) -> int:
        return self._pos

    def read(self, count: int) -> bytes:
        if count < 0 or count > self.remaining:
            raise PacketError(
                f"truncated {self._what}: need {count} bytes at offset {self._pos}, "
                f"{self.remaining} available"
            )
        chunk = self._body[self._pos : self._pos + count]
        self._pos += count
        return chunk

    def rest(self) -> bytes:
        return self.read(self.remaining)

    def u8(self) -> int:
        return self.read(1)[0]

    def u16(self) -> int:
        return int.from_bytes(self.read(2), "big")

    def u32(self) -> int:
        return int.from_bytes(self.read(4), "big")

    def mpi(self) -> bytes:
        """
        Reads a multiprecision integer, returning its magnitude bytes.

        See: <https://www.rfc-editor.org/rfc/rfc4880#section-3.2>
        """
        bits = self.u16()
        return self.read((bits + 7) // 8)

    def mpi_int(self) -> int:
        return int.from_bytes(self.mpi(), "big")


@dataclass(frozen=True)
class LiteralData:
    """
    The contents of a literal data packet.

    See: <https://www.rfc-editor.org/rfc/rfc4880#section-5.9>
    """

    format: str
    filename: bytes
    date: int
    data: bytes

    @property
    def is_text(self) -> bool:
        return self.format in ("t", "u", "m")

    @classmethod
    def parse(cls, body: bytes) -> LiteralData:
        reader = BodyReader(body, "literal data packet")
        format_ = chr(reader.u8())
        filename = reader.read(reader.u8())
        date = reader.u32()
        return cls(format=format_, filename=filename, date=date, data=reader.rest())


@dataclass(frozen=True)
class OnePassSignature:
    """
    The contents of a (version 3) one-pass signature packet.

    These only announce a trailing signature packet; verification never
    depends on them.
    """

    signature_type: int
    hash_algorithm: int
    public_key_algorithm: int
    key_id: bytes
    nested: bool

    @classmethod
    def parse(cls, body: bytes) -> OnePassSignature:
        reader = BodyReader(body, "one-pass signature packet")
        version = reader.u8()
        if version != 3:
            raise PacketError(f"unsupported one-pass signature version {version}")
        signature_type = reader.u8()
        hash_algorithm = reader.u8()
        public_key_algorithm = reader.u8()
        key_id = reader.read(8)
        # A zero "last" flag means another one-pass signature follows.
        nested = reader.u8() == 0
        return cls(
            signature_type=signature_type,
            hash_algorithm=hash_algorithm,
            public_key_algorithm=public_key_algorithm,
            key_id=key_id,
            nested=nested,
        )


class CompressionAlgorithm(enum.IntEnum):
    UNCOMPRESSED = 0
    ZIP = 1
    ZLIB = 2
    BZIP2 = 3


def decompress(body: bytes, *, max_size: int = MAX_DECOMPRESSED_SIZE) -> bytes:
    """
    Decompresses the body of a compressed data packet.

    Raises `PacketError` on unknown algorithms, corrupt or truncated streams,
    and output larger than `max_size`.
    """
    if not body:
        raise PacketError("empty compressed data packet")

    try:
        algorithm = CompressionAlgorithm(body[0])
    except ValueError:
        raise PacketError(f"unsupported compression algorithm {body[0]}")

    payload = body[1:]
    if algorithm == CompressionAlgorithm.UNCOMPRESSED:
        return payload

    if algorithm == CompressionAlgorithm.BZIP2:
        decompressor = bz2.BZ2Decompressor()
    else:
        # ZIP is raw deflate; ZLIB carries the RFC 1950 header.
        wbits = -15 if algorithm == CompressionAlgorithm.ZIP else 15
        decompressor = zlib.decompressobj(wbits)

    try:
        output = decompressor.decompress(payload, max_size + 1)
    except (zlib.error, OSError, ValueError) as exc:
        raise PacketError(f"corrupt {algorithm.name} compressed data: {exc}") from exc

    if len(output) > max_size:
        raise PacketError(f"compressed data expands beyond {max_size} bytes")
    if not decompressor.eof:
        raise PacketError(f"truncated {algorithm.name} compressed data")

    _logger.debug(f"decompressed {algorithm.name}: {len(payload)} -> {len(output)} bytes")
    return output


def flatten(
    packets: Iterable[Packet],
    *,
    max_depth: int = MAX_COMPRESSION_DEPTH,
    _depth: int = 0,
) -> Iterator[Packet]:
    """
    Yields `packets` with every compressed data packet replaced by the
    packets it contains.

    Raises `PacketError` if compressed packets nest deeper than `max_depth`.
    """
    for packet in packets:
        if packet.tag != Tag.COMPRESSED_DATA:
            yield packet
            continue

        if _depth >= max_depth:
            raise PacketError(f"compressed data nested deeper than {max_depth} levels")
        yield from flatten(
            PacketStream(decompress(packet.body)),
            max_depth=max_depth,
            _depth=_depth + 1,
        )

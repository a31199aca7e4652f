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

import bz2
import zlib

import pytest

from pgpverify import packets
from pgpverify.errors import PacketError
from pgpverify.packets import (
    BodyReader,
    CompressionAlgorithm,
    LiteralData,
    OnePassSignature,
    PacketStream,
    Tag,
)


def _partial(length_exponent: int) -> bytes:
    return bytes([224 + length_exponent])


class TestPacketStream:
    def test_keyring(self, asset):
        stream = PacketStream(asset("keyring.gpg").read_bytes())
        first = list(stream)[:3]

        assert [p.tag for p in first] == [Tag.PUBLIC_KEY, Tag.USER_ID, Tag.SIGNATURE]
        assert [p.offset for p in first] == [0, 53, 80]
        assert [p.length for p in first] == [51, 25, 144]
        assert first[1].body == b"Alice <alice@example.org>"
        assert not any(p.new_format for p in first)

    def test_restartable(self, asset):
        stream = PacketStream(asset("keyring.gpg").read_bytes())
        assert list(stream) == list(stream)

    def test_lazy(self, wire):
        stream = PacketStream(wire.packet(13, b"ok") + b"\x00garbage")
        iterator = iter(stream)

        assert next(iterator).body == b"ok"
        with pytest.raises(PacketError, match="invalid packet header octet"):
            next(iterator)

    @pytest.mark.parametrize(
        "encoded",
        [
            b"\xb4\x03abc",
            b"\xb5\x00\x03abc",
            b"\xb6\x00\x00\x00\x03abc",
            b"\xb7abc",
        ],
    )
    def test_old_format_lengths(self, encoded):
        (packet,) = PacketStream(encoded)

        assert packet.tag == Tag.USER_ID
        assert packet.body == b"abc"
        assert not packet.new_format

    @pytest.mark.parametrize("length", [0, 191, 192, 8383, 8384, 70000])
    def test_new_format_lengths(self, wire, length):
        body = b"\x5a" * length
        (packet,) = PacketStream(wire.packet(13, body))

        assert packet.new_format
        assert packet.body == body

    def test_indeterminate_length_runs_to_end(self):
        (packet,) = PacketStream(b"\xa3\x00" + b"\xb4\x01x")

        assert packet.tag == Tag.COMPRESSED_DATA
        assert packet.body == b"\x00\xb4\x01x"

    def test_partial_body(self):
        first, second = b"a" * 512, b"b" * 1024
        encoded = (
            b"\xcb" + _partial(9) + first + _partial(10) + second + b"\x05" + b"tail!"
        )
        (packet,) = PacketStream(encoded)

        assert packet.tag == Tag.LITERAL_DATA
        assert packet.body == first + second + b"tail!"

    def test_partial_body_not_permitted(self):
        encoded = b"\xc2" + _partial(9) + b"a" * 512 + b"\x00"

        with pytest.raises(PacketError, match="not permitted for packet tag 2"):
            list(PacketStream(encoded))

    def test_partial_body_first_chunk_too_short(self):
        encoded = b"\xcb" + _partial(0) + b"a" + b"\x00"

        with pytest.raises(PacketError, match="first partial body chunk is 1 bytes"):
            list(PacketStream(encoded))

    def test_partial_body_unterminated(self):
        encoded = b"\xcb" + _partial(9) + b"a" * 512

        with pytest.raises(PacketError, match="do not terminate"):
            list(PacketStream(encoded))

    def test_partial_body_chunk_cap(self):
        encoded = b"\xcb" + (_partial(9) + b"a" * 512) * 5 + b"\x00"

        with pytest.raises(PacketError, match="too many partial body chunks"):
            list(PacketStream(encoded, max_partial_chunks=4))

        (packet,) = PacketStream(encoded, max_partial_chunks=5)
        assert packet.length == 5 * 512

    @pytest.mark.slow
    def test_partial_body_default_cap(self):
        chunks = _partial(9) + b"a" * 512 + (_partial(0) + b"b") * packets.MAX_PARTIAL_CHUNKS
        encoded = b"\xcb" + chunks + b"\x00"

        with pytest.raises(PacketError, match="too many partial body chunks"):
            list(PacketStream(encoded))

    def test_truncated_body(self):
        with pytest.raises(PacketError, match="truncated packet body"):
            list(PacketStream(b"\xcd\x0aabc"))

    def test_truncated_length(self):
        with pytest.raises(PacketError, match="truncated packet length"):
            list(PacketStream(b"\xcd\xff\x00"))

    @pytest.mark.parametrize("encoded", [b"\xc0\x00", b"\x80\x00"])
    def test_reserved_tag(self, encoded):
        with pytest.raises(PacketError, match="reserved packet tag 0"):
            list(PacketStream(encoded))

    def test_unknown_tag(self, wire):
        (packet,) = PacketStream(wire.packet(60, b"opaque"))

        assert packet.tag == Tag.UNKNOWN
        assert packet.raw_tag == 60
        assert packet.body == b"opaque"


class TestBodyReader:
    def test_fields(self, wire):
        reader = BodyReader(b"\x01\x00\x02\x00\x00\x00\x03" + wire.mpi(0x1FF) + b"rest")

        assert reader.u8() == 1
        assert reader.u16() == 2
        assert reader.u32() == 3
        assert reader.mpi_int() == 0x1FF
        assert reader.rest() == b"rest"
        assert reader.remaining == 0

    def test_truncated(self):
        reader = BodyReader(b"\x00\x40abc", "test packet")

        with pytest.raises(PacketError, match="truncated test packet"):
            reader.mpi()


class TestLiteralData:
    def test_parse(self, asset, message):
        stream = PacketStream(asset("message-uncompressed.txt.gpg").read_bytes())
        (literal,) = [p for p in stream if p.tag == Tag.LITERAL_DATA]
        data = LiteralData.parse(literal.body)

        assert data.format == "b"
        assert not data.is_text
        assert data.filename == b"message.txt"
        assert data.date == 1717200000
        assert data.data == message

    def test_truncated(self):
        with pytest.raises(PacketError):
            LiteralData.parse(b"b\x05abc")


class TestOnePassSignature:
    def test_parse(self, asset):
        (first, *_) = PacketStream(asset("message-uncompressed.txt.gpg").read_bytes())
        ops = OnePassSignature.parse(first.body)

        assert first.tag == Tag.ONE_PASS_SIGNATURE
        assert ops.signature_type == 0x00
        assert ops.hash_algorithm == 8
        assert ops.public_key_algorithm == 22
        assert ops.key_id == bytes.fromhex("8970146ED3E33861")
        assert not ops.nested

    def test_bad_version(self):
        with pytest.raises(PacketError, match="one-pass signature version 6"):
            OnePassSignature.parse(b"\x06" + b"\x00" * 12)


class TestDecompress:
    DATA = b"The quick brown fox\njumps over the lazy dog.\n" * 20

    def _raw_deflate(self, data):
        compressor = zlib.compressobj(wbits=-15)
        return compressor.compress(data) + compressor.flush()

    @pytest.mark.parametrize(
        ("algorithm", "compress"),
        [
            (CompressionAlgorithm.UNCOMPRESSED, lambda data: data),
            (CompressionAlgorithm.ZLIB, zlib.compress),
            (CompressionAlgorithm.BZIP2, bz2.compress),
        ],
    )
    def test_algorithms(self, algorithm, compress):
        body = bytes([algorithm]) + compress(self.DATA)
        assert packets.decompress(body) == self.DATA

    def test_zip(self):
        body = bytes([CompressionAlgorithm.ZIP]) + self._raw_deflate(self.DATA)
        assert packets.decompress(body) == self.DATA

    def test_unknown_algorithm(self):
        with pytest.raises(PacketError, match="unsupported compression algorithm 110"):
            packets.decompress(b"\x6ewhatever")

    def test_empty(self):
        with pytest.raises(PacketError, match="empty compressed data packet"):
            packets.decompress(b"")

    def test_corrupt(self):
        with pytest.raises(PacketError, match="corrupt ZLIB compressed data"):
            packets.decompress(b"\x02not zlib at all")

    def test_truncated(self):
        body = bytes([CompressionAlgorithm.ZLIB]) + zlib.compress(self.DATA)
        with pytest.raises(PacketError, match="truncated ZLIB compressed data"):
            packets.decompress(body[:-8])

    def test_size_cap(self):
        body = bytes([CompressionAlgorithm.ZLIB]) + zlib.compress(b"\x00" * 10000)
        with pytest.raises(PacketError, match="expands beyond 1000 bytes"):
            packets.decompress(body, max_size=1000)


class TestFlatten:
    def test_compressed_message(self, asset):
        stream = PacketStream(asset("message.txt.gpg").read_bytes())

        assert [p.tag for p in stream] == [Tag.COMPRESSED_DATA]
        assert [p.tag for p in packets.flatten(stream)] == [
            Tag.ONE_PASS_SIGNATURE,
            Tag.LITERAL_DATA,
            Tag.SIGNATURE,
        ]

    def _nested(self, wire, depth):
        encoded = wire.packet(11, b"b\x00\x00\x00\x00\x00data")
        for _ in range(depth):
            encoded = wire.packet(8, b"\x00" + encoded)
        return PacketStream(encoded)

    def test_depth_limit(self, wire):
        depth = packets.MAX_COMPRESSION_DEPTH
        (literal,) = packets.flatten(self._nested(wire, depth))
        assert literal.tag == Tag.LITERAL_DATA

        with pytest.raises(PacketError, match="nested deeper than"):
            list(packets.flatten(self._nested(wire, depth + 1)))

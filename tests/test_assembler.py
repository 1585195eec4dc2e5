"""
Frame Assembler Tests
=====================

Exact-length reassembly over fragmented reads.
"""

import asyncio

import pytest

from yuvstream.errors import IdleTimeout, StreamClosed
from yuvstream.stream.assembler import FrameAssembler


def cut(data: bytes, sizes):
    """Split data into chunks of the given sizes, remainder last."""
    chunks, offset = [], 0
    for size in sizes:
        chunks.append(data[offset : offset + size])
        offset += size
    if offset < len(data):
        chunks.append(data[offset:])
    return chunks


class TestReadExactly:
    """Byte-exact collection."""

    @pytest.mark.parametrize("sizes", [[32], [1] * 32, [7, 1, 13, 11], [31, 1], [1, 31]])
    def test_any_fragmentation(self, chunked_reader, rng, sizes):
        """However the bytes are split, the result is identical."""
        data = rng.integers(0, 256, 32, dtype="uint8").tobytes()
        assembler = FrameAssembler(chunked_reader(cut(data, sizes)))

        assert asyncio.run(assembler.read_exactly(32)) == data
        assert assembler.bytes_received == 32

    def test_never_reads_past_request(self, chunked_reader):
        """Reads ask only for what is still missing."""
        reader = chunked_reader([b"a" * 10, b"b" * 10, b"c" * 10])
        assembler = FrameAssembler(reader)

        asyncio.run(assembler.read_exactly(25))

        assert reader.requests == [25, 15, 5]
        assert assembler.reads == 3

    def test_consecutive_frames_across_boundaries(self, chunked_reader):
        """One chunk may end one frame and start the next."""
        reader = chunked_reader([b"AAAAB", b"BBBC", b"CCC"])
        assembler = FrameAssembler(reader)

        async def read_three():
            return [await assembler.read_exactly(4) for _ in range(3)]

        assert asyncio.run(read_three()) == [b"AAAA", b"BBBB", b"CCCC"]

    def test_zero_size(self, chunked_reader):
        reader = chunked_reader([])
        assert asyncio.run(FrameAssembler(reader).read_exactly(0)) == b""
        assert reader.requests == []

    def test_negative_size(self, chunked_reader):
        with pytest.raises(ValueError):
            asyncio.run(FrameAssembler(chunked_reader([])).read_exactly(-1))


class TestPrefix:
    """Bytes carried over from the header read."""

    def test_prefix_comes_first(self, chunked_reader):
        reader = chunked_reader([b"cdef"])
        assembler = FrameAssembler(reader, prefix=b"ab")

        assert asyncio.run(assembler.read_exactly(6)) == b"abcdef"
        assert reader.requests == [4]
        assert assembler.bytes_received == 6

    def test_prefix_longer_than_one_frame(self, chunked_reader):
        """Left-over prefix feeds the following frame before the wire."""
        reader = chunked_reader([b"\x05\x06"])
        assembler = FrameAssembler(reader, prefix=b"\x01\x02\x03\x04")

        async def read_two():
            return await assembler.read_exactly(3), await assembler.read_exactly(3)

        assert asyncio.run(read_two()) == (b"\x01\x02\x03", b"\x04\x05\x06")
        assert reader.requests == [2]


class TestEndOfStream:
    """Disconnects and stalls."""

    def test_eof_mid_frame(self, chunked_reader):
        """A partial frame is never returned."""
        assembler = FrameAssembler(chunked_reader([b"\x00" * 20]))
        with pytest.raises(StreamClosed):
            asyncio.run(assembler.read_exactly(32))

    def test_eof_before_frame(self, chunked_reader):
        with pytest.raises(StreamClosed):
            asyncio.run(FrameAssembler(chunked_reader([])).read_exactly(4))

    def test_transport_error(self, chunked_reader):
        reader = chunked_reader([b"\x00" * 4], error=ConnectionResetError("reset"))
        with pytest.raises(StreamClosed):
            asyncio.run(FrameAssembler(reader).read_exactly(8))

    def test_idle_timeout(self, stalled_reader):
        """A stalled read ends the stream with IdleTimeout."""
        assembler = FrameAssembler(stalled_reader, idle_timeout=0.05)
        with pytest.raises(IdleTimeout):
            asyncio.run(assembler.read_exactly(1))

    def test_idle_timeout_is_stream_closed(self):
        assert issubclass(IdleTimeout, StreamClosed)


class TestReadFrame:
    """Frames built from descriptor sizes."""

    def test_frame_planes(self, chunked_reader, descriptor_4x4, planes):
        payload = planes(range(16), [128] * 8, [129] * 8)
        assembler = FrameAssembler(chunked_reader(cut(payload, [5, 5, 5])))

        frame = asyncio.run(assembler.read_frame(descriptor_4x4, sequence=7))

        assert frame.sequence == 7
        assert frame.payload == payload
        assert frame.y_plane.tolist() == list(range(16))
        assert set(frame.u_plane.tolist()) == {128}
        assert set(frame.v_plane.tolist()) == {129}

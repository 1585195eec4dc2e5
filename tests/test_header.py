"""
Header Parser Tests
===================

Parsing, validation and the single-read header contract.
"""

import asyncio

import pytest

from yuvstream.errors import IdleTimeout, InvalidGeometry, InvalidHeader
from yuvstream.stream.header import (
    DEFAULT_MAX_PIXELS,
    HEADER_MAX_BYTES,
    parse_header,
    read_header,
    split_header,
)


class TestParseHeader:
    """Text -> ImageDescriptor."""

    def test_fields_in_order(self, header_4x4):
        """Integers map to descriptor fields in header order."""
        d = parse_header(header_4x4)

        assert (d.width, d.height) == (4, 4)
        assert (d.y_size, d.uv_size) == (16, 8)
        assert (d.y_row_stride, d.y_pixel_stride) == (4, 1)
        assert (d.uv_row_stride, d.uv_pixel_stride) == (4, 2)
        assert d.frame_byte_size == 32

    @pytest.mark.parametrize(
        "raw",
        [
            b"4 4 16 8 4 1 4 2",
            b"  4\t4 16  8 4 1 4 2  ",
            b"4\r4\t16\x0b8 4 1 4 2\r",
            b"+4 4 16 8 4 1 4 2",
        ],
    )
    def test_any_whitespace_separates(self, raw):
        """Spaces, tabs and carriage returns all separate fields."""
        assert parse_header(raw).frame_byte_size == 32

    @pytest.mark.parametrize("raw", [b"4 4 abc 8 4 1 4 2", b"4 abc 16 8 4 1 4 2", b"4 4 16 8 4 1 4 0x2"])
    def test_non_numeric_token(self, raw):
        with pytest.raises(InvalidHeader):
            parse_header(raw)

    @pytest.mark.parametrize("raw", [b"4 4 16 8 4 1 4", b"4 4 16 8 4 1 4 2 9", b"", b"   "])
    def test_wrong_token_count(self, raw):
        with pytest.raises(InvalidHeader):
            parse_header(raw)

    def test_decimal_point_rejected(self):
        with pytest.raises(InvalidHeader):
            parse_header(b"4.0 4 16 8 4 1 4 2")

    def test_non_ascii_rejected(self):
        with pytest.raises(InvalidHeader):
            parse_header("4 4 16 8 4 1 4 ²".encode("utf-8"))

    @pytest.mark.parametrize(
        "raw",
        [
            b"0 4 16 8 4 1 4 2",     # zero width
            b"4 0 16 8 4 1 4 2",     # zero height
            b"-4 4 16 8 4 1 4 2",    # negative width
            b"4 4 -16 8 4 1 4 2",    # negative plane size
            b"4 4 16 8 4 -1 4 2",    # negative stride
            b"4 4 16 8 4 1 4 0",     # zero stride
        ],
    )
    def test_unusable_values(self, raw):
        with pytest.raises(InvalidGeometry):
            parse_header(raw)

    def test_luma_plane_too_small(self):
        """Last luma read would fall past the Y plane."""
        with pytest.raises(InvalidGeometry):
            parse_header(b"4 4 15 8 4 1 4 2")

    def test_chroma_region_too_small(self):
        """Last chroma base would fall past the region."""
        with pytest.raises(InvalidGeometry):
            parse_header(b"4 4 16 6 4 1 4 2")

    def test_android_semi_planar_sizes(self):
        """YUV_420_888 chroma buffers of w*h/2 - 1 bytes are accepted."""
        d = parse_header(b"640 480 307200 153599 640 1 640 2")

        assert d.uv_size == 153599
        assert d.frame_byte_size == 307200 + 2 * 153599

    def test_small_frame_with_huge_image_rejected(self):
        """A tiny declared frame cannot ask for a huge output image."""
        raw = b"30000 30000 60000 30000 1 1 1 1"
        with pytest.raises(InvalidGeometry):
            parse_header(raw, max_frame_bytes=64 * 1024 * 1024)
        with pytest.raises(InvalidGeometry):
            parse_header(raw, max_frame_bytes=64 * 1024 * 1024, max_pixels=None)

    def test_pixel_limit(self, header_4x4):
        """Images above the configured pixel count are refused."""
        assert parse_header(header_4x4, max_pixels=16).pixel_count == 16
        with pytest.raises(InvalidGeometry):
            parse_header(header_4x4, max_pixels=15)

    def test_default_pixel_limit(self):
        """4096 x 4096 is the largest image accepted without a limit argument."""
        largest = parse_header(b"4096 4096 16777216 8388608 4096 1 4096 2")
        assert largest.pixel_count == DEFAULT_MAX_PIXELS

        with pytest.raises(InvalidGeometry):
            parse_header(b"4097 4096 16781312 8392704 4097 1 4098 2")

    def test_frame_size_limit(self, header_4x4):
        """Geometries above the configured frame limit are refused."""
        assert parse_header(header_4x4, max_frame_bytes=32).frame_byte_size == 32
        with pytest.raises(InvalidGeometry):
            parse_header(header_4x4, max_frame_bytes=31)

    def test_geometry_error_is_not_header_error(self):
        """The two failure kinds stay distinguishable."""
        assert not issubclass(InvalidGeometry, InvalidHeader)
        assert not issubclass(InvalidHeader, InvalidGeometry)


class TestSplitHeader:
    """Terminator handling."""

    def test_no_terminator(self, header_4x4):
        assert split_header(header_4x4) == (header_4x4, b"")

    def test_nul_padding_dropped(self, header_4x4):
        raw = header_4x4.ljust(HEADER_MAX_BYTES, b"\x00")
        assert split_header(raw) == (header_4x4, b"")

    def test_newline_carries_frame_bytes(self, header_4x4):
        raw = header_4x4 + b"\n" + b"\x80\x81\x82"
        assert split_header(raw) == (header_4x4, b"\x80\x81\x82")

    def test_newline_before_nul(self, header_4x4):
        """A newline followed by frame bytes that contain zeros."""
        raw = header_4x4 + b"\n\x00\x01"
        assert split_header(raw) == (header_4x4, b"\x00\x01")

    def test_nul_before_newline(self, header_4x4):
        """Padding may contain anything, including newlines."""
        raw = header_4x4 + b"\x00\n\x01"
        assert split_header(raw) == (header_4x4, b"")


class TestReadHeader:
    """Reading the header off a stream."""

    def test_single_bounded_read(self, chunked_reader, header_4x4):
        """Exactly one read of at most 64 bytes is issued."""
        reader = chunked_reader([header_4x4.ljust(HEADER_MAX_BYTES, b"\x00"), b"\x10" * 32])

        descriptor, carry = asyncio.run(read_header(reader))

        assert descriptor.frame_byte_size == 32
        assert carry == b""
        assert reader.requests == [HEADER_MAX_BYTES]

    def test_carry_over_returned(self, chunked_reader, header_4x4):
        reader = chunked_reader([header_4x4 + b"\n" + b"\x01\x02"])

        descriptor, carry = asyncio.run(read_header(reader))

        assert descriptor.width == 4
        assert carry == b"\x01\x02"

    def test_closed_before_header(self, chunked_reader):
        with pytest.raises(InvalidHeader):
            asyncio.run(read_header(chunked_reader([])))

    def test_transport_error(self, chunked_reader):
        reader = chunked_reader([], error=ConnectionResetError("reset by peer"))
        with pytest.raises(InvalidHeader):
            asyncio.run(read_header(reader))

    def test_frame_limit_applied(self, chunked_reader, header_4x4):
        reader = chunked_reader([header_4x4])
        with pytest.raises(InvalidGeometry):
            asyncio.run(read_header(reader, max_frame_bytes=16))

    def test_pixel_limit_applied(self, chunked_reader, header_4x4):
        reader = chunked_reader([header_4x4])
        with pytest.raises(InvalidGeometry):
            asyncio.run(read_header(reader, max_pixels=8))

    def test_timeout(self, stalled_reader):
        with pytest.raises(IdleTimeout):
            asyncio.run(read_header(stalled_reader, timeout=0.05))

"""
Header Parser
=============

Reads and parses the first message of a producer connection.

Wire Format:
    ASCII text, at most 64 bytes, delivered by a single read:

        width height ySize uvSize yRowStride yPixelStride uvRowStride uvPixelStride

    Integers are base-10 and separated by any whitespace.

Terminators:
    The header has no mandatory terminator; whatever the first read returns
    is the header. Two optional terminators are recognised:
        - NUL: the header was sent as a fixed, zero-padded block. Everything
          after the first NUL is padding and dropped.
        - newline: bytes following it arrived early and are the start of
          the first frame. They are returned as carry-over.

Example:
    from yuvstream.stream.header import parse_header

    descriptor = parse_header(b"4 4 16 8 4 1 4 2")
    assert descriptor.frame_byte_size == 32
"""

import asyncio
import logging
import re
from typing import Optional, Tuple

from pydantic import ValidationError

from yuvstream.models.descriptor import HEADER_FIELDS, ImageDescriptor
from yuvstream.stream.converter import check_addressing
from yuvstream.errors import IdleTimeout, InvalidGeometry, InvalidHeader


logger = logging.getLogger(__name__)


HEADER_MAX_BYTES = 64

# 4096 x 4096. Bounds the index and output arrays built per geometry.
DEFAULT_MAX_PIXELS = 16_777_216

_INTEGER = re.compile(r"[+-]?[0-9]+")


def split_header(raw: bytes) -> Tuple[bytes, bytes]:
    """
    Separate header text from bytes that followed it in the same read.

    Args:
        raw: Bytes returned by the header read

    Returns:
        (header_text_bytes, carry_over)
    """
    newline = raw.find(b"\n")
    nul = raw.find(b"\x00")

    if nul != -1 and (newline == -1 or nul < newline):
        return raw[:nul], b""
    if newline != -1:
        return raw[:newline], raw[newline + 1 :]
    return raw, b""


def parse_header(
    raw: bytes,
    max_frame_bytes: Optional[int] = None,
    max_pixels: Optional[int] = DEFAULT_MAX_PIXELS,
) -> ImageDescriptor:
    """
    Parse header bytes into a validated ImageDescriptor.

    Args:
        raw: Header bytes, already stripped of any terminator
        max_frame_bytes: Reject geometries whose frame exceeds this many bytes
        max_pixels: Reject geometries with more than width * height pixels.
            None disables the check.

    Returns:
        Descriptor for the rest of the session

    Raises:
        InvalidHeader: Non-ASCII text, wrong token count or non-numeric token
        InvalidGeometry: Parsed values describe an unusable image
    """
    try:
        text = raw.decode("ascii")
    except UnicodeDecodeError as e:
        raise InvalidHeader(f"Header is not ASCII: {raw[:HEADER_MAX_BYTES]!r}") from e

    tokens = text.split()
    if len(tokens) != len(HEADER_FIELDS):
        raise InvalidHeader(
            f"Expected {len(HEADER_FIELDS)} header fields, got {len(tokens)}: {text!r}"
        )

    for token in tokens:
        if not _INTEGER.fullmatch(token):
            raise InvalidHeader(f"Non-numeric header field {token!r} in {text!r}")

    values = dict(zip(HEADER_FIELDS, (int(token, 10) for token in tokens)))

    try:
        descriptor = ImageDescriptor(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise InvalidGeometry(f"Invalid geometry in header {text!r}: {problems}") from e

    if max_frame_bytes is not None and descriptor.frame_byte_size > max_frame_bytes:
        raise InvalidGeometry(
            f"Frame of {descriptor.frame_byte_size} bytes exceeds "
            f"limit of {max_frame_bytes} bytes"
        )

    if max_pixels is not None and descriptor.pixel_count > max_pixels:
        raise InvalidGeometry(
            f"Image of {descriptor.width}x{descriptor.height} exceeds "
            f"limit of {max_pixels} pixels"
        )

    check_addressing(descriptor)
    return descriptor


async def read_header(
    reader: asyncio.StreamReader,
    max_frame_bytes: Optional[int] = None,
    timeout: Optional[float] = None,
    max_pixels: Optional[int] = DEFAULT_MAX_PIXELS,
) -> Tuple[ImageDescriptor, bytes]:
    """
    Read the header message from a connection and parse it.

    Performs exactly one read of at most HEADER_MAX_BYTES.

    Args:
        reader: Connection stream
        max_frame_bytes: Upper bound on declared frame size
        timeout: Seconds to wait for the header (None = forever)
        max_pixels: Upper bound on width * height

    Returns:
        (descriptor, carry_over) where carry_over is the start of the first frame

    Raises:
        InvalidHeader: Read failed, connection closed, or header malformed
        InvalidGeometry: Header declares an unusable geometry
        IdleTimeout: No header arrived within ``timeout``
    """
    try:
        if timeout:
            raw = await asyncio.wait_for(reader.read(HEADER_MAX_BYTES), timeout=timeout)
        else:
            raw = await reader.read(HEADER_MAX_BYTES)
    except asyncio.TimeoutError as e:
        raise IdleTimeout(f"No header within {timeout:.1f}s") from e
    except OSError as e:
        raise InvalidHeader(f"Header read failed: {e}") from e

    if not raw:
        raise InvalidHeader("Connection closed before header was received")

    text, carry_over = split_header(raw)
    descriptor = parse_header(
        text,
        max_frame_bytes=max_frame_bytes,
        max_pixels=max_pixels,
    )

    if carry_over:
        logger.debug(f"Header read carried {len(carry_over)} frame bytes")

    return descriptor, carry_over

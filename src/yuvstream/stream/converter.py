"""
Pixel Converter
===============

Converts planar 4:2:0 chroma-subsampled frames into packed 3-channel buffers.

This is the ONLY place in the codebase that touches pixel values.

For every output pixel (x, y):

    y_index  = y * y_row_stride + x * y_pixel_stride
    uv_base  = (y >> 1) * uv_row_stride + (x >> 1) * uv_pixel_stride
    Y = y_plane[y_index]
    U = u_plane[uv_base]
    V = v_plane[min(uv_base + 1, uv_size - 1)]

    R = Y + 1.370705 * (V - 128)
    G = Y - 0.698001 * (V - 128) - 0.337633 * (U - 128)
    B = Y + 1.732446 * (U - 128)

Each channel is truncated toward zero and clamped to [0, 255].

Short Chroma Regions:
    Android YUV_420_888 semi-planar buffers end at the last V byte, so each
    chroma region is w*h/2 - 1 bytes rather than w*h/2. The V read for the
    last chroma sample then falls one byte past the region and is clamped to
    the region's final byte.

Channel Order:
    The output is (height, width, 3) uint8, row-major. The byte order of the
    three channels is chosen by ChannelOrder. RGB is the default. LEGACY_GRB
    writes green first and red second, reproducing the layout of the earliest
    viewer builds; it exists only for consumers that were tuned to that output
    and must be requested explicitly.
"""

import logging
from enum import Enum
from functools import lru_cache
from typing import Optional, Tuple

import numpy as np

from yuvstream.models.descriptor import ImageDescriptor
from yuvstream.errors import InvalidGeometry
from yuvstream.stream.frame import Frame


logger = logging.getLogger(__name__)


# Chroma -> RGB coefficients
CR_TO_R = 1.370705
CR_TO_G = 0.698001
CB_TO_G = 0.337633
CB_TO_B = 1.732446

CHROMA_BIAS = 128


class ChannelOrder(str, Enum):
    """
    Byte order of the three channels in each output pixel.

    Attributes:
        RGB: Red, green, blue (default)
        BGR: Blue, green, red, as OpenCV expects
        LEGACY_GRB: Green, red, blue. Compatibility mode only.
    """

    RGB = "rgb"
    BGR = "bgr"
    LEGACY_GRB = "legacy_grb"


# Index of (R, G, B) within the output pixel for each order
_CHANNEL_POSITIONS = {
    ChannelOrder.RGB: (0, 1, 2),
    ChannelOrder.BGR: (2, 1, 0),
    ChannelOrder.LEGACY_GRB: (1, 0, 2),
}


def check_addressing(descriptor: ImageDescriptor) -> None:
    """
    Verify every sample the converter will read lies inside its plane.

    Args:
        descriptor: Geometry to check

    Raises:
        InvalidGeometry: If luma rows overlap or a Y or U sample would fall
            outside its plane. V reads are clamped, see convert_frame.
    """
    row_span = (descriptor.width - 1) * descriptor.y_pixel_stride + 1
    if descriptor.height > 1 and descriptor.y_row_stride < row_span:
        raise InvalidGeometry(
            f"Luma rows overlap: row stride {descriptor.y_row_stride} "
            f"is shorter than a {row_span} byte row"
        )
    if descriptor.last_y_index >= descriptor.y_size:
        raise InvalidGeometry(
            f"Luma sample {descriptor.last_y_index} outside Y plane "
            f"of {descriptor.y_size} bytes"
        )
    if descriptor.last_uv_index >= descriptor.uv_size:
        raise InvalidGeometry(
            f"Chroma sample {descriptor.last_uv_index} outside chroma region "
            f"of {descriptor.uv_size} bytes"
        )


@lru_cache(maxsize=16)
def _sample_indices(descriptor: ImageDescriptor) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Per-pixel Y, U and V offsets, shape (height, width). Read-only."""
    rows = np.arange(descriptor.height, dtype=np.int64)[:, None]
    cols = np.arange(descriptor.width, dtype=np.int64)[None, :]

    y_index = rows * descriptor.y_row_stride + cols * descriptor.y_pixel_stride
    uv_index = (rows >> 1) * descriptor.uv_row_stride + (cols >> 1) * descriptor.uv_pixel_stride

    # V sits one byte past U, clamped for regions that stop at the last V byte
    v_index = np.minimum(uv_index + 1, descriptor.uv_size - 1)

    for index in (y_index, uv_index, v_index):
        index.setflags(write=False)
    return y_index, uv_index, v_index


def allocate_rgb(descriptor: ImageDescriptor) -> np.ndarray:
    """Allocate an output buffer sized for the descriptor."""
    return np.zeros((descriptor.height, descriptor.width, 3), dtype=np.uint8)


def convert_frame(
    frame: Frame,
    descriptor: Optional[ImageDescriptor] = None,
    out: Optional[np.ndarray] = None,
    order: ChannelOrder = ChannelOrder.RGB,
) -> np.ndarray:
    """
    Convert one raw frame to a packed 3-channel buffer.

    Args:
        frame: Complete raw frame
        descriptor: Geometry to use. Defaults to frame.descriptor.
        out: Optional preallocated (height, width, 3) uint8 buffer to fill
        order: Channel byte order of the output

    Returns:
        The filled buffer (``out`` when given)

    Raises:
        ValueError: If ``out`` has the wrong shape or dtype
    """
    descriptor = descriptor or frame.descriptor
    shape = (descriptor.height, descriptor.width, 3)

    if out is None:
        out = allocate_rgb(descriptor)
    elif out.shape != shape or out.dtype != np.uint8:
        raise ValueError(
            f"Output buffer is {out.shape} {out.dtype}, expected {shape} uint8"
        )

    y_index, u_index, v_index = _sample_indices(descriptor)

    luma = frame.y_plane[y_index].astype(np.float64)
    cb = frame.u_plane[u_index].astype(np.float64) - CHROMA_BIAS
    cr = frame.v_plane[v_index].astype(np.float64) - CHROMA_BIAS

    red = luma + CR_TO_R * cr
    green = luma - CR_TO_G * cr - CB_TO_G * cb
    blue = luma + CB_TO_B * cb

    r_pos, g_pos, b_pos = _CHANNEL_POSITIONS[ChannelOrder(order)]
    out[..., r_pos] = _to_byte(red)
    out[..., g_pos] = _to_byte(green)
    out[..., b_pos] = _to_byte(blue)

    return out


def _to_byte(channel: np.ndarray) -> np.ndarray:
    """Truncate toward zero, then clamp to the byte range."""
    return np.clip(np.trunc(channel), 0, 255).astype(np.uint8)

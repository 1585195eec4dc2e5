"""
Image Descriptor
================

Geometry of one producer's frames, declared once by the header message.

A frame is laid out as three consecutive planes:

    [ Y plane: y_size bytes ][ U region: uv_size bytes ][ V region: uv_size bytes ]

Samples are addressed through independent row and pixel strides, which lets
the same descriptor describe fully planar (I420, uv_pixel_stride == 1) and
semi-planar (NV12/NV21 style, uv_pixel_stride == 2) chroma layouts.

Example:
    from yuvstream.models.descriptor import ImageDescriptor

    descriptor = ImageDescriptor(
        width=4, height=4,
        y_size=16, uv_size=8,
        y_row_stride=4, y_pixel_stride=1,
        uv_row_stride=4, uv_pixel_stride=2,
    )
    descriptor.frame_byte_size  # 32
"""

from typing import Tuple

from pydantic import BaseModel, Field


HEADER_FIELDS: Tuple[str, ...] = (
    "width",
    "height",
    "y_size",
    "uv_size",
    "y_row_stride",
    "y_pixel_stride",
    "uv_row_stride",
    "uv_pixel_stride",
)


class ImageDescriptor(BaseModel):
    """
    Immutable frame geometry for a single session.

    Field order matches the order of integers in the header message.

    Attributes:
        width: Image width in pixels
        height: Image height in pixels
        y_size: Bytes in the luma plane
        uv_size: Bytes in each chroma region
        y_row_stride: Bytes between the starts of two luma rows
        y_pixel_stride: Bytes between two horizontally adjacent luma samples
        uv_row_stride: Bytes between the starts of two chroma rows
        uv_pixel_stride: Bytes between two horizontally adjacent chroma samples
    """

    width: int = Field(..., gt=0, description="Image width in pixels")
    height: int = Field(..., gt=0, description="Image height in pixels")
    y_size: int = Field(..., ge=0, description="Luma plane size in bytes")
    uv_size: int = Field(..., ge=0, description="Size of each chroma region in bytes")
    y_row_stride: int = Field(..., gt=0, description="Luma row stride in bytes")
    y_pixel_stride: int = Field(..., gt=0, description="Luma pixel stride in bytes")
    uv_row_stride: int = Field(..., gt=0, description="Chroma row stride in bytes")
    uv_pixel_stride: int = Field(..., gt=0, description="Chroma pixel stride in bytes")

    class Config:
        """Descriptors never change once a session has parsed its header."""
        frozen = True

    @property
    def frame_byte_size(self) -> int:
        """Bytes in one complete frame: the luma plane plus both chroma regions."""
        return self.y_size + 2 * self.uv_size

    @property
    def pixel_count(self) -> int:
        """Pixels per frame."""
        return self.width * self.height

    @property
    def rgb_byte_size(self) -> int:
        """Bytes in the packed 3-channel output buffer."""
        return self.pixel_count * 3

    @property
    def last_y_index(self) -> int:
        """Offset of the last luma sample read, relative to the Y plane."""
        return (self.height - 1) * self.y_row_stride + (self.width - 1) * self.y_pixel_stride

    @property
    def last_uv_index(self) -> int:
        """Offset of the last chroma sample base, relative to its region."""
        return (
            ((self.height - 1) >> 1) * self.uv_row_stride
            + ((self.width - 1) >> 1) * self.uv_pixel_stride
        )

    def describe(self) -> str:
        """One-line summary for logs."""
        return (
            f"{self.width}x{self.height} "
            f"y_size={self.y_size} uv_size={self.uv_size} "
            f"y_strides=({self.y_row_stride},{self.y_pixel_stride}) "
            f"uv_strides=({self.uv_row_stride},{self.uv_pixel_stride}) "
            f"frame_bytes={self.frame_byte_size}"
        )

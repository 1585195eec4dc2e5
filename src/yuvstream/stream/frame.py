"""
Frame Data Model
================

One fully reassembled raw frame.

Design Rules:
    - A Frame always holds exactly descriptor.frame_byte_size bytes
    - Plane accessors are zero-copy numpy views over the payload
    - Frames are transient: they live for one conversion only
"""

from dataclasses import dataclass

import numpy as np

from yuvstream.models.descriptor import ImageDescriptor


@dataclass(frozen=True, slots=True)
class Frame:
    """
    Complete raw frame received from a producer.

    Attributes:
        sequence: Zero-based frame counter within the session
        descriptor: Geometry declared by the session header
        payload: Raw bytes, Y plane then U region then V region
    """

    sequence: int
    descriptor: ImageDescriptor
    payload: bytes

    def __post_init__(self) -> None:
        if len(self.payload) != self.descriptor.frame_byte_size:
            raise ValueError(
                f"Frame payload is {len(self.payload)} bytes, "
                f"expected {self.descriptor.frame_byte_size}"
            )

    @property
    def data(self) -> np.ndarray:
        """Whole payload as a flat uint8 array."""
        return np.frombuffer(self.payload, dtype=np.uint8)

    @property
    def y_plane(self) -> np.ndarray:
        """Luma samples."""
        return self.data[: self.descriptor.y_size]

    @property
    def u_plane(self) -> np.ndarray:
        """First chroma region, starting right after the Y plane."""
        start = self.descriptor.y_size
        return self.data[start : start + self.descriptor.uv_size]

    @property
    def v_plane(self) -> np.ndarray:
        """Second chroma region, the last uv_size bytes of the frame."""
        start = self.descriptor.y_size + self.descriptor.uv_size
        return self.data[start : start + self.descriptor.uv_size]

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the payload."""
        return (
            f"Frame(sequence={self.sequence}, "
            f"size={self.descriptor.width}x{self.descriptor.height}, "
            f"bytes={len(self.payload)})"
        )

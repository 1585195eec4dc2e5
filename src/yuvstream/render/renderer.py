"""
Renderers
=========

Adapters that draw decoded slot frames.

The core only relies on the Renderer protocol. Renderers receive a private
copy of each frame, so they may keep it as long as they like.

Backends:
    - NullRenderer: logs and counts frames (headless deployments, tests)
    - OpenCVRenderer: one HighGUI window, slots tiled left to right by index
"""

import logging
from typing import Dict, Optional, Protocol

import cv2
import numpy as np

from yuvstream.config import RenderConfig
from yuvstream.stream.converter import ChannelOrder


logger = logging.getLogger(__name__)


class Renderer(Protocol):
    """
    Protocol for frame presentation backends.

    All methods are called from the render loop thread only.
    """

    def present(self, slot_id: int, rgb: np.ndarray, width: int, height: int) -> None:
        """Draw the latest frame for a slot."""
        ...

    def clear(self, slot_id: int) -> None:
        """Forget a slot whose producer went away."""
        ...

    def flush(self) -> None:
        """Finish one pass over all slots."""
        ...

    def close(self) -> None:
        """Release any windows or handles."""
        ...


class NullRenderer:
    """
    Renderer that draws nothing.

    Keeps per-slot frame counts so headless runs still show activity in logs.
    """

    def __init__(self) -> None:
        self.frames_presented: Dict[int, int] = {}

    def present(self, slot_id: int, rgb: np.ndarray, width: int, height: int) -> None:
        count = self.frames_presented.get(slot_id, 0) + 1
        self.frames_presented[slot_id] = count
        if count == 1:
            logger.info(f"First frame presented for slot {slot_id}: {width}x{height}")
        logger.debug(f"Presented slot {slot_id} frame {count}")

    def clear(self, slot_id: int) -> None:
        self.frames_presented.pop(slot_id, None)

    def flush(self) -> None:
        pass

    def close(self) -> None:
        pass


class OpenCVRenderer:
    """
    Tiles every slot into a single OpenCV window.

    Slot ``i`` is drawn at horizontal offset ``i * tile_width``. Frames are
    letterboxed into their tile, preserving aspect ratio.
    """

    def __init__(
        self,
        capacity: int,
        window_name: str = "yuvstream",
        tile_height: int = 384,
        channel_order: ChannelOrder = ChannelOrder.RGB,
    ) -> None:
        """
        Initialize renderer.

        Args:
            capacity: Number of slots to lay out
            window_name: HighGUI window title
            tile_height: Height of each slot tile in pixels
            channel_order: Byte order of incoming frames
        """
        self.window_name = window_name
        self.tile_height = tile_height
        self.tile_width = tile_height * 4 // 3
        self.channel_order = ChannelOrder(channel_order)

        self._canvas = np.zeros(
            (self.tile_height, self.tile_width * capacity, 3),
            dtype=np.uint8,
        )
        self._window_open = False
        self._dirty = False

    def present(self, slot_id: int, rgb: np.ndarray, width: int, height: int) -> None:
        if self.channel_order == ChannelOrder.BGR:
            bgr = rgb
        else:
            # LEGACY_GRB buffers are displayed as if they were RGB
            bgr = cv2.cvtColor(rgb, cv2.COLOR_RGB2BGR)

        scale = min(self.tile_width / width, self.tile_height / height)
        new_w = max(1, int(width * scale))
        new_h = max(1, int(height * scale))
        resized = cv2.resize(bgr, (new_w, new_h), interpolation=cv2.INTER_LINEAR)

        tile = self._tile(slot_id)
        tile[:] = 0
        top = (self.tile_height - new_h) // 2
        left = (self.tile_width - new_w) // 2
        tile[top : top + new_h, left : left + new_w] = resized
        self._dirty = True

    def clear(self, slot_id: int) -> None:
        self._tile(slot_id)[:] = 0
        self._dirty = True

    def flush(self) -> None:
        if not self._window_open:
            cv2.namedWindow(self.window_name, cv2.WINDOW_NORMAL)
            cv2.resizeWindow(self.window_name, self._canvas.shape[1], self._canvas.shape[0])
            self._window_open = True

        if self._dirty:
            cv2.imshow(self.window_name, self._canvas)
            self._dirty = False
        cv2.waitKey(1)

    def close(self) -> None:
        if self._window_open:
            cv2.destroyWindow(self.window_name)
            self._window_open = False

    def _tile(self, slot_id: int) -> np.ndarray:
        left = slot_id * self.tile_width
        return self._canvas[:, left : left + self.tile_width]


def create_renderer(
    config: RenderConfig,
    capacity: int,
    channel_order: ChannelOrder = ChannelOrder.RGB,
) -> Renderer:
    """
    Create renderer based on config.

    Args:
        config: Render section of the settings
        capacity: Number of slots
        channel_order: Byte order sessions decode into

    Returns:
        Renderer instance
    """
    backend = config.backend

    if backend == "null":
        logger.info("Using NullRenderer")
        return NullRenderer()

    elif backend == "opencv":
        logger.info(
            f"Using OpenCVRenderer: window={config.window_name!r}, "
            f"tile_height={config.tile_height}"
        )
        return OpenCVRenderer(
            capacity=capacity,
            window_name=config.window_name,
            tile_height=config.tile_height,
            channel_order=channel_order,
        )

    else:
        raise ValueError(f"Unknown render backend: {backend}")

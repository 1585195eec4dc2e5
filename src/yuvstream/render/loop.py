"""
Render Loop
===========

Background thread that hands the latest frame of every slot to a renderer.

The loop sleeps on the SlotTable's change signal; it wakes when a frame is
published or a slot is acquired/released, and otherwise only every
``wait_timeout`` seconds. It never spins while nothing changes.
"""

import logging
import threading
from typing import Dict, Optional, Tuple

from yuvstream.render.renderer import Renderer
from yuvstream.slots.table import SlotTable


logger = logging.getLogger(__name__)


class RenderLoop:
    """
    Drives a Renderer from SlotTable updates.

    Attributes:
        passes: Loop iterations that found a change
        frames_presented: Total present() calls

    Example:
        loop = RenderLoop(table, NullRenderer())
        loop.start()
        ...
        loop.stop()
    """

    def __init__(
        self,
        slot_table: SlotTable,
        renderer: Renderer,
        wait_timeout: float = 0.5,
    ) -> None:
        """
        Initialize render loop.

        Args:
            slot_table: Source of slot frames
            renderer: Presentation backend
            wait_timeout: Upper bound on one wait for changes, in seconds
        """
        self._slots = slot_table
        self._renderer = renderer
        self._wait_timeout = wait_timeout

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # slot_id -> (connected_at, frames) last presented
        self._presented: Dict[int, Tuple[float, int]] = {}
        self._version: int = -1

        self.passes: int = 0
        self.frames_presented: int = 0

    @property
    def running(self) -> bool:
        """Whether the loop thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the loop thread."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="render-loop", daemon=True)
        self._thread.start()
        logger.info("RenderLoop started")

    def stop(self, timeout: float = 2.0) -> None:
        """Signal the loop to exit and wait for it."""
        self._stop_event.set()
        self._slots.wake()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info(
            f"RenderLoop stopped after {self.passes} passes, "
            f"{self.frames_presented} frames presented"
        )

    def run_once(self) -> int:
        """
        Present every slot that changed since the last pass.

        Slots are polled without pixels; only slots with a new frame are
        fetched in full.

        Returns:
            Number of frames presented
        """
        live = set()
        presented = 0

        for snap in self._slots.snapshot(include_pixels=False):
            live.add(snap.slot_id)
            shown = self._presented.get(snap.slot_id)

            if snap.frames == 0 or snap.descriptor is None:
                # New session, no frame yet: drop the previous session's picture
                if shown is not None and shown[0] != snap.connected_at:
                    self._clear(snap.slot_id)
                continue

            if shown == (snap.connected_at, snap.frames):
                continue

            full = self._slots.get(snap.slot_id)
            if full is None or full.rgb is None:
                # Slot changed hands between the two reads
                if shown is not None and (full is None or shown[0] != full.connected_at):
                    self._clear(snap.slot_id)
                continue

            height, width = full.rgb.shape[:2]
            self._renderer.present(full.slot_id, full.rgb, width, height)
            self._presented[full.slot_id] = (full.connected_at, full.frames)
            presented += 1

        for slot_id in list(self._presented):
            if slot_id not in live:
                self._clear(slot_id)

        self._renderer.flush()
        self.frames_presented += presented
        return presented

    def _clear(self, slot_id: int) -> None:
        self._renderer.clear(slot_id)
        del self._presented[slot_id]

    def _run(self) -> None:
        try:
            while not self._stop_event.is_set():
                version = self._slots.wait_for_update(self._version, timeout=self._wait_timeout)
                if self._stop_event.is_set():
                    break
                if version != self._version:
                    self._version = version
                    self.passes += 1
                    self.run_once()
                else:
                    # Idle: keep the window responsive without redrawing
                    self._renderer.flush()
        except Exception:
            logger.exception("RenderLoop crashed")
        finally:
            self._renderer.close()

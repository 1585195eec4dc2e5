"""
Session Handler
===============

Per-connection state machine for one producer.

States:
    AWAIT_HEADER -> STREAMING -> CLOSED

    AWAIT_HEADER: one read of at most 64 bytes, parsed into an
                  ImageDescriptor. Any failure ends the session.
    STREAMING:    reassemble a frame, convert it into the slot's pixel
                  buffer, signal the render side. Repeat until the
                  connection ends.
    CLOSED:       terminal. Slot released, connection closed.

There is no way back to AWAIT_HEADER: one session, one header, one geometry.

Design Rules:
    - The session exclusively owns its connection and its slot lease
    - Frames reach the renderer only through the SlotTable
    - No exception escapes run(); every exit path releases the slot
    - Nothing is ever written back to the producer
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Optional

from yuvstream.errors import (
    IdleTimeout,
    InvalidGeometry,
    InvalidHeader,
    SlotEvicted,
    StreamClosed,
)
from yuvstream.models.descriptor import ImageDescriptor
from yuvstream.slots.table import SlotLease, SlotTable
from yuvstream.stream.assembler import FrameAssembler
from yuvstream.stream.converter import ChannelOrder, convert_frame
from yuvstream.stream.frame import Frame
from yuvstream.stream.header import DEFAULT_MAX_PIXELS, read_header


logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle states of a producer session."""

    AWAIT_HEADER = "AWAIT_HEADER"
    STREAMING = "STREAMING"
    CLOSED = "CLOSED"


class SessionMetrics:
    """Metrics for one producer session."""

    __slots__ = (
        "frames_decoded",
        "bytes_received",
        "reads",
        "started_at",
        "ended_at",
        "close_reason",
    )

    def __init__(self) -> None:
        self.frames_decoded: int = 0
        self.bytes_received: int = 0
        self.reads: int = 0
        self.started_at: float = time.time()
        self.ended_at: Optional[float] = None
        self.close_reason: Optional[str] = None

    @property
    def duration(self) -> float:
        """Seconds between start and end (or now, while running)."""
        return (self.ended_at or time.time()) - self.started_at

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "frames_decoded": self.frames_decoded,
            "bytes_received": self.bytes_received,
            "reads": self.reads,
            "duration_seconds": round(self.duration, 3),
            "close_reason": self.close_reason,
        }


class SessionHandler:
    """
    Drives one producer connection from header to disconnect.

    Attributes:
        lease: Slot owned by this session
        state: Current SessionState
        descriptor: Geometry from the header, None before it arrives
        metrics: Session counters

    Example:
        lease = table.acquire(host, closer=writer.close)
        session = SessionHandler(reader, writer, lease, table)
        asyncio.create_task(session.run())
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        lease: SlotLease,
        slot_table: SlotTable,
        idle_timeout: Optional[float] = None,
        max_frame_bytes: Optional[int] = None,
        max_pixels: Optional[int] = DEFAULT_MAX_PIXELS,
        channel_order: ChannelOrder = ChannelOrder.RGB,
    ) -> None:
        """
        Initialize session.

        Args:
            reader: Connection read side
            writer: Connection write side, used only to close
            lease: Slot lease from SlotTable.acquire
            slot_table: Table the lease belongs to
            idle_timeout: Seconds a read may stall before closing (None = never)
            max_frame_bytes: Largest frame the header may declare
            max_pixels: Largest width * height the header may declare
            channel_order: Byte order of decoded pixels
        """
        self.lease = lease
        self._reader = reader
        self._writer = writer
        self._slots = slot_table
        self._idle_timeout = idle_timeout or None
        self._max_frame_bytes = max_frame_bytes
        self._max_pixels = max_pixels
        self._channel_order = ChannelOrder(channel_order)

        self._state = SessionState.AWAIT_HEADER
        self._descriptor: Optional[ImageDescriptor] = None
        self._carry_over: bytes = b""

        self.metrics = SessionMetrics()

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def descriptor(self) -> Optional[ImageDescriptor]:
        """Geometry declared by the header."""
        return self._descriptor

    @property
    def name(self) -> str:
        """Short label for logs."""
        return f"slot {self.lease.slot_id} ({self.lease.address})"

    async def run(self) -> None:
        """
        Run the session until the connection ends.

        Never raises except for task cancellation.
        """
        logger.info(f"Session started: {self.name}")

        try:
            await self._await_header()
            await self._stream()
        except (InvalidHeader, InvalidGeometry) as e:
            self.metrics.close_reason = type(e).__name__
            logger.warning(f"Rejected header from {self.name}: {e}")
        except IdleTimeout as e:
            self.metrics.close_reason = "IdleTimeout"
            logger.warning(f"Idle timeout on {self.name}: {e}")
        except SlotEvicted as e:
            self.metrics.close_reason = "SlotEvicted"
            logger.info(f"Session replaced on {self.name}: {e}")
        except StreamClosed as e:
            self.metrics.close_reason = "StreamClosed"
            logger.info(f"Closing connection: {self.name}: {e}")
        except asyncio.CancelledError:
            self.metrics.close_reason = "Cancelled"
            raise
        except Exception:
            self.metrics.close_reason = "InternalError"
            logger.exception(f"Unexpected error in session {self.name}")
        finally:
            await self._close()

    async def _await_header(self) -> None:
        """AWAIT_HEADER: read and validate the geometry."""
        descriptor, carry_over = await read_header(
            self._reader,
            max_frame_bytes=self._max_frame_bytes,
            timeout=self._idle_timeout,
            max_pixels=self._max_pixels,
        )
        self.metrics.bytes_received += len(carry_over)
        self._descriptor = descriptor
        self._carry_over = carry_over
        self._slots.set_descriptor(self.lease, descriptor)

        logger.info(f"Header from {self.name}: {descriptor.describe()}")
        self._state = SessionState.STREAMING

    async def _stream(self) -> None:
        """STREAMING: assemble, convert, publish, forever."""
        descriptor = self._descriptor
        assembler = FrameAssembler(
            self._reader,
            idle_timeout=self._idle_timeout,
            prefix=self._carry_over,
        )
        self._carry_over = b""
        carried = assembler.bytes_received

        try:
            while True:
                frame = await assembler.read_frame(
                    descriptor,
                    sequence=self.metrics.frames_decoded,
                )
                await asyncio.to_thread(self._publish, frame)
                self.metrics.frames_decoded += 1

                logger.debug(f"Frame {frame.sequence} decoded on {self.name}")
        finally:
            self.metrics.bytes_received += assembler.bytes_received - carried
            self.metrics.reads = assembler.reads

    def _publish(self, frame: Frame) -> None:
        """Convert a frame straight into the slot buffer."""
        descriptor = frame.descriptor
        with self._slots.frame_buffer(self.lease, descriptor.width, descriptor.height) as rgb:
            convert_frame(frame, descriptor, out=rgb, order=self._channel_order)

    async def _close(self) -> None:
        """CLOSED: release the slot and close the connection."""
        self._state = SessionState.CLOSED
        self.metrics.ended_at = time.time()

        self._slots.release(self.lease)

        self._writer.close()
        try:
            await self._writer.wait_closed()
        except OSError:
            pass

        logger.info(
            f"Session ended: {self.name} "
            f"reason={self.metrics.close_reason} "
            f"frames={self.metrics.frames_decoded} "
            f"bytes={self.metrics.bytes_received} "
            f"duration={self.metrics.duration:.1f}s"
        )

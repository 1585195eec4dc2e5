"""
Frame Assembler
===============

Reassembles fixed-size frames from a fragmented byte stream.

TCP delivers bytes, not messages: a single read may return any number of
bytes up to the amount requested. The assembler keeps reading until the
requested count has been collected.

Design Rules:
    - Callers receive a full frame or an exception, never a partial frame
    - A zero-byte read or transport error is end-of-stream (StreamClosed)
    - Nothing is retried
    - Reads block only the calling session's task
"""

import asyncio
import logging
from typing import Optional

from yuvstream.models.descriptor import ImageDescriptor
from yuvstream.errors import IdleTimeout, StreamClosed
from yuvstream.stream.frame import Frame


logger = logging.getLogger(__name__)


class FrameAssembler:
    """
    Accumulates exactly N bytes per call from an asyncio stream.

    Attributes:
        bytes_received: Total bytes consumed from the transport
        reads: Number of transport reads issued

    Example:
        assembler = FrameAssembler(reader, idle_timeout=30.0)
        frame = await assembler.read_frame(descriptor, sequence=0)
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        idle_timeout: Optional[float] = None,
        prefix: bytes = b"",
    ) -> None:
        """
        Initialize assembler.

        Args:
            reader: Connection stream to read from
            idle_timeout: Seconds a single read may stall (None or 0 = forever)
            prefix: Bytes already received (e.g. with the header) that come
                before anything still on the wire
        """
        self._reader = reader
        self._idle_timeout = idle_timeout or None
        self._pending = bytearray(prefix)

        self.bytes_received: int = len(prefix)
        self.reads: int = 0

    async def read_exactly(self, size: int) -> bytes:
        """
        Collect exactly ``size`` bytes.

        Args:
            size: Number of bytes to return

        Returns:
            ``size`` bytes

        Raises:
            StreamClosed: The peer closed the connection or the read failed
            IdleTimeout: A read stalled longer than the idle timeout
        """
        if size < 0:
            raise ValueError("size must be >= 0")

        buffer = bytearray(size)
        view = memoryview(buffer)
        filled = 0

        if self._pending:
            take = min(size, len(self._pending))
            view[:take] = self._pending[:take]
            del self._pending[:take]
            filled = take

        while filled < size:
            chunk = await self._read_some(size - filled)
            view[filled : filled + len(chunk)] = chunk
            filled += len(chunk)

        return bytes(buffer)

    async def read_frame(self, descriptor: ImageDescriptor, sequence: int) -> Frame:
        """Read one complete frame for the given geometry."""
        payload = await self.read_exactly(descriptor.frame_byte_size)
        return Frame(sequence=sequence, descriptor=descriptor, payload=payload)

    async def _read_some(self, wanted: int) -> bytes:
        """Issue one transport read of at most ``wanted`` bytes."""
        self.reads += 1
        try:
            if self._idle_timeout:
                chunk = await asyncio.wait_for(
                    self._reader.read(wanted),
                    timeout=self._idle_timeout,
                )
            else:
                chunk = await self._reader.read(wanted)
        except asyncio.TimeoutError as e:
            raise IdleTimeout(
                f"No data for {self._idle_timeout:.1f}s"
            ) from e
        except OSError as e:
            raise StreamClosed(f"Read failed: {e}") from e

        if not chunk:
            raise StreamClosed("Connection closed by peer")

        self.bytes_received += len(chunk)
        return chunk

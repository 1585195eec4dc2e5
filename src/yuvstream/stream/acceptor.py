"""
Connection Acceptor
===================

TCP server that admits producers into slots.

For every inbound connection:
    1. Read the peer host
    2. SlotTable.acquire (evicting an older session from the same host)
    3. Refuse immediately when no slot is free
    4. Otherwise spawn a SessionHandler task and go back to accepting

The acceptor never waits for a session to finish.
"""

import asyncio
import logging
from collections import Counter
from typing import Optional, Set

from yuvstream.errors import SlotExhausted
from yuvstream.slots.table import SlotTable
from yuvstream.stream.converter import ChannelOrder
from yuvstream.stream.header import DEFAULT_MAX_PIXELS
from yuvstream.stream.session import SessionHandler


logger = logging.getLogger(__name__)


class AcceptorMetrics:
    """Metrics for ConnectionAcceptor observability."""

    __slots__ = (
        "connections_accepted",
        "connections_rejected",
        "sessions_completed",
        "frames_decoded",
        "close_reasons",
    )

    def __init__(self) -> None:
        self.connections_accepted: int = 0
        self.connections_rejected: int = 0
        self.sessions_completed: int = 0
        self.frames_decoded: int = 0
        self.close_reasons: Counter = Counter()

    def to_dict(self) -> dict:
        """Export metrics as dict."""
        return {
            "connections_accepted": self.connections_accepted,
            "connections_rejected": self.connections_rejected,
            "sessions_completed": self.sessions_completed,
            "frames_decoded": self.frames_decoded,
            "close_reasons": dict(self.close_reasons),
        }


class ConnectionAcceptor:
    """
    Accepts producer connections and starts a session for each.

    Attributes:
        host: Bind address
        port: Bind port (0 picks a free port; see ``bound_port``)
        metrics: Operational metrics

    Example:
        table = SlotTable(capacity=2)
        acceptor = ConnectionAcceptor(table, host="0.0.0.0", port=8080)
        await acceptor.start()
        ...
        await acceptor.stop()
    """

    def __init__(
        self,
        slot_table: SlotTable,
        host: str = "0.0.0.0",
        port: int = 8080,
        idle_timeout: Optional[float] = None,
        max_frame_bytes: Optional[int] = None,
        max_pixels: Optional[int] = DEFAULT_MAX_PIXELS,
        channel_order: ChannelOrder = ChannelOrder.RGB,
    ) -> None:
        """
        Initialize acceptor.

        Args:
            slot_table: Registry sessions are admitted into
            host: Address to listen on
            port: TCP port to listen on
            idle_timeout: Per-read stall limit passed to sessions
            max_frame_bytes: Frame size limit passed to sessions
            max_pixels: Pixel count limit passed to sessions
            channel_order: Pixel byte order passed to sessions
        """
        self.host = host
        self.port = port
        self._slots = slot_table
        self._idle_timeout = idle_timeout
        self._max_frame_bytes = max_frame_bytes
        self._max_pixels = max_pixels
        self._channel_order = ChannelOrder(channel_order)

        self._server: Optional[asyncio.AbstractServer] = None
        self._sessions: Set[asyncio.Task] = set()

        self.metrics = AcceptorMetrics()

    @property
    def listening(self) -> bool:
        """Whether the server socket is open."""
        return self._server is not None and self._server.is_serving()

    @property
    def bound_port(self) -> Optional[int]:
        """Actual listening port, useful when started with port 0."""
        if self._server is None or not self._server.sockets:
            return None
        return self._server.sockets[0].getsockname()[1]

    @property
    def active_sessions(self) -> int:
        """Number of running session tasks."""
        return len(self._sessions)

    async def start(self) -> None:
        """Bind the listening socket and start accepting."""
        self._server = await asyncio.start_server(
            self._handle_connection,
            host=self.host,
            port=self.port,
        )
        logger.info(f"Accepting producers on {self.host}:{self.bound_port}")

    async def stop(self, timeout: float = 5.0) -> None:
        """
        Stop accepting and end every session.

        Args:
            timeout: Seconds to wait for sessions to wind down before cancelling
        """
        logger.info("ConnectionAcceptor stopping...")

        if self._server is not None:
            self._server.close()

        self._slots.close_all()

        if self._sessions:
            done, pending = await asyncio.wait(set(self._sessions), timeout=timeout)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        if self._server is not None:
            await self._server.wait_closed()
            self._server = None

        logger.info("ConnectionAcceptor stopped")

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Admit one connection into a slot or refuse it."""
        peer = writer.get_extra_info("peername")
        host = peer[0] if peer else "unknown"
        logger.info(f"Connection made from IP address: {host}")

        try:
            lease = self._slots.acquire(host, closer=writer.close)
        except SlotExhausted as e:
            self.metrics.connections_rejected += 1
            logger.warning(str(e))
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass
            return

        self.metrics.connections_accepted += 1

        session = SessionHandler(
            reader,
            writer,
            lease,
            self._slots,
            idle_timeout=self._idle_timeout,
            max_frame_bytes=self._max_frame_bytes,
            max_pixels=self._max_pixels,
            channel_order=self._channel_order,
        )
        task = asyncio.create_task(session.run(), name=f"session-slot-{lease.slot_id}")
        self._sessions.add(task)
        task.add_done_callback(lambda t: self._session_done(t, session))

    def _session_done(self, task: asyncio.Task, session: SessionHandler) -> None:
        self._sessions.discard(task)
        self.metrics.sessions_completed += 1
        self.metrics.frames_decoded += session.metrics.frames_decoded
        self.metrics.close_reasons[session.metrics.close_reason or "Unknown"] += 1

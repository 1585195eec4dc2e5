"""
Slot Table
==========

Fixed-capacity registry of producer sessions.

Each connected producer occupies one slot. A slot's index is stable for the
lifetime of the session and doubles as the producer's position on screen.

Rules:
    - At most ``capacity`` slots are occupied at any time
    - A producer address occupies at most one slot; reconnecting from the
      same address evicts the old session and reuses its slot
    - When every slot is taken new connections are refused (no queueing)

Thread Safety:
    Sessions run on the asyncio loop, the render loop runs in its own thread.
    Occupancy is guarded by one table-wide lock. Each slot's descriptor and
    pixel buffers are guarded by that slot's own lock. Readers only ever get
    copies (SlotSnapshot), never a live slot.

    Slots are double buffered: a session converts into a spare buffer
    without holding any lock and swaps it in when the frame is complete.
    Both locks are therefore only held for short, bounded sections.

    Lock order is always table lock -> slot lock. Occupancy fields change
    under both locks, so holding either one is enough to read them.

Example:
    table = SlotTable(capacity=2)
    lease = table.acquire("10.0.0.5", closer=writer.close)

    table.set_descriptor(lease, descriptor)
    with table.frame_buffer(lease, descriptor.width, descriptor.height) as rgb:
        convert_frame(frame, descriptor, out=rgb)

    table.release(lease)
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator, List, Optional

import numpy as np

from yuvstream.errors import SlotEvicted, SlotExhausted
from yuvstream.models.descriptor import ImageDescriptor


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SlotLease:
    """
    Proof that a session owns a slot.

    A lease goes stale when its slot is released or handed to a newer
    connection; operations with a stale lease are ignored or refused.
    """

    slot_id: int
    generation: int
    address: str


@dataclass(frozen=True, slots=True)
class SlotSnapshot:
    """
    Point-in-time copy of an occupied slot.

    Attributes:
        slot_id: Slot index (0..capacity-1)
        address: Producer host
        descriptor: Geometry, None until the header arrived
        rgb: Copy of the latest decoded frame, None before the first frame
        frames: Frames decoded into this slot during the current session
        connected_at: UNIX time the session acquired the slot
    """

    slot_id: int
    address: str
    descriptor: Optional[ImageDescriptor]
    rgb: Optional[np.ndarray]
    frames: int
    connected_at: float

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixels."""
        return (
            f"SlotSnapshot(slot_id={self.slot_id}, "
            f"address={self.address!r}, frames={self.frames})"
        )


class _Slot:
    """Mutable slot state. Never leaves the table."""

    __slots__ = (
        "slot_id",
        "lock",
        "occupied",
        "address",
        "generation",
        "closer",
        "descriptor",
        "rgb",
        "spare",
        "frames",
        "connected_at",
    )

    def __init__(self, slot_id: int) -> None:
        self.slot_id = slot_id
        self.lock = threading.Lock()
        self.occupied: bool = False
        self.address: Optional[str] = None
        self.generation: int = 0
        self.closer: Optional[Callable[[], None]] = None
        self.descriptor: Optional[ImageDescriptor] = None
        self.rgb: Optional[np.ndarray] = None
        self.spare: Optional[np.ndarray] = None
        self.frames: int = 0
        self.connected_at: float = 0.0

    def reset(self) -> None:
        """Drop session state. Caller holds both locks."""
        self.descriptor = None
        self.rgb = None
        self.spare = None
        self.frames = 0


class SlotTable:
    """
    Synchronized registry mapping producer sessions to display slots.

    Attributes:
        capacity: Number of slots
        version: Counter bumped on every occupancy change and frame publish
    """

    def __init__(self, capacity: int = 2) -> None:
        """
        Initialize slot table.

        Args:
            capacity: Number of slots. Must be >= 1.
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self._slots = [_Slot(i) for i in range(capacity)]
        self._lock = threading.Lock()
        self._changed = threading.Condition(self._lock)
        self._version: int = 0

        self._acquired_total: int = 0
        self._rejected_total: int = 0
        self._evicted_total: int = 0

    @property
    def capacity(self) -> int:
        """Number of slots."""
        return len(self._slots)

    @property
    def version(self) -> int:
        """Current change counter."""
        with self._lock:
            return self._version

    @property
    def occupied_count(self) -> int:
        """Number of occupied slots."""
        with self._lock:
            return sum(1 for slot in self._slots if slot.occupied)

    # -------------------------------------------------------------------------
    # Occupancy
    # -------------------------------------------------------------------------

    def acquire(
        self,
        address: str,
        closer: Optional[Callable[[], None]] = None,
    ) -> SlotLease:
        """
        Assign a slot to a new connection.

        If ``address`` already occupies a slot, that session is closed and its
        slot is reassigned. Otherwise the lowest free slot is used.

        Args:
            address: Producer host (port excluded)
            closer: Called to terminate this session if it is later evicted

        Returns:
            Lease for the assigned slot

        Raises:
            SlotExhausted: Every slot is occupied by another address
        """
        evicted_closer: Optional[Callable[[], None]] = None

        with self._lock:
            slot = self._find_by_address(address)
            if slot is not None:
                evicted_closer = slot.closer
                self._evicted_total += 1
                logger.warning(
                    f"{address} already streaming in slot {slot.slot_id}, "
                    f"replacing previous session"
                )
            else:
                slot = next((s for s in self._slots if not s.occupied), None)

            if slot is None:
                self._rejected_total += 1
                raise SlotExhausted(
                    f"All {self.capacity} slots occupied, rejecting {address}"
                )

            with slot.lock:
                slot.reset()
                slot.occupied = True
                slot.address = address
                slot.generation += 1
                slot.closer = closer
                slot.connected_at = time.time()
                lease = SlotLease(
                    slot_id=slot.slot_id,
                    generation=slot.generation,
                    address=address,
                )

            self._acquired_total += 1
            self._bump()

        if evicted_closer is not None:
            try:
                evicted_closer()
            except Exception as e:
                logger.error(f"Failed to close evicted session for {address}: {e}")

        return lease

    def release(self, lease: SlotLease) -> bool:
        """
        Free a slot and drop its descriptor and pixel buffer.

        Args:
            lease: Lease returned by acquire

        Returns:
            True if the slot was freed, False if the lease was stale
        """
        with self._lock:
            slot = self._slots[lease.slot_id]
            with slot.lock:
                if not slot.occupied or slot.generation != lease.generation:
                    logger.debug(
                        f"Ignoring stale release of slot {lease.slot_id} "
                        f"(generation {lease.generation}, current {slot.generation})"
                    )
                    return False

                slot.reset()
                slot.occupied = False
                slot.address = None
                slot.closer = None

            self._bump()

        logger.info(f"Slot {lease.slot_id} released ({lease.address})")
        return True

    def close_all(self) -> int:
        """
        Terminate every active session through its closer.

        Slots are freed by the sessions themselves as they wind down.

        Returns:
            Number of sessions signalled
        """
        with self._lock:
            closers = [s.closer for s in self._slots if s.occupied and s.closer]

        for closer in closers:
            try:
                closer()
            except Exception as e:
                logger.error(f"Failed to close session: {e}")

        return len(closers)

    # -------------------------------------------------------------------------
    # Slot contents
    # -------------------------------------------------------------------------

    def set_descriptor(self, lease: SlotLease, descriptor: ImageDescriptor) -> None:
        """
        Record the geometry announced by the session's header.

        Raises:
            SlotEvicted: The lease is stale
        """
        slot = self._slots[lease.slot_id]
        with slot.lock:
            self._check_lease(slot, lease)
            slot.descriptor = descriptor

    @contextmanager
    def frame_buffer(self, lease: SlotLease, width: int, height: int) -> Iterator[np.ndarray]:
        """
        Lend a pixel buffer for writing one frame.

        The buffer is the slot's spare, or a new one when there is no spare
        of the requested dimensions. No lock is held inside the ``with``
        block. On normal exit the buffer replaces the slot's current frame,
        which becomes the next spare, so readers never see a half-written
        frame. The frame counter is then bumped and the render side is
        signalled.

        Args:
            lease: Session lease
            width: Frame width in pixels
            height: Frame height in pixels

        Yields:
            (height, width, 3) uint8 buffer, private to the caller until exit

        Raises:
            SlotEvicted: The lease is stale on entry or went stale while
                the frame was being written
        """
        slot = self._slots[lease.slot_id]
        shape = (height, width, 3)

        with slot.lock:
            self._check_lease(slot, lease)
            buffer, slot.spare = slot.spare, None
            current = slot.rgb

        if buffer is None or buffer.shape != shape:
            if current is not None and current.shape != shape:
                logger.info(
                    f"Slot {slot.slot_id} buffer resized "
                    f"{current.shape[1]}x{current.shape[0]} -> {width}x{height}"
                )
            buffer = np.zeros(shape, dtype=np.uint8)

        yield buffer

        with slot.lock:
            self._check_lease(slot, lease)
            previous, slot.rgb = slot.rgb, buffer
            if previous is not None and previous.shape == shape:
                slot.spare = previous
            slot.frames += 1

        with self._lock:
            self._bump()

    def snapshot(self, include_pixels: bool = True) -> List[SlotSnapshot]:
        """
        Copy the state of every occupied slot.

        Only the slot locks are held while pixels are copied.

        Args:
            include_pixels: Copy the pixel buffers too

        Returns:
            Snapshots ordered by slot index
        """
        with self._lock:
            occupied = [slot for slot in self._slots if slot.occupied]

        snapshots = []
        for slot in occupied:
            snap = self._copy(slot, include_pixels)
            if snap is not None:
                snapshots.append(snap)
        return snapshots

    def get(self, slot_id: int, include_pixels: bool = True) -> Optional[SlotSnapshot]:
        """Snapshot of one slot, or None if it is free or out of range."""
        if not 0 <= slot_id < self.capacity:
            return None
        return self._copy(self._slots[slot_id], include_pixels)

    # -------------------------------------------------------------------------
    # Change notification
    # -------------------------------------------------------------------------

    def wait_for_update(self, last_version: int, timeout: Optional[float] = None) -> int:
        """
        Block until the table changes.

        Args:
            last_version: Version the caller has already seen
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            Current version (equal to last_version on timeout)
        """
        with self._changed:
            self._changed.wait_for(lambda: self._version != last_version, timeout=timeout)
            return self._version

    def wake(self) -> None:
        """Wake every waiter, e.g. so a render loop can notice it was stopped."""
        with self._lock:
            self._bump()

    def metrics(self) -> dict:
        """
        Get table metrics for observability.

        Returns:
            Dict with capacity, occupied, acquired/rejected/evicted totals
        """
        with self._lock:
            return {
                "capacity": self.capacity,
                "occupied": sum(1 for slot in self._slots if slot.occupied),
                "acquired_total": self._acquired_total,
                "rejected_total": self._rejected_total,
                "evicted_total": self._evicted_total,
            }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _find_by_address(self, address: str) -> Optional[_Slot]:
        for slot in self._slots:
            if slot.occupied and slot.address == address:
                return slot
        return None

    def _bump(self) -> None:
        """Advance the version and wake waiters. Caller holds the table lock."""
        self._version += 1
        self._changed.notify_all()

    @staticmethod
    def _check_lease(slot: _Slot, lease: SlotLease) -> None:
        if not slot.occupied or slot.generation != lease.generation:
            raise SlotEvicted(
                f"Slot {lease.slot_id} no longer belongs to {lease.address} "
                f"(generation {lease.generation}, current {slot.generation})"
            )

    @staticmethod
    def _copy(slot: _Slot, include_pixels: bool) -> Optional[SlotSnapshot]:
        """Snapshot one slot under its own lock. None if it is free."""
        with slot.lock:
            if not slot.occupied:
                return None
            rgb = None
            if include_pixels and slot.rgb is not None:
                rgb = slot.rgb.copy()
            return SlotSnapshot(
                slot_id=slot.slot_id,
                address=slot.address,
                descriptor=slot.descriptor,
                rgb=rgb,
                frames=slot.frames,
                connected_at=slot.connected_at,
            )

"""
Slots Module
============

Fixed-capacity registry of concurrent producer sessions.

    - SlotTable: lock-guarded registry with replace-on-reconnect semantics
    - SlotLease: a session's claim on one slot
    - SlotSnapshot: immutable copy of a slot handed to readers
"""

from yuvstream.slots.table import SlotLease, SlotSnapshot, SlotTable


__all__ = [
    "SlotLease",
    "SlotSnapshot",
    "SlotTable",
]

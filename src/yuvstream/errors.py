"""
Session Errors
==============

Exception taxonomy for the ingest protocol.

Every failure a producer connection can hit is a SessionError. The session
task catches SessionError at its top level, releases its slot and closes the
connection; nothing is retried.

Hierarchy:
    SessionError
        InvalidHeader    - header unreadable, wrong token count, non-numeric
        InvalidGeometry  - header parsed but describes an unusable image
        StreamClosed     - zero-byte read or transport error
            IdleTimeout  - a single read stalled longer than allowed
            SlotEvicted  - the same address reconnected and took the slot
    SlotExhausted        - no free slot for a new connection
"""


class SessionError(Exception):
    """Base class for failures that end a producer session."""
    pass


class InvalidHeader(SessionError):
    """Raised when the header message cannot be parsed."""
    pass


class InvalidGeometry(SessionError):
    """Raised when a parsed header declares sizes or strides that cannot be honoured."""
    pass


class StreamClosed(SessionError):
    """Raised when the transport reports end-of-stream or fails."""
    pass


class IdleTimeout(StreamClosed):
    """Raised when the producer sends nothing for longer than the idle timeout."""
    pass


class SlotEvicted(StreamClosed):
    """Raised when a session's slot was handed to a newer connection."""
    pass


class SlotExhausted(Exception):
    """Raised by SlotTable.acquire when every slot is occupied."""
    pass

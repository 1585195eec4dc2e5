"""
Stream Module
=============

Producer ingest: wire protocol, frame reassembly and pixel conversion.

This module provides the ingestion layer for yuvstream:
    - parse_header / read_header: first message -> ImageDescriptor
    - FrameAssembler: exact-size frame reassembly over short reads
    - convert_frame: planar YUV 4:2:0 -> packed RGB
    - SessionHandler: per-connection state machine
    - ConnectionAcceptor: TCP server admitting producers into slots

Example:
    from yuvstream.slots import SlotTable
    from yuvstream.stream import ConnectionAcceptor

    table = SlotTable(capacity=2)
    acceptor = ConnectionAcceptor(table, port=8080, idle_timeout=30.0)
    await acceptor.start()
"""

from yuvstream.stream.frame import Frame
from yuvstream.stream.converter import ChannelOrder, check_addressing, convert_frame
from yuvstream.stream.header import HEADER_MAX_BYTES, parse_header, read_header
from yuvstream.stream.assembler import FrameAssembler
from yuvstream.stream.session import SessionHandler, SessionMetrics, SessionState
from yuvstream.stream.acceptor import AcceptorMetrics, ConnectionAcceptor


__all__ = [
    "Frame",
    "ChannelOrder",
    "check_addressing",
    "convert_frame",
    "HEADER_MAX_BYTES",
    "parse_header",
    "read_header",
    "FrameAssembler",
    "SessionHandler",
    "SessionMetrics",
    "SessionState",
    "AcceptorMetrics",
    "ConnectionAcceptor",
]

"""
Test Configuration
==================

Pytest fixtures and test helpers for yuvstream.
"""

import asyncio
from collections import deque
from typing import Iterable, Optional

import numpy as np
import pytest


class ChunkedReader:
    """
    Stand-in for asyncio.StreamReader that delivers pre-cut chunks.

    Each read returns at most one chunk, trimmed to the requested size.
    When the chunks run out it raises ``error`` if given, else returns b"".
    """

    def __init__(self, chunks: Iterable[bytes], error: Optional[BaseException] = None) -> None:
        self._chunks = deque(bytes(c) for c in chunks)
        self._error = error
        self.requests = []

    async def read(self, n: int = -1) -> bytes:
        self.requests.append(n)
        await asyncio.sleep(0)
        if not self._chunks:
            if self._error is not None:
                raise self._error
            return b""
        chunk = self._chunks.popleft()
        if 0 <= n < len(chunk):
            self._chunks.appendleft(chunk[n:])
            chunk = chunk[:n]
        return chunk


class StalledReader:
    """Reader whose reads never complete."""

    async def read(self, n: int = -1) -> bytes:
        await asyncio.Event().wait()
        return b""


def pack_planes(y: Iterable[int], u: Iterable[int], v: Iterable[int]) -> bytes:
    """Concatenate Y, U and V regions into one frame payload."""
    return bytes(y) + bytes(u) + bytes(v)


@pytest.fixture
def chunked_reader():
    """Factory for ChunkedReader instances."""
    return ChunkedReader


@pytest.fixture
def stalled_reader():
    """A reader that never returns."""
    return StalledReader()


@pytest.fixture
def planes():
    """Helper that packs plane byte sequences into a frame payload."""
    return pack_planes


@pytest.fixture
def header_4x4() -> bytes:
    """Semi-planar 4x4 header: 16 luma bytes, two 8-byte chroma regions."""
    return b"4 4 16 8 4 1 4 2"


@pytest.fixture
def descriptor_4x4(header_4x4):
    """ImageDescriptor for the 4x4 semi-planar header."""
    from yuvstream.stream.header import parse_header

    return parse_header(header_4x4)


@pytest.fixture
def descriptor_2x1():
    """Smallest useful geometry: two pixels sharing one chroma pair."""
    from yuvstream.stream.header import parse_header

    return parse_header(b"2 1 2 2 2 1 2 2")


@pytest.fixture
def rng():
    """Deterministic random generator."""
    return np.random.default_rng(1234)

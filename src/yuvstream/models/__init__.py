"""
Data Models
===========

Pydantic models shared across yuvstream.

Models:
    - ImageDescriptor: Per-session frame geometry parsed from the header
"""

from yuvstream.models.descriptor import HEADER_FIELDS, ImageDescriptor

__all__ = [
    "HEADER_FIELDS",
    "ImageDescriptor",
]

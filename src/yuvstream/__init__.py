"""
yuvstream
=========

Live multi-producer viewer for raw planar YUV 4:2:0 camera streams.

Producers (typically phones exporting ``YUV_420_888`` camera frames) connect
over TCP, announce their frame geometry once with an ASCII header and then
stream raw frames. Each connection occupies one of a small, fixed number of
display slots. Frames are reassembled, converted to packed RGB and handed to a
renderer.

Components:
    - stream: header parsing, frame reassembly, pixel conversion, sessions
    - slots: fixed-capacity slot registry shared with the render side
    - render: renderer adapters and the background render loop
    - main: FastAPI service wiring everything together

Example:
    from yuvstream.config import settings
    from yuvstream.stream import parse_header, convert_frame

    descriptor = parse_header(b"4 4 16 8 4 1 4 2")
    print(descriptor.frame_byte_size)  # 32
"""

__version__ = "0.1.0"
__author__ = "yuvstream contributors"

__all__ = [
    "__version__",
]

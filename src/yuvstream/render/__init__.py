"""
Render Module
=============

Presentation side of the viewer.

    - Renderer: protocol every backend implements
    - NullRenderer / OpenCVRenderer: shipped backends
    - RenderLoop: thread that waits for slot updates and presents them
"""

from yuvstream.render.renderer import (
    NullRenderer,
    OpenCVRenderer,
    Renderer,
    create_renderer,
)
from yuvstream.render.loop import RenderLoop


__all__ = [
    "NullRenderer",
    "OpenCVRenderer",
    "Renderer",
    "create_renderer",
    "RenderLoop",
]

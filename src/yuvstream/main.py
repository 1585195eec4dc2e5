"""
yuvstream Main Application
==========================

FastAPI entry point for the stream viewer.

The application lifespan starts:
    - ConnectionAcceptor: TCP ingest server for producers
    - RenderLoop: background thread presenting slot frames

Endpoints:
    GET  /                          - Service information
    GET  /health                    - Liveness probe (is process alive?)
    GET  /ready                     - Readiness probe (ingest listening?)
    GET  /metrics                   - Acceptor, slot and render counters
    GET  /slots                     - Occupied slots and their geometry
    GET  /slots/{slot_id}/frame.jpg - Latest decoded frame of a slot
"""

import logging
import os
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import cv2
from fastapi import FastAPI
from fastapi.responses import JSONResponse, Response

from yuvstream import __version__
from yuvstream.config import settings
from yuvstream.render import RenderLoop, create_renderer
from yuvstream.slots import SlotTable
from yuvstream.stream import ChannelOrder, ConnectionAcceptor


logger = logging.getLogger(__name__)


# =============================================================================
# Global State
# =============================================================================

_slot_table: Optional[SlotTable] = None
_acceptor: Optional[ConnectionAcceptor] = None
_render_loop: Optional[RenderLoop] = None
_startup_time: float = 0.0


# =============================================================================
# Getters
# =============================================================================

def get_slot_table() -> Optional[SlotTable]:
    return _slot_table

def get_acceptor() -> Optional[ConnectionAcceptor]:
    return _acceptor

def get_render_loop() -> Optional[RenderLoop]:
    return _render_loop


# =============================================================================
# Lifespan Management
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan manager with graceful shutdown."""
    global _slot_table, _acceptor, _render_loop, _startup_time

    _startup_time = time.time()
    logger.info(f"Starting yuvstream {__version__}")

    channel_order = ChannelOrder(settings.session.channel_order)
    if channel_order == ChannelOrder.LEGACY_GRB:
        logger.warning("Channel order legacy_grb: red and green are swapped in output buffers")

    _slot_table = SlotTable(capacity=settings.slots.capacity)

    renderer = create_renderer(
        settings.render,
        capacity=settings.slots.capacity,
        channel_order=channel_order,
    )
    _render_loop = RenderLoop(
        _slot_table,
        renderer,
        wait_timeout=settings.render.wait_timeout_seconds,
    )
    _render_loop.start()

    _acceptor = ConnectionAcceptor(
        _slot_table,
        host=settings.server.ingest_host,
        port=settings.server.ingest_port,
        idle_timeout=settings.session.idle_timeout_seconds,
        max_frame_bytes=settings.limits.max_frame_bytes,
        max_pixels=settings.limits.max_pixels,
        channel_order=channel_order,
    )
    await _acceptor.start()

    logger.info(
        f"Ready: {settings.slots.capacity} slots, "
        f"idle_timeout={settings.session.idle_timeout_seconds}s, "
        f"channel_order={channel_order.value}"
    )

    yield

    logger.info("Shutting down gracefully...")

    if _acceptor:
        await _acceptor.stop()

    if _render_loop:
        _render_loop.stop()

    logger.info("Shutdown complete")


# =============================================================================
# FastAPI Application
# =============================================================================

app = FastAPI(
    title="yuvstream",
    description="Live multi-producer YUV 4:2:0 stream viewer",
    version=__version__,
    lifespan=lifespan,
)


# =============================================================================
# HTTP Endpoints
# =============================================================================

@app.get("/")
async def root() -> JSONResponse:
    """Service information endpoint."""
    return JSONResponse({
        "service": "yuvstream",
        "version": __version__,
        "status": "running",
        "ingest_port": _acceptor.bound_port if _acceptor else None,
        "slots": settings.slots.capacity,
        "render_backend": settings.render.backend,
        "channel_order": settings.session.channel_order,
    })


@app.get("/health")
async def health() -> JSONResponse:
    """
    Liveness probe - is the process alive?

    Always returns 200 if the service is running.
    """
    return JSONResponse({
        "status": "healthy",
        "uptime_seconds": round(time.time() - _startup_time, 1),
    })


@app.get("/ready")
async def ready() -> JSONResponse:
    """
    Readiness probe - is the ingest server accepting producers?

    Returns 200 when listening, 503 otherwise.
    """
    acceptor = get_acceptor()
    render_loop = get_render_loop()

    listening = acceptor.listening if acceptor else False
    rendering = render_loop.running if render_loop else False

    body = {
        "status": "ready" if listening else "not_ready",
        "ingest_listening": listening,
        "render_loop_running": rendering,
    }
    return JSONResponse(body, status_code=200 if listening else 503)


@app.get("/metrics")
async def metrics() -> JSONResponse:
    """Detailed metrics for observability."""
    acceptor = get_acceptor()
    table = get_slot_table()
    render_loop = get_render_loop()

    payload = {
        "uptime_seconds": round(time.time() - _startup_time, 1),
    }
    if acceptor:
        payload["acceptor"] = {
            **acceptor.metrics.to_dict(),
            "active_sessions": acceptor.active_sessions,
        }
    if table:
        payload["slots"] = table.metrics()
    if render_loop:
        payload["render"] = {
            "passes": render_loop.passes,
            "frames_presented": render_loop.frames_presented,
        }
    return JSONResponse(payload)


@app.get("/slots")
async def slots() -> JSONResponse:
    """Occupied slots with their geometry and frame counts."""
    table = get_slot_table()
    if table is None:
        return JSONResponse({"error": "Service not started"}, status_code=503)

    return JSONResponse({
        "capacity": table.capacity,
        "slots": [
            {
                "slot_id": snap.slot_id,
                "address": snap.address,
                "frames": snap.frames,
                "connected_seconds": round(time.time() - snap.connected_at, 1),
                "geometry": snap.descriptor.model_dump() if snap.descriptor else None,
            }
            for snap in table.snapshot(include_pixels=False)
        ],
    })


@app.get("/slots/{slot_id}/frame.jpg")
def slot_frame(slot_id: int) -> Response:
    """
    Latest decoded frame of a slot as JPEG.

    Plain def: FastAPI runs it in its threadpool, keeping the pixel copy
    and JPEG encoding off the event loop that serves producer sessions.
    """
    table = get_slot_table()
    snap = table.get(slot_id) if table else None

    if snap is None or snap.rgb is None:
        return JSONResponse(
            {"error": f"No frame available for slot {slot_id}"},
            status_code=404,
        )

    order = ChannelOrder(settings.session.channel_order)
    bgr = snap.rgb if order == ChannelOrder.BGR else cv2.cvtColor(snap.rgb, cv2.COLOR_RGB2BGR)
    ok, encoded = cv2.imencode(".jpg", bgr)
    if not ok:
        return JSONResponse({"error": "JPEG encoding failed"}, status_code=500)

    return Response(content=encoded.tobytes(), media_type="image/jpeg")


# =============================================================================
# Main Entry Point
# =============================================================================

def run() -> None:
    """Console entry point: serve the API and ingest server with uvicorn."""
    import uvicorn

    port = int(os.environ.get("PORT", settings.server.api_port))

    uvicorn.run(
        "yuvstream.main:app",
        host=settings.server.api_host,
        port=port,
        reload=False,
    )


if __name__ == "__main__":
    run()

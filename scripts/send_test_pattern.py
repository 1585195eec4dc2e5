#!/usr/bin/env python3
"""
Test Pattern Producer
=====================

Standalone producer that streams a synthetic moving pattern to a running
yuvstream server using the ingest wire protocol.

This script:
    1. Connects to the ingest port
    2. Sends a zero-padded 64-byte header (semi-planar chroma layout)
    3. Streams raw frames at a fixed rate for a configurable duration
    4. Logs progress and a final summary

Prerequisites:
    - yuvstream must be running (python -m yuvstream.main)

Usage:
    python scripts/send_test_pattern.py --duration 30
    python scripts/send_test_pattern.py --host 192.168.1.20 --width 320 --height 240
"""

import argparse
import asyncio
import logging
import os
import sys
import time

import cv2
import numpy as np

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from yuvstream.stream.header import HEADER_MAX_BYTES


# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_header(width: int, height: int) -> bytes:
    """
    Header for a semi-planar frame: interleaved U/V, pixel stride 2.

    Both chroma regions carry the same interleaved plane, so U is read at
    the even offset and V at the odd offset that follows it.
    """
    y_size = width * height
    uv_size = width * height // 2
    text = f"{width} {height} {y_size} {uv_size} {width} 1 {width} 2"
    return text.encode("ascii").ljust(HEADER_MAX_BYTES, b"\x00")


def render_pattern(width: int, height: int, tick: int) -> np.ndarray:
    """Colour bars with a bouncing white square, as BGR."""
    bars = [
        (255, 255, 255), (0, 255, 255), (255, 255, 0), (0, 255, 0),
        (255, 0, 255), (0, 0, 255), (255, 0, 0), (0, 0, 0),
    ]
    image = np.zeros((height, width, 3), dtype=np.uint8)
    bar_width = max(1, width // len(bars))
    for i, color in enumerate(bars):
        image[:, i * bar_width : (i + 1) * bar_width] = color

    size = max(4, min(width, height) // 6)
    span_x = max(1, width - size)
    span_y = max(1, height - size)
    x = abs((tick * 7) % (2 * span_x) - span_x)
    y = abs((tick * 5) % (2 * span_y) - span_y)
    cv2.rectangle(image, (x, y), (x + size, y + size), (255, 255, 255), -1)
    cv2.putText(image, str(tick), (4, height - 6), cv2.FONT_HERSHEY_SIMPLEX,
                0.4, (0, 0, 0), 1)
    return image


def pack_frame(bgr: np.ndarray) -> bytes:
    """BGR image -> Y plane followed by two copies of the interleaved UV plane."""
    height, width = bgr.shape[:2]
    i420 = cv2.cvtColor(bgr, cv2.COLOR_BGR2YUV_I420).ravel()

    y_size = width * height
    quarter = y_size // 4
    u = i420[y_size : y_size + quarter]
    v = i420[y_size + quarter : y_size + 2 * quarter]

    uv = np.empty(2 * quarter, dtype=np.uint8)
    uv[0::2] = u
    uv[1::2] = v
    return i420[:y_size].tobytes() + uv.tobytes() + uv.tobytes()


async def run_producer(
    host: str,
    port: int,
    width: int,
    height: int,
    fps: float,
    duration: int,
    report_interval: int,
) -> dict:
    """
    Stream the test pattern.

    Args:
        host: yuvstream ingest host
        port: yuvstream ingest port
        width: Frame width (even)
        height: Frame height (even)
        fps: Frames per second to send
        duration: Seconds to stream
        report_interval: Seconds between progress reports

    Returns:
        Final metrics dict
    """
    logger.info("=" * 60)
    logger.info(f"Streaming {width}x{height} @ {fps} fps to {host}:{port} for {duration}s")
    logger.info("=" * 60)

    reader, writer = await asyncio.open_connection(host, port)
    writer.write(build_header(width, height))
    await writer.drain()

    frames_sent = 0
    bytes_sent = 0
    start_time = time.time()
    last_report_time = start_time
    interval = 1.0 / fps

    try:
        while time.time() - start_time < duration:
            payload = pack_frame(render_pattern(width, height, frames_sent))
            writer.write(payload)
            await writer.drain()
            frames_sent += 1
            bytes_sent += len(payload)

            if time.time() - last_report_time >= report_interval:
                logger.info(f"  Frames sent: {frames_sent} ({bytes_sent / 1e6:.1f} MB)")
                last_report_time = time.time()

            await asyncio.sleep(interval)
    except (ConnectionResetError, BrokenPipeError) as e:
        logger.error(f"Server closed the connection: {e}")
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass

    total_time = time.time() - start_time
    logger.info("=" * 60)
    logger.info("FINAL SUMMARY")
    logger.info("=" * 60)
    logger.info(f"Frames sent: {frames_sent}")
    logger.info(f"Average FPS: {frames_sent / total_time if total_time > 0 else 0:.1f}")
    logger.info("=" * 60)

    return {
        "duration": total_time,
        "frames_sent": frames_sent,
        "bytes_sent": bytes_sent,
    }


def main():
    parser = argparse.ArgumentParser(
        description="Stream a synthetic YUV 4:2:0 test pattern to yuvstream"
    )
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Ingest host")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("YUVSTREAM_INGEST_PORT", "8080")),
        help="Ingest port (default: 8080)",
    )
    parser.add_argument("--width", type=int, default=320, help="Frame width (even)")
    parser.add_argument("--height", type=int, default=240, help="Frame height (even)")
    parser.add_argument("--fps", type=float, default=15.0, help="Frames per second")
    parser.add_argument("--duration", type=int, default=30, help="Seconds to stream")
    parser.add_argument(
        "--report-interval",
        type=int,
        default=5,
        help="Seconds between progress reports (default: 5)",
    )

    args = parser.parse_args()

    if args.width % 2 or args.height % 2:
        parser.error("width and height must be even")

    result = asyncio.run(run_producer(
        host=args.host,
        port=args.port,
        width=args.width,
        height=args.height,
        fps=args.fps,
        duration=args.duration,
        report_interval=args.report_interval,
    ))

    sys.exit(0 if result["frames_sent"] > 0 else 1)


if __name__ == "__main__":
    main()

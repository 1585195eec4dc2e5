"""
yuvstream Configuration
=======================

This module handles configuration loading for the stream viewer.

Configuration Sources (in order of precedence):
    1. Environment variables (highest priority)
    2. config.yaml file
    3. Default values (lowest priority)

Environment Variable Mapping:
    YUVSTREAM_INGEST_PORT     -> server.ingest_port
    YUVSTREAM_API_PORT        -> server.api_port
    PORT                      -> server.api_port (container platforms)
    YUVSTREAM_SLOT_CAPACITY   -> slots.capacity
    YUVSTREAM_IDLE_TIMEOUT    -> session.idle_timeout_seconds
    YUVSTREAM_CHANNEL_ORDER   -> session.channel_order
    YUVSTREAM_MAX_FRAME_BYTES -> limits.max_frame_bytes
    YUVSTREAM_MAX_PIXELS      -> limits.max_pixels
    YUVSTREAM_RENDER_BACKEND  -> render.backend
    YUVSTREAM_LOG_LEVEL       -> logging.level

Example:
    from yuvstream.config import settings

    print(settings.server.ingest_port)
    print(settings.slots.capacity)
"""

import os
import logging
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field


logger = logging.getLogger(__name__)


# =============================================================================
# Configuration Models
# =============================================================================

class ServerConfig(BaseModel):
    """Listening addresses for frame ingest and the HTTP API."""

    ingest_host: str = Field(default="0.0.0.0", description="Ingest bind host")
    ingest_port: int = Field(default=8080, ge=0, le=65535, description="Ingest TCP port")
    api_host: str = Field(default="0.0.0.0", description="HTTP API bind host")
    api_port: int = Field(default=8081, ge=1, le=65535, description="HTTP API port")


class SlotsConfig(BaseModel):
    """Display slot registry configuration."""

    capacity: int = Field(
        default=2,
        ge=1,
        le=8,
        description="Number of producers that may stream concurrently",
    )


class SessionConfig(BaseModel):
    """Per-connection session behaviour."""

    idle_timeout_seconds: float = Field(
        default=30.0,
        ge=0,
        description="Close a session when a single read stalls this long (0 = never)",
    )
    channel_order: Literal["rgb", "bgr", "legacy_grb"] = Field(
        default="rgb",
        description="Byte order of the decoded pixel buffer",
    )


class LimitsConfig(BaseModel):
    """Resource limits applied to producer-declared geometry."""

    max_frame_bytes: int = Field(
        default=64 * 1024 * 1024,
        ge=1,
        description="Largest accepted frame (ySize + 2 * uvSize) in bytes",
    )
    max_pixels: int = Field(
        default=16_777_216,
        ge=1,
        description="Largest accepted width * height, bounds the per-session pixel buffers",
    )


class RenderConfig(BaseModel):
    """Renderer selection and presentation settings."""

    backend: Literal["null", "opencv"] = Field(
        default="null",
        description="Renderer backend: 'null' (log only) or 'opencv' (HighGUI window)",
    )
    window_name: str = Field(default="yuvstream", description="OpenCV window title")
    tile_height: int = Field(
        default=384,
        ge=16,
        description="Height in pixels each slot is scaled to in the window",
    )
    wait_timeout_seconds: float = Field(
        default=0.5,
        gt=0,
        description="Upper bound on one render-loop wait for new frames",
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format: json or text")


class Settings(BaseModel):
    """
    Main settings class for yuvstream.

    Loads configuration from YAML file and environment variables.
    Environment variables take precedence over file values.
    """

    server: ServerConfig = Field(default_factory=ServerConfig)
    slots: SlotsConfig = Field(default_factory=SlotsConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    limits: LimitsConfig = Field(default_factory=LimitsConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading
# =============================================================================

def load_config(config_path: Optional[str] = None) -> Settings:
    """
    Load configuration from YAML file and environment variables.

    Priority (highest to lowest):
        1. Environment variables
        2. YAML config file
        3. Default values

    Args:
        config_path: Path to config.yaml. If None, searches common locations.

    Returns:
        Settings: Loaded configuration
    """
    if config_path is None:
        env_path = os.environ.get("YUVSTREAM_CONFIG")
        search_paths = [
            Path(env_path) if env_path else None,
            Path("config.yaml"),
            Path("config.yml"),
            Path(__file__).parent.parent.parent / "config.yaml",
        ]
        for path in search_paths:
            if path is not None and path.exists():
                config_path = str(path)
                break

    config_data = {}
    if config_path and Path(config_path).exists():
        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    else:
        logger.debug("No config file found, using defaults and environment variables")

    _apply_env_overrides(config_data)

    return Settings.model_validate(config_data)


def _apply_env_overrides(config_data: dict) -> None:
    """Apply environment variable overrides to config data."""

    # Server settings (container platforms use PORT for the HTTP side)
    if env_ingest := os.environ.get("YUVSTREAM_INGEST_PORT"):
        config_data.setdefault("server", {})["ingest_port"] = int(env_ingest)
    if env_port := os.environ.get("PORT"):
        config_data.setdefault("server", {})["api_port"] = int(env_port)
    elif env_port := os.environ.get("YUVSTREAM_API_PORT"):
        config_data.setdefault("server", {})["api_port"] = int(env_port)

    if env_capacity := os.environ.get("YUVSTREAM_SLOT_CAPACITY"):
        config_data.setdefault("slots", {})["capacity"] = int(env_capacity)

    # Session settings
    if env_timeout := os.environ.get("YUVSTREAM_IDLE_TIMEOUT"):
        config_data.setdefault("session", {})["idle_timeout_seconds"] = float(env_timeout)
    if env_order := os.environ.get("YUVSTREAM_CHANNEL_ORDER"):
        config_data.setdefault("session", {})["channel_order"] = env_order.lower()

    if env_max := os.environ.get("YUVSTREAM_MAX_FRAME_BYTES"):
        config_data.setdefault("limits", {})["max_frame_bytes"] = int(env_max)
    if env_pixels := os.environ.get("YUVSTREAM_MAX_PIXELS"):
        config_data.setdefault("limits", {})["max_pixels"] = int(env_pixels)

    if env_backend := os.environ.get("YUVSTREAM_RENDER_BACKEND"):
        config_data.setdefault("render", {})["backend"] = env_backend.lower()

    if env_log := os.environ.get("YUVSTREAM_LOG_LEVEL"):
        config_data.setdefault("logging", {})["level"] = env_log


def setup_logging(settings: Settings) -> None:
    """Configure logging based on settings."""
    log_level = getattr(logging, settings.logging.level.upper(), logging.INFO)

    if settings.logging.format == "json":
        log_format = '{"time": "%(asctime)s", "level": "%(levelname)s", "module": "%(name)s", "thread": "%(threadName)s", "message": "%(message)s"}'
    else:
        log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=log_level,
        format=log_format,
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


# =============================================================================
# Global Settings Instance
# =============================================================================

# Global settings instance - loaded on import
settings = load_config()
setup_logging(settings)

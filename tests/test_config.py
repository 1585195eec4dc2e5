"""
Configuration Tests
===================

YAML loading and environment overrides.
"""

import pytest
from pydantic import ValidationError

from yuvstream.config import load_config


ENV_VARS = (
    "YUVSTREAM_CONFIG",
    "YUVSTREAM_INGEST_PORT",
    "YUVSTREAM_API_PORT",
    "PORT",
    "YUVSTREAM_SLOT_CAPACITY",
    "YUVSTREAM_IDLE_TIMEOUT",
    "YUVSTREAM_CHANNEL_ORDER",
    "YUVSTREAM_MAX_FRAME_BYTES",
    "YUVSTREAM_MAX_PIXELS",
    "YUVSTREAM_RENDER_BACKEND",
    "YUVSTREAM_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults(tmp_path):
    settings = load_config(str(tmp_path / "missing.yaml"))

    assert settings.server.ingest_port == 8080
    assert settings.server.api_port == 8081
    assert settings.slots.capacity == 2
    assert settings.session.idle_timeout_seconds == 30.0
    assert settings.session.channel_order == "rgb"
    assert settings.limits.max_frame_bytes == 64 * 1024 * 1024
    assert settings.limits.max_pixels == 4096 * 4096
    assert settings.render.backend == "null"


def test_yaml_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "slots:\n"
        "  capacity: 4\n"
        "session:\n"
        "  idle_timeout_seconds: 0\n"
        "  channel_order: legacy_grb\n"
        "render:\n"
        "  backend: opencv\n"
        "  tile_height: 240\n"
    )

    settings = load_config(str(path))

    assert settings.slots.capacity == 4
    assert settings.session.idle_timeout_seconds == 0
    assert settings.session.channel_order == "legacy_grb"
    assert settings.render.backend == "opencv"
    assert settings.render.tile_height == 240
    assert settings.server.ingest_port == 8080


def test_empty_yaml(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("")

    assert load_config(str(path)).slots.capacity == 2


def test_env_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("slots:\n  capacity: 4\nserver:\n  ingest_port: 9000\n")
    monkeypatch.setenv("YUVSTREAM_SLOT_CAPACITY", "3")
    monkeypatch.setenv("YUVSTREAM_INGEST_PORT", "9100")
    monkeypatch.setenv("YUVSTREAM_IDLE_TIMEOUT", "2.5")
    monkeypatch.setenv("YUVSTREAM_CHANNEL_ORDER", "BGR")
    monkeypatch.setenv("YUVSTREAM_MAX_FRAME_BYTES", "1024")
    monkeypatch.setenv("YUVSTREAM_MAX_PIXELS", "307200")
    monkeypatch.setenv("YUVSTREAM_RENDER_BACKEND", "OpenCV")

    settings = load_config(str(path))

    assert settings.slots.capacity == 3
    assert settings.server.ingest_port == 9100
    assert settings.session.idle_timeout_seconds == 2.5
    assert settings.session.channel_order == "bgr"
    assert settings.limits.max_frame_bytes == 1024
    assert settings.limits.max_pixels == 307200
    assert settings.render.backend == "opencv"


def test_port_takes_precedence(tmp_path, monkeypatch):
    monkeypatch.setenv("YUVSTREAM_API_PORT", "9001")
    monkeypatch.setenv("PORT", "9002")

    assert load_config(str(tmp_path / "missing.yaml")).server.api_port == 9002


def test_config_path_from_env(tmp_path, monkeypatch):
    path = tmp_path / "custom.yaml"
    path.write_text("slots:\n  capacity: 5\n")
    monkeypatch.setenv("YUVSTREAM_CONFIG", str(path))

    assert load_config().slots.capacity == 5


@pytest.mark.parametrize(
    "yaml_text",
    [
        "session:\n  channel_order: grb\n",
        "slots:\n  capacity: 0\n",
        "session:\n  idle_timeout_seconds: -1\n",
        "render:\n  backend: vulkan\n",
        "limits:\n  max_pixels: 0\n",
    ],
)
def test_invalid_values_rejected(tmp_path, yaml_text):
    path = tmp_path / "config.yaml"
    path.write_text(yaml_text)

    with pytest.raises(ValidationError):
        load_config(str(path))

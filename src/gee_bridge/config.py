"""
Central configuration loader for gee-bridge.

Settings come from an optional YAML file (``$GEE_BRIDGE_CONFIG`` or
``./config.yaml``) with a ``gee:`` section, and environment variables, which
take precedence:

    gee:
      project: my-cloud-project
      bucket: my-export-bucket
      tile_server: https://titiler.xyz
      tile_matrix_set: WebMercatorQuad
      poll_interval: 30
      max_pixels: 1.0e13
"""

import os
from pathlib import Path

import yaml

DEFAULT_TILE_SERVER = "https://titiler.xyz"
DEFAULT_TILE_MATRIX_SET = "WebMercatorQuad"
DEFAULT_POLL_INTERVAL = 30
DEFAULT_MAX_PIXELS = 1e13


def config_path() -> Path:
    """Return the path of the YAML configuration file (it may not exist)."""
    return Path(os.environ.get("GEE_BRIDGE_CONFIG", "config.yaml"))


def load_config(path: str | Path | None = None) -> dict:
    """Load configuration from a YAML file or return an empty mapping."""
    path = Path(path) if path is not None else config_path()
    if path.exists():
        with open(path) as f:
            return yaml.safe_load(f) or {}
    return {}


def _gee_section(config: dict) -> dict:
    return config.get("gee", {}) or {}


_gee_config = _gee_section(load_config())

# Public Constants (empty YAML values fall back to the defaults)
GEE_PROJECT = (
    os.environ.get("EE_PROJECT")
    or os.environ.get("GOOGLE_CLOUD_PROJECT")
    or _gee_config.get("project")
)
GCS_BUCKET = os.environ.get("GEE_BRIDGE_BUCKET") or _gee_config.get("bucket")
TILE_SERVER = (
    os.environ.get("GEE_BRIDGE_TILE_SERVER")
    or _gee_config.get("tile_server")
    or DEFAULT_TILE_SERVER
).rstrip("/")
TILE_MATRIX_SET = _gee_config.get("tile_matrix_set") or DEFAULT_TILE_MATRIX_SET
POLL_INTERVAL = int(_gee_config.get("poll_interval") or DEFAULT_POLL_INTERVAL)
MAX_PIXELS = float(_gee_config.get("max_pixels") or DEFAULT_MAX_PIXELS)

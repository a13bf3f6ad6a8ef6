"""
castore configuration — TOML file with defaults.

Lookup order: explicit path, $CASTORE_CONFIG, ~/.castore/config.toml.

Example config.toml:
    root = "/var/lib/castore"
    storage_dir = "storage"        # relative paths resolve against root
    bloom_expected_items = 10000
    bloom_fp_rate = 0.001
    log_level = "DEBUG"
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from castore import BLOOM_DEFAULT_FP_RATE, BLOOM_DEFAULT_ITEMS

log = logging.getLogger(__name__)

CONFIG_ENV_VAR = "CASTORE_CONFIG"

_DEFAULT_ROOT = Path.home() / ".castore"

DEFAULT_CONFIG = {
    "root": str(_DEFAULT_ROOT),
    "storage_dir": "storage",
    "watch_dir": "watch",
    "registry": "registry.json",
    "bloom_expected_items": BLOOM_DEFAULT_ITEMS,
    "bloom_fp_rate": BLOOM_DEFAULT_FP_RATE,
    "log_level": "INFO",
}

_PATH_KEYS = ("storage_dir", "watch_dir", "registry")


def _resolve_paths(config: dict[str, Any]) -> dict[str, Any]:
    """Turn path settings into absolute Paths under ``root``."""
    root = Path(config["root"]).expanduser()
    config["root"] = root
    for key in _PATH_KEYS:
        path = Path(config[key]).expanduser()
        config[key] = path if path.is_absolute() else root / path
    return config


def load_config(config_path: Path | None = None) -> dict[str, Any]:
    """Load config from TOML, falling back to defaults."""
    config = dict(DEFAULT_CONFIG)

    if config_path is None and os.environ.get(CONFIG_ENV_VAR):
        config_path = Path(os.environ[CONFIG_ENV_VAR])
    path = config_path or (_DEFAULT_ROOT / "config.toml")

    if path.is_file():
        try:
            import tomllib
        except ImportError:
            import tomli as tomllib

        try:
            with open(path, "rb") as f:
                file_config = tomllib.load(f)
            config.update(file_config)
        except (OSError, tomllib.TOMLDecodeError) as e:
            log.warning("Failed to load config from %s: %s", path, e)

    return _resolve_paths(config)

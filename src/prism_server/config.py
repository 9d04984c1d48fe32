"""Configuration loading utilities for the palette server.

This module handles layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable PRISM_CONFIG
3. Fallback to "config/default.yaml"

It also supports optional overrides from environment variables with prefix
``PRISM__`` (e.g., PRISM__MODEL__API_TOKEN=... or PRISM__HISTORY__MAX_ENTRIES=20).
"""

from __future__ import annotations

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

ENV_PREFIX = "PRISM__"

DEFAULTS: Dict[str, Any] = {
    "server": {"host": "127.0.0.1", "port": 8000, "log_level": "INFO"},
    "model": {
        "backend": "workers_ai",
        "name": "@cf/meta/llama-3.3-70b-instruct-fp8-fast",
        "base_url": "https://api.cloudflare.com/client/v4",
        "timeout": 60,
        "max_tokens": 512,
        "temperature": 0.7,
    },
    "history": {
        "data_dir": "data/history",
        "max_entries": 50,
        "retention": "truncate_on_read",
        "default_user": "default-user",
        "persist_wait": 5.0,
    },
    "palette": {},
}


def _merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix PRISM__."""
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        # e.g., PRISM__HISTORY__DATA_DIR -> cfg["history"]["data_dir"]
        parts = key[len(ENV_PREFIX):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        leaf = parts[-1]
        # Attempt to parse simple types (bool, int, float)
        if value.lower() in {"true", "false"}:
            sub[leaf] = value.lower() == "true"
        else:
            try:
                if "." in value:
                    sub[leaf] = float(value)
                else:
                    sub[leaf] = int(value)
            except ValueError:
                sub[leaf] = value
    return cfg


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load YAML configuration for the palette server.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``PRISM_CONFIG`` is consulted. As a
        last resort ``config/default.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        Built-in defaults merged with the file contents, with environment
        overrides applied.
    """
    if path is None:
        path = os.environ.get("PRISM_CONFIG", "config/default.yaml")

    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("Config file not found at %s. Using defaults.", path_obj)
        return _apply_env_overrides(copy.deepcopy(DEFAULTS))

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            cfg = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}")

    if not isinstance(cfg, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(_merge(DEFAULTS, cfg))

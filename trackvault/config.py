#!/usr/bin/env python3
"""
Centralized configuration for trackvault with env var overrides.
- User config file: ~/.config/trackvault/config.json
- Precedence: environment > user config file > built-in defaults
- Types exposed to the app:
  - DB_PATH: Path
  - STORE_ROOT: Path
  - STORE_EXTENSION: str (no leading dot)
  - AUDIO_EXTENSIONS: set[str] (lowercase, with leading dot)
  - ANALYSIS_SUFFIX: str
  - ANALYZER: str ("module:attribute" or empty for the sidecar analyzer)
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from rich.console import Console

logger = logging.getLogger(__name__)

# Paths
CONFIG_DIR = Path.home() / ".config" / "trackvault"
CONFIG_FILE = CONFIG_DIR / "config.json"

console = Console()

# Built-in defaults (sane, user-agnostic)
DEFAULTS = {
    "DB_PATH": str(CONFIG_DIR / "catalog.db"),
    "STORE_ROOT": str(Path.home() / "Music" / "trackvault"),
    "STORE_EXTENSION": "opus",
    "AUDIO_EXTENSIONS": [".opus", ".ogg", ".flac", ".mp3", ".m4a", ".wav"],
    "ANALYSIS_SUFFIX": ".analysis.json",
    "ANALYZER": "",
}

# Environment variable mapping
ENV_MAP = {
    "DB_PATH": "TRACKVAULT_DB_PATH",
    "STORE_ROOT": "TRACKVAULT_STORE_ROOT",
    "STORE_EXTENSION": "TRACKVAULT_STORE_EXTENSION",
    "AUDIO_EXTENSIONS": "TRACKVAULT_AUDIO_EXTENSIONS",  # comma-separated list
    "ANALYSIS_SUFFIX": "TRACKVAULT_ANALYSIS_SUFFIX",
    "ANALYZER": "TRACKVAULT_ANALYZER",
}


def _load_user_file(path: Path = CONFIG_FILE) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return {}
    if not isinstance(data, dict):
        logger.warning(f"Ignoring config file {path}: expected a JSON object")
        return {}
    return data


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(cfg)
    for key, env_name in ENV_MAP.items():
        val = os.getenv(env_name)
        if val is None:
            continue
        if key == "AUDIO_EXTENSIONS":
            out[key] = [s for s in (v.strip() for v in val.split(",")) if s]
        else:
            out[key] = val
    return out


def _coerce_extensions(values: Any) -> set[str]:
    if isinstance(values, str):
        values = values.split(",")
    exts = set()
    for v in values or []:
        v = str(v).strip().lower()
        if not v:
            continue
        exts.add(v if v.startswith(".") else f".{v}")
    return exts


def _coerce_types(eff: Dict[str, Any]) -> Dict[str, Any]:
    # Convert to the types expected by the app
    eff["DB_PATH"] = Path(str(eff["DB_PATH"])).expanduser()
    eff["STORE_ROOT"] = Path(str(eff["STORE_ROOT"])).expanduser()
    ext = str(eff.get("STORE_EXTENSION") or "").strip().lstrip(".")
    eff["STORE_EXTENSION"] = ext or DEFAULTS["STORE_EXTENSION"]
    exts = _coerce_extensions(eff.get("AUDIO_EXTENSIONS"))
    eff["AUDIO_EXTENSIONS"] = exts or _coerce_extensions(DEFAULTS["AUDIO_EXTENSIONS"])
    eff["ANALYSIS_SUFFIX"] = str(eff.get("ANALYSIS_SUFFIX") or DEFAULTS["ANALYSIS_SUFFIX"])
    eff["ANALYZER"] = str(eff.get("ANALYZER") or "").strip()
    return eff


def load_config(path: Path = CONFIG_FILE) -> Dict[str, Any]:
    """Load effective config: env > file > defaults, coerced to expected types."""
    merged = DEFAULTS | _load_user_file(path)
    merged = _apply_env_overrides(merged)
    return _coerce_types(merged)


# Exposed module-level config used by the CLI
config = load_config()

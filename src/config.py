"""Configuration read from the environment.

Every setting is a module-level constant so the server can import what it
needs. Malformed numeric values fall back to their defaults.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Callable, Optional, TypeVar

T = TypeVar("T")

_TRUTHY = {"1", "true", "yes", "y", "on"}


def _env_str(name: str, default: str = "") -> str:
    return (os.environ.get(name) or default).strip()


def _env_parsed(name: str, default: T, parse: Callable[[str], T]) -> T:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return parse(raw.strip())
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    return _env_parsed(name, default, lambda raw: raw.lower() in _TRUTHY)


def _env_path(name: str) -> Optional[Path]:
    raw = _env_str(name)
    return Path(raw).resolve() if raw else None


# Bitbucket Server
BITBUCKET_HOST = _env_str("BITBUCKET_HOST")
BITBUCKET_API_BASE_URL = _env_str("BITBUCKET_API_BASE_URL")
BITBUCKET_TOKEN = _env_str("BITBUCKET_TOKEN")
BITBUCKET_USERNAME = _env_str("BITBUCKET_USERNAME")
BITBUCKET_PASSWORD = os.environ.get("BITBUCKET_PASSWORD", "")
BITBUCKET_TIMEOUT = _env_parsed("BITBUCKET_TIMEOUT", 20.0, float)
BITBUCKET_MAX_CONCURRENCY = _env_parsed("BITBUCKET_MAX_CONCURRENCY", 5, int)
BITBUCKET_RATE_PER_SEC = _env_parsed("BITBUCKET_RATE_PER_SEC", 0.0, float)

# Network / HTTP
HTTP_VERIFY = _env_bool("HTTP_VERIFY", True)

# Limits / output
MAX_FILE_CHARS = _env_parsed("MAX_FILE_CHARS", 200_000, int)

# Parent directory for per-call extraction areas (system temp dir when unset)
TREE_WORKSPACE_DIR = _env_path("TREE_WORKSPACE_DIR")

# Logging
LOG_LEVEL = _env_str("LOG_LEVEL", "WARNING").upper() or "WARNING"

"""Utility functions for bhyve-vm-runner."""

from __future__ import annotations

import os
import subprocess
import uuid
from pathlib import Path
from typing import List, Optional

from vmrunner.constants import _LOG_VERBOSE, SIZE_RE, TRUTHY
from vmrunner.exceptions import ManagerError


def log(level: str, message: str) -> None:
    """Lightweight structured logging with coloured level tags."""
    if level == "DEBUG" and not _LOG_VERBOSE:
        return
    colours = {
        "INFO": "\033[0;34m",
        "WARN": "\033[1;33m",
        "ERROR": "\033[0;31m",
        "SUCCESS": "\033[0;32m",
        "DEBUG": "\033[0;90m",
    }
    colour = colours.get(level, "")
    reset = "\033[0m" if colour else ""
    print(f"{colour}[{level}]{reset} {message}", flush=True)


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(name, default)


def parse_bool(name: str, raw) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int):
        return raw != 0
    if isinstance(raw, str):
        return raw.strip().lower() in TRUTHY
    raise ManagerError(f"{name} must be a boolean (got {raw!r})")


def parse_int(name: str, raw, min_val: int = 1, max_val: Optional[int] = None) -> int:
    if isinstance(raw, bool):
        raise ManagerError(f"{name} must be an integer (got '{raw}')")
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise ManagerError(f"{name} must be an integer (got '{raw}')")
    if value < min_val:
        raise ManagerError(f"{name} must be >= {min_val} (got {value})")
    if max_val is not None and value > max_val:
        raise ManagerError(f"{name} must be <= {max_val} (got {value})")
    return value


def validate_size(name: str, raw: str) -> str:
    if not SIZE_RE.match(str(raw)):
        raise ManagerError(
            f"Invalid {name} '{raw}'. Use a number with optional suffix: K, M, G, T (e.g. '256M')"
        )
    return str(raw)


def validate_uuid(raw: str) -> str:
    try:
        uuid.UUID(str(raw))
    except ValueError:
        raise ManagerError(f"Invalid UUID '{raw}'")
    return str(raw)


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def generate_uuid() -> str:
    return str(uuid.uuid4())


def run(cmd: List[str], check: bool = True, **kwargs) -> subprocess.CompletedProcess:
    """Run command with logging."""
    log("DEBUG", f"Running: {' '.join(cmd)}")
    result = subprocess.run(cmd, check=check, text=True, **kwargs)
    return result

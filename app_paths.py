"""Application path helpers.

- Portable mode: keep config and logs in TransmissionRemote_Data next to the
  code when that location is writable.
- Installed mode: fall back to the per-user data directory (APPDATA on
  Windows, XDG_DATA_HOME or ~/.local/share elsewhere).
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Optional

APP_DIR_NAME = "TransmissionRemote"
PORTABLE_DATA_DIR_NAME = "TransmissionRemote_Data"
DATA_DIR_ENV = "TRANSMISSION_REMOTE_DATA"

_CACHED_DATA_DIR: Optional[str] = None


def _is_writable_dir(path: str) -> bool:
    try:
        p = Path(path)
        p.mkdir(parents=True, exist_ok=True)
        probe = p / ".write_test"
        probe.write_text("ok", encoding="utf-8")
        probe.unlink()
        return True
    except OSError:
        return False


def get_portable_base_dir() -> str:
    if getattr(sys, "frozen", False):
        return os.path.dirname(sys.executable)
    return os.path.dirname(os.path.abspath(__file__))


def get_user_data_base_dir() -> str:
    if sys.platform == "win32":
        base = os.environ.get("APPDATA") or os.environ.get("LOCALAPPDATA")
        if base:
            return base

    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return xdg

    return os.path.join(os.path.expanduser("~"), ".local", "share")


def get_data_dir() -> str:
    """Directory holding config.json and logs/."""
    global _CACHED_DATA_DIR
    if _CACHED_DATA_DIR:
        return _CACHED_DATA_DIR

    override = os.environ.get(DATA_DIR_ENV)
    if override:
        _CACHED_DATA_DIR = ensure_dir(override)
        return _CACHED_DATA_DIR

    portable_dir = os.path.join(get_portable_base_dir(), PORTABLE_DATA_DIR_NAME)
    if os.path.isdir(portable_dir) and _is_writable_dir(portable_dir):
        _CACHED_DATA_DIR = portable_dir
        return _CACHED_DATA_DIR

    _CACHED_DATA_DIR = ensure_dir(os.path.join(get_user_data_base_dir(), APP_DIR_NAME))
    return _CACHED_DATA_DIR


def ensure_dir(path: str) -> str:
    Path(path).mkdir(parents=True, exist_ok=True)
    return path


def get_config_path() -> str:
    return os.path.join(get_data_dir(), "config.json")


def get_logs_dir() -> str:
    return ensure_dir(os.path.join(get_data_dir(), "logs"))


def get_log_path(filename: str = "app.log") -> str:
    return os.path.join(get_logs_dir(), filename)

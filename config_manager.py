"""Config management for TransmissionRemote.

Stores connection profiles and client preferences in a JSON file inside the
app data directory. Missing keys are filled from defaults; a corrupt file is
replaced by defaults in memory and left on disk untouched.
"""

from __future__ import annotations

import json
import logging
import os
import uuid
from typing import Any, Dict, Optional

from app_paths import get_config_path

logger = logging.getLogger(__name__)


def _read_json(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _write_json(path: str, data: Dict[str, Any]) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=4)


CONFIG_FILE = get_config_path()

DEFAULT_RPC_PATH = "/transmission/rpc"
DEFAULT_PORT = 9091

DEFAULT_PREFERENCES: Dict[str, Any] = {
    "update_interval": 3,  # seconds between torrent-list polls
    "request_timeout": 30,  # seconds per RPC request
    "verify_ssl": True,
    "start_paused": False,
    "log_level": "INFO",
}

DEFAULT_PROFILE: Dict[str, Any] = {
    "name": "",
    "host": "",
    "port": DEFAULT_PORT,
    "path": DEFAULT_RPC_PATH,
    "ssl": False,
    "user": "",
    "password": "",
    "auto_connect": False,
}


def _default_config() -> Dict[str, Any]:
    return {
        "default_profile": "",
        "profiles": {},  # uuid -> profile dict
        "preferences": dict(DEFAULT_PREFERENCES),
    }


def profile_url(profile: Dict[str, Any]) -> str:
    """RPC endpoint for a profile, e.g. ``http://nas:9091/transmission/rpc``."""
    if profile.get("url"):
        return str(profile["url"])
    scheme = "https" if profile.get("ssl") else "http"
    host = profile.get("host") or "localhost"
    port = profile.get("port") or DEFAULT_PORT
    path = profile.get("path") or DEFAULT_RPC_PATH
    if not path.startswith("/"):
        path = "/" + path
    return f"{scheme}://{host}:{port}{path}"


class ConfigManager:
    def __init__(self, path: Optional[str] = None) -> None:
        self.path = path or CONFIG_FILE
        self.config: Dict[str, Any] = self.load_config()

    def _normalize(self, cfg: Dict[str, Any]) -> Dict[str, Any]:
        if not isinstance(cfg, dict):
            return _default_config()
        prefs = cfg.get("preferences")
        if not isinstance(prefs, dict):
            prefs = {}
        for k, v in DEFAULT_PREFERENCES.items():
            prefs.setdefault(k, v)
        cfg["preferences"] = prefs

        profiles = cfg.get("profiles")
        if not isinstance(profiles, dict):
            profiles = {}
        for pid, p in list(profiles.items()):
            if not isinstance(p, dict):
                del profiles[pid]
                continue
            for k, v in DEFAULT_PROFILE.items():
                p.setdefault(k, v)
        cfg["profiles"] = profiles

        cfg.setdefault("default_profile", "")
        return cfg

    def load_config(self) -> Dict[str, Any]:
        if os.path.exists(self.path):
            try:
                return self._normalize(_read_json(self.path))
            except (OSError, ValueError) as e:
                logger.warning("Could not read %s, using defaults: %s", self.path, e)
                return _default_config()

        # First run: write the defaults out.
        cfg = _default_config()
        try:
            _write_json(self.path, cfg)
        except OSError as e:
            logger.warning("Could not create %s: %s", self.path, e)
        return cfg

    def save_config(self) -> None:
        _write_json(self.path, self.config)

    def get_preferences(self) -> Dict[str, Any]:
        return dict(self.config.get("preferences", DEFAULT_PREFERENCES))

    def set_preferences(self, prefs: Dict[str, Any]) -> None:
        merged = self.get_preferences()
        merged.update(prefs)
        self.config["preferences"] = merged
        self.save_config()

    def get_profiles(self) -> Dict[str, Any]:
        profiles = self.config.get("profiles", {})
        return profiles if isinstance(profiles, dict) else {}

    def get_profile(self, pid: str) -> Optional[Dict[str, Any]]:
        return self.get_profiles().get(pid)

    def add_profile(self, name: str, host: str, **fields: Any) -> str:
        pid = str(uuid.uuid4())
        profile = dict(DEFAULT_PROFILE)
        profile.update({k: v for k, v in fields.items() if k in DEFAULT_PROFILE})
        profile["name"] = name
        profile["host"] = host
        self.config.setdefault("profiles", {})[pid] = profile
        if not self.get_default_profile_id():
            self.config["default_profile"] = pid
        self.save_config()
        return pid

    def update_profile(self, pid: str, **fields: Any) -> None:
        if pid in self.get_profiles():
            self.config["profiles"][pid].update({k: v for k, v in fields.items() if k in DEFAULT_PROFILE})
            self.save_config()

    def delete_profile(self, pid: str) -> None:
        if pid in self.get_profiles():
            del self.config["profiles"][pid]
            if self.config.get("default_profile") == pid:
                self.config["default_profile"] = ""
            self.save_config()

    def get_default_profile_id(self) -> str:
        return str(self.config.get("default_profile", ""))

    def set_default_profile_id(self, pid: str) -> None:
        self.config["default_profile"] = pid
        self.save_config()

    def get_default_profile(self) -> Optional[Dict[str, Any]]:
        pid = self.get_default_profile_id()
        return self.get_profile(pid) if pid else None

"""Configuration loader for Proximity."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict
import os
import yaml

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "default.yaml"
USER_CONFIG_PATH = Path.home() / ".config" / "proximity" / "config.yaml"

_TRUTHY = ("true", "1", "yes")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _apply_env(data: Dict[str, Any]) -> Dict[str, Any]:
    # Environment overrides - Server
    host = os.getenv("PROXIMITY_HOST")
    port = os.getenv("PROXIMITY_PORT")
    if host:
        data.setdefault("server", {})["host"] = host
    if port:
        try:
            data.setdefault("server", {})["port"] = int(port)
        except ValueError:
            pass

    data_dir = os.getenv("PROXIMITY_DATA_DIR")
    if data_dir:
        data["data_dir"] = data_dir

    # Environment overrides - Backends
    ollama_url = os.getenv("PROXIMITY_OLLAMA_URL")
    if ollama_url:
        data.setdefault("ollama", {})["base_url"] = ollama_url
    prefs_url = os.getenv("PROXIMITY_PREFERENCES_URL")
    if prefs_url:
        data.setdefault("preferences", {})["base_url"] = prefs_url
    encryption_url = os.getenv("PROXIMITY_ENCRYPTION_URL")
    if encryption_url:
        data.setdefault("connectivity", {})["base_url"] = encryption_url

    username = os.getenv("PROXIMITY_USERNAME")
    if username:
        data.setdefault("preferences", {})["username"] = username
    platform = os.getenv("PROXIMITY_PLATFORM")
    if platform:
        data["platform"] = platform

    turn_timeout = os.getenv("PROXIMITY_TURN_TIMEOUT")
    if turn_timeout:
        try:
            data.setdefault("generation", {})["timeout_seconds"] = float(turn_timeout)
        except ValueError:
            pass

    apply_prefs = os.getenv("PROXIMITY_APPLY_PREFERENCES")
    if apply_prefs is not None:
        data.setdefault("startup", {})["apply_preferences"] = apply_prefs.lower() in _TRUTHY

    return data


def load_config(path: Path | None = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {}
    if DEFAULT_CONFIG_PATH.exists():
        data = yaml.safe_load(DEFAULT_CONFIG_PATH.read_text()) or {}
    user_path = path or USER_CONFIG_PATH
    if user_path.exists():
        override = yaml.safe_load(user_path.read_text()) or {}
        data = _deep_merge(data, override)
    return _apply_env(data)


@dataclass
class Config:
    raw: Dict[str, Any]

    @property
    def server(self) -> Dict[str, Any]:
        return self.raw.get("server", {})

    @property
    def data_dir(self) -> Path:
        default = str(Path.home() / ".proximity")
        return Path(self.raw.get("data_dir", default)).expanduser()

    @property
    def audit_path(self) -> Path:
        return self.data_dir / "audit.jsonl"

    @property
    def ollama(self) -> Dict[str, Any]:
        return self.raw.get("ollama", {})

    @property
    def ollama_url(self) -> str:
        return str(self.ollama.get("base_url", "http://127.0.0.1:11434"))

    @property
    def preferences(self) -> Dict[str, Any]:
        return self.raw.get("preferences", {})

    @property
    def preferences_defaults_path(self) -> Path | None:
        path = self.preferences.get("defaults_path")
        if not path:
            return None
        resolved = Path(path).expanduser()
        if not resolved.is_absolute():
            resolved = DEFAULT_CONFIG_PATH.parent.parent / resolved
        return resolved

    @property
    def connectivity(self) -> Dict[str, Any]:
        return self.raw.get("connectivity", {})

    @property
    def generation(self) -> Dict[str, Any]:
        return self.raw.get("generation", {})

    @property
    def turn_timeout_seconds(self) -> float:
        """Maximum wait for one generation turn. Default 2 minutes."""
        return float(self.generation.get("timeout_seconds", 120))

    @property
    def executor(self) -> Dict[str, Any]:
        return self.raw.get("executor", {})

    @property
    def startup(self) -> Dict[str, Any]:
        return self.raw.get("startup", {})

    @property
    def platform(self) -> str | None:
        value = self.raw.get("platform")
        return str(value) if value else None


def get_config() -> Config:
    return Config(load_config())

"""Read-only preference snapshot fetched from the preference service."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from collections import deque
import copy
import json
import logging
import time
import httpx

from proximity.schema import PreferenceSetting, SettingValue

logger = logging.getLogger(__name__)

MAX_ERRORS = 100

Snapshot = Mapping[str, PreferenceSetting]


def parse_snapshot(payload: Dict[str, Any]) -> Dict[str, PreferenceSetting]:
    """Parse a preferences payload, unwrapping an optional {"preferences": ...} envelope."""
    if not isinstance(payload, dict):
        raise ValueError("preferences payload must be an object")
    inner = payload.get("preferences")
    if isinstance(inner, dict):
        payload = inner
    return {name: PreferenceSetting.from_dict(name, data) for name, data in payload.items()}


def format_value(value: SettingValue) -> str:
    """Render a stored value as a command argument (true, 24, 1.25, text)."""
    if isinstance(value, bool):
        return str(value).lower()
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def coerce_value(raw: str, current: SettingValue) -> SettingValue:
    """Parse a command argument into the type of the setting's current value."""
    if isinstance(current, bool):
        lowered = raw.strip().lower()
        if lowered in ("true", "false"):
            return lowered == "true"
        return raw
    if isinstance(current, (int, float)):
        try:
            return float(raw)
        except ValueError:
            return raw
    return raw


class PreferenceClient:
    def __init__(
        self,
        base_url: str,
        username: str,
        client_id: str = "",
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.username = username
        self.client_id = client_id
        self.timeout = timeout
        self.errors: deque[dict] = deque(maxlen=MAX_ERRORS)
        self._snapshot: Dict[str, PreferenceSetting] = {}
        self._raw: Dict[str, Any] | None = None
        self._fetched_at: float = 0.0

    @property
    def snapshot(self) -> Snapshot:
        return dict(self._snapshot)

    @property
    def raw(self) -> Dict[str, Any] | None:
        return copy.deepcopy(self._raw)

    @property
    def loaded(self) -> bool:
        return bool(self._snapshot)

    @property
    def fetched_at(self) -> float:
        return self._fetched_at

    def _record_error(self, action: str, exc: Exception) -> None:
        self.errors.append({"action": action, "error": str(exc), "time": time.time()})

    def drain_errors(self) -> list[dict]:
        errors = list(self.errors)
        self.errors.clear()
        return errors

    def _replace(self, payload: Dict[str, Any], parsed: Dict[str, PreferenceSetting]) -> None:
        self._raw = copy.deepcopy(payload)
        self._snapshot = parsed
        self._fetched_at = time.time()

    def load_defaults(self, path: Path) -> bool:
        """Seed the snapshot from a bundled file when nothing has been fetched yet."""
        if self._snapshot:
            return False
        try:
            payload = json.loads(path.read_text())
            parsed = parse_snapshot(payload)
        except Exception as exc:
            self._record_error("defaults", exc)
            logger.warning(f"Failed to load default preferences from {path}", exc_info=True)
            return False
        self._replace(payload, parsed)
        logger.info(f"Loaded {len(parsed)} default preferences from {path}")
        return True

    async def fetch_snapshot(self) -> Snapshot | None:
        """Replace the snapshot from the service; on failure keep the previous one."""
        url = f"{self.base_url}/preferences/{self.username}"
        params = {"client_id": self.client_id} if self.client_id else None
        logger.debug(f"Fetching preferences from {url}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(url, params=params)
                resp.raise_for_status()
                payload = resp.json()
            parsed = parse_snapshot(payload)
        except Exception as exc:
            self._record_error("fetch", exc)
            logger.warning(f"Preference fetch failed; keeping previous snapshot: {exc}")
            return None
        self._replace(payload, parsed)
        logger.info(f"Fetched {len(parsed)} preferences for {self.username}")
        return self.snapshot

    def filtered(self, platform: str) -> Dict[str, Any]:
        """Snapshot as plain data with only the given platform's commands."""
        return {name: setting.to_dict(platform) for name, setting in self._snapshot.items()}

    def valid_commands(self, platform: str) -> set[str]:
        commands = set()
        for setting in self._snapshot.values():
            command = setting.commands.for_platform(platform).strip()
            if command:
                commands.add(command)
        return commands

    def find_by_command(self, base_command: str, platform: str) -> Optional[PreferenceSetting]:
        target = base_command.strip()
        for setting in self._snapshot.values():
            if setting.commands.for_platform(platform).strip() == target:
                return setting
        return None

    async def update_current_value(self, base_command: str, raw_value: str, platform: str) -> bool:
        """Push a new current value for the setting driven by base_command.

        The full mapping is sent to the service and, once it accepts it, the
        local snapshot is swapped for the updated copy as a whole.
        """
        setting = self.find_by_command(base_command, platform)
        if setting is None:
            logger.info(f"No preference exists for command: {base_command}")
            return False

        value = coerce_value(raw_value, setting.current)
        updated = {
            name: (
                PreferenceSetting(
                    name=entry.name,
                    current=value,
                    lower_bound=entry.lower_bound,
                    upper_bound=entry.upper_bound,
                    default=entry.default,
                    commands=entry.commands,
                )
                if name == setting.name
                else entry
            )
            for name, entry in self._snapshot.items()
        }
        preferences = {name: entry.to_dict() for name, entry in updated.items()}
        body = {"username": self.username, "preferences": preferences}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(f"{self.base_url}/preferences/update", json=body)
                resp.raise_for_status()
        except Exception as exc:
            self._record_error("update", exc)
            logger.warning(f"Server failed to update preferences: {exc}")
            return False

        self._replace(preferences, updated)
        logger.info(f"Updated {setting.name}: current is now {value!r}")
        return True

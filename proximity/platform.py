"""Host platform and user detection."""
from __future__ import annotations

import getpass
import os
import sys


def _linux_desktop() -> str | None:
    for var in ("XDG_CURRENT_DESKTOP", "DESKTOP_SESSION"):
        value = os.environ.get(var)
        if value:
            return "gnome" if "gnome" in value.lower() else value
    return None


def detect_platform() -> str:
    """Return macos, windows, gnome or linux-<desktop>."""
    override = os.environ.get("PROXIMITY_PLATFORM")
    if override:
        return override
    if sys.platform == "darwin":
        return "macos"
    if sys.platform.startswith("win"):
        return "windows"
    desktop = _linux_desktop()
    if desktop is None:
        return "linux-unknown"
    if desktop == "gnome":
        return "gnome"
    return f"linux-{desktop}"


def current_username() -> str:
    try:
        return getpass.getuser()
    except Exception:
        return "unknown_user"

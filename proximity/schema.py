"""Typed payloads shared across the session, generation and command layers."""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Optional, Union
import time

PLATFORMS = ("windows", "macos", "gnome")

SettingValue = Union[bool, float, int, str]


class Sender(str, Enum):
    SYSTEM = "system"
    USER = "user"
    BOT = "bot"


class CommandState(str, Enum):
    EMPTY = "empty"
    ARMED = "armed"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    EXECUTED = "executed"
    FAILED = "failed"


@dataclass(frozen=True)
class Message:
    sender: Sender
    text: str
    timestamp: Optional[float] = None

    @classmethod
    def now(cls, sender: Sender, text: str) -> "Message":
        return cls(sender=sender, text=text, timestamp=time.time())

    def to_dict(self) -> Dict[str, Any]:
        return {"sender": self.sender.value, "text": self.text, "timestamp": self.timestamp}


@dataclass(frozen=True)
class ChatMessage:
    role: str
    content: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        if not isinstance(data, dict):
            raise ValueError("chat message must be an object")
        role = data.get("role")
        content = data.get("content")
        if not isinstance(role, str) or not isinstance(content, str):
            raise ValueError("chat message requires string 'role' and 'content'")
        return cls(role=role, content=content)

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass(frozen=True)
class GenerationRequest:
    model: str
    prompt: str
    session_id: str


@dataclass(frozen=True)
class GenerationResult:
    message: ChatMessage
    command: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GenerationResult":
        if not isinstance(data, dict) or "message" not in data:
            raise ValueError("generation result requires 'message'")
        command = data.get("command")
        if command is not None and not isinstance(command, str):
            raise ValueError("'command' must be a string when present")
        return cls(message=ChatMessage.from_dict(data["message"]), command=command)

    @property
    def has_command(self) -> bool:
        return bool(self.command and self.command.strip())


@dataclass
class Session:
    model_id: str
    session_id: str
    messages: list[Message] = field(default_factory=list)
    turn_in_flight: bool = False


@dataclass(frozen=True)
class PendingCommand:
    text: str
    state: CommandState = CommandState.ARMED


def platform_key(platform: str) -> Optional[str]:
    """Map a detected platform string onto a key of the commands mapping."""
    if "gnome" in platform:
        return "gnome"
    if platform in ("macos", "windows"):
        return platform
    return None


@dataclass(frozen=True)
class PlatformCommands:
    windows: str = ""
    macos: str = ""
    gnome: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "PlatformCommands":
        data = data or {}
        if not isinstance(data, dict):
            raise ValueError("'commands' must be an object")
        return cls(**{name: str(data.get(name) or "") for name in PLATFORMS})

    def for_platform(self, platform: str) -> str:
        """Return the command for a platform string as produced by detect_platform()."""
        key = platform_key(platform)
        return getattr(self, key) if key else ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)


def _coerce_bound(value: Any, key: str) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"'{key}' must be a number")
    return float(value)


@dataclass(frozen=True)
class PreferenceSetting:
    name: str
    current: SettingValue
    lower_bound: Optional[float] = None
    upper_bound: Optional[float] = None
    default: Optional[SettingValue] = None
    commands: PlatformCommands = field(default_factory=PlatformCommands)

    @classmethod
    def from_dict(cls, name: str, data: Dict[str, Any]) -> "PreferenceSetting":
        if not isinstance(data, dict):
            raise ValueError(f"setting {name!r} must be an object")
        if "current" not in data:
            raise ValueError(f"setting {name!r} is missing 'current'")
        current = data["current"]
        if not isinstance(current, (bool, int, float, str)):
            raise ValueError(f"setting {name!r} has an unsupported 'current' value")
        return cls(
            name=name,
            current=current,
            lower_bound=_coerce_bound(data.get("lower_bound"), "lower_bound"),
            upper_bound=_coerce_bound(data.get("upper_bound"), "upper_bound"),
            default=data.get("default"),
            commands=PlatformCommands.from_dict(data.get("commands")),
        )

    def to_dict(self, platform: str | None = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "lower_bound": self.lower_bound,
            "upper_bound": self.upper_bound,
            "current": self.current,
            "commands": self.commands.to_dict(),
        }
        if self.default is not None:
            payload["default"] = self.default
        if platform is not None:
            key = platform_key(platform)
            payload["commands"] = {
                name: value for name, value in payload["commands"].items() if name == key
            }
        return payload


@dataclass(frozen=True)
class ConnectivityState:
    online: bool
    last_checked: Optional[float] = None


@dataclass(frozen=True)
class ExecutionResult:
    ok: bool
    error: Optional[str] = None
    stdout: str = ""
    exit_code: Optional[int] = None

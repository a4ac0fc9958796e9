"""Confirmation gate for model-proposed system commands.

A command surfaced by a model turn never runs on its own. It is armed here,
shown to the user verbatim, and only handed to the executor after an
explicit confirm. The gate holds at most one command at a time and is shared
by every session of an application instance, so a pending command survives a
model switch.

States::

    EMPTY -> ARMED -> CANCELLED -> EMPTY
                   -> CONFIRMED -> EXECUTED | FAILED -> EMPTY
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol
import logging

from proximity.audit import AuditLog
from proximity.schema import CommandState, ExecutionResult, PendingCommand

logger = logging.getLogger(__name__)


class GateProtocolError(Exception):
    """Raised when a command is armed while another one is still pending."""
    pass


class CommandExecutor(Protocol):
    async def execute(self, command: str, persist: bool) -> ExecutionResult:
        ...


@dataclass(frozen=True)
class GateOutcome:
    command: str
    state: CommandState
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state == CommandState.EXECUTED


class CommandGate:
    def __init__(self, executor: CommandExecutor, audit: AuditLog | None = None) -> None:
        self.executor = executor
        self.audit = audit
        self._pending: Optional[PendingCommand] = None

    @property
    def state(self) -> CommandState:
        if self._pending is None:
            return CommandState.EMPTY
        return self._pending.state

    @property
    def pending(self) -> Optional[str]:
        """The command text awaiting a decision, exactly as the model produced it."""
        if self._pending is None or self._pending.state != CommandState.ARMED:
            return None
        return self._pending.text

    @property
    def is_empty(self) -> bool:
        return self._pending is None

    def _audit(self, event: str, command: str, **data) -> None:
        if self.audit is not None:
            self.audit.log(event, {"command": command, **data})

    def _transition(self, state: CommandState) -> None:
        if self._pending is None:
            raise GateProtocolError(f"no command to move to {state.value}")
        logger.debug(f"Command {self._pending.text!r}: {self._pending.state.value} -> {state.value}")
        self._pending = PendingCommand(text=self._pending.text, state=state)

    def arm(self, text: str) -> None:
        if self._pending is not None:
            raise GateProtocolError(
                f"cannot arm {text!r}: command {self._pending.text!r} is {self._pending.state.value}"
            )
        self._pending = PendingCommand(text=text, state=CommandState.ARMED)
        logger.info(f"Command awaiting confirmation: {text}")
        self._audit("command.armed", text)

    def cancel(self) -> bool:
        if self.state != CommandState.ARMED:
            return False
        text = self._pending.text
        self._transition(CommandState.CANCELLED)
        self._pending = None
        logger.info(f"Command cancelled: {text}")
        self._audit("command.cancelled", text)
        return True

    async def confirm(self) -> Optional[GateOutcome]:
        """Run the armed command through the executor and settle back to EMPTY.

        Returns None without side effects unless a command is ARMED; a second
        confirm while the executor is still running is therefore ignored.
        """
        if self.state != CommandState.ARMED:
            return None
        text = self._pending.text
        self._transition(CommandState.CONFIRMED)
        self._audit("command.confirmed", text)

        error: Optional[str] = None
        try:
            result = await self.executor.execute(command=text, persist=True)
            if not result.ok:
                error = result.error or "command failed"
        except Exception as exc:
            logger.warning(f"Executor raised for {text!r}", exc_info=True)
            error = str(exc) or exc.__class__.__name__

        if error is None:
            self._transition(CommandState.EXECUTED)
            logger.info(f"Command executed: {text}")
            self._audit("command.executed", text)
        else:
            self._transition(CommandState.FAILED)
            logger.warning(f"Command failed: {text}: {error}")
            self._audit("command.failed", text, error=error)

        outcome = GateOutcome(command=text, state=self._pending.state, error=error)
        self._pending = None
        return outcome

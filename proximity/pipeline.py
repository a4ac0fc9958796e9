"""One request/response exchange with the generation backend per user turn."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional
import asyncio
import logging

from proximity.gate import CommandGate
from proximity.generation import GenerationBackend
from proximity.schema import GenerationRequest, Message, Sender, Session
from proximity.session import SessionManager

logger = logging.getLogger(__name__)

Notify = Callable[[str, str], None]

NO_MODEL_WARNING = "Please select a model first"


def _log_notice(kind: str, message: str) -> None:
    logger.info(f"[{kind}] {message}")


@dataclass(frozen=True)
class TurnOutcome:
    status: str  # ignored, completed, failed, stale
    error: Optional[str] = None
    command: Optional[str] = None


IGNORED = TurnOutcome(status="ignored")


class GenerationPipeline:
    def __init__(
        self,
        sessions: SessionManager,
        backend: GenerationBackend,
        gate: CommandGate,
        timeout_seconds: float = 120.0,
        notify: Notify | None = None,
    ) -> None:
        self.sessions = sessions
        self.backend = backend
        self.gate = gate
        self.timeout_seconds = timeout_seconds
        self.notify = notify or _log_notice

    async def submit_turn(self, session: Optional[Session], prompt: str) -> TurnOutcome:
        if session is None or not session.model_id:
            self.notify("warning", NO_MODEL_WARNING)
            return IGNORED
        prompt = (prompt or "").strip()
        if not prompt or session.turn_in_flight:
            return IGNORED
        if not self.gate.is_empty:
            logger.debug("Turn ignored while a command awaits confirmation")
            return IGNORED

        session_id = session.session_id
        if not self.sessions.append_message(session_id, Message.now(Sender.USER, prompt)):
            return IGNORED
        session.turn_in_flight = True
        request = GenerationRequest(model=session.model_id, prompt=prompt, session_id=session_id)
        try:
            result = await asyncio.wait_for(self.backend.generate(request), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            return self._fail(session_id, f"Generation timed out after {self.timeout_seconds:g}s")
        except Exception as exc:
            logger.warning(f"Generation failed for session {session_id}", exc_info=True)
            return self._fail(session_id, str(exc) or exc.__class__.__name__)
        finally:
            session.turn_in_flight = False

        if not self.sessions.is_current(session_id):
            logger.info(f"Discarding response for stale session {session_id}")
            return TurnOutcome(status="stale")

        self.sessions.append_message(session_id, Message.now(Sender.BOT, result.message.content))
        command = None
        if result.has_command:
            command = result.command
            self.gate.arm(command)
        return TurnOutcome(status="completed", command=command)

    def _fail(self, session_id: str, error: str) -> TurnOutcome:
        if not self.sessions.is_current(session_id):
            logger.info(f"Discarding error for stale session {session_id}: {error}")
            return TurnOutcome(status="stale", error=error)
        self.notify("error", error)
        return TurnOutcome(status="failed", error=error)

"""Conversation state bound to the selected model."""
from __future__ import annotations

from typing import Optional, Tuple
import logging
import uuid

from proximity.schema import Message, Session

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return uuid.uuid4().hex


class SessionManager:
    """Owns the current session and is the only writer of its message log."""

    def __init__(self) -> None:
        self._current: Optional[Session] = None

    @property
    def current(self) -> Optional[Session]:
        return self._current

    @property
    def model_id(self) -> Optional[str]:
        return self._current.model_id if self._current else None

    @property
    def session_id(self) -> Optional[str]:
        return self._current.session_id if self._current else None

    @property
    def messages(self) -> Tuple[Message, ...]:
        if self._current is None:
            return ()
        return tuple(self._current.messages)

    def select_model(self, model_id: str) -> Session:
        # Membership in the catalog is the caller's responsibility.
        self._current = Session(model_id=model_id, session_id=new_session_id())
        logger.info(f"Selected model {model_id} (session {self._current.session_id})")
        return self._current

    def is_current(self, session_id: str) -> bool:
        return self._current is not None and self._current.session_id == session_id

    def append_message(self, session_id: str, message: Message) -> bool:
        if not self.is_current(session_id):
            logger.debug(f"Dropping message for inactive session {session_id}")
            return False
        self._current.messages.append(message)
        return True

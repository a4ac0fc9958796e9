"""Generation backends that turn a user prompt into a reply and optional command."""
from __future__ import annotations

from collections import deque
from typing import Deque, Dict, Protocol
import json
import logging

from proximity.matching import build_system_prompt, find_best_match, snippet_for
from proximity.models.ollama import OllamaClient
from proximity.preferences import PreferenceClient
from proximity.schema import ChatMessage, GenerationRequest, GenerationResult

logger = logging.getLogger(__name__)


class GenerationError(Exception):
    """Raised when the backend cannot produce a usable reply."""
    pass


class GenerationBackend(Protocol):
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        ...

    def forget(self, session_id: str) -> None:
        """Drop any state kept for a session that will not be used again."""
        ...


def parse_model_reply(text: str) -> GenerationResult:
    """Parse the model's {"message", "command"} JSON reply."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise GenerationError(f"Failed to parse model response: {exc}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("message"), str):
        raise GenerationError("Failed to parse model response: missing 'message'")
    command = data.get("command")
    if command is not None and not isinstance(command, str):
        raise GenerationError("Failed to parse model response: 'command' is not a string")
    return GenerationResult(
        message=ChatMessage(role="assistant", content=data["message"]),
        command=command.strip() if command else None,
    )


class OllamaGenerationBackend:
    """Chat with a local Ollama model, keeping a bounded history per session id."""

    def __init__(
        self,
        client: OllamaClient,
        preferences: PreferenceClient,
        platform: str,
        history_size: int = 50,
        temperature: float = 0.2,
    ) -> None:
        self.client = client
        self.preferences = preferences
        self.platform = platform
        self.history_size = history_size
        self.temperature = temperature
        self._system_prompts: Dict[str, str] = {}
        self._histories: Dict[str, Deque[Dict[str, str]]] = {}
        self._last_snippet: str = ""

    def forget(self, session_id: str) -> None:
        self._system_prompts.pop(session_id, None)
        self._histories.pop(session_id, None)

    async def _reference(self) -> Dict[str, object]:
        if not self.preferences.loaded:
            logger.info("Preference snapshot empty; fetching before generation")
            await self.preferences.fetch_snapshot()
        return self.preferences.filtered(self.platform)

    def _augment(self, prompt: str, reference: Dict[str, object]) -> str:
        best = find_best_match(prompt, reference)
        logger.debug(f"Best match for prompt {prompt!r}: {best}")
        if best is not None:
            self._last_snippet = snippet_for(best, reference)
            snippet = self._last_snippet
        elif self._last_snippet:
            snippet = self._last_snippet
        else:
            snippet = json.dumps(reference, indent=2)
        return f"{snippet}\n\n {prompt}"

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        reference = await self._reference()
        if request.session_id not in self._system_prompts:
            self._system_prompts[request.session_id] = build_system_prompt(self.platform, reference)
            self._histories[request.session_id] = deque(maxlen=self.history_size)
        history = self._histories[request.session_id]

        user_message = {"role": "user", "content": self._augment(request.prompt, reference)}
        messages = [{"role": "system", "content": self._system_prompts[request.session_id]}]
        messages.extend(history)
        messages.append(user_message)

        result = await self.client.chat(request.model, messages, temperature=self.temperature)
        if not result.ok:
            raise GenerationError(f"Failed to generate text: {result.error}")
        logger.debug(f"Model {request.model} replied in {result.duration_ms:.0f}ms")

        parsed = parse_model_reply(result.text)
        history.append(user_message)
        history.append({"role": "assistant", "content": result.text})
        return parsed

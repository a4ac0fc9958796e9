"""Minimal async Ollama client for local inference."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
import httpx
import logging
import time

logger = logging.getLogger(__name__)


@dataclass
class OllamaResult:
    text: str
    duration_ms: float
    ok: bool
    error: Optional[str] = None


class OllamaClient:
    def __init__(self, base_url: str = "http://127.0.0.1:11434", timeout: float = 120.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def list_models(self) -> list[dict]:
        """Return the raw model entries from /api/tags. Transport errors propagate."""
        async with httpx.AsyncClient(timeout=5.0) as client:
            resp = await client.get(f"{self.base_url}/api/tags")
            resp.raise_for_status()
            data = resp.json()
            return data.get("models", [])

    async def pull_model(self, name: str) -> bool:
        try:
            async with httpx.AsyncClient(timeout=None) as client:
                resp = await client.post(
                    f"{self.base_url}/api/pull",
                    json={"model": name, "stream": False},
                )
                resp.raise_for_status()
                return True
        except Exception:
            logger.warning(f"Failed to pull model {name}", exc_info=True)
            return False

    async def chat(
        self,
        model: str,
        messages: List[Dict[str, str]],
        format: Optional[str] = "json",
        temperature: float = 0.2,
    ) -> OllamaResult:
        payload: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": temperature,
            },
        }
        if format:
            payload["format"] = format

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(f"{self.base_url}/api/chat", json=payload)
                resp.raise_for_status()
                data = resp.json()
                duration = (time.perf_counter() - start) * 1000
                message = data.get("message") or {}
                return OllamaResult(text=message.get("content", ""), duration_ms=duration, ok=True)
        except httpx.TimeoutException:
            duration = (time.perf_counter() - start) * 1000
            return OllamaResult(
                text="",
                duration_ms=duration,
                ok=False,
                error=f"Ollama timeout after {self.timeout}s",
            )
        except Exception as exc:
            duration = (time.perf_counter() - start) * 1000
            return OllamaResult(text="", duration_ms=duration, ok=False, error=str(exc))

"""Application wiring: one instance of every component plus lifecycle hooks."""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Tuple
import asyncio
import logging
import shlex
import uuid

from proximity.audit import AuditLog
from proximity.config import Config
from proximity.connectivity import ConnectivityMonitor
from proximity.executor import ShellExecutor
from proximity.gate import CommandExecutor, CommandGate, GateOutcome
from proximity.generation import GenerationBackend, OllamaGenerationBackend
from proximity.models.catalog import CatalogError, ModelCatalog
from proximity.models.ollama import OllamaClient
from proximity.pipeline import GenerationPipeline, TurnOutcome
from proximity.platform import current_username, detect_platform
from proximity.preferences import PreferenceClient, format_value
from proximity.schema import ConnectivityState, Session
from proximity.session import SessionManager

logger = logging.getLogger(__name__)

Listener = Callable[[Dict[str, Any]], None]

OFFLINE_BANNER = "Encryption service is offline"
NO_MODELS_NOTICE = "No models available"


class Application:
    """Owns the session, the single command gate and the backend clients.

    Presentation layers subscribe to notices (dict events with a "type" key)
    and call the operations below; they never touch component state directly.
    """

    def __init__(
        self,
        *,
        catalog: ModelCatalog,
        preferences: PreferenceClient,
        connectivity: ConnectivityMonitor,
        backend: GenerationBackend,
        executor: CommandExecutor,
        platform: str,
        audit: AuditLog | None = None,
        turn_timeout: float = 120.0,
        defaults_path=None,
        apply_preferences_on_start: bool = False,
    ) -> None:
        self.catalog = catalog
        self.preferences = preferences
        self.connectivity = connectivity
        self.executor = executor
        self.backend = backend
        self.platform = platform
        self.defaults_path = defaults_path
        self.apply_preferences_on_start = apply_preferences_on_start
        self.sessions = SessionManager()
        self.gate = CommandGate(executor, audit=audit)
        self.pipeline = GenerationPipeline(
            self.sessions,
            backend,
            self.gate,
            timeout_seconds=turn_timeout,
            notify=self.notify,
        )
        self._listeners: List[Listener] = []
        self._ready = asyncio.Event()
        self.connectivity.subscribe(self._on_connectivity)

    @classmethod
    def from_config(cls, config: Config) -> "Application":
        platform = config.platform or detect_platform()
        prefs_cfg = config.preferences
        preferences = PreferenceClient(
            base_url=str(prefs_cfg.get("base_url", "http://127.0.0.1:8000")),
            username=str(prefs_cfg.get("username") or current_username()),
            client_id=str(prefs_cfg.get("client_id") or uuid.uuid4()),
            timeout=float(prefs_cfg.get("timeout_seconds", 10)),
        )
        ollama_cfg = config.ollama
        client = OllamaClient(config.ollama_url, timeout=config.turn_timeout_seconds)
        catalog = ModelCatalog(
            client,
            default_model=ollama_cfg.get("default_model"),
            pull_default_if_empty=bool(ollama_cfg.get("pull_default_if_empty", False)),
        )
        backend = OllamaGenerationBackend(
            client,
            preferences,
            platform,
            history_size=int(ollama_cfg.get("history_size", 50)),
            temperature=float(ollama_cfg.get("temperature", 0.2)),
        )
        conn_cfg = config.connectivity
        connectivity = ConnectivityMonitor(
            str(conn_cfg.get("base_url", "http://127.0.0.1:8000")),
            path=str(conn_cfg.get("path", "/health")),
            timeout=float(conn_cfg.get("timeout_seconds", 5)),
        )
        executor = ShellExecutor(
            preferences,
            platform,
            timeout_seconds=float(config.executor.get("timeout_seconds", 30)),
        )
        return cls(
            catalog=catalog,
            preferences=preferences,
            connectivity=connectivity,
            backend=backend,
            executor=executor,
            platform=platform,
            audit=AuditLog(config.audit_path),
            turn_timeout=config.turn_timeout_seconds,
            defaults_path=config.preferences_defaults_path,
            apply_preferences_on_start=bool(config.startup.get("apply_preferences", False)),
        )

    # Notices

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, event: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.warning(f"Listener failed for {event.get('type')}", exc_info=True)

    def notify(self, kind: str, message: str) -> None:
        self.emit({"type": kind, "message": message})

    def _on_connectivity(self, state: ConnectivityState) -> None:
        self.emit({
            "type": "banner",
            "visible": not state.online,
            "message": OFFLINE_BANNER if not state.online else "",
        })

    # Lifecycle

    async def on_start(self) -> None:
        await self.refresh_models()
        if self.defaults_path is not None:
            self.preferences.load_defaults(self.defaults_path)
        await self.refresh_preferences()
        await self.connectivity.probe()
        if self.apply_preferences_on_start:
            await self.apply_saved_preferences()

    async def on_demand(self) -> None:
        await self.refresh_preferences()
        await self.connectivity.probe()

    def signal_ready(self) -> bool:
        """Emit the one-shot ready event. Returns False if it was already sent."""
        if self._ready.is_set():
            return False
        self._ready.set()
        self.emit({"type": "ready"})
        return True

    async def wait_ready(self) -> None:
        await self._ready.wait()

    # Operations

    async def refresh_models(self) -> Tuple[str, ...]:
        try:
            models = await self.catalog.list_models()
        except CatalogError as exc:
            self.notify("error", str(exc))
            return ()
        if not models:
            self.notify("info", NO_MODELS_NOTICE)
        self.emit({"type": "models", "models": list(models)})
        return models

    async def refresh_preferences(self) -> bool:
        snapshot = await self.preferences.fetch_snapshot()
        if snapshot is None:
            return False
        self.emit({"type": "preferences", "count": len(snapshot)})
        return True

    def select_model(self, model_id: str) -> Session:
        previous = self.sessions.session_id
        session = self.sessions.select_model(model_id)
        if previous is not None:
            self.backend.forget(previous)
        self.emit({"type": "session", "model": model_id, "session_id": session.session_id})
        return session

    async def submit(self, prompt: str) -> TurnOutcome:
        outcome = await self.pipeline.submit_turn(self.sessions.current, prompt)
        if outcome.command:
            self.emit({"type": "pending", "command": outcome.command})
        return outcome

    async def confirm(self) -> Optional[GateOutcome]:
        outcome = await self.gate.confirm()
        if outcome is not None and not outcome.ok:
            self.notify("error", f"Error: {outcome.error}")
        return outcome

    def cancel(self) -> bool:
        return self.gate.cancel()

    async def apply_saved_preferences(self) -> int:
        """Re-run every stored setting on this host without saving it back."""
        applied = 0
        for setting in self.preferences.snapshot.values():
            base = setting.commands.for_platform(self.platform).strip()
            if not base:
                continue
            command = f"{base} {shlex.quote(format_value(setting.current))}"
            logger.info(f"Applying saved preference: {command}")
            result = await self.executor.execute(command=command, persist=False)
            if result.ok:
                applied += 1
            else:
                logger.warning(f"Failed to apply saved preference {setting.name}: {result.error}")
        return applied

    def status(self) -> Dict[str, Any]:
        state = self.connectivity.state
        return {
            "model": self.sessions.model_id,
            "session_id": self.sessions.session_id,
            "turn_in_flight": bool(self.sessions.current and self.sessions.current.turn_in_flight),
            "online": state.online,
            "last_checked": state.last_checked,
            "pending": self.gate.pending,
            "gate": self.gate.state.value,
            "platform": self.platform,
        }

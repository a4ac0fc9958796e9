"""FastAPI server exposing the chat session to a desktop front end."""
from __future__ import annotations

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from typing import Any, Dict, Set
import asyncio
import logging

from proximity.app import Application
from proximity.config import get_config

logger = logging.getLogger(__name__)

app = FastAPI(title="Proximity")


# WebSocket connection manager for application notices
class ConnectionManager:
    def __init__(self):
        self.active_connections: Set[WebSocket] = set()
        self._pending: Set[asyncio.Task] = set()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.add(websocket)

    def disconnect(self, websocket: WebSocket):
        self.active_connections.discard(websocket)

    async def broadcast(self, message: dict):
        dead_connections = set()
        for connection in list(self.active_connections):
            try:
                await connection.send_json(message)
            except Exception:
                dead_connections.add(connection)
        for conn in dead_connections:
            self.active_connections.discard(conn)

    def publish(self, message: dict) -> None:
        if not self.active_connections:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.broadcast(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


ws_manager = ConnectionManager()


def _application(request: Request) -> Application:
    return request.app.state.application


def _messages(application: Application) -> list[dict]:
    return [message.to_dict() for message in application.sessions.messages]


@app.on_event("startup")
async def _startup() -> None:
    if getattr(app.state, "application", None) is None:
        config = get_config()
        app.state.config = config
        app.state.application = Application.from_config(config)
        interval = float(config.connectivity.get("interval_seconds", 30))
    else:
        interval = 30.0
    application: Application = app.state.application
    application.subscribe(ws_manager.publish)
    await application.on_start()
    app.state.stop_watch = asyncio.Event()
    app.state.watcher = asyncio.create_task(
        application.connectivity.watch(interval, app.state.stop_watch)
    )


@app.on_event("shutdown")
async def _shutdown() -> None:
    stop = getattr(app.state, "stop_watch", None)
    if stop is not None:
        stop.set()
    watcher = getattr(app.state, "watcher", None)
    if watcher is not None:
        await watcher


@app.get("/health")
async def health():
    """Health check endpoint for monitoring."""
    return {"status": "healthy", "service": "proximity"}


@app.websocket("/ws/events")
async def websocket_events(websocket: WebSocket):
    """Push application notices (pending commands, errors, banner changes)."""
    await ws_manager.connect(websocket)
    try:
        await websocket.send_json({"type": "status", "status": websocket.app.state.application.status()})
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        ws_manager.disconnect(websocket)


@app.get("/api/status")
async def status_api(request: Request):
    return {"ok": True, **_application(request).status()}


@app.get("/api/models")
async def models_api(request: Request, refresh: bool = False):
    application = _application(request)
    models = await application.refresh_models() if refresh else application.catalog.models
    return {"models": list(models), "empty": not models}


@app.post("/api/session")
async def session_api(payload: dict, request: Request):
    model = str(payload.get("model") or "").strip()
    if not model:
        return JSONResponse({"error": "model required"}, status_code=400)
    session = _application(request).select_model(model)
    return {"ok": True, "model": session.model_id, "session_id": session.session_id}


@app.get("/api/messages")
async def messages_api(request: Request):
    return {"messages": _messages(_application(request))}


@app.post("/api/turn")
async def turn_api(payload: dict, request: Request):
    application = _application(request)
    outcome = await application.submit(str(payload.get("prompt") or ""))
    body: Dict[str, Any] = {
        "status": outcome.status,
        "error": outcome.error,
        "pending": application.gate.pending,
        "messages": _messages(application),
    }
    return body


@app.get("/api/pending")
async def pending_api(request: Request):
    gate = _application(request).gate
    return {"pending": gate.pending, "state": gate.state.value}


@app.post("/api/pending/confirm")
async def pending_confirm_api(request: Request):
    outcome = await _application(request).confirm()
    if outcome is None:
        return JSONResponse({"error": "no pending command"}, status_code=409)
    return {"ok": outcome.ok, "state": outcome.state.value, "command": outcome.command, "error": outcome.error}


@app.post("/api/pending/cancel")
async def pending_cancel_api(request: Request):
    if not _application(request).cancel():
        return JSONResponse({"error": "no pending command"}, status_code=409)
    return {"ok": True}


@app.get("/api/preferences")
async def preferences_api(request: Request):
    application = _application(request)
    prefs = application.preferences
    if not prefs.loaded:
        return {"loaded": False, "preferences": {}}
    return {
        "loaded": True,
        "platform": application.platform,
        "preferences": {name: setting.to_dict() for name, setting in prefs.snapshot.items()},
    }


@app.post("/api/preferences/refresh")
async def preferences_refresh_api(request: Request):
    application = _application(request)
    await application.on_demand()
    return {"ok": application.preferences.loaded, "online": application.connectivity.online}


@app.post("/api/ready")
async def ready_api(request: Request):
    return {"ok": True, "first": _application(request).signal_ready()}


def main():
    import uvicorn
    config = get_config()
    host = config.server.get("host", "127.0.0.1")
    port = int(config.server.get("port", 8099))
    uvicorn.run("proximity.server:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()

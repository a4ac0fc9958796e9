"""Liveness probe for the supporting encryption service."""
from __future__ import annotations

from typing import Callable, List
import asyncio
import logging
import time
import httpx

from proximity.schema import ConnectivityState

logger = logging.getLogger(__name__)

StateListener = Callable[[ConnectivityState], None]


class ConnectivityMonitor:
    """Probes a service and reports online/offline transitions to listeners.

    Being offline never blocks other operations; callers only get a signal to
    show a degraded-mode indicator.
    """

    def __init__(self, base_url: str, path: str = "/health", timeout: float = 5.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.path = path if path.startswith("/") else f"/{path}"
        self.timeout = timeout
        # Assume online until the first probe says otherwise.
        self._state = ConnectivityState(online=True, last_checked=None)
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> ConnectivityState:
        return self._state

    @property
    def online(self) -> bool:
        return self._state.online

    def subscribe(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    async def probe(self) -> bool:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.get(f"{self.base_url}{self.path}")
                online = 200 <= resp.status_code < 300
        except Exception as exc:
            logger.debug(f"Liveness probe failed: {exc}")
            online = False

        changed = online != self._state.online
        self._state = ConnectivityState(online=online, last_checked=time.time())
        if changed:
            if online:
                logger.info("Encryption service is back online")
            else:
                logger.warning("Encryption service is offline")
            for listener in list(self._listeners):
                listener(self._state)
        return online

    async def watch(self, interval: float, stop: asyncio.Event) -> None:
        while not stop.is_set():
            await self.probe()
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

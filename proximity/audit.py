"""Append-only audit trail of command authorization decisions."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator
import json
import logging
import time

logger = logging.getLogger(__name__)


@dataclass
class AuditLog:
    path: Path

    def log(self, event: str, data: Dict[str, Any] | None = None) -> None:
        payload = {
            "timestamp": time.strftime("%Y-%m-%dT%H:%M:%S"),
            "event": event,
            "data": data or {},
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(json.dumps(payload) + "\n")
        except OSError:
            logger.warning(f"Failed to write audit event {event}", exc_info=True)

    def entries(self) -> Iterator[Dict[str, Any]]:
        if not self.path.exists():
            return
        for line in self.path.read_text().splitlines():
            line = line.strip()
            if line:
                yield json.loads(line)

"""Catalog of locally selectable models."""
from __future__ import annotations

from typing import Optional, Tuple
import logging

from proximity.models.ollama import OllamaClient

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Raised when the model list cannot be fetched."""
    pass


class ModelCatalog:
    def __init__(
        self,
        client: OllamaClient,
        default_model: Optional[str] = None,
        pull_default_if_empty: bool = False,
    ) -> None:
        self.client = client
        self.default_model = default_model
        self.pull_default_if_empty = pull_default_if_empty
        self._models: Tuple[str, ...] = ()

    @property
    def models(self) -> Tuple[str, ...]:
        return self._models

    def contains(self, model_id: str) -> bool:
        return model_id in self._models

    async def _fetch_names(self) -> Tuple[str, ...]:
        try:
            entries = await self.client.list_models()
        except Exception as exc:
            logger.warning("Failed to list models", exc_info=True)
            raise CatalogError(f"Failed to list models: {exc}") from exc
        names = {entry.get("name") for entry in entries if entry.get("name")}
        return tuple(sorted(names))

    async def list_models(self) -> Tuple[str, ...]:
        """Fetch the current model ids. An empty tuple means no models are configured."""
        names = await self._fetch_names()
        if not names and self.pull_default_if_empty and self.default_model:
            logger.info(f"No local models found. Pulling {self.default_model}...")
            if await self.client.pull_model(self.default_model):
                names = await self._fetch_names()
        self._models = names
        return names

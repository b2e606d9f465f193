"""Single-slot cache for the active embedder.

The cache is Empty until a model is installed and holds at most one
embedder afterwards. Installing replaces the previous embedder; clearing
returns to Empty. Both are serialized with an ``asyncio.Lock``.

Readers take a *lease*: the embedder active when the lease starts stays
usable until the lease ends, even if it is replaced meanwhile. A replaced
embedder is released once its last lease finishes.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncIterator, Dict, Optional

import structlog

from ..errors import NotLoadedError

if TYPE_CHECKING:
    from ..encoders.base import Embedder

logger = structlog.get_logger("embedding_service.model_cache")


@dataclass
class LoadedModelInfo:
    """Descriptive metadata about the active model."""
    model_format: str
    model_id: Optional[str] = None
    model_path: Optional[str] = None
    vocabulary_path: Optional[str] = None
    loaded_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model_format": self.model_format,
            "model_id": self.model_id,
            "model_path": self.model_path,
            "vocabulary_path": self.vocabulary_path,
            "loaded_at": self.loaded_at,
        }


@dataclass
class _Slot:
    embedder: "Embedder"
    info: Optional[LoadedModelInfo]
    leases: int = 0
    retired: bool = False


class ModelCache:
    """Holds the one active embedder shared by all requests."""

    def __init__(self, on_change=None):
        """Create an empty cache.

        Parameters
        - on_change: Optional callback receiving ``True``/``False`` whenever
          the loaded state changes (used for the model-loaded gauge)
        """
        self._slot: Optional[_Slot] = None
        self._lock = asyncio.Lock()
        self._on_change = on_change

    def is_loaded(self) -> bool:
        return self._slot is not None

    def current(self) -> "Embedder":
        """Return the active embedder or raise ``NotLoadedError``."""
        if self._slot is None:
            raise NotLoadedError()
        return self._slot.embedder

    def info(self) -> Optional[LoadedModelInfo]:
        return self._slot.info if self._slot is not None else None

    async def install(self, embedder: "Embedder", info: Optional[LoadedModelInfo] = None) -> None:
        """Make ``embedder`` the active model, retiring the previous one."""
        async with self._lock:
            previous = self._slot
            self._slot = _Slot(embedder=embedder, info=info)
            logger.info(
                "Embedder installed",
                model_format=embedder.model_format,
                replaced=previous is not None
            )
            if previous is not None:
                self._retire(previous)
            self._notify(True)

    async def clear(self) -> None:
        """Drop the active model; a no-op when already Empty."""
        async with self._lock:
            previous = self._slot
            self._slot = None
            if previous is not None:
                logger.info("Embedder cleared", model_format=previous.embedder.model_format)
                self._retire(previous)
            self._notify(False)

    @asynccontextmanager
    async def lease(self) -> AsyncIterator["Embedder"]:
        """Pin the active embedder for the duration of the block."""
        slot = self._slot
        if slot is None:
            raise NotLoadedError()
        slot.leases += 1
        try:
            yield slot.embedder
        finally:
            slot.leases -= 1
            if slot.retired and slot.leases == 0:
                slot.embedder.close()

    def _retire(self, slot: _Slot) -> None:
        slot.retired = True
        if slot.leases == 0:
            slot.embedder.close()
        else:
            logger.info(
                "Deferring embedder release until in-flight requests finish",
                model_format=slot.embedder.model_format,
                leases=slot.leases
            )

    def _notify(self, loaded: bool) -> None:
        if self._on_change is not None:
            self._on_change(loaded)

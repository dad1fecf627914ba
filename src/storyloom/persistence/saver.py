"""Debounced saving of named documents.

Every structural edit schedules a save of the affected document. Saves are
debounced per document name so a burst of edits produces one write, and
the document is serialized when the write fires, so the latest in-memory
state always wins. Failed writes are logged and reported through
:attr:`DocumentSaver.status`; they are not retried, the next edit simply
schedules another attempt.
"""

from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING, Any

from storyloom.observability.logging import get_logger
from storyloom.persistence.debounce import Debouncer
from storyloom.persistence.gateway import PersistenceError

if TYPE_CHECKING:
    from collections.abc import Callable

    from storyloom.persistence.gateway import PersistenceGateway

log = get_logger(__name__)

DEFAULT_SAVE_DELAY = 1.0


class SaveStatus(StrEnum):
    """Outcome of the most recent write."""

    IDLE = "idle"
    SAVING = "saving"
    SUCCESS = "success"
    ERROR = "error"


class DocumentSaver:
    """Schedules debounced writes through a persistence gateway."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        *,
        delay: float = DEFAULT_SAVE_DELAY,
        debouncer: Debouncer | None = None,
    ) -> None:
        self.gateway = gateway
        self.delay = delay
        self.debouncer = debouncer or Debouncer()
        self.status = SaveStatus.IDLE
        self.last_error: str | None = None

    def schedule(self, name: str, snapshot: Callable[[], dict[str, Any]]) -> None:
        """Save ``snapshot()`` under ``name`` once edits go quiet."""

        async def _save() -> None:
            await self.save_now(name, snapshot())

        self.debouncer.debounce(name, self.delay, _save)

    async def save_now(self, name: str, data: dict[str, Any]) -> bool:
        """Write a document immediately.

        Returns:
            True if the write succeeded.
        """
        self.status = SaveStatus.SAVING
        self.last_error = None
        try:
            await self.gateway.save_json(name, data)
        except (OSError, PersistenceError) as e:
            self.status = SaveStatus.ERROR
            self.last_error = str(e)
            log.error("document_save_failed", name=name, error=str(e))
            return False
        self.status = SaveStatus.SUCCESS
        log.info("document_saved", name=name)
        return True

    async def flush(self) -> None:
        """Write every pending document now."""
        await self.debouncer.flush()

"""Persistence for storyloom documents.

- gateway: Named JSON document storage (protocol + file implementation)
- store: Durable key-value store for the play session
- debounce: Per-key debounced actions and the load barrier
- saver: Debounced document saves with status reporting
"""

from storyloom.persistence.debounce import Debouncer, LoadBarrier
from storyloom.persistence.gateway import (
    GAME_DOCUMENT_SUFFIX,
    LAYOUT_DOCUMENT_SUFFIX,
    FileGateway,
    PersistenceError,
    PersistenceGateway,
    document_name,
)
from storyloom.persistence.saver import DEFAULT_SAVE_DELAY, DocumentSaver, SaveStatus
from storyloom.persistence.store import JsonKeyValueStore

__all__ = [
    "DEFAULT_SAVE_DELAY",
    "GAME_DOCUMENT_SUFFIX",
    "LAYOUT_DOCUMENT_SUFFIX",
    "Debouncer",
    "DocumentSaver",
    "FileGateway",
    "JsonKeyValueStore",
    "LoadBarrier",
    "PersistenceError",
    "PersistenceGateway",
    "SaveStatus",
    "document_name",
]

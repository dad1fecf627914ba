"""Durable key-value store for small local state.

Holds the play session between runs. The whole store is one JSON object
on disk, rewritten on every change.
"""

from __future__ import annotations

import json
from pathlib import Path  # noqa: TC003 - used at runtime
from typing import Any

from storyloom.observability.logging import get_logger

log = get_logger(__name__)


class JsonKeyValueStore:
    """Key-value store backed by a single JSON file."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def _read_all(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            log.warning("kv_store_unreadable", path=str(self.path), error=str(e))
            return {}
        if not isinstance(data, dict):
            log.warning("kv_store_not_an_object", path=str(self.path))
            return {}
        return data

    def _write_all(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(self.path)

    def get(self, key: str) -> Any:
        """Return the value stored under ``key``, or None."""
        return self._read_all().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def delete(self, key: str) -> None:
        data = self._read_all()
        if data.pop(key, None) is not None:
            self._write_all(data)

"""Debounced actions and load barriers for asyncio.

Debouncer keeps a single-slot delayed task per key: scheduling again while
one is pending cancels it and starts the quiet period over, so a burst of
edits collapses into one write. Actions for the same key never overlap,
and a flush waits for actions that are already running. LoadBarrier is the join point for loads
that complete independently.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from storyloom.observability.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

log = get_logger(__name__)


class Debouncer:
    """Run the latest scheduled action per key after a quiet period."""

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Task[None]] = {}
        self._actions: dict[str, Callable[[], Awaitable[None]]] = {}
        self._running: set[asyncio.Task[None]] = set()
        self._locks: dict[str, asyncio.Lock] = {}

    @property
    def pending_keys(self) -> list[str]:
        """Keys with an action still waiting for its quiet period to end."""
        return list(self._pending)

    def debounce(
        self,
        key: str,
        delay: float,
        action: Callable[[], Awaitable[None]],
    ) -> asyncio.Task[None]:
        """Schedule ``action`` to run after ``delay`` seconds.

        A pending action for the same key is cancelled. An action that has
        already started running is left to finish.

        Must be called with a running event loop.
        """
        previous = self._pending.pop(key, None)
        if previous is not None and not previous.done():
            previous.cancel()

        task = asyncio.get_running_loop().create_task(self._run_later(key, delay, action))
        self._pending[key] = task
        self._actions[key] = action
        return task

    async def _run_later(
        self,
        key: str,
        delay: float,
        action: Callable[[], Awaitable[None]],
    ) -> None:
        await asyncio.sleep(delay)
        task = asyncio.current_task()
        assert task is not None  # always runs as a task created by debounce()
        if self._pending.get(key) is task:
            del self._pending[key]
            self._actions.pop(key, None)
        self._running.add(task)
        try:
            await self._invoke(key, action)
        finally:
            self._running.discard(task)

    async def _invoke(self, key: str, action: Callable[[], Awaitable[None]]) -> None:
        # One action per key at a time, in scheduling order
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            try:
                await action()
            except Exception as e:
                log.error("debounced_action_failed", key=key, error=str(e))

    async def flush(self) -> None:
        """Run every pending action now and wait for those already running."""
        pending = list(self._pending.items())
        self._pending.clear()
        for key, task in pending:
            task.cancel()
            action = self._actions.pop(key, None)
            if action is not None:
                await self._invoke(key, action)
        running = [task for task in self._running if task is not asyncio.current_task()]
        if running:
            await asyncio.wait(running)

    def cancel_all(self) -> None:
        """Drop every pending action without running it."""
        for task in self._pending.values():
            task.cancel()
        self._pending.clear()
        self._actions.clear()


class LoadBarrier:
    """Completion signal for a fixed set of named loads.

    ``wait()`` returns once every name has been marked loaded.
    """

    def __init__(self, names: Iterable[str]) -> None:
        self._expected = frozenset(names)
        self._remaining = set(self._expected)
        self._done = asyncio.Event()
        if not self._remaining:
            self._done.set()

    @property
    def is_complete(self) -> bool:
        return self._done.is_set()

    @property
    def remaining(self) -> set[str]:
        return set(self._remaining)

    def mark_loaded(self, name: str) -> None:
        """Record that one named load has finished.

        Raises:
            KeyError: If ``name`` is not one of the expected loads.
        """
        if name not in self._expected:
            raise KeyError(f"Unexpected load '{name}', expected one of {sorted(self._expected)}")
        self._remaining.discard(name)
        log.debug("load_completed", name=name, remaining=sorted(self._remaining))
        if not self._remaining:
            self._done.set()

    async def wait(self) -> None:
        await self._done.wait()

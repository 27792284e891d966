from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Generic, TypeVar

from .store import ProjectSnapshot, ProjectStore

logger = logging.getLogger(__name__)

PayloadT = TypeVar("PayloadT")

DEFAULT_SAVE_DELAY_MS = 500


class DebouncedSaver(Generic[PayloadT]):
    """Coalesce rapid save requests so only the latest payload is written.

    State is ``pending``/``payload`` plus one timer handle. ``schedule`` replaces
    the payload and restarts the timer; when the timer elapses the payload is
    handed to ``save_fn``. Intermediate payloads are never saved.

    Must be used from code running on an asyncio event loop.
    """

    def __init__(self, save_fn: Callable[[PayloadT], Awaitable[None]], delay_ms: int = DEFAULT_SAVE_DELAY_MS) -> None:
        if delay_ms < 0:
            raise ValueError(f"delay_ms must be >= 0, got: {delay_ms}")
        self._save_fn = save_fn
        self._delay_seconds = delay_ms / 1000
        self._pending = False
        self._payload: PayloadT | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        return self._pending

    def schedule(self, payload: PayloadT) -> None:
        loop = asyncio.get_running_loop()
        self._payload = payload
        self._pending = True
        self._cancel_timer()
        self._timer = loop.call_later(self._delay_seconds, self._on_timer)

    async def flush(self) -> None:
        """Save the pending payload now, if there is one. Save errors propagate."""
        self._cancel_timer()
        await self._run_save()

    def cancel(self) -> None:
        """Discard the pending payload without saving it."""
        self._cancel_timer()
        self._pending = False
        self._payload = None

    async def wait_idle(self) -> None:
        """Wait for timer-started saves that are already running."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _take_payload(self) -> tuple[bool, PayloadT | None]:
        pending, payload = self._pending, self._payload
        self._pending = False
        self._payload = None
        return pending, payload

    async def _run_save(self) -> None:
        pending, payload = self._take_payload()
        if not pending:
            return
        await self._save_fn(payload)  # type: ignore[arg-type]

    def _on_timer(self) -> None:
        self._timer = None
        task = asyncio.ensure_future(self._run_save())
        self._tasks.add(task)
        task.add_done_callback(self._on_save_done)

    def _on_save_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("debounced save failed: %s", exc, exc_info=exc)


def create_project_autosaver(project_dir: Path, delay_ms: int = DEFAULT_SAVE_DELAY_MS) -> DebouncedSaver[ProjectSnapshot]:
    """Debounced saver that writes whole project snapshots through the store off the event loop."""
    store = ProjectStore(project_dir)

    async def _save(snapshot: ProjectSnapshot) -> None:
        await asyncio.to_thread(store.save, snapshot)

    return DebouncedSaver(_save, delay_ms=delay_ms)

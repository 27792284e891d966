from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .blocks import BLOCKS_DIR, MANIFEST_FILE_NAME, BlockCatalogState, load_workspace_blocks

logger = logging.getLogger(__name__)

DEFAULT_WATCH_DEBOUNCE_MS = 75


class WorkspaceBlockEventType(str, Enum):
    ADDED = "added"
    UPDATED = "updated"
    DELETED = "deleted"
    READY = "ready"


@dataclass(frozen=True)
class WorkspaceBlockEvent:
    type: WorkspaceBlockEventType
    state: BlockCatalogState


def _coalesce(pending: WorkspaceBlockEventType | None, incoming: WorkspaceBlockEventType) -> WorkspaceBlockEventType:
    """Event type reported for a burst once ``incoming`` joins it."""
    if pending is None or incoming is WorkspaceBlockEventType.DELETED:
        return incoming
    if pending is WorkspaceBlockEventType.ADDED and incoming is WorkspaceBlockEventType.UPDATED:
        # A new file is usually created and then written.
        return WorkspaceBlockEventType.ADDED
    if pending is WorkspaceBlockEventType.DELETED and incoming is WorkspaceBlockEventType.ADDED:
        # Unlink-then-create replacement of an existing manifest.
        return WorkspaceBlockEventType.UPDATED
    return incoming


def _is_manifest(path: str | bytes) -> bool:
    return os.path.basename(os.fsdecode(path)) == MANIFEST_FILE_NAME


class _ManifestEventHandler(FileSystemEventHandler):
    """Forwards events on ``block.manifest.json`` files to the owning watcher."""

    def __init__(self, watcher: WorkspaceBlockWatcher) -> None:
        self._watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory and _is_manifest(event.src_path):
            self._watcher._on_manifest_appeared(os.fsdecode(event.src_path))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory and _is_manifest(event.src_path):
            self._watcher._schedule(WorkspaceBlockEventType.UPDATED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if _is_manifest(event.src_path):
            self._watcher._schedule(WorkspaceBlockEventType.DELETED)

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if _is_manifest(event.src_path):
            self._watcher._schedule(WorkspaceBlockEventType.DELETED)
        dest_path = getattr(event, "dest_path", "")
        if dest_path and _is_manifest(dest_path):
            self._watcher._on_manifest_appeared(os.fsdecode(dest_path))


class WorkspaceBlockWatcher:
    """Live view of a project's workspace blocks.

    Watches ``<project>/blocks`` recursively. After the initial scan exactly one
    ``ready`` event is delivered; afterwards every burst of manifest changes is
    collapsed into one ``added``/``updated``/``deleted`` event once no further
    change arrives for ``debounce_ms``. Each event carries a full rescan of the
    catalog.

    ``on_event`` is called from a background thread. Call :meth:`close` (or use
    the watcher as a context manager) to stop watching.
    """

    def __init__(
        self,
        project_dir: Path,
        on_event: Callable[[WorkspaceBlockEvent], None],
        *,
        debounce_ms: int = DEFAULT_WATCH_DEBOUNCE_MS,
    ) -> None:
        if debounce_ms < 0:
            raise ValueError(f"debounce_ms must be >= 0, got: {debounce_ms}")
        self.project_dir = Path(project_dir)
        self.blocks_dir = self.project_dir / BLOCKS_DIR
        self._on_event = on_event
        self._debounce_seconds = debounce_ms / 1000

        self._lock = threading.Lock()
        self._emit_lock = threading.Lock()
        self._emitting_thread: int | None = None
        self._ready = False
        self._closed = False
        self._pending_type: WorkspaceBlockEventType | None = None
        self._timer: threading.Timer | None = None
        self._known_manifests: set[str] = set()

        self._observer = Observer()
        self._started = False

    def __enter__(self) -> WorkspaceBlockWatcher:
        if not self._started:
            self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def ready(self) -> bool:
        return self._ready

    def start(self) -> None:
        """Begin watching, then scan and deliver the ``ready`` event before returning."""
        if self._started:
            raise RuntimeError("watcher already started")
        self._started = True
        self.blocks_dir.mkdir(parents=True, exist_ok=True)
        self._observer.schedule(_ManifestEventHandler(self), str(self.blocks_dir), recursive=True)
        self._observer.start()
        logger.info("watching workspace blocks in %s", self.blocks_dir)
        with self._emit_lock:
            with self._lock:
                self._ready = True
            self._emit(WorkspaceBlockEventType.READY)

    def close(self) -> None:
        """Stop watching. No listener call is running or will start once this returns.

        Safe to call from inside the listener.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._pending_type = None
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
        if threading.get_ident() != self._emitting_thread:
            # Wait out a listener call already in progress on another thread.
            with self._emit_lock:
                pass
        if self._started:
            self._observer.stop()
            self._observer.join(timeout=5)
        logger.info("stopped watching %s", self.blocks_dir)

    # ------------------------------------------------------------------
    # debounce state machine
    # ------------------------------------------------------------------

    def _on_manifest_appeared(self, path: str) -> None:
        with self._lock:
            known = os.path.abspath(path) in self._known_manifests
        self._schedule(WorkspaceBlockEventType.UPDATED if known else WorkspaceBlockEventType.ADDED)

    def _schedule(self, event_type: WorkspaceBlockEventType) -> None:
        with self._lock:
            if not self._ready or self._closed:
                return
            self._pending_type = _coalesce(self._pending_type, event_type)
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self._debounce_seconds, self._on_timer)
            self._timer.daemon = True
            self._timer.start()
            logger.debug("manifest %s event, burst now %s", event_type.value, self._pending_type.value)

    def _on_timer(self) -> None:
        with self._emit_lock:
            with self._lock:
                if self._closed or self._pending_type is None:
                    return
                event_type = self._pending_type
                self._pending_type = None
                self._timer = None
            self._emit(event_type)

    def _emit(self, event_type: WorkspaceBlockEventType) -> None:
        state = load_workspace_blocks(self.project_dir)
        with self._lock:
            self._known_manifests = {
                os.path.abspath(path) for path in self.blocks_dir.glob(f"*/{MANIFEST_FILE_NAME}")
            }
            if self._closed:
                return
        self._emitting_thread = threading.get_ident()
        try:
            self._on_event(WorkspaceBlockEvent(type=event_type, state=state))
        except Exception:  # noqa: BLE001
            logger.exception("workspace block listener failed on %s event", event_type.value)
        finally:
            self._emitting_thread = None


def create_workspace_block_watcher(
    project_dir: Path,
    on_event: Callable[[WorkspaceBlockEvent], None],
    *,
    debounce_ms: int = DEFAULT_WATCH_DEBOUNCE_MS,
) -> WorkspaceBlockWatcher:
    """Create and start a watcher. The ``ready`` event has been delivered when this returns."""
    watcher = WorkspaceBlockWatcher(project_dir, on_event, debounce_ms=debounce_ms)
    watcher.start()
    return watcher

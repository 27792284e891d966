from __future__ import annotations

import threading
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from manifold_core import (
    WorkspaceBlockEvent,
    WorkspaceBlockEventType,
    WorkspaceBlockWatcher,
    create_workspace_block_watcher,
)
from manifold_core.watcher import _coalesce
from conftest import write_manifest

ADDED = WorkspaceBlockEventType.ADDED
UPDATED = WorkspaceBlockEventType.UPDATED
DELETED = WorkspaceBlockEventType.DELETED


class _Recorder:
    def __init__(self) -> None:
        self.events: list[WorkspaceBlockEvent] = []
        self._lock = threading.Lock()

    def __call__(self, event: WorkspaceBlockEvent) -> None:
        with self._lock:
            self.events.append(event)

    def wait_for(self, predicate: Callable[[WorkspaceBlockEvent], bool], timeout: float = 4.0) -> WorkspaceBlockEvent:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._lock:
                for event in self.events:
                    if predicate(event):
                        return event
            time.sleep(0.02)
        raise AssertionError(f"no matching event; saw {[event.type.value for event in self.events]}")


@pytest.mark.parametrize(
    ("pending", "incoming", "expected"),
    [
        (None, UPDATED, UPDATED),
        (ADDED, UPDATED, ADDED),
        (UPDATED, DELETED, DELETED),
        (ADDED, DELETED, DELETED),
        (DELETED, ADDED, UPDATED),
        (UPDATED, UPDATED, UPDATED),
    ],
)
def test_burst_coalescing(pending, incoming, expected) -> None:
    assert _coalesce(pending, incoming) is expected


def test_ready_is_delivered_once_with_initial_scan(tmp_path: Path) -> None:
    write_manifest(tmp_path, "hero", block_id="hero.split.v1")
    recorder = _Recorder()

    with create_workspace_block_watcher(tmp_path, recorder, debounce_ms=20) as watcher:
        assert watcher.ready
        assert [event.type for event in recorder.events] == [WorkspaceBlockEventType.READY]
        assert recorder.events[0].state.block_ids == ["hero.split.v1"]


def test_watcher_reports_added_updated_deleted(tmp_path: Path) -> None:
    recorder = _Recorder()

    with create_workspace_block_watcher(tmp_path, recorder, debounce_ms=50):
        path = write_manifest(tmp_path, "hero", block_id="hero.split.v1")
        added = recorder.wait_for(lambda event: event.type is ADDED)
        assert added.state.block_ids == ["hero.split.v1"]
        time.sleep(0.2)

        write_manifest(tmp_path, "hero", block_id="hero.split.v1", name="Renamed")
        updated = recorder.wait_for(lambda event: event.type is UPDATED and event.state.manifests[0].name == "Renamed")
        assert updated.state.block_ids == ["hero.split.v1"]
        time.sleep(0.2)

        path.unlink()
        deleted = recorder.wait_for(lambda event: event.type is DELETED)
        assert deleted.state.block_ids == []


def test_invalid_manifest_surfaces_as_error_state(tmp_path: Path) -> None:
    recorder = _Recorder()

    with create_workspace_block_watcher(tmp_path, recorder, debounce_ms=20):
        broken = tmp_path / "blocks" / "broken"
        broken.mkdir(parents=True)
        (broken / "block.manifest.json").write_text("{", encoding="utf-8")
        event = recorder.wait_for(lambda event: event.type is not WorkspaceBlockEventType.READY)

    assert event.state.manifests == []
    assert len(event.state.errors) == 1


def test_no_events_after_close(tmp_path: Path) -> None:
    recorder = _Recorder()
    watcher = create_workspace_block_watcher(tmp_path, recorder, debounce_ms=20)
    watcher.close()
    watcher.close()

    write_manifest(tmp_path, "hero", block_id="hero.split.v1")
    time.sleep(0.2)

    assert [event.type for event in recorder.events] == [WorkspaceBlockEventType.READY]


def test_listener_errors_do_not_stop_the_watcher(tmp_path: Path) -> None:
    recorder = _Recorder()

    def listener(event: WorkspaceBlockEvent) -> None:
        recorder(event)
        if event.type is WorkspaceBlockEventType.READY:
            raise RuntimeError("listener bug")

    with create_workspace_block_watcher(tmp_path, listener, debounce_ms=20):
        write_manifest(tmp_path, "hero", block_id="hero.split.v1")
        recorder.wait_for(lambda event: event.type is ADDED)


def test_start_twice_is_an_error(tmp_path: Path) -> None:
    watcher = WorkspaceBlockWatcher(tmp_path, lambda event: None)
    watcher.start()
    try:
        with pytest.raises(RuntimeError):
            watcher.start()
    finally:
        watcher.close()


def test_close_waits_for_a_listener_call_in_progress(tmp_path: Path) -> None:
    entered = threading.Event()
    finished = threading.Event()

    def slow_listener(event: WorkspaceBlockEvent) -> None:
        if event.type is WorkspaceBlockEventType.READY:
            return
        entered.set()
        time.sleep(0.3)
        finished.set()

    watcher = create_workspace_block_watcher(tmp_path, slow_listener, debounce_ms=20)
    write_manifest(tmp_path, "hero", block_id="hero.split.v1")
    assert entered.wait(timeout=4.0)

    watcher.close()

    assert finished.is_set()


def test_close_from_inside_the_listener(tmp_path: Path) -> None:
    seen: list[WorkspaceBlockEventType] = []
    holder: list[WorkspaceBlockWatcher] = []
    done = threading.Event()

    def closing_listener(event: WorkspaceBlockEvent) -> None:
        seen.append(event.type)
        if event.type is ADDED:
            holder[0].close()
            done.set()

    holder.append(create_workspace_block_watcher(tmp_path, closing_listener, debounce_ms=20))
    write_manifest(tmp_path, "hero", block_id="hero.split.v1")

    assert done.wait(timeout=4.0)
    assert seen == [WorkspaceBlockEventType.READY, ADDED]

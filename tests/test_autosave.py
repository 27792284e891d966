from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from manifold_core import DebouncedSaver, NewProjectInput, create_project, create_project_autosaver, open_project


def test_only_the_last_payload_is_saved() -> None:
    saved: list[str] = []

    async def save(payload: str) -> None:
        saved.append(payload)

    async def scenario() -> None:
        saver = DebouncedSaver(save, delay_ms=20)
        for payload in ("a", "b", "c"):
            saver.schedule(payload)
            await asyncio.sleep(0.005)
        assert saver.pending
        await asyncio.sleep(0.1)
        await saver.wait_idle()
        assert not saver.pending

    asyncio.run(scenario())
    assert saved == ["c"]


def test_flush_saves_immediately_and_once() -> None:
    saved: list[int] = []

    async def save(payload: int) -> None:
        saved.append(payload)

    async def scenario() -> None:
        saver = DebouncedSaver(save, delay_ms=1000)
        saver.schedule(1)
        saver.schedule(2)
        await saver.flush()
        await saver.flush()

    asyncio.run(scenario())
    assert saved == [2]


def test_cancel_discards_pending_payload() -> None:
    saved: list[int] = []

    async def save(payload: int) -> None:
        saved.append(payload)

    async def scenario() -> None:
        saver = DebouncedSaver(save, delay_ms=10)
        saver.schedule(1)
        saver.cancel()
        await asyncio.sleep(0.05)
        await saver.flush()

    asyncio.run(scenario())
    assert saved == []


def test_flush_propagates_save_errors() -> None:
    async def save(payload: int) -> None:
        raise OSError("disk full")

    async def scenario() -> None:
        saver = DebouncedSaver(save, delay_ms=1000)
        saver.schedule(1)
        await saver.flush()

    with pytest.raises(OSError, match="disk full"):
        asyncio.run(scenario())


def test_timer_save_errors_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    async def save(payload: int) -> None:
        raise OSError("disk full")

    async def scenario() -> None:
        saver = DebouncedSaver(save, delay_ms=0)
        saver.schedule(1)
        await asyncio.sleep(0.02)
        await saver.wait_idle()

    asyncio.run(scenario())
    assert "debounced save failed" in caplog.text


def test_negative_delay_is_rejected() -> None:
    async def save(payload: int) -> None:
        return None

    with pytest.raises(ValueError):
        DebouncedSaver(save, delay_ms=-1)


def test_project_autosaver_writes_latest_snapshot(tmp_path: Path) -> None:
    project_dir = tmp_path / "site"
    create_project(project_dir, NewProjectInput(project_name="Manifold"))
    first = open_project(project_dir)
    second = open_project(project_dir)
    first.site.title = "First"
    second.site.title = "Second"

    async def scenario() -> None:
        saver = create_project_autosaver(project_dir, delay_ms=10)
        saver.schedule(first)
        saver.schedule(second)
        await asyncio.sleep(0.05)
        await saver.wait_idle()
        await saver.flush()

    asyncio.run(scenario())
    assert open_project(project_dir).site.title == "Second"

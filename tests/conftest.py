from __future__ import annotations

import json
import shutil
from pathlib import Path
from typing import Any

import pytest

from manifold_core.schema import BlockManifest

FIXTURES_DIR = Path(__file__).resolve().parent / "fixtures"


def manifest_payload(block_id: str, **overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "blockId": block_id,
        "name": block_id,
        "category": "content",
        "tags": [],
        "propsSchema": {},
        "editorSchema": {},
        "runtime": {"entry": "runtime.ts"},
        "export": {"astroTemplate": "template.astro"},
        "dependencies": {},
        "version": "1.0.0",
    }
    payload.update(overrides)
    return payload


def make_manifest(block_id: str, **overrides: Any) -> BlockManifest:
    return BlockManifest.model_validate(manifest_payload(block_id, **overrides))


def write_manifest(project_dir: Path, folder: str, **overrides: Any) -> Path:
    block_dir = project_dir / "blocks" / folder
    block_dir.mkdir(parents=True, exist_ok=True)
    path = block_dir / "block.manifest.json"
    payload = manifest_payload(overrides.pop("block_id", folder), **overrides)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def legacy_project(tmp_path: Path) -> Path:
    """Copy of the schema 0.9.0 fixture project."""
    target = tmp_path / "legacy"
    shutil.copytree(FIXTURES_DIR / "project-v0", target)
    return target

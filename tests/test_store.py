from __future__ import annotations

import json
from pathlib import Path

import pytest

from manifold_core import (
    CURRENT_PROJECT_SCHEMA_VERSION,
    DocumentValidationError,
    NewProjectInput,
    ProjectStore,
    UnsupportedSchemaVersionError,
    create_project,
    open_project,
    save_project,
)
from manifold_core.schema import BlockEntry, ContentRecordFile, PageManifestFile
from manifold_core.store import REQUIRED_DIRS, sanitize_file_stem


def _create(tmp_path: Path) -> Path:
    project_dir = tmp_path / "site"
    create_project(project_dir, NewProjectInput(project_name="Manifold", client_name="ACME"))
    return project_dir


def test_create_writes_layout_and_default_files(tmp_path: Path) -> None:
    project_dir = _create(tmp_path)

    for name in REQUIRED_DIRS:
        assert (project_dir / name).is_dir()
    for name in ("project.json", "site.json", "theme.json", "blocks.lock.json", "pages/page-home.json"):
        text = (project_dir / name).read_text(encoding="utf-8")
        assert text.endswith("\n")
        parsed = json.loads(text)
        assert list(parsed) == sorted(parsed)

    project = json.loads((project_dir / "project.json").read_text(encoding="utf-8"))
    assert project["schemaVersion"] == CURRENT_PROJECT_SCHEMA_VERSION
    assert project["clientName"] == "ACME"


def test_create_rejects_invalid_input_without_writing(tmp_path: Path) -> None:
    project_dir = tmp_path / "site"
    with pytest.raises(DocumentValidationError):
        create_project(project_dir, NewProjectInput(project_name=""))
    assert not project_dir.exists()


def test_open_returns_full_snapshot(tmp_path: Path) -> None:
    project_dir = _create(tmp_path)
    snapshot = open_project(project_dir)

    assert snapshot.project.project_name == "Manifold"
    assert snapshot.site.title == "Manifold"
    assert snapshot.theme.tokens.spacing_base == 8
    assert snapshot.blocks_lock.internal == []
    assert [page.page_id for page in snapshot.pages] == ["page-home"]
    assert snapshot.content == []


def test_open_reads_pages_and_content_in_filename_order(tmp_path: Path) -> None:
    project_dir = _create(tmp_path)
    for record_id in ("zeta", "alpha", "mid"):
        (project_dir / "content" / f"{record_id}.json").write_text(
            json.dumps({"id": record_id, "type": "text", "data": {}}), encoding="utf-8"
        )
    (project_dir / "content" / "notes.txt").write_text("ignored", encoding="utf-8")

    snapshot = open_project(project_dir)
    assert [record.id for record in snapshot.content] == ["alpha", "mid", "zeta"]


def test_open_fails_closed_on_one_invalid_page(tmp_path: Path) -> None:
    project_dir = _create(tmp_path)
    (project_dir / "pages" / "broken.json").write_text(json.dumps({"pageId": "broken"}), encoding="utf-8")

    with pytest.raises(DocumentValidationError) as excinfo:
        open_project(project_dir)
    assert excinfo.value.source == project_dir / "pages" / "broken.json"


def test_open_reports_missing_project_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        open_project(tmp_path / "nowhere")


def test_open_rejects_newer_schema_version(tmp_path: Path) -> None:
    project_dir = _create(tmp_path)
    path = project_dir / "project.json"
    raw = json.loads(path.read_text(encoding="utf-8"))
    raw["schemaVersion"] = "99.0.0"
    path.write_text(json.dumps(raw), encoding="utf-8")

    with pytest.raises(UnsupportedSchemaVersionError):
        open_project(project_dir)


def test_save_restamps_updated_at_and_keeps_seed(tmp_path: Path) -> None:
    project_dir = _create(tmp_path)
    snapshot = open_project(project_dir)
    snapshot.project = snapshot.project.model_copy(update={"updated_at": "2000-01-01T00:00:00.000Z"})

    saved = save_project(project_dir, snapshot)
    reopened = open_project(project_dir)

    assert saved.project.updated_at != "2000-01-01T00:00:00.000Z"
    assert reopened.project.updated_at == saved.project.updated_at
    assert reopened.project.seed == snapshot.project.seed
    assert reopened.project.created_at == snapshot.project.created_at


def test_save_writes_sanitized_page_and_content_names(tmp_path: Path) -> None:
    project_dir = _create(tmp_path)
    snapshot = open_project(project_dir)
    snapshot.pages.append(
        PageManifestFile(
            page_id="blog/post 1",
            route="/blog/post-1",
            title="Post",
            seo={},
            blocks=[BlockEntry(instance_id="a1", block_id="hero.split.v1")],
        )
    )
    snapshot.content.append(ContentRecordFile(id="hero:copy", type="text", data={"body": "Hi"}))

    save_project(project_dir, snapshot)

    assert (project_dir / "pages" / "blog-post-1.json").is_file()
    assert (project_dir / "content" / "hero-copy.json").is_file()
    assert [page.page_id for page in open_project(project_dir).pages] == ["blog/post 1", "page-home"]


def test_sanitize_file_stem() -> None:
    assert sanitize_file_stem("page-home") == "page-home"
    assert sanitize_file_stem("a/b c.d_e") == "a-b-c-d_e"


def test_save_validates_everything_before_writing(tmp_path: Path) -> None:
    project_dir = _create(tmp_path)
    snapshot = open_project(project_dir)
    before = (project_dir / "project.json").read_bytes()
    snapshot.site.title = ""

    with pytest.raises(DocumentValidationError):
        save_project(project_dir, snapshot)
    assert (project_dir / "project.json").read_bytes() == before


def test_resaving_unchanged_documents_is_byte_identical(tmp_path: Path) -> None:
    project_dir = _create(tmp_path)
    store = ProjectStore(project_dir)
    before = {name: (project_dir / name).read_bytes() for name in ("site.json", "theme.json", "pages/page-home.json")}

    store.save(store.open())

    for name, content in before.items():
        assert (project_dir / name).read_bytes() == content


def test_save_fills_defaults_on_disk(legacy_project: Path) -> None:
    store = ProjectStore(legacy_project)
    store.save(store.open())

    theme = json.loads((legacy_project / "theme.json").read_text(encoding="utf-8"))
    assert theme["tokens"]["colorPrimary"] == "#0f766e"
    assert theme["tokens"]["fontHeading"] == "Inter, system-ui, sans-serif"
    page = json.loads((legacy_project / "pages" / "page-home.json").read_text(encoding="utf-8"))
    assert page["blocks"][0]["visibility"] == "visible"
    assert page["seo"] == {"title": "Home"}


def test_block_ids_in_use(legacy_project: Path) -> None:
    assert open_project(legacy_project).block_ids_in_use() == ["hero.split.v1"]

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel

from .canonical import stable_stringify
from .errors import UnsupportedSchemaVersionError
from .project_files import NewProjectInput, create_project_file_map, sanitize_file_stem
from .schema import (
    CURRENT_PROJECT_SCHEMA_VERSION,
    BlocksLockFile,
    ContentRecordFile,
    PageManifestFile,
    ProjectFile,
    SiteFile,
    ThemeFile,
    compare_semver,
    parse_document,
    parse_document_json,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

REQUIRED_DIRS = ("pages", "content", "assets", "blocks", "exports", "backups")

PROJECT_FILE = "project.json"
SITE_FILE = "site.json"
THEME_FILE = "theme.json"
BLOCKS_LOCK_FILE = "blocks.lock.json"


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def _atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to *path* atomically.

    Writes to a temporary file in the same directory, then renames
    (``os.replace``) into place, so readers and block watchers never see a
    half-written document.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def _safe_read_json(path: Path, document_name: str) -> str:
    """Read a JSON file and raise a clear error if missing or unreadable.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file contains non-UTF-8 data.
    """
    if not path.is_file():
        raise FileNotFoundError(f"{document_name} not found: {path}")
    try:
        return path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ValueError(f"{document_name} at {path} contains invalid UTF-8 data") from exc


def write_json_file(path: Path, value: Any) -> None:
    _atomic_write_text(path, stable_stringify(value))
    logger.debug("wrote %s", path)


def read_document(path: Path, model: type[ModelT]) -> ModelT:
    """Read and validate one document.

    Raises:
        FileNotFoundError: If the file does not exist.
        DocumentValidationError: If the JSON is malformed or fails the schema.
    """
    text = _safe_read_json(path, model.__name__)
    return parse_document_json(model, text, source=path)


def _json_file_names(directory: Path) -> list[str]:
    if not directory.is_dir():
        return []
    return sorted(entry.name for entry in directory.iterdir() if entry.is_file() and entry.name.endswith(".json"))


def ensure_supported_version(project: ProjectFile) -> None:
    if compare_semver(project.schema_version, CURRENT_PROJECT_SCHEMA_VERSION) > 0:
        raise UnsupportedSchemaVersionError(project.schema_version, CURRENT_PROJECT_SCHEMA_VERSION)


# ---------------------------------------------------------------------------
# Snapshot
# ---------------------------------------------------------------------------


@dataclass
class ProjectSnapshot:
    project: ProjectFile
    site: SiteFile
    theme: ThemeFile
    blocks_lock: BlocksLockFile
    pages: list[PageManifestFile] = field(default_factory=list)
    content: list[ContentRecordFile] = field(default_factory=list)

    def block_ids_in_use(self) -> list[str]:
        return [block.block_id for page in self.pages for block in page.blocks]


# ---------------------------------------------------------------------------
# ProjectStore
# ---------------------------------------------------------------------------


class ProjectStore:
    """Owns the on-disk layout of one project directory.

    Every document is written with :func:`stable_stringify` through an atomic
    temp-file-then-rename. Reads are fail-closed: one invalid file aborts the
    whole open.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)
        self.pages_dir = self.root / "pages"
        self.content_dir = self.root / "content"
        self.assets_dir = self.root / "assets"
        self.blocks_dir = self.root / "blocks"
        self.exports_dir = self.root / "exports"
        self.backups_dir = self.root / "backups"

    @property
    def project_path(self) -> Path:
        return self.root / PROJECT_FILE

    @property
    def site_path(self) -> Path:
        return self.root / SITE_FILE

    @property
    def theme_path(self) -> Path:
        return self.root / THEME_FILE

    @property
    def blocks_lock_path(self) -> Path:
        return self.root / BLOCKS_LOCK_FILE

    def page_path(self, page_id: str) -> Path:
        return self.pages_dir / f"{sanitize_file_stem(page_id)}.json"

    def content_path(self, record_id: str) -> Path:
        return self.content_dir / f"{sanitize_file_stem(record_id)}.json"

    def ensure_structure(self) -> None:
        """Create all required directories if they do not exist."""
        self.root.mkdir(parents=True, exist_ok=True)
        for name in REQUIRED_DIRS:
            (self.root / name).mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # create / open / save
    # ------------------------------------------------------------------

    def create(self, new_project: NewProjectInput) -> ProjectSnapshot:
        """Write the default file set for a new project and return it as a snapshot.

        Raises:
            DocumentValidationError: If ``new_project`` yields invalid documents.
        """
        files = create_project_file_map(new_project)
        self.ensure_structure()
        for relative_path, document in files.items():
            write_json_file(self.root / relative_path, document)
        logger.info("created project %r at %s", new_project.project_name, self.root)
        return self.open()

    def open(self) -> ProjectSnapshot:
        """Read and validate the complete project.

        Pages and content records are read in sorted filename order.

        Raises:
            FileNotFoundError: If a top-level document is missing.
            DocumentValidationError: If any document fails its schema.
            UnsupportedSchemaVersionError: If the project is newer than this software.
        """
        project = read_document(self.project_path, ProjectFile)
        ensure_supported_version(project)
        site = read_document(self.site_path, SiteFile)
        theme = read_document(self.theme_path, ThemeFile)
        blocks_lock = read_document(self.blocks_lock_path, BlocksLockFile)
        self.ensure_structure()

        pages = [read_document(self.pages_dir / name, PageManifestFile) for name in _json_file_names(self.pages_dir)]
        content = [
            read_document(self.content_dir / name, ContentRecordFile) for name in _json_file_names(self.content_dir)
        ]
        logger.debug("opened %s: %d page(s), %d content record(s)", self.root, len(pages), len(content))
        return ProjectSnapshot(
            project=project,
            site=site,
            theme=theme,
            blocks_lock=blocks_lock,
            pages=pages,
            content=content,
        )

    def save(self, snapshot: ProjectSnapshot) -> ProjectSnapshot:
        """Validate and persist every document of ``snapshot``.

        ``updatedAt`` is re-stamped. All documents are validated before the
        first write so an invalid snapshot leaves the directory untouched.

        Returns:
            The snapshot as written.

        Raises:
            DocumentValidationError: If any document fails its schema.
        """
        project = parse_document(ProjectFile, snapshot.project.model_copy(update={"updated_at": utc_now_iso()}))
        site = parse_document(SiteFile, snapshot.site)
        theme = parse_document(ThemeFile, snapshot.theme)
        blocks_lock = parse_document(BlocksLockFile, snapshot.blocks_lock)
        pages = [parse_document(PageManifestFile, page) for page in snapshot.pages]
        content = [parse_document(ContentRecordFile, record) for record in snapshot.content]

        self.ensure_structure()
        write_json_file(self.project_path, project)
        write_json_file(self.site_path, site)
        write_json_file(self.theme_path, theme)
        write_json_file(self.blocks_lock_path, blocks_lock)
        for page in pages:
            write_json_file(self.page_path(page.page_id), page)
        for record in content:
            write_json_file(self.content_path(record.id), record)

        logger.info("saved project %s (%d page(s), %d content record(s))", self.root, len(pages), len(content))
        return ProjectSnapshot(
            project=project,
            site=site,
            theme=theme,
            blocks_lock=blocks_lock,
            pages=pages,
            content=content,
        )


def create_project(project_dir: Path, new_project: NewProjectInput) -> ProjectSnapshot:
    return ProjectStore(project_dir).create(new_project)


def open_project(project_dir: Path) -> ProjectSnapshot:
    return ProjectStore(project_dir).open()


def save_project(project_dir: Path, snapshot: ProjectSnapshot) -> ProjectSnapshot:
    return ProjectStore(project_dir).save(snapshot)

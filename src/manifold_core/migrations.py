from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from .canonical import stable_stringify
from .errors import UnsupportedSchemaVersionError
from .schema import CURRENT_PROJECT_SCHEMA_VERSION, ProjectFile, compare_semver, utc_now_iso
from .store import ProjectStore, read_document

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = "-pre-migration"
MIGRATION_LOG = Path("exports") / "migrations.log"


@dataclass(frozen=True)
class MigrationResult:
    migrated: bool
    from_version: str
    to_version: str
    backup_path: Path | None = None


def backup_folder_name(timestamp: str | None = None) -> str:
    """``2026-10-18T09-30-00-000Z-pre-migration`` style name; ``:`` and ``.`` are not path-safe everywhere."""
    stamp = timestamp if timestamp is not None else utc_now_iso()
    return f"{re.sub(r'[:.]', '-', stamp)}{BACKUP_SUFFIX}"


def backup_project_tree(project_dir: Path, backups_dir: Path) -> Path:
    """Copy every top-level entry of ``project_dir`` except ``backups/`` into a fresh backup folder.

    Raises:
        OSError: If any copy fails. Nothing in the project has been modified yet.
    """
    backup_path = backups_dir / backup_folder_name()
    backup_path.mkdir(parents=True, exist_ok=False)
    for entry in sorted(project_dir.iterdir()):
        if entry.name == backups_dir.name:
            continue
        target = backup_path / entry.name
        if entry.is_dir():
            shutil.copytree(entry, target)
        else:
            shutil.copy2(entry, target)
    logger.info("backed up %s to %s", project_dir, backup_path)
    return backup_path


def append_migration_log(log_path: Path, *, from_version: str, to_version: str, backup_path: Path) -> None:
    log_path.parent.mkdir(parents=True, exist_ok=True)
    record = {
        "migratedAt": utc_now_iso(),
        "fromVersion": from_version,
        "toVersion": to_version,
        "backupPath": str(backup_path),
    }
    with log_path.open("a", encoding="utf-8") as handle:
        handle.write(stable_stringify(record))


def migrate_project_if_needed(project_dir: Path) -> MigrationResult:
    """Bring a project up to :data:`CURRENT_PROJECT_SCHEMA_VERSION`.

    An older project is first copied into ``backups/``, then opened and saved
    through the store with the new version, which re-validates and re-defaults
    every document. The migration is appended to ``exports/migrations.log``.
    A failed save leaves the backup in place; nothing is rolled back.

    Args:
        project_dir: The project root.

    Returns:
        Whether a migration happened and between which versions.

    Raises:
        FileNotFoundError: If ``project.json`` is missing.
        DocumentValidationError: If ``project.json`` (or, while saving, any
            other document) fails its schema.
        UnsupportedSchemaVersionError: If the project is newer than supported.
        OSError: If the backup copy fails.
    """
    store = ProjectStore(Path(project_dir))
    project = read_document(store.project_path, ProjectFile)
    from_version = project.schema_version
    to_version = CURRENT_PROJECT_SCHEMA_VERSION

    ordering = compare_semver(from_version, to_version)
    if ordering > 0:
        raise UnsupportedSchemaVersionError(from_version, to_version)
    if ordering == 0:
        logger.debug("project %s already at schema %s", store.root, to_version)
        return MigrationResult(migrated=False, from_version=from_version, to_version=from_version)

    backup_path = backup_project_tree(store.root, store.backups_dir)

    snapshot = store.open()
    snapshot.project = snapshot.project.model_copy(update={"schema_version": to_version})
    store.save(snapshot)

    append_migration_log(
        store.root / MIGRATION_LOG,
        from_version=from_version,
        to_version=to_version,
        backup_path=backup_path,
    )
    logger.info("migrated project %s from schema %s to %s", store.root, from_version, to_version)
    return MigrationResult(migrated=True, from_version=from_version, to_version=to_version, backup_path=backup_path)

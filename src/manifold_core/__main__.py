"""Entry point for `python -m manifold_core` and the `manifold` CLI script."""

from __future__ import annotations

import argparse
import logging
import sys
import time
from pathlib import Path

from manifold_core.blocks import (
    create_internal_block_registry,
    get_missing_blocks_for_existing_instances,
    load_workspace_blocks,
    merge_block_catalog,
    parse_dependency_allowlist,
    validate_block_dependencies,
)
from manifold_core.canonical import stable_stringify
from manifold_core.errors import ManifoldError
from manifold_core.migrations import migrate_project_if_needed
from manifold_core.project_files import NewProjectInput
from manifold_core.schema import ProjectFile
from manifold_core.settings import RuntimeSettings
from manifold_core.store import ProjectStore, read_document
from manifold_core.watcher import WorkspaceBlockEvent, create_workspace_block_watcher


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="manifold", description="Manage Manifold project directories")
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity (default: MANIFOLD_LOG_LEVEL or INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    create = subparsers.add_parser("create", help="Create a new project directory")
    create.add_argument("project_dir", type=Path)
    create.add_argument("--name", required=True, help="Project name")
    create.add_argument("--client", default="", help="Client name")
    create.add_argument("--site-title", default=None, help="Site title (default: project name)")

    open_ = subparsers.add_parser("open", help="Validate a project and print a summary")
    open_.add_argument("project_dir", type=Path)

    migrate = subparsers.add_parser("migrate", help="Upgrade a project to the current schema version")
    migrate.add_argument("project_dir", type=Path)

    blocks = subparsers.add_parser("blocks", help="Report the workspace block catalog and dependency problems")
    blocks.add_argument("project_dir", type=Path)

    watch = subparsers.add_parser("watch", help="Print workspace block catalog changes until interrupted")
    watch.add_argument("project_dir", type=Path)

    return parser.parse_args(argv)


def _print_json(value: object) -> None:
    sys.stdout.write(stable_stringify(value))


def _allowlist(project_dir: Path, settings: RuntimeSettings) -> set[str]:
    allowed = set(settings.dependency_allowlist)
    project_path = project_dir / "project.json"
    if project_path.is_file():
        allowed |= parse_dependency_allowlist(read_document(project_path, ProjectFile))
    return allowed


def run_create(project_dir: Path, args: argparse.Namespace) -> int:
    snapshot = ProjectStore(project_dir).create(
        NewProjectInput(project_name=args.name, client_name=args.client, site_title=args.site_title)
    )
    _print_json({"projectDir": str(project_dir), "projectId": snapshot.project.project_id})
    return 0


def run_open(project_dir: Path) -> int:
    snapshot = ProjectStore(project_dir).open()
    catalog = merge_block_catalog(create_internal_block_registry([]), load_workspace_blocks(project_dir))
    _print_json(
        {
            "projectName": snapshot.project.project_name,
            "schemaVersion": snapshot.project.schema_version,
            "pages": [page.page_id for page in snapshot.pages],
            "contentRecords": len(snapshot.content),
            "missingBlocks": get_missing_blocks_for_existing_instances(snapshot.block_ids_in_use(), catalog),
        }
    )
    return 0


def run_migrate(project_dir: Path) -> int:
    result = migrate_project_if_needed(project_dir)
    _print_json(
        {
            "migrated": result.migrated,
            "fromVersion": result.from_version,
            "toVersion": result.to_version,
            "backupPath": result.backup_path,
        }
    )
    return 0


def run_blocks(project_dir: Path, settings: RuntimeSettings) -> int:
    catalog = merge_block_catalog(create_internal_block_registry([]), load_workspace_blocks(project_dir))
    dependencies = validate_block_dependencies(catalog.manifests, _allowlist(project_dir, settings))
    _print_json(
        {
            "blocks": [{"blockId": manifest.block_id, "version": manifest.version} for manifest in catalog.manifests],
            "loadErrors": [{"blockPath": error.block_path, "message": error.message} for error in catalog.errors],
            "dependencyErrors": dependencies.errors,
        }
    )
    return 0 if dependencies.ok and not catalog.errors else 1


def run_watch(project_dir: Path, settings: RuntimeSettings) -> int:
    def _print_event(event: WorkspaceBlockEvent) -> None:
        _print_json(
            {
                "type": event.type.value,
                "blocks": event.state.block_ids,
                "errors": [error.block_path for error in event.state.errors],
            }
        )
        sys.stdout.flush()

    with create_workspace_block_watcher(project_dir, _print_event, debounce_ms=settings.watch_debounce_ms):
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            pass
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        settings = RuntimeSettings.from_env()
    except ValueError as exc:
        logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s")
        logging.error("Invalid configuration: %s", exc)
        return 2

    logging.basicConfig(
        level=getattr(logging, args.log_level or settings.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    project_dir = settings.project_path(args.project_dir)

    try:
        if args.command == "create":
            return run_create(project_dir, args)
        if args.command == "open":
            return run_open(project_dir)
        if args.command == "migrate":
            return run_migrate(project_dir)
        if args.command == "blocks":
            return run_blocks(project_dir, settings)
        return run_watch(project_dir, settings)
    except (ManifoldError, OSError, ValueError) as exc:
        logging.error("%s failed: %s", args.command, exc)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())

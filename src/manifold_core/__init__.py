from importlib.metadata import version

from .autosave import DebouncedSaver, create_project_autosaver
from .blocks import (
    BlockCatalogState,
    BlockLoadError,
    DependencyValidationResult,
    block_lock_entry,
    build_blocks_lock,
    create_internal_block_registry,
    get_missing_blocks_for_existing_instances,
    load_workspace_blocks,
    merge_block_catalog,
    parse_block_manifest,
    parse_dependency_allowlist,
    validate_block_dependencies,
)
from .canonical import stable_stringify, to_canonical_json
from .errors import DocumentValidationError, ManifoldError, UnsupportedSchemaVersionError, ValidationIssue
from .ids import deterministic_instance_id
from .ir import BlockInstanceIR, PageIR, ThemeIR
from .migrations import MigrationResult, migrate_project_if_needed
from .normalize import assign_missing_instance_ids, normalize_page_manifest_to_ir, resolve_theme_ir
from .project_files import NewProjectInput, create_project_file_map
from .schema import (
    CURRENT_PROJECT_SCHEMA_VERSION,
    BlockEntry,
    BlockLockEntry,
    BlockManifest,
    BlocksLockFile,
    BlockVisibility,
    ContentRecordFile,
    DraftBlockEntry,
    DraftPage,
    PageManifestFile,
    ProjectFile,
    SiteFile,
    ThemeFile,
    compare_semver,
    parse_document,
    parse_semver,
)
from .store import ProjectSnapshot, ProjectStore, create_project, open_project, save_project
from .watcher import WorkspaceBlockEvent, WorkspaceBlockEventType, WorkspaceBlockWatcher, create_workspace_block_watcher


def get_version() -> str:
    try:
        return version("manifold-core")
    except Exception:
        return "0.0.0"


__all__ = [
    "BlockCatalogState",
    "BlockEntry",
    "BlockInstanceIR",
    "BlockLoadError",
    "BlockLockEntry",
    "BlockManifest",
    "BlockVisibility",
    "BlocksLockFile",
    "ContentRecordFile",
    "DebouncedSaver",
    "DependencyValidationResult",
    "DocumentValidationError",
    "DraftBlockEntry",
    "DraftPage",
    "ManifoldError",
    "MigrationResult",
    "NewProjectInput",
    "PageIR",
    "PageManifestFile",
    "ProjectFile",
    "ProjectSnapshot",
    "ProjectStore",
    "SiteFile",
    "ThemeFile",
    "ThemeIR",
    "UnsupportedSchemaVersionError",
    "ValidationIssue",
    "WorkspaceBlockEvent",
    "WorkspaceBlockEventType",
    "WorkspaceBlockWatcher",
    "CURRENT_PROJECT_SCHEMA_VERSION",
    "assign_missing_instance_ids",
    "block_lock_entry",
    "build_blocks_lock",
    "compare_semver",
    "create_internal_block_registry",
    "create_project",
    "create_project_autosaver",
    "create_project_file_map",
    "create_workspace_block_watcher",
    "deterministic_instance_id",
    "get_missing_blocks_for_existing_instances",
    "load_workspace_blocks",
    "merge_block_catalog",
    "migrate_project_if_needed",
    "normalize_page_manifest_to_ir",
    "open_project",
    "parse_block_manifest",
    "parse_dependency_allowlist",
    "parse_document",
    "parse_semver",
    "resolve_theme_ir",
    "save_project",
    "stable_stringify",
    "to_canonical_json",
    "validate_block_dependencies",
]

"""Block manifest catalog: built-in and workspace registries, merge, and dependency checks.

Workspace blocks live in ``<project>/blocks/<folder>/block.manifest.json``.
Loading is non-fatal per block: a manifest that fails to parse is reported in
``errors`` and the rest of the catalog still loads.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .canonical import to_canonical_json
from .errors import DocumentValidationError
from .schema import BlockLockEntry, BlockManifest, BlocksLockFile, ProjectFile, parse_document_json

logger = logging.getLogger(__name__)

BLOCKS_DIR = "blocks"
MANIFEST_FILE_NAME = "block.manifest.json"

_RANGE_OPERATORS = ("^", "~")


@dataclass(frozen=True)
class BlockLoadError:
    block_path: str
    message: str


@dataclass(frozen=True)
class BlockCatalogState:
    manifests: list[BlockManifest] = field(default_factory=list)
    errors: list[BlockLoadError] = field(default_factory=list)

    @property
    def block_ids(self) -> list[str]:
        return [manifest.block_id for manifest in self.manifests]

    def get(self, block_id: str) -> BlockManifest | None:
        for manifest in self.manifests:
            if manifest.block_id == block_id:
                return manifest
        return None


@dataclass(frozen=True)
class DependencyValidationResult:
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors


def _sorted_by_block_id(manifests: Iterable[BlockManifest]) -> list[BlockManifest]:
    return sorted(manifests, key=lambda manifest: manifest.block_id)


def parse_block_manifest(manifest_path: Path) -> BlockManifest:
    """Read and validate one manifest.

    Raises:
        OSError: If the file cannot be read.
        DocumentValidationError: If the JSON is malformed or fails the schema.
    """
    text = Path(manifest_path).read_text(encoding="utf-8")
    return parse_document_json(BlockManifest, text, source=Path(manifest_path))


def create_internal_block_registry(manifests: Iterable[BlockManifest]) -> BlockCatalogState:
    return BlockCatalogState(manifests=_sorted_by_block_id(manifests), errors=[])


def load_workspace_blocks(project_dir: Path) -> BlockCatalogState:
    """Scan ``<project_dir>/blocks`` for manifests in sorted folder order.

    A missing ``blocks/`` directory is an empty catalog, not an error. When two
    folders declare the same ``blockId`` the later folder wins and the
    collision is reported in ``errors``.
    """
    blocks_root = Path(project_dir) / BLOCKS_DIR
    if not blocks_root.is_dir():
        return BlockCatalogState()

    manifests: list[BlockManifest] = []
    errors: list[BlockLoadError] = []
    seen_paths: dict[str, Path] = {}

    for folder_name in sorted(entry.name for entry in blocks_root.iterdir() if entry.is_dir()):
        manifest_path = blocks_root / folder_name / MANIFEST_FILE_NAME
        try:
            manifest = parse_block_manifest(manifest_path)
        except (OSError, DocumentValidationError) as exc:
            logger.warning("skipping block manifest %s: %s", manifest_path, exc)
            errors.append(BlockLoadError(block_path=str(manifest_path), message=str(exc)))
            continue

        previous_path = seen_paths.get(manifest.block_id)
        if previous_path is not None:
            message = f"duplicate blockId {manifest.block_id}: {manifest_path} overrides {previous_path}"
            logger.warning("%s", message)
            errors.append(BlockLoadError(block_path=str(manifest_path), message=message))
            manifests = [existing for existing in manifests if existing.block_id != manifest.block_id]
        seen_paths[manifest.block_id] = manifest_path
        manifests.append(manifest)

    return BlockCatalogState(manifests=manifests, errors=errors)


def merge_block_catalog(internal: BlockCatalogState, workspace: BlockCatalogState) -> BlockCatalogState:
    """Merge the built-in and workspace registries. Workspace wins on ``blockId`` collision."""
    merged: dict[str, BlockManifest] = {}
    for manifest in internal.manifests:
        merged[manifest.block_id] = manifest
    for manifest in workspace.manifests:
        if manifest.block_id in merged:
            logger.debug("workspace block %s overrides built-in block", manifest.block_id)
        merged[manifest.block_id] = manifest
    return BlockCatalogState(
        manifests=_sorted_by_block_id(merged.values()),
        errors=[*internal.errors, *workspace.errors],
    )


def get_missing_blocks_for_existing_instances(block_ids_in_use: Iterable[str], catalog: BlockCatalogState) -> list[str]:
    available = set(catalog.block_ids)
    return sorted({block_id for block_id in block_ids_in_use if block_id not in available})


def parse_dependency_allowlist(project: ProjectFile | Mapping[str, Any] | None) -> set[str]:
    """Read the permitted block dependency names from a project document.

    Accepts the parsed document or its raw mapping (``allowedBlockDependencies``).
    Anything that is not a non-empty string is ignored.
    """
    if isinstance(project, ProjectFile):
        allowed: Any = project.allowed_block_dependencies
    elif isinstance(project, Mapping):
        allowed = project.get("allowedBlockDependencies")
    else:
        return set()
    if not isinstance(allowed, list):
        return set()
    return {item.strip() for item in allowed if isinstance(item, str) and item.strip()}


def _is_exact_pin(version: str) -> bool:
    return not any(operator in version for operator in _RANGE_OPERATORS)


def validate_block_dependencies(
    manifests: Iterable[BlockManifest],
    allowlist: Iterable[str] = (),
) -> DependencyValidationResult:
    """Check every declared dependency of every block.

    For each dependency, in manifest order: the version must be an exact pin,
    the name must be in ``allowlist`` when it is non-empty, and the version must
    equal the first version seen for that name. Every violation is reported.
    """
    allowed = set(allowlist)
    errors: list[str] = []
    first_seen: dict[str, str] = {}

    for manifest in manifests:
        for dep_name, dep_version in manifest.dependencies.items():
            if not _is_exact_pin(dep_version):
                errors.append(f"{manifest.block_id}: dependency {dep_name} must use exact version pin")
            if allowed and dep_name not in allowed:
                errors.append(f"{manifest.block_id}: dependency {dep_name} is not in allowlist")
            existing = first_seen.get(dep_name)
            if existing is not None and existing != dep_version:
                errors.append(f"{manifest.block_id}: dependency {dep_name} conflicts ({existing} vs {dep_version})")
            elif existing is None:
                first_seen[dep_name] = dep_version

    return DependencyValidationResult(errors=errors)


# ---------------------------------------------------------------------------
# blocks.lock.json entries
# ---------------------------------------------------------------------------


def manifest_hash(manifest: BlockManifest) -> str:
    """SHA-256 over the manifest's RFC 8785 canonical form."""
    return hashlib.sha256(to_canonical_json(manifest).encode("utf-8")).hexdigest()


def block_lock_entry(manifest: BlockManifest) -> BlockLockEntry:
    return BlockLockEntry(block_id=manifest.block_id, version=manifest.version, hash=manifest_hash(manifest))


def build_blocks_lock(internal: BlockCatalogState, workspace: BlockCatalogState) -> BlocksLockFile:
    return BlocksLockFile(
        internal=[block_lock_entry(manifest) for manifest in _sorted_by_block_id(internal.manifests)],
        workspace=[block_lock_entry(manifest) for manifest in _sorted_by_block_id(workspace.manifests)],
    )

"""Versioned schemas for every document persisted in a project directory.

On disk every key is camelCase; in Python the same fields are snake_case and
either spelling is accepted on input. Unknown keys are dropped. Optional fields
are filled with their defaults so a parsed document is always complete.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_serializer
from pydantic.alias_generators import to_camel

from .errors import DocumentValidationError, ValidationIssue

CURRENT_PROJECT_SCHEMA_VERSION = "1.0.0"

SEMVER_PATTERN = r"^\d+\.\d+\.\d+$"
_SEMVER_RE = re.compile(SEMVER_PATTERN)
_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z$")

DEFAULT_FONT_STACK = "Inter, system-ui, sans-serif"

ModelT = TypeVar("ModelT", bound=BaseModel)


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


def utc_now_iso() -> str:
    """Current UTC time as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _check_datetime(value: str) -> str:
    if not _DATETIME_RE.match(value):
        raise ValueError("Expected ISO 8601 UTC date-time ending in Z")
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValueError(f"Invalid date-time: {exc}") from exc
    return value


# ---------------------------------------------------------------------------
# Semver
# ---------------------------------------------------------------------------


def parse_semver(version: str) -> tuple[int, int, int]:
    if not _SEMVER_RE.match(version):
        raise ValueError(f"Invalid semver value: {version}")
    major, minor, patch = (int(part) for part in version.split("."))
    return major, minor, patch


def compare_semver(left: str, right: str) -> int:
    """Return <0, 0 or >0 as ``left`` is older than, equal to or newer than ``right``."""
    for a, b in zip(parse_semver(left), parse_semver(right)):
        if a != b:
            return a - b
    return 0


# ---------------------------------------------------------------------------
# project.json
# ---------------------------------------------------------------------------


class ProjectFile(_Document):
    schema_version: str = Field(pattern=SEMVER_PATTERN)
    project_id: str = Field(min_length=1)
    project_name: str = Field(min_length=1)
    client_name: str = ""
    created_at: str
    updated_at: str
    seed: str = Field(min_length=8)
    allowed_block_dependencies: list[str] = Field(default_factory=list)

    @field_validator("created_at", "updated_at")
    @classmethod
    def _timestamps_are_datetimes(cls, value: str) -> str:
        return _check_datetime(value)


# ---------------------------------------------------------------------------
# site.json / theme.json
# ---------------------------------------------------------------------------


class NavigationItem(_Document):
    label: str
    href: str


class SiteFooter(_Document):
    text: str = ""


class SeoDefaults(_Document):
    title_template: str = "%s"
    description: str = ""


class SiteFile(_Document):
    title: str = Field(min_length=1)
    description: str = ""
    base_url: str = ""
    navigation: list[NavigationItem] = Field(default_factory=list)
    footer: SiteFooter = Field(default_factory=SiteFooter)
    seo_defaults: SeoDefaults


class ThemeTokens(_Document):
    color_primary: str = "#1d4ed8"
    color_text: str = "#111827"
    color_background: str = "#ffffff"
    spacing_base: int = Field(default=8, gt=0)
    radius_base: int = Field(default=8, ge=0)
    font_body: str = DEFAULT_FONT_STACK
    font_heading: str = DEFAULT_FONT_STACK


class ThemeFile(_Document):
    tokens: ThemeTokens


# ---------------------------------------------------------------------------
# pages/*.json
# ---------------------------------------------------------------------------


class BlockVisibility(str, Enum):
    VISIBLE = "visible"
    HIDDEN = "hidden"


class PageSeo(_Document):
    title: str | None = None
    description: str | None = None

    @model_serializer(mode="wrap")
    def _omit_absent(self, handler: Any) -> dict[str, Any]:
        # Absent SEO overrides stay absent on disk rather than becoming null.
        data = handler(self)
        return {key: value for key, value in data.items() if value is not None}


class DraftBlockEntry(_Document):
    """A block entry as the editor holds it; ``instance_id`` may still be unassigned."""

    instance_id: str = ""
    block_id: str = Field(min_length=1)
    props: dict[str, Any] = Field(default_factory=dict)
    content_refs: dict[str, str] = Field(default_factory=dict)
    style_overrides: dict[str, Any] = Field(default_factory=dict)
    visibility: BlockVisibility = BlockVisibility.VISIBLE


class BlockEntry(DraftBlockEntry):
    instance_id: str = Field(min_length=1)


class DraftPage(_Document):
    page_id: str = Field(min_length=1)
    route: str = Field(min_length=1)
    title: str = Field(min_length=1)
    seo: PageSeo
    blocks: list[DraftBlockEntry]


class PageManifestFile(DraftPage):
    blocks: list[BlockEntry]


# ---------------------------------------------------------------------------
# content/*.json
# ---------------------------------------------------------------------------


class ContentRecordFile(_Document):
    id: str = Field(min_length=1)
    type: str = Field(min_length=1)
    data: dict[str, Any]


# ---------------------------------------------------------------------------
# blocks.lock.json
# ---------------------------------------------------------------------------


class BlockLockEntry(_Document):
    block_id: str
    version: str
    hash: str


class BlocksLockFile(_Document):
    internal: list[BlockLockEntry] = Field(default_factory=list)
    workspace: list[BlockLockEntry] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# blocks/<folder>/block.manifest.json
# ---------------------------------------------------------------------------


class BlockRuntime(_Document):
    entry: str = Field(min_length=1)


class BlockExport(_Document):
    astro_template: str = Field(min_length=1)


class BlockManifest(_Document):
    block_id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    category: str = Field(min_length=1)
    tags: list[str] = Field(default_factory=list)
    # Plugin-authored; consumers validate these further themselves.
    props_schema: dict[str, Any]
    editor_schema: dict[str, Any]
    runtime: BlockRuntime
    export: BlockExport
    dependencies: dict[str, str] = Field(default_factory=dict)
    version: str = Field(min_length=1)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _issues_from(exc: ValidationError) -> list[ValidationIssue]:
    return [
        ValidationIssue(path=".".join(str(part) for part in error["loc"]), message=error["msg"])
        for error in exc.errors()
    ]


def parse_document(model: type[ModelT], raw: Any, *, source: Path | None = None) -> ModelT:
    """Validate ``raw`` against ``model`` and return the fully-defaulted document.

    ``raw`` may be a mapping or an existing model instance; instances are dumped
    and validated again so in-memory mutations are checked too.

    Raises:
        DocumentValidationError: Listing every violated constraint.
    """
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(mode="json", by_alias=True, warnings=False)
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise DocumentValidationError(model.__name__, _issues_from(exc), source=source) from exc


def parse_document_json(model: type[ModelT], text: str, *, source: Path | None = None) -> ModelT:
    """Like :func:`parse_document` but for JSON text; malformed JSON is a validation issue."""
    try:
        return model.model_validate_json(text)
    except ValidationError as exc:
        raise DocumentValidationError(model.__name__, _issues_from(exc), source=source) from exc

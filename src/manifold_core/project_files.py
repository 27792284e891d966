from __future__ import annotations

import re
import secrets
import uuid
from dataclasses import dataclass

from .schema import (
    CURRENT_PROJECT_SCHEMA_VERSION,
    BlocksLockFile,
    ContentRecordFile,
    PageManifestFile,
    ProjectFile,
    SiteFile,
    ThemeFile,
    parse_document,
    utc_now_iso,
)

HOME_PAGE_ID = "page-home"

_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9_-]")

ProjectDocument = ProjectFile | SiteFile | ThemeFile | BlocksLockFile | PageManifestFile | ContentRecordFile


@dataclass(frozen=True)
class NewProjectInput:
    project_name: str
    client_name: str = ""
    site_title: str | None = None


def sanitize_file_stem(identifier: str) -> str:
    """Map a page or record id to a filename stem: anything outside ``[a-zA-Z0-9_-]`` becomes ``-``."""
    return _UNSAFE_FILENAME_CHARS.sub("-", identifier)


def make_default_project(new_project: NewProjectInput) -> ProjectFile:
    timestamp = utc_now_iso()
    return parse_document(
        ProjectFile,
        {
            "schemaVersion": CURRENT_PROJECT_SCHEMA_VERSION,
            "projectId": str(uuid.uuid4()),
            "projectName": new_project.project_name,
            "clientName": new_project.client_name,
            "createdAt": timestamp,
            "updatedAt": timestamp,
            "seed": secrets.token_hex(12),
        },
    )


def make_default_site(new_project: NewProjectInput) -> SiteFile:
    return parse_document(
        SiteFile,
        {
            "title": new_project.site_title or new_project.project_name,
            "seoDefaults": {},
        },
    )


def make_default_theme() -> ThemeFile:
    return parse_document(ThemeFile, {"tokens": {}})


def make_default_home_page() -> PageManifestFile:
    return parse_document(
        PageManifestFile,
        {
            "pageId": HOME_PAGE_ID,
            "route": "/",
            "title": "Home",
            "seo": {"title": "Home", "description": ""},
            "blocks": [],
        },
    )


def make_default_content_records() -> list[ContentRecordFile]:
    return []


def make_default_blocks_lock() -> BlocksLockFile:
    return BlocksLockFile()


def create_project_file_map(new_project: NewProjectInput) -> dict[str, ProjectDocument]:
    """Relative path -> document for a brand new project.

    Raises:
        DocumentValidationError: If the input does not produce valid documents
            (for example an empty project name).
    """
    home_page = make_default_home_page()
    files: dict[str, ProjectDocument] = {
        "project.json": make_default_project(new_project),
        "site.json": make_default_site(new_project),
        "theme.json": make_default_theme(),
        "blocks.lock.json": make_default_blocks_lock(),
        f"pages/{sanitize_file_stem(home_page.page_id)}.json": home_page,
    }
    for record in make_default_content_records():
        files[f"content/{sanitize_file_stem(record.id)}.json"] = record
    return files

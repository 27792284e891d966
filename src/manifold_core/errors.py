from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


class ManifoldError(Exception):
    """Base class for errors raised by the project core."""


@dataclass(frozen=True)
class ValidationIssue:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


class DocumentValidationError(ManifoldError, ValueError):
    """A document failed its schema. Carries every violated constraint."""

    def __init__(self, document: str, issues: list[ValidationIssue], *, source: Path | None = None) -> None:
        self.document = document
        self.issues = list(issues)
        self.source = source
        location = f" at {source}" if source is not None else ""
        details = "; ".join(str(issue) for issue in self.issues) or "invalid document"
        super().__init__(f"{document}{location} failed validation: {details}")


class UnsupportedSchemaVersionError(ManifoldError, RuntimeError):
    """The project was written by a newer application than this one."""

    def __init__(self, project_version: str, supported_version: str) -> None:
        self.project_version = project_version
        self.supported_version = supported_version
        super().__init__(f"Project schema {project_version} is newer than supported {supported_version}")

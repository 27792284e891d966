from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .autosave import DEFAULT_SAVE_DELAY_MS
from .watcher import DEFAULT_WATCH_DEBOUNCE_MS

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class RuntimeSettings:
    """Runtime settings loaded from environment with fail-fast validation."""

    save_debounce_ms: int = DEFAULT_SAVE_DELAY_MS
    watch_debounce_ms: int = DEFAULT_WATCH_DEBOUNCE_MS
    projects_root: str = ""
    dependency_allowlist: tuple[str, ...] = field(default_factory=tuple)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env_file: Path | None = None) -> "RuntimeSettings":
        """Build settings from ``MANIFOLD_*`` variables.

        A ``.env`` file (``env_file`` or ``./.env``) is loaded first; variables
        already set in the environment take precedence over it.
        """
        env_path = env_file if env_file is not None else Path.cwd() / ".env"
        if env_path.is_file():
            load_dotenv(env_path)
        return cls(
            save_debounce_ms=_get_env_int("MANIFOLD_SAVE_DEBOUNCE_MS", default=DEFAULT_SAVE_DELAY_MS, minimum=0),
            watch_debounce_ms=_get_env_int("MANIFOLD_WATCH_DEBOUNCE_MS", default=DEFAULT_WATCH_DEBOUNCE_MS, minimum=0),
            projects_root=os.getenv("MANIFOLD_PROJECTS_ROOT", ""),
            dependency_allowlist=_get_env_list("MANIFOLD_DEPENDENCY_ALLOWLIST"),
            log_level=os.getenv("MANIFOLD_LOG_LEVEL", "INFO"),
        ).normalized()

    @property
    def projects_root_path(self) -> Path:
        """Return the projects root as a Path, defaulting to cwd if unset."""
        return Path(self.projects_root) if self.projects_root else Path.cwd()

    def normalized(self) -> "RuntimeSettings":
        """Validate and normalize all fields. Raises ValueError on invalid configuration."""
        if self.save_debounce_ms > 60_000:
            raise ValueError(f"MANIFOLD_SAVE_DEBOUNCE_MS must be <= 60000, got: {self.save_debounce_ms}")
        if self.watch_debounce_ms > 10_000:
            raise ValueError(f"MANIFOLD_WATCH_DEBOUNCE_MS must be <= 10000, got: {self.watch_debounce_ms}")

        log_level = self.log_level.strip().upper()
        if log_level not in _LOG_LEVELS:
            raise ValueError(f"MANIFOLD_LOG_LEVEL must be one of: {', '.join(_LOG_LEVELS)}")

        return RuntimeSettings(
            save_debounce_ms=self.save_debounce_ms,
            watch_debounce_ms=self.watch_debounce_ms,
            projects_root=self.projects_root.strip(),
            dependency_allowlist=tuple(sorted({name.strip() for name in self.dependency_allowlist if name.strip()})),
            log_level=log_level,
        )

    def project_path(self, project_dir: Path) -> Path:
        return project_dir if project_dir.is_absolute() else self.projects_root_path / project_dir


def _get_env_int(name: str, default: int, minimum: int, maximum: int = 10_000_000) -> int:
    """Parse an integer from an environment variable with bounds checking.

    Args:
        name: Environment variable name.
        default: Value to return if the variable is unset.
        minimum: Inclusive lower bound.
        maximum: Inclusive upper bound (default 10M, prevents absurd values).

    Returns:
        The parsed integer, guaranteed to be within [minimum, maximum].

    Raises:
        ValueError: If the value is not an integer or is outside bounds.
    """
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got: {raw!r}") from exc
    if parsed < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got: {parsed}")
    if parsed > maximum:
        raise ValueError(f"{name} must be <= {maximum}, got: {parsed}")
    return parsed


def _get_env_list(name: str) -> tuple[str, ...]:
    raw = os.getenv(name, "")
    return tuple(item.strip() for item in raw.split(",") if item.strip())

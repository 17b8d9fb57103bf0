"""Protected-area registry: which paths make up the fork's feature."""

from __future__ import annotations

import fnmatch
from collections.abc import Iterable
from pathlib import Path

import yaml
from pydantic import Field, ValidationError

from forksync.core.base import BaseRecord
from forksync.core.errors import ConfigurationError
from forksync.core.log import logger

_GLOB_CHARS = frozenset("*?[")


class ForkUrlPattern(BaseRecord):
    """String that marks content as belonging to this fork."""

    pattern: str
    description: str = ""


def path_matches(pattern: str, path: str) -> bool:
    """Match a repository path against one protected pattern.

    Patterns follow the protected-area document conventions:
    - ``dir/`` protects everything below ``dir``
    - patterns with glob characters use fnmatch (``*`` crosses ``/``)
    - anything else matches the exact path or a directory of that name
    """
    pattern = pattern.strip()
    if pattern.startswith("./"):
        pattern = pattern[2:]
    path = path.strip()
    if not pattern:
        return False
    if pattern.endswith("/"):
        return path.startswith(pattern)
    if _GLOB_CHARS & set(pattern):
        return fnmatch.fnmatchcase(path, pattern)
    return path == pattern or path.startswith(pattern + "/")


class ProtectedPathSet(BaseRecord):
    """Loaded once per run; read-only afterwards."""

    patterns: list[str] = Field(
        description="Ordered glob patterns guarding the feature"
    )
    critical_files: list[str] = Field(
        description="Exact paths whose absence breaks the feature"
    )
    fork_specific_urls: list[ForkUrlPattern] = Field(default_factory=list)
    dependency_paths: list[str] = Field(
        default_factory=list,
        description="Files outside the feature that it depends on",
    )
    min_fork_url_count: int = 0

    def is_protected(self, path: str) -> bool:
        return any(path_matches(p, path) for p in self.patterns) or (
            path in self.critical_files
        )

    def is_critical(self, path: str) -> bool:
        return path in self.critical_files

    def is_dependency(self, path: str) -> bool:
        if self.is_protected(path):
            return False
        return any(path_matches(p, path) for p in self.dependency_paths)

    def protected(self, paths: Iterable[str]) -> list[str]:
        """Protected members of ``paths``, in input order."""
        return [p for p in paths if self.is_protected(p)]

    def dependencies(self, paths: Iterable[str]) -> list[str]:
        return [p for p in paths if self.is_dependency(p)]

    def search_roots(self) -> list[str]:
        """Directory prefixes where fork URL markers are expected."""
        roots = []
        for pattern in self.patterns:
            head = pattern.split("*", 1)[0].rstrip("/")
            if head and head not in roots:
                roots.append(head)
        return roots


def build_protected_paths(data: dict) -> ProtectedPathSet:
    """Validate a protected-area mapping into a ProtectedPathSet.

    Accepts the document layout (``protected_paths``,
    ``critical_files``, ``fork_specific_urls``,
    ``monitoring.min_fork_url_count``) as well as the inline config
    section, which names ``min_fork_url_count`` at top level.

    Raises:
        ConfigurationError: Required lists are missing or empty
    """
    monitoring = data.get("monitoring") or {}
    urls = [
        {"pattern": u} if isinstance(u, str) else u
        for u in data.get("fork_specific_urls") or []
    ]
    try:
        paths = ProtectedPathSet(
            patterns=list(data.get("protected_paths") or []),
            critical_files=list(data.get("critical_files") or []),
            fork_specific_urls=urls,
            dependency_paths=list(data.get("dependency_paths") or []),
            min_fork_url_count=data.get(
                "min_fork_url_count",
                monitoring.get("min_fork_url_count", 0),
            ),
        )
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid protected-area configuration", detail=str(e)
        ) from e

    if not paths.patterns:
        raise ConfigurationError("protected_paths must be a non-empty list")
    if not paths.critical_files:
        raise ConfigurationError("critical_files must be a non-empty list")
    return paths


def load_protected_paths(document: Path) -> ProtectedPathSet:
    """Read a protected-area YAML document.

    Raises:
        ConfigurationError: File missing, unreadable, or invalid
    """
    if not document.is_file():
        raise ConfigurationError(
            "Protected-area document not found", path=str(document)
        )
    try:
        with open(document, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            "Failed to read protected-area document",
            path=str(document),
            detail=str(e),
        ) from e
    if not isinstance(data, dict):
        raise ConfigurationError(
            "Protected-area document must be a mapping", path=str(document)
        )

    paths = build_protected_paths(data)
    logger.info(
        "Protected-area document loaded",
        path=str(document),
        patterns=len(paths.patterns),
        critical_files=len(paths.critical_files),
    )
    return paths

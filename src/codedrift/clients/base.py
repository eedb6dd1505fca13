"""Boundaries of the external services the engine calls."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class CommitInfo:
    sha: str
    message: str = ""
    author: str | None = None
    date: datetime | None = None


@dataclass(frozen=True, slots=True)
class RepositoryInfo:
    owner: str
    name: str
    default_branch: str = "main"
    description: str | None = None
    language: str | None = None
    topics: list[str] = field(default_factory=list)


class VcsClient(Protocol):
    """Version-control host access. Missing files are None, not errors."""

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str | None = None) -> str | None: ...

    async def get_commits(
        self,
        owner: str,
        repo: str,
        *,
        since: datetime | None = None,
        sha: str | None = None,
        per_page: int = 100,
    ) -> list[CommitInfo]: ...

    async def list_files(self, owner: str, repo: str, ref: str) -> list[str]: ...


class LanguageModelClient(Protocol):
    """Returns the model's raw JSON verdict for a change context."""

    async def analyze_changes(self, context: dict[str, Any]) -> dict[str, Any]: ...

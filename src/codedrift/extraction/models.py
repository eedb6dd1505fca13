"""Data models for the structure extractor.

All models are frozen dataclasses with no DB coupling; the sync layer maps
them onto CodeStructure rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class ExtractedStructure:
    """One function or method found in a file at a commit."""

    file_path: str
    function_name: str
    class_name: str | None
    signature: str
    fingerprint: str
    start_line: int
    end_line: int
    language: str
    parameters: tuple[str, ...] = ()
    return_type: str | None = None
    modifiers: tuple[str, ...] = ()
    decorators: tuple[str, ...] = ()
    dependencies: tuple[str, ...] = ()
    is_exported: bool = False
    is_public: bool = False
    cyclomatic_complexity: int = 1
    cognitive_complexity: int = 0
    lines_of_code: int = 0

    @property
    def qualified_name(self) -> str:
        return f"{self.class_name}.{self.function_name}" if self.class_name else self.function_name

    def ast_data(self) -> dict[str, Any]:
        return {
            "parameters": list(self.parameters),
            "return_type": self.return_type,
            "modifiers": list(self.modifiers),
            "decorators": list(self.decorators),
            "dependencies": list(self.dependencies),
            "is_exported": self.is_exported,
            "is_public": self.is_public,
        }

    def metrics(self) -> dict[str, Any]:
        return {
            "cyclomatic_complexity": self.cyclomatic_complexity,
            "cognitive_complexity": self.cognitive_complexity,
            "lines_of_code": self.lines_of_code,
        }


@dataclass(frozen=True, slots=True)
class Span:
    """Inclusive 1-indexed line span of a located function."""

    start_line: int
    end_line: int

    @property
    def line_count(self) -> int:
        return self.end_line - self.start_line + 1


@dataclass(frozen=True, slots=True)
class NotFound:
    """A function name that could not be located in the given text."""

    name: str
    reason: str = "no declaration matched"


@dataclass(slots=True)
class FileExtraction:
    """Per-file outcome during a repository-wide extraction."""

    file_path: str
    language: str
    structures: list[ExtractedStructure] = field(default_factory=list)
    error: str | None = None

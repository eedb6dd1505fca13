"""Canonical language definitions.

This module defines the authoritative mapping of file extensions to language
names. Detection is by extension only; file contents are never sniffed.

A language is *extractable* when the structure extractor has declaration
patterns for it. Every other known language is still detected (so change logs
and citations carry a language), but extraction raises
UnsupportedLanguageError.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePosixPath

UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class Language:
    """Canonical definition for a language name.

    Attributes:
        name: Unique identifier (lowercase, e.g., "python", "typescript")
        extensions: File extensions including dot (e.g., ".py", ".ts")
        block_style: "braces" or "indent"; how function bodies are delimited
        extractable: True when the structure extractor supports it
    """

    name: str
    extensions: frozenset[str]
    block_style: str = "braces"
    extractable: bool = False


# =============================================================================
# Language Definitions
# =============================================================================
# Extensions are case-insensitive (normalized to lowercase during lookup).

ALL_LANGUAGES: tuple[Language, ...] = (
    Language("typescript", frozenset({".ts", ".tsx", ".mts", ".cts"}), extractable=True),
    Language("javascript", frozenset({".js", ".jsx", ".mjs", ".cjs"}), extractable=True),
    Language("python", frozenset({".py", ".pyi"}), block_style="indent", extractable=True),
    Language("java", frozenset({".java"}), extractable=True),
    Language("go", frozenset({".go"}), extractable=True),
    Language("rust", frozenset({".rs"}), extractable=True),
    Language("c", frozenset({".c", ".h"})),
    Language("cpp", frozenset({".cpp", ".cc", ".cxx", ".hpp", ".hh"})),
    Language("csharp", frozenset({".cs"})),
    Language("php", frozenset({".php"})),
    Language("ruby", frozenset({".rb"}), block_style="indent"),
    Language("kotlin", frozenset({".kt", ".kts"})),
    Language("swift", frozenset({".swift"})),
    Language("scala", frozenset({".scala"})),
)

_BY_NAME: dict[str, Language] = {lang.name: lang for lang in ALL_LANGUAGES}
_BY_EXTENSION: dict[str, Language] = {ext: lang for lang in ALL_LANGUAGES for ext in lang.extensions}


def detect_language(path: str) -> str:
    """Map a file path to a language name, or "unknown"."""
    suffix = PurePosixPath(path).suffix.lower()
    lang = _BY_EXTENSION.get(suffix)
    return lang.name if lang else UNKNOWN


def get_language(name: str) -> Language | None:
    return _BY_NAME.get(name)


def is_extractable(name: str) -> bool:
    lang = _BY_NAME.get(name)
    return lang is not None and lang.extractable


def is_analyzable_file(path: str, extensions: list[str] | None = None) -> bool:
    """True if the path should be fed to the extractor during a sync.

    Args:
        path: Repository-relative file path
        extensions: Optional allow-list (e.g. [".py", ".ts"]); defaults to
            every extractable language's extensions
    """
    suffix = PurePosixPath(path).suffix.lower()
    if extensions:
        normalized = {e.lower() if e.startswith(".") else f".{e.lower()}" for e in extensions}
        return suffix in normalized
    lang = _BY_EXTENSION.get(suffix)
    return lang is not None and lang.extractable


def extractable_extensions() -> set[str]:
    return {ext for lang in ALL_LANGUAGES if lang.extractable for ext in lang.extensions}

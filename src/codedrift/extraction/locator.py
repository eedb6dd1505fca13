"""Heuristic function-boundary detection.

``locate_function(text, name)`` finds the span of a named function in raw
file content. It is the only place the relocator depends on declaration
syntax, so a real parser can replace it per language through
``register_locator`` without touching the relocator or the classifier.

The default heuristic scans line by line for declaration patterns matching
the name (free functions, class methods with visibility/static/async
modifiers, arrow-function bindings, object-literal methods, Python ``def``,
Go ``func`` and Rust ``fn``), then:
- Python bodies close on dedent;
- everything else tracks brace depth from the declaration line and closes
  where depth returns to zero;
- single-line and arrow bodies that never open a brace close on the
  declaration line.

``Class.method`` names restrict the search to the text after
``class Class``.
"""

from __future__ import annotations

import re
from collections.abc import Callable

from codedrift.extraction.lexer import (
    PYTHON_LIKE,
    brace_block_end,
    profile_for,
    python_block_end,
    python_string_mask,
    sanitize_lines,
)
from codedrift.extraction.models import NotFound, Span

Locator = Callable[[str, str], "Span | NotFound"]

_LOCATORS: dict[str, Locator] = {}

_VISIBILITY = r"(?:(?:export|default|public|private|protected|static|async|readonly|override|abstract|final|pub(?:\([^)]*\))?)\s+)*"


def _strong_patterns(name: str) -> list[tuple[re.Pattern[str], str]]:
    n = re.escape(name)
    return [
        (re.compile(rf"^\s*(?:async\s+)?def\s+{n}\s*\("), "python"),
        (re.compile(rf"^\s*{_VISIBILITY}function\s*\*?\s*{n}\s*(?:<[^(]*>)?\s*\("), "braced"),
        (re.compile(rf"^\s*(?:export\s+)?(?:const|let|var)\s+{n}\s*(?::[^=]+)?=\s*(?:async\s+)?(?:function\b|\(|[\w$]+\s*=>)"), "arrow"),
        (re.compile(rf"^func\s*(?:\([^)]*\)\s*)?{n}\s*(?:\[[^\]]*\])?\s*\("), "braced"),
        (re.compile(rf"^\s*{_VISIBILITY}(?:(?:const|async|unsafe)\s+)*fn\s+{n}\s*[<(]"), "braced"),
    ]


def _weak_patterns(name: str) -> list[tuple[re.Pattern[str], str]]:
    n = re.escape(name)
    return [
        # Class method (TS/JS/Java); the line must not end like a call statement
        (re.compile(rf"^\s*{_VISIBILITY}(?:get\s+|set\s+)?(?:[\w.<>\[\],]+\s+)?{n}\s*(?:<[^(]*>)?\s*\([^;]*$"), "braced"),
        # Object-literal method: name: function(...) / name: (...) =>
        (re.compile(rf"^\s*{n}\s*:\s*(?:async\s+)?(?:function\b|\()"), "arrow"),
        # Class field arrow: name = (...) =>
        (re.compile(rf"^\s*{_VISIBILITY}{n}\s*(?::[^=]+)?=\s*(?:async\s+)?(?:function\b|\()"), "arrow"),
    ]


_CONTROL_LINE = re.compile(r"^\s*(?:if|for|while|switch|catch|return|else|do|try|throw|await|new)\b")


def _search(
    sanitized: list[str], start: int, patterns: list[tuple[re.Pattern[str], str]]
) -> tuple[int, str] | None:
    for i in range(start, len(sanitized)):
        line = sanitized[i]
        if _CONTROL_LINE.match(line):
            continue
        for pattern, style in patterns:
            if pattern.match(line):
                return i, style
    return None


def _class_start(sanitized: list[str], class_name: str) -> int | None:
    pattern = re.compile(rf"\bclass\s+{re.escape(class_name)}\b")
    for i, line in enumerate(sanitized):
        if pattern.search(line):
            return i
    return None


def _header_end(sanitized: list[str], index: int) -> int:
    """Last line of a (possibly multi-line) parameter list starting at index."""
    depth = 0
    seen = False
    for i in range(index, min(index + 60, len(sanitized))):
        for ch in sanitized[i]:
            if ch == "(":
                depth += 1
                seen = True
            elif ch == ")":
                depth -= 1
        if seen and depth <= 0:
            return i
    return index


def heuristic_locate(text: str, name: str, language: str | None = None) -> Span | NotFound:
    """Default regex-plus-brace-counting locator. See module docstring.

    Lines are split on "\\n" only, the same rule the relocator and the
    extractor use, so line numbers agree across all three.
    """
    if not name:
        return NotFound(name, "empty function name")

    class_name: str | None = None
    func_name = name
    if "." in name:
        class_name, func_name = name.rsplit(".", 1)

    lines = text.split("\n")
    sanitized = sanitize_lines(lines, profile_for(language))

    start = 0
    if class_name:
        found_class = _class_start(sanitized, class_name)
        if found_class is None:
            return NotFound(name, f"class {class_name} not found")
        start = found_class + 1

    hit = _search(sanitized, start, _strong_patterns(func_name))
    if hit is None:
        hit = _search(sanitized, start, _weak_patterns(func_name))
    if hit is None:
        return NotFound(name)

    index, style = hit
    if style == "python":
        py_sanitized = sanitize_lines(lines, PYTHON_LIKE)
        header_end = _header_end(py_sanitized, index)
        end = python_block_end(lines, index, header_end + 1, python_string_mask(lines))
    else:
        header_end = _header_end(sanitized, index)
        end = brace_block_end(sanitized, index, header_end, is_arrow=style == "arrow")
    return Span(start_line=index + 1, end_line=max(end, index) + 1)


def register_locator(language: str, locator: Locator) -> None:
    """Replace the heuristic for one language (e.g. with a real parser)."""
    _LOCATORS[language] = locator


def unregister_locator(language: str) -> None:
    _LOCATORS.pop(language, None)


def locate_function(text: str, name: str, language: str | None = None) -> Span | NotFound:
    """Locate function ``name`` (optionally ``Class.method``) in ``text``.

    Returns a 1-indexed inclusive Span, or NotFound. Never raises for a
    missing name.
    """
    locator = _LOCATORS.get(language or "")
    if locator is None:
        return heuristic_locate(text, name, language)
    return locator(text, name)

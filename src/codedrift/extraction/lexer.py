"""Line-oriented lexical helpers for the heuristic function locator.

Nothing here parses a grammar. The helpers blank out string literal contents
and comments so that brace and paren counting only sees code, and provide
indentation-based block detection for Python.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

_CHAR_LITERAL = re.compile(r"'(?:\\[^']{1,10}|[^'\\])'")
_TRIPLE_QUOTE = re.compile(r'"""|\'\'\'')


@dataclass
class LexState:
    """Lexer state carried across lines (block comments, template strings)."""

    in_block_comment: bool = False
    open_quote: str | None = None


@dataclass(frozen=True, slots=True)
class LexProfile:
    """Per-language literal/comment rules."""

    single_quote_strings: bool = True
    backtick_strings: bool = True
    line_comment: str = "//"
    block_comments: bool = True


C_LIKE = LexProfile()
JVM_LIKE = LexProfile(single_quote_strings=False, backtick_strings=False)
GO_LIKE = LexProfile(single_quote_strings=False, backtick_strings=True)
PYTHON_LIKE = LexProfile(backtick_strings=False, line_comment="#", block_comments=False)

_PROFILES: dict[str, LexProfile] = {
    "python": PYTHON_LIKE,
    "java": JVM_LIKE,
    "rust": JVM_LIKE,
    "go": GO_LIKE,
}


def profile_for(language: str | None) -> LexProfile:
    """Literal/comment rules for a language; C-like when unknown."""
    return _PROFILES.get(language or "", C_LIKE)


def sanitize_line(line: str, state: LexState, profile: LexProfile = C_LIKE) -> str:
    """Return the line with comments removed and string contents blanked.

    Quote characters are kept so callers can still see that a literal was
    present. State is updated in place for constructs spanning lines.
    """
    out: list[str] = []
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if state.in_block_comment:
            end = line.find("*/", i)
            if end == -1:
                return "".join(out)
            state.in_block_comment = False
            i = end + 2
            continue
        if state.open_quote:
            if ch == "\\":
                i += 2
                continue
            if ch == state.open_quote:
                out.append(ch)
                state.open_quote = None
            i += 1
            continue
        if line.startswith(profile.line_comment, i):
            break
        if profile.block_comments and line.startswith("/*", i):
            state.in_block_comment = True
            i += 2
            continue
        if ch == "`" and profile.backtick_strings:
            out.append(ch)
            state.open_quote = "`"
            i += 1
            continue
        if ch == '"' or (ch == "'" and profile.single_quote_strings):
            j = i + 1
            while j < n and line[j] != ch:
                j += 2 if line[j] == "\\" else 1
            out.append(ch + ch)
            i = j + 1
            continue
        if ch == "'":
            # Char literal, or a Rust lifetime which is left as-is
            m = _CHAR_LITERAL.match(line, i)
            if m:
                out.append("''")
                i = m.end()
                continue
        out.append(ch)
        i += 1
    return "".join(out)


def sanitize_lines(lines: list[str], profile: LexProfile = C_LIKE) -> list[str]:
    state = LexState()
    return [sanitize_line(line, state, profile) for line in lines]


def collapse_whitespace(text: str) -> str:
    return " ".join(text.split())


def indentation(line: str) -> int:
    """Indent width with tabs counted as 4 columns."""
    width = 0
    for ch in line:
        if ch == " ":
            width += 1
        elif ch == "\t":
            width += 4
        else:
            break
    return width


def python_string_mask(lines: list[str]) -> list[bool]:
    """True for lines that start inside a triple-quoted string."""
    mask: list[bool] = []
    open_quote: str | None = None
    for line in lines:
        mask.append(open_quote is not None)
        for m in _TRIPLE_QUOTE.finditer(line):
            if open_quote is None:
                open_quote = m.group(0)
            elif m.group(0) == open_quote:
                open_quote = None
    return mask


def python_block_end(lines: list[str], decl_index: int, body_start: int, mask: list[bool] | None = None) -> int:
    """0-based index of the last line of the block declared at decl_index.

    body_start is the first line after the (possibly multi-line) header.
    The block ends at the last non-blank line before the first code line
    indented at or left of the declaration.
    """
    mask = mask if mask is not None else python_string_mask(lines)
    base = indentation(lines[decl_index])
    last = decl_index
    for i in range(body_start, len(lines)):
        line = lines[i]
        if not line.strip():
            continue
        if not mask[i] and indentation(line) <= base and not line.lstrip().startswith("#"):
            break
        last = i
    return max(last, body_start - 1)


def brace_block_end(sanitized: list[str], start_index: int, header_end: int, is_arrow: bool = False) -> int:
    """0-based index of the line where the brace block begun at start_index closes.

    Counting starts on the declaration line. If no brace opens by the end of
    the header, the declaration is single-line: it ends on the first line at
    or after header_end that ends with ';' or carries an arrow expression
    body.
    """
    depth = 0
    opened = False
    for i in range(start_index, len(sanitized)):
        line = sanitized[i]
        for ch in line:
            if ch == "{":
                depth += 1
                opened = True
            elif ch == "}":
                depth -= 1
        if opened and depth <= 0:
            return i
        if not opened and i >= header_end:
            stripped = line.rstrip()
            if stripped.endswith(";"):
                return i
            if is_arrow:
                tail = line.split("=>", 1)[1] if i == header_end and "=>" in line else line
                if _expression_complete(tail):
                    return i
    return header_end


_CONTINUATION_SUFFIXES = ("(", "[", ",", "{", "=>", ".", "+", "-", "*", "/", "&&", "||", "??", "?", ":", "=")


def _expression_complete(text: str) -> bool:
    """True if an arrow expression body plausibly ends on this text."""
    stripped = text.strip()
    if not stripped:
        return False
    if stripped.count("(") != stripped.count(")") or stripped.count("[") != stripped.count("]"):
        return False
    return not stripped.endswith(_CONTINUATION_SUFFIXES)

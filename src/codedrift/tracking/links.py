"""Citation link grammar.

Documents cite code with markdown links using the ``github://`` scheme:

    [label](github://OWNER/REPO/PATH:LINE)
    [label](github://OWNER/REPO/PATH:START-END)
    [label](github://OWNER/REPO/PATH#FUNCTION)

A FUNCTION may be ``Class.method``. ``format_code_link`` is the exact
inverse of ``parse_code_links`` for every well-formed link.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from codedrift.core.languages import UNKNOWN, detect_language
from codedrift.store.models import ReferenceType

CODE_LINK_PATTERN = re.compile(
    r"\[(?P<label>[^\]]+)\]\(github://(?P<owner>[^/]+)/(?P<repo>[^/]+)/(?P<path>.+?)"
    r"(?::(?P<start>\d+)(?:-(?P<end>\d+))?|#(?P<function>[^)]+))?\)"
)


@dataclass(frozen=True, slots=True)
class CodeLink:
    """One parsed citation link."""

    label: str
    owner: str
    repo: str
    file_path: str
    reference_type: ReferenceType
    start_line: int | None = None
    end_line: int | None = None
    function_name: str | None = None
    original_text: str = ""
    context: str = ""

    @property
    def repository(self) -> str:
        return f"{self.owner}/{self.repo}"


def _reference_type(start: str | None, end: str | None, function: str | None) -> ReferenceType:
    if function:
        return ReferenceType.FUNCTION
    if start and end:
        return ReferenceType.RANGE
    return ReferenceType.LINE


def _context(content: str, index: int) -> str:
    """Text preceding the link on its line, else the previous non-blank line."""
    lines = content[:index].split("\n")
    current = lines[-1].strip()
    if current:
        return current
    if len(lines) > 1:
        return lines[-2].strip()
    return ""


def parse_code_links(content: str) -> list[CodeLink]:
    """Find all citation links in a markdown document, in document order."""
    links: list[CodeLink] = []
    for m in CODE_LINK_PATTERN.finditer(content):
        start, end, function = m.group("start"), m.group("end"), m.group("function")
        links.append(
            CodeLink(
                label=m.group("label"),
                owner=m.group("owner"),
                repo=m.group("repo"),
                file_path=m.group("path"),
                reference_type=_reference_type(start, end, function),
                start_line=int(start) if start and not function else None,
                end_line=int(end) if end and not function else None,
                function_name=function or None,
                original_text=m.group(0),
                context=_context(content, m.start()),
            )
        )
    return links


def format_code_link(
    label: str,
    owner: str,
    repo: str,
    file_path: str,
    *,
    start_line: int | None = None,
    end_line: int | None = None,
    function_name: str | None = None,
) -> str:
    """Render a citation link; parse_code_links(format_code_link(...)) round-trips."""
    target = f"github://{owner}/{repo}/{file_path}"
    if function_name:
        target += f"#{function_name}"
    elif start_line is not None:
        target += f":{start_line}"
        if end_line is not None:
            target += f"-{end_line}"
    return f"[{label}]({target})"


def validate_code_reference(
    *,
    owner: str | None,
    repo: str | None,
    file_path: str | None,
    reference_type: ReferenceType | str | None,
    start_line: int | None = None,
    end_line: int | None = None,
    function_name: str | None = None,
) -> bool:
    """Check that a citation carries the fields its reference type needs."""
    if not owner or not repo or not file_path or not reference_type:
        return False
    try:
        kind = ReferenceType(reference_type)
    except ValueError:
        return False
    match kind:
        case ReferenceType.LINE:
            return start_line is not None and start_line > 0
        case ReferenceType.RANGE:
            return start_line is not None and end_line is not None and 0 < start_line <= end_line
        case ReferenceType.FUNCTION:
            return bool(function_name)
    return False


def snippet_block(file_path: str, content: str) -> str:
    """Fenced markdown code block tagged with the file's language."""
    language = detect_language(file_path)
    tag = "" if language == UNKNOWN else language
    return f"```{tag}\n{content}\n```"

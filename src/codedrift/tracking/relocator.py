"""Citation relocation: find where a stored snippet went in new file content.

Pure functions over text; the stateful side (persisting the outcome and
notifying) lives in references.CitationTracker.

Order of attempts:
1. Function citations resolve their span by name via locate_function.
2. The candidate span's hash equals the stored hash: unchanged.
3. Exact match: slide a window of the old line count, trimmed equality.
4. Fuzzy match: same window, normalized Levenshtein similarity. Accepted
   above MATCH_THRESHOLD, applied only above APPLY_THRESHOLD.
5. A located function span is applied when 3 and 4 do not produce an
   applicable match.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from codedrift.core.hashing import sha256_hex, similarity
from codedrift.extraction.locator import locate_function
from codedrift.extraction.models import NotFound, Span
from codedrift.store.models import ReferenceType

if TYPE_CHECKING:
    from codedrift.store.models import CodeReference

# Fuzzy scores must be strictly greater than these
MATCH_THRESHOLD = 0.5
APPLY_THRESHOLD = 0.8


class RelocationOutcome(str, Enum):
    UNCHANGED = "unchanged"
    RELOCATED = "relocated"
    UPDATED = "updated"
    LOW_CONFIDENCE = "low_confidence"
    NOT_FOUND = "not_found"


class RelocationMethod(str, Enum):
    HASH = "hash"
    EXACT = "exact"
    FUZZY = "fuzzy"
    FUNCTION = "function"


@dataclass(frozen=True, slots=True)
class ReferenceView:
    """The parts of a citation the relocator reads."""

    content: str
    hash: str
    reference_type: ReferenceType = ReferenceType.RANGE
    start_line: int | None = None
    end_line: int | None = None
    function_name: str | None = None
    language: str | None = None

    @classmethod
    def from_reference(cls, ref: CodeReference, language: str | None = None) -> ReferenceView:
        return cls(
            content=ref.content,
            hash=ref.hash,
            reference_type=ReferenceType(ref.reference_type),
            start_line=ref.start_line,
            end_line=ref.end_line,
            function_name=ref.function_name,
            language=language,
        )

    @property
    def stored_span(self) -> tuple[int, int] | None:
        if self.start_line is None:
            return None
        return self.start_line, self.end_line if self.end_line is not None else self.start_line


@dataclass(frozen=True, slots=True)
class Match:
    start_line: int
    end_line: int
    confidence: float


@dataclass(frozen=True, slots=True)
class RelocationResult:
    outcome: RelocationOutcome
    method: RelocationMethod | None = None
    start_line: int | None = None
    end_line: int | None = None
    content: str | None = None
    confidence: float = 0.0
    reason: str = ""

    @property
    def applied(self) -> bool:
        """True when the citation's lines/content should be rewritten."""
        return self.outcome in (RelocationOutcome.RELOCATED, RelocationOutcome.UPDATED)


# =============================================================================
# Text primitives
# =============================================================================


def extract_snippet(text: str, start_line: int, end_line: int) -> str:
    """Lines start..end (1-indexed, inclusive), clamped to the text."""
    lines = text.split("\n")
    start = max(0, start_line - 1)
    end = min(len(lines), end_line)
    return "\n".join(lines[start:end])


def _windows(old_content: str, text: str) -> tuple[int, list[tuple[int, str]]]:
    width = len(old_content.split("\n"))
    lines = text.split("\n")
    count = max(1, len(lines) - width + 1)
    return width, [(i + 1, "\n".join(lines[i : i + width]).strip()) for i in range(count)]


def find_exact(old_content: str, text: str) -> Match | None:
    """First window whose trimmed text equals the trimmed old content."""
    target = old_content.strip()
    if not target:
        return None
    width, windows = _windows(old_content, text)
    for start, window in windows:
        if window == target:
            return Match(start, start + width - 1, 1.0)
    return None


def find_fuzzy(old_content: str, text: str) -> Match | None:
    """Best-scoring window, if its similarity is above MATCH_THRESHOLD.

    Earlier windows win ties.
    """
    target = old_content.strip()
    if not target:
        return None
    width, windows = _windows(old_content, text)
    best: Match | None = None
    for start, window in windows:
        score = similarity(target, window, score_cutoff=best.confidence if best else MATCH_THRESHOLD)
        if score > MATCH_THRESHOLD and (best is None or score > best.confidence):
            best = Match(start, start + width - 1, score)
    return best


def should_apply(confidence: float) -> bool:
    return confidence > APPLY_THRESHOLD


# =============================================================================
# Relocation
# =============================================================================


def relocate(ref: ReferenceView, text: str) -> RelocationResult:
    """Decide where the citation lives in ``text`` and whether to apply it."""
    located: Span | None = None
    if ref.reference_type == ReferenceType.FUNCTION:
        if not ref.function_name:
            return RelocationResult(RelocationOutcome.NOT_FOUND, reason="function citation without a name")
        found = locate_function(text, ref.function_name, ref.language)
        if isinstance(found, NotFound):
            return RelocationResult(RelocationOutcome.NOT_FOUND, RelocationMethod.FUNCTION, reason=found.reason)
        located = found

    stored = ref.stored_span
    span = (located.start_line, located.end_line) if located else stored
    if span is not None:
        candidate = extract_snippet(text, *span)
        if sha256_hex(candidate) == ref.hash:
            outcome = RelocationOutcome.UNCHANGED if span == stored else RelocationOutcome.RELOCATED
            return RelocationResult(outcome, RelocationMethod.HASH, span[0], span[1], candidate, 1.0, "content hash matches")

    exact = find_exact(ref.content, text)
    if exact is not None:
        return _applied(RelocationMethod.EXACT, exact, text, stored, "exact match")

    fuzzy = find_fuzzy(ref.content, text)
    if fuzzy is not None and should_apply(fuzzy.confidence):
        return _applied(RelocationMethod.FUZZY, fuzzy, text, stored, f"fuzzy match {fuzzy.confidence:.0%}")

    if located is not None:
        return RelocationResult(
            RelocationOutcome.UPDATED,
            RelocationMethod.FUNCTION,
            located.start_line,
            located.end_line,
            extract_snippet(text, located.start_line, located.end_line),
            fuzzy.confidence if fuzzy else 0.0,
            f"function {ref.function_name} located by name",
        )

    if fuzzy is not None:
        return RelocationResult(
            RelocationOutcome.LOW_CONFIDENCE,
            RelocationMethod.FUZZY,
            fuzzy.start_line,
            fuzzy.end_line,
            extract_snippet(text, fuzzy.start_line, fuzzy.end_line),
            fuzzy.confidence,
            f"fuzzy match {fuzzy.confidence:.0%} below apply threshold",
        )

    return RelocationResult(RelocationOutcome.NOT_FOUND, reason="code not found in new content")


def _applied(
    method: RelocationMethod, match: Match, text: str, stored: tuple[int, int] | None, reason: str
) -> RelocationResult:
    moved = stored != (match.start_line, match.end_line)
    return RelocationResult(
        RelocationOutcome.RELOCATED if moved else RelocationOutcome.UPDATED,
        method,
        match.start_line,
        match.end_line,
        extract_snippet(text, match.start_line, match.end_line),
        match.confidence,
        reason,
    )

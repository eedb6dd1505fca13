"""Content hashing and textual similarity primitives.

Shared by the extractor (fingerprints), the diff classifier (rename scoring)
and the citation relocator (content hashes, fuzzy matching). Edit distance
comes from rapidfuzz.
"""

from __future__ import annotations

import hashlib

from rapidfuzz.distance import Levenshtein

SHORT_FINGERPRINT_LEN = 8


def sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def short_fingerprint(fingerprint: str) -> str:
    return fingerprint[:SHORT_FINGERPRINT_LEN]


def levenshtein(a: str, b: str) -> int:
    """Edit distance (insert, delete, substitute all cost 1)."""
    return int(Levenshtein.distance(a, b))


def similarity(a: str, b: str, score_cutoff: float | None = None) -> float:
    """Normalized similarity in [0, 1]: (len(longer) - distance) / len(longer).

    Two empty strings are identical (1.0). Scores below ``score_cutoff`` come
    back as 0.0, which lets rapidfuzz stop early on hopeless pairs.
    """
    return float(Levenshtein.normalized_similarity(a, b, score_cutoff=score_cutoff))

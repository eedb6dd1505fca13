"""Structure extraction: functions and methods with deterministic fingerprints.

Declarations come from tree-sitter queries per language. Citation relocation
keeps a lexical locator that finds a named function in raw text.
"""

from codedrift.core.languages import detect_language
from codedrift.extraction.extractor import compute_fingerprint, extract_structures, normalize_signature
from codedrift.extraction.locator import heuristic_locate, locate_function, register_locator, unregister_locator
from codedrift.extraction.models import ExtractedStructure, FileExtraction, NotFound, Span

__all__ = [
    "compute_fingerprint",
    "detect_language",
    "extract_structures",
    "heuristic_locate",
    "locate_function",
    "normalize_signature",
    "register_locator",
    "unregister_locator",
    "ExtractedStructure",
    "FileExtraction",
    "NotFound",
    "Span",
]

"""Tests for core/hashing.py.

Covers:
- sha256_hex / short_fingerprint
- levenshtein edit distance
- similarity normalization
"""

import pytest

from codedrift.core.hashing import levenshtein, sha256_hex, short_fingerprint, similarity


class TestSha256:
    def test_known_digest(self) -> None:
        assert sha256_hex("") == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"

    def test_short_fingerprint_is_prefix(self) -> None:
        digest = sha256_hex("def foo(): pass")
        assert short_fingerprint(digest) == digest[:8]


class TestLevenshtein:
    @pytest.mark.parametrize(
        ("a", "b", "expected"),
        [
            ("", "", 0),
            ("abc", "", 3),
            ("", "abc", 3),
            ("kitten", "sitting", 3),
            ("flaw", "lawn", 2),
            ("same", "same", 0),
        ],
    )
    def test_distance(self, a: str, b: str, expected: int) -> None:
        assert levenshtein(a, b) == expected

    def test_symmetric(self) -> None:
        assert levenshtein("process_data", "handle_data") == levenshtein("handle_data", "process_data")


class TestSimilarity:
    def test_identical_strings(self) -> None:
        assert similarity("def a(x)", "def a(x)") == 1.0

    def test_two_empty_strings_are_identical(self) -> None:
        assert similarity("", "") == 1.0

    def test_completely_different(self) -> None:
        assert similarity("abc", "xyz") == 0.0

    def test_normalized_by_longer_string(self) -> None:
        # Given - one substitution over ten characters
        a = "abcdefghij"
        b = "abcdefghiX"

        # Then
        assert similarity(a, b) == pytest.approx(0.9)

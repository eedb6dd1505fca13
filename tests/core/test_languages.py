"""Tests for core/languages.py."""

import pytest

from codedrift.core.languages import (
    UNKNOWN,
    detect_language,
    extractable_extensions,
    get_language,
    is_analyzable_file,
    is_extractable,
)


class TestDetectLanguage:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("src/app.py", "python"),
            ("src/app.PY", "python"),
            ("web/index.tsx", "typescript"),
            ("web/util.mjs", "javascript"),
            ("Main.java", "java"),
            ("cmd/main.go", "go"),
            ("src/lib.rs", "rust"),
            ("lib/app.rb", "ruby"),
            ("README.md", UNKNOWN),
            ("Makefile", UNKNOWN),
        ],
    )
    def test_detects_by_extension(self, path: str, expected: str) -> None:
        assert detect_language(path) == expected


class TestExtractable:
    def test_python_is_extractable(self) -> None:
        assert is_extractable("python")

    def test_ruby_is_known_but_not_extractable(self) -> None:
        assert get_language("ruby") is not None
        assert not is_extractable("ruby")

    def test_unknown_language_is_not_extractable(self) -> None:
        assert not is_extractable("cobol")

    def test_extractable_extensions(self) -> None:
        extensions = extractable_extensions()
        assert {".py", ".ts", ".js", ".java", ".go", ".rs"} <= extensions
        assert ".rb" not in extensions


class TestIsAnalyzableFile:
    def test_defaults_to_extractable_languages(self) -> None:
        assert is_analyzable_file("src/app.py")
        assert not is_analyzable_file("docs/guide.md")
        assert not is_analyzable_file("lib/app.rb")

    def test_allow_list_overrides_default(self) -> None:
        assert is_analyzable_file("src/app.py", [".py"])
        assert not is_analyzable_file("src/app.ts", [".py"])

    def test_allow_list_accepts_bare_extensions(self) -> None:
        assert is_analyzable_file("src/App.TS", ["ts"])

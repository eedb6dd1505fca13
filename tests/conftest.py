"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import sys
from pathlib import Path

# Insert local src directory at the beginning of sys.path
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of codedrift modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("codedrift"):
        del sys.modules[module_name]

from collections.abc import Iterator  # noqa: E402
from datetime import UTC, datetime  # noqa: E402

import pytest  # noqa: E402

from codedrift.clients.base import CommitInfo  # noqa: E402
from codedrift.store.database import Database  # noqa: E402


class FakeVcs:
    """In-memory version-control host.

    ``files[ref][path]`` is the content of ``path`` at ``ref``; ``None`` as a
    ref is the branch head. ``commits`` is returned newest first.
    """

    def __init__(self) -> None:
        self.files: dict[str | None, dict[str, str]] = {}
        self.commits: list[CommitInfo] = []
        self.calls: list[tuple[str, tuple[object, ...]]] = []
        self.fail_with: Exception | None = None

    def set_files(self, ref: str | None, files: dict[str, str]) -> None:
        self.files[ref] = dict(files)

    def push_commit(self, sha: str, files: dict[str, str], message: str = "change") -> None:
        """Add a commit at the head and make its files the branch head."""
        commit = CommitInfo(sha=sha, message=message, author="dev", date=datetime(2026, 1, 1, tzinfo=UTC))
        self.commits.insert(0, commit)
        self.set_files(sha, files)
        self.set_files(None, files)

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str | None = None) -> str | None:
        self.calls.append(("get_file_content", (owner, repo, path, ref)))
        if self.fail_with is not None:
            raise self.fail_with
        return self.files.get(ref, {}).get(path)

    async def get_commits(
        self,
        owner: str,
        repo: str,
        *,
        since: datetime | None = None,
        sha: str | None = None,
        per_page: int = 100,
    ) -> list[CommitInfo]:
        self.calls.append(("get_commits", (owner, repo, since, sha, per_page)))
        if self.fail_with is not None:
            raise self.fail_with
        return list(self.commits[:per_page])

    async def list_files(self, owner: str, repo: str, ref: str) -> list[str]:
        self.calls.append(("list_files", (owner, repo, ref)))
        if self.fail_with is not None:
            raise self.fail_with
        return sorted(self.files.get(ref, {}))


@pytest.fixture
def db(tmp_path: Path) -> Iterator[Database]:
    """Fresh SQLite database with all tables."""
    database = Database(tmp_path / "drift.db")
    database.create_all()
    yield database
    database.engine.dispose()


@pytest.fixture
def fake_vcs() -> FakeVcs:
    return FakeVcs()

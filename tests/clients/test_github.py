"""Tests for clients/github.py using httpx.MockTransport.

Covers:
- Raw file content, 404 as None
- Commit listing and parameter encoding
- Recursive tree listing (blobs only)
- Error mapping to TransportError
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

import httpx
import pytest

from codedrift.clients.github import GitHubClient
from codedrift.core.errors import ErrorCode, TransportError

Handler = Callable[[httpx.Request], httpx.Response]


def client(handler: Handler, token: str | None = "tok") -> GitHubClient:
    return GitHubClient(token=token, transport=httpx.MockTransport(handler))


class TestGetFileContent:
    @pytest.mark.asyncio
    async def test_returns_raw_text(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="print('hi')\n")

        async with client(handler) as gh:
            text = await gh.get_file_content("acme", "api", "src/app.py", "c1")

        assert text == "print('hi')\n"
        request = seen[0]
        assert request.url.path == "/repos/acme/api/contents/src/app.py"
        assert request.url.params["ref"] == "c1"
        assert request.headers["Accept"] == "application/vnd.github.raw"
        assert request.headers["Authorization"] == "Bearer tok"

    @pytest.mark.asyncio
    async def test_missing_file_is_none(self) -> None:
        async with client(lambda request: httpx.Response(404)) as gh:
            assert await gh.get_file_content("acme", "api", "gone.py") is None

    @pytest.mark.asyncio
    async def test_no_token_no_auth_header(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text="x")

        async with client(handler, token=None) as gh:
            await gh.get_file_content("acme", "api", "a.py")

        assert "Authorization" not in seen[0].headers
        assert "ref" not in seen[0].url.params


class TestGetCommits:
    @pytest.mark.asyncio
    async def test_parses_commits_and_params(self) -> None:
        seen: list[httpx.Request] = []
        payload = [
            {"sha": "c2", "commit": {"message": "second", "author": {"name": "Ana", "date": "2026-01-02T10:00:00Z"}}},
            {"sha": "c1", "commit": {"message": "first", "author": None}},
        ]

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=payload)

        async with client(handler) as gh:
            commits = await gh.get_commits("acme", "api", since=datetime(2026, 1, 1, 6, 0), sha="main", per_page=20)

        assert [c.sha for c in commits] == ["c2", "c1"]
        assert commits[0].author == "Ana"
        assert commits[0].date == datetime(2026, 1, 2, 10, 0, tzinfo=UTC)
        assert commits[1].author is None
        params = seen[0].url.params
        assert params["since"] == "2026-01-01T06:00:00Z"
        assert params["sha"] == "main"
        assert params["per_page"] == "20"

    @pytest.mark.asyncio
    async def test_unknown_repository_has_no_commits(self) -> None:
        async with client(lambda request: httpx.Response(404)) as gh:
            assert await gh.get_commits("acme", "missing") == []


class TestListFiles:
    @pytest.mark.asyncio
    async def test_blobs_only(self) -> None:
        tree = {
            "truncated": False,
            "tree": [
                {"path": "src", "type": "tree"},
                {"path": "src/app.py", "type": "blob"},
                {"path": "README.md", "type": "blob"},
            ],
        }

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/repos/acme/api/git/trees/c1"
            assert request.url.params["recursive"] == "1"
            return httpx.Response(200, json=tree)

        async with client(handler) as gh:
            assert await gh.list_files("acme", "api", "c1") == ["src/app.py", "README.md"]


class TestGetRepository:
    @pytest.mark.asyncio
    async def test_metadata(self) -> None:
        body = {"default_branch": "trunk", "description": "API", "language": "Python", "topics": ["docs"]}

        async with client(lambda request: httpx.Response(200, json=body)) as gh:
            info = await gh.get_repository("acme", "api")

        assert info is not None
        assert (info.default_branch, info.language, info.topics) == ("trunk", "Python", ["docs"])


class TestErrors:
    @pytest.mark.asyncio
    async def test_server_error(self) -> None:
        async with client(lambda request: httpx.Response(502)) as gh:
            with pytest.raises(TransportError) as exc_info:
                await gh.get_commits("acme", "api")

        assert exc_info.value.code == ErrorCode.TRANSPORT_REQUEST_FAILED
        assert exc_info.value.details["status_code"] == 502
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        async with client(handler) as gh:
            with pytest.raises(TransportError) as exc_info:
                await gh.list_files("acme", "api", "c1")

        assert exc_info.value.code == ErrorCode.TRANSPORT_TIMEOUT

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with client(handler) as gh:
            with pytest.raises(TransportError) as exc_info:
                await gh.get_file_content("acme", "api", "a.py")

        assert "refused" in exc_info.value.message

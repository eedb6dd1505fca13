"""GitHub REST client (httpx).

Only the calls the engine needs: raw file content, commit listing, the
recursive file tree and repository metadata.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from codedrift.clients.base import CommitInfo, RepositoryInfo
from codedrift.core.errors import TransportError

log = structlog.get_logger(__name__)

_SERVICE = "github"


def _parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00")).astimezone(UTC)


class GitHubClient:
    """Async GitHub client. Use as an async context manager or call aclose()."""

    def __init__(
        self,
        token: str | None = None,
        api_url: str = "https://api.github.com",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": "codedrift",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> GitHubClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get(
        self, url: str, *, params: dict[str, Any] | None = None, headers: dict[str, str] | None = None
    ) -> httpx.Response | None:
        """GET returning None on 404; other failures raise TransportError."""
        try:
            response = await self._client.get(url, params=params, headers=headers)
        except httpx.TimeoutException as e:
            raise TransportError.timeout(_SERVICE, url) from e
        except httpx.RequestError as e:
            raise TransportError.request_failed(_SERVICE, url, str(e)) from e
        if response.status_code == 404:
            return None
        if response.is_error:
            raise TransportError.request_failed(
                _SERVICE, url, f"HTTP {response.status_code}", status_code=response.status_code
            )
        return response

    async def get_file_content(self, owner: str, repo: str, path: str, ref: str | None = None) -> str | None:
        params = {"ref": ref} if ref else None
        response = await self._get(
            f"/repos/{owner}/{repo}/contents/{path}",
            params=params,
            headers={"Accept": "application/vnd.github.raw"},
        )
        if response is None:
            log.debug("file_not_found", repository=f"{owner}/{repo}", path=path, ref=ref)
            return None
        return response.text

    async def get_commits(
        self,
        owner: str,
        repo: str,
        *,
        since: datetime | None = None,
        sha: str | None = None,
        per_page: int = 100,
    ) -> list[CommitInfo]:
        """Commits newest first, as the host returns them."""
        params: dict[str, Any] = {"per_page": per_page}
        if since is not None:
            if since.tzinfo is not None:
                since = since.astimezone(UTC)
            params["since"] = since.strftime("%Y-%m-%dT%H:%M:%SZ")
        if sha:
            params["sha"] = sha
        response = await self._get(f"/repos/{owner}/{repo}/commits", params=params)
        if response is None:
            return []
        commits = []
        for item in response.json():
            commit = item.get("commit", {})
            author = commit.get("author") or {}
            commits.append(
                CommitInfo(
                    sha=item["sha"],
                    message=commit.get("message", ""),
                    author=author.get("name"),
                    date=_parse_date(author.get("date")),
                )
            )
        return commits

    async def list_files(self, owner: str, repo: str, ref: str) -> list[str]:
        response = await self._get(f"/repos/{owner}/{repo}/git/trees/{ref}", params={"recursive": "1"})
        if response is None:
            return []
        data = response.json()
        if data.get("truncated"):
            log.warning("tree_truncated", repository=f"{owner}/{repo}", ref=ref)
        return [entry["path"] for entry in data.get("tree", []) if entry.get("type") == "blob"]

    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo | None:
        response = await self._get(f"/repos/{owner}/{repo}")
        if response is None:
            return None
        data = response.json()
        return RepositoryInfo(
            owner=owner,
            name=repo,
            default_branch=data.get("default_branch") or "main",
            description=data.get("description"),
            language=data.get("language"),
            topics=list(data.get("topics") or []),
        )

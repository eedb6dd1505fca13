"""Tests for clients/llm.py.

Covers:
- Prompt rendering from a change context
- JSON extraction from fenced and bare replies
- Chat completion request shape and error mapping
"""

from __future__ import annotations

import json
from typing import Any

import httpx
import pytest

from codedrift.clients.llm import SYSTEM_PROMPT, OpenAIChatClient, build_analysis_prompt, extract_json
from codedrift.core.errors import ErrorCode, InternalError, TransportError

CONTEXT: dict[str, Any] = {
    "repository": {"full_name": "acme/api", "language": "python", "description": None},
    "commits": {
        "count": 1,
        "from_sha": "aaaaaaa",
        "to_sha": "aaaaaaa",
        "details": [{"sha": "aaaaaaa", "message": "Add total", "author": None}],
    },
    "changes": {
        "added": [
            {
                "function_name": "total",
                "file_path": "src/app.py",
                "signature": "total(items)",
                "is_public": True,
                "is_exported": False,
                "complexity": 2,
                "impact": "medium",
            }
        ],
        "modified": [],
        "deleted": [],
    },
    "summary": {"total_functions": 1, "significant_changes": 1, "average_complexity": 2.0},
}


def completion(content: str) -> dict[str, Any]:
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestPrompt:
    def test_renders_context(self) -> None:
        prompt = build_analysis_prompt(CONTEXT)

        assert "- **Name**: acme/api" in prompt
        assert "- **Description**: No description" in prompt
        assert "- aaaaaaa: Add total (by unknown)" in prompt
        assert "### Added Functions (1)" in prompt
        assert "- **total** in src/app.py" in prompt
        assert "Signature: `total(items)`" in prompt
        assert "### Deleted Functions (0)" in prompt


class TestExtractJson:
    def test_fenced_block(self) -> None:
        reply = 'Here you go:\n```json\n{"shouldUpdate": true}\n```\nThanks'

        assert extract_json(reply) == {"shouldUpdate": True}

    def test_bare_object(self) -> None:
        assert extract_json('  {"confidence": 10}  ') == {"confidence": 10}

    @pytest.mark.parametrize("reply", ["not json", "[1, 2]"])
    def test_rejects_non_objects(self, reply: str) -> None:
        with pytest.raises(InternalError):
            extract_json(reply)


class TestOpenAIChatClient:
    @pytest.mark.asyncio
    async def test_analyze_changes(self) -> None:
        seen: list[dict[str, Any]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/v1/chat/completions"
            assert request.headers["Authorization"] == "Bearer key"
            seen.append(json.loads(request.content))
            return httpx.Response(200, json=completion('```json\n{"shouldUpdate": false, "confidence": 12}\n```'))

        llm = OpenAIChatClient("https://llm.example.com/v1/", "gpt-test", api_key="key", transport=httpx.MockTransport(handler))
        try:
            verdict = await llm.analyze_changes(CONTEXT)
        finally:
            await llm.aclose()

        assert verdict == {"shouldUpdate": False, "confidence": 12}
        body = seen[0]
        assert body["model"] == "gpt-test"
        assert body["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert "acme/api" in body["messages"][1]["content"]
        assert body["max_tokens"] == 2000

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        llm = OpenAIChatClient("https://llm.example.com", "m", transport=httpx.MockTransport(lambda r: httpx.Response(429)))
        try:
            with pytest.raises(TransportError) as exc_info:
                await llm.complete("s", "p")
        finally:
            await llm.aclose()

        assert exc_info.value.details["status_code"] == 429

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectTimeout("slow", request=request)

        llm = OpenAIChatClient("https://llm.example.com", "m", transport=httpx.MockTransport(handler))
        try:
            with pytest.raises(TransportError) as exc_info:
                await llm.complete("s", "p")
        finally:
            await llm.aclose()

        assert exc_info.value.code == ErrorCode.TRANSPORT_TIMEOUT

    @pytest.mark.asyncio
    async def test_malformed_completion(self) -> None:
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"choices": []}))
        llm = OpenAIChatClient("https://llm.example.com", "m", transport=transport)
        try:
            with pytest.raises(InternalError):
                await llm.complete("s", "p")
        finally:
            await llm.aclose()

"""OpenAI-compatible chat client for documentation-impact analysis.

The client renders the change context into a prompt, calls
``/chat/completions`` and returns the JSON object found in the reply.
Validation of that object belongs to the caller.
"""

from __future__ import annotations

import json
import re
from typing import Any

import httpx
import structlog

from codedrift.core.errors import InternalError, TransportError

log = structlog.get_logger(__name__)

_SERVICE = "language_model"
_JSON_BLOCK = re.compile(r"```json\s*\n(.*?)\n\s*```", re.DOTALL)

SYSTEM_PROMPT = """You are an expert software documentation analyst. Your role is to analyze code changes and determine when documentation updates are necessary.

Key principles:
1. Focus on user-facing changes that affect API contracts
2. Prioritize breaking changes and new public features
3. Consider the impact on existing documentation accuracy
4. Provide practical, actionable suggestions
5. Be conservative but thorough in your analysis

Always respond with valid JSON in the specified format."""

_RESPONSE_SHAPE = """```json
{
  "shouldUpdate": boolean,
  "confidence": number,
  "reasoning": "Detailed explanation of your decision",
  "suggestedUpdates": {
    "readme": {"shouldUpdate": boolean, "sections": [], "priority": "low|medium|high", "suggestedContent": ""},
    "apiDocs": {"shouldUpdate": boolean, "affectedEndpoints": [], "priority": "low|medium|high", "suggestedContent": ""},
    "changelog": {"shouldUpdate": boolean, "entryType": "patch|minor|major", "priority": "low|medium|high", "suggestedEntry": ""}
  }
}
```"""


def _function_lines(changes: list[dict[str, Any]], deleted: bool = False) -> str:
    out = []
    for c in changes:
        out.append(f"- **{c['function_name']}** in {c['file_path']}")
        if deleted:
            out.append(f"    - Was public: {c['is_public']}, Was exported: {c['is_exported']}")
        else:
            out.append(f"    - Signature: `{c['signature']}`")
            out.append(f"    - Public: {c['is_public']}, Exported: {c['is_exported']}")
        out.append(f"    - Impact: {c['impact']}")
    return "\n".join(out)


def build_analysis_prompt(context: dict[str, Any]) -> str:
    """Render a change context (see sync.impact.ChangeContext) as a prompt."""
    repo = context["repository"]
    commits = context["commits"]
    summary = context["summary"]
    changes = context["changes"]
    commit_lines = "\n".join(
        f"- {c['sha']}: {c['message']} (by {c.get('author') or 'unknown'})" for c in commits["details"]
    )
    return f"""Please analyze the following code changes and determine if documentation updates are needed.

## Repository Information
- **Name**: {repo['full_name']}
- **Language**: {repo.get('language') or 'Unknown'}
- **Description**: {repo.get('description') or 'No description'}

## Change Summary
- **Commits**: {commits['count']} commits from {commits['from_sha']} to {commits['to_sha']}
- **Total Functions Changed**: {summary['total_functions']}
- **Significant Changes**: {summary['significant_changes']}
- **Average Complexity**: {summary['average_complexity']:.1f}

## Recent Commits
{commit_lines}

## Function Changes

### Added Functions ({len(changes['added'])})
{_function_lines(changes['added'])}

### Modified Functions ({len(changes['modified'])})
{_function_lines(changes['modified'])}

### Deleted Functions ({len(changes['deleted'])})
{_function_lines(changes['deleted'], deleted=True)}

## Analysis Request
Based on these changes, provide a JSON response with the following structure:
{_RESPONSE_SHAPE}

Focus on:
1. Public API changes that affect users
2. Breaking changes or significant functionality updates
3. New features that should be documented
4. Changes that affect existing documentation accuracy
"""


def extract_json(reply: str) -> dict[str, Any]:
    """Parse the ```json fenced block of a reply, or the whole reply."""
    m = _JSON_BLOCK.search(reply)
    raw = m.group(1) if m else reply.strip()
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise InternalError.unexpected("language model reply is not valid JSON", error=str(e)) from e
    if not isinstance(parsed, dict):
        raise InternalError.unexpected("language model reply is not a JSON object")
    return parsed


class OpenAIChatClient:
    """Minimal chat-completions client."""

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str | None = None,
        timeout: float = 60.0,
        max_tokens: int = 2000,
        temperature: float = 0.3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def complete(self, system: str, prompt: str) -> str:
        url = "/chat/completions"
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        try:
            response = await self._client.post(url, json=body)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise TransportError.timeout(_SERVICE, url) from e
        except httpx.HTTPStatusError as e:
            raise TransportError.request_failed(
                _SERVICE, url, f"HTTP {e.response.status_code}", status_code=e.response.status_code
            ) from e
        except httpx.RequestError as e:
            raise TransportError.request_failed(_SERVICE, url, str(e)) from e

        data = response.json()
        try:
            return str(data["choices"][0]["message"]["content"])
        except (KeyError, IndexError, TypeError) as e:
            raise InternalError.unexpected("malformed chat completion response") from e

    async def analyze_changes(self, context: dict[str, Any]) -> dict[str, Any]:
        reply = await self.complete(SYSTEM_PROMPT, build_analysis_prompt(context))
        log.debug("llm_reply_received", model=self.model, length=len(reply))
        return extract_json(reply)

"""Webhook verification and decoding.

Everything here is pure: verify the HMAC over the raw body, then decode the
body into a typed event. Nothing touches the store until both succeed.
"""

from __future__ import annotations

import hashlib
import hmac
import json
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from codedrift.core.errors import WebhookError

SIGNATURE_HEADER = "x-hub-signature-256"
EVENT_HEADER = "x-github-event"
DELIVERY_HEADER = "x-github-delivery"
_SIGNATURE_PREFIX = "sha256="


def compute_signature(raw_body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()
    return _SIGNATURE_PREFIX + digest


def verify_signature(raw_body: bytes, header: str | None, secret: str) -> bool:
    """Constant-time check of ``sha256=<hex>`` against the raw request body."""
    if not header or not header.startswith(_SIGNATURE_PREFIX):
        return False
    expected = compute_signature(raw_body, secret)
    if len(header) != len(expected):
        return False
    return hmac.compare_digest(header.encode("utf-8"), expected.encode("utf-8"))


# =============================================================================
# Payload models
# =============================================================================


class PushCommit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    message: str = ""
    timestamp: datetime | None = None
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)


class PushRepository(BaseModel):
    model_config = ConfigDict(extra="ignore")

    full_name: str
    default_branch: str | None = None


class PushEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: Literal["push"] = "push"
    ref: str | None = None
    repository: PushRepository
    commits: list[PushCommit] = Field(default_factory=list)


class PingEvent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    kind: Literal["ping"] = "ping"
    zen: str | None = None
    hook_id: int | None = None


class UnrecognizedEvent(BaseModel):
    kind: Literal["unrecognized"] = "unrecognized"
    event: str


WebhookEvent = PushEvent | PingEvent | UnrecognizedEvent


def decode_webhook(event_name: str | None, raw_body: bytes) -> WebhookEvent:
    """Decode a verified body into a typed event.

    Raises:
        WebhookError: malformed JSON, or a push/ping body that does not
            match its schema.
    """
    name = event_name or "unknown"
    if name not in ("push", "ping"):
        return UnrecognizedEvent(event=name)
    try:
        payload: Any = json.loads(raw_body or b"{}")
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise WebhookError.invalid_payload(name, f"malformed JSON: {e}") from e
    if not isinstance(payload, dict):
        raise WebhookError.invalid_payload(name, "body is not a JSON object")
    try:
        if name == "push":
            return PushEvent.model_validate(payload)
        return PingEvent.model_validate(payload)
    except ValidationError as e:
        first = e.errors()[0]
        where = ".".join(str(p) for p in first["loc"])
        raise WebhookError.invalid_payload(name, f"{where}: {first['msg']}") from e

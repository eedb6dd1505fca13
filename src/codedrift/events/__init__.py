"""Change Event Pipeline: webhook verification, event persistence, processing."""

from codedrift.events.pipeline import (
    DEFAULT_PENDING_LIMIT,
    ChangeEventPipeline,
    ProcessingSummary,
    WebhookOutcome,
)
from codedrift.events.webhooks import (
    DELIVERY_HEADER,
    EVENT_HEADER,
    SIGNATURE_HEADER,
    PingEvent,
    PushCommit,
    PushEvent,
    UnrecognizedEvent,
    WebhookEvent,
    compute_signature,
    decode_webhook,
    verify_signature,
)

__all__ = [
    "DEFAULT_PENDING_LIMIT",
    "ChangeEventPipeline",
    "ProcessingSummary",
    "WebhookOutcome",
    "DELIVERY_HEADER",
    "EVENT_HEADER",
    "SIGNATURE_HEADER",
    "PingEvent",
    "PushCommit",
    "PushEvent",
    "UnrecognizedEvent",
    "WebhookEvent",
    "compute_signature",
    "decode_webhook",
    "verify_signature",
]

"""codedrift error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Extraction
- 4xxx: Webhook and change events
- 5xxx: Sync
- 6xxx: Transport (version-control host, language model)
- 9xxx: Internal

Input and configuration errors are never retryable. Transport errors are
retryable, but only through SyncJob backoff; nothing retries inline.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_MISSING_REQUIRED = 2003
    CONFIG_FILE_NOT_FOUND = 2004

    # Extraction (3xxx)
    UNSUPPORTED_LANGUAGE = 3001

    # Webhook (4xxx)
    WEBHOOK_SECRET_MISSING = 4001
    WEBHOOK_SIGNATURE_MISSING = 4002
    WEBHOOK_SIGNATURE_INVALID = 4003
    WEBHOOK_INVALID_PAYLOAD = 4004
    EVENT_NOT_FOUND = 4101
    EVENT_INVALID_STATE = 4102

    # Sync (5xxx)
    SYNC_JOB_CONFLICT = 5001
    SYNC_JOB_NOT_FOUND = 5002
    SYNC_REPOSITORY_NOT_FOUND = 5003
    SYNC_JOB_CANCELLED = 5004
    SYNC_INVALID_STATE = 5005

    # Transport (6xxx)
    TRANSPORT_REQUEST_FAILED = 6001
    TRANSPORT_TIMEOUT = 6002

    # Internal (9xxx)
    INTERNAL_ERROR = 9001
    INTERNAL_TIMEOUT = 9002


@dataclass(eq=False)
class CodeDriftError(Exception):
    """Base error with structured context for HTTP and CLI responses.

    Not frozen: raising through a generator context manager assigns
    ``__traceback__`` on the instance.
    """

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'CONFIG_PARSE_ERROR')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON responses."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(CodeDriftError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def missing_required(cls, field: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_MISSING_REQUIRED,
            message=f"Missing required config field: {field}",
            details={"field": field},
        )


class UnsupportedLanguageError(CodeDriftError):
    """Raised when a file's language has no structure extractor."""

    @classmethod
    def for_language(cls, language: str, file_path: str | None = None) -> "UnsupportedLanguageError":
        where = f" ({file_path})" if file_path else ""
        return cls(
            code=ErrorCode.UNSUPPORTED_LANGUAGE,
            message=f"No structure extractor for language '{language}'{where}",
            details={"language": language, "file_path": file_path},
        )

    @property
    def language(self) -> str:
        return str(self.details.get("language", "unknown"))


class WebhookError(CodeDriftError):
    """Webhook verification and decoding errors.

    All of these are raised before any state is touched.
    """

    @classmethod
    def secret_missing(cls) -> "WebhookError":
        return cls(
            code=ErrorCode.WEBHOOK_SECRET_MISSING,
            message="Webhook secret is not configured",
        )

    @classmethod
    def signature_missing(cls) -> "WebhookError":
        return cls(
            code=ErrorCode.WEBHOOK_SIGNATURE_MISSING,
            message="Missing x-hub-signature-256 header",
        )

    @classmethod
    def signature_invalid(cls) -> "WebhookError":
        return cls(
            code=ErrorCode.WEBHOOK_SIGNATURE_INVALID,
            message="Webhook signature does not match payload",
        )

    @classmethod
    def invalid_payload(cls, event: str, reason: str) -> "WebhookError":
        return cls(
            code=ErrorCode.WEBHOOK_INVALID_PAYLOAD,
            message=f"Invalid '{event}' payload: {reason}",
            details={"event": event, "reason": reason},
        )


class EventError(CodeDriftError):
    """Change event lookup and state errors."""

    @classmethod
    def not_found(cls, event_id: str) -> "EventError":
        return cls(
            code=ErrorCode.EVENT_NOT_FOUND,
            message=f"Change event not found: {event_id}",
            details={"event_id": event_id},
        )

    @classmethod
    def invalid_state(cls, event_id: str, status: str, expected: str) -> "EventError":
        return cls(
            code=ErrorCode.EVENT_INVALID_STATE,
            message=f"Change event {event_id} is {status}, expected {expected}",
            details={"event_id": event_id, "status": status, "expected": expected},
        )


class SyncError(CodeDriftError):
    """Sync job orchestration errors."""

    @classmethod
    def job_conflict(cls, repository_id: str, running_job_id: str) -> "SyncError":
        return cls(
            code=ErrorCode.SYNC_JOB_CONFLICT,
            message=f"Sync job already running for repository {repository_id}",
            details={"repository_id": repository_id, "running_job_id": running_job_id},
        )

    @classmethod
    def job_not_found(cls, job_id: str) -> "SyncError":
        return cls(
            code=ErrorCode.SYNC_JOB_NOT_FOUND,
            message=f"Sync job not found: {job_id}",
            details={"job_id": job_id},
        )

    @classmethod
    def repository_not_found(cls, repository_id: str) -> "SyncError":
        return cls(
            code=ErrorCode.SYNC_REPOSITORY_NOT_FOUND,
            message=f"Repository not found: {repository_id}",
            details={"repository_id": repository_id},
        )

    @classmethod
    def cancelled(cls, job_id: str) -> "SyncError":
        return cls(
            code=ErrorCode.SYNC_JOB_CANCELLED,
            message=f"Sync job cancelled: {job_id}",
            details={"job_id": job_id},
        )

    @classmethod
    def invalid_state(cls, job_id: str, status: str, expected: str) -> "SyncError":
        return cls(
            code=ErrorCode.SYNC_INVALID_STATE,
            message=f"Sync job {job_id} is {status}, expected {expected}",
            details={"job_id": job_id, "status": status, "expected": expected},
        )


class TransportError(CodeDriftError):
    """Failures talking to the version-control host or the language model."""

    @classmethod
    def request_failed(cls, service: str, url: str, reason: str, status_code: int | None = None) -> "TransportError":
        return cls(
            code=ErrorCode.TRANSPORT_REQUEST_FAILED,
            message=f"{service} request failed: {reason}",
            retryable=True,
            details={"service": service, "url": url, "status_code": status_code},
        )

    @classmethod
    def timeout(cls, service: str, url: str) -> "TransportError":
        return cls(
            code=ErrorCode.TRANSPORT_TIMEOUT,
            message=f"{service} request timed out",
            retryable=True,
            details={"service": service, "url": url},
        )


class InternalError(CodeDriftError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )

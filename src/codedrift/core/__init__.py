"""Core module exports."""

from codedrift.core.errors import (
    CodeDriftError,
    ConfigError,
    ErrorCode,
    EventError,
    InternalError,
    SyncError,
    TransportError,
    UnsupportedLanguageError,
    WebhookError,
)
from codedrift.core.hashing import levenshtein, sha256_hex, short_fingerprint, similarity
from codedrift.core.languages import detect_language, is_analyzable_file, is_extractable
from codedrift.core.logging import (
    clear_request_id,
    configure_logging,
    get_logger,
    get_request_id,
    set_request_id,
)

__all__ = [
    # Errors
    "CodeDriftError",
    "ConfigError",
    "ErrorCode",
    "EventError",
    "InternalError",
    "SyncError",
    "TransportError",
    "UnsupportedLanguageError",
    "WebhookError",
    # Hashing
    "levenshtein",
    "sha256_hex",
    "short_fingerprint",
    "similarity",
    # Languages
    "detect_language",
    "is_analyzable_file",
    "is_extractable",
    # Logging
    "clear_request_id",
    "configure_logging",
    "get_logger",
    "get_request_id",
    "set_request_id",
]

"""Tests for error types and codes."""

from collections.abc import Iterator
from contextlib import contextmanager

import pytest

from codedrift.core.errors import (
    CodeDriftError,
    ConfigError,
    ErrorCode,
    EventError,
    SyncError,
    TransportError,
    UnsupportedLanguageError,
    WebhookError,
)


class TestErrorCode:
    """Error code value tests."""

    @pytest.mark.parametrize(
        ("code", "expected_range"),
        [
            (ErrorCode.CONFIG_PARSE_ERROR, 2000),
            (ErrorCode.UNSUPPORTED_LANGUAGE, 3000),
            (ErrorCode.WEBHOOK_SIGNATURE_INVALID, 4000),
            (ErrorCode.EVENT_NOT_FOUND, 4000),
            (ErrorCode.SYNC_JOB_CONFLICT, 5000),
            (ErrorCode.TRANSPORT_TIMEOUT, 6000),
            (ErrorCode.INTERNAL_ERROR, 9000),
        ],
    )
    def test_given_error_code_when_checked_then_in_correct_range(self, code: ErrorCode, expected_range: int) -> None:
        """Error codes fall within their designated numeric range."""
        assert expected_range <= code.value < expected_range + 1000


class TestCodeDriftError:
    """Base error behavior tests."""

    def test_given_error_when_to_dict_then_serializes_all_fields(self) -> None:
        """Error serializes to dict with all required fields."""
        # Given
        error = CodeDriftError(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message="Test message",
            retryable=True,
            details={"key": "value"},
        )

        # When
        result = error.to_dict()

        # Then
        assert result == {
            "code": 2001,
            "error": "CONFIG_PARSE_ERROR",
            "message": "Test message",
            "retryable": True,
            "details": {"key": "value"},
        }

    def test_given_error_when_str_then_includes_code_and_message(self) -> None:
        error = SyncError.job_not_found("job-1")
        assert str(error) == "[5002] SYNC_JOB_NOT_FOUND: Sync job not found: job-1"

    def test_given_error_when_raised_then_catchable_as_base(self) -> None:
        with pytest.raises(CodeDriftError) as exc_info:
            raise EventError.not_found("evt-1")
        assert exc_info.value.code == ErrorCode.EVENT_NOT_FOUND


class TestFactories:
    """Factory method tests."""

    def test_config_invalid_value_is_not_retryable(self) -> None:
        error = ConfigError.invalid_value("server.port", 99999, "out of range")
        assert error.code == ErrorCode.CONFIG_INVALID_VALUE
        assert error.retryable is False
        assert error.details == {"field": "server.port", "value": "99999", "reason": "out of range"}

    def test_unsupported_language_exposes_language(self) -> None:
        error = UnsupportedLanguageError.for_language("ruby", "lib/app.rb")
        assert error.language == "ruby"
        assert "lib/app.rb" in error.message

    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (WebhookError.secret_missing(), ErrorCode.WEBHOOK_SECRET_MISSING),
            (WebhookError.signature_missing(), ErrorCode.WEBHOOK_SIGNATURE_MISSING),
            (WebhookError.signature_invalid(), ErrorCode.WEBHOOK_SIGNATURE_INVALID),
            (WebhookError.invalid_payload("push", "bad"), ErrorCode.WEBHOOK_INVALID_PAYLOAD),
        ],
    )
    def test_webhook_errors_are_not_retryable(self, error: WebhookError, code: ErrorCode) -> None:
        assert error.code == code
        assert error.retryable is False

    def test_job_conflict_names_running_job(self) -> None:
        error = SyncError.job_conflict("repo-1", "job-9")
        assert error.details == {"repository_id": "repo-1", "running_job_id": "job-9"}

    def test_transport_errors_are_retryable(self) -> None:
        # Given
        failed = TransportError.request_failed("github", "https://x", "boom", status_code=500)
        timed_out = TransportError.timeout("github", "https://x")

        # Then
        assert failed.retryable is True
        assert failed.details["status_code"] == 500
        assert timed_out.retryable is True
        assert timed_out.code == ErrorCode.TRANSPORT_TIMEOUT


class TestRaising:
    def test_raised_through_generator_context_manager(self) -> None:
        @contextmanager
        def scope() -> Iterator[None]:
            yield

        with pytest.raises(SyncError) as exc_info, scope():
            raise SyncError.job_not_found("job-1")

        assert exc_info.value.code == ErrorCode.SYNC_JOB_NOT_FOUND

    def test_traceback_is_assignable(self) -> None:
        error = EventError.not_found("evt-1")

        error.__traceback__ = None
        error.add_note("while requeueing")

        assert error.__notes__ == ["while requeueing"]

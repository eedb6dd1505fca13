"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (CODEDRIFT__SECTION__KEY)
3. Working-directory YAML (.codedrift/config.yaml)
4. Global YAML (~/.config/codedrift/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    CODEDRIFT__<SECTION>__<KEY>=<VALUE>

Examples:
    CODEDRIFT__LOGGING__LEVEL=DEBUG
    CODEDRIFT__SERVER__PORT=8080
    CODEDRIFT__WEBHOOK__SECRET=s3cret
    CODEDRIFT__SYNC__DAILY_HOUR=4
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        CODEDRIFT__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="INFO",
        description="Root log level.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class ServerConfig(BaseModel):
    """HTTP server configuration.

    Env vars:
        CODEDRIFT__SERVER__HOST: Bind address (default: 127.0.0.1)
        CODEDRIFT__SERVER__PORT: Port number (default: 7700)
    """

    host: str = Field(
        default="127.0.0.1",
        description="Bind address. Use 0.0.0.0 to receive webhooks from the network.",
    )
    port: int = Field(default=7700, description="Server port.")
    shutdown_timeout_sec: int = Field(
        default=5,
        description="Graceful shutdown timeout.",
    )

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if not (0 <= v <= 65535):
            raise ValueError(f"Port must be 0-65535, got {v}")
        return v


class DatabaseConfig(BaseModel):
    """Database configuration.

    Env vars:
        CODEDRIFT__DATABASE__PATH: SQLite file path
        CODEDRIFT__DATABASE__MAX_RETRIES: Max retry attempts for locked DB
    """

    path: str = Field(
        default=".codedrift/codedrift.db",
        description="SQLite database file. Relative paths resolve against the working directory.",
    )
    busy_timeout_ms: int = Field(
        default=30000,
        description="SQLite busy timeout (ms).",
    )
    max_retries: int = Field(
        default=3,
        description="Max retry attempts for locked database errors.",
    )
    retry_base_delay_sec: float = Field(
        default=0.1,
        description="Base delay between retries (exponential backoff).",
    )


class GitHubConfig(BaseModel):
    """Version-control host configuration.

    Env vars:
        CODEDRIFT__GITHUB__TOKEN: API token (optional for public repositories)
        CODEDRIFT__GITHUB__API_URL: REST API base URL
    """

    token: str | None = Field(default=None, description="Personal access or app token.")
    api_url: str = Field(default="https://api.github.com", description="REST API base URL.")
    timeout_sec: float = Field(
        default=30.0,
        description="Per-request timeout. Timeouts surface as retryable transport errors.",
    )


class WebhookConfig(BaseModel):
    """Webhook ingestion configuration.

    Env vars:
        CODEDRIFT__WEBHOOK__SECRET: Shared HMAC secret
    """

    secret: str | None = Field(
        default=None,
        description="Shared secret for x-hub-signature-256. Webhooks are rejected while unset.",
    )


class LLMConfig(BaseModel):
    """Language-model client configuration (OpenAI-compatible chat API).

    Env vars:
        CODEDRIFT__LLM__ENABLED: Enable documentation-impact analysis via the model
        CODEDRIFT__LLM__API_KEY: Bearer token
        CODEDRIFT__LLM__MODEL: Model identifier
    """

    enabled: bool = Field(
        default=False,
        description="When false, impact analysis uses the deterministic fallback only.",
    )
    base_url: str = Field(default="https://api.openai.com/v1")
    api_key: str | None = Field(default=None)
    model: str = Field(default="gpt-4o-mini")
    timeout_sec: float = Field(default=60.0)
    max_tokens: int = Field(default=2000)
    temperature: float = Field(default=0.3)


class SyncConfig(BaseModel):
    """Sync orchestration configuration.

    Env vars:
        CODEDRIFT__SYNC__DAILY_HOUR: Hour (UTC) of the daily sweep
        CODEDRIFT__SYNC__RETRY_SWEEP_INTERVAL_SEC: Retry sweep interval
        CODEDRIFT__SYNC__EVENT_SWEEP_INTERVAL_SEC: Pending-event sweep interval
    """

    daily_hour: int = Field(default=6, description="Hour (UTC, 0-23) of the daily sync sweep.")
    retry_sweep_interval_sec: float = Field(default=600.0)
    retry_batch_size: int = Field(default=5, description="Max due retries picked per sweep.")
    default_max_retries: int = Field(default=3)
    event_sweep_interval_sec: float = Field(default=60.0)
    pending_batch_size: int = Field(default=50, description="Max pending events per processing pass.")
    commits_per_page: int = Field(default=100)
    max_concurrent_jobs: int = Field(default=4, ge=1, description="Jobs a sweep runs at the same time.")
    impact_confidence_threshold: int = Field(
        default=30,
        description="Minimum confidence (0-100) for recording a documentation update.",
    )

    @field_validator("daily_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        if not (0 <= v <= 23):
            raise ValueError(f"daily_hour must be 0-23, got {v}")
        return v


class ClassifierConfig(BaseModel):
    """Diff classifier tuning.

    Env vars:
        CODEDRIFT__CLASSIFIER__RENAME_SIMILARITY_THRESHOLD: Exclusive lower bound
    """

    rename_similarity_threshold: float = Field(
        default=0.8,
        description="Signature similarity above which a delete/add pair is a rename.",
    )

    @field_validator("rename_similarity_threshold")
    @classmethod
    def validate_threshold(cls, v: float) -> float:
        if not (0.0 <= v < 1.0):
            raise ValueError(f"Threshold must be in [0, 1), got {v}")
        return v


class NotificationsConfig(BaseModel):
    """Notification sinks.

    Env vars:
        CODEDRIFT__NOTIFICATIONS__SLACK_WEBHOOK_URL: Incoming-webhook URL
    """

    slack_webhook_url: str | None = Field(default=None)
    timeout_sec: float = Field(default=10.0)


class CodeDriftConfig(BaseModel):
    """Root configuration for codedrift.

    All settings can be configured via:
    1. Environment variables: CODEDRIFT__SECTION__KEY
    2. YAML config files (working directory or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)

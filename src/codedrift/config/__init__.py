"""Config module exports."""

from codedrift.config.loader import load_config, resolve_db_path
from codedrift.config.models import (
    ClassifierConfig,
    CodeDriftConfig,
    DatabaseConfig,
    GitHubConfig,
    LLMConfig,
    LoggingConfig,
    NotificationsConfig,
    ServerConfig,
    SyncConfig,
    WebhookConfig,
)

__all__ = [
    "load_config",
    "resolve_db_path",
    "ClassifierConfig",
    "CodeDriftConfig",
    "DatabaseConfig",
    "GitHubConfig",
    "LLMConfig",
    "LoggingConfig",
    "NotificationsConfig",
    "ServerConfig",
    "SyncConfig",
    "WebhookConfig",
]

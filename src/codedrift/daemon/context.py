"""Application context shared by the HTTP routes, the scheduler and the CLI.

Single object holding the database, the external clients and the services
wired on top of them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import structlog

from codedrift.clients.base import LanguageModelClient, VcsClient
from codedrift.clients.github import GitHubClient
from codedrift.clients.llm import OpenAIChatClient
from codedrift.config.models import CodeDriftConfig
from codedrift.events.pipeline import ChangeEventPipeline
from codedrift.store.database import Database
from codedrift.sync.impact import DocumentationImpactAnalyzer
from codedrift.sync.orchestrator import SyncOrchestrator
from codedrift.sync.progress import ProgressRegistry
from codedrift.sync.snapshots import StructureStore
from codedrift.tracking.notifications import LogNotificationSink, NotificationService, NotificationSink, SlackWebhookSink
from codedrift.tracking.references import CitationTracker

log = structlog.get_logger(__name__)


@dataclass
class AppContext:
    """Every service, wired to one database and one set of clients."""

    config: CodeDriftConfig
    db: Database
    vcs: VcsClient
    llm: LanguageModelClient | None
    notifications: NotificationService
    tracker: CitationTracker
    pipeline: ChangeEventPipeline
    structures: StructureStore
    analyzer: DocumentationImpactAnalyzer
    orchestrator: SyncOrchestrator
    registry: ProgressRegistry = field(default_factory=ProgressRegistry)

    @classmethod
    def create(
        cls,
        config: CodeDriftConfig,
        db_path: Path,
        *,
        vcs: VcsClient | None = None,
        llm: LanguageModelClient | None = None,
        sinks: list[NotificationSink] | None = None,
    ) -> AppContext:
        """Factory wiring all services together.

        Args:
            config: Resolved configuration
            db_path: SQLite file; created with its tables if missing
            vcs: Version-control client (default: GitHubClient from config)
            llm: Language-model client (default: OpenAIChatClient when
                ``llm.enabled``, otherwise none and the fallback verdict)
            sinks: Notification sinks (default: log, plus Slack if configured)
        """
        db = Database.from_config(db_path, config.database)
        db.create_all()

        if vcs is None:
            vcs = GitHubClient(
                token=config.github.token,
                api_url=config.github.api_url,
                timeout=config.github.timeout_sec,
            )
        if llm is None and config.llm.enabled:
            llm = OpenAIChatClient(
                base_url=config.llm.base_url,
                model=config.llm.model,
                api_key=config.llm.api_key,
                timeout=config.llm.timeout_sec,
                max_tokens=config.llm.max_tokens,
                temperature=config.llm.temperature,
            )
        if sinks is None:
            sinks = [LogNotificationSink()]
            if config.notifications.slack_webhook_url:
                sinks.append(
                    SlackWebhookSink(config.notifications.slack_webhook_url, timeout=config.notifications.timeout_sec)
                )

        notifications = NotificationService(sinks)
        tracker = CitationTracker(db, vcs, notifications)
        pipeline = ChangeEventPipeline(
            db,
            tracker,
            webhook_secret=config.webhook.secret,
            pending_limit=config.sync.pending_batch_size,
        )
        registry = ProgressRegistry()
        structures = StructureStore(db)
        analyzer = DocumentationImpactAnalyzer(
            db,
            llm,
            confidence_threshold=config.sync.impact_confidence_threshold,
            timeout=config.llm.timeout_sec,
        )
        orchestrator = SyncOrchestrator(
            db,
            vcs,
            registry=registry,
            store=structures,
            analyzer=analyzer,
            config=config.sync,
            rename_threshold=config.classifier.rename_similarity_threshold,
        )
        log.debug("app_context_created", db_path=str(db_path), llm_enabled=llm is not None)
        return cls(
            config=config,
            db=db,
            vcs=vcs,
            llm=llm,
            notifications=notifications,
            tracker=tracker,
            pipeline=pipeline,
            structures=structures,
            analyzer=analyzer,
            orchestrator=orchestrator,
            registry=registry,
        )

    async def aclose(self) -> None:
        """Close HTTP clients owned by the context."""
        for client in (self.vcs, self.llm):
            close = getattr(client, "aclose", None)
            if close is not None:
                await close()
        self.db.engine.dispose()

"""Citation tracking: link grammar, relocation, reference upkeep, notifications."""

from codedrift.tracking.links import (
    CodeLink,
    format_code_link,
    parse_code_links,
    snippet_block,
    validate_code_reference,
)
from codedrift.tracking.notifications import (
    ConflictType,
    LogNotificationSink,
    Notification,
    NotificationService,
    NotificationSink,
    Resolution,
    SlackWebhookSink,
)
from codedrift.tracking.references import CitationTracker, TrackingSummary
from codedrift.tracking.relocator import (
    APPLY_THRESHOLD,
    MATCH_THRESHOLD,
    Match,
    ReferenceView,
    RelocationMethod,
    RelocationOutcome,
    RelocationResult,
    extract_snippet,
    find_exact,
    find_fuzzy,
    relocate,
    should_apply,
)

__all__ = [
    # Links
    "CodeLink",
    "format_code_link",
    "parse_code_links",
    "snippet_block",
    "validate_code_reference",
    # Notifications
    "ConflictType",
    "LogNotificationSink",
    "Notification",
    "NotificationService",
    "NotificationSink",
    "Resolution",
    "SlackWebhookSink",
    # Tracker
    "CitationTracker",
    "TrackingSummary",
    # Relocator
    "APPLY_THRESHOLD",
    "MATCH_THRESHOLD",
    "Match",
    "ReferenceView",
    "RelocationMethod",
    "RelocationOutcome",
    "RelocationResult",
    "extract_snippet",
    "find_exact",
    "find_fuzzy",
    "relocate",
    "should_apply",
]

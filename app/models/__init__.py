"""Data models for the PR automation engine."""

from .pull_request import Comment, Person, Priority, PRStatus, PullRequest, utc_now
from .automation import (
    ActionType,
    AutomationSettings,
    ConflictMonitorConfig,
    DueAction,
    EngineConfig,
)
from .conflict import (
    ConflictCheck,
    ConflictDetail,
    ConflictSeverity,
    ConflictStatus,
    ConflictSummary,
    ConflictTransition,
    ConflictType,
    ConflictVerdict,
)
from .transition import PREventType, ReviewActionResult, TransitionResult
from .notification import (
    DispatchResult,
    NotificationEvent,
    NotificationPayload,
    NotificationType,
)
from .api_response import (
    AssignRequest,
    CommentRequest,
    ExecutedAction,
    PullRequestView,
    TickReport,
    ToastMessage,
)

__all__ = [
    # Pull request models
    "Person",
    "Comment",
    "PRStatus",
    "Priority",
    "PullRequest",
    "utc_now",
    # Automation models
    "ActionType",
    "AutomationSettings",
    "ConflictMonitorConfig",
    "DueAction",
    "EngineConfig",
    # Conflict models
    "ConflictCheck",
    "ConflictDetail",
    "ConflictSeverity",
    "ConflictStatus",
    "ConflictSummary",
    "ConflictTransition",
    "ConflictType",
    "ConflictVerdict",
    # Transition models
    "PREventType",
    "ReviewActionResult",
    "TransitionResult",
    # Notification models
    "DispatchResult",
    "NotificationEvent",
    "NotificationPayload",
    "NotificationType",
    # API models
    "AssignRequest",
    "CommentRequest",
    "ExecutedAction",
    "PullRequestView",
    "TickReport",
    "ToastMessage",
]

"""Notification data models."""

from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel

from .pull_request import Person, PullRequest


class NotificationType(str, Enum):
    """Kinds of events the dispatcher fans out."""

    REVIEWER_ASSIGNED = "reviewer_assigned"
    COMMENTS_ADDRESSED = "comments_addressed"
    AUTHOR_NOTIFIED = "author_notified"
    REVIEW_REMINDER = "review_reminder"
    CONFLICT_DETECTED = "conflict_detected"
    URGENT_PR = "urgent_pr"


class NotificationEvent(BaseModel):
    """Something worth telling people about a pull request."""

    type: NotificationType
    pr: PullRequest
    recipient: Optional[Person] = None
    action: Optional[str] = None
    resolved_count: int = 0


class NotificationPayload(BaseModel):
    """Channel-agnostic message handed to every sink."""

    event_type: NotificationType
    pr_id: str
    title: str
    subtitle: str
    facts: List[Tuple[str, str]] = []
    action_url: Optional[str] = None
    theme_color: str = "#808080"
    recipient: Optional[Person] = None


class DispatchResult(BaseModel):
    """Per-event delivery outcome across sinks."""

    delivered: int = 0
    failed: int = 0
    errors: List[str] = []

    @property
    def success(self) -> bool:
        return self.failed == 0

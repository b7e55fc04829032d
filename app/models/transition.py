"""State transition data models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .pull_request import Comment, PRStatus, PullRequest


class PREventType(str, Enum):
    """Events accepted by the PR state machine."""

    REVIEWER_ASSIGNED = "reviewer_assigned"
    COMMENT_ADDED = "comment_added"
    ALL_COMMENTS_RESOLVED = "all_comments_resolved"
    APPROVED = "approved"
    MERGED = "merged"


class TransitionResult(BaseModel):
    """Outcome of presenting an event to the state machine."""

    pr_id: str
    event: PREventType
    previous_status: PRStatus
    new_status: PRStatus
    applied: bool
    reason: Optional[str] = None
    timestamp: datetime


class ReviewActionResult(BaseModel):
    """Outcome of a review action such as adding or resolving a comment."""

    pr: PullRequest
    transition: Optional[TransitionResult] = None
    comment: Optional[Comment] = None

    @property
    def status_changed(self) -> bool:
        return self.transition is not None and self.transition.applied

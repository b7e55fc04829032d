"""API request and response data models."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel

from .automation import DueAction
from .pull_request import PullRequest


class ExecutedAction(BaseModel):
    """Automated action carried out during a tick."""

    pr_id: str
    action: str
    reviewer: Optional[str] = None


class TickReport(BaseModel):
    """Summary of one engine evaluation pass."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    prs_evaluated: int = 0
    new_conflicts: List[str] = []
    resolved_conflicts: List[str] = []
    actions: List[ExecutedAction] = []
    notifications_scheduled: int = 0
    skipped: Dict[str, str] = {}
    warnings: List[str] = []


class PullRequestView(BaseModel):
    """Pull request as returned by the API."""

    pull_request: PullRequest
    days_waiting: int
    unresolved_comments: int
    next_action: DueAction


class CommentRequest(BaseModel):
    """Body for adding a comment or reply."""

    author_id: str
    text: str


class AssignRequest(BaseModel):
    """Body for a manual reviewer assignment."""

    reviewer_id: str


class ToastMessage(BaseModel):
    """In-app notification surfaced to the UI."""

    title: str
    description: str
    pr_id: str
    created_at: datetime

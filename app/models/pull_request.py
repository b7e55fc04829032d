"""Pull request data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


SECONDS_PER_DAY = 24 * 60 * 60


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class PRStatus(str, Enum):
    """Review lifecycle status of a pull request."""

    WAITING = "waiting"
    ASSIGNED = "assigned"
    REVIEWING = "reviewing"
    COMMENTED = "commented"
    APPROVED = "approved"
    MERGED = "merged"


class Priority(str, Enum):
    """Pull request priority."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Person(BaseModel):
    """Developer identity referenced by pull requests and comments."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: str


class Comment(BaseModel):
    """Review comment with its replies."""

    id: str
    author: Person
    text: str
    created_at: datetime = Field(default_factory=utc_now)
    resolved: bool = False
    replies: List["Comment"] = []

    def latest_activity_by(self, person_id: str) -> Optional[datetime]:
        """Most recent timestamp in this thread authored by ``person_id``."""
        timestamps = [self.created_at] if self.author.id == person_id else []
        for reply in self.replies:
            latest = reply.latest_activity_by(person_id)
            if latest is not None:
                timestamps.append(latest)
        return max(timestamps) if timestamps else None


class PullRequest(BaseModel):
    """
    Pull request aggregate.

    Source-owned attributes (title, branches, size metrics, labels, ...) are
    refreshed from the PR source on every tick; review state (status,
    reviewer, comments, reminder bookkeeping) is owned by the engine.
    """

    id: str
    title: str
    description: str = ""
    author: Person
    assigned_reviewer: Optional[Person] = None
    status: PRStatus = PRStatus.WAITING
    priority: Priority = Priority.MEDIUM
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    source_branch: str
    target_branch: str
    comments: List[Comment] = []
    files_changed: int = Field(default=0, ge=0)
    lines_added: int = Field(default=0, ge=0)
    lines_deleted: int = Field(default=0, ge=0)
    automation_enabled: bool = True
    next_action: Optional[str] = None
    next_action_due: Optional[datetime] = None
    has_conflicts: bool = False
    conflict_files: List[str] = []
    external_number: Optional[int] = None
    external_url: Optional[str] = None
    linked_tickets: Set[str] = set()
    labels: Set[str] = set()

    # Source-reported conflict signals
    mergeable: Optional[bool] = None
    external_conflict: bool = False

    # Engine bookkeeping
    assigned_at: Optional[datetime] = None
    last_reminded_at: Optional[datetime] = None
    merged_at: Optional[datetime] = None
    urgent_notified_at: Optional[datetime] = None

    def days_waiting(self, now: Optional[datetime] = None) -> int:
        """Whole days since creation; frozen at merge time once merged."""
        reference = self.merged_at or now or utc_now()
        elapsed = (reference - self.created_at).total_seconds()
        return max(0, int(elapsed // SECONDS_PER_DAY))

    def unresolved_comment_count(self) -> int:
        """Number of unresolved top-level comments."""
        return sum(1 for comment in self.comments if not comment.resolved)

    def find_comment(self, comment_id: str) -> Optional[Comment]:
        """Find a top-level comment by id."""
        for comment in self.comments:
            if comment.id == comment_id:
                return comment
        return None

    def last_reviewer_activity(self) -> datetime:
        """
        Latest point at which the reviewer was engaged with this PR.

        Considers the assignment time, the last reminder sent and the
        reviewer's own comments and replies, falling back to ``updated_at``
        when none of those exist.
        """
        candidates = [ts for ts in (self.assigned_at, self.last_reminded_at) if ts]
        if self.assigned_reviewer is not None:
            for comment in self.comments:
                latest = comment.latest_activity_by(self.assigned_reviewer.id)
                if latest is not None:
                    candidates.append(latest)
        return max(candidates) if candidates else self.updated_at

    def is_active(self) -> bool:
        """True while the PR has not been merged."""
        return self.status != PRStatus.MERGED

    def refresh_from(self, snapshot: "PullRequest") -> None:
        """
        Merge source-owned attributes from a fresh snapshot.

        Review state owned by the engine is left untouched.
        """
        self.title = snapshot.title
        self.description = snapshot.description
        self.priority = snapshot.priority
        self.source_branch = snapshot.source_branch
        self.target_branch = snapshot.target_branch
        self.files_changed = snapshot.files_changed
        self.lines_added = snapshot.lines_added
        self.lines_deleted = snapshot.lines_deleted
        self.external_number = snapshot.external_number
        self.external_url = snapshot.external_url
        self.linked_tickets = set(snapshot.linked_tickets)
        self.labels = set(snapshot.labels)
        self.mergeable = snapshot.mergeable
        self.external_conflict = snapshot.external_conflict
        if snapshot.updated_at > self.updated_at:
            self.updated_at = snapshot.updated_at

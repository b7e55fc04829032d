"""
PR State Machine component.

Authoritative transition function from (current status, event) to new
status, plus the review actions (comment, reply, resolve, assign, approve,
merge) that drive it. Side effects such as notifications are not performed
here; callers act on the returned results.
"""

import uuid
from datetime import datetime
from typing import Dict, FrozenSet, Optional

from app.models.pull_request import Comment, Person, PRStatus, PullRequest, utc_now
from app.models.transition import PREventType, ReviewActionResult, TransitionResult
from app.utils.logging import get_logger, log_transition

logger = get_logger(__name__)


# event -> (allowed source states, target state)
TRANSITIONS: Dict[PREventType, tuple[FrozenSet[PRStatus], PRStatus]] = {
    PREventType.REVIEWER_ASSIGNED: (frozenset({PRStatus.WAITING}), PRStatus.ASSIGNED),
    PREventType.COMMENT_ADDED: (frozenset({PRStatus.ASSIGNED, PRStatus.REVIEWING}), PRStatus.COMMENTED),
    PREventType.ALL_COMMENTS_RESOLVED: (frozenset({PRStatus.COMMENTED}), PRStatus.REVIEWING),
    PREventType.APPROVED: (frozenset({PRStatus.REVIEWING, PRStatus.ASSIGNED}), PRStatus.APPROVED),
    PREventType.MERGED: (frozenset({PRStatus.APPROVED}), PRStatus.MERGED),
}

TERMINAL_STATES: FrozenSet[PRStatus] = frozenset({PRStatus.MERGED})

STATUS_LABELS: Dict[PRStatus, str] = {
    PRStatus.WAITING: "Waiting for reviewer",
    PRStatus.ASSIGNED: "Reviewer assigned",
    PRStatus.REVIEWING: "In review",
    PRStatus.COMMENTED: "Changes requested",
    PRStatus.APPROVED: "Ready to merge",
    PRStatus.MERGED: "Merged",
}


class InvalidTransitionError(Exception):
    """Raised when an event is not applicable to the PR's current status."""

    def __init__(self, result: TransitionResult):
        self.result = result
        super().__init__(
            f"Cannot apply {result.event.value} to PR {result.pr_id} "
            f"in status {result.previous_status.value}: {result.reason}"
        )


class ReviewActionError(Exception):
    """Raised when a review action references something that does not exist."""
    pass


class PRStateMachine:
    """Applies lifecycle events to pull requests."""

    def check(self, pr: PullRequest, event: PREventType) -> Optional[str]:
        """
        Return the reason ``event`` cannot be applied to ``pr``, or None.

        Args:
            pr: Pull request in its current state
            event: Event to test
        """
        if pr.status in TERMINAL_STATES:
            return f"status {pr.status.value} is terminal"

        allowed, _ = TRANSITIONS[event]
        if pr.status not in allowed:
            expected = ", ".join(sorted(status.value for status in allowed))
            return f"expected one of [{expected}]"

        if event == PREventType.ALL_COMMENTS_RESOLVED:
            unresolved = pr.unresolved_comment_count()
            if unresolved:
                return f"{unresolved} comment(s) still unresolved"

        if event == PREventType.COMMENT_ADDED and pr.unresolved_comment_count() == 0:
            return "no unresolved comment to justify the commented status"

        return None

    def can_apply(self, pr: PullRequest, event: PREventType) -> bool:
        return self.check(pr, event) is None

    def try_apply(
        self,
        pr: PullRequest,
        event: PREventType,
        now: Optional[datetime] = None
    ) -> TransitionResult:
        """
        Apply ``event`` if allowed.

        Returns a result with ``applied=False`` and a reason instead of
        raising; the PR is left unchanged in that case.
        """
        now = now or utc_now()
        previous = pr.status
        reason = self.check(pr, event)

        if reason is not None:
            log_transition(logger, pr.id, event.value, previous.value, previous.value,
                           applied=False, reason=reason)
            return TransitionResult(
                pr_id=pr.id,
                event=event,
                previous_status=previous,
                new_status=previous,
                applied=False,
                reason=reason,
                timestamp=now,
            )

        _, target = TRANSITIONS[event]
        pr.status = target
        pr.updated_at = now
        log_transition(logger, pr.id, event.value, previous.value, target.value)

        return TransitionResult(
            pr_id=pr.id,
            event=event,
            previous_status=previous,
            new_status=target,
            applied=True,
            timestamp=now,
        )

    def apply(
        self,
        pr: PullRequest,
        event: PREventType,
        now: Optional[datetime] = None
    ) -> TransitionResult:
        """
        Apply ``event`` or raise.

        Raises:
            InvalidTransitionError: If the event is not allowed from the
                current status. The PR is unchanged.
        """
        result = self.try_apply(pr, event, now)
        if not result.applied:
            raise InvalidTransitionError(result)
        return result

    # ========== Review actions ==========

    def add_comment(
        self,
        pr: PullRequest,
        author: Person,
        text: str,
        now: Optional[datetime] = None
    ) -> ReviewActionResult:
        """
        Add a top-level comment and move the PR to ``commented``.

        The comment is always recorded. A PR that is already ``commented``
        stays there without a transition; from any other status outside
        the allowed set the rejected transition is reported in the result.
        """
        now = now or utc_now()
        comment = Comment(id=f"c-{uuid.uuid4().hex[:12]}", author=author, text=text, created_at=now)
        pr.comments.append(comment)
        pr.updated_at = now

        if pr.status == PRStatus.COMMENTED:
            return ReviewActionResult(pr=pr, comment=comment)

        transition = self.try_apply(pr, PREventType.COMMENT_ADDED, now)
        return ReviewActionResult(pr=pr, transition=transition, comment=comment)

    def reply_to_comment(
        self,
        pr: PullRequest,
        comment_id: str,
        author: Person,
        text: str,
        now: Optional[datetime] = None
    ) -> ReviewActionResult:
        """
        Append a reply to a top-level comment. Never changes status.

        Raises:
            ReviewActionError: If the comment does not exist
        """
        now = now or utc_now()
        parent = pr.find_comment(comment_id)
        if parent is None:
            raise ReviewActionError(f"Comment {comment_id} not found on PR {pr.id}")

        reply = Comment(id=f"r-{uuid.uuid4().hex[:12]}", author=author, text=text, created_at=now)
        parent.replies.append(reply)
        pr.updated_at = now
        return ReviewActionResult(pr=pr, comment=reply)

    def resolve_comment(
        self,
        pr: PullRequest,
        comment_id: str,
        now: Optional[datetime] = None
    ) -> ReviewActionResult:
        """
        Resolve a top-level comment.

        When the last unresolved comment of a ``commented`` PR is resolved,
        the PR returns to ``reviewing``.

        Raises:
            ReviewActionError: If the comment does not exist
        """
        now = now or utc_now()
        comment = pr.find_comment(comment_id)
        if comment is None:
            raise ReviewActionError(f"Comment {comment_id} not found on PR {pr.id}")

        if not comment.resolved:
            comment.resolved = True
            pr.updated_at = now

        transition = None
        if pr.status == PRStatus.COMMENTED and pr.unresolved_comment_count() == 0:
            transition = self.apply(pr, PREventType.ALL_COMMENTS_RESOLVED, now)

        return ReviewActionResult(pr=pr, transition=transition, comment=comment)

    def assign_reviewer(
        self,
        pr: PullRequest,
        reviewer: Person,
        now: Optional[datetime] = None
    ) -> ReviewActionResult:
        """
        Assign a reviewer to a waiting PR.

        Raises:
            InvalidTransitionError: If the PR is not waiting
        """
        now = now or utc_now()
        transition = self.apply(pr, PREventType.REVIEWER_ASSIGNED, now)
        pr.assigned_reviewer = reviewer
        pr.assigned_at = now
        pr.next_action = "Waiting for review"
        return ReviewActionResult(pr=pr, transition=transition)

    def approve(self, pr: PullRequest, now: Optional[datetime] = None) -> ReviewActionResult:
        """
        Raises:
            InvalidTransitionError: If the PR is not assigned or reviewing
        """
        transition = self.apply(pr, PREventType.APPROVED, now)
        pr.next_action = "Ready to merge"
        return ReviewActionResult(pr=pr, transition=transition)

    def merge(self, pr: PullRequest, now: Optional[datetime] = None) -> ReviewActionResult:
        """
        Raises:
            InvalidTransitionError: If the PR is not approved
        """
        transition = self.apply(pr, PREventType.MERGED, now)
        pr.merged_at = transition.timestamp
        pr.next_action = None
        pr.next_action_due = None
        return ReviewActionResult(pr=pr, transition=transition)

"""
Automation Policy Evaluator component.

Pure decision function: given a PR snapshot, the automation settings and
the current time, compute the next automated action and when it is due.
Rules are evaluated in priority order and the first match wins.
"""

from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable, Mapping, Optional

from app.models.automation import ActionType, AutomationSettings, DueAction
from app.models.pull_request import PRStatus, PullRequest
from app.utils.logging import get_logger

logger = get_logger(__name__)


NO_REVIEWER_WARNING = "auto-assign is due but no eligible reviewer is available in the reviewer pool"

ACTION_LABELS = {
    ActionType.ASSIGN: "Auto-assign reviewer",
    ActionType.REMIND: "Send review reminder",
    ActionType.MERGE: "Auto-merge",
}


def reviewer_workload(prs: Iterable[PullRequest]) -> Counter:
    """Count active (unmerged) PRs currently assigned to each reviewer id."""
    workload: Counter = Counter()
    for pr in prs:
        if pr.is_active() and pr.assigned_reviewer is not None:
            workload[pr.assigned_reviewer.id] += 1
    return workload


class PolicyEvaluator:
    """Computes the next due automated action for a pull request."""

    def upcoming(self, pr: PullRequest, settings: AutomationSettings, now: datetime) -> DueAction:
        """
        The action the policy has scheduled for ``pr`` and when it falls
        due, whether or not that time has been reached. No reviewer is
        selected here.
        """
        if (
            pr.author.id in settings.excluded_authors
            or not pr.automation_enabled
            or pr.status == PRStatus.MERGED
        ):
            return DueAction()

        if pr.status == PRStatus.WAITING and settings.auto_assign:
            return DueAction(
                action=ActionType.ASSIGN,
                due_at=pr.created_at + timedelta(days=settings.wait_days),
            )

        if pr.status in (PRStatus.ASSIGNED, PRStatus.REVIEWING) and settings.auto_review:
            return DueAction(
                action=ActionType.REMIND,
                due_at=pr.last_reviewer_activity() + timedelta(hours=settings.reminder_interval),
                reviewer=pr.assigned_reviewer.id if pr.assigned_reviewer else None,
            )

        if pr.status == PRStatus.APPROVED and settings.auto_merge:
            return DueAction(action=ActionType.MERGE, due_at=now)

        return DueAction()

    def next_action(
        self,
        pr: PullRequest,
        settings: AutomationSettings,
        now: datetime,
        workload: Optional[Mapping[str, int]] = None
    ) -> DueAction:
        """
        Decide the automated action that is due for ``pr`` now.

        Args:
            pr: Pull request snapshot
            settings: Automation policy in force for this evaluation
            now: Evaluation time
            workload: Active assignments per reviewer id, used for load
                balancing; empty when not supplied

        Returns:
            DueAction; ``action`` is NONE when nothing is due
        """
        scheduled = self.upcoming(pr, settings, now)

        if scheduled.action == ActionType.ASSIGN:
            if pr.days_waiting(now) < settings.wait_days:
                return DueAction()
            reviewer = self.select_reviewer(pr, settings, workload or {})
            if reviewer is None:
                return DueAction(warnings=[NO_REVIEWER_WARNING])
            return scheduled.model_copy(update={"reviewer": reviewer})

        if scheduled.action == ActionType.REMIND:
            # Strictly more than the interval since the reviewer last engaged.
            if now - pr.last_reviewer_activity() <= timedelta(hours=settings.reminder_interval):
                return DueAction()
            return scheduled

        return scheduled

    def select_reviewer(
        self,
        pr: PullRequest,
        settings: AutomationSettings,
        workload: Mapping[str, int]
    ) -> Optional[str]:
        """
        Pick the least loaded eligible reviewer from the pool.

        The PR author and reviewers at ``max_active_reviews`` are skipped;
        ties go to the earlier pool entry.
        """
        best: Optional[str] = None
        best_load = 0

        for reviewer_id in settings.reviewer_pool:
            if reviewer_id == pr.author.id:
                continue
            load = workload.get(reviewer_id, 0)
            if settings.max_active_reviews is not None and load >= settings.max_active_reviews:
                continue
            if best is None or load < best_load:
                best, best_load = reviewer_id, load

        if best is None:
            logger.warning(
                NO_REVIEWER_WARNING,
                extra={"pr_id": pr.id, "reviewer_pool": list(settings.reviewer_pool)}
            )
        return best

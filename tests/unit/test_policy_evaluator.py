"""
Unit tests for the automation policy evaluator.
"""

from datetime import timedelta

import pytest

from app.models.automation import ActionType, AutomationSettings
from app.models.pull_request import Comment, PRStatus
from app.services.policy_evaluator import NO_REVIEWER_WARNING, PolicyEvaluator, reviewer_workload

from tests.unit.factories import ALICE, BOB, CAROL, NOW, make_pr


@pytest.fixture
def evaluator() -> PolicyEvaluator:
    return PolicyEvaluator()


@pytest.fixture
def settings() -> AutomationSettings:
    return AutomationSettings(wait_days=2, reminder_interval=24, reviewer_pool=["bob", "carol"])


class TestAutoAssign:
    """Test rule 2: assignment of waiting PRs."""

    def test_waiting_pr_past_wait_days_gets_reviewer(self, evaluator, settings):
        pr = make_pr(days_old=2)

        due = evaluator.next_action(pr, settings, NOW)

        assert due.action == ActionType.ASSIGN
        assert due.reviewer in settings.reviewer_pool
        assert due.due_at == pr.created_at + timedelta(days=2)

    def test_waiting_pr_before_wait_days(self, evaluator, settings):
        due = evaluator.next_action(make_pr(days_old=1.5), settings, NOW)
        assert due.action == ActionType.NONE

    def test_auto_assign_disabled(self, evaluator, settings):
        settings = settings.model_copy(update={"auto_assign": False})
        due = evaluator.next_action(make_pr(days_old=5), settings, NOW)
        assert due.action == ActionType.NONE

    def test_least_loaded_reviewer_wins(self, evaluator, settings):
        due = evaluator.next_action(make_pr(days_old=3), settings, NOW, workload={"bob": 2, "carol": 1})
        assert due.reviewer == "carol"

    def test_ties_go_to_pool_order(self, evaluator, settings):
        due = evaluator.next_action(make_pr(days_old=3), settings, NOW, workload={"bob": 1, "carol": 1})
        assert due.reviewer == "bob"

    def test_author_never_reviews_own_pr(self, evaluator):
        settings = AutomationSettings(reviewer_pool=["alice", "bob"])
        due = evaluator.next_action(make_pr(days_old=3, author=ALICE), settings, NOW)
        assert due.reviewer == "bob"

    def test_reviewers_at_capacity_are_skipped(self, evaluator):
        settings = AutomationSettings(reviewer_pool=["bob", "carol"], max_active_reviews=2)
        due = evaluator.next_action(make_pr(days_old=3), settings, NOW, workload={"bob": 0, "carol": 2})
        assert due.reviewer == "bob"

        due = evaluator.next_action(make_pr(days_old=3), settings, NOW, workload={"bob": 2, "carol": 2})
        assert due.action == ActionType.NONE
        assert due.warnings == [NO_REVIEWER_WARNING]

    def test_empty_pool_is_a_configuration_warning(self, evaluator):
        due = evaluator.next_action(make_pr(days_old=3), AutomationSettings(), NOW)

        assert due.action == ActionType.NONE
        assert due.warnings == [NO_REVIEWER_WARNING]


class TestReminders:
    """Test rule 3: review reminders."""

    def test_reminder_due_after_interval(self, evaluator, settings):
        pr = make_pr(days_old=5, status=PRStatus.ASSIGNED, assigned_reviewer=BOB,
                     assigned_at=NOW - timedelta(hours=25))

        due = evaluator.next_action(pr, settings, NOW)

        assert due.action == ActionType.REMIND
        assert due.reviewer == "bob"
        assert due.due_at == NOW - timedelta(hours=1)

    def test_exactly_interval_is_not_due(self, evaluator, settings):
        pr = make_pr(days_old=5, status=PRStatus.ASSIGNED, assigned_reviewer=BOB,
                     assigned_at=NOW - timedelta(hours=24))
        assert evaluator.next_action(pr, settings, NOW).action == ActionType.NONE

    def test_last_reminder_resets_clock(self, evaluator, settings):
        pr = make_pr(days_old=5, status=PRStatus.REVIEWING, assigned_reviewer=BOB,
                     assigned_at=NOW - timedelta(days=4), last_reminded_at=NOW - timedelta(hours=2))
        assert evaluator.next_action(pr, settings, NOW).action == ActionType.NONE

    def test_reviewer_comment_resets_clock(self, evaluator, settings):
        pr = make_pr(
            days_old=5, status=PRStatus.REVIEWING, assigned_reviewer=BOB,
            assigned_at=NOW - timedelta(days=4),
            comments=[Comment(id="c1", author=BOB, text="lgtm", created_at=NOW - timedelta(hours=3),
                              resolved=True)],
        )
        assert evaluator.next_action(pr, settings, NOW).action == ActionType.NONE

    def test_commented_pr_gets_no_reminder(self, evaluator, settings):
        pr = make_pr(days_old=5, status=PRStatus.COMMENTED, assigned_reviewer=BOB,
                     comments=[Comment(id="c1", author=BOB, text="fix", created_at=NOW - timedelta(days=3))])
        assert evaluator.next_action(pr, settings, NOW).action == ActionType.NONE


class TestOtherRules:
    """Test rules 1, 4 and 5."""

    def test_approved_pr_auto_merges_now(self, evaluator, settings):
        due = evaluator.next_action(make_pr(status=PRStatus.APPROVED), settings, NOW)
        assert due.action == ActionType.MERGE
        assert due.due_at == NOW

    def test_auto_merge_disabled(self, evaluator, settings):
        settings = settings.model_copy(update={"auto_merge": False})
        assert evaluator.next_action(make_pr(status=PRStatus.APPROVED), settings, NOW).action == ActionType.NONE

    @pytest.mark.parametrize("status", list(PRStatus))
    def test_excluded_author_always_none(self, evaluator, status):
        settings = AutomationSettings(excluded_authors={"alice"}, reviewer_pool=["bob"])
        pr = make_pr(days_old=30, status=status, assigned_reviewer=BOB)
        assert evaluator.next_action(pr, settings, NOW).action == ActionType.NONE

    def test_automation_disabled_on_pr(self, evaluator, settings):
        pr = make_pr(days_old=30, automation_enabled=False)
        assert evaluator.next_action(pr, settings, NOW).action == ActionType.NONE

    def test_merged_pr(self, evaluator, settings):
        pr = make_pr(days_old=30, status=PRStatus.MERGED)
        assert evaluator.next_action(pr, settings, NOW).action == ActionType.NONE

    def test_evaluation_is_idempotent(self, evaluator, settings):
        pr = make_pr(days_old=3)
        workload = {"bob": 1}
        first = evaluator.next_action(pr, settings, NOW, workload)
        second = evaluator.next_action(pr, settings, NOW, workload)
        assert first == second


class TestUpcoming:
    """Test the schedule reported for PRs whose action is not yet due."""

    def test_upcoming_assignment(self, evaluator, settings):
        pr = make_pr(days_old=1)
        scheduled = evaluator.upcoming(pr, settings, NOW)

        assert scheduled.action == ActionType.ASSIGN
        assert scheduled.due_at == NOW + timedelta(days=1)
        assert not scheduled.is_due(NOW)

    def test_upcoming_reminder(self, evaluator, settings):
        pr = make_pr(status=PRStatus.ASSIGNED, assigned_reviewer=CAROL, assigned_at=NOW)
        scheduled = evaluator.upcoming(pr, settings, NOW)

        assert scheduled.action == ActionType.REMIND
        assert scheduled.due_at == NOW + timedelta(hours=24)


def test_reviewer_workload_counts_active_assignments():
    prs = [
        make_pr("pr-1", status=PRStatus.ASSIGNED, assigned_reviewer=BOB),
        make_pr("pr-2", status=PRStatus.REVIEWING, assigned_reviewer=BOB),
        make_pr("pr-3", status=PRStatus.MERGED, assigned_reviewer=CAROL),
        make_pr("pr-4"),
    ]
    workload = reviewer_workload(prs)
    assert workload["bob"] == 2
    assert workload["carol"] == 0

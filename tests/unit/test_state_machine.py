"""
Unit tests for the PR state machine and review actions.
"""

import pytest

from app.models.pull_request import Comment, PRStatus
from app.models.transition import PREventType
from app.services.state_machine import (
    STATUS_LABELS,
    TERMINAL_STATES,
    TRANSITIONS,
    InvalidTransitionError,
    PRStateMachine,
    ReviewActionError,
)

from tests.unit.factories import ALICE, BOB, NOW, make_pr


@pytest.fixture
def machine() -> PRStateMachine:
    return PRStateMachine()


def _comment(comment_id: str = "c1", resolved: bool = False) -> Comment:
    return Comment(id=comment_id, author=BOB, text="Please rename", created_at=NOW, resolved=resolved)


class TestTransitionTable:
    """Test the table itself."""

    def test_every_status_is_covered(self):
        """Every status is a source or target of some event and has a label."""
        reachable = set()
        for sources, target in TRANSITIONS.values():
            reachable |= sources
            reachable.add(target)

        assert reachable == set(PRStatus)
        assert set(STATUS_LABELS) == set(PRStatus)

    def test_every_event_has_an_entry(self):
        assert set(TRANSITIONS) == set(PREventType)

    def test_merged_is_terminal(self, machine):
        assert TERMINAL_STATES == {PRStatus.MERGED}
        pr = make_pr(status=PRStatus.MERGED, comments=[_comment()])

        for event in PREventType:
            assert not machine.can_apply(pr, event)
            with pytest.raises(InvalidTransitionError):
                machine.apply(pr, event, NOW)
        assert pr.status == PRStatus.MERGED


class TestApply:
    """Test applying events."""

    @pytest.mark.parametrize("status,event,expected", [
        (PRStatus.WAITING, PREventType.REVIEWER_ASSIGNED, PRStatus.ASSIGNED),
        (PRStatus.ASSIGNED, PREventType.APPROVED, PRStatus.APPROVED),
        (PRStatus.REVIEWING, PREventType.APPROVED, PRStatus.APPROVED),
        (PRStatus.APPROVED, PREventType.MERGED, PRStatus.MERGED),
    ])
    def test_valid_transitions(self, machine, status, event, expected):
        pr = make_pr(status=status)
        result = machine.apply(pr, event, NOW)

        assert result.applied
        assert result.previous_status == status
        assert result.new_status == expected
        assert pr.status == expected
        assert pr.updated_at == NOW

    def test_invalid_transition_leaves_pr_unchanged(self, machine):
        pr = make_pr(status=PRStatus.WAITING)
        before = pr.model_dump()

        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.apply(pr, PREventType.MERGED, NOW)

        assert exc_info.value.result.applied is False
        assert "expected one of [approved]" in exc_info.value.result.reason
        assert pr.model_dump() == before

    def test_try_apply_reports_instead_of_raising(self, machine):
        pr = make_pr(status=PRStatus.APPROVED)
        result = machine.try_apply(pr, PREventType.REVIEWER_ASSIGNED, NOW)

        assert not result.applied
        assert result.new_status == PRStatus.APPROVED
        assert pr.status == PRStatus.APPROVED

    def test_all_comments_resolved_requires_zero_unresolved(self, machine):
        pr = make_pr(status=PRStatus.COMMENTED, comments=[_comment()])
        result = machine.try_apply(pr, PREventType.ALL_COMMENTS_RESOLVED, NOW)

        assert not result.applied
        assert "still unresolved" in result.reason
        assert pr.status == PRStatus.COMMENTED


class TestReviewActions:
    """Test comment, reply, resolve, assign, approve and merge."""

    def test_add_comment_moves_assigned_pr_to_commented(self, machine):
        pr = make_pr(status=PRStatus.ASSIGNED, assigned_reviewer=BOB)

        result = machine.add_comment(pr, BOB, "Needs tests", NOW)

        assert result.status_changed
        assert pr.status == PRStatus.COMMENTED
        assert pr.unresolved_comment_count() == 1
        assert result.comment.id.startswith("c-")

    def test_add_comment_on_commented_pr_stays_commented(self, machine):
        pr = make_pr(status=PRStatus.COMMENTED, comments=[_comment()])

        result = machine.add_comment(pr, BOB, "One more", NOW)

        assert result.transition is None
        assert pr.status == PRStatus.COMMENTED
        assert pr.unresolved_comment_count() == 2

    def test_add_comment_on_waiting_pr_records_comment_only(self, machine):
        pr = make_pr(status=PRStatus.WAITING)

        result = machine.add_comment(pr, BOB, "Drive-by", NOW)

        assert result.transition is not None and not result.transition.applied
        assert pr.status == PRStatus.WAITING
        assert len(pr.comments) == 1

    def test_comment_never_decreases_unresolved_count(self, machine):
        pr = make_pr(status=PRStatus.REVIEWING, comments=[_comment("c1", resolved=True)])
        before = pr.unresolved_comment_count()

        machine.add_comment(pr, BOB, "Another", NOW)

        assert pr.unresolved_comment_count() >= before

    def test_reply_does_not_change_status_or_count(self, machine):
        pr = make_pr(status=PRStatus.COMMENTED, comments=[_comment()])

        result = machine.reply_to_comment(pr, "c1", ALICE, "Done", NOW)

        assert result.transition is None
        assert result.comment.id.startswith("r-")
        assert pr.status == PRStatus.COMMENTED
        assert pr.unresolved_comment_count() == 1
        assert len(pr.comments[0].replies) == 1

    def test_reply_to_unknown_comment(self, machine):
        pr = make_pr(status=PRStatus.COMMENTED, comments=[_comment()])
        with pytest.raises(ReviewActionError):
            machine.reply_to_comment(pr, "missing", ALICE, "?", NOW)

    def test_resolving_last_comment_returns_to_reviewing(self, machine):
        pr = make_pr(status=PRStatus.COMMENTED, comments=[_comment("c1"), _comment("c2")])

        first = machine.resolve_comment(pr, "c1", NOW)
        assert first.transition is None
        assert pr.status == PRStatus.COMMENTED

        second = machine.resolve_comment(pr, "c2", NOW)
        assert second.status_changed
        assert pr.status == PRStatus.REVIEWING

    def test_resolve_unknown_comment(self, machine):
        pr = make_pr(status=PRStatus.COMMENTED, comments=[_comment()])
        with pytest.raises(ReviewActionError):
            machine.resolve_comment(pr, "missing", NOW)

    def test_assign_sets_reviewer_and_bookkeeping(self, machine):
        pr = make_pr(status=PRStatus.WAITING)

        machine.assign_reviewer(pr, BOB, NOW)

        assert pr.status == PRStatus.ASSIGNED
        assert pr.assigned_reviewer == BOB
        assert pr.assigned_at == NOW
        assert pr.next_action == "Waiting for review"

    def test_assign_non_waiting_pr_rejected(self, machine):
        pr = make_pr(status=PRStatus.REVIEWING, assigned_reviewer=ALICE)
        with pytest.raises(InvalidTransitionError):
            machine.assign_reviewer(pr, BOB, NOW)
        assert pr.assigned_reviewer == ALICE

    def test_approve_then_merge(self, machine):
        pr = make_pr(status=PRStatus.REVIEWING, next_action_due=NOW)

        machine.approve(pr, NOW)
        assert pr.next_action == "Ready to merge"

        machine.merge(pr, NOW)
        assert pr.status == PRStatus.MERGED
        assert pr.merged_at == NOW
        assert pr.next_action is None
        assert pr.next_action_due is None

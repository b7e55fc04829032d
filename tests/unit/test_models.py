"""
Unit tests for data models.
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from app.models.automation import ActionType, AutomationSettings, ConflictMonitorConfig, DueAction
from app.models.pull_request import Comment, PRStatus, Priority

from tests.unit.factories import ALICE, BOB, NOW


class TestPullRequest:
    """Test derived pull request attributes."""

    def test_days_waiting_floors_whole_days(self, make_pr):
        pr = make_pr(days_old=2.9)
        assert pr.days_waiting(NOW) == 2

    def test_days_waiting_never_negative(self, make_pr):
        pr = make_pr(created_at=NOW + timedelta(hours=5))
        assert pr.days_waiting(NOW) == 0

    def test_days_waiting_frozen_at_merge(self, make_pr):
        pr = make_pr(days_old=10, merged_at=NOW - timedelta(days=7), status=PRStatus.MERGED)
        assert pr.days_waiting(NOW) == 3
        assert pr.days_waiting(NOW + timedelta(days=30)) == 3

    def test_unresolved_count_ignores_replies(self, make_pr):
        reply = Comment(id="r1", author=ALICE, text="fixed", created_at=NOW)
        pr = make_pr(comments=[
            Comment(id="c1", author=BOB, text="nit", created_at=NOW, replies=[reply]),
            Comment(id="c2", author=BOB, text="done", created_at=NOW, resolved=True),
        ])
        assert pr.unresolved_comment_count() == 1

    def test_last_reviewer_activity_includes_replies(self, make_pr):
        reply = Comment(id="r1", author=BOB, text="ok", created_at=NOW - timedelta(hours=1))
        pr = make_pr(
            days_old=5,
            assigned_reviewer=BOB,
            assigned_at=NOW - timedelta(days=3),
            comments=[Comment(id="c1", author=ALICE, text="?", created_at=NOW - timedelta(days=2),
                              replies=[reply])],
        )
        assert pr.last_reviewer_activity() == NOW - timedelta(hours=1)

    def test_last_reviewer_activity_falls_back_to_updated_at(self, make_pr):
        pr = make_pr(days_old=5)
        assert pr.last_reviewer_activity() == pr.updated_at

    def test_refresh_preserves_review_state(self, make_pr):
        stored = make_pr(status=PRStatus.ASSIGNED, assigned_reviewer=BOB,
                         comments=[Comment(id="c1", author=BOB, text="x", created_at=NOW)])
        snapshot = make_pr(title="Renamed", files_changed=20, priority=Priority.URGENT,
                           labels={"hotfix"}, mergeable=False, external_conflict=True)

        stored.refresh_from(snapshot)

        assert stored.title == "Renamed"
        assert stored.files_changed == 20
        assert stored.priority == Priority.URGENT
        assert stored.labels == {"hotfix"}
        assert stored.mergeable is False
        assert stored.external_conflict
        assert not stored.has_conflicts
        assert stored.status == PRStatus.ASSIGNED
        assert stored.assigned_reviewer == BOB
        assert len(stored.comments) == 1

    def test_round_trips_through_json(self, make_pr):
        pr = make_pr(linked_tickets={"PROJ-1"}, labels={"backend"})
        assert type(pr).model_validate_json(pr.model_dump_json()) == pr


class TestAutomationSettings:
    """Test automation policy validation."""

    def test_defaults(self):
        settings = AutomationSettings()
        assert settings.wait_days == 2
        assert settings.reminder_interval == 24
        assert settings.auto_assign and settings.auto_review and settings.auto_merge

    @pytest.mark.parametrize("field,value", [
        ("wait_days", 0),
        ("wait_days", 8),
        ("reminder_interval", 0),
        ("reminder_interval", 169),
        ("max_active_reviews", 0),
    ])
    def test_out_of_range_values_rejected(self, field, value):
        with pytest.raises(ValidationError):
            AutomationSettings(**{field: value})

    def test_reviewer_pool_deduplicated_in_order(self):
        settings = AutomationSettings(reviewer_pool=["bob", "carol", "bob"])
        assert settings.reviewer_pool == ["bob", "carol"]

    def test_monitor_interval_bounds(self):
        with pytest.raises(ValidationError):
            ConflictMonitorConfig(check_interval=4)
        with pytest.raises(ValidationError):
            ConflictMonitorConfig(check_interval=61)


def test_due_action_is_due():
    assert not DueAction().is_due(NOW)
    assert DueAction(action=ActionType.MERGE, due_at=NOW).is_due(NOW)
    assert not DueAction(action=ActionType.REMIND, due_at=NOW + timedelta(minutes=1)).is_due(NOW)

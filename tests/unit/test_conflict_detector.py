"""
Unit tests for the conflict detector.
"""

import random
from datetime import timedelta

import pytest

from app.models.conflict import ConflictSeverity, ConflictTransition, ConflictType
from app.models.pull_request import Priority
from app.services.conflict_detector import (
    DEFAULT_CANDIDATE_FILES,
    ConflictDetector,
    DeterministicFileSelector,
    RandomFileSelector,
    classify_conflict_file,
)

from tests.unit.factories import NOW, make_pr


@pytest.fixture
def detector() -> ConflictDetector:
    return ConflictDetector()


class TestRiskScoring:
    """Test risk factors and the conflict threshold."""

    def test_two_risk_factors_declare_conflict(self, detector):
        pr = make_pr(files_changed=12, lines_added=600)

        verdict = detector.evaluate(pr, NOW)

        assert verdict.risk_score == 2
        assert verdict.has_conflicts
        assert 1 <= len(verdict.conflict_files) <= 3

    def test_single_risk_factor_is_not_a_conflict(self, detector):
        pr = make_pr(files_changed=12)

        verdict = detector.evaluate(pr, NOW)

        assert verdict.risk_score == 1
        assert not verdict.has_conflicts
        assert verdict.conflict_files == []

    def test_external_flag_alone_declares_conflict(self, detector):
        pr = make_pr()

        verdict = detector.evaluate(pr, NOW, external_conflict=True)

        assert verdict.risk_score == 0
        assert verdict.has_conflicts
        assert verdict.external_conflict

    def test_large_change_into_main(self, detector):
        pr = make_pr(files_changed=12, lines_added=450, target_branch="main")

        verdict = detector.evaluate(pr, NOW)

        assert verdict.risk_score >= 2
        assert verdict.has_conflicts
        assert verdict.conflict_files

    def test_small_bugfix_with_external_conflict(self, detector):
        pr = make_pr(days_old=1, files_changed=3, lines_added=67, source_branch="bugfix/x",
                     target_branch="main", has_conflicts=True)

        verdict = detector.evaluate(pr, NOW)

        assert verdict.risk_score == 1
        assert verdict.has_conflicts

    def test_external_flag_defaults_to_pr_state(self, detector):
        pr = make_pr(has_conflicts=True)
        assert detector.evaluate(pr, NOW).has_conflicts

    def test_hotfix_into_main_is_risky(self, detector):
        pr = make_pr(source_branch="hotfix/login", target_branch="main")
        factors = detector.risk_factors(pr, NOW)

        assert factors["expedited_branch"]
        assert factors["protected_target"]
        assert detector.evaluate(pr, NOW).has_conflicts

    def test_stale_pr_factor(self, detector):
        assert detector.risk_factors(make_pr(days_old=8), NOW)["stale"]
        assert not detector.risk_factors(make_pr(days_old=7), NOW)["stale"]

    def test_real_conflicting_files_win_over_selector(self, detector):
        pr = make_pr()
        verdict = detector.evaluate(pr, NOW, external_conflict=True,
                                    conflicting_files=["README.md", "src/app.py"])

        assert verdict.conflict_files == ["README.md", "src/app.py"]
        assert verdict.details[0].severity == ConflictSeverity.LOW

    def test_conflict_file_count_is_bounded(self):
        detector = ConflictDetector(max_conflict_files=2)
        paths = [f"src/file{i}.py" for i in range(10)]

        verdict = detector.evaluate(make_pr(), NOW, external_conflict=True, conflicting_files=paths)

        assert len(verdict.conflict_files) == 2


class TestFileSelectors:
    """Test candidate file selection."""

    def test_deterministic_selector_is_stable_per_pr(self):
        selector = DeterministicFileSelector()
        pr = make_pr("pr-42")

        first = selector.select(pr, 3)
        second = selector.select(pr, 3)

        assert first == second
        assert 1 <= len(first) <= 3
        assert [d.file for d in first] == list(DEFAULT_CANDIDATE_FILES[:len(first)])

    def test_random_selector_with_seeded_rng(self):
        selector = RandomFileSelector(rng=random.Random(7))
        details = selector.select(make_pr(), 3)

        assert 1 <= len(details) <= 3
        for detail in details:
            assert detail.type in (ConflictType.MERGE, ConflictType.CONTENT)
            assert detail.severity in (ConflictSeverity.HIGH, ConflictSeverity.MEDIUM)

    def test_empty_candidates_rejected(self):
        with pytest.raises(ValueError):
            DeterministicFileSelector(candidates=[])

    @pytest.mark.parametrize("path,conflict_type,severity", [
        ("package.json", ConflictType.STRUCTURAL, ConflictSeverity.HIGH),
        ("docs/guide.md", ConflictType.CONTENT, ConflictSeverity.LOW),
        ("src/components/Card.tsx", ConflictType.MERGE, ConflictSeverity.MEDIUM),
    ])
    def test_classification(self, path, conflict_type, severity):
        detail = classify_conflict_file(path)
        assert detail.type == conflict_type
        assert detail.severity == severity


class TestEdgeTracking:
    """Test rising-edge detection against the verdict cache."""

    def test_sequence_yields_two_onsets(self, detector):
        """Conflict flags F, T, T, F, T produce exactly two new conflicts."""
        pr = make_pr()
        onsets = 0

        for flag in [False, True, True, False, True]:
            check = detector.check(pr, NOW, external_conflict=flag)
            if check.is_new_conflict:
                onsets += 1

        assert onsets == 2

    def test_transitions_reported(self, detector):
        pr = make_pr()

        assert detector.check(pr, NOW, external_conflict=True).transition == ConflictTransition.RISING
        assert detector.check(pr, NOW, external_conflict=True).transition == ConflictTransition.UNCHANGED
        assert detector.check(pr, NOW, external_conflict=False).transition == ConflictTransition.FALLING

    def test_forget_makes_next_conflict_new_again(self, detector):
        pr = make_pr()
        detector.check(pr, NOW, external_conflict=True)

        detector.forget(pr.id)

        assert detector.previous_verdict(pr.id) is None
        assert detector.check(pr, NOW, external_conflict=True).is_new_conflict

    def test_evaluate_does_not_touch_cache(self, detector):
        detector.evaluate(make_pr(), NOW, external_conflict=True)
        assert detector.previous_verdict("pr-1") is None


class TestSummary:
    """Test aggregate statistics."""

    def test_summary_counts_conflicted_prs(self, detector):
        urgent = make_pr("pr-1", days_old=3, priority=Priority.URGENT)
        old = make_pr("pr-2", days_old=5)
        clean = make_pr("pr-3", days_old=9)

        detector.check(urgent, NOW, external_conflict=True, conflicting_files=["a.py", "b.py"])
        detector.check(old, NOW, external_conflict=True, conflicting_files=["c.py"])
        detector.check(clean, NOW, external_conflict=False)

        summary = detector.summarize([urgent, old, clean], NOW)

        assert summary.total_conflicted == 2
        assert summary.total_conflict_files == 3
        assert summary.urgent_conflicted == 1
        assert summary.oldest_conflict_age_days == 5
        assert summary.last_evaluated_at == NOW

    def test_summary_falls_back_to_stored_state(self, detector):
        pr = make_pr(days_old=2, has_conflicts=True, conflict_files=["x.py"])

        summary = detector.summarize([pr], NOW + timedelta(days=1))

        assert summary.total_conflicted == 1
        assert summary.oldest_conflict_age_days == 3
        assert summary.last_evaluated_at is None

    def test_empty_summary(self, detector):
        summary = detector.summarize([], NOW)
        assert summary.total_conflicted == 0
        assert summary.oldest_conflict_age_days == 0

"""
Conflict Detector component.

Estimates merge-conflict likelihood from PR attributes, keeps the last
verdict per PR and reports rising/falling edges so that conflict onset is
notified exactly once.

Risk factors:
1. Many files changed
2. Many lines added
3. Expedited-fix source branch (e.g. ``hotfix/...``)
4. Protected target branch (``main`` / ``master``)
5. PR waiting longer than the staleness threshold

Conflicting file paths come from a real backend when one is available and
from a pluggable ``ConflictFileSelector`` otherwise.
"""

import random
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import PurePosixPath
from typing import Dict, Iterable, List, Optional, Sequence

from app.models.conflict import (
    ConflictCheck,
    ConflictDetail,
    ConflictSeverity,
    ConflictSummary,
    ConflictTransition,
    ConflictType,
    ConflictVerdict,
)
from app.models.pull_request import Priority, PullRequest, utc_now
from app.utils.logging import get_logger

logger = get_logger(__name__)


DEFAULT_CANDIDATE_FILES = (
    "package.json",
    "src/App.tsx",
    "src/index.css",
    "README.md",
    "src/components/shared/Header.tsx",
    "src/utils/constants.ts",
)

STRUCTURAL_FILES = {
    "package.json", "package-lock.json", "yarn.lock", "pyproject.toml",
    "requirements.txt", "poetry.lock", "go.mod", "pom.xml", "build.gradle",
}

LOW_RISK_SUFFIXES = {".md", ".rst", ".txt"}
SOURCE_SUFFIXES = {".ts", ".tsx", ".js", ".jsx", ".py", ".java", ".go", ".cs"}


def classify_conflict_file(path: str) -> ConflictDetail:
    """
    Classify a conflicting file by type and severity from its path.

    Dependency manifests are structural conflicts of high severity,
    documentation is a low severity content conflict, source files are
    medium severity merge conflicts.
    """
    name = PurePosixPath(path).name
    suffix = PurePosixPath(path).suffix.lower()

    if name in STRUCTURAL_FILES:
        conflict_type, severity = ConflictType.STRUCTURAL, ConflictSeverity.HIGH
    elif suffix in LOW_RISK_SUFFIXES:
        conflict_type, severity = ConflictType.CONTENT, ConflictSeverity.LOW
    elif suffix in SOURCE_SUFFIXES:
        conflict_type, severity = ConflictType.MERGE, ConflictSeverity.MEDIUM
    else:
        conflict_type, severity = ConflictType.CONTENT, ConflictSeverity.MEDIUM

    return ConflictDetail(
        file=path,
        type=conflict_type,
        severity=severity,
        description=f"Conflicting changes in {path}",
    )


class ConflictFileSelector(ABC):
    """Chooses which files of a conflicted PR to report when no diff data exists."""

    @abstractmethod
    def select(self, pr: PullRequest, limit: int) -> List[ConflictDetail]:
        """
        Pick at most ``limit`` conflicting files for ``pr``.

        Args:
            pr: Pull request judged to be conflicted
            limit: Maximum number of files to return

        Returns:
            Non-empty list of classified conflict details
        """
        pass


class DeterministicFileSelector(ConflictFileSelector):
    """
    Samples candidate files with a generator seeded from the PR id.

    Re-evaluating the same PR yields the same files, which keeps verdicts
    stable across ticks.
    """

    def __init__(self, candidates: Sequence[str] = DEFAULT_CANDIDATE_FILES):
        if not candidates:
            raise ValueError("At least one candidate file is required")
        self.candidates = list(candidates)

    def select(self, pr: PullRequest, limit: int) -> List[ConflictDetail]:
        rng = random.Random(pr.id)
        count = min(rng.randint(1, max(1, limit)), len(self.candidates))
        return [classify_conflict_file(path) for path in self.candidates[:count]]


class RandomFileSelector(ConflictFileSelector):
    """
    Simulated detection: 1-3 leading candidates with random type and severity.

    Args:
        rng: Random generator; pass a seeded ``random.Random`` for repeatability
        candidates: Candidate file paths
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        candidates: Sequence[str] = DEFAULT_CANDIDATE_FILES
    ):
        if not candidates:
            raise ValueError("At least one candidate file is required")
        self.rng = rng or random.Random()
        self.candidates = list(candidates)

    def select(self, pr: PullRequest, limit: int) -> List[ConflictDetail]:
        count = min(self.rng.randint(1, max(1, limit)), len(self.candidates))
        details = []
        for path in self.candidates[:count]:
            details.append(ConflictDetail(
                file=path,
                type=ConflictType.MERGE if self.rng.random() > 0.5 else ConflictType.CONTENT,
                severity=ConflictSeverity.HIGH if self.rng.random() > 0.7 else ConflictSeverity.MEDIUM,
                description=f"Conflicting changes in {path}",
            ))
        return details


class ConflictDetector:
    """Scores conflict risk and tracks the per-PR verdict cache."""

    def __init__(
        self,
        file_selector: Optional[ConflictFileSelector] = None,
        files_threshold: int = 10,
        lines_threshold: int = 500,
        stale_days: int = 7,
        min_risk_factors: int = 2,
        max_conflict_files: int = 3,
        expedited_markers: Iterable[str] = ("hotfix",),
        protected_branches: Iterable[str] = ("main", "master"),
    ):
        """
        Initialize the detector.

        Args:
            file_selector: Strategy used when no real conflicting files are known
            files_threshold: Files changed above this count is a risk factor
            lines_threshold: Lines added above this count is a risk factor
            stale_days: Days waiting above this count is a risk factor
            min_risk_factors: Risk factors needed to declare a conflict
            max_conflict_files: Upper bound on reported files
            expedited_markers: Source branch substrings marking expedited fixes
            protected_branches: Target branches considered mainline
        """
        self.file_selector = file_selector or DeterministicFileSelector()
        self.files_threshold = files_threshold
        self.lines_threshold = lines_threshold
        self.stale_days = stale_days
        self.min_risk_factors = min_risk_factors
        self.max_conflict_files = max_conflict_files
        self.expedited_markers = tuple(marker.lower() for marker in expedited_markers)
        self.protected_branches = frozenset(protected_branches)

        self._verdicts: Dict[str, ConflictVerdict] = {}

    def risk_factors(self, pr: PullRequest, now: Optional[datetime] = None) -> Dict[str, bool]:
        """Evaluate every boolean risk factor for ``pr``."""
        branch = pr.source_branch.lower()
        return {
            "many_files": pr.files_changed > self.files_threshold,
            "large_addition": pr.lines_added > self.lines_threshold,
            "expedited_branch": any(marker in branch for marker in self.expedited_markers),
            "protected_target": pr.target_branch in self.protected_branches,
            "stale": pr.days_waiting(now) > self.stale_days,
        }

    def evaluate(
        self,
        pr: PullRequest,
        now: Optional[datetime] = None,
        external_conflict: Optional[bool] = None,
        conflicting_files: Optional[List[str]] = None,
    ) -> ConflictVerdict:
        """
        Produce a conflict verdict for ``pr`` without touching the cache.

        Args:
            pr: Pull request snapshot
            now: Evaluation time
            external_conflict: Conflict flag reported by an external system;
                defaults to the PR's own ``has_conflicts``
            conflicting_files: Real conflicting paths, if a backend knows them

        Returns:
            ConflictVerdict
        """
        now = now or utc_now()
        if external_conflict is None:
            external_conflict = pr.has_conflicts

        factors = self.risk_factors(pr, now)
        score = sum(1 for value in factors.values() if value)
        has_conflicts = score >= self.min_risk_factors or bool(external_conflict)

        details: List[ConflictDetail] = []
        if has_conflicts:
            if conflicting_files:
                details = [classify_conflict_file(path) for path in conflicting_files[:self.max_conflict_files]]
            else:
                details = self.file_selector.select(pr, self.max_conflict_files)[:self.max_conflict_files]

        return ConflictVerdict(
            pr_id=pr.id,
            has_conflicts=has_conflicts,
            conflict_files=[detail.file for detail in details],
            details=details,
            risk_score=score,
            risk_factors=factors,
            external_conflict=bool(external_conflict),
            evaluated_at=now,
        )

    def record(self, pr_id: str, verdict: ConflictVerdict) -> ConflictTransition:
        """
        Store ``verdict`` as the latest for ``pr_id`` and report the edge.

        An unknown previous verdict counts as "no conflict".
        """
        previous = self._verdicts.get(pr_id)
        was_conflicted = previous is not None and previous.has_conflicts
        self._verdicts[pr_id] = verdict

        if verdict.has_conflicts and not was_conflicted:
            return ConflictTransition.RISING
        if was_conflicted and not verdict.has_conflicts:
            return ConflictTransition.FALLING
        return ConflictTransition.UNCHANGED

    def check(
        self,
        pr: PullRequest,
        now: Optional[datetime] = None,
        external_conflict: Optional[bool] = None,
        conflicting_files: Optional[List[str]] = None,
    ) -> ConflictCheck:
        """Evaluate ``pr``, record the verdict and return it with its edge."""
        verdict = self.evaluate(pr, now, external_conflict, conflicting_files)
        transition = self.record(pr.id, verdict)

        if transition == ConflictTransition.RISING:
            logger.warning(
                f"Merge conflict detected in PR {pr.id}",
                extra={"pr_id": pr.id, "conflict_files": verdict.conflict_files,
                       "risk_score": verdict.risk_score}
            )
        elif transition == ConflictTransition.FALLING:
            logger.info(f"Merge conflict cleared in PR {pr.id}", extra={"pr_id": pr.id})

        return ConflictCheck(verdict=verdict, transition=transition)

    def previous_verdict(self, pr_id: str) -> Optional[ConflictVerdict]:
        return self._verdicts.get(pr_id)

    def forget(self, pr_id: str) -> None:
        """Drop the cached verdict for a PR that left the collection."""
        self._verdicts.pop(pr_id, None)

    def clear(self) -> None:
        self._verdicts.clear()

    def summarize(self, prs: Iterable[PullRequest], now: Optional[datetime] = None) -> ConflictSummary:
        """
        Aggregate current verdicts across ``prs``.

        PRs without a cached verdict contribute their stored conflict state.
        """
        now = now or utc_now()
        summary = ConflictSummary()

        for pr in prs:
            verdict = self._verdicts.get(pr.id)
            if verdict is not None:
                conflicted, files = verdict.has_conflicts, verdict.conflict_files
                if summary.last_evaluated_at is None or verdict.evaluated_at > summary.last_evaluated_at:
                    summary.last_evaluated_at = verdict.evaluated_at
            else:
                conflicted, files = pr.has_conflicts, pr.conflict_files

            if not conflicted:
                continue

            summary.total_conflicted += 1
            summary.total_conflict_files += len(files)
            if pr.priority == Priority.URGENT:
                summary.urgent_conflicted += 1
            summary.oldest_conflict_age_days = max(summary.oldest_conflict_age_days, pr.days_waiting(now))

        return summary

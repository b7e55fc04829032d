"""Conflict detection data models."""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel


class ConflictSeverity(str, Enum):
    """Severity of a conflicting file."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ConflictType(str, Enum):
    """Nature of a conflict."""

    MERGE = "merge"
    CONTENT = "content"
    STRUCTURAL = "structural"


class ConflictTransition(str, Enum):
    """Change of a PR's conflict flag between two evaluations."""

    RISING = "rising"
    FALLING = "falling"
    UNCHANGED = "unchanged"


class ConflictDetail(BaseModel):
    """A single conflicting file."""

    file: str
    type: ConflictType
    severity: ConflictSeverity
    description: str


class ConflictVerdict(BaseModel):
    """Result of one conflict evaluation for a pull request."""

    pr_id: str
    has_conflicts: bool
    conflict_files: List[str] = []
    details: List[ConflictDetail] = []
    risk_score: int = 0
    risk_factors: Dict[str, bool] = {}
    external_conflict: bool = False
    evaluated_at: datetime


class ConflictCheck(BaseModel):
    """Verdict together with the edge it produced against the cached verdict."""

    verdict: ConflictVerdict
    transition: ConflictTransition

    @property
    def is_new_conflict(self) -> bool:
        return self.transition == ConflictTransition.RISING


class ConflictStatus(BaseModel):
    """Mergeability reported by a real source-control backend."""

    mergeable: bool
    conflicting_files: List[str] = []


class ConflictSummary(BaseModel):
    """Aggregate conflict statistics across pull requests."""

    total_conflicted: int = 0
    total_conflict_files: int = 0
    urgent_conflicted: int = 0
    oldest_conflict_age_days: int = 0
    last_evaluated_at: Optional[datetime] = None

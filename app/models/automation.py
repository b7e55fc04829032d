"""Automation policy and monitor configuration models."""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_validator


class AutomationSettings(BaseModel):
    """Process-wide automation policy read by the evaluator on every tick."""

    model_config = ConfigDict(frozen=True)

    wait_days: int = Field(default=2, ge=1, le=7)
    reminder_interval: int = Field(default=24, ge=1, le=168)
    auto_assign: bool = True
    auto_review: bool = True
    auto_merge: bool = True
    excluded_authors: Set[str] = set()
    reviewer_pool: List[str] = []
    max_active_reviews: Optional[int] = Field(default=None, ge=1)

    @field_validator("reviewer_pool")
    @classmethod
    def _dedupe_pool(cls, value: List[str]) -> List[str]:
        # Pool order is the tie-break order, so keep first occurrences.
        return list(dict.fromkeys(value))


class ConflictMonitorConfig(BaseModel):
    """Settings for the periodic conflict monitor."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    check_interval: int = Field(default=15, ge=5, le=60)
    auto_notify: bool = True


class EngineConfig(BaseModel):
    """Complete configuration snapshot consumed by one evaluation."""

    model_config = ConfigDict(frozen=True)

    automation: AutomationSettings = AutomationSettings()
    conflict_monitor: ConflictMonitorConfig = ConflictMonitorConfig()


class ActionType(str, Enum):
    """Automated action the policy evaluator can schedule."""

    NONE = "none"
    ASSIGN = "assign"
    REMIND = "remind"
    MERGE = "merge"


class DueAction(BaseModel):
    """Next automated action for a pull request."""

    action: ActionType = ActionType.NONE
    due_at: Optional[datetime] = None
    reviewer: Optional[str] = None
    warnings: List[str] = []

    def is_due(self, now: datetime) -> bool:
        return self.action != ActionType.NONE and (self.due_at is None or self.due_at <= now)

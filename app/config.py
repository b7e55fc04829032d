"""
Application configuration management.
"""

from pydantic_settings import BaseSettings
from typing import List, Optional

from app.models.automation import AutomationSettings, ConflictMonitorConfig, EngineConfig


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # PR store (in-memory when unset)
    redis_url: Optional[str] = None

    # Static PR source seed data (JSON list of PR snapshots)
    pr_seed_file: Optional[str] = None

    # Azure DevOps PR source (static source when unset)
    azure_devops_org: Optional[str] = None
    azure_devops_pat: Optional[str] = None
    azure_devops_project: Optional[str] = None
    azure_devops_repository: Optional[str] = None

    # Notifications
    teams_webhook_url: Optional[str] = None
    webhooks_enabled: bool = False
    notification_timeout_seconds: float = 10.0
    toast_buffer_size: int = 100

    # Admin API
    admin_api_key: Optional[str] = None

    # Initial automation policy
    wait_days: int = 2
    reminder_interval_hours: int = 24
    auto_assign: bool = True
    auto_review: bool = True
    auto_merge: bool = True
    reviewer_pool: List[str] = []
    excluded_authors: List[str] = []

    # Conflict monitor
    monitor_enabled: bool = True
    check_interval_minutes: int = 15
    auto_notify: bool = True

    # Application
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = False

    def engine_config(self) -> EngineConfig:
        """Build the initial engine configuration from environment settings."""
        return EngineConfig(
            automation=AutomationSettings(
                wait_days=self.wait_days,
                reminder_interval=self.reminder_interval_hours,
                auto_assign=self.auto_assign,
                auto_review=self.auto_review,
                auto_merge=self.auto_merge,
                reviewer_pool=self.reviewer_pool,
                excluded_authors=set(self.excluded_authors),
            ),
            conflict_monitor=ConflictMonitorConfig(
                enabled=self.monitor_enabled,
                check_interval=self.check_interval_minutes,
                auto_notify=self.auto_notify,
            ),
        )


# Global settings instance
settings = Settings()

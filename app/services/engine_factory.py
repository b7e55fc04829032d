"""
Builds an AutomationEngine from application settings.

- Azure DevOps source when organization, PAT, project and repository are
  all configured; otherwise a static source (optionally seeded from file)
- Redis store when ``redis_url`` is set; otherwise in-memory
- Log and toast sinks always, the Teams webhook sink when enabled
"""

from app.config import Settings
from app.services.automation_engine import AutomationEngine
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.notification_sinks import build_sinks
from app.services.pr_source import AzureDevOpsPRSource, PRSource, StaticPRSource
from app.services.pr_store import InMemoryPRStore, PRStore, RedisPRStore
from app.utils.logging import get_logger

logger = get_logger(__name__)


def build_source(settings: Settings) -> PRSource:
    azure = (
        settings.azure_devops_org,
        settings.azure_devops_pat,
        settings.azure_devops_project,
        settings.azure_devops_repository,
    )
    if all(azure):
        logger.info("Using Azure DevOps PR source")
        return AzureDevOpsPRSource(
            organization_url=f"https://dev.azure.com/{settings.azure_devops_org}",
            personal_access_token=settings.azure_devops_pat,
            project=settings.azure_devops_project,
            repository_id=settings.azure_devops_repository,
        )

    if any(azure):
        logger.warning("Azure DevOps settings incomplete; falling back to the static PR source")

    if settings.pr_seed_file:
        return StaticPRSource.from_json_file(settings.pr_seed_file)
    return StaticPRSource()


def build_store(settings: Settings) -> PRStore:
    if settings.redis_url:
        logger.info("Using Redis PR store")
        return RedisPRStore(settings.redis_url)
    return InMemoryPRStore()


def build_engine(settings: Settings) -> AutomationEngine:
    """Wire an engine from settings. Call ``init`` on the result before use."""
    dispatcher = NotificationDispatcher(
        build_sinks(
            webhooks_enabled=settings.webhooks_enabled,
            teams_webhook_url=settings.teams_webhook_url,
            timeout=settings.notification_timeout_seconds,
            toast_buffer_size=settings.toast_buffer_size,
        ),
        timeout=settings.notification_timeout_seconds,
    )
    return AutomationEngine(
        source=build_source(settings),
        store=build_store(settings),
        dispatcher=dispatcher,
    )

"""Business logic services package."""

from app.services.state_machine import (
    PRStateMachine,
    InvalidTransitionError,
    ReviewActionError
)
from app.services.conflict_detector import (
    ConflictDetector,
    ConflictFileSelector,
    DeterministicFileSelector,
    RandomFileSelector
)
from app.services.policy_evaluator import PolicyEvaluator, reviewer_workload
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.notification_sinks import (
    NotificationSink,
    WebhookSink,
    ToastSink,
    LogSink,
    SinkDeliveryError,
    build_sinks
)
from app.services.scheduler import MonitorScheduler
from app.services.pr_source import (
    PRSource,
    StaticPRSource,
    AzureDevOpsPRSource,
    PRSourceError,
    MalformedPRDataError,
    extract_linked_ticket_keys
)
from app.services.pr_store import (
    PRStore,
    InMemoryPRStore,
    RedisPRStore,
    RedisConnectionError
)
from app.services.automation_engine import (
    AutomationEngine,
    EngineNotInitializedError,
    PullRequestNotFoundError
)

__all__ = [
    'PRStateMachine',
    'InvalidTransitionError',
    'ReviewActionError',
    'ConflictDetector',
    'ConflictFileSelector',
    'DeterministicFileSelector',
    'RandomFileSelector',
    'PolicyEvaluator',
    'reviewer_workload',
    'NotificationDispatcher',
    'NotificationSink',
    'WebhookSink',
    'ToastSink',
    'LogSink',
    'SinkDeliveryError',
    'build_sinks',
    'MonitorScheduler',
    'PRSource',
    'StaticPRSource',
    'AzureDevOpsPRSource',
    'PRSourceError',
    'MalformedPRDataError',
    'extract_linked_ticket_keys',
    'PRStore',
    'InMemoryPRStore',
    'RedisPRStore',
    'RedisConnectionError',
    'AutomationEngine',
    'EngineNotInitializedError',
    'PullRequestNotFoundError'
]

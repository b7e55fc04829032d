"""
Notification sinks.

Each sink delivers a channel-agnostic ``NotificationPayload`` to one
channel: a chat webhook (Office 365 connector card), an in-process toast
buffer, or the structured log.
"""

from abc import ABC, abstractmethod
from collections import deque
from typing import Any, Dict, List, Optional

import httpx

from app.models.api_response import ToastMessage
from app.models.notification import NotificationPayload
from app.models.pull_request import utc_now
from app.utils.logging import get_logger
from app.utils.metrics import track_api_call
from app.utils.resilience import CircuitBreaker, create_webhook_circuit_breaker

logger = get_logger(__name__)


class SinkDeliveryError(Exception):
    """Raised when a sink fails to deliver a payload."""
    pass


class NotificationSink(ABC):
    """A single delivery channel."""

    name: str = "sink"

    @abstractmethod
    async def send(self, payload: NotificationPayload) -> bool:
        """
        Deliver ``payload``.

        Returns:
            True on success, False on a handled failure. Unhandled
            failures may also be raised; the dispatcher isolates both.
        """
        pass

    async def close(self) -> None:
        """Release resources held by the sink."""
        return None


class WebhookSink(NotificationSink):
    """
    Posts a ``MessageCard`` JSON document to a chat webhook (e.g. Teams).

    A circuit breaker rejects deliveries immediately while the endpoint is
    failing repeatedly; there is no retry.
    """

    name = "teams_webhook"

    def __init__(
        self,
        webhook_url: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
        circuit_breaker: Optional[CircuitBreaker] = None
    ):
        self.webhook_url = webhook_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self.circuit_breaker = circuit_breaker or create_webhook_circuit_breaker()

    @staticmethod
    def build_card(payload: NotificationPayload) -> Dict[str, Any]:
        """Render the payload as an Office 365 connector card."""
        card: Dict[str, Any] = {
            "@type": "MessageCard",
            "@context": "http://schema.org/extensions",
            "themeColor": payload.theme_color.lstrip("#"),
            "summary": f"PR {payload.title}: {payload.pr_id}",
            "sections": [{
                "activityTitle": payload.title,
                "activitySubtitle": payload.subtitle,
                "facts": [{"name": name, "value": value} for name, value in payload.facts],
                "markdown": True,
            }],
        }

        if payload.action_url:
            card["potentialAction"] = [{
                "@type": "OpenUri",
                "name": "View PR",
                "targets": [{"os": "default", "uri": payload.action_url}],
            }]

        return card

    async def send(self, payload: NotificationPayload) -> bool:
        card = self.build_card(payload)

        async def _post() -> None:
            async with track_api_call(self.name, self.webhook_url, "POST", logger):
                response = await self._client.post(self.webhook_url, json=card)
                if response.is_error:
                    raise SinkDeliveryError(
                        f"Webhook responded with status {response.status_code}"
                    )

        await self.circuit_breaker.call(_post)
        return True

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class ToastSink(NotificationSink):
    """Keeps the most recent notifications in memory for the UI to poll."""

    name = "toast"

    def __init__(self, max_size: int = 100):
        self._messages: deque = deque(maxlen=max_size)

    async def send(self, payload: NotificationPayload) -> bool:
        self._messages.append(ToastMessage(
            title=payload.title,
            description=payload.subtitle,
            pr_id=payload.pr_id,
            created_at=utc_now(),
        ))
        return True

    def recent(self, limit: Optional[int] = None) -> List[ToastMessage]:
        """Newest first."""
        messages = list(reversed(self._messages))
        return messages[:limit] if limit is not None else messages


class LogSink(NotificationSink):
    """Writes every notification to the structured log."""

    name = "log"

    def __init__(self, logger_name: str = "app.notifications"):
        self._logger = get_logger(logger_name)

    async def send(self, payload: NotificationPayload) -> bool:
        self._logger.info(
            f"Notification: {payload.title}",
            extra={
                "pr_id": payload.pr_id,
                "event": payload.event_type.value,
                "sink": self.name,
                "subtitle": payload.subtitle,
                "facts": dict(payload.facts),
                "recipient": payload.recipient.email if payload.recipient else None,
            }
        )
        return True


def build_sinks(
    webhooks_enabled: bool,
    teams_webhook_url: Optional[str],
    timeout: float = 10.0,
    toast_buffer_size: int = 100
) -> List[NotificationSink]:
    """
    Build the configured sinks.

    The log and toast sinks are always present. An enabled webhook without
    a URL is a configuration error: it is logged and the sink is skipped.
    """
    sinks: List[NotificationSink] = [LogSink(), ToastSink(max_size=toast_buffer_size)]

    if webhooks_enabled:
        if teams_webhook_url:
            sinks.append(WebhookSink(teams_webhook_url, timeout=timeout))
        else:
            logger.warning(
                "Webhook notifications enabled but no webhook URL configured; skipping webhook sink",
                extra={"sink": WebhookSink.name}
            )

    return sinks

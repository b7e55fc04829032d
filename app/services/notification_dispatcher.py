"""
Notification Dispatcher component.

Composes a channel-agnostic payload for each event and attempts delivery
to every configured sink independently. Delivery is best-effort: a sink
failure or timeout is logged, counted and never raised to the caller.
There is no retry and no deduplication here; upstream components decide
whether an event is worth dispatching.
"""

import asyncio
from typing import List, Optional, Sequence

from app.models.notification import (
    DispatchResult,
    NotificationEvent,
    NotificationPayload,
    NotificationType,
)
from app.services.notification_sinks import NotificationSink
from app.utils.logging import get_logger, log_error_with_context

logger = get_logger(__name__)


THEME_COLORS = {
    NotificationType.URGENT_PR: "#FF0000",
    NotificationType.CONFLICT_DETECTED: "#FFA500",
    NotificationType.AUTHOR_NOTIFIED: "#00FF00",
    NotificationType.REVIEWER_ASSIGNED: "#0078D4",
    NotificationType.REVIEW_REMINDER: "#FFD700",
    NotificationType.COMMENTS_ADDRESSED: "#6264A7",
}


class NotificationDispatcher:
    """Fans notification events out to sinks."""

    def __init__(self, sinks: Optional[Sequence[NotificationSink]] = None, timeout: float = 10.0):
        """
        Args:
            sinks: Delivery channels
            timeout: Upper bound in seconds for a single sink delivery
        """
        self.sinks: List[NotificationSink] = list(sinks or [])
        self.timeout = timeout

    def add_sink(self, sink: NotificationSink) -> None:
        self.sinks.append(sink)

    def get_sink(self, name: str) -> Optional[NotificationSink]:
        for sink in self.sinks:
            if sink.name == name:
                return sink
        return None

    def compose(self, event: NotificationEvent) -> NotificationPayload:
        """
        Build the payload for ``event``.

        Args:
            event: Notification event

        Returns:
            NotificationPayload with title, subtitle, facts and link
        """
        pr = event.pr
        reviewer_name = pr.assigned_reviewer.name if pr.assigned_reviewer else "Reviewer"

        if event.type == NotificationType.REVIEWER_ASSIGNED:
            title = "Reviewer Assigned"
            subtitle = f'{reviewer_name} has been assigned to review "{pr.title}"'
        elif event.type == NotificationType.COMMENTS_ADDRESSED:
            title = "Comments Addressed"
            subtitle = (
                f'{event.resolved_count} comment(s) have been addressed in "{pr.title}". Please review.'
            )
        elif event.type == NotificationType.AUTHOR_NOTIFIED:
            action = event.action or "updated"
            title = f"PR {action.capitalize()}"
            subtitle = f'Your PR "{pr.title}" has been {action}'
        elif event.type == NotificationType.REVIEW_REMINDER:
            title = "Review Reminder"
            subtitle = f'Reminder: Please review "{pr.title}"'
        elif event.type == NotificationType.CONFLICT_DETECTED:
            title = "Merge Conflict Detected"
            subtitle = (
                f'Merge conflicts detected in "{pr.title}". '
                f"{len(pr.conflict_files)} files affected."
            )
        elif event.type == NotificationType.URGENT_PR:
            title = "Urgent PR Alert"
            subtitle = f'Urgent PR "{pr.title}" requires immediate attention!'
        else:
            raise ValueError(f"Unhandled notification type: {event.type}")

        facts = [
            ("PR Title", pr.title),
            ("Author", pr.author.name),
            ("Branch", f"{pr.source_branch} → {pr.target_branch}"),
            ("Priority", pr.priority.value.upper()),
        ]
        if pr.assigned_reviewer:
            facts.append(("Reviewer", pr.assigned_reviewer.name))
        if pr.has_conflicts:
            facts.append(("Conflicts", f"{len(pr.conflict_files)} files"))
        if pr.linked_tickets:
            facts.append(("Linked Tickets", ", ".join(sorted(pr.linked_tickets))))

        return NotificationPayload(
            event_type=event.type,
            pr_id=pr.id,
            title=title,
            subtitle=subtitle,
            facts=facts,
            action_url=pr.external_url or f"#/pr/{pr.id}",
            theme_color=THEME_COLORS[event.type],
            recipient=event.recipient,
        )

    async def dispatch(self, event: NotificationEvent) -> DispatchResult:
        """
        Deliver ``event`` to every sink.

        Never raises; failures are reported in the returned result.
        """
        try:
            payload = self.compose(event)
        except Exception as e:
            log_error_with_context(logger, f"Failed to compose {event.type.value} notification", e,
                                   pr_id=event.pr.id, event=event.type.value)
            return DispatchResult(failed=len(self.sinks), errors=[f"compose: {e}"])

        if not self.sinks:
            logger.warning("No notification sinks configured", extra={"event": event.type.value})
            return DispatchResult()

        outcomes = await asyncio.gather(*(self._deliver(sink, payload) for sink in self.sinks))

        result = DispatchResult()
        for error in outcomes:
            if error is None:
                result.delivered += 1
            else:
                result.failed += 1
                result.errors.append(error)

        logger.info(
            f"Dispatched {event.type.value}: {result.delivered}/{len(self.sinks)} sinks delivered",
            extra={"pr_id": payload.pr_id, "event": event.type.value,
                   "delivered": result.delivered, "failed": result.failed}
        )
        return result

    async def _deliver(self, sink: NotificationSink, payload: NotificationPayload) -> Optional[str]:
        """Deliver to one sink; returns an error description or None."""
        sink_logger = logger.with_context(sink=sink.name, pr_id=payload.pr_id, event=payload.event_type.value)
        try:
            delivered = await asyncio.wait_for(sink.send(payload), timeout=self.timeout)
        except asyncio.TimeoutError:
            sink_logger.error(f"Sink {sink.name} timed out after {self.timeout}s")
            return f"{sink.name}: timed out after {self.timeout}s"
        except Exception as e:
            log_error_with_context(sink_logger, f"Sink {sink.name} failed to deliver notification", e)
            return f"{sink.name}: {e}"

        if not delivered:
            sink_logger.warning(f"Sink {sink.name} reported delivery failure")
            return f"{sink.name}: delivery reported failure"
        return None

    async def close(self) -> None:
        """Close every sink, logging failures."""
        for sink in self.sinks:
            try:
                await sink.close()
            except Exception as e:
                log_error_with_context(logger, f"Failed to close sink {sink.name}", e, sink=sink.name)

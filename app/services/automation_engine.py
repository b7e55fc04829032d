"""
Automation engine.

Context object that owns the configuration, the conflict verdict cache,
the scheduler and the collaborators (PR source, PR store, notification
dispatcher). Each tick pulls snapshots from the source, merges them into
the store and, for each PR in order, runs the conflict check, the policy
evaluation, the resulting state transition and its notifications.

User review actions go through the same state machine and emit the same
notifications as automated ones.
"""

import asyncio
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Set

from app.models.api_response import ExecutedAction, PullRequestView, TickReport
from app.models.automation import ActionType, AutomationSettings, ConflictMonitorConfig, DueAction, EngineConfig
from app.models.conflict import ConflictSummary, ConflictTransition, ConflictVerdict
from app.models.notification import NotificationEvent, NotificationType
from app.models.pull_request import Comment, Person, Priority, PullRequest, utc_now
from app.models.transition import ReviewActionResult
from app.services.conflict_detector import ConflictDetector
from app.services.notification_dispatcher import NotificationDispatcher
from app.services.policy_evaluator import ACTION_LABELS, PolicyEvaluator, reviewer_workload
from app.services.pr_source import PRSource, PRSourceError
from app.services.pr_store import PRStore
from app.services.scheduler import MonitorScheduler
from app.services.state_machine import PRStateMachine
from app.utils.logging import get_logger, log_error_with_context
from app.utils.metrics import TickMetrics, emit_metric

logger = get_logger(__name__)


class EngineNotInitializedError(Exception):
    """Raised when the engine is used before ``init``."""
    pass


class PullRequestNotFoundError(Exception):
    """Raised when a user action references an unknown pull request."""
    pass


class AutomationEngine:
    """Runs the automation pipeline over the PR collection."""

    def __init__(
        self,
        source: PRSource,
        store: PRStore,
        dispatcher: NotificationDispatcher,
        detector: Optional[ConflictDetector] = None,
        evaluator: Optional[PolicyEvaluator] = None,
        state_machine: Optional[PRStateMachine] = None,
    ):
        """
        Args:
            source: Where PR snapshots come from
            store: Working collection of PRs
            dispatcher: Notification fan-out
            detector: Conflict detector (default heuristics when omitted)
            evaluator: Automation policy evaluator
            state_machine: PR lifecycle state machine
        """
        self.source = source
        self.store = store
        self.dispatcher = dispatcher
        self.detector = detector or ConflictDetector()
        self.evaluator = evaluator or PolicyEvaluator()
        self.state_machine = state_machine or PRStateMachine()

        self.config: Optional[EngineConfig] = None
        self.scheduler = MonitorScheduler(self._scheduled_tick)

        self._people: Dict[str, Person] = {}
        self._notifications: Set[asyncio.Task] = set()
        self._state_lock = asyncio.Lock()
        self._tick_count = 0
        self.last_report: Optional[TickReport] = None

    # ========== Lifecycle ==========

    @property
    def initialized(self) -> bool:
        return self.config is not None

    async def init(self, config: Optional[EngineConfig] = None) -> None:
        """
        Open the store, restore state and start the monitor if enabled.

        Must be called from within a running event loop.
        """
        self.config = config or EngineConfig()
        await self.store.initialize()

        for pr in await self.store.list_pull_requests():
            self._remember_people(pr)
            self._restore_conflict_state(pr)

        monitor = self.config.conflict_monitor
        if monitor.enabled:
            self.scheduler.start(monitor.check_interval)
        logger.info(
            "Automation engine initialized",
            extra={"monitor_enabled": monitor.enabled, "check_interval": monitor.check_interval}
        )

    async def reconfigure(self, config: EngineConfig) -> None:
        """
        Replace the configuration.

        A tick already running keeps the configuration it captured at its
        start. The scheduler is restarted only if the monitor interval or
        enabled flag changed.
        """
        self._require_initialized()
        previous = self.config.conflict_monitor
        self.config = config
        monitor = config.conflict_monitor

        if not monitor.enabled:
            self.scheduler.stop()
        elif not self.scheduler.running or monitor.check_interval != previous.check_interval:
            self.scheduler.start(monitor.check_interval)

        logger.info("Automation engine reconfigured", extra={"config": config.model_dump(mode="json")})

    async def update_automation(self, automation: AutomationSettings) -> EngineConfig:
        self._require_initialized()
        await self.reconfigure(self.config.model_copy(update={"automation": automation}))
        return self.config

    async def update_conflict_monitor(self, conflict_monitor: ConflictMonitorConfig) -> EngineConfig:
        self._require_initialized()
        await self.reconfigure(self.config.model_copy(update={"conflict_monitor": conflict_monitor}))
        return self.config

    async def shutdown(self) -> None:
        """Stop the monitor, drain notifications and release collaborators."""
        self.scheduler.stop()
        await self.scheduler.wait_stopped()
        await self.wait_for_notifications()
        await self.dispatcher.close()
        await self.source.close()
        await self.store.close()
        logger.info("Automation engine shut down")

    def _require_initialized(self) -> None:
        if self.config is None:
            raise EngineNotInitializedError("Automation engine not initialized. Call init() first.")

    # ========== Tick pipeline ==========

    async def _scheduled_tick(self) -> TickReport:
        return await self.tick()

    async def tick(self, now: Optional[datetime] = None) -> TickReport:
        """
        Run one evaluation pass over every PR.

        Ticks are serialized with each other and with user review actions;
        a manual tick waits for a scheduled one in progress. A failure on one PR is recorded in the report and does
        not stop the others.
        """
        self._require_initialized()
        async with self._state_lock:
            return await self._run_tick(now or utc_now())

    async def _run_tick(self, now: datetime) -> TickReport:
        config = self.config
        self._tick_count += 1
        tick_id = f"tick-{self._tick_count}"
        tick_logger = logger.with_context(tick_id=tick_id)

        metrics = TickMetrics(tick_id)
        metrics.start()
        report = TickReport(started_at=now)

        try:
            prs = await self._sync_from_source(report, tick_logger)
        except Exception as e:
            metrics.complete(status="failed", error_message=str(e))
            raise

        workload = reviewer_workload(prs)

        for pr in prs:
            if not pr.is_active():
                self.detector.forget(pr.id)
                continue
            try:
                await self._process(pr, config, now, workload, report, metrics)
                await self.store.save_pull_request(pr)
                report.prs_evaluated += 1
                metrics.record_evaluated()
            except Exception as e:
                report.skipped[pr.id] = str(e)
                metrics.record_skipped()
                log_error_with_context(tick_logger, f"Failed to process PR {pr.id}", e, pr_id=pr.id)

        report.finished_at = utc_now()
        metrics.complete()
        emit_metric("engine.tick.prs_evaluated", report.prs_evaluated, tick_id=tick_id)
        self.last_report = report
        return report

    async def _sync_from_source(self, report: TickReport, tick_logger) -> List[PullRequest]:
        """Merge fresh snapshots into the stored collection."""
        stored = {pr.id: pr for pr in await self.store.list_pull_requests()}

        try:
            snapshots = await self.source.list_pull_requests()
        except PRSourceError as e:
            tick_logger.warning(f"PR source unavailable, evaluating stored PRs only: {e}")
            report.warnings.append(f"PR source unavailable: {e}")
            return list(stored.values())

        for snapshot in snapshots:
            existing = stored.get(snapshot.id)
            if existing is None:
                stored[snapshot.id] = snapshot
            else:
                existing.refresh_from(snapshot)
            self._remember_people(snapshot)

        return list(stored.values())

    async def _process(
        self,
        pr: PullRequest,
        config: EngineConfig,
        now: datetime,
        workload: Counter,
        report: TickReport,
        metrics: TickMetrics,
    ) -> None:
        # Conflict check
        status = await self.source.fetch_conflict_status(pr)
        if status is not None:
            external_conflict = not status.mergeable or pr.external_conflict
            conflicting_files = status.conflicting_files or None
        else:
            external_conflict = pr.mergeable is False or pr.external_conflict
            conflicting_files = None

        check = self.detector.check(pr, now, external_conflict=external_conflict,
                                    conflicting_files=conflicting_files)
        pr.has_conflicts = check.verdict.has_conflicts
        pr.conflict_files = list(check.verdict.conflict_files)

        if check.is_new_conflict:
            report.new_conflicts.append(pr.id)
            metrics.record_conflict_onset()
            if config.conflict_monitor.auto_notify:
                self._notify(NotificationType.CONFLICT_DETECTED, pr, recipient=pr.author,
                             report=report, metrics=metrics)
        elif check.transition == ConflictTransition.FALLING:
            report.resolved_conflicts.append(pr.id)

        # Policy evaluation and execution
        due = self.evaluator.next_action(pr, config.automation, now, workload)
        for warning in due.warnings:
            report.warnings.append(f"{pr.id}: {warning}")

        if due.is_due(now):
            self._execute(pr, due, now, workload, report, metrics)

        scheduled = self.evaluator.upcoming(pr, config.automation, now)
        pr.next_action_due = scheduled.due_at
        if scheduled.action != ActionType.NONE:
            pr.next_action = ACTION_LABELS[scheduled.action]

        # Urgent alert, once per PR while it stays urgent
        if pr.priority == Priority.URGENT and pr.is_active():
            if pr.urgent_notified_at is None:
                pr.urgent_notified_at = now
                self._notify(NotificationType.URGENT_PR, pr, report=report, metrics=metrics)
        else:
            pr.urgent_notified_at = None

    def _execute(
        self,
        pr: PullRequest,
        due: DueAction,
        now: datetime,
        workload: Counter,
        report: TickReport,
        metrics: TickMetrics,
    ) -> None:
        """Carry out a due action and record it so it does not fire again."""
        if due.action == ActionType.ASSIGN:
            reviewer = self.resolve_person(due.reviewer)
            self.state_machine.assign_reviewer(pr, reviewer, now)
            workload[reviewer.id] += 1
            self._notify(NotificationType.REVIEWER_ASSIGNED, pr, recipient=reviewer,
                         report=report, metrics=metrics)

        elif due.action == ActionType.REMIND:
            pr.last_reminded_at = now
            if pr.assigned_reviewer is None:
                logger.warning(f"Reminder due for PR {pr.id} without an assigned reviewer",
                               extra={"pr_id": pr.id, "action": due.action.value})
            self._notify(NotificationType.REVIEW_REMINDER, pr, recipient=pr.assigned_reviewer,
                         report=report, metrics=metrics)

        elif due.action == ActionType.MERGE:
            self.state_machine.merge(pr, now)
            if pr.assigned_reviewer is not None and workload[pr.assigned_reviewer.id] > 0:
                workload[pr.assigned_reviewer.id] -= 1
            self._notify(NotificationType.AUTHOR_NOTIFIED, pr, recipient=pr.author, action="merged",
                         report=report, metrics=metrics)

        report.actions.append(ExecutedAction(pr_id=pr.id, action=due.action.value, reviewer=due.reviewer))
        metrics.record_action(due.action.value)
        logger.info(f"Executed {due.action.value} for PR {pr.id}",
                    extra={"pr_id": pr.id, "action": due.action.value, "reviewer": due.reviewer})

    # ========== Notifications ==========

    def _notify(
        self,
        event_type: NotificationType,
        pr: PullRequest,
        recipient: Optional[Person] = None,
        action: Optional[str] = None,
        resolved_count: int = 0,
        report: Optional[TickReport] = None,
        metrics: Optional[TickMetrics] = None,
    ) -> None:
        """Dispatch in the background; the PR state is already committed."""
        event = NotificationEvent(
            type=event_type,
            pr=pr.model_copy(deep=True),
            recipient=recipient,
            action=action,
            resolved_count=resolved_count,
        )
        task = asyncio.create_task(self.dispatcher.dispatch(event))
        self._notifications.add(task)
        task.add_done_callback(self._notifications.discard)

        if report is not None:
            report.notifications_scheduled += 1
        if metrics is not None:
            metrics.record_notification()

    async def wait_for_notifications(self) -> None:
        """Wait until every notification scheduled so far has been attempted."""
        while self._notifications:
            await asyncio.gather(*list(self._notifications), return_exceptions=True)

    @property
    def pending_notifications(self) -> int:
        return len(self._notifications)

    # ========== User review actions ==========

    async def _load(self, pr_id: str) -> PullRequest:
        pr = await self.store.get_pull_request(pr_id)
        if pr is None:
            raise PullRequestNotFoundError(f"Pull request {pr_id} not found")
        return pr

    async def add_comment(self, pr_id: str, author_id: str, text: str,
                          now: Optional[datetime] = None) -> ReviewActionResult:
        """Add a comment and remind the assigned reviewer."""
        async with self._state_lock:
            pr = await self._load(pr_id)
            result = self.state_machine.add_comment(pr, self.resolve_person(author_id), text, now)
            await self.store.save_pull_request(pr)

        if pr.assigned_reviewer is not None:
            self._notify(NotificationType.REVIEW_REMINDER, pr, recipient=pr.assigned_reviewer)
        return result

    async def reply_to_comment(self, pr_id: str, comment_id: str, author_id: str, text: str,
                               now: Optional[datetime] = None) -> ReviewActionResult:
        async with self._state_lock:
            pr = await self._load(pr_id)
            result = self.state_machine.reply_to_comment(pr, comment_id, self.resolve_person(author_id), text, now)
            await self.store.save_pull_request(pr)
        return result

    async def resolve_comment(self, pr_id: str, comment_id: str,
                              now: Optional[datetime] = None) -> ReviewActionResult:
        """Resolve a comment; tells the reviewer once every comment is addressed."""
        async with self._state_lock:
            pr = await self._load(pr_id)
            result = self.state_machine.resolve_comment(pr, comment_id, now)
            await self.store.save_pull_request(pr)

        resolved = sum(1 for comment in pr.comments if comment.resolved)
        if pr.unresolved_comment_count() == 0 and pr.assigned_reviewer is not None and resolved:
            self._notify(NotificationType.COMMENTS_ADDRESSED, pr, recipient=pr.assigned_reviewer,
                         resolved_count=resolved)
        return result

    async def assign_reviewer(self, pr_id: str, reviewer_id: str,
                              now: Optional[datetime] = None) -> ReviewActionResult:
        reviewer = self.resolve_person(reviewer_id)
        async with self._state_lock:
            pr = await self._load(pr_id)
            result = self.state_machine.assign_reviewer(pr, reviewer, now)
            await self.store.save_pull_request(pr)
        self._notify(NotificationType.REVIEWER_ASSIGNED, pr, recipient=reviewer)
        return result

    async def approve(self, pr_id: str, now: Optional[datetime] = None) -> ReviewActionResult:
        async with self._state_lock:
            pr = await self._load(pr_id)
            result = self.state_machine.approve(pr, now)
            await self.store.save_pull_request(pr)
        self._notify(NotificationType.AUTHOR_NOTIFIED, pr, recipient=pr.author, action="approved")
        return result

    async def merge(self, pr_id: str, now: Optional[datetime] = None) -> ReviewActionResult:
        async with self._state_lock:
            pr = await self._load(pr_id)
            result = self.state_machine.merge(pr, now)
            self.detector.forget(pr.id)
            await self.store.save_pull_request(pr)
        self._notify(NotificationType.AUTHOR_NOTIFIED, pr, recipient=pr.author, action="merged")
        return result

    # ========== Queries ==========

    async def get_pull_request(self, pr_id: str) -> PullRequest:
        return await self._load(pr_id)

    async def list_views(self, now: Optional[datetime] = None) -> List[PullRequestView]:
        """PRs with their derived fields and the action due right now."""
        self._require_initialized()
        now = now or utc_now()
        prs = await self.store.list_pull_requests()
        workload = reviewer_workload(prs)
        return [self.view(pr, now, workload) for pr in prs]

    def view(self, pr: PullRequest, now: Optional[datetime] = None,
             workload: Optional[Counter] = None) -> PullRequestView:
        self._require_initialized()
        now = now or utc_now()
        return PullRequestView(
            pull_request=pr,
            days_waiting=pr.days_waiting(now),
            unresolved_comments=pr.unresolved_comment_count(),
            next_action=self.evaluator.next_action(pr, self.config.automation, now, workload),
        )

    async def conflict_summary(self, now: Optional[datetime] = None) -> ConflictSummary:
        prs = [pr for pr in await self.store.list_pull_requests() if pr.is_active()]
        return self.detector.summarize(prs, now)

    # ========== People ==========

    def register_person(self, person: Person) -> None:
        self._people[person.id] = person

    def resolve_person(self, person_id: str) -> Person:
        """Known identity for ``person_id``, or a placeholder named after the id."""
        person = self._people.get(person_id)
        if person is None:
            person = Person(id=person_id, name=person_id, email="")
        return person

    def _remember_people(self, pr: PullRequest) -> None:
        self.register_person(pr.author)
        if pr.assigned_reviewer is not None:
            self.register_person(pr.assigned_reviewer)
        pending: List[Comment] = list(pr.comments)
        while pending:
            comment = pending.pop()
            self._people.setdefault(comment.author.id, comment.author)
            pending.extend(comment.replies)

    def _restore_conflict_state(self, pr: PullRequest) -> None:
        """Seed the verdict cache so stored conflicts are not announced again."""
        if pr.is_active() and pr.has_conflicts:
            self.detector.record(pr.id, ConflictVerdict(
                pr_id=pr.id,
                has_conflicts=True,
                conflict_files=list(pr.conflict_files),
                evaluated_at=pr.updated_at,
            ))

"""
PR Source component.

Supplies pull request snapshots to the engine and, for backends that can
compute it, real mergeability. Two sources are provided:

- StaticPRSource: in-memory snapshots (seed data, tests, demos)
- AzureDevOpsPRSource: active pull requests of an Azure DevOps repository
"""

import asyncio
import json
import re
from abc import ABC, abstractmethod
from datetime import timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from azure.devops.connection import Connection
from azure.devops.v7_1.git import GitClient
from azure.devops.v7_1.git.models import GitPullRequest, GitPullRequestSearchCriteria
from msrest.authentication import BasicAuthentication
from pydantic import ValidationError

from app.models.conflict import ConflictStatus
from app.models.pull_request import Person, Priority, PRStatus, PullRequest
from app.utils.logging import get_logger
from app.utils.resilience import CircuitBreaker, create_azure_devops_circuit_breaker, retry_with_backoff

logger = get_logger(__name__)


TICKET_KEY_PATTERN = re.compile(r"[A-Z]+-\d+")


class PRSourceError(Exception):
    """Raised when the PR source cannot be read at all."""
    pass


class MalformedPRDataError(PRSourceError):
    """Raised when a single pull request from the source cannot be parsed."""
    pass


def extract_linked_ticket_keys(text: str) -> Set[str]:
    """Extract tracker keys such as ``PROJ-123`` from free text."""
    return set(TICKET_KEY_PATTERN.findall(text or ""))


def priority_from_labels(labels: Iterable[str]) -> Priority:
    """Derive priority from label names."""
    lowered = [label.lower() for label in labels]
    if any("urgent" in label or "critical" in label or "hotfix" in label for label in lowered):
        return Priority.URGENT
    if any("high" in label for label in lowered):
        return Priority.HIGH
    if any("low" in label for label in lowered):
        return Priority.LOW
    return Priority.MEDIUM


def parse_snapshot(raw: Union[PullRequest, Dict[str, Any]]) -> PullRequest:
    """
    Validate a raw snapshot and fill in linked tickets.

    A conflict flag supplied by the source becomes ``external_conflict``;
    ``has_conflicts`` is owned by the engine from then on. A ``commented``
    snapshot without unresolved comments is downgraded to ``reviewing``.

    Raises:
        MalformedPRDataError: If the payload does not describe a PR
    """
    if isinstance(raw, PullRequest):
        pr = raw.model_copy(deep=True)
    else:
        try:
            pr = PullRequest.model_validate(raw)
        except ValidationError as e:
            pr_id = raw.get("id", "<unknown>") if isinstance(raw, dict) else "<unknown>"
            raise MalformedPRDataError(f"Malformed pull request {pr_id}: {e.error_count()} validation error(s)") from e

    pr.external_conflict = pr.external_conflict or pr.has_conflicts

    if pr.status == PRStatus.COMMENTED and pr.unresolved_comment_count() == 0:
        logger.warning(f"PR {pr.id} is commented without unresolved comments; treating it as reviewing",
                       extra={"pr_id": pr.id})
        pr.status = PRStatus.REVIEWING

    pr.linked_tickets = pr.linked_tickets | extract_linked_ticket_keys(f"{pr.title} {pr.description}")
    return pr


class PRSource(ABC):
    """Where pull request snapshots come from."""

    @abstractmethod
    async def list_pull_requests(self) -> List[PullRequest]:
        """
        Return current snapshots. Malformed entries are skipped.

        Raises:
            PRSourceError: If the source as a whole is unavailable
        """
        pass

    async def fetch_conflict_status(self, pr: PullRequest) -> Optional[ConflictStatus]:
        """Real mergeability for ``pr``, or None when the backend cannot tell."""
        return None

    async def close(self) -> None:
        return None


class StaticPRSource(PRSource):
    """In-memory source holding raw snapshots or PullRequest objects."""

    def __init__(self, snapshots: Optional[Iterable[Union[PullRequest, Dict[str, Any]]]] = None):
        self._snapshots: List[Union[PullRequest, Dict[str, Any]]] = list(snapshots or [])

    @classmethod
    def from_json_file(cls, path: str) -> "StaticPRSource":
        """
        Load snapshots from a JSON file holding a list of PR objects.

        Raises:
            PRSourceError: If the file cannot be read or is not a JSON list
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PRSourceError(f"Failed to load PR seed file {path}: {e}") from e

        if not isinstance(data, list):
            raise PRSourceError(f"PR seed file {path} must contain a JSON list")

        logger.info(f"Loaded {len(data)} PR snapshots from {path}")
        return cls(data)

    def add(self, snapshot: Union[PullRequest, Dict[str, Any]]) -> None:
        self._snapshots.append(snapshot)

    def clear(self) -> None:
        self._snapshots.clear()

    async def list_pull_requests(self) -> List[PullRequest]:
        prs = []
        for raw in self._snapshots:
            try:
                prs.append(parse_snapshot(raw))
            except MalformedPRDataError as e:
                logger.warning(f"Skipping malformed pull request: {e}")
        return prs


class AzureDevOpsPRSource(PRSource):
    """
    Reads active pull requests of one repository from Azure DevOps.

    SDK calls are synchronous and run in a worker thread, guarded by a
    circuit breaker and retried with backoff.
    """

    def __init__(
        self,
        organization_url: str,
        personal_access_token: str,
        project: str,
        repository_id: str,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        """
        Initialize the source with an Azure DevOps connection.

        Args:
            organization_url: Azure DevOps organization URL
            personal_access_token: PAT for authentication
            project: Project name or id
            repository_id: Repository name or id
            circuit_breaker: Optional CircuitBreaker instance
        """
        self.organization_url = organization_url.rstrip("/")
        self.project = project
        self.repository_id = repository_id
        self.circuit_breaker = circuit_breaker or create_azure_devops_circuit_breaker()

        credentials = BasicAuthentication('', personal_access_token)
        self.connection = Connection(base_url=self.organization_url, creds=credentials)
        self.git_client: GitClient = self.connection.clients.get_git_client()

        logger.info(f"AzureDevOpsPRSource initialized for {self.organization_url}/{project}/{repository_id}")

    async def _call(self, func, *args, **kwargs):
        async def _execute():
            return await asyncio.to_thread(func, *args, **kwargs)
        return await self.circuit_breaker.call(_execute)

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=30.0)
    async def _fetch_active(self) -> List[GitPullRequest]:
        criteria = GitPullRequestSearchCriteria(status="active")
        return await self._call(
            self.git_client.get_pull_requests,
            self.repository_id,
            criteria,
            project=self.project,
        )

    async def list_pull_requests(self) -> List[PullRequest]:
        try:
            raw_prs = await self._fetch_active()
        except Exception as e:
            raise PRSourceError(f"Failed to list pull requests: {e}") from e

        prs = []
        for raw in raw_prs or []:
            try:
                prs.append(self._convert(raw))
            except MalformedPRDataError as e:
                logger.warning(f"Skipping malformed pull request: {e}")
        logger.info(f"Fetched {len(prs)} active pull requests from Azure DevOps")
        return prs

    @retry_with_backoff(max_retries=3, base_delay=1.0, max_delay=30.0)
    async def _fetch_conflicts(self, pull_request_id: int) -> list:
        return await self._call(
            self.git_client.get_pull_request_conflicts,
            self.repository_id,
            pull_request_id,
            project=self.project,
        )

    async def fetch_conflict_status(self, pr: PullRequest) -> Optional[ConflictStatus]:
        """
        Report mergeability from the snapshot's merge status and, when
        conflicted, the conflicting paths. Returns None if unavailable.
        """
        if pr.external_number is None or pr.mergeable is None:
            return None
        if pr.mergeable:
            return ConflictStatus(mergeable=True)

        try:
            conflicts = await self._fetch_conflicts(pr.external_number)
        except Exception as e:
            logger.warning(f"Could not fetch conflicts for PR {pr.id}: {e}", extra={"pr_id": pr.id})
            return ConflictStatus(mergeable=False)

        paths = [c.conflict_path.lstrip("/") for c in conflicts or [] if getattr(c, "conflict_path", None)]
        return ConflictStatus(mergeable=False, conflicting_files=paths)

    def _web_url(self, pull_request_id: int) -> str:
        return f"{self.organization_url}/{self.project}/_git/{self.repository_id}/pullrequest/{pull_request_id}"

    @staticmethod
    def _person(identity) -> Person:
        unique_name = getattr(identity, "unique_name", None) or ""
        return Person(
            id=getattr(identity, "id", None) or unique_name or identity.display_name,
            name=identity.display_name,
            email=unique_name if "@" in unique_name else "",
        )

    def _convert(self, raw: GitPullRequest) -> PullRequest:
        """
        Convert an SDK pull request into a snapshot.

        Raises:
            MalformedPRDataError: If required fields are missing
        """
        try:
            pr_number = int(raw.pull_request_id)
            labels = {label.name for label in (raw.labels or []) if getattr(label, "name", None)}
            reviewers = [r for r in (raw.reviewers or []) if getattr(r, "display_name", None)]
            created_at = raw.creation_date
            if created_at.tzinfo is None:
                created_at = created_at.replace(tzinfo=timezone.utc)

            if raw.is_draft or not reviewers:
                status = PRStatus.WAITING
            else:
                status = PRStatus.ASSIGNED

            return parse_snapshot(PullRequest(
                id=f"ado-{pr_number}",
                title=raw.title,
                description=raw.description or "",
                author=self._person(raw.created_by),
                assigned_reviewer=self._person(reviewers[0]) if reviewers else None,
                status=status,
                priority=priority_from_labels(labels),
                created_at=created_at,
                updated_at=created_at,
                source_branch=raw.source_ref_name.replace("refs/heads/", ""),
                target_branch=raw.target_ref_name.replace("refs/heads/", ""),
                mergeable=None if raw.merge_status in (None, "notSet", "queued") else raw.merge_status != "conflicts",
                external_number=pr_number,
                external_url=self._web_url(pr_number),
                labels=labels,
                assigned_at=created_at if reviewers else None,
            ))
        except (AttributeError, TypeError, ValueError) as e:
            raise MalformedPRDataError(
                f"Malformed pull request {getattr(raw, 'pull_request_id', '<unknown>')}: {e}"
            ) from e

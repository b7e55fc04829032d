"""
PR Store component.

Holds the engine's working collection of pull requests:

- InMemoryPRStore: process-local dictionary
- RedisPRStore: one JSON document per PR (hash field) plus an id set,
  with connection pooling and retry on transient Redis errors
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool
from redis.exceptions import RedisError, ConnectionError, TimeoutError

from app.models.pull_request import PullRequest


logger = logging.getLogger(__name__)


class RedisConnectionError(Exception):
    """Raised when Redis connection fails after retries."""
    pass


class PRStore(ABC):
    """Working collection of pull requests."""

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    @abstractmethod
    async def list_pull_requests(self) -> List[PullRequest]:
        pass

    @abstractmethod
    async def get_pull_request(self, pr_id: str) -> Optional[PullRequest]:
        pass

    @abstractmethod
    async def save_pull_request(self, pr: PullRequest) -> None:
        pass

    @abstractmethod
    async def delete_pull_request(self, pr_id: str) -> None:
        pass


class InMemoryPRStore(PRStore):
    """Dictionary-backed store; insertion order is preserved."""

    def __init__(self):
        self._prs: Dict[str, PullRequest] = {}

    async def list_pull_requests(self) -> List[PullRequest]:
        return list(self._prs.values())

    async def get_pull_request(self, pr_id: str) -> Optional[PullRequest]:
        return self._prs.get(pr_id)

    async def save_pull_request(self, pr: PullRequest) -> None:
        self._prs[pr.id] = pr

    async def delete_pull_request(self, pr_id: str) -> None:
        self._prs.pop(pr_id, None)


class RedisPRStore(PRStore):
    """
    Redis-backed store with connection pooling and retry logic.

    Layout:
    - ``pr:{pr_id}:snapshot`` hash, field ``data`` holds the PR as JSON
    - ``pull_requests`` set of known PR ids
    """

    PR_KEY_PREFIX = "pr:{pr_id}:snapshot"
    PR_INDEX_KEY = "pull_requests"

    def __init__(
        self,
        redis_url: Optional[str] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        connection_timeout: int = 5
    ):
        """
        Initialize Redis store.

        Args:
            redis_url: Redis connection URL. If None, will load from settings.
            max_retries: Maximum number of retry attempts for transient errors
            retry_delay: Base delay between retries (exponential backoff)
            connection_timeout: Connection timeout in seconds
        """
        self._redis_url = redis_url
        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[redis.Redis] = None
        self._max_retries = max_retries
        self._retry_delay = retry_delay
        self._connection_timeout = connection_timeout

    async def initialize(self) -> None:
        """
        Initialize Redis connection pool.

        Raises:
            RedisConnectionError: If connection fails
        """
        try:
            if not self._redis_url:
                from app.config import settings
                self._redis_url = settings.redis_url

            self._pool = ConnectionPool.from_url(
                self._redis_url,
                max_connections=10,
                decode_responses=True,
                socket_timeout=self._connection_timeout,
                socket_connect_timeout=self._connection_timeout
            )
            self._client = redis.Redis(connection_pool=self._pool)
            await self._client.ping()

            logger.info("Redis connection pool initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Redis connection pool: {e}")
            raise RedisConnectionError(f"Failed to connect to Redis: {e}")

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()

        if self._pool:
            await self._pool.disconnect()

        logger.info("Redis connection pool closed")

    @asynccontextmanager
    async def _get_client(self):
        """
        Yields:
            redis.Redis: Redis client instance

        Raises:
            RuntimeError: If client not initialized
        """
        if not self._client:
            raise RuntimeError("Redis store not initialized. Call initialize() first.")

        yield self._client

    async def _retry_operation(self, operation, *args, **kwargs):
        """
        Execute Redis operation with retry logic.

        Raises:
            RedisConnectionError: If operation fails after all retries
        """
        last_error = None

        for attempt in range(self._max_retries):
            try:
                return await operation(*args, **kwargs)

            except (ConnectionError, TimeoutError) as e:
                last_error = e
                if attempt < self._max_retries - 1:
                    delay = self._retry_delay * (2 ** attempt)
                    logger.warning(
                        f"Redis operation failed (attempt {attempt + 1}/{self._max_retries}), "
                        f"retrying in {delay}s: {e}"
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(f"Redis operation failed after {self._max_retries} attempts: {e}")

            except RedisError as e:
                logger.error(f"Redis operation failed with non-transient error: {e}")
                raise

        raise RedisConnectionError(f"Redis operation failed after {self._max_retries} retries: {last_error}")

    def _pr_key(self, pr_id: str) -> str:
        return self.PR_KEY_PREFIX.format(pr_id=pr_id)

    @staticmethod
    def _decode(pr_id: str, pr_json: Optional[str]) -> Optional[PullRequest]:
        if not pr_json:
            return None
        try:
            return PullRequest.model_validate_json(pr_json)
        except ValueError as e:
            logger.warning(f"Skipping unreadable stored PR {pr_id}: {e}")
            return None

    async def list_pull_requests(self) -> List[PullRequest]:
        """
        Return every stored PR, ordered by creation time.

        Stored documents that fail validation are skipped.
        """
        async def _list():
            async with self._get_client() as client:
                pr_ids = sorted(await client.smembers(self.PR_INDEX_KEY))
                prs = []
                for pr_id in pr_ids:
                    pr = self._decode(pr_id, await client.hget(self._pr_key(pr_id), "data"))
                    if pr is not None:
                        prs.append(pr)
                return sorted(prs, key=lambda pr: pr.created_at)

        return await self._retry_operation(_list)

    async def get_pull_request(self, pr_id: str) -> Optional[PullRequest]:
        async def _get():
            async with self._get_client() as client:
                return self._decode(pr_id, await client.hget(self._pr_key(pr_id), "data"))

        return await self._retry_operation(_get)

    async def save_pull_request(self, pr: PullRequest) -> None:
        async def _save():
            async with self._get_client() as client:
                async with client.pipeline(transaction=True) as pipe:
                    pipe.hset(self._pr_key(pr.id), "data", pr.model_dump_json())
                    pipe.sadd(self.PR_INDEX_KEY, pr.id)
                    await pipe.execute()
                logger.debug(f"Saved PR {pr.id}")

        await self._retry_operation(_save)

    async def delete_pull_request(self, pr_id: str) -> None:
        async def _delete():
            async with self._get_client() as client:
                async with client.pipeline(transaction=True) as pipe:
                    pipe.delete(self._pr_key(pr_id))
                    pipe.srem(self.PR_INDEX_KEY, pr_id)
                    await pipe.execute()
                logger.debug(f"Deleted PR {pr_id}")

        await self._retry_operation(_delete)

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            async with self._get_client() as client:
                return bool(await client.ping())
        except Exception as e:
            logger.error(f"Redis ping failed: {e}")
            return False

"""
Handle for a claimed job.

A JobHandle owns one database connection and the advisory lock on one
job for as long as the job is being worked. Whatever happens, the lock
is given back when the handle is resolved or released; if the unlock
itself fails the connection is invalidated, which ends the session and
with it the lock.
"""

import logging
from datetime import datetime, timedelta
from types import TracebackType

from sqlalchemy.ext.asyncio import AsyncConnection

from pgque.backoff import BackoffPolicy
from pgque.constants import MAX_BACKOFF, MIN_BACKOFF
from pgque.db.locks import AdvisoryLockManager
from pgque.db.models import Job
from pgque.db.repository import JobRepository
from pgque.exceptions import JobAlreadyResolvedError

logger = logging.getLogger(__name__)


class JobHandle:
    """
    An exclusively owned, locked job.

    Exactly one of done() or error() must be called. Using the handle as
    an async context manager releases the job untouched if neither was.
    """

    def __init__(
        self,
        job: Job,
        connection: AsyncConnection,
        backoff: BackoffPolicy,
    ):
        """
        Initialize the handle.

        Args:
            job: The job, as re-fetched after locking.
            connection: The connection whose session holds the job's lock.
            backoff: Policy used to reschedule the job on error().
        """
        self.id: int = job.id
        self.queue: str = job.queue
        self.priority: int = job.priority
        self.run_at: datetime = job.run_at
        self.job_type: str = job.job_type
        self.args: str = job.args
        self.error_count: int = job.error_count
        self.last_error: str | None = job.last_error

        self._conn = connection
        self._repo = JobRepository(connection)
        self._locks = AdvisoryLockManager(connection)
        self._backoff = backoff
        self._resolved = False
        self._released = False

    @property
    def connection(self) -> AsyncConnection:
        """
        The connection holding this job's lock.

        Work functions may use it to make their side effects part of the
        same session; they must leave it outside a transaction.
        """
        return self._conn

    @property
    def released(self) -> bool:
        """Whether the lock has been given back."""
        return self._released

    async def done(self) -> None:
        """
        Delete the job and release its lock.

        Raises:
            JobAlreadyResolvedError: If the handle was already resolved.
            DBAPIError: If the delete failed. The lock is released anyway
                and the job stays claimable.
        """
        self._begin_resolution()
        try:
            deleted = await self._repo.delete_job(self.id)
            await self._conn.commit()
            if not deleted:
                logger.warning("Job was already gone on completion", extra={"job_id": self.id})
            logger.info("Job done", extra={"job_id": self.id, "job_type": self.job_type})
        finally:
            await self.release()

    async def error(self, message: str) -> None:
        """
        Record a failure, reschedule the job with backoff and release its lock.

        Args:
            message: The failure message, stored as last_error.

        Raises:
            JobAlreadyResolvedError: If the handle was already resolved.
            DBAPIError: If the update failed. The lock is released anyway.
        """
        self._begin_resolution()
        try:
            delay = self._next_delay()
            await self._repo.record_failure(self.id, message, delay)
            await self._conn.commit()
            logger.warning(
                "Job failed",
                extra={
                    "job_id": self.id,
                    "job_type": self.job_type,
                    "error_count": self.error_count + 1,
                    "error": message,
                },
            )
        finally:
            await self.release()

    async def release(self) -> None:
        """
        Give the lock back and return the connection.

        Called without done() or error() this abandons the job: the row
        is untouched and another worker may claim it straight away.
        Safe to call more than once.
        """
        if self._released:
            return
        self._released = True

        try:
            if self._conn.in_transaction():
                await self._conn.rollback()
            await self._locks.release(self.id)
            await self._conn.commit()
        except Exception:
            # Ending the session drops every advisory lock it holds
            logger.exception(
                "Failed to release job lock; discarding connection",
                extra={"job_id": self.id},
            )
            await self._conn.invalidate()
        finally:
            await self._conn.close()

    def _begin_resolution(self) -> None:
        if self._resolved or self._released:
            raise JobAlreadyResolvedError(self.id)
        self._resolved = True

    def _next_delay(self) -> timedelta:
        delay = self._backoff(self.error_count + 1)
        if delay < MIN_BACKOFF:
            logger.warning(
                "Backoff policy returned less than the minimum delay",
                extra={"job_id": self.id, "delay_seconds": delay.total_seconds()},
            )
            return MIN_BACKOFF
        if delay > MAX_BACKOFF:
            logger.warning(
                "Backoff policy returned more than the maximum delay",
                extra={"job_id": self.id, "delay_seconds": delay.total_seconds()},
            )
            return MAX_BACKOFF
        return delay

    async def __aenter__(self) -> "JobHandle":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.release()

    def __repr__(self) -> str:
        return (
            f"JobHandle(id={self.id}, type={self.job_type!r}, queue={self.queue!r}, "
            f"errors={self.error_count}, released={self._released})"
        )

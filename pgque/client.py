"""
Queue client: enqueueing jobs and claiming them.

Producers call enqueue(); workers call lock_job() to claim the next
eligible job. All coordination between workers goes through PostgreSQL
advisory locks keyed by job id, so any number of processes on any
number of hosts can share one table.
"""

import logging
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession

from pgque.backoff import BackoffPolicy, PolynomialBackoff
from pgque.config import Settings, get_settings
from pgque.constants import SPAN_ENQUEUE_JOB, SPAN_LOCK_JOB, ClaimResult
from pgque.db.locks import AdvisoryLockManager
from pgque.db.models import Job
from pgque.db.repository import JobRepository
from pgque.exceptions import MissingTypeError
from pgque.handle import JobHandle
from pgque.observability.metrics import get_metrics
from pgque.observability.tracing import get_tracer
from pgque.types.job import NewJob

logger = logging.getLogger(__name__)


def build_job(
    job_type: str,
    priority: int | None = None,
    run_at: datetime | None = None,
    args: str | None = None,
    queue: str | None = None,
) -> NewJob:
    """
    Validate enqueue arguments and apply defaults.

    Args:
        job_type: Name of the work function to run. Must be non-empty.
        priority: Lower runs first. Defaults to 100.
        run_at: Earliest time to run. Defaults to the store's now().
        args: Opaque payload handed to the work function. Defaults to "[]".
        queue: Logical queue name. Defaults to "".

    Returns:
        The validated job.

    Raises:
        MissingTypeError: If job_type is empty.
        pydantic.ValidationError: If another field is invalid.
    """
    if not job_type:
        raise MissingTypeError()

    fields = {
        "priority": priority,
        "run_at": run_at,
        "args": args,
        "queue": queue,
    }
    return NewJob(
        job_type=job_type,
        **{name: value for name, value in fields.items() if value is not None},
    )


class Client:
    """
    Entry point for producers and workers.

    Features:
    - Enqueue in a dedicated transaction or inside the caller's own
    - Claim with pg_try_advisory_lock, skipping jobs locked elsewhere
    - Bounded candidate scan and bounded retries on re-fetch races
    """

    def __init__(
        self,
        engine: AsyncEngine,
        backoff: BackoffPolicy | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize the client.

        Args:
            engine: Engine for the database holding the job table.
            backoff: Default retry policy for claimed jobs. Defaults to
                the polynomial policy configured in settings.
            settings: Settings to use. Defaults to the cached settings.
        """
        settings = settings or get_settings()

        self.engine = engine
        self.backoff: BackoffPolicy = backoff or PolynomialBackoff.from_settings(settings)
        self.scan_limit = settings.claim_scan_limit
        self.max_lock_attempts = settings.claim_max_attempts
        self._metrics = get_metrics()

    async def enqueue(
        self,
        job_type: str,
        *,
        priority: int | None = None,
        run_at: datetime | None = None,
        args: str | None = None,
        queue: str | None = None,
    ) -> None:
        """
        Insert a new job in its own transaction.

        Args:
            job_type: Name of the work function to run. Must be non-empty.
            priority: Lower runs first. Defaults to 100.
            run_at: Earliest time to run. Defaults to now.
            args: Opaque payload handed to the work function. Defaults to "[]".
            queue: Logical queue name. Defaults to "".

        Raises:
            MissingTypeError: If job_type is empty. Nothing is written.
            DBAPIError: If the insert failed.
        """
        new_job = build_job(job_type, priority, run_at, args, queue)

        with get_tracer().start_as_current_span(SPAN_ENQUEUE_JOB) as span:
            span.set_attribute("job_type", new_job.job_type)
            span.set_attribute("queue", new_job.queue)
            async with self.engine.begin() as conn:
                await JobRepository(conn).insert_job(new_job)

        self._metrics.record_job_enqueued(new_job.queue)

    async def enqueue_in_tx(
        self,
        connection: AsyncConnection | AsyncSession,
        job_type: str,
        *,
        priority: int | None = None,
        run_at: datetime | None = None,
        args: str | None = None,
        queue: str | None = None,
    ) -> None:
        """
        Insert a new job as part of the caller's transaction.

        The job becomes visible to workers only when the caller commits,
        and disappears with a rollback.

        Args:
            connection: The caller's connection or session.
            job_type: Name of the work function to run. Must be non-empty.
            priority: Lower runs first. Defaults to 100.
            run_at: Earliest time to run. Defaults to the transaction's now().
            args: Opaque payload handed to the work function. Defaults to "[]".
            queue: Logical queue name. Defaults to "".

        Raises:
            MissingTypeError: If job_type is empty. Nothing is written.
            DBAPIError: If the insert failed.
        """
        new_job = build_job(job_type, priority, run_at, args, queue)
        await JobRepository(connection).insert_job(new_job)

    async def lock_job(
        self,
        queue: str = "",
        *,
        backoff: BackoffPolicy | None = None,
    ) -> JobHandle | None:
        """
        Claim the next eligible job in a queue.

        Jobs are tried in (priority, run_at, id) order; jobs locked by
        other sessions are skipped. After locking, the job is re-read so
        the handle never acts on values another worker has since changed.

        Args:
            queue: The queue to claim from.
            backoff: Retry policy for this job. Defaults to the client's.

        Returns:
            A JobHandle owning the job, or None if nothing is available.

        Raises:
            DBAPIError: If the store failed. Any lock taken during the
                attempt is dropped with the discarded connection.
        """
        with get_tracer().start_as_current_span(SPAN_LOCK_JOB) as span:
            span.set_attribute("queue", queue)
            handle = await self._lock_job(queue, backoff or self.backoff)
            span.set_attribute("found", handle is not None)

        result = ClaimResult.FOUND if handle is not None else ClaimResult.EMPTY
        self._metrics.record_claim(queue, result)
        return handle

    async def report_queue_depth(self, queue: str = "") -> int:
        """
        Count the jobs in a queue and publish the count as a gauge.

        Args:
            queue: The queue to count.

        Returns:
            Number of jobs, eligible or scheduled for later.
        """
        async with self.engine.connect() as conn:
            depth = await JobRepository(conn).count_jobs(queue)
        self._metrics.update_queue_depth(queue, depth)
        return depth

    async def _lock_job(self, queue: str, backoff: BackoffPolicy) -> JobHandle | None:
        conn = await self.engine.connect()
        try:
            job = await self._lock_on(conn, queue)
        except BaseException:
            # Discarding the session drops any lock taken during the attempt
            try:
                await conn.invalidate()
            finally:
                await conn.close()
            raise

        if job is None:
            await conn.close()
            return None
        return JobHandle(job, conn, backoff)

    async def _lock_on(self, conn: AsyncConnection, queue: str) -> Job | None:
        repo = JobRepository(conn)
        locks = AdvisoryLockManager(conn)

        for _ in range(self.max_lock_attempts):
            candidate = await repo.lock_next_job(queue, self.scan_limit)
            await conn.commit()
            if candidate is None:
                return None

            # The scan's snapshot predates the lock; the job may have
            # been worked and deleted or rescheduled in between.
            job = await repo.get_eligible_job(candidate.id)
            await conn.commit()
            if job is not None:
                logger.debug(
                    "Locked job",
                    extra={"job_id": job.id, "job_type": job.job_type, "queue": queue},
                )
                return job

            logger.debug(
                "Locked job vanished before re-fetch; skipping",
                extra={"job_id": candidate.id, "queue": queue},
            )
            await locks.release(candidate.id)
            await conn.commit()

        logger.warning(
            "Gave up claiming after repeated races",
            extra={"queue": queue, "attempts": self.max_lock_attempts},
        )
        return None

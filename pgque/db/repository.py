"""
Job repository for database operations.
Implements the core data access patterns for job management.
"""

import logging
from datetime import timedelta
from typing import Sequence

from sqlalchemy import Interval, delete, func, insert, literal, select, text, update
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession

from pgque.db.models import Job
from pgque.types.job import NewJob

logger = logging.getLogger(__name__)

_jobs = Job.__table__

# Walks eligible jobs one at a time in (priority, run_at, id) order and
# try-locks each with pg_try_advisory_lock until one is taken or
# :scan_limit candidates have been tried. The CTE is evaluated lazily,
# so the outer LIMIT 1 stops the walk at the first lock acquired.
LOCK_NEXT_JOB_SQL = text("""
    WITH RECURSIVE candidates AS (
        SELECT (j).*, pg_try_advisory_lock((j).id) AS locked, 1 AS depth
        FROM (
            SELECT j
            FROM que_jobs AS j
            WHERE queue = CAST(:queue AS text)
            AND run_at <= now()
            ORDER BY priority, run_at, id
            LIMIT 1
        ) AS t1
        UNION ALL (
            SELECT (j).*, pg_try_advisory_lock((j).id) AS locked, t1.depth + 1
            FROM (
                SELECT (
                    SELECT j
                    FROM que_jobs AS j
                    WHERE queue = CAST(:queue AS text)
                    AND run_at <= now()
                    AND (priority, run_at, id)
                        > (candidates.priority, candidates.run_at, candidates.id)
                    ORDER BY priority, run_at, id
                    LIMIT 1
                ) AS j, candidates.depth AS depth
                FROM candidates
                WHERE candidates.id IS NOT NULL
                AND candidates.depth < CAST(:scan_limit AS integer)
                LIMIT 1
            ) AS t1
        )
    )
    SELECT id, priority, run_at, job_type, args, error_count, last_error, queue
    FROM candidates
    WHERE locked
    LIMIT 1
""")


def _row_to_job(row) -> Job:
    """Build a detached Job from a result row."""
    return Job(
        id=row.id,
        priority=row.priority,
        run_at=row.run_at,
        job_type=row.job_type,
        args=row.args,
        error_count=row.error_count,
        last_error=row.last_error,
        queue=row.queue,
    )


class JobRepository:
    """
    Repository for job database operations.

    Works on a Core connection (or a session) supplied by the caller and
    never commits: transaction boundaries belong to the caller. Claiming
    must run on the connection that will later release the job's
    advisory lock.

    Implements atomic operations for:
    - Job insertion
    - Ordered candidate scan with non-blocking advisory locking
    - Re-fetch, failure recording and deletion by id
    """

    def __init__(self, connection: AsyncConnection | AsyncSession):
        """
        Initialize the repository with a database connection.

        Args:
            connection: The async connection or session to execute on.
        """
        self._conn = connection

    async def insert_job(self, new_job: NewJob) -> int:
        """
        Insert a new job.

        Args:
            new_job: The validated job to insert.

        Returns:
            The store-assigned job id.
        """
        values = {
            "job_type": new_job.job_type,
            "priority": new_job.priority,
            "args": new_job.args,
            "queue": new_job.queue,
        }
        # Unset run_at falls through to the server's now()
        if new_job.run_at is not None:
            values["run_at"] = new_job.run_at

        stmt = insert(_jobs).values(**values).returning(_jobs.c.id)
        result = await self._conn.execute(stmt)
        job_id = result.scalar_one()

        logger.info(
            "Inserted job",
            extra={"job_id": job_id, "job_type": new_job.job_type, "queue": new_job.queue},
        )
        return job_id

    async def lock_next_job(self, queue: str, scan_limit: int) -> Job | None:
        """
        Find the best eligible job that no other session has locked, and lock it.

        Candidates whose advisory lock is held elsewhere are skipped, not
        waited on. The returned values come from the scan's snapshot and
        may be stale; callers must re-fetch after locking.

        Args:
            queue: The queue to claim from.
            scan_limit: Maximum number of candidates to try.

        Returns:
            The locked Job, or None if no candidate could be locked.
        """
        result = await self._conn.execute(
            LOCK_NEXT_JOB_SQL,
            {"queue": queue, "scan_limit": scan_limit},
        )
        row = result.first()
        if row is None:
            return None
        return _row_to_job(row)

    async def get_job(self, job_id: int) -> Job | None:
        """
        Get a job by ID.

        Args:
            job_id: The job id.

        Returns:
            The Job or None if not found.
        """
        result = await self._conn.execute(select(_jobs).where(_jobs.c.id == job_id))
        row = result.first()
        return _row_to_job(row) if row is not None else None

    async def get_eligible_job(self, job_id: int) -> Job | None:
        """
        Re-fetch a job by ID, only if it is still due to run.

        Args:
            job_id: The job id.

        Returns:
            The Job with its current values, or None if it was deleted or
            rescheduled into the future.
        """
        stmt = select(_jobs).where(
            _jobs.c.id == job_id,
            _jobs.c.run_at <= func.now(),
        )
        result = await self._conn.execute(stmt)
        row = result.first()
        return _row_to_job(row) if row is not None else None

    async def list_jobs(self, queue: str | None = None) -> Sequence[Job]:
        """
        List jobs in claim order.

        Args:
            queue: Optional queue filter.

        Returns:
            Jobs ordered by priority, run_at and id.
        """
        stmt = select(_jobs).order_by(_jobs.c.priority, _jobs.c.run_at, _jobs.c.id)
        if queue is not None:
            stmt = stmt.where(_jobs.c.queue == queue)
        result = await self._conn.execute(stmt)
        return [_row_to_job(row) for row in result]

    async def count_jobs(self, queue: str | None = None) -> int:
        """
        Count jobs, eligible or not.

        Args:
            queue: Optional queue filter.

        Returns:
            Number of jobs.
        """
        stmt = select(func.count()).select_from(_jobs)
        if queue is not None:
            stmt = stmt.where(_jobs.c.queue == queue)
        result = await self._conn.execute(stmt)
        return result.scalar() or 0

    async def delete_job(self, job_id: int) -> bool:
        """
        Delete a job.

        Args:
            job_id: The job id.

        Returns:
            True if a row was deleted.
        """
        result = await self._conn.execute(delete(_jobs).where(_jobs.c.id == job_id))
        return result.rowcount > 0

    async def record_failure(
        self,
        job_id: int,
        message: str,
        delay: timedelta,
    ) -> bool:
        """
        Record a failed attempt and reschedule the job.

        Args:
            job_id: The job id.
            message: The failure message, replacing any previous one.
            delay: How long from now until the job may run again.

        Returns:
            True if the job was updated.
        """
        stmt = (
            update(_jobs)
            .where(_jobs.c.id == job_id)
            .values(
                error_count=_jobs.c.error_count + 1,
                last_error=message,
                run_at=func.now() + literal(delay, Interval()),
            )
        )
        result = await self._conn.execute(stmt)
        updated = result.rowcount > 0

        if updated:
            logger.info(
                "Job rescheduled after failure",
                extra={"job_id": job_id, "delay_seconds": delay.total_seconds()},
            )
        return updated

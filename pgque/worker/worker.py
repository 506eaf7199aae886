"""
Workers that claim and execute jobs.

A Worker runs one claim-execute-resolve loop. A WorkerPool runs several
of them as asyncio tasks. Workers share nothing in memory: every
coordination decision is made by the database, so pools in other
processes or on other hosts can work the same queue.
"""

import asyncio
import logging
import os
import time
from collections.abc import Mapping
from types import TracebackType

from pgque.backoff import BackoffPolicy
from pgque.client import Client
from pgque.config import get_settings
from pgque.constants import SPAN_EXECUTE_JOB, WorkOutcome
from pgque.exceptions import UnknownJobTypeError
from pgque.handle import JobHandle
from pgque.observability.logging import bind_context, clear_context
from pgque.observability.metrics import get_metrics
from pgque.observability.tracing import get_tracer
from pgque.types.job import WorkFunc
from pgque.worker.work_map import WorkMap, call_work_func

logger = logging.getLogger(__name__)


def failure_message(exc: BaseException) -> str:
    """Turn an exception raised by a work function into a last_error message."""
    message = str(exc)
    if not message:
        return type(exc).__name__
    return message


class Worker:
    """
    Job worker that polls for and executes jobs.

    Features:
    - Claims through advisory locks, so any number of workers can share a queue
    - Sleeps for idle_interval only when the queue had nothing to claim
    - Publishes the queue depth gauge when idle, at most once per
      depth_report_interval
    - Survives store errors: logs them and tries again after idle_interval
    - Graceful shutdown: the job in hand always runs to completion
    """

    def __init__(
        self,
        client: Client,
        work_map: Mapping[str, WorkFunc],
        queue: str | None = None,
        idle_interval: float | None = None,
        backoff: BackoffPolicy | None = None,
        worker_id: str | None = None,
        report_depth: bool = True,
    ):
        """
        Initialize the worker.

        Args:
            client: Client used to claim jobs.
            work_map: Work functions by job type.
            queue: Queue to work. Defaults to the configured queue.
            idle_interval: Seconds to sleep when no job was available.
            backoff: Retry policy for failed jobs. Defaults to the client's.
            worker_id: Identifier for logs. Defaults to hostname + PID.
            report_depth: Whether this worker publishes the queue depth gauge.
        """
        settings = get_settings()

        self.client = client
        self.work_map = WorkMap.of(work_map)
        self.queue = queue if queue is not None else settings.worker_queue
        self.idle_interval = (
            idle_interval if idle_interval is not None
            else settings.worker_idle_interval_seconds
        )
        self.backoff = backoff
        self.worker_id = worker_id or f"{os.uname().nodename}-{os.getpid()}"
        self.report_depth = report_depth
        self.depth_report_interval = settings.worker_depth_report_interval_seconds

        self._stop = asyncio.Event()
        self._metrics = get_metrics()
        self._last_depth_report: float | None = None

    @property
    def stopping(self) -> bool:
        """Whether shutdown has been requested."""
        return self._stop.is_set()

    async def run(self) -> None:
        """Run the worker loop until shutdown() is called."""
        bind_context(worker_id=self.worker_id, queue=self.queue)
        logger.info(
            "Worker starting",
            extra={"idle_interval": self.idle_interval},
        )

        try:
            while not self._stop.is_set():
                try:
                    did_work = await self.work_one()
                    if not did_work:
                        await self._report_depth()
                except Exception as e:
                    logger.exception(f"Error in worker loop: {e}")
                    self._metrics.record_worker_error(self.queue)
                    did_work = False

                # Go straight back for more while the queue has work
                if not did_work:
                    await self._idle()

            logger.info("Worker stopped")
        finally:
            clear_context()

    def shutdown(self) -> None:
        """
        Stop claiming new jobs.

        The job currently being worked, if any, is finished and resolved
        before run() returns.
        """
        self._stop.set()

    async def work_one(self) -> bool:
        """
        Claim one job and work it.

        Returns:
            True if a job was claimed, False if none was available.

        Raises:
            DBAPIError: If the store failed while claiming or resolving.
        """
        handle = await self.client.lock_job(self.queue, backoff=self.backoff)
        if handle is None:
            return False

        await self._work(handle)
        return True

    async def _work(self, handle: JobHandle) -> None:
        """
        Execute a claimed job and resolve its handle.

        Whatever happens here, the handle is released before returning.
        """
        start_time = time.monotonic()
        outcome: WorkOutcome | None = None

        try:
            try:
                func = self.work_map.resolve(handle.job_type)
            except UnknownJobTypeError as e:
                logger.error(str(e), extra={"job_id": handle.id})
                await handle.error(str(e))
                outcome = WorkOutcome.UNKNOWN_TYPE
                return

            logger.info(
                "Working job",
                extra={
                    "job_id": handle.id,
                    "job_type": handle.job_type,
                    "error_count": handle.error_count,
                },
            )

            with get_tracer().start_as_current_span(SPAN_EXECUTE_JOB) as span:
                span.set_attribute("job_id", handle.id)
                span.set_attribute("job_type", handle.job_type)
                span.set_attribute("queue", handle.queue)
                span.set_attribute("error_count", handle.error_count)

                failure: Exception | None = None
                try:
                    await call_work_func(func, handle.args)
                except Exception as e:
                    failure = e
                    span.record_exception(e)

            if failure is None:
                await handle.done()
                outcome = WorkOutcome.DONE
            else:
                logger.warning(
                    "Work function raised",
                    extra={"job_id": handle.id, "error": repr(failure)},
                )
                await handle.error(failure_message(failure))
                outcome = WorkOutcome.ERROR

        finally:
            # No-op once resolved; abandons the job if resolution never happened
            await handle.release()

            if outcome is not None:
                self._metrics.record_job_worked(
                    queue=handle.queue,
                    job_type=handle.job_type,
                    outcome=outcome,
                    duration_seconds=time.monotonic() - start_time,
                )

    async def _report_depth(self) -> None:
        """Publish the queue depth, at most once per depth_report_interval."""
        if not self.report_depth:
            return

        now = time.monotonic()
        if (
            self._last_depth_report is not None
            and now - self._last_depth_report < self.depth_report_interval
        ):
            return
        # Stamped before the query so a failing store is not hammered
        self._last_depth_report = now
        await self.client.report_queue_depth(self.queue)

    async def _idle(self) -> None:
        """Sleep for idle_interval, waking early on shutdown."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=self.idle_interval)
        except TimeoutError:
            pass


class WorkerPool:
    """
    A fixed number of workers sharing one client and one queue.
    """

    def __init__(
        self,
        client: Client,
        work_map: Mapping[str, WorkFunc],
        worker_count: int | None = None,
        queue: str | None = None,
        idle_interval: float | None = None,
        backoff: BackoffPolicy | None = None,
    ):
        """
        Initialize the pool.

        Args:
            client: Client used to claim jobs.
            work_map: Work functions by job type.
            worker_count: Number of concurrent workers.
            queue: Queue to work. Defaults to the configured queue.
            idle_interval: Seconds a worker sleeps when no job was available.
            backoff: Retry policy for failed jobs. Defaults to the client's.
        """
        settings = get_settings()
        worker_count = worker_count if worker_count is not None else settings.worker_count
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")

        base_id = f"{os.uname().nodename}-{os.getpid()}"
        work_map = WorkMap.of(work_map)

        self.workers = [
            Worker(
                client,
                work_map,
                queue=queue,
                idle_interval=idle_interval,
                backoff=backoff,
                worker_id=f"{base_id}-{i}",
                # One reporter per pool is enough for a per-queue gauge
                report_depth=(i == 0),
            )
            for i in range(worker_count)
        ]
        self._tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """Start every worker as a task on the running loop."""
        if self._tasks:
            raise RuntimeError("Worker pool is already running")

        logger.info(
            "Worker pool starting",
            extra={"worker_count": len(self.workers), "queue": self.workers[0].queue},
        )
        self._tasks = [
            asyncio.create_task(worker.run(), name=f"pgque-{worker.worker_id}")
            for worker in self.workers
        ]

    async def wait(self) -> None:
        """Wait until every worker has stopped."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        """
        Stop all workers gracefully.

        Returns once every worker has finished the job it was working.
        """
        logger.info("Worker pool stopping", extra={"worker_count": len(self.workers)})
        for worker in self.workers:
            worker.shutdown()
        await self.wait()
        self._tasks = []
        logger.info("Worker pool stopped")

    async def run(self) -> None:
        """Start the pool and wait until it is shut down."""
        await self.start()
        await self.wait()

    async def __aenter__(self) -> "WorkerPool":
        await self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.shutdown()

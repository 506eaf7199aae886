"""
Unit tests for Worker and WorkerPool, using in-memory stand-ins for the store.
"""

import asyncio

import pytest

from pgque.worker.work_map import WorkMap
from pgque.worker.worker import Worker, WorkerPool, failure_message


class FakeHandle:
    """Records how a claimed job was resolved."""

    def __init__(self, job_id: int, job_type: str, args: str = "[]", fail_done: bool = False):
        self.id = job_id
        self.job_type = job_type
        self.args = args
        self.queue = ""
        self.error_count = 0
        self.fail_done = fail_done
        self.calls: list[tuple] = []
        self.released = False

    async def done(self) -> None:
        self.calls.append(("done",))
        if self.fail_done:
            raise ConnectionError("store went away")

    async def error(self, message: str) -> None:
        self.calls.append(("error", message))

    async def release(self) -> None:
        self.released = True


class FakeClient:
    """Hands out queued handles, then None; can be told to fail."""

    def __init__(self, handles: list | None = None):
        self.handles = list(handles or [])
        self.lock_calls = 0
        self.errors: list[Exception] = []
        self.depth_reports = 0

    async def lock_job(self, queue: str = "", *, backoff=None):
        self.lock_calls += 1
        if self.errors:
            raise self.errors.pop(0)
        if self.handles:
            return self.handles.pop(0)
        return None

    async def report_queue_depth(self, queue: str = "") -> int:
        self.depth_reports += 1
        return len(self.handles)


def make_worker(client: FakeClient, work_map: dict, idle_interval: float = 0.01) -> Worker:
    return Worker(client, work_map, queue="", idle_interval=idle_interval, worker_id="test")


class TestFailureMessage:
    """Tests for failure_message."""

    def test_uses_exception_text(self):
        assert failure_message(ValueError("bad input")) == "bad input"

    def test_falls_back_to_class_name(self):
        assert failure_message(KeyError()) == "KeyError"
        assert failure_message(RuntimeError("")) == "RuntimeError"


class TestWorkOne:
    """Tests for Worker.work_one."""

    async def test_empty_queue(self):
        """Test that work_one reports no work when nothing is claimable."""
        worker = make_worker(FakeClient(), {})

        assert await worker.work_one() is False

    async def test_success_marks_done(self):
        """Test that a work function that returns resolves the job as done."""
        seen = []

        async def work(args: str) -> None:
            seen.append(args)

        handle = FakeHandle(1, "MyJob", args='{"x": 1}')
        worker = make_worker(FakeClient([handle]), {"MyJob": work})

        assert await worker.work_one() is True
        assert seen == ['{"x": 1}']
        assert handle.calls == [("done",)]
        assert handle.released

    async def test_sync_work_function(self):
        """Test that plain functions are supported."""
        seen = []
        handle = FakeHandle(1, "MyJob")
        worker = make_worker(FakeClient([handle]), {"MyJob": seen.append})

        await worker.work_one()

        assert seen == ["[]"]
        assert handle.calls == [("done",)]

    async def test_failure_records_error(self):
        """Test that a raising work function resolves the job as an error."""

        async def work(args: str) -> None:
            raise ValueError("bad payload")

        handle = FakeHandle(1, "MyJob")
        worker = make_worker(FakeClient([handle]), {"MyJob": work})

        await worker.work_one()

        assert handle.calls == [("error", "bad payload")]
        assert handle.released

    async def test_failure_without_message(self):
        """Test that an exception with no text records its class name."""

        async def work(args: str) -> None:
            raise LookupError()

        handle = FakeHandle(1, "MyJob")
        worker = make_worker(FakeClient([handle]), {"MyJob": work})

        await worker.work_one()

        assert handle.calls == [("error", "LookupError")]

    async def test_unknown_type(self):
        """Test that a job with no registered function is resolved as an error."""
        handle = FakeHandle(1, "missing")
        worker = make_worker(FakeClient([handle]), {"MyJob": lambda args: None})

        await worker.work_one()

        assert handle.calls == [("error", "unknown job type: 'missing'")]
        assert handle.released

    async def test_release_when_resolution_fails(self):
        """Test that the handle is released even if done() raises."""
        handle = FakeHandle(1, "MyJob", fail_done=True)
        worker = make_worker(FakeClient([handle]), {"MyJob": lambda args: None})

        with pytest.raises(ConnectionError):
            await worker.work_one()

        assert handle.released

    async def test_uses_registered_function_per_type(self):
        """Test that each job runs the function registered for its type."""
        work_map = WorkMap()
        ran = []

        @work_map.register("a")
        async def run_a(args: str) -> None:
            ran.append("a")

        @work_map.register("b")
        async def run_b(args: str) -> None:
            ran.append("b")

        worker = make_worker(FakeClient([FakeHandle(1, "b"), FakeHandle(2, "a")]), work_map)

        await worker.work_one()
        await worker.work_one()

        assert ran == ["b", "a"]


class TestWorkerRun:
    """Tests for the Worker loop."""

    async def test_loop_survives_store_errors(self):
        """Test that a failing claim is logged and the loop keeps going."""
        ran = []
        handle = FakeHandle(1, "MyJob")
        client = FakeClient([handle])
        client.errors = [ConnectionError("connection refused")]
        worker = make_worker(client, {"MyJob": lambda args: ran.append(args)})

        task = asyncio.create_task(worker.run())
        for _ in range(200):
            if handle.released:
                break
            await asyncio.sleep(0.01)
        worker.shutdown()
        await asyncio.wait_for(task, timeout=5)

        assert client.lock_calls >= 2
        assert ran == ["[]"]
        assert handle.calls == [("done",)]

    async def test_shutdown_interrupts_idle_sleep(self):
        """Test that shutdown wakes a worker that is sleeping between polls."""
        client = FakeClient()
        worker = make_worker(client, {}, idle_interval=60)

        task = asyncio.create_task(worker.run())
        await asyncio.sleep(0.05)
        worker.shutdown()

        await asyncio.wait_for(task, timeout=2)
        assert worker.stopping
        assert client.lock_calls == 1
        assert client.depth_reports == 1

    async def test_shutdown_waits_for_job_in_hand(self):
        """Test that the job being worked is finished before run() returns."""
        started = asyncio.Event()
        finish = asyncio.Event()

        async def work(args: str) -> None:
            started.set()
            await finish.wait()

        handle = FakeHandle(1, "MyJob")
        client = FakeClient([handle])
        worker = make_worker(client, {"MyJob": work})

        task = asyncio.create_task(worker.run())
        await asyncio.wait_for(started.wait(), timeout=2)
        worker.shutdown()
        await asyncio.sleep(0.05)

        assert not task.done()

        finish.set()
        await asyncio.wait_for(task, timeout=2)

        assert handle.calls == [("done",)]
        assert client.lock_calls == 1

    async def test_keeps_claiming_while_work_is_available(self):
        """Test that the worker does not sleep between back-to-back jobs."""
        handles = [FakeHandle(i, "MyJob") for i in range(5)]
        worker = make_worker(FakeClient(handles), {"MyJob": lambda args: None}, idle_interval=60)

        task = asyncio.create_task(worker.run())
        for _ in range(200):
            if all(h.released for h in handles):
                break
            await asyncio.sleep(0.01)
        worker.shutdown()
        await asyncio.wait_for(task, timeout=2)

        assert all(h.calls == [("done",)] for h in handles)

    async def test_depth_report_is_throttled(self):
        """Test that an idle worker counts the queue once per report interval."""
        client = FakeClient()
        worker = make_worker(client, {})
        worker.depth_report_interval = 60

        task = asyncio.create_task(worker.run())
        await asyncio.sleep(0.1)
        worker.shutdown()
        await asyncio.wait_for(task, timeout=2)

        assert client.lock_calls > 2
        assert client.depth_reports == 1

    async def test_depth_report_interval_zero_reports_every_idle_tick(self):
        """Test that a zero interval reports on every empty poll."""
        client = FakeClient()
        worker = make_worker(client, {})
        worker.depth_report_interval = 0

        task = asyncio.create_task(worker.run())
        await asyncio.sleep(0.1)
        worker.shutdown()
        await asyncio.wait_for(task, timeout=2)

        assert client.depth_reports > 1
        assert client.depth_reports == client.lock_calls


class TestWorkerPool:
    """Tests for WorkerPool."""

    def test_rejects_zero_workers(self):
        """Test that a pool needs at least one worker."""
        with pytest.raises(ValueError):
            WorkerPool(FakeClient(), {}, worker_count=0)

    def test_builds_distinct_workers(self):
        """Test that each worker gets its own identifier."""
        pool = WorkerPool(FakeClient(), {}, worker_count=3, queue="q")

        assert len(pool.workers) == 3
        assert len({w.worker_id for w in pool.workers}) == 3
        assert all(w.queue == "q" for w in pool.workers)

    def test_single_depth_reporter(self):
        """Test that only one worker in a pool publishes the queue depth."""
        pool = WorkerPool(FakeClient(), {}, worker_count=4)

        assert [w.report_depth for w in pool.workers] == [True, False, False, False]

    async def test_pool_counts_queue_once_per_interval(self):
        """Test that an idle pool issues a single depth count per interval."""
        client = FakeClient()
        pool = WorkerPool(client, {}, worker_count=4, idle_interval=0.01)
        for worker in pool.workers:
            worker.depth_report_interval = 60

        async with pool:
            await asyncio.sleep(0.1)

        assert client.lock_calls > 4
        assert client.depth_reports == 1

    async def test_start_twice(self):
        """Test that a running pool cannot be started again."""
        pool = WorkerPool(FakeClient(), {}, worker_count=1, idle_interval=0.01)

        await pool.start()
        try:
            with pytest.raises(RuntimeError):
                await pool.start()
        finally:
            await pool.shutdown()

    async def test_context_manager_drains_jobs(self):
        """Test that every handed-out job is worked exactly once."""
        handles = [FakeHandle(i, "MyJob") for i in range(10)]
        worked = []

        async def work(args: str) -> None:
            worked.append(args)
            await asyncio.sleep(0)

        async with WorkerPool(
            FakeClient(handles), {"MyJob": work}, worker_count=3, idle_interval=0.01
        ):
            for _ in range(200):
                if all(h.released for h in handles):
                    break
                await asyncio.sleep(0.01)

        assert len(worked) == 10
        assert all(h.calls == [("done",)] for h in handles)

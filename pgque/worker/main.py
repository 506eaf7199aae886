"""
Worker process entry point.

Loads the work map named by the WORKER_WORK_MAP setting
("package.module:attribute"), then runs a worker pool until SIGTERM or
SIGINT. Jobs in flight when the signal arrives are finished first.
"""

import asyncio
import importlib
import logging
import signal
from collections.abc import Mapping

from pgque.client import Client
from pgque.config import get_settings
from pgque.db import close_db, get_engine
from pgque.observability.logging import setup_logging
from pgque.observability.metrics import serve_metrics, setup_metrics
from pgque.observability.tracing import instrument_sqlalchemy, setup_tracing
from pgque.types.job import WorkFunc
from pgque.worker.worker import WorkerPool

logger = logging.getLogger(__name__)


def load_work_map(path: str) -> Mapping[str, WorkFunc]:
    """
    Import a work map from a "package.module:attribute" path.

    Args:
        path: Location of the mapping.

    Returns:
        The mapping found there.

    Raises:
        ValueError: If the path is malformed or does not name a mapping.
    """
    module_name, sep, attribute = path.partition(":")
    if not sep or not module_name or not attribute:
        raise ValueError(f"work map path must look like 'package.module:attribute', got {path!r}")

    module = importlib.import_module(module_name)
    work_map = getattr(module, attribute)
    if not isinstance(work_map, Mapping):
        raise ValueError(f"{path!r} is not a mapping of job types to work functions")
    return work_map


async def run_async() -> None:
    """Run a worker pool asynchronously."""
    settings = get_settings()

    setup_logging(settings)
    setup_metrics()
    setup_tracing(settings)

    if not settings.worker_work_map:
        raise RuntimeError("WORKER_WORK_MAP must name the work map to run")
    work_map = load_work_map(settings.worker_work_map)

    if settings.prometheus_port:
        serve_metrics(settings.prometheus_port)

    engine = get_engine()
    instrument_sqlalchemy(engine)

    pool = WorkerPool(Client(engine, settings=settings), work_map)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()
    stop_requested = asyncio.Event()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stop_requested.set)

    try:
        await pool.start()
        await stop_requested.wait()
        logger.info("Shutdown signal received")
        await pool.shutdown()
    finally:
        await close_db()


def run() -> None:
    """Run the worker."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()

"""
PostgreSQL-backed job queue.

Producers enqueue jobs into a single table; workers on any number of
hosts claim them with advisory locks, run them, and either delete them
or reschedule them with backoff.
"""

from pgque.backoff import BackoffPolicy, PolynomialBackoff
from pgque.client import Client
from pgque.exceptions import (
    JobAlreadyResolvedError,
    MissingTypeError,
    QueError,
    UnknownJobTypeError,
)
from pgque.handle import JobHandle
from pgque.worker import WorkMap, Worker, WorkerPool

__version__ = "1.0.0"

__all__ = [
    "BackoffPolicy",
    "PolynomialBackoff",
    "Client",
    "JobHandle",
    "WorkMap",
    "Worker",
    "WorkerPool",
    "QueError",
    "MissingTypeError",
    "UnknownJobTypeError",
    "JobAlreadyResolvedError",
]

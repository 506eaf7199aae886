"""
Worker module.
Contains the work function registry, workers and the worker pool.
"""

from pgque.worker.work_map import WorkMap, call_work_func
from pgque.worker.worker import Worker, WorkerPool, failure_message

__all__ = [
    "WorkMap",
    "call_work_func",
    "Worker",
    "WorkerPool",
    "failure_message",
]

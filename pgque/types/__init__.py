"""
Type definitions for the job queue.
"""

from pgque.types.job import NewJob, WorkFunc

__all__ = [
    "NewJob",
    "WorkFunc",
]

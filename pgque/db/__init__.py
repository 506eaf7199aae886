"""
Database module.
Contains database connection, models, locks and repository implementations.
"""

from pgque.db.connection import (
    close_db,
    create_engine,
    get_engine,
    get_test_engine,
)
from pgque.db.locks import AdvisoryLockManager
from pgque.db.models import Base, Job
from pgque.db.repository import JobRepository

__all__ = [
    "create_engine",
    "get_engine",
    "get_test_engine",
    "close_db",
    "AdvisoryLockManager",
    "JobRepository",
    "Job",
    "Base",
]

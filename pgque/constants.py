"""
Application constants.
Centralized location for all constant values used across the application.
"""

from datetime import timedelta
from enum import StrEnum


class WorkOutcome(StrEnum):
    """How a claimed job was resolved by a worker."""

    DONE = "done"
    ERROR = "error"
    UNKNOWN_TYPE = "unknown_type"


class ClaimResult(StrEnum):
    """Result of a single claim attempt."""

    FOUND = "found"
    EMPTY = "empty"


# Job defaults
DEFAULT_PRIORITY = 100
DEFAULT_ARGS = "[]"
DEFAULT_QUEUE = ""

# PostgreSQL SMALLINT bounds for the priority column
PRIORITY_MIN = -32768
PRIORITY_MAX = 32767

# A failed job is never re-eligible sooner than this
MIN_BACKOFF = timedelta(seconds=1)

# Nor later than this; now() + delay must stay a valid timestamptz
MAX_BACKOFF = timedelta(days=36500)
MAX_BACKOFF_SECONDS = MAX_BACKOFF.total_seconds()

# Table name
JOBS_TABLE = "que_jobs"

# Metrics names
METRIC_JOBS_ENQUEUED = "pgque_jobs_enqueued_total"
METRIC_CLAIMS = "pgque_claims_total"
METRIC_JOBS_WORKED = "pgque_jobs_worked_total"
METRIC_JOB_DURATION = "pgque_job_duration_seconds"
METRIC_WORKER_ERRORS = "pgque_worker_errors_total"
METRIC_QUEUE_DEPTH = "pgque_queue_depth"

# Trace span names
SPAN_ENQUEUE_JOB = "enqueue_job"
SPAN_LOCK_JOB = "lock_job"
SPAN_EXECUTE_JOB = "execute_job"

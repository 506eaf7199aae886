"""
Exception types raised by the queue.

Store and connectivity failures are not wrapped: they surface as the
SQLAlchemy ``DBAPIError`` family raised by the driver.
"""


class QueError(Exception):
    """Base class for queue errors."""


class MissingTypeError(QueError, ValueError):
    """Raised when a job is enqueued without a job type."""

    def __init__(self) -> None:
        super().__init__("job type must be specified")


class UnknownJobTypeError(QueError, LookupError):
    """Raised when a claimed job has no registered work function."""

    def __init__(self, job_type: str) -> None:
        self.job_type = job_type
        super().__init__(f"unknown job type: {job_type!r}")


class JobAlreadyResolvedError(QueError, RuntimeError):
    """Raised when done() or error() is called on an already resolved handle."""

    def __init__(self, job_id: int) -> None:
        self.job_id = job_id
        super().__init__(f"job {job_id} has already been resolved")

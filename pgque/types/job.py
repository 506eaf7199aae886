"""
Job-related type definitions for internal use.
"""

from datetime import datetime
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, ConfigDict, Field

from pgque.constants import (
    DEFAULT_ARGS,
    DEFAULT_PRIORITY,
    DEFAULT_QUEUE,
    PRIORITY_MAX,
    PRIORITY_MIN,
)

# A work function receives the job's args text. It signals failure by
# raising; the exception message becomes the job's last_error.
WorkFunc = Callable[[str], Awaitable[Any] | Any]


class NewJob(BaseModel):
    """
    A job to be enqueued.
    Unset fields take the documented defaults.
    """

    model_config = ConfigDict(frozen=True)

    job_type: str = Field(min_length=1)
    priority: int = Field(default=DEFAULT_PRIORITY, ge=PRIORITY_MIN, le=PRIORITY_MAX)
    run_at: datetime | None = None  # None means the store's now()
    args: str = DEFAULT_ARGS
    queue: str = DEFAULT_QUEUE

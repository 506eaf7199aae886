"""
Work function registry.

Work functions must be idempotent - a job may run more than once if a
worker dies after the work is done but before the job is deleted.
"""

import asyncio
import inspect
import logging
from collections.abc import Mapping
from typing import Any, Callable

from pgque.exceptions import UnknownJobTypeError
from pgque.types.job import WorkFunc

logger = logging.getLogger(__name__)


class WorkMap(dict[str, WorkFunc]):
    """
    Mapping from job type to the function that works it.

    Passed explicitly to workers; there is no global registry.

    Example:
        work_map = WorkMap()

        @work_map.register("send_email")
        async def send_email(args: str) -> None:
            ...
    """

    def register(self, job_type: str) -> Callable[[WorkFunc], WorkFunc]:
        """
        Decorator to register a work function.

        Args:
            job_type: The job type this function processes.

        Returns:
            Decorator function.
        """
        if not job_type:
            raise ValueError("job type must be non-empty")

        def decorator(func: WorkFunc) -> WorkFunc:
            self[job_type] = func
            logger.debug("Registered work function", extra={"job_type": job_type})
            return func

        return decorator

    def resolve(self, job_type: str) -> WorkFunc:
        """
        Look up the work function for a job type.

        Raises:
            UnknownJobTypeError: If nothing is registered for job_type.
        """
        try:
            return self[job_type]
        except KeyError:
            raise UnknownJobTypeError(job_type) from None

    @classmethod
    def of(cls, functions: Mapping[str, WorkFunc]) -> "WorkMap":
        """Build a WorkMap from any mapping, keeping WorkMaps as they are."""
        if isinstance(functions, cls):
            return functions
        return cls(functions)


async def call_work_func(func: WorkFunc, args: str) -> Any:
    """
    Run a work function on a job's args.

    Coroutine functions are awaited on the event loop; plain functions
    run in a worker thread so they cannot stall other workers.

    Args:
        func: The work function.
        args: The job's args, unmodified.

    Returns:
        Whatever the function returned.
    """
    if inspect.iscoroutinefunction(func):
        return await func(args)

    result = await asyncio.to_thread(func, args)
    if inspect.isawaitable(result):
        return await result
    return result

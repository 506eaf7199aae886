"""
Advisory lock management.

PostgreSQL session-level advisory locks are the ownership marker for
claimed jobs: a job is owned by whichever session holds the lock keyed
by its id, and the lock disappears when that session ends.
"""

import logging

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

logger = logging.getLogger(__name__)


class AdvisoryLockManager:
    """
    Try-acquire and release of integer-keyed advisory locks.

    Bound to a single connection. The locks belong to that connection's
    server session, so every call for a given key must go through the
    same manager (or at least the same connection).
    """

    def __init__(self, connection: AsyncConnection):
        """
        Initialize the lock manager.

        Args:
            connection: The connection whose session will own the locks.
        """
        self._conn = connection

    async def try_acquire(self, key: int) -> bool:
        """
        Try to take the lock without waiting.

        Args:
            key: The lock key.

        Returns:
            True if this session now holds the lock, False if another
            session already holds it.
        """
        result = await self._conn.execute(
            text("SELECT pg_try_advisory_lock(:key)"),
            {"key": key},
        )
        return bool(result.scalar())

    async def release(self, key: int) -> bool:
        """
        Release the lock.

        Args:
            key: The lock key.

        Returns:
            True if the lock was held by this session and is now released.
        """
        result = await self._conn.execute(
            text("SELECT pg_advisory_unlock(:key)"),
            {"key": key},
        )
        released = bool(result.scalar())
        if not released:
            logger.warning(
                "Advisory lock was not held by this session",
                extra={"lock_key": key},
            )
        return released

    async def held_keys(self) -> set[int]:
        """
        List the advisory locks held by this session.

        Returns:
            The set of keys of single-bigint advisory locks held.
        """
        # Single-bigint keys are stored split across classid (high 32 bits)
        # and objid (low 32 bits), with objsubid = 1
        result = await self._conn.execute(
            text("""
                SELECT (classid::bigint << 32) | objid::bigint AS key
                FROM pg_locks
                WHERE locktype = 'advisory'
                AND objsubid = 1
                AND granted
                AND pid = pg_backend_pid()
            """)
        )
        return {int(row.key) for row in result}

"""
SQLAlchemy database models.
Defines the job table.
"""

from datetime import datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Identity,
    Index,
    Integer,
    SmallInteger,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from pgque.constants import DEFAULT_ARGS, DEFAULT_PRIORITY, DEFAULT_QUEUE, JOBS_TABLE


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Job(Base):
    """
    Job model representing a unit of deferred work.

    A row exists only while the job is pending or waiting to be retried:
    successful jobs are deleted. There is no status column. A job is in
    progress exactly while some session holds the advisory lock keyed by
    its id, so a crashed worker's job becomes claimable again as soon as
    its database session ends.

    Key constraints:
    - job_type is non-empty (enforced at enqueue)
    - rows are only mutated by the session holding the job's advisory lock
    """

    __tablename__ = JOBS_TABLE

    # Primary key, also the advisory lock key
    id: Mapped[int] = mapped_column(
        BigInteger,
        Identity(always=False),
        primary_key=True,
    )

    # Ordering: lower priority value runs first
    priority: Mapped[int] = mapped_column(
        SmallInteger,
        nullable=False,
        default=DEFAULT_PRIORITY,
        server_default=str(DEFAULT_PRIORITY),
    )
    run_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    # Work description
    job_type: Mapped[str] = mapped_column(
        Text,
        nullable=False,
    )
    args: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=DEFAULT_ARGS,
        server_default=DEFAULT_ARGS,
    )

    # Error tracking
    error_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
    )
    last_error: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # Logical partition
    queue: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default=DEFAULT_QUEUE,
        server_default=DEFAULT_QUEUE,
    )

    __table_args__ = (
        CheckConstraint("job_type <> ''", name="ck_que_jobs_job_type_present"),
        # Serves the ordered claim scan
        Index("ix_que_jobs_claim", "queue", "priority", "run_at", "id"),
    )

    def __repr__(self) -> str:
        return (
            f"Job(id={self.id}, type={self.job_type!r}, queue={self.queue!r}, "
            f"priority={self.priority}, errors={self.error_count})"
        )

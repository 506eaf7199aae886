"""Initial schema with que_jobs table

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "que_jobs",
        sa.Column("id", sa.BigInteger, sa.Identity(always=False), nullable=False),
        sa.Column("priority", sa.SmallInteger, nullable=False, server_default="100"),
        sa.Column(
            "run_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("job_type", sa.Text, nullable=False),
        sa.Column("args", sa.Text, nullable=False, server_default="[]"),
        sa.Column("error_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column("queue", sa.Text, nullable=False, server_default=""),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("job_type <> ''", name="ck_que_jobs_job_type_present"),
    )

    # Serves the ordered claim scan: queue filter, then priority, run_at, id
    op.create_index(
        "ix_que_jobs_claim",
        "que_jobs",
        ["queue", "priority", "run_at", "id"],
    )


def downgrade() -> None:
    op.drop_index("ix_que_jobs_claim", table_name="que_jobs")
    op.drop_table("que_jobs")

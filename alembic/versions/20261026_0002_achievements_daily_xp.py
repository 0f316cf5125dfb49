"""Achievements and daily XP on learner profiles

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-26

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0002"
down_revision: Union[str, None] = "0001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    with op.batch_alter_table("learner_profiles", schema=None) as batch_op:
        batch_op.add_column(sa.Column("achievements", sa.JSON(), nullable=False, server_default="[]"))
        batch_op.add_column(sa.Column("daily_xp", sa.Integer(), nullable=False, server_default="0"))
        batch_op.add_column(sa.Column("daily_xp_date", sa.Date(), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("learner_profiles", schema=None) as batch_op:
        batch_op.drop_column("daily_xp_date")
        batch_op.drop_column("daily_xp")
        batch_op.drop_column("achievements")

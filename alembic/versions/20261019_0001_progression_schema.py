"""Learner progression schema

Revision ID: 0001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Per-learner, per-node progress
    op.create_table(
        "learner_node_progress",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("learner_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("node_id", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="locked"),
        sa.Column("stars", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("best_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("learner_id", "node_id", name="uq_learner_node_progress_learner_node"),
    )

    # Hearts (refill_at only while depleted)
    op.create_table(
        "learner_heart_state",
        sa.Column("learner_id", sa.Uuid(), primary_key=True),
        sa.Column("current", sa.Integer(), nullable=False),
        sa.Column("max_hearts", sa.Integer(), nullable=False),
        sa.Column("refill_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # XP, level, streak, topic mastery
    op.create_table(
        "learner_profiles",
        sa.Column("learner_id", sa.Uuid(), primary_key=True),
        sa.Column("xp", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("level", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("xp_in_level", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("best_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("mastery_per_topic", sa.JSON(), nullable=False),
        sa.Column("last_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Idempotent operation results
    op.create_table(
        "applied_operations",
        sa.Column("operation_id", sa.String(64), primary_key=True),
        sa.Column("learner_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("kind", sa.String(50), nullable=False),
        sa.Column("result", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Append-only event log
    op.create_table(
        "event_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("event_type", sa.String(100), nullable=False, index=True),
        sa.Column("entity_type", sa.String(50), nullable=False),
        sa.Column("entity_id", sa.String(100), nullable=False, index=True),
        sa.Column("learner_id", sa.Uuid(), nullable=False, index=True),
        sa.Column("operation_id", sa.String(64), nullable=True),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False, index=True),
    )
    op.create_index("ix_event_logs_entity", "event_logs", ["entity_type", "entity_id"])
    op.create_index("ix_event_logs_learner_time", "event_logs", ["learner_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_event_logs_learner_time", table_name="event_logs")
    op.drop_index("ix_event_logs_entity", table_name="event_logs")
    op.drop_table("event_logs")
    op.drop_table("applied_operations")
    op.drop_table("learner_profiles")
    op.drop_table("learner_heart_state")
    op.drop_table("learner_node_progress")

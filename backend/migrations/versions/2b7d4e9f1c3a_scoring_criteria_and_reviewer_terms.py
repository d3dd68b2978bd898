"""Add per-call scoring criteria and reviewer terms acceptance.

Criterion scores now reference a rubric line instead of carrying their own
name, scale and weight. Free-form scores cannot be mapped onto a rubric, so
the score table is rebuilt empty.

Revision ID: 2b7d4e9f1c3a
Revises: 1a2b3c4d5e6f
Create Date: 2026-10-19 00:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision = "2b7d4e9f1c3a"
down_revision = "1a2b3c4d5e6f"
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create the rubric table, rebuild criterion scores, track terms acceptance."""
    op.add_column("reviewers", sa.Column("terms_accepted_at", sa.DateTime(), nullable=True))
    op.add_column("reviewers", sa.Column("terms_version", sa.String(), nullable=True))

    op.create_table(
        "scoring_criteria",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("call_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("description", sa.String(), nullable=True),
        sa.Column("weight", sa.Float(), server_default="1", nullable=False),
        sa.Column("max_score", sa.Float(), server_default="10", nullable=False),
        sa.Column("sort_order", sa.Integer(), server_default="0", nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(["call_id"], ["calls.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("call_id", "name", name="uq_scoring_criterion_call_name"),
    )
    op.create_index("ix_scoring_criteria_call_id", "scoring_criteria", ["call_id"])

    op.drop_index("ix_review_criterion_scores_review_id", table_name="review_criterion_scores")
    op.drop_table("review_criterion_scores")
    op.create_table(
        "review_criterion_scores",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("review_id", sa.Uuid(), nullable=False),
        sa.Column("criterion_id", sa.Uuid(), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("comment", sa.String(), server_default="", nullable=False),
        sa.ForeignKeyConstraint(["review_id"], ["reviews.id"]),
        sa.ForeignKeyConstraint(["criterion_id"], ["scoring_criteria.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("review_id", "criterion_id", name="uq_review_criterion"),
    )
    op.create_index(
        "ix_review_criterion_scores_review_id", "review_criterion_scores", ["review_id"]
    )
    op.create_index(
        "ix_review_criterion_scores_criterion_id", "review_criterion_scores", ["criterion_id"]
    )


def downgrade() -> None:
    """Restore free-form criterion scores and drop the rubric and terms columns."""
    op.drop_index("ix_review_criterion_scores_criterion_id", table_name="review_criterion_scores")
    op.drop_index("ix_review_criterion_scores_review_id", table_name="review_criterion_scores")
    op.drop_table("review_criterion_scores")
    op.create_table(
        "review_criterion_scores",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("review_id", sa.Uuid(), nullable=False),
        sa.Column("criterion_name", sa.String(), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("max_score", sa.Float(), server_default="10", nullable=False),
        sa.Column("weight", sa.Float(), server_default="1", nullable=False),
        sa.Column("comment", sa.String(), server_default="", nullable=False),
        sa.ForeignKeyConstraint(["review_id"], ["reviews.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("review_id", "criterion_name", name="uq_review_criterion"),
    )
    op.create_index(
        "ix_review_criterion_scores_review_id", "review_criterion_scores", ["review_id"]
    )

    op.drop_index("ix_scoring_criteria_call_id", table_name="scoring_criteria")
    op.drop_table("scoring_criteria")
    op.drop_column("reviewers", "terms_version")
    op.drop_column("reviewers", "terms_accepted_at")

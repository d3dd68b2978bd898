"""Review workflow schema: calls, proposals, reviewers, reviews, decisions, reveals, audit.

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "1a2b3c4d5e6f"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    if "calls" not in existing_tables:
        op.create_table(
            "calls",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("organization_id", sa.Uuid(), nullable=False),
            sa.Column("title", sa.String(), nullable=False),
            sa.Column("description", sa.String(), server_default="", nullable=False),
            sa.Column("lifecycle_status", sa.String(), server_default="draft", nullable=False),
            sa.Column("version", sa.Integer(), server_default="1", nullable=False),
            sa.Column("opens_at", sa.DateTime(), nullable=True),
            sa.Column("closes_at", sa.DateTime(), nullable=True),
            sa.Column("is_cancelled", sa.Boolean(), server_default=sa.false(), nullable=False),
            sa.Column("cancellation_reason", sa.String(), nullable=True),
            sa.Column("blind_code_prefix", sa.String(), nullable=True),
            sa.Column(
                "blind_code_strategy", sa.String(), server_default="sequential", nullable=False
            ),
            sa.Column("min_reviewers_per_proposal", sa.Integer(), nullable=True),
            sa.Column("created_by", sa.Uuid(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_calls_organization_id", "calls", ["organization_id"])
        op.create_index("ix_calls_lifecycle_status", "calls", ["lifecycle_status"])
        op.create_index("ix_calls_is_cancelled", "calls", ["is_cancelled"])

    if "applicant_profiles" not in existing_tables:
        op.create_table(
            "applicant_profiles",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("full_name", sa.String(), nullable=False),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("institution", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if "reviewers" not in existing_tables:
        op.create_table(
            "reviewers",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("organization_id", sa.Uuid(), nullable=False),
            sa.Column("full_name", sa.String(), nullable=False),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("area_codes", sa.JSON(), nullable=True),
            sa.Column("is_active", sa.Boolean(), server_default=sa.true(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_reviewers_organization_id", "reviewers", ["organization_id"])
        op.create_index("ix_reviewers_is_active", "reviewers", ["is_active"])

    if "proposals" not in existing_tables:
        op.create_table(
            "proposals",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("call_id", sa.Uuid(), nullable=False),
            sa.Column("applicant_id", sa.Uuid(), nullable=False),
            sa.Column("blind_code", sa.String(), nullable=False),
            sa.Column("blind_code_generated_at", sa.DateTime(), nullable=False),
            sa.Column("status", sa.String(), server_default="draft", nullable=False),
            sa.Column("knowledge_area_code", sa.String(), nullable=True),
            sa.Column("answers", sa.JSON(), nullable=True),
            sa.Column("submitted_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["call_id"], ["calls.id"]),
            sa.ForeignKeyConstraint(["applicant_id"], ["applicant_profiles.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("call_id", "blind_code", name="uq_proposal_call_blind_code"),
        )
        op.create_index("ix_proposals_call_id", "proposals", ["call_id"])
        op.create_index("ix_proposals_applicant_id", "proposals", ["applicant_id"])
        op.create_index("ix_proposals_blind_code", "proposals", ["blind_code"])
        op.create_index("ix_proposals_status", "proposals", ["status"])

    if "review_assignments" not in existing_tables:
        op.create_table(
            "review_assignments",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("proposal_id", sa.Uuid(), nullable=False),
            sa.Column("reviewer_id", sa.Uuid(), nullable=False),
            sa.Column("status", sa.String(), server_default="assigned", nullable=False),
            sa.Column("assigned_by", sa.Uuid(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("submitted_at", sa.DateTime(), nullable=True),
            sa.ForeignKeyConstraint(["proposal_id"], ["proposals.id"]),
            sa.ForeignKeyConstraint(["reviewer_id"], ["reviewers.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("proposal_id", "reviewer_id", name="uq_review_assignment"),
        )
        op.create_index("ix_review_assignments_proposal_id", "review_assignments", ["proposal_id"])
        op.create_index("ix_review_assignments_reviewer_id", "review_assignments", ["reviewer_id"])
        op.create_index("ix_review_assignments_status", "review_assignments", ["status"])

    if "reviewer_conflicts" not in existing_tables:
        op.create_table(
            "reviewer_conflicts",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("call_id", sa.Uuid(), nullable=False),
            sa.Column("proposal_id", sa.Uuid(), nullable=False),
            sa.Column("reviewer_id", sa.Uuid(), nullable=False),
            sa.Column("reason", sa.String(), server_default="", nullable=False),
            sa.Column("declared_by", sa.Uuid(), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["call_id"], ["calls.id"]),
            sa.ForeignKeyConstraint(["proposal_id"], ["proposals.id"]),
            sa.ForeignKeyConstraint(["reviewer_id"], ["reviewers.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("proposal_id", "reviewer_id", name="uq_reviewer_conflict"),
        )
        op.create_index("ix_reviewer_conflicts_call_id", "reviewer_conflicts", ["call_id"])
        op.create_index("ix_reviewer_conflicts_proposal_id", "reviewer_conflicts", ["proposal_id"])
        op.create_index("ix_reviewer_conflicts_reviewer_id", "reviewer_conflicts", ["reviewer_id"])

    if "reviews" not in existing_tables:
        op.create_table(
            "reviews",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("assignment_id", sa.Uuid(), nullable=False),
            sa.Column("proposal_id", sa.Uuid(), nullable=False),
            sa.Column("reviewer_id", sa.Uuid(), nullable=False),
            sa.Column("comments", sa.String(), server_default="", nullable=False),
            sa.Column("recommendation", sa.String(), nullable=True),
            sa.Column("overall_score", sa.Float(), nullable=True),
            sa.Column("submitted_at", sa.DateTime(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["assignment_id"], ["review_assignments.id"]),
            sa.ForeignKeyConstraint(["proposal_id"], ["proposals.id"]),
            sa.ForeignKeyConstraint(["reviewer_id"], ["reviewers.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("assignment_id"),
        )
        op.create_index("ix_reviews_proposal_id", "reviews", ["proposal_id"])
        op.create_index("ix_reviews_reviewer_id", "reviews", ["reviewer_id"])
        op.create_index("ix_reviews_submitted_at", "reviews", ["submitted_at"])

    if "review_criterion_scores" not in existing_tables:
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

    if "proposal_decisions" not in existing_tables:
        op.create_table(
            "proposal_decisions",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("proposal_id", sa.Uuid(), nullable=False),
            sa.Column("decision", sa.String(), nullable=False),
            sa.Column("justification", sa.String(), server_default="", nullable=False),
            sa.Column("decided_by", sa.Uuid(), nullable=False),
            sa.Column("decided_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["proposal_id"], ["proposals.id"]),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("proposal_id"),
        )

    if "identity_reveals" not in existing_tables:
        op.create_table(
            "identity_reveals",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("call_id", sa.Uuid(), nullable=False),
            sa.Column("proposal_id", sa.Uuid(), nullable=False),
            sa.Column("revealed_by", sa.Uuid(), nullable=False),
            sa.Column("reason", sa.String(), nullable=False),
            sa.Column("revealed_at", sa.DateTime(), nullable=False),
            sa.ForeignKeyConstraint(["call_id"], ["calls.id"]),
            sa.ForeignKeyConstraint(["proposal_id"], ["proposals.id"]),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_identity_reveals_call_id", "identity_reveals", ["call_id"])
        op.create_index("ix_identity_reveals_proposal_id", "identity_reveals", ["proposal_id"])
        op.create_index("ix_identity_reveals_revealed_by", "identity_reveals", ["revealed_by"])

    if "audit_entries" not in existing_tables:
        op.create_table(
            "audit_entries",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("organization_id", sa.Uuid(), nullable=False),
            sa.Column("entity_type", sa.String(), nullable=False),
            sa.Column("entity_id", sa.Uuid(), nullable=False),
            sa.Column("action", sa.String(), nullable=False),
            sa.Column("actor_id", sa.Uuid(), nullable=False),
            sa.Column("actor_role", sa.String(), nullable=False),
            sa.Column("call_id", sa.Uuid(), nullable=True),
            sa.Column("payload", sa.JSON(), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_entries_organization_id", "audit_entries", ["organization_id"])
        op.create_index("ix_audit_entries_entity_type", "audit_entries", ["entity_type"])
        op.create_index("ix_audit_entries_entity_id", "audit_entries", ["entity_id"])
        op.create_index("ix_audit_entries_action", "audit_entries", ["action"])
        op.create_index("ix_audit_entries_actor_id", "audit_entries", ["actor_id"])
        op.create_index("ix_audit_entries_call_id", "audit_entries", ["call_id"])
        op.create_index("ix_audit_entries_created_at", "audit_entries", ["created_at"])


def downgrade() -> None:
    op.drop_table("audit_entries")
    op.drop_table("identity_reveals")
    op.drop_table("proposal_decisions")
    op.drop_table("review_criterion_scores")
    op.drop_table("reviews")
    op.drop_table("reviewer_conflicts")
    op.drop_table("review_assignments")
    op.drop_table("proposals")
    op.drop_table("reviewers")
    op.drop_table("applicant_profiles")
    op.drop_table("calls")

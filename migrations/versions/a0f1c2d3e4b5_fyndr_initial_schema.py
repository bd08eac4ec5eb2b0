"""Initial FYNDR schema: tenants, RBAC, RFPs, supplier portal, scoring, library, activity.

Revision ID: a0f1c2d3e4b5
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision: str = "a0f1c2d3e4b5"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _ts(name: str, nullable: bool = True) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=False), nullable=nullable)


def upgrade() -> None:
    # --- tenants and RBAC ---
    op.create_table(
        "companies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        _ts("created_at", nullable=False),
    )
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("email", sa.String(320), nullable=False, unique=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at", nullable=False),
    )
    op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(64), nullable=False, unique=True),
        sa.Column("name", sa.String(128), nullable=False),
        _ts("created_at", nullable=False),
    )
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("key", sa.String(128), nullable=False, unique=True),
        sa.Column("name", sa.String(128), nullable=False),
        _ts("created_at", nullable=False),
    )
    op.create_table(
        "user_roles",
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_table(
        "role_permissions",
        sa.Column("role_id", sa.Integer(), sa.ForeignKey("roles.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("permission_id", sa.Integer(), sa.ForeignKey("permissions.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), primary_key=True),
        _ts("created_at", nullable=False),
        sa.Column("request_id", sa.String(64), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_user_email", sa.String(320), nullable=True),
        sa.Column("action", sa.String(128), nullable=False),
        sa.Column("entity_type", sa.String(128), nullable=True),
        sa.Column("entity_id", sa.String(128), nullable=True),
        sa.Column("reason", sa.String(512), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
    )

    # --- RFPs ---
    op.create_table(
        "rfps",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(32), nullable=False, server_default="draft"),
        sa.Column("priority", sa.String(16), nullable=False, server_default="MEDIUM"),
        sa.Column("budget", sa.Float(), nullable=True),
        _ts("due_date"),
        _ts("submitted_at"),
        sa.Column("internal_notes", sa.Text(), nullable=True),
        sa.Column("stage", sa.String(32), nullable=False, server_default="INTAKE"),
        _ts("stage_entered_at"),
        sa.Column("stage_sla_days", sa.Integer(), nullable=True),
        _ts("ask_questions_start"),
        _ts("ask_questions_end"),
        _ts("submission_start"),
        _ts("submission_end"),
        _ts("demo_window_start"),
        _ts("demo_window_end"),
        _ts("award_date"),
        sa.Column("requirements", JSONType, nullable=True),
        sa.Column("applied_template_snapshot", JSONType, nullable=True),
        sa.Column("opportunity_score", sa.Integer(), nullable=True),
        sa.Column("scoring_matrix_snapshot", JSONType, nullable=True),
        sa.Column("decision_brief_snapshot", JSONType, nullable=True),
        sa.Column("comparison_narrative", sa.Text(), nullable=True),
        sa.Column("award_status", sa.String(32), nullable=True),
        sa.Column("awarded_supplier_id", sa.Integer(), nullable=True),
        _ts("award_decided_at"),
        sa.Column("award_decided_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("award_snapshot", JSONType, nullable=True),
        sa.Column("award_notes", sa.Text(), nullable=True),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("archived_at"),
        sa.Column("archived_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("compliance_pack_snapshot", JSONType, nullable=True),
        _ts("created_at", nullable=False),
        _ts("updated_at", nullable=False),
    )
    op.create_index("idx_rfps_company_created", "rfps", ["company_id", "created_at"])
    op.create_index("idx_rfps_stage", "rfps", ["stage"])
    op.create_index("idx_rfps_archived", "rfps", ["is_archived"])

    op.create_table(
        "rfp_stage_tasks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("rfp_id", sa.Integer(), sa.ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("stage", sa.String(32), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at", nullable=False),
    )
    op.create_index("idx_stage_tasks_rfp_stage", "rfp_stage_tasks", ["rfp_id", "stage"])

    # --- suppliers and portal ---
    op.create_table(
        "supplier_contacts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("rfp_id", sa.Integer(), sa.ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("organization", sa.String(255), nullable=True),
        sa.Column("access_token", sa.String(128), nullable=True, unique=True),
        _ts("access_token_expires"),
        sa.Column("invitation_status", sa.String(16), nullable=False, server_default="PENDING"),
        _ts("invited_at"),
        sa.Column("portal_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("award_outcome_status", sa.String(32), nullable=True),
        _ts("created_at", nullable=False),
        sa.UniqueConstraint("rfp_id", "email", name="uq_supplier_contacts_rfp_email"),
    )
    op.create_index("idx_supplier_contacts_token", "supplier_contacts", ["access_token"])
    op.create_index("idx_supplier_contacts_portal_user", "supplier_contacts", ["portal_user_id"])

    op.create_table(
        "supplier_responses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("rfp_id", sa.Integer(), sa.ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "supplier_contact_id",
            sa.Integer(),
            sa.ForeignKey("supplier_contacts.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("status", sa.String(16), nullable=False, server_default="DRAFT"),
        sa.Column("structured_answers", JSONType, nullable=True),
        sa.Column("notes_from_supplier", sa.Text(), nullable=True),
        _ts("submitted_at"),
        sa.Column("extracted_requirements_coverage", JSONType, nullable=True),
        sa.Column("auto_score_json", JSONType, nullable=True),
        _ts("auto_score_generated_at"),
        sa.Column("overrides_json", JSONType, nullable=True),
        sa.Column("comments_json", JSONType, nullable=True),
        sa.Column("final_score", sa.Float(), nullable=True),
        sa.Column("readiness_score", sa.Float(), nullable=True),
        sa.Column("risk_flags", JSONType, nullable=True),
        sa.Column("award_outcome_status", sa.String(32), nullable=True),
        _ts("created_at", nullable=False),
        _ts("updated_at", nullable=False),
    )
    op.create_index("idx_supplier_responses_rfp_status", "supplier_responses", ["rfp_id", "status"])

    op.create_table(
        "supplier_response_attachments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "supplier_response_id",
            sa.Integer(),
            sa.ForeignKey("supplier_responses.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("file_name", sa.String(512), nullable=False),
        sa.Column("file_type", sa.String(128), nullable=True),
        sa.Column("file_size", sa.BigInteger(), nullable=False),
        sa.Column("storage_key", sa.String(1024), nullable=False),
        sa.Column("attachment_type", sa.String(32), nullable=False, server_default="GENERAL"),
        sa.Column("description", sa.Text(), nullable=True),
        _ts("created_at", nullable=False),
    )
    op.create_table(
        "supplier_questions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("rfp_id", sa.Integer(), sa.ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "supplier_contact_id", sa.Integer(), sa.ForeignKey("supplier_contacts.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("question", sa.Text(), nullable=False),
        sa.Column("answer", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        _ts("asked_at", nullable=False),
        _ts("answered_at"),
    )
    op.create_index("idx_supplier_questions_rfp_status", "supplier_questions", ["rfp_id", "status"])

    op.create_table(
        "supplier_broadcast_messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("rfp_id", sa.Integer(), sa.ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        _ts("created_at", nullable=False),
    )

    # --- executive summaries ---
    op.create_table(
        "executive_summary_documents",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("rfp_id", sa.Integer(), sa.ForeignKey("rfps.id", ondelete="CASCADE"), nullable=False),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("tone", sa.String(32), nullable=False, server_default="professional"),
        sa.Column("audience", sa.String(32), nullable=False, server_default="executive"),
        sa.Column("is_official", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at", nullable=False),
        _ts("updated_at", nullable=False),
    )
    op.create_index("idx_exec_summary_rfp_version", "executive_summary_documents", ["rfp_id", "version"])

    # --- requirements library ---
    op.create_table(
        "requirement_blocks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("category", sa.String(128), nullable=False),
        sa.Column("subcategory", sa.String(128), nullable=True),
        sa.Column("content_json", JSONType, nullable=False),
        sa.Column("visibility", sa.String(16), nullable=False, server_default="company"),
        sa.Column("is_archived", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at", nullable=False),
        _ts("updated_at", nullable=False),
    )
    op.create_index("idx_requirement_blocks_company", "requirement_blocks", ["company_id", "is_archived"])
    op.create_index("idx_requirement_blocks_category", "requirement_blocks", ["category", "subcategory"])

    op.create_table(
        "requirement_block_versions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("block_id", sa.Integer(), sa.ForeignKey("requirement_blocks.id", ondelete="CASCADE"), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("content_json", JSONType, nullable=False),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        _ts("created_at", nullable=False),
        sa.UniqueConstraint("block_id", "version", name="uq_requirement_block_version"),
    )
    op.create_table(
        "rfp_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("requirements", JSONType, nullable=True),
        _ts("created_at", nullable=False),
    )
    op.create_index("idx_rfp_templates_company", "rfp_templates", ["company_id"])

    # --- activity log ---
    op.create_table(
        "activity_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("company_id", sa.Integer(), sa.ForeignKey("companies.id", ondelete="CASCADE"), nullable=True),
        sa.Column("rfp_id", sa.Integer(), sa.ForeignKey("rfps.id", ondelete="CASCADE"), nullable=True),
        sa.Column(
            "supplier_response_id", sa.Integer(), sa.ForeignKey("supplier_responses.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column(
            "supplier_contact_id", sa.Integer(), sa.ForeignKey("supplier_contacts.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("actor_role", sa.String(16), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("details", JSONType, nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(512), nullable=True),
        _ts("created_at", nullable=False),
    )
    op.create_index("idx_activity_rfp_created", "activity_logs", ["rfp_id", "created_at"])
    op.create_index("idx_activity_company_event", "activity_logs", ["company_id", "event_type"])
    op.create_index("idx_activity_contact", "activity_logs", ["supplier_contact_id"])


def downgrade() -> None:
    for index, table in (
        ("idx_activity_contact", "activity_logs"),
        ("idx_activity_company_event", "activity_logs"),
        ("idx_activity_rfp_created", "activity_logs"),
    ):
        op.drop_index(index, table_name=table)
    op.drop_table("activity_logs")

    op.drop_index("idx_rfp_templates_company", table_name="rfp_templates")
    op.drop_table("rfp_templates")
    op.drop_table("requirement_block_versions")
    op.drop_index("idx_requirement_blocks_category", table_name="requirement_blocks")
    op.drop_index("idx_requirement_blocks_company", table_name="requirement_blocks")
    op.drop_table("requirement_blocks")

    op.drop_index("idx_exec_summary_rfp_version", table_name="executive_summary_documents")
    op.drop_table("executive_summary_documents")

    op.drop_table("supplier_broadcast_messages")
    op.drop_index("idx_supplier_questions_rfp_status", table_name="supplier_questions")
    op.drop_table("supplier_questions")
    op.drop_table("supplier_response_attachments")
    op.drop_index("idx_supplier_responses_rfp_status", table_name="supplier_responses")
    op.drop_table("supplier_responses")
    op.drop_index("idx_supplier_contacts_portal_user", table_name="supplier_contacts")
    op.drop_index("idx_supplier_contacts_token", table_name="supplier_contacts")
    op.drop_table("supplier_contacts")

    op.drop_index("idx_stage_tasks_rfp_stage", table_name="rfp_stage_tasks")
    op.drop_table("rfp_stage_tasks")
    op.drop_index("idx_rfps_archived", table_name="rfps")
    op.drop_index("idx_rfps_stage", table_name="rfps")
    op.drop_index("idx_rfps_company_created", table_name="rfps")
    op.drop_table("rfps")

    op.drop_table("audit_events")
    op.drop_table("role_permissions")
    op.drop_table("user_roles")
    op.drop_table("permissions")
    op.drop_table("roles")
    op.drop_table("users")
    op.drop_table("companies")

"""create loan workflow tables

Revision ID: 20261019_loan_workflow_initial
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "20261019_loan_workflow_initial"
down_revision = None
branch_labels = None
depends_on = None

LOAN_STATUSES = (
    "kyc_kyb_verification",
    "eligibility_check",
    "credit_analysis",
    "head_of_credit_review",
    "internal_approval_ceo",
    "committee_decision",
    "sme_offer_approval",
    "document_generation",
    "signing_execution",
    "awaiting_disbursement",
    "approved",
    "rejected",
    "disbursed",
    "cancelled",
)

CONTRACT_STATUSES = (
    "contract_uploaded",
    "contract_sent_for_signing",
    "contract_in_signing",
    "contract_partially_signed",
    "contract_fully_signed",
    "contract_voided",
    "contract_expired",
)


def _in_clause(column: str, values: tuple[str, ...]) -> str:
    return f"{column} IN ({', '.join(repr(value) for value in values)})"


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _lock_columns() -> list[sa.Column]:
    return [
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("verified_for_loan_application_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("locked_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("external_id", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=True),
        sa.Column("last_name", sa.String(length=100), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="entrepreneur"),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("external_id", name="uq_users_external_id"),
        sa.CheckConstraint(
            "role IN ('super-admin', 'admin', 'member', 'entrepreneur')", name="ck_users_role"
        ),
    )
    op.create_index("ix_users_external_id", "users", ["external_id"])
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "business_profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("country", sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_business_profiles_user_id", "business_profiles", ["user_id"])

    op.create_table(
        "loan_applications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("loan_id", sa.String(length=20), nullable=False),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("entrepreneur_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("loan_product_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("funding_amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("funding_currency", sa.String(length=10), nullable=False),
        sa.Column("converted_amount", sa.Numeric(18, 2), nullable=True),
        sa.Column("converted_currency", sa.String(length=10), nullable=True),
        sa.Column("exchange_rate", sa.Numeric(18, 6), nullable=True),
        sa.Column("repayment_period", sa.Integer(), nullable=False),
        sa.Column("intended_use_of_funds", sa.String(length=100), nullable=False),
        sa.Column("interest_rate", sa.Numeric(7, 4), nullable=False),
        sa.Column("loan_source", sa.String(length=100), nullable=False, server_default="Admin Platform"),
        sa.Column("status", sa.String(length=40), nullable=False, server_default="kyc_kyb_verification"),
        sa.Column("contract_status", sa.String(length=40), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disbursed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("eligibility_assessment_comment", sa.Text(), nullable=True),
        sa.Column("eligibility_assessment_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("eligibility_assessment_completed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("credit_assessment_comment", sa.Text(), nullable=True),
        sa.Column("credit_assessment_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("credit_assessment_completed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("head_of_credit_review_comment", sa.Text(), nullable=True),
        sa.Column("head_of_credit_review_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("head_of_credit_review_completed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("internal_approval_ceo_comment", sa.Text(), nullable=True),
        sa.Column("internal_approval_ceo_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("internal_approval_ceo_completed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("last_updated_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("last_updated_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["business_id"], ["business_profiles.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["entrepreneur_id"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["last_updated_by"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("loan_id", name="uq_loan_applications_loan_id"),
        sa.CheckConstraint("funding_amount > 0", name="ck_loan_app_funding_positive"),
        sa.CheckConstraint("repayment_period > 0", name="ck_loan_app_repayment_period_positive"),
        sa.CheckConstraint("interest_rate >= 0", name="ck_loan_app_interest_nonneg"),
        sa.CheckConstraint(_in_clause("status", LOAN_STATUSES), name="ck_loan_app_status"),
        sa.CheckConstraint(
            "contract_status IS NULL OR " + _in_clause("contract_status", CONTRACT_STATUSES),
            name="ck_loan_app_contract_status",
        ),
        sa.CheckConstraint(
            "status <> 'rejected' OR rejection_reason IS NOT NULL",
            name="ck_loan_app_rejection_reason",
        ),
    )
    op.create_index("ix_loan_applications_business_id", "loan_applications", ["business_id"])
    op.create_index("ix_loan_applications_entrepreneur_id", "loan_applications", ["entrepreneur_id"])
    op.create_index("ix_loan_applications_loan_product_id", "loan_applications", ["loan_product_id"])
    op.create_index("ix_loan_applications_status", "loan_applications", ["status"])

    op.create_table(
        "personal_documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("doc_type", sa.String(length=50), nullable=True),
        sa.Column("doc_url", sa.Text(), nullable=True),
        *_lock_columns(),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["verified_for_loan_application_id"], ["loan_applications.id"], ondelete="SET NULL"
        ),
    )
    op.create_index("ix_personal_documents_user_id", "personal_documents", ["user_id"])
    op.create_index(
        "ix_personal_documents_verified_for_loan_application_id",
        "personal_documents",
        ["verified_for_loan_application_id"],
    )
    op.create_index("ix_personal_documents_user_deleted", "personal_documents", ["user_id", "deleted_at"])

    op.create_table(
        "business_documents",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("business_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("doc_type", sa.String(length=50), nullable=False),
        sa.Column("doc_url", sa.Text(), nullable=True),
        sa.Column("doc_year", sa.Integer(), nullable=True),
        sa.Column("doc_bank_name", sa.String(length=255), nullable=True),
        *_lock_columns(),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["business_id"], ["business_profiles.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(
            ["verified_for_loan_application_id"], ["loan_applications.id"], ondelete="SET NULL"
        ),
    )
    op.create_index("ix_business_documents_business_id", "business_documents", ["business_id"])
    op.create_index(
        "ix_business_documents_verified_for_loan_application_id",
        "business_documents",
        ["verified_for_loan_application_id"],
    )
    op.create_index(
        "ix_business_documents_business_deleted", "business_documents", ["business_id", "deleted_at"]
    )

    op.create_table(
        "loan_application_document_verifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("loan_application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("document_type", sa.String(length=20), nullable=False),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("verification_status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("verified_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["loan_application_id"], ["loan_applications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["verified_by"], ["users.id"], ondelete="SET NULL"),
        sa.UniqueConstraint(
            "loan_application_id",
            "document_type",
            "document_id",
            name="uq_verification_loan_app_document",
        ),
        sa.CheckConstraint(
            "document_type IN ('personal', 'business')", name="ck_verification_document_type"
        ),
        sa.CheckConstraint(
            "verification_status IN ('pending', 'approved', 'rejected')",
            name="ck_verification_status",
        ),
    )
    op.create_index(
        "ix_loan_application_document_verifications_loan_application_id",
        "loan_application_document_verifications",
        ["loan_application_id"],
    )
    op.create_index(
        "ix_loan_application_document_verifications_document_id",
        "loan_application_document_verifications",
        ["document_id"],
    )

    op.create_table(
        "loan_application_audit_trail",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("loan_application_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("performed_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=40), nullable=True),
        sa.Column("previous_status", sa.String(length=40), nullable=True),
        sa.Column("new_status", sa.String(length=40), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.Column("user_agent", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["loan_application_id"], ["loan_applications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["performed_by_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index(
        "ix_loan_application_audit_trail_loan_application_id",
        "loan_application_audit_trail",
        ["loan_application_id"],
    )
    op.create_index(
        "ix_loan_application_audit_trail_event_type", "loan_application_audit_trail", ["event_type"]
    )
    op.create_index(
        "ix_loan_app_audit_trail_app_created",
        "loan_application_audit_trail",
        ["loan_application_id", "created_at"],
    )


def downgrade() -> None:
    op.drop_table("loan_application_audit_trail")
    op.drop_table("loan_application_document_verifications")
    op.drop_table("business_documents")
    op.drop_table("personal_documents")
    op.drop_table("loan_applications")
    op.drop_table("business_profiles")
    op.drop_table("users")

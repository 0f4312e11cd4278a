import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base
from app.schemas.loan import ContractStatus, LoanApplicationStatus


def _in_clause(column: str, values) -> str:
    quoted = ", ".join(f"'{value.value}'" for value in values)
    return f"{column} IN ({quoted})"


class LoanApplication(Base):
    __tablename__ = "loan_applications"
    __table_args__ = (
        UniqueConstraint("loan_id", name="uq_loan_applications_loan_id"),
        CheckConstraint("funding_amount > 0", name="ck_loan_app_funding_positive"),
        CheckConstraint("repayment_period > 0", name="ck_loan_app_repayment_period_positive"),
        CheckConstraint("interest_rate >= 0", name="ck_loan_app_interest_nonneg"),
        CheckConstraint(_in_clause("status", LoanApplicationStatus), name="ck_loan_app_status"),
        CheckConstraint(
            "contract_status IS NULL OR " + _in_clause("contract_status", ContractStatus),
            name="ck_loan_app_contract_status",
        ),
        CheckConstraint(
            "status <> 'rejected' OR rejection_reason IS NOT NULL",
            name="ck_loan_app_rejection_reason",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_id = Column(String(20), nullable=False)
    business_id = Column(
        UUID(as_uuid=True),
        ForeignKey("business_profiles.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    entrepreneur_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    loan_product_id = Column(UUID(as_uuid=True), nullable=False, index=True)

    funding_amount = Column(Numeric(18, 2), nullable=False)
    funding_currency = Column(String(10), nullable=False)
    converted_amount = Column(Numeric(18, 2), nullable=True)
    converted_currency = Column(String(10), nullable=True)
    exchange_rate = Column(Numeric(18, 6), nullable=True)
    repayment_period = Column(Integer, nullable=False)
    intended_use_of_funds = Column(String(100), nullable=False)
    interest_rate = Column(Numeric(7, 4), nullable=False)
    loan_source = Column(String(100), nullable=False, default="Admin Platform")

    status = Column(
        String(40),
        nullable=False,
        default=LoanApplicationStatus.KYC_KYB_VERIFICATION.value,
        index=True,
    )
    contract_status = Column(String(40), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    submitted_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejected_at = Column(DateTime(timezone=True), nullable=True)
    disbursed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    eligibility_assessment_comment = Column(Text, nullable=True)
    eligibility_assessment_completed_at = Column(DateTime(timezone=True), nullable=True)
    eligibility_assessment_completed_by = Column(UUID(as_uuid=True), nullable=True)
    credit_assessment_comment = Column(Text, nullable=True)
    credit_assessment_completed_at = Column(DateTime(timezone=True), nullable=True)
    credit_assessment_completed_by = Column(UUID(as_uuid=True), nullable=True)
    head_of_credit_review_comment = Column(Text, nullable=True)
    head_of_credit_review_completed_at = Column(DateTime(timezone=True), nullable=True)
    head_of_credit_review_completed_by = Column(UUID(as_uuid=True), nullable=True)
    internal_approval_ceo_comment = Column(Text, nullable=True)
    internal_approval_ceo_completed_at = Column(DateTime(timezone=True), nullable=True)
    internal_approval_ceo_completed_by = Column(UUID(as_uuid=True), nullable=True)

    created_by = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="RESTRICT"), nullable=False
    )
    last_updated_by = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    last_updated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)

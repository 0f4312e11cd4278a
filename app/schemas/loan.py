from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pydantic import ConfigDict, Field, field_validator

from app.schemas.common import CamelModel


class LoanApplicationStatus(str, Enum):
    KYC_KYB_VERIFICATION = "kyc_kyb_verification"
    ELIGIBILITY_CHECK = "eligibility_check"
    CREDIT_ANALYSIS = "credit_analysis"
    HEAD_OF_CREDIT_REVIEW = "head_of_credit_review"
    INTERNAL_APPROVAL_CEO = "internal_approval_ceo"
    COMMITTEE_DECISION = "committee_decision"
    SME_OFFER_APPROVAL = "sme_offer_approval"
    DOCUMENT_GENERATION = "document_generation"
    SIGNING_EXECUTION = "signing_execution"
    AWAITING_DISBURSEMENT = "awaiting_disbursement"
    APPROVED = "approved"
    REJECTED = "rejected"
    DISBURSED = "disbursed"
    CANCELLED = "cancelled"


PIPELINE_STAGES: tuple[LoanApplicationStatus, ...] = (
    LoanApplicationStatus.KYC_KYB_VERIFICATION,
    LoanApplicationStatus.ELIGIBILITY_CHECK,
    LoanApplicationStatus.CREDIT_ANALYSIS,
    LoanApplicationStatus.HEAD_OF_CREDIT_REVIEW,
    LoanApplicationStatus.INTERNAL_APPROVAL_CEO,
    LoanApplicationStatus.COMMITTEE_DECISION,
    LoanApplicationStatus.SME_OFFER_APPROVAL,
    LoanApplicationStatus.DOCUMENT_GENERATION,
    LoanApplicationStatus.SIGNING_EXECUTION,
    LoanApplicationStatus.AWAITING_DISBURSEMENT,
)

TERMINAL_STATUSES: frozenset[LoanApplicationStatus] = frozenset(
    {
        LoanApplicationStatus.APPROVED,
        LoanApplicationStatus.REJECTED,
        LoanApplicationStatus.DISBURSED,
        LoanApplicationStatus.CANCELLED,
    }
)


def is_terminal(status: str | LoanApplicationStatus) -> bool:
    try:
        return LoanApplicationStatus(status) in TERMINAL_STATUSES
    except ValueError:
        return False


def next_pipeline_stage(status: str | LoanApplicationStatus) -> LoanApplicationStatus | None:
    current = LoanApplicationStatus(status)
    if current not in PIPELINE_STAGES:
        return None
    index = PIPELINE_STAGES.index(current)
    if index + 1 >= len(PIPELINE_STAGES):
        return None
    return PIPELINE_STAGES[index + 1]


class ContractStatus(str, Enum):
    CONTRACT_UPLOADED = "contract_uploaded"
    CONTRACT_SENT_FOR_SIGNING = "contract_sent_for_signing"
    CONTRACT_IN_SIGNING = "contract_in_signing"
    CONTRACT_PARTIALLY_SIGNED = "contract_partially_signed"
    CONTRACT_FULLY_SIGNED = "contract_fully_signed"
    CONTRACT_VOIDED = "contract_voided"
    CONTRACT_EXPIRED = "contract_expired"


class AuditEventType(str, Enum):
    SUBMITTED = "submitted"
    CANCELLED = "cancelled"
    REVIEW_IN_PROGRESS = "review_in_progress"
    REJECTED = "rejected"
    APPROVED = "approved"
    AWAITING_DISBURSEMENT = "awaiting_disbursement"
    DISBURSED = "disbursed"
    STATUS_CHANGED = "status_changed"
    DOCUMENT_VERIFIED_APPROVED = "document_verified_approved"
    DOCUMENT_VERIFIED_REJECTED = "document_verified_rejected"
    KYC_KYB_COMPLETED = "kyc_kyb_completed"
    ELIGIBILITY_ASSESSMENT_COMPLETED = "eligibility_assessment_completed"
    CREDIT_ASSESSMENT_COMPLETED = "credit_assessment_completed"
    HEAD_OF_CREDIT_REVIEW_COMPLETED = "head_of_credit_review_completed"
    INTERNAL_APPROVAL_CEO_COMPLETED = "internal_approval_ceo_completed"
    COUNTER_OFFER_PROPOSED = "counter_offer_proposed"
    CONTRACT_UPLOADED = "contract_uploaded"
    CONTRACT_SENT_FOR_SIGNING = "contract_sent_for_signing"
    CONTRACT_SIGNER_OPENED = "contract_signer_opened"
    CONTRACT_SIGNED_BY_SIGNER = "contract_signed_by_signer"
    CONTRACT_FULLY_SIGNED = "contract_fully_signed"
    CONTRACT_VOIDED = "contract_voided"
    CONTRACT_EXPIRED = "contract_expired"


class LoanApplicationCreate(CamelModel):
    business_id: UUID
    entrepreneur_id: UUID
    loan_product_id: UUID
    funding_amount: Decimal = Field(gt=0)
    funding_currency: str = Field(min_length=3, max_length=10)
    converted_amount: Decimal | None = Field(default=None, gt=0)
    converted_currency: str | None = Field(default=None, min_length=3, max_length=10)
    exchange_rate: Decimal | None = Field(default=None, gt=0)
    repayment_period: int = Field(gt=0)
    intended_use_of_funds: str = Field(min_length=1, max_length=100)
    interest_rate: Decimal = Field(ge=0)
    loan_source: str | None = Field(default=None, max_length=100)

    @field_validator("funding_currency", "converted_currency")
    @classmethod
    def _upper_currency(cls, value: str | None) -> str | None:
        return value.upper() if value else value


class StatusUpdateRequest(CamelModel):
    status: LoanApplicationStatus
    reason: str | None = Field(default=None, max_length=500)
    rejection_reason: str | None = Field(default=None, max_length=1000)


class ContractStatusUpdateRequest(CamelModel):
    contract_status: ContractStatus
    note: str | None = Field(default=None, max_length=500)


class LoanApplicationDetailDTO(CamelModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    loan_id: str
    business_id: UUID
    entrepreneur_id: UUID
    loan_product_id: UUID
    funding_amount: Decimal
    funding_currency: str
    converted_amount: Decimal | None = None
    converted_currency: str | None = None
    exchange_rate: Decimal | None = None
    repayment_period: int
    intended_use_of_funds: str
    interest_rate: Decimal
    loan_source: str | None = None
    status: str
    contract_status: str | None = None
    rejection_reason: str | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    disbursed_at: datetime | None = None
    cancelled_at: datetime | None = None
    eligibility_assessment_comment: str | None = None
    eligibility_assessment_completed_at: datetime | None = None
    credit_assessment_comment: str | None = None
    credit_assessment_completed_at: datetime | None = None
    head_of_credit_review_comment: str | None = None
    head_of_credit_review_completed_at: datetime | None = None
    internal_approval_ceo_comment: str | None = None
    internal_approval_ceo_completed_at: datetime | None = None
    created_by: UUID
    last_updated_by: UUID | None = None
    last_updated_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ApplicantLoanApplicationDTO(CamelModel):
    """What an applicant sees of their own application: internal stages masked as ``pending``."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    loan_id: str
    business_id: UUID
    funding_amount: Decimal
    funding_currency: str
    repayment_period: int
    intended_use_of_funds: str
    interest_rate: Decimal
    status: str
    rejection_reason: str | None = None
    submitted_at: datetime | None = None
    approved_at: datetime | None = None
    rejected_at: datetime | None = None
    disbursed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime | None = None


class NextApprover(CamelModel):
    next_approver_email: str = Field(min_length=3, max_length=255)
    next_approver_name: str | None = Field(default=None, max_length=255)

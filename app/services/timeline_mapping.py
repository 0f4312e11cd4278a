"""Vocabulary tables shared by the audit recorder and the timeline projector.

Internal audit events use a fine-grained taxonomy. Applicants only ever see
the small public vocabulary below; everything else either folds into
``review_in_progress`` or is hidden.
"""

from __future__ import annotations

from app.schemas.loan import AuditEventType, ContractStatus, LoanApplicationStatus

PUBLIC_EVENT_TYPES: frozenset[AuditEventType] = frozenset(
    {
        AuditEventType.SUBMITTED,
        AuditEventType.CANCELLED,
        AuditEventType.REVIEW_IN_PROGRESS,
        AuditEventType.REJECTED,
        AuditEventType.APPROVED,
        AuditEventType.AWAITING_DISBURSEMENT,
        AuditEventType.DISBURSED,
    }
)

CONTRACT_EVENT_TYPES: frozenset[AuditEventType] = frozenset(
    {
        AuditEventType.CONTRACT_UPLOADED,
        AuditEventType.CONTRACT_SENT_FOR_SIGNING,
        AuditEventType.CONTRACT_SIGNER_OPENED,
        AuditEventType.CONTRACT_SIGNED_BY_SIGNER,
        AuditEventType.CONTRACT_FULLY_SIGNED,
        AuditEventType.CONTRACT_VOIDED,
        AuditEventType.CONTRACT_EXPIRED,
    }
)

_REVIEW_IN_PROGRESS_SOURCES: frozenset[AuditEventType] = frozenset(
    {
        AuditEventType.DOCUMENT_VERIFIED_APPROVED,
        AuditEventType.DOCUMENT_VERIFIED_REJECTED,
        AuditEventType.KYC_KYB_COMPLETED,
        AuditEventType.ELIGIBILITY_ASSESSMENT_COMPLETED,
        AuditEventType.CREDIT_ASSESSMENT_COMPLETED,
        AuditEventType.HEAD_OF_CREDIT_REVIEW_COMPLETED,
        AuditEventType.INTERNAL_APPROVAL_CEO_COMPLETED,
        AuditEventType.CONTRACT_UPLOADED,
        AuditEventType.CONTRACT_SENT_FOR_SIGNING,
        AuditEventType.CONTRACT_SIGNER_OPENED,
        AuditEventType.CONTRACT_SIGNED_BY_SIGNER,
        AuditEventType.CONTRACT_VOIDED,
        AuditEventType.CONTRACT_EXPIRED,
    }
)

_STAGE_TITLES: dict[LoanApplicationStatus, str] = {
    LoanApplicationStatus.KYC_KYB_VERIFICATION: "KYC/KYB verification in progress",
    LoanApplicationStatus.ELIGIBILITY_CHECK: "Eligibility check in progress",
    LoanApplicationStatus.CREDIT_ANALYSIS: "Credit analysis in progress",
    LoanApplicationStatus.HEAD_OF_CREDIT_REVIEW: "Head of credit review in progress",
    LoanApplicationStatus.INTERNAL_APPROVAL_CEO: "Internal approval (CEO) in progress",
    LoanApplicationStatus.COMMITTEE_DECISION: "Committee decision in progress",
    LoanApplicationStatus.SME_OFFER_APPROVAL: "SME offer approval in progress",
    LoanApplicationStatus.DOCUMENT_GENERATION: "Document generation in progress",
    LoanApplicationStatus.SIGNING_EXECUTION: "Signing and execution in progress",
}

_DIRECT_STATUS_EVENTS: dict[LoanApplicationStatus, AuditEventType] = {
    LoanApplicationStatus.AWAITING_DISBURSEMENT: AuditEventType.AWAITING_DISBURSEMENT,
    LoanApplicationStatus.APPROVED: AuditEventType.APPROVED,
    LoanApplicationStatus.REJECTED: AuditEventType.REJECTED,
    LoanApplicationStatus.DISBURSED: AuditEventType.DISBURSED,
    LoanApplicationStatus.CANCELLED: AuditEventType.CANCELLED,
}

EVENT_TITLES: dict[AuditEventType, str] = {
    AuditEventType.SUBMITTED: "Loan submitted successfully",
    AuditEventType.CANCELLED: "Loan application cancelled",
    AuditEventType.REJECTED: "Loan application rejected",
    AuditEventType.APPROVED: "Loan application approved",
    AuditEventType.AWAITING_DISBURSEMENT: "Awaiting disbursement",
    AuditEventType.DISBURSED: "Loan disbursed",
    AuditEventType.DOCUMENT_VERIFIED_APPROVED: "Document verified and approved",
    AuditEventType.DOCUMENT_VERIFIED_REJECTED: "Document verification rejected",
    AuditEventType.KYC_KYB_COMPLETED: "KYC/KYB verification completed",
    AuditEventType.ELIGIBILITY_ASSESSMENT_COMPLETED: "Eligibility assessment completed",
    AuditEventType.CREDIT_ASSESSMENT_COMPLETED: "Credit assessment completed",
    AuditEventType.HEAD_OF_CREDIT_REVIEW_COMPLETED: "Head of credit review completed",
    AuditEventType.INTERNAL_APPROVAL_CEO_COMPLETED: "Internal approval CEO completed",
    AuditEventType.COUNTER_OFFER_PROPOSED: "Counter offer proposed",
    AuditEventType.CONTRACT_UPLOADED: "Contract uploaded",
    AuditEventType.CONTRACT_SENT_FOR_SIGNING: "Contract sent for signing",
    AuditEventType.CONTRACT_SIGNER_OPENED: "Contract opened by signer",
    AuditEventType.CONTRACT_SIGNED_BY_SIGNER: "Contract signed by signer",
    AuditEventType.CONTRACT_FULLY_SIGNED: "Contract fully signed",
    AuditEventType.CONTRACT_VOIDED: "Contract voided",
    AuditEventType.CONTRACT_EXPIRED: "Contract expired",
}

PUBLIC_TITLES: dict[AuditEventType, str] = {
    AuditEventType.SUBMITTED: "Loan application submitted",
    AuditEventType.CANCELLED: "Loan application cancelled",
    AuditEventType.REVIEW_IN_PROGRESS: "Application under review",
    AuditEventType.REJECTED: "Loan application rejected",
    AuditEventType.APPROVED: "Loan application approved",
    AuditEventType.AWAITING_DISBURSEMENT: "Awaiting disbursement",
    AuditEventType.DISBURSED: "Loan disbursed",
}

_CONTRACT_STATUS_EVENTS: dict[ContractStatus, AuditEventType] = {
    ContractStatus.CONTRACT_UPLOADED: AuditEventType.CONTRACT_UPLOADED,
    ContractStatus.CONTRACT_SENT_FOR_SIGNING: AuditEventType.CONTRACT_SENT_FOR_SIGNING,
    ContractStatus.CONTRACT_IN_SIGNING: AuditEventType.CONTRACT_SIGNER_OPENED,
    ContractStatus.CONTRACT_PARTIALLY_SIGNED: AuditEventType.CONTRACT_SIGNED_BY_SIGNER,
    ContractStatus.CONTRACT_FULLY_SIGNED: AuditEventType.CONTRACT_FULLY_SIGNED,
    ContractStatus.CONTRACT_VOIDED: AuditEventType.CONTRACT_VOIDED,
    ContractStatus.CONTRACT_EXPIRED: AuditEventType.CONTRACT_EXPIRED,
}

GREEN = "green"
ORANGE = "orange"
GREY = "grey"

_LINE_COLORS: dict[AuditEventType, str] = {
    AuditEventType.SUBMITTED: GREEN,
    AuditEventType.APPROVED: GREEN,
    AuditEventType.DISBURSED: GREEN,
    AuditEventType.REJECTED: ORANGE,
    AuditEventType.CANCELLED: ORANGE,
    AuditEventType.REVIEW_IN_PROGRESS: ORANGE,
    AuditEventType.AWAITING_DISBURSEMENT: ORANGE,
}


def _coerce_event_type(value: str | AuditEventType) -> AuditEventType | None:
    try:
        return AuditEventType(value)
    except ValueError:
        return None


def event_type_for_status(status: str | LoanApplicationStatus) -> AuditEventType:
    try:
        current = LoanApplicationStatus(status)
    except ValueError:
        return AuditEventType.STATUS_CHANGED
    if current in _STAGE_TITLES:
        return AuditEventType.REVIEW_IN_PROGRESS
    return _DIRECT_STATUS_EVENTS.get(current, AuditEventType.STATUS_CHANGED)


def event_title(event_type: str | AuditEventType, status: str | LoanApplicationStatus | None = None) -> str:
    """Human title for an internal event; in-progress titles name the stage."""
    kind = _coerce_event_type(event_type)
    status_value = getattr(status, "value", status)
    if kind is AuditEventType.REVIEW_IN_PROGRESS and status is not None:
        try:
            stage_title = _STAGE_TITLES.get(LoanApplicationStatus(status))
        except ValueError:
            stage_title = None
        return stage_title or "Application under review"
    if kind is AuditEventType.STATUS_CHANGED or kind is None:
        return f"Status changed to {status_value}" if status_value else "Status changed"
    return EVENT_TITLES.get(kind, PUBLIC_TITLES.get(kind, kind.value))


def contract_event_type(contract_status: str | ContractStatus) -> AuditEventType:
    return _CONTRACT_STATUS_EVENTS[ContractStatus(contract_status)]


def public_event_type(event_type: str | AuditEventType) -> AuditEventType | None:
    """Applicant-facing type for an internal event, or None when it is hidden."""
    kind = _coerce_event_type(event_type)
    if kind is None:
        return None
    if kind in PUBLIC_EVENT_TYPES:
        return kind
    if kind in _REVIEW_IN_PROGRESS_SOURCES:
        return AuditEventType.REVIEW_IN_PROGRESS
    if kind is AuditEventType.CONTRACT_FULLY_SIGNED:
        return AuditEventType.AWAITING_DISBURSEMENT
    return None


def line_color(event_type: str | AuditEventType) -> str:
    kind = _coerce_event_type(event_type)
    return _LINE_COLORS.get(kind, GREY) if kind else GREY

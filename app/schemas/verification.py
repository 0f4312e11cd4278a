from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import Field, field_validator

from app.core.settings import settings
from app.schemas.common import CamelModel
from app.schemas.loan import NextApprover


class DocumentKind(str, Enum):
    PERSONAL = "personal"
    BUSINESS = "business"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class VerificationDecision(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


class VerifyDocumentRequest(CamelModel):
    status: VerificationDecision
    rejection_reason: str | None = Field(default=None, max_length=1000)
    notes: str | None = Field(default=None, max_length=1000)


class BulkVerificationItem(VerifyDocumentRequest):
    document_id: UUID
    document_type: DocumentKind


class BulkVerifyRequest(CamelModel):
    verifications: list[BulkVerificationItem] = Field(min_length=1)

    @field_validator("verifications")
    @classmethod
    def _cap_batch_size(cls, value: list[BulkVerificationItem]) -> list[BulkVerificationItem]:
        limit = settings.bulk_verification_max_items
        if len(value) > limit:
            raise ValueError(f"At most {limit} verifications can be submitted at once")
        return value


class CompleteVerificationRequest(CamelModel):
    next_approver: NextApprover | None = None


class ReviewerDTO(CamelModel):
    id: UUID
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None


class DocumentVerificationResult(CamelModel):
    document_id: UUID
    document_type: DocumentKind
    verification_status: VerificationStatus
    verified_by: ReviewerDTO
    verified_at: datetime
    rejection_reason: str | None = None
    notes: str | None = None
    locked_at: datetime


class BulkItemResult(CamelModel):
    document_id: UUID
    success: bool
    error: str | None = None
    code: str | None = None


class BulkVerifyResult(CamelModel):
    successful: int
    failed: int
    results: list[BulkItemResult]


class VerificationCompletion(CamelModel):
    application_id: UUID
    status: str
    completed_at: datetime
    completed_by: ReviewerDTO


class VerificationDocumentItem(CamelModel):
    id: UUID
    doc_type: str
    doc_url: str | None = None
    doc_year: int | None = None
    doc_bank_name: str | None = None
    created_at: datetime | None = None
    verification_status: VerificationStatus = VerificationStatus.PENDING
    verified_by: ReviewerDTO | None = None
    verified_at: datetime | None = None
    rejection_reason: str | None = None
    notes: str | None = None
    locked_at: datetime | None = None


class VerificationSummary(CamelModel):
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0


class VerificationDocuments(CamelModel):
    personal_documents: list[VerificationDocumentItem]
    business_documents: list[VerificationDocumentItem]
    summary: VerificationSummary

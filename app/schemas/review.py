from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import Field

from app.schemas.common import CamelModel
from app.schemas.loan import NextApprover
from app.schemas.verification import ReviewerDTO


class ReviewStage(str, Enum):
    ELIGIBILITY_ASSESSMENT = "eligibility_assessment"
    CREDIT_ASSESSMENT = "credit_assessment"
    HEAD_OF_CREDIT_REVIEW = "head_of_credit_review"
    INTERNAL_APPROVAL_CEO = "internal_approval_ceo"


class ReviewStageCompleteRequest(CamelModel):
    comment: str = Field(max_length=5000)
    next_approver: NextApprover | None = None


class ReviewStageCompletion(CamelModel):
    application_id: UUID
    stage: ReviewStage
    previous_status: str
    status: str
    comment: str
    completed_at: datetime
    completed_by: ReviewerDTO

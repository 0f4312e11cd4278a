from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.schemas.common import normalize_optional_text
from app.schemas.loan import AuditEventType, LoanApplicationStatus, NextApprover
from app.schemas.review import ReviewStage, ReviewStageCompletion
from app.schemas.verification import ReviewerDTO
from app.services.actors import ActorResolver
from app.services.audit import UNSET, AuditTrailRecorder
from app.services.errors import (
    ErrorKind,
    WorkflowError,
    internal_error_boundary,
    invalid_status,
)
from app.services.loan_workflow import StatusTransitionEngine, load_application
from app.services.timeline_mapping import event_title
from app.utils.clock import Clock, utcnow


@dataclass(frozen=True)
class StageRule:
    stage: ReviewStage
    from_status: LoanApplicationStatus
    to_status: LoanApplicationStatus
    event_type: AuditEventType
    field_prefix: str
    label: str


STAGE_RULES: dict[ReviewStage, StageRule] = {
    ReviewStage.ELIGIBILITY_ASSESSMENT: StageRule(
        ReviewStage.ELIGIBILITY_ASSESSMENT,
        LoanApplicationStatus.ELIGIBILITY_CHECK,
        LoanApplicationStatus.CREDIT_ANALYSIS,
        AuditEventType.ELIGIBILITY_ASSESSMENT_COMPLETED,
        "eligibility_assessment",
        "Eligibility assessment",
    ),
    ReviewStage.CREDIT_ASSESSMENT: StageRule(
        ReviewStage.CREDIT_ASSESSMENT,
        LoanApplicationStatus.CREDIT_ANALYSIS,
        LoanApplicationStatus.HEAD_OF_CREDIT_REVIEW,
        AuditEventType.CREDIT_ASSESSMENT_COMPLETED,
        "credit_assessment",
        "Credit assessment",
    ),
    ReviewStage.HEAD_OF_CREDIT_REVIEW: StageRule(
        ReviewStage.HEAD_OF_CREDIT_REVIEW,
        LoanApplicationStatus.HEAD_OF_CREDIT_REVIEW,
        LoanApplicationStatus.INTERNAL_APPROVAL_CEO,
        AuditEventType.HEAD_OF_CREDIT_REVIEW_COMPLETED,
        "head_of_credit_review",
        "Head of credit review",
    ),
    ReviewStage.INTERNAL_APPROVAL_CEO: StageRule(
        ReviewStage.INTERNAL_APPROVAL_CEO,
        LoanApplicationStatus.INTERNAL_APPROVAL_CEO,
        LoanApplicationStatus.COMMITTEE_DECISION,
        AuditEventType.INTERNAL_APPROVAL_CEO_COMPLETED,
        "internal_approval_ceo",
        "Internal approval (CEO)",
    ),
}


class ReviewStageService:
    """Reviewer sign-off for the stages between KYC/KYB and the committee."""

    def __init__(
        self,
        db: AsyncSession,
        actors: ActorResolver,
        audit: AuditTrailRecorder,
        engine: StatusTransitionEngine,
        *,
        clock: Clock = utcnow,
    ) -> None:
        self.db = db
        self.actors = actors
        self.audit = audit
        self.engine = engine
        self.clock = clock

    @internal_error_boundary("COMPLETE_REVIEW_STAGE_ERROR", "Failed to complete review stage")
    async def complete(
        self,
        application_id: UUID,
        stage: ReviewStage | str,
        actor: str,
        comment: str | None,
        next_approver: NextApprover | None = None,
    ) -> ReviewStageCompletion:
        try:
            rule = STAGE_RULES[ReviewStage(stage)]
        except ValueError as exc:
            raise WorkflowError(
                ErrorKind.VALIDATION_ERROR,
                "INVALID_REVIEW_STAGE",
                f"Unknown review stage: {stage}",
            ) from exc
        comment = normalize_optional_text(comment)
        if comment is None:
            raise WorkflowError(
                ErrorKind.VALIDATION_ERROR,
                "MISSING_COMMENT",
                f"{rule.label} comment is required",
            )

        application = await load_application(self.db, application_id)
        if application.status != rule.from_status.value:
            raise invalid_status(rule.from_status.value, application.status)
        user = await self.actors.require(actor)

        now = self.clock()
        change = await self.engine.apply(
            application.id,
            rule.to_status,
            actor,
            changes={
                f"{rule.field_prefix}_comment": comment,
                f"{rule.field_prefix}_completed_at": now,
                f"{rule.field_prefix}_completed_by": user.id,
            },
        )
        await self.audit.log_event(
            application.id,
            rule.event_type,
            event_title(rule.event_type),
            actor=actor,
            description=f"{rule.label} completed.",
            status=change.new_status,
            previous_status=change.previous_status,
            new_status=change.new_status,
            details={
                "comment": comment,
                "nextApprover": next_approver.model_dump(by_alias=True) if next_approver else UNSET,
            },
        )
        await self.engine.record(change)
        return ReviewStageCompletion(
            application_id=application.id,
            stage=rule.stage,
            previous_status=change.previous_status,
            status=change.new_status,
            comment=comment,
            completed_at=now,
            completed_by=ReviewerDTO(
                id=user.id,
                first_name=user.first_name,
                last_name=user.last_name,
                email=user.email,
            ),
        )

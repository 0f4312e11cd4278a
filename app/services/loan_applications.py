from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import commit_or_rollback
from app.models.business_profile import BusinessProfile
from app.models.loan_application import LoanApplication
from app.models.user import User
from app.schemas.loan import (
    ApplicantLoanApplicationDTO,
    AuditEventType,
    LoanApplicationCreate,
    LoanApplicationDetailDTO,
    LoanApplicationStatus,
)
from app.schemas.timeline import Audience
from app.services.actors import ActorResolver
from app.services.audit import AuditTrailRecorder
from app.services.display_codes import DisplayCodeAllocator
from app.services.errors import (
    ErrorKind,
    WorkflowError,
    internal_error_boundary,
    not_found,
)
from app.services.loan_workflow import VerificationBootstrap, load_application
from app.services.timeline import TimelineProjector, public_status_for
from app.services.timeline_mapping import event_title
from app.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

DEFAULT_LOAN_SOURCE = "Admin Platform"


class LoanApplicationService:
    def __init__(
        self,
        db: AsyncSession,
        actors: ActorResolver,
        audit: AuditTrailRecorder,
        allocator: DisplayCodeAllocator,
        *,
        clock: Clock = utcnow,
        verification_bootstrap: VerificationBootstrap | None = None,
    ) -> None:
        self.db = db
        self.actors = actors
        self.audit = audit
        self.allocator = allocator
        self.clock = clock
        self.verification_bootstrap = verification_bootstrap

    @internal_error_boundary("CREATE_LOAN_APPLICATION_ERROR", "Failed to create loan application")
    async def create(self, actor: str, payload: LoanApplicationCreate) -> LoanApplication:
        """Register a new application directly in the KYC/KYB verification stage.

        The ``submitted`` audit event and the pending verification records are
        written after the application row has committed.
        """
        user = await self.actors.require(actor)
        business = (
            await self.db.execute(
                select(BusinessProfile).where(
                    BusinessProfile.id == payload.business_id,
                    BusinessProfile.deleted_at.is_(None),
                )
            )
        ).scalar_one_or_none()
        if business is None:
            raise not_found("BUSINESS_NOT_FOUND", "Business not found")
        entrepreneur = (
            await self.db.execute(
                select(User).where(User.id == payload.entrepreneur_id, User.deleted_at.is_(None))
            )
        ).scalar_one_or_none()
        if entrepreneur is None:
            raise not_found("ENTREPRENEUR_NOT_FOUND", "Entrepreneur not found")
        if business.user_id != entrepreneur.id:
            raise WorkflowError(
                ErrorKind.VALIDATION_ERROR,
                "INVALID_ENTREPRENEUR",
                "Entrepreneur must be the owner of the business",
            )

        loan_id = await self.allocator.allocate()
        now = self.clock()
        application = LoanApplication(
            loan_id=loan_id,
            business_id=payload.business_id,
            entrepreneur_id=payload.entrepreneur_id,
            loan_product_id=payload.loan_product_id,
            funding_amount=payload.funding_amount,
            funding_currency=payload.funding_currency,
            converted_amount=payload.converted_amount,
            converted_currency=payload.converted_currency,
            exchange_rate=payload.exchange_rate,
            repayment_period=payload.repayment_period,
            intended_use_of_funds=payload.intended_use_of_funds,
            interest_rate=payload.interest_rate,
            loan_source=payload.loan_source or DEFAULT_LOAN_SOURCE,
            status=LoanApplicationStatus.KYC_KYB_VERIFICATION.value,
            created_by=user.id,
            submitted_at=now,
        )
        self.db.add(application)
        await commit_or_rollback(self.db)
        await self.db.refresh(application)
        logger.info(
            "Loan application created",
            extra={"loan_application_id": str(application.id), "loan_id": loan_id},
        )

        await self.audit.log_event(
            application.id,
            AuditEventType.SUBMITTED,
            event_title(AuditEventType.SUBMITTED),
            actor=actor,
            description=f"Loan application {loan_id} submitted successfully",
            status=application.status,
            details={
                "loanId": loan_id,
                "fundingAmount": payload.funding_amount,
                "fundingCurrency": payload.funding_currency,
                "repaymentPeriod": payload.repayment_period,
            },
        )
        if self.verification_bootstrap is not None:
            await self.verification_bootstrap(application.id)
        return application

    @internal_error_boundary("GET_LOAN_APPLICATION_ERROR", "Failed to get loan application")
    async def get(self, application_id: UUID) -> LoanApplication:
        return await load_application(self.db, application_id)

    @internal_error_boundary("GET_LOAN_APPLICATION_ERROR", "Failed to get loan application")
    async def view_for(
        self, application_id: UUID, viewer: User
    ) -> LoanApplicationDetailDTO | ApplicantLoanApplicationDTO:
        application = await load_application(self.db, application_id)
        audience = TimelineProjector.audience_for(application, viewer)
        if audience is Audience.INTERNAL:
            return LoanApplicationDetailDTO.model_validate(application)
        masked = ApplicantLoanApplicationDTO.model_validate(application)
        masked.status = public_status_for(application.status)
        return masked

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import commit_or_rollback
from app.models.loan_application import LoanApplication
from app.schemas.common import normalize_optional_text
from app.schemas.loan import ContractStatus, LoanApplicationStatus, is_terminal
from app.services.actors import ActorResolver
from app.services.audit import UNSET, AuditTrailRecorder
from app.services.errors import (
    ErrorKind,
    WorkflowError,
    application_not_found,
    internal_error_boundary,
)
from app.services.timeline_mapping import contract_event_type, event_title, event_type_for_status
from app.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

TERMINAL_TIMESTAMP_FIELDS: dict[LoanApplicationStatus, str] = {
    LoanApplicationStatus.APPROVED: "approved_at",
    LoanApplicationStatus.REJECTED: "rejected_at",
    LoanApplicationStatus.DISBURSED: "disbursed_at",
    LoanApplicationStatus.CANCELLED: "cancelled_at",
}

VerificationBootstrap = Callable[[UUID], Awaitable[int]]


def _coerce(enum_cls, value):
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise WorkflowError(
            ErrorKind.VALIDATION_ERROR,
            "INVALID_STATUS_VALUE",
            f"Unknown status value: {value}",
        ) from exc


@dataclass(frozen=True)
class StatusChange:
    application: LoanApplication
    previous_status: str
    new_status: str
    actor: str
    actor_id: UUID
    reason: str | None = None
    rejection_reason: str | None = None


async def load_application(db: AsyncSession, application_id: UUID) -> LoanApplication:
    stmt = select(LoanApplication).where(
        LoanApplication.id == application_id,
        LoanApplication.deleted_at.is_(None),
    )
    application = (await db.execute(stmt)).scalar_one_or_none()
    if application is None:
        raise application_not_found()
    return application


class StatusTransitionEngine:
    """Validates and applies loan application status changes.

    ``transition`` is ``apply`` followed by ``record``. Composite operations
    (KYC/KYB completion, review-stage sign-off) call the two halves
    separately so they can log their own events in between.

    Ordering between non-terminal statuses is not enforced: any non-terminal
    status may move to any other status, terminal ones included.
    """

    def __init__(
        self,
        db: AsyncSession,
        actors: ActorResolver,
        audit: AuditTrailRecorder,
        *,
        clock: Clock = utcnow,
        verification_bootstrap: VerificationBootstrap | None = None,
    ) -> None:
        self.db = db
        self.actors = actors
        self.audit = audit
        self.clock = clock
        self.verification_bootstrap = verification_bootstrap

    async def apply(
        self,
        application_id: UUID,
        new_status: LoanApplicationStatus | str,
        actor: str,
        *,
        reason: str | None = None,
        rejection_reason: str | None = None,
        changes: Mapping[str, Any] | None = None,
    ) -> StatusChange:
        target = _coerce(LoanApplicationStatus, new_status)
        application = await load_application(self.db, application_id)
        current = application.status

        if current == target.value:
            raise WorkflowError(
                ErrorKind.INVALID_TRANSITION,
                "NO_OP",
                f"Loan application is already in '{current}' status",
                details={"current_status": current},
            )
        if is_terminal(current):
            raise WorkflowError(
                ErrorKind.INVALID_TRANSITION,
                "INVALID_TRANSITION",
                f"Cannot change status of a loan application in terminal status '{current}'",
                details={"current_status": current, "requested_status": target.value},
            )
        rejection_reason = normalize_optional_text(rejection_reason)
        if target is LoanApplicationStatus.REJECTED and rejection_reason is None:
            raise WorkflowError(
                ErrorKind.MISSING_REJECTION_REASON,
                "MISSING_REJECTION_REASON",
                "Rejection reason is required when rejecting a loan application",
            )
        user = await self.actors.require(actor)

        now = self.clock()
        application.status = target.value
        timestamp_field = TERMINAL_TIMESTAMP_FIELDS.get(target)
        if timestamp_field and getattr(application, timestamp_field) is None:
            setattr(application, timestamp_field, now)
        application.rejection_reason = (
            rejection_reason if target is LoanApplicationStatus.REJECTED else None
        )
        for field_name, value in (changes or {}).items():
            setattr(application, field_name, value)
        application.last_updated_by = user.id
        application.last_updated_at = now
        self.db.add(application)
        await commit_or_rollback(self.db)
        await self.db.refresh(application)

        logger.info(
            "Loan application status changed",
            extra={
                "loan_application_id": str(application.id),
                "previous_status": current,
                "new_status": target.value,
            },
        )
        return StatusChange(
            application=application,
            previous_status=current,
            new_status=target.value,
            actor=actor,
            actor_id=user.id,
            reason=normalize_optional_text(reason),
            rejection_reason=rejection_reason,
        )

    async def record(self, change: StatusChange) -> None:
        application = change.application
        event_type = event_type_for_status(change.new_status)
        await self.audit.log_event(
            application.id,
            event_type,
            event_title(event_type, change.new_status),
            actor=change.actor,
            description=change.reason or change.rejection_reason,
            status=change.new_status,
            previous_status=change.previous_status,
            new_status=change.new_status,
            details={
                "reason": change.reason if change.reason else UNSET,
                "rejectionReason": change.rejection_reason if change.rejection_reason else UNSET,
            },
        )
        if change.new_status == LoanApplicationStatus.KYC_KYB_VERIFICATION.value:
            await self._bootstrap_verification(application.id)

    @internal_error_boundary("UPDATE_STATUS_ERROR", "Failed to update loan application status")
    async def transition(
        self,
        application_id: UUID,
        new_status: LoanApplicationStatus | str,
        actor: str,
        reason: str | None = None,
        rejection_reason: str | None = None,
    ) -> LoanApplication:
        change = await self.apply(
            application_id,
            new_status,
            actor,
            reason=reason,
            rejection_reason=rejection_reason,
        )
        await self.record(change)
        return change.application

    @internal_error_boundary("UPDATE_CONTRACT_STATUS_ERROR", "Failed to update contract status")
    async def update_contract_status(
        self,
        application_id: UUID,
        contract_status: ContractStatus | str,
        actor: str,
        note: str | None = None,
    ) -> LoanApplication:
        target = _coerce(ContractStatus, contract_status)
        application = await load_application(self.db, application_id)
        if is_terminal(application.status):
            raise WorkflowError(
                ErrorKind.INVALID_TRANSITION,
                "INVALID_TRANSITION",
                f"Cannot change contract status of a loan application in terminal status '{application.status}'",
                details={"current_status": application.status},
            )
        previous = application.contract_status
        if previous == target.value:
            raise WorkflowError(
                ErrorKind.INVALID_TRANSITION,
                "NO_OP",
                f"Contract is already in '{previous}' status",
                details={"contract_status": previous},
            )
        user = await self.actors.require(actor)

        now = self.clock()
        application.contract_status = target.value
        application.last_updated_by = user.id
        application.last_updated_at = now
        self.db.add(application)
        await commit_or_rollback(self.db)
        await self.db.refresh(application)

        event_type = contract_event_type(target)
        await self.audit.log_event(
            application.id,
            event_type,
            event_title(event_type),
            actor=actor,
            description=normalize_optional_text(note),
            status=application.status,
            details={
                "previousContractStatus": previous,
                "contractStatus": target.value,
            },
        )
        return application

    async def _bootstrap_verification(self, application_id: UUID) -> None:
        if self.verification_bootstrap is None:
            return
        try:
            created = await self.verification_bootstrap(application_id)
        except Exception:
            logger.exception(
                "Document verification bootstrap failed",
                extra={"loan_application_id": str(application_id)},
            )
            return
        logger.info(
            "Document verification records bootstrapped",
            extra={"loan_application_id": str(application_id), "created": created},
        )

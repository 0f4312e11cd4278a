from __future__ import annotations

import logging
from typing import Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import commit_in_savepoint, commit_or_rollback
from app.models.document_verification import LoanApplicationDocumentVerification
from app.models.documents import BusinessDocument, PersonalDocument
from app.models.loan_application import LoanApplication
from app.models.user import User
from app.schemas.common import normalize_optional_text
from app.schemas.loan import AuditEventType, LoanApplicationStatus, NextApprover
from app.schemas.verification import (
    BulkItemResult,
    BulkVerificationItem,
    BulkVerifyResult,
    DocumentKind,
    DocumentVerificationResult,
    ReviewerDTO,
    VerificationCompletion,
    VerificationDecision,
    VerificationDocumentItem,
    VerificationDocuments,
    VerificationStatus,
    VerificationSummary,
)
from app.services.actors import ActorResolver
from app.services.audit import UNSET, AuditTrailRecorder
from app.services.errors import (
    ErrorKind,
    WorkflowError,
    internal_error_boundary,
    invalid_status,
    not_found,
)
from app.services.loan_workflow import StatusTransitionEngine, load_application
from app.services.timeline_mapping import event_title
from app.utils.batch import apply_independently
from app.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

VERIFICATION_STAGE = LoanApplicationStatus.KYC_KYB_VERIFICATION

_DOCUMENT_MODELS = {
    DocumentKind.PERSONAL: PersonalDocument,
    DocumentKind.BUSINESS: BusinessDocument,
}


def _reviewer(user: User) -> ReviewerDTO:
    return ReviewerDTO(
        id=user.id,
        first_name=user.first_name,
        last_name=user.last_name,
        email=user.email,
    )


def _coerce_kind(value: DocumentKind | str) -> DocumentKind:
    try:
        return DocumentKind(value)
    except ValueError as exc:
        raise WorkflowError(
            ErrorKind.VALIDATION_ERROR,
            "INVALID_DOCUMENT_TYPE",
            "Document type must be 'personal' or 'business'",
        ) from exc


def _coerce_decision(value: VerificationDecision | str) -> VerificationDecision:
    try:
        return VerificationDecision(value)
    except ValueError as exc:
        raise WorkflowError(
            ErrorKind.VALIDATION_ERROR,
            "INVALID_VERIFICATION_STATUS",
            "Verification status must be 'approved' or 'rejected'",
        ) from exc


def _require_verification_stage(application: LoanApplication) -> None:
    if application.status != VERIFICATION_STAGE.value:
        raise invalid_status(VERIFICATION_STAGE.value, application.status)


def _summarize(items: Iterable[VerificationDocumentItem]) -> VerificationSummary:
    summary = VerificationSummary()
    for item in items:
        summary.total += 1
        if item.verification_status is VerificationStatus.APPROVED:
            summary.approved += 1
        elif item.verification_status is VerificationStatus.REJECTED:
            summary.rejected += 1
        else:
            summary.pending += 1
    return summary


class DocumentVerificationLedger:
    """Per-application verification state for KYC/KYB evidence.

    A verified document is locked to the application it was verified for.
    Verifying it again for that same application updates the decision in
    place; verifying it for any other application is refused.

    The lock is written without a version check, so two concurrent
    verifications of one document under different applications both pass
    the lock check and the later commit holds the lock.
    """

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

    @internal_error_boundary("VERIFY_DOCUMENT_ERROR", "Failed to verify document")
    async def verify(
        self,
        application_id: UUID,
        document_id: UUID,
        document_kind: DocumentKind | str,
        actor: str,
        decision: VerificationDecision | str,
        rejection_reason: str | None = None,
        notes: str | None = None,
    ) -> DocumentVerificationResult:
        kind = _coerce_kind(document_kind)
        decision = _coerce_decision(decision)
        application = await load_application(self.db, application_id)
        _require_verification_stage(application)

        document = await self._owned_document(application, kind, document_id)
        if document.is_locked_to_other(application.id):
            raise WorkflowError(
                ErrorKind.DOCUMENT_ALREADY_VERIFIED,
                "DOCUMENT_ALREADY_VERIFIED",
                "This document has already been verified for another loan application",
                details={"document_id": str(document_id)},
            )
        user = await self.actors.require(actor)
        rejection_reason = normalize_optional_text(rejection_reason)
        notes = normalize_optional_text(notes)
        if decision is VerificationDecision.REJECTED and rejection_reason is None:
            raise WorkflowError(
                ErrorKind.MISSING_REJECTION_REASON,
                "MISSING_REJECTION_REASON",
                "Rejection reason is required when rejecting a document",
            )

        now = self.clock()
        # a failed flush expires only the record and document, not the cached actor
        async with self.db.begin_nested():
            record = await self._record_for(application.id, kind, document_id)
            if record is None:
                record = LoanApplicationDocumentVerification(
                    loan_application_id=application.id,
                    document_type=kind.value,
                    document_id=document_id,
                )
            record.verification_status = decision.value
            record.verified_by = user.id
            record.verified_at = now
            record.rejection_reason = rejection_reason
            record.notes = notes
            document.lock_to(application.id, now)
            self.db.add(record)
            self.db.add(document)
        await commit_or_rollback(self.db)

        event_type = (
            AuditEventType.DOCUMENT_VERIFIED_APPROVED
            if decision is VerificationDecision.APPROVED
            else AuditEventType.DOCUMENT_VERIFIED_REJECTED
        )
        description = f"Document {document_id} ({kind.value}) {decision.value}"
        if rejection_reason:
            description = f"{description}: {rejection_reason}"
        await self.audit.log_event(
            application.id,
            event_type,
            event_title(event_type),
            actor=actor,
            description=description,
            status=application.status,
            details={
                "documentId": document_id,
                "documentType": kind.value,
                "status": decision.value,
                "rejectionReason": rejection_reason if rejection_reason else UNSET,
                "notes": notes if notes else UNSET,
            },
        )
        return DocumentVerificationResult(
            document_id=document_id,
            document_type=kind,
            verification_status=VerificationStatus(decision.value),
            verified_by=_reviewer(user),
            verified_at=now,
            rejection_reason=rejection_reason,
            notes=notes,
            locked_at=now,
        )

    @internal_error_boundary("BULK_VERIFY_ERROR", "Failed to bulk verify documents")
    async def bulk_verify(
        self,
        application_id: UUID,
        actor: str,
        items: list[BulkVerificationItem],
    ) -> BulkVerifyResult:
        """Verify each item on its own; one item's failure never blocks or undoes another."""
        application = await load_application(self.db, application_id)
        _require_verification_stage(application)
        await self.actors.require(actor)

        async def _verify_item(item: BulkVerificationItem) -> DocumentVerificationResult:
            return await self.verify(
                application_id,
                item.document_id,
                item.document_type,
                actor,
                item.status,
                rejection_reason=item.rejection_reason,
                notes=item.notes,
            )

        batch = await apply_independently(items, _verify_item)
        results = [
            BulkItemResult(
                document_id=outcome.item.document_id,
                success=outcome.ok,
                error=outcome.error.message if outcome.error else None,
                code=outcome.error.code if outcome.error else None,
            )
            for outcome in batch.outcomes
        ]
        logger.info(
            "Bulk document verification finished",
            extra={
                "loan_application_id": str(application_id),
                "successful": batch.successful,
                "failed": batch.failed,
            },
        )
        return BulkVerifyResult(successful=batch.successful, failed=batch.failed, results=results)

    @internal_error_boundary("COMPLETE_KYC_KYB_ERROR", "Failed to complete KYC/KYB verification")
    async def complete_verification(
        self,
        application_id: UUID,
        actor: str,
        next_approver: NextApprover | None = None,
    ) -> VerificationCompletion:
        application = await load_application(self.db, application_id)
        _require_verification_stage(application)

        records = await self._records_for_application(application.id)
        reviewed = sum(
            1 for record in records if record.verification_status != VerificationStatus.PENDING.value
        )
        if reviewed == 0:
            raise WorkflowError(
                ErrorKind.NO_DOCUMENTS_REVIEWED,
                "NO_DOCUMENTS_REVIEWED",
                "At least one document must be reviewed before completing KYC/KYB verification",
            )

        change = await self.engine.apply(
            application.id, LoanApplicationStatus.ELIGIBILITY_CHECK, actor
        )
        user = await self.actors.require(actor)
        await self.audit.log_event(
            application.id,
            AuditEventType.KYC_KYB_COMPLETED,
            event_title(AuditEventType.KYC_KYB_COMPLETED),
            actor=actor,
            description=f"KYC/KYB verification completed. Reviewed {reviewed} document(s).",
            status=change.new_status,
            previous_status=change.previous_status,
            new_status=change.new_status,
            details={
                "reviewedDocuments": reviewed,
                "totalDocuments": len(records),
                "nextApprover": next_approver.model_dump(by_alias=True) if next_approver else UNSET,
            },
        )
        await self.engine.record(change)
        return VerificationCompletion(
            application_id=application.id,
            status=change.new_status,
            completed_at=change.application.last_updated_at,
            completed_by=_reviewer(user),
        )

    async def bootstrap(self, application_id: UUID) -> int:
        """Create ``pending`` records for every known document still lacking one.

        Idempotent and never raises; returns how many records were created.
        """
        try:
            stmt = select(LoanApplication).where(
                LoanApplication.id == application_id,
                LoanApplication.deleted_at.is_(None),
            )
            application = (await self.db.execute(stmt)).scalar_one_or_none()
            if application is None:
                logger.warning(
                    "Loan application not found for verification bootstrap",
                    extra={"loan_application_id": str(application_id)},
                )
                return 0

            existing = {
                (record.document_type, record.document_id)
                for record in await self._records_for_application(application.id)
            }
            personal_ids = (
                await self.db.execute(
                    select(PersonalDocument.id).where(
                        PersonalDocument.user_id == application.entrepreneur_id,
                        PersonalDocument.deleted_at.is_(None),
                    )
                )
            ).scalars().all()
            business_ids = (
                await self.db.execute(
                    select(BusinessDocument.id).where(
                        BusinessDocument.business_id == application.business_id,
                        BusinessDocument.deleted_at.is_(None),
                    )
                )
            ).scalars().all()

            records = [
                LoanApplicationDocumentVerification(
                    loan_application_id=application.id,
                    document_type=kind.value,
                    document_id=document_id,
                    verification_status=VerificationStatus.PENDING.value,
                )
                for kind, ids in (
                    (DocumentKind.PERSONAL, personal_ids),
                    (DocumentKind.BUSINESS, business_ids),
                )
                for document_id in ids
                if (kind.value, document_id) not in existing
            ]
            if records:
                await commit_in_savepoint(self.db, *records)
            return len(records)
        except Exception:
            logger.exception(
                "Failed to create verification records",
                extra={"loan_application_id": str(application_id)},
            )
            return 0

    @internal_error_boundary("GET_DOCUMENTS_ERROR", "Failed to retrieve documents for verification")
    async def list_documents(self, application_id: UUID) -> VerificationDocuments:
        application = await load_application(self.db, application_id)
        personal_docs = (
            await self.db.execute(
                select(PersonalDocument)
                .where(
                    PersonalDocument.user_id == application.entrepreneur_id,
                    PersonalDocument.deleted_at.is_(None),
                )
                .order_by(PersonalDocument.created_at.asc())
            )
        ).scalars().all()
        business_docs = (
            await self.db.execute(
                select(BusinessDocument)
                .where(
                    BusinessDocument.business_id == application.business_id,
                    BusinessDocument.deleted_at.is_(None),
                )
                .order_by(BusinessDocument.created_at.asc())
            )
        ).scalars().all()
        records = {
            (record.document_type, record.document_id): record
            for record in await self._records_for_application(application.id)
        }
        reviewer_ids = {record.verified_by for record in records.values() if record.verified_by}
        reviewers: dict[UUID, User] = {}
        if reviewer_ids:
            users = (
                await self.db.execute(select(User).where(User.id.in_(reviewer_ids)))
            ).scalars().all()
            reviewers = {user.id: user for user in users}

        def _item(kind: DocumentKind, document) -> VerificationDocumentItem:
            record = records.get((kind.value, document.id))
            reviewer = reviewers.get(record.verified_by) if record and record.verified_by else None
            return VerificationDocumentItem(
                id=document.id,
                doc_type=document.doc_type or "",
                doc_url=document.doc_url,
                doc_year=getattr(document, "doc_year", None),
                doc_bank_name=getattr(document, "doc_bank_name", None),
                created_at=document.created_at,
                verification_status=(
                    VerificationStatus(record.verification_status)
                    if record
                    else VerificationStatus.PENDING
                ),
                verified_by=_reviewer(reviewer) if reviewer else None,
                verified_at=record.verified_at if record else None,
                rejection_reason=record.rejection_reason if record else None,
                notes=record.notes if record else None,
                locked_at=document.locked_at,
            )

        personal_items = [_item(DocumentKind.PERSONAL, doc) for doc in personal_docs]
        business_items = [_item(DocumentKind.BUSINESS, doc) for doc in business_docs]
        return VerificationDocuments(
            personal_documents=personal_items,
            business_documents=business_items,
            summary=_summarize([*personal_items, *business_items]),
        )

    async def _owned_document(
        self,
        application: LoanApplication,
        kind: DocumentKind,
        document_id: UUID,
    ) -> PersonalDocument | BusinessDocument:
        model = _DOCUMENT_MODELS[kind]
        owner_clause = (
            PersonalDocument.user_id == application.entrepreneur_id
            if kind is DocumentKind.PERSONAL
            else BusinessDocument.business_id == application.business_id
        )
        stmt = select(model).where(model.id == document_id, owner_clause, model.deleted_at.is_(None))
        document = (await self.db.execute(stmt)).scalar_one_or_none()
        if document is None:
            raise not_found(
                "DOCUMENT_NOT_FOUND",
                f"{kind.value.capitalize()} document not found or does not belong to this loan application",
            )
        return document

    async def _record_for(
        self,
        application_id: UUID,
        kind: DocumentKind,
        document_id: UUID,
    ) -> LoanApplicationDocumentVerification | None:
        stmt = select(LoanApplicationDocumentVerification).where(
            LoanApplicationDocumentVerification.loan_application_id == application_id,
            LoanApplicationDocumentVerification.document_type == kind.value,
            LoanApplicationDocumentVerification.document_id == document_id,
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def _records_for_application(
        self, application_id: UUID
    ) -> list[LoanApplicationDocumentVerification]:
        stmt = select(LoanApplicationDocumentVerification).where(
            LoanApplicationDocumentVerification.loan_application_id == application_id
        )
        return list((await self.db.execute(stmt)).scalars().all())

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Body, Depends

from app.api import deps
from app.models.user import User
from app.schemas.verification import (
    BulkVerifyRequest,
    BulkVerifyResult,
    CompleteVerificationRequest,
    DocumentKind,
    DocumentVerificationResult,
    VerificationCompletion,
    VerificationDocuments,
    VerifyDocumentRequest,
)
from app.services.workflow import Workflow

router = APIRouter(prefix="/loan-applications/{application_id}/kyc-kyb", tags=["kyc-kyb-verification"])


@router.get(
    "/documents",
    response_model=VerificationDocuments,
    summary="Documents under review for a loan application",
)
async def list_verification_documents(
    application_id: UUID,
    _: User = Depends(deps.require_staff),
    workflow: Workflow = Depends(deps.get_workflow),
) -> VerificationDocuments:
    return await workflow.ledger.list_documents(application_id)


@router.post(
    "/documents/bulk-verify",
    response_model=BulkVerifyResult,
    response_model_exclude_none=True,
    summary="Verify several documents; each item succeeds or fails on its own",
)
async def bulk_verify_documents(
    application_id: UUID,
    payload: BulkVerifyRequest,
    current_user: User = Depends(deps.require_staff),
    workflow: Workflow = Depends(deps.get_workflow),
) -> BulkVerifyResult:
    return await workflow.ledger.bulk_verify(
        application_id, current_user.external_id, payload.verifications
    )


@router.post(
    "/documents/{document_kind}/{document_id}/verify",
    response_model=DocumentVerificationResult,
    response_model_exclude_none=True,
    summary="Approve or reject one document for this loan application",
)
async def verify_document(
    application_id: UUID,
    document_kind: DocumentKind,
    document_id: UUID,
    payload: VerifyDocumentRequest,
    current_user: User = Depends(deps.require_staff),
    workflow: Workflow = Depends(deps.get_workflow),
) -> DocumentVerificationResult:
    return await workflow.ledger.verify(
        application_id,
        document_id,
        document_kind,
        current_user.external_id,
        payload.status,
        rejection_reason=payload.rejection_reason,
        notes=payload.notes,
    )


@router.post(
    "/complete",
    response_model=VerificationCompletion,
    summary="Close KYC/KYB verification and move to the eligibility check",
)
async def complete_verification(
    application_id: UUID,
    payload: CompleteVerificationRequest | None = Body(default=None),
    current_user: User = Depends(deps.require_staff),
    workflow: Workflow = Depends(deps.get_workflow),
) -> VerificationCompletion:
    return await workflow.ledger.complete_verification(
        application_id,
        current_user.external_id,
        next_approver=payload.next_approver if payload else None,
    )

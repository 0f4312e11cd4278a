from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status

from app.api import deps
from app.models.user import User
from app.schemas.loan import (
    ApplicantLoanApplicationDTO,
    ContractStatusUpdateRequest,
    LoanApplicationCreate,
    LoanApplicationDetailDTO,
    StatusUpdateRequest,
)
from app.schemas.review import ReviewStage, ReviewStageCompleteRequest, ReviewStageCompletion
from app.schemas.timeline import ContractTimeline, TimelineEvent
from app.services.workflow import Workflow

router = APIRouter(prefix="/loan-applications", tags=["loan-applications"])


@router.post(
    "",
    response_model=LoanApplicationDetailDTO,
    status_code=status.HTTP_201_CREATED,
    summary="Create a loan application on behalf of an entrepreneur",
)
async def create_loan_application(
    payload: LoanApplicationCreate,
    current_user: User = Depends(deps.require_staff),
    workflow: Workflow = Depends(deps.get_workflow),
) -> LoanApplicationDetailDTO:
    application = await workflow.applications.create(current_user.external_id, payload)
    return LoanApplicationDetailDTO.model_validate(application)


@router.get(
    "/{application_id}",
    response_model=LoanApplicationDetailDTO | ApplicantLoanApplicationDTO,
    summary="Get a loan application; applicants see a masked status",
)
async def get_loan_application(
    application_id: UUID,
    current_user: User = Depends(deps.get_current_user),
    workflow: Workflow = Depends(deps.get_workflow),
) -> LoanApplicationDetailDTO | ApplicantLoanApplicationDTO:
    return await workflow.applications.view_for(application_id, current_user)


@router.patch(
    "/{application_id}/status",
    response_model=LoanApplicationDetailDTO,
    summary="Move a loan application to another status",
)
async def update_loan_application_status(
    application_id: UUID,
    payload: StatusUpdateRequest,
    current_user: User = Depends(deps.require_staff),
    workflow: Workflow = Depends(deps.get_workflow),
) -> LoanApplicationDetailDTO:
    application = await workflow.engine.transition(
        application_id,
        payload.status,
        current_user.external_id,
        reason=payload.reason,
        rejection_reason=payload.rejection_reason,
    )
    return LoanApplicationDetailDTO.model_validate(application)


@router.post(
    "/{application_id}/contract-status",
    response_model=LoanApplicationDetailDTO,
    summary="Record contract signing progress",
)
async def update_contract_status(
    application_id: UUID,
    payload: ContractStatusUpdateRequest,
    current_user: User = Depends(deps.require_staff),
    workflow: Workflow = Depends(deps.get_workflow),
) -> LoanApplicationDetailDTO:
    application = await workflow.engine.update_contract_status(
        application_id,
        payload.contract_status,
        current_user.external_id,
        note=payload.note,
    )
    return LoanApplicationDetailDTO.model_validate(application)


@router.post(
    "/{application_id}/review-stages/{stage}/complete",
    response_model=ReviewStageCompletion,
    summary="Sign off a review stage and advance the application",
)
async def complete_review_stage(
    application_id: UUID,
    stage: ReviewStage,
    payload: ReviewStageCompleteRequest,
    current_user: User = Depends(deps.require_staff),
    workflow: Workflow = Depends(deps.get_workflow),
) -> ReviewStageCompletion:
    return await workflow.review_stages.complete(
        application_id,
        stage,
        current_user.external_id,
        payload.comment,
        next_approver=payload.next_approver,
    )


@router.get(
    "/{application_id}/timeline",
    response_model=list[TimelineEvent],
    response_model_exclude_none=True,
    summary="Loan application timeline for the caller's audience",
)
async def get_loan_application_timeline(
    application_id: UUID,
    current_user: User = Depends(deps.get_current_user),
    workflow: Workflow = Depends(deps.get_workflow),
) -> list[TimelineEvent]:
    return await workflow.timeline.project_for_viewer(application_id, current_user)


@router.get(
    "/{application_id}/contract-timeline",
    response_model=ContractTimeline,
    summary="Contract signing events and current contract status",
)
async def get_contract_timeline(
    application_id: UUID,
    _: User = Depends(deps.require_staff),
    workflow: Workflow = Depends(deps.get_workflow),
) -> ContractTimeline:
    return await workflow.timeline.contract_timeline(application_id)

from datetime import datetime, timezone
from uuid import uuid4

import pytest

from app.models.loan_application import LoanApplication
from app.models.loan_application_audit_event import LoanApplicationAuditEvent
from app.models.user import User
from app.services.errors import ErrorKind, WorkflowError
from app.services.workflow import build_workflow
from tests.conftest import (
    FIXED_NOW,
    FakeAsyncSession,
    FakeResult,
    entity_handler,
    make_application,
    make_user,
)


def _wire(db: FakeAsyncSession, application: LoanApplication | None, actor: User | None):
    db.on_execute(entity_handler(LoanApplication, FakeResult(scalar=application)))
    db.on_execute(entity_handler(User, FakeResult(scalar=actor)))
    return build_workflow(db, clock=lambda: FIXED_NOW)


def _audit_events(db: FakeAsyncSession) -> list[LoanApplicationAuditEvent]:
    return db.added_of(LoanApplicationAuditEvent)


@pytest.mark.asyncio
async def test_transition_to_approved_sets_timestamp_and_logs_event(fake_db, staff_user):
    application = make_application(status="signing_execution")
    workflow = _wire(fake_db, application, staff_user)

    result = await workflow.engine.transition(application.id, "approved", staff_user.external_id)

    assert result.status == "approved"
    assert result.approved_at == FIXED_NOW
    assert result.last_updated_by == staff_user.id
    assert result.last_updated_at == FIXED_NOW
    [event] = _audit_events(fake_db)
    assert event.event_type == "approved"
    assert event.title == "Loan application approved"
    assert event.previous_status == "signing_execution"
    assert event.new_status == "approved"
    assert event.performed_by_id == staff_user.id
    assert event.details is None
    assert fake_db.commits == 2


@pytest.mark.asyncio
async def test_internal_stage_change_is_logged_as_review_in_progress(fake_db, staff_user):
    application = make_application(status="eligibility_check")
    workflow = _wire(fake_db, application, staff_user)

    await workflow.engine.transition(
        application.id, "credit_analysis", staff_user.external_id, reason="Eligible on all criteria"
    )

    [event] = _audit_events(fake_db)
    assert event.event_type == "review_in_progress"
    assert event.title == "Credit analysis in progress"
    assert event.description == "Eligible on all criteria"
    assert event.details == {"reason": "Eligible on all criteria"}


@pytest.mark.asyncio
@pytest.mark.parametrize("terminal", ["approved", "rejected", "disbursed", "cancelled"])
async def test_terminal_status_cannot_change(fake_db, staff_user, terminal):
    application = make_application(status=terminal, rejection_reason="x")
    workflow = _wire(fake_db, application, staff_user)

    with pytest.raises(WorkflowError) as exc_info:
        await workflow.engine.transition(application.id, "credit_analysis", staff_user.external_id)

    assert exc_info.value.kind is ErrorKind.INVALID_TRANSITION
    assert exc_info.value.code == "INVALID_TRANSITION"
    assert application.status == terminal
    assert fake_db.commits == 0
    assert _audit_events(fake_db) == []


@pytest.mark.asyncio
async def test_same_status_is_rejected_as_no_op(fake_db, staff_user):
    application = make_application(status="credit_analysis")
    workflow = _wire(fake_db, application, staff_user)

    with pytest.raises(WorkflowError) as exc_info:
        await workflow.engine.transition(application.id, "credit_analysis", staff_user.external_id)

    assert exc_info.value.kind is ErrorKind.INVALID_TRANSITION
    assert exc_info.value.code == "NO_OP"


@pytest.mark.asyncio
@pytest.mark.parametrize("reason", [None, "", "   "])
async def test_rejection_requires_reason(fake_db, staff_user, reason):
    application = make_application(status="committee_decision")
    workflow = _wire(fake_db, application, staff_user)

    with pytest.raises(WorkflowError) as exc_info:
        await workflow.engine.transition(
            application.id, "rejected", staff_user.external_id, rejection_reason=reason
        )

    assert exc_info.value.kind is ErrorKind.MISSING_REJECTION_REASON
    assert application.status == "committee_decision"
    assert application.rejected_at is None


@pytest.mark.asyncio
async def test_rejection_stores_reason_and_logs_it(fake_db, staff_user):
    application = make_application(status="committee_decision")
    workflow = _wire(fake_db, application, staff_user)

    await workflow.engine.transition(
        application.id,
        "rejected",
        staff_user.external_id,
        rejection_reason="  Insufficient cash flow  ",
    )

    assert application.status == "rejected"
    assert application.rejection_reason == "Insufficient cash flow"
    assert application.rejected_at == FIXED_NOW
    [event] = _audit_events(fake_db)
    assert event.event_type == "rejected"
    assert event.description == "Insufficient cash flow"
    assert event.details == {"rejectionReason": "Insufficient cash flow"}


@pytest.mark.asyncio
async def test_terminal_timestamp_is_never_overwritten(fake_db, staff_user):
    earlier = datetime(2025, 12, 1, tzinfo=timezone.utc)
    application = make_application(status="awaiting_disbursement", disbursed_at=earlier)
    workflow = _wire(fake_db, application, staff_user)

    await workflow.engine.transition(application.id, "disbursed", staff_user.external_id)

    assert application.disbursed_at == earlier


@pytest.mark.asyncio
async def test_unknown_status_value_is_a_validation_error(fake_db, staff_user):
    application = make_application()
    workflow = _wire(fake_db, application, staff_user)

    with pytest.raises(WorkflowError) as exc_info:
        await workflow.engine.transition(application.id, "teleported", staff_user.external_id)

    assert exc_info.value.kind is ErrorKind.VALIDATION_ERROR
    assert exc_info.value.code == "INVALID_STATUS_VALUE"


@pytest.mark.asyncio
async def test_missing_application_is_not_found(fake_db, staff_user):
    workflow = _wire(fake_db, None, staff_user)

    with pytest.raises(WorkflowError) as exc_info:
        await workflow.engine.transition(uuid4(), "approved", staff_user.external_id)

    assert exc_info.value.kind is ErrorKind.NOT_FOUND
    assert exc_info.value.code == "LOAN_APPLICATION_NOT_FOUND"


@pytest.mark.asyncio
async def test_unresolved_actor_is_unauthorized(fake_db):
    application = make_application(status="credit_analysis")
    workflow = _wire(fake_db, application, None)

    with pytest.raises(WorkflowError) as exc_info:
        await workflow.engine.transition(application.id, "head_of_credit_review", "sub-ghost")

    assert exc_info.value.kind is ErrorKind.UNAUTHORIZED
    assert application.status == "credit_analysis"
    assert fake_db.commits == 0


@pytest.mark.asyncio
async def test_commit_failure_is_wrapped_as_internal_error(fake_db, staff_user):
    application = make_application(status="credit_analysis")
    workflow = _wire(fake_db, application, staff_user)
    fake_db.fail_commits = 1

    with pytest.raises(WorkflowError) as exc_info:
        await workflow.engine.transition(application.id, "head_of_credit_review", staff_user.external_id)

    assert exc_info.value.kind is ErrorKind.INTERNAL
    assert exc_info.value.code == "UPDATE_STATUS_ERROR"
    assert fake_db.rollbacks == 1
    assert _audit_events(fake_db) == []


@pytest.mark.asyncio
async def test_entering_verification_bootstraps_records(fake_db, staff_user):
    application = make_application(status="eligibility_check")
    workflow = _wire(fake_db, application, staff_user)
    calls = []

    async def _bootstrap(application_id):
        calls.append(application_id)
        return 2

    workflow.engine.verification_bootstrap = _bootstrap

    await workflow.engine.transition(
        application.id, "kyc_kyb_verification", staff_user.external_id
    )

    assert calls == [application.id]


@pytest.mark.asyncio
async def test_bootstrap_failure_does_not_fail_transition(fake_db, staff_user):
    application = make_application(status="eligibility_check")
    workflow = _wire(fake_db, application, staff_user)

    async def _broken(application_id):
        raise RuntimeError("document store unavailable")

    workflow.engine.verification_bootstrap = _broken

    result = await workflow.engine.transition(
        application.id, "kyc_kyb_verification", staff_user.external_id
    )

    assert result.status == "kyc_kyb_verification"
    assert len(_audit_events(fake_db)) == 1


@pytest.mark.asyncio
async def test_contract_status_update_logs_contract_event(fake_db, staff_user):
    application = make_application(status="signing_execution")
    workflow = _wire(fake_db, application, staff_user)

    result = await workflow.engine.update_contract_status(
        application.id, "contract_fully_signed", staff_user.external_id, note="All parties signed"
    )

    assert result.contract_status == "contract_fully_signed"
    assert result.status == "signing_execution"
    [event] = _audit_events(fake_db)
    assert event.event_type == "contract_fully_signed"
    assert event.title == "Contract fully signed"
    assert event.description == "All parties signed"
    assert event.details == {
        "previousContractStatus": None,
        "contractStatus": "contract_fully_signed",
    }


@pytest.mark.asyncio
async def test_contract_status_repeat_is_no_op(fake_db, staff_user):
    application = make_application(
        status="signing_execution", contract_status="contract_sent_for_signing"
    )
    workflow = _wire(fake_db, application, staff_user)

    with pytest.raises(WorkflowError) as exc_info:
        await workflow.engine.update_contract_status(
            application.id, "contract_sent_for_signing", staff_user.external_id
        )

    assert exc_info.value.code == "NO_OP"


@pytest.mark.asyncio
async def test_contract_status_of_terminal_application_is_refused(fake_db, staff_user):
    application = make_application(status="cancelled")
    workflow = _wire(fake_db, application, staff_user)

    with pytest.raises(WorkflowError) as exc_info:
        await workflow.engine.update_contract_status(
            application.id, "contract_uploaded", staff_user.external_id
        )

    assert exc_info.value.kind is ErrorKind.INVALID_TRANSITION
    assert application.contract_status is None


@pytest.mark.asyncio
async def test_other_actor_is_recorded_on_audit_event(fake_db):
    reviewer = make_user(role="member", external_id="sub-member")
    application = make_application(status="head_of_credit_review")
    workflow = _wire(fake_db, application, reviewer)

    await workflow.engine.transition(application.id, "internal_approval_ceo", "sub-member")

    [event] = _audit_events(fake_db)
    assert event.performed_by_id == reviewer.id
    assert event.created_at == FIXED_NOW

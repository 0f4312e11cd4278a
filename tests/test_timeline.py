from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from app.models.loan_application import LoanApplication
from app.models.loan_application_audit_event import LoanApplicationAuditEvent
from app.models.user import User
from app.schemas.timeline import Audience
from app.services.errors import ErrorKind, WorkflowError
from app.services.timeline import (
    TimelineProjector,
    build_timeline,
    format_date,
    format_time,
    public_status_for,
)
from app.services.timeline_mapping import event_title, public_event_type
from tests.conftest import (
    FIXED_NOW,
    FakeResult,
    entity_handler,
    make_application,
    make_audit_event,
    make_user,
)

UTC = ZoneInfo("UTC")


def _at(minutes: int) -> datetime:
    return FIXED_NOW + timedelta(minutes=minutes)


@pytest.fixture
def reviewer():
    return make_user(first_name="Ada", last_name="Okafor")


@pytest.fixture
def application(entrepreneur, staff_user):
    return make_application(
        entrepreneur=entrepreneur, creator=staff_user, status="credit_analysis"
    )


@pytest.fixture
def audit_trail(application, reviewer):
    return [
        make_audit_event(
            application=application,
            event_type="submitted",
            created_at=_at(0),
            title="Loan submitted successfully",
            description="Loan application LN-48213 submitted successfully",
        ),
        make_audit_event(
            application=application,
            event_type="document_verified_approved",
            created_at=_at(10),
            title="Document verified and approved",
            description="Document 1 (personal) approved",
            performed_by_id=reviewer.id,
        ),
        make_audit_event(
            application=application,
            event_type="kyc_kyb_completed",
            created_at=_at(20),
            title="KYC/KYB verification completed",
            performed_by_id=reviewer.id,
        ),
        make_audit_event(
            application=application,
            event_type="status_changed",
            created_at=_at(25),
            title="Status changed to something",
        ),
        make_audit_event(
            application=application,
            event_type="review_in_progress",
            created_at=_at(30),
            title="Eligibility check in progress",
            performed_by_id=reviewer.id,
        ),
    ]


def test_internal_timeline_keeps_detail_but_uses_public_types(application, audit_trail, reviewer):
    events = build_timeline(
        application, audit_trail, {reviewer.id: reviewer}, Audience.INTERNAL, UTC
    )

    assert [event.type for event in events] == [
        "submitted",
        "review_in_progress",
        "review_in_progress",
        "review_in_progress",
    ]
    verified = events[1]
    assert verified.title == "Document verified and approved"
    assert verified.description == "Document 1 (personal) approved"
    assert verified.performed_by == "Ada Okafor"
    assert verified.performed_by_id == str(reviewer.id)
    assert verified.line_color == "orange"
    assert events[0].line_color == "green"


def test_external_timeline_masks_and_collapses_runs(application, audit_trail, reviewer):
    events = build_timeline(
        application, audit_trail, {reviewer.id: reviewer}, Audience.EXTERNAL, UTC
    )

    assert [event.type for event in events] == ["submitted", "review_in_progress"]
    assert events[0].title == "Loan application submitted"
    assert events[1].title == "Application under review"
    assert events[1].id == str(audit_trail[1].id)
    for event in events:
        assert event.description is None
        assert event.performed_by is None
        assert event.performed_by_id is None


def test_external_timeline_only_collapses_adjacent_events(application):
    trail = [
        make_audit_event(application=application, event_type="review_in_progress", created_at=_at(1)),
        make_audit_event(application=application, event_type="contract_fully_signed", created_at=_at(2)),
        make_audit_event(application=application, event_type="contract_voided", created_at=_at(3)),
    ]

    events = build_timeline(application, trail, {}, Audience.EXTERNAL, UTC)

    assert [event.type for event in events] == [
        "submitted",
        "review_in_progress",
        "awaiting_disbursement",
        "review_in_progress",
    ]


@pytest.mark.parametrize(
    ("trail_types", "expected"),
    [
        (
            ["kyc_kyb_completed", "eligibility_assessment_completed"],
            ["submitted", "review_in_progress"],
        ),
        (
            ["kyc_kyb_completed", "cancelled", "eligibility_assessment_completed"],
            ["submitted", "review_in_progress", "cancelled", "review_in_progress"],
        ),
    ],
)
def test_external_timeline_collapses_consecutive_stage_completions(
    application, trail_types, expected
):
    trail = [
        make_audit_event(application=application, event_type=event_type, created_at=_at(index + 1))
        for index, event_type in enumerate(trail_types)
    ]

    events = build_timeline(application, trail, {}, Audience.EXTERNAL, UTC)

    assert [event.type for event in events] == expected


def test_submitted_event_is_synthesized_when_missing(application, staff_user):
    trail = [
        make_audit_event(application=application, event_type="review_in_progress", created_at=_at(5))
    ]

    events = build_timeline(application, trail, {staff_user.id: staff_user}, Audience.INTERNAL, UTC)

    first = events[0]
    assert first.id == f"submitted-{application.id}"
    assert first.type == "submitted"
    assert first.description == f"Loan application {application.loan_id} submitted successfully"
    assert first.performed_by == staff_user.display_name
    assert first.date == "2026-03-14"
    assert first.time == "9:30AM"


def test_no_submitted_event_without_submission_time(application):
    application.submitted_at = None

    assert build_timeline(application, [], {}, Audience.EXTERNAL, UTC) == []


def test_events_are_ordered_by_time_not_by_input(application):
    late = make_audit_event(application=application, event_type="approved", created_at=_at(60))
    early = make_audit_event(application=application, event_type="submitted", created_at=_at(0))

    events = build_timeline(application, [late, early], {}, Audience.INTERNAL, UTC)

    assert [event.type for event in events] == ["submitted", "approved"]


def test_format_time_uses_twelve_hour_clock():
    assert format_time(datetime(2026, 1, 1, 0, 5, tzinfo=timezone.utc), UTC) == "12:05AM"
    assert format_time(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc), UTC) == "12:00PM"
    assert format_time(datetime(2026, 1, 1, 13, 7, tzinfo=timezone.utc), UTC) == "1:07PM"


def test_formatting_follows_configured_timezone():
    late_evening = datetime(2026, 1, 1, 22, 15, tzinfo=timezone.utc)
    nairobi = ZoneInfo("Africa/Nairobi")

    assert format_date(late_evening, nairobi) == "2026-01-02"
    assert format_time(late_evening, nairobi) == "1:15AM"


@pytest.mark.parametrize(
    ("status", "expected"),
    [
        ("kyc_kyb_verification", "pending"),
        ("committee_decision", "pending"),
        ("awaiting_disbursement", "pending"),
        ("approved", "approved"),
        ("rejected", "rejected"),
        ("disbursed", "disbursed"),
        ("cancelled", "cancelled"),
        ("legacy_status", "pending"),
    ],
)
def test_public_status_masks_internal_stages(status, expected):
    assert public_status_for(status) == expected


def test_public_vocabulary_mapping():
    assert public_event_type("eligibility_assessment_completed").value == "review_in_progress"
    assert public_event_type("contract_fully_signed").value == "awaiting_disbursement"
    assert public_event_type("disbursed").value == "disbursed"
    assert public_event_type("counter_offer_proposed") is None
    assert public_event_type("status_changed") is None
    assert public_event_type("not_an_event") is None


def test_event_title_fallbacks():
    assert event_title("review_in_progress", "committee_decision") == "Committee decision in progress"
    assert event_title("status_changed", "custom") == "Status changed to custom"
    assert event_title("approved") == "Loan application approved"


def test_audience_follows_viewer_role(application, entrepreneur, staff_user):
    stranger = make_user(role="entrepreneur")

    assert TimelineProjector.audience_for(application, staff_user) is Audience.INTERNAL
    assert TimelineProjector.audience_for(application, entrepreneur) is Audience.EXTERNAL
    with pytest.raises(WorkflowError) as exc_info:
        TimelineProjector.audience_for(application, stranger)
    assert exc_info.value.kind is ErrorKind.FORBIDDEN


@pytest.mark.asyncio
async def test_projector_loads_trail_and_actors(fake_db, application, audit_trail, reviewer, entrepreneur):
    fake_db.on_execute(entity_handler(LoanApplication, FakeResult(scalar=application)))
    fake_db.on_execute(entity_handler(LoanApplicationAuditEvent, FakeResult(items=audit_trail)))
    fake_db.on_execute(entity_handler(User, FakeResult(items=[reviewer])))
    projector = TimelineProjector(fake_db, timezone_name="UTC")

    internal = await projector.project(application.id, "internal")
    external = await projector.project_for_viewer(application.id, entrepreneur)

    assert internal[1].performed_by == "Ada Okafor"
    assert [event.type for event in external] == ["submitted", "review_in_progress"]


@pytest.mark.asyncio
async def test_projector_wraps_unexpected_errors(fake_db, application):
    def _boom(_stmt):
        raise RuntimeError("timeout")

    fake_db.on_execute(entity_handler(LoanApplication, FakeResult(scalar=application)))
    fake_db.on_execute(entity_handler(LoanApplicationAuditEvent, _boom))

    with pytest.raises(WorkflowError) as exc_info:
        await TimelineProjector(fake_db, timezone_name="UTC").project(application.id, "internal")

    assert exc_info.value.kind is ErrorKind.INTERNAL
    assert exc_info.value.code == "GET_TIMELINE_ERROR"


@pytest.mark.asyncio
async def test_contract_timeline_lists_contract_events(fake_db, application, reviewer):
    application.contract_status = "contract_in_signing"
    trail = [
        make_audit_event(
            application=application,
            event_type="contract_uploaded",
            created_at=_at(1),
            title="Contract uploaded",
            performed_by_id=reviewer.id,
        ),
        make_audit_event(
            application=application,
            event_type="contract_signer_opened",
            created_at=_at(2),
            title="Contract opened by signer",
        ),
    ]
    fake_db.on_execute(entity_handler(LoanApplication, FakeResult(scalar=application)))
    fake_db.on_execute(entity_handler(LoanApplicationAuditEvent, FakeResult(items=trail)))
    fake_db.on_execute(entity_handler(User, FakeResult(items=[reviewer])))

    result = await TimelineProjector(fake_db).contract_timeline(application.id)

    assert result.current_status == "contract_in_signing"
    assert [event.type for event in result.events] == ["contract_uploaded", "contract_signer_opened"]
    assert result.events[0].performed_by == "Ada Okafor"
    assert result.events[1].performed_by is None

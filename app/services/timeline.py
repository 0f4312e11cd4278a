from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Mapping
from uuid import UUID
from zoneinfo import ZoneInfo

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.settings import settings
from app.models.loan_application import LoanApplication
from app.models.loan_application_audit_event import LoanApplicationAuditEvent
from app.models.user import User
from app.schemas.loan import AuditEventType, LoanApplicationStatus, TERMINAL_STATUSES
from app.schemas.timeline import Audience, ContractTimeline, ContractTimelineEvent, TimelineEvent
from app.services.errors import ErrorKind, WorkflowError, internal_error_boundary
from app.services.loan_workflow import load_application
from app.services.timeline_mapping import (
    CONTRACT_EVENT_TYPES,
    PUBLIC_TITLES,
    line_color,
    public_event_type,
)

PENDING_PUBLIC_STATUS = "pending"


def format_date(moment: datetime, tz: ZoneInfo) -> str:
    return moment.astimezone(tz).strftime("%Y-%m-%d")


def format_time(moment: datetime, tz: ZoneInfo) -> str:
    local = moment.astimezone(tz)
    hour = local.hour % 12 or 12
    meridiem = "PM" if local.hour >= 12 else "AM"
    return f"{hour}:{local.minute:02d}{meridiem}"


def public_status_for(status: str) -> str:
    """Status as an applicant sees it: every internal review stage reads as ``pending``."""
    try:
        current = LoanApplicationStatus(status)
    except ValueError:
        return PENDING_PUBLIC_STATUS
    if current in TERMINAL_STATUSES:
        return current.value
    return PENDING_PUBLIC_STATUS


@dataclass(frozen=True)
class _Entry:
    moment: datetime
    event: TimelineEvent


def _actor_name(user: User | None) -> str | None:
    return user.display_name if user else None


def build_timeline(
    application: LoanApplication,
    audit_events: Iterable[LoanApplicationAuditEvent],
    users_by_id: Mapping[UUID, User],
    audience: Audience,
    tz: ZoneInfo,
) -> list[TimelineEvent]:
    """Project raw audit events into the timeline one audience is allowed to see.

    Both audiences only ever see the public event vocabulary. The external
    audience additionally loses descriptions, actors and stage-specific
    titles, and runs of the same public type collapse to their first entry.
    """
    external = audience is Audience.EXTERNAL
    audit_events = list(audit_events)
    entries: list[_Entry] = []

    has_submitted = any(
        entry.event_type == AuditEventType.SUBMITTED.value for entry in audit_events
    )
    if not has_submitted and application.submitted_at is not None:
        creator = users_by_id.get(application.created_by)
        entries.append(
            _Entry(
                application.submitted_at,
                TimelineEvent(
                    id=f"submitted-{application.id}",
                    type=AuditEventType.SUBMITTED.value,
                    title=(
                        PUBLIC_TITLES[AuditEventType.SUBMITTED]
                        if external
                        else "Loan submitted successfully"
                    ),
                    description=(
                        None
                        if external
                        else f"Loan application {application.loan_id} submitted successfully"
                    ),
                    date=format_date(application.submitted_at, tz),
                    time=format_time(application.submitted_at, tz),
                    performed_by=None if external else _actor_name(creator),
                    performed_by_id=None if external or creator is None else str(creator.id),
                    line_color=line_color(AuditEventType.SUBMITTED),
                ),
            )
        )

    for audit in audit_events:
        public_type = public_event_type(audit.event_type)
        if public_type is None:
            continue
        actor = users_by_id.get(audit.performed_by_id) if audit.performed_by_id else None
        entries.append(
            _Entry(
                audit.created_at,
                TimelineEvent(
                    id=str(audit.id),
                    type=public_type.value,
                    title=PUBLIC_TITLES[public_type] if external else audit.title,
                    description=None if external else audit.description,
                    date=format_date(audit.created_at, tz),
                    time=format_time(audit.created_at, tz),
                    performed_by=None if external else _actor_name(actor),
                    performed_by_id=(
                        None
                        if external or audit.performed_by_id is None
                        else str(audit.performed_by_id)
                    ),
                    line_color=line_color(public_type),
                ),
            )
        )

    entries.sort(key=lambda entry: entry.moment)
    events = [entry.event for entry in entries]
    if not external:
        return events

    collapsed: list[TimelineEvent] = []
    for event in events:
        if collapsed and collapsed[-1].type == event.type:
            continue
        collapsed.append(event)
    return collapsed


class TimelineProjector:
    def __init__(self, db: AsyncSession, *, timezone_name: str | None = None) -> None:
        self.db = db
        self.tz = ZoneInfo(timezone_name or settings.timeline_timezone)

    @staticmethod
    def audience_for(application: LoanApplication, viewer: User) -> Audience:
        if viewer.is_staff:
            return Audience.INTERNAL
        if viewer.id == application.entrepreneur_id:
            return Audience.EXTERNAL
        raise WorkflowError(
            ErrorKind.FORBIDDEN,
            "FORBIDDEN",
            "You do not have permission to view this loan application",
        )

    @internal_error_boundary("GET_TIMELINE_ERROR", "Failed to get loan application timeline")
    async def project(self, application_id: UUID, audience: Audience | str) -> list[TimelineEvent]:
        application = await load_application(self.db, application_id)
        return await self._project_loaded(application, Audience(audience))

    @internal_error_boundary("GET_TIMELINE_ERROR", "Failed to get loan application timeline")
    async def project_for_viewer(self, application_id: UUID, viewer: User) -> list[TimelineEvent]:
        application = await load_application(self.db, application_id)
        return await self._project_loaded(application, self.audience_for(application, viewer))

    @internal_error_boundary(
        "GET_CONTRACT_TIMELINE_ERROR", "Failed to get contract timeline for loan application"
    )
    async def contract_timeline(self, application_id: UUID) -> ContractTimeline:
        application = await load_application(self.db, application_id)
        stmt = (
            select(LoanApplicationAuditEvent)
            .where(
                LoanApplicationAuditEvent.loan_application_id == application.id,
                LoanApplicationAuditEvent.event_type.in_(
                    [event_type.value for event_type in CONTRACT_EVENT_TYPES]
                ),
            )
            .order_by(LoanApplicationAuditEvent.created_at.asc())
        )
        audit_events = list((await self.db.execute(stmt)).scalars().all())
        users_by_id = await self._users_by_id(
            audit.performed_by_id for audit in audit_events if audit.performed_by_id
        )
        events = [
            ContractTimelineEvent(
                id=str(audit.id),
                type=audit.event_type,
                title=audit.title,
                description=audit.description,
                created_at=audit.created_at,
                performed_by=_actor_name(users_by_id.get(audit.performed_by_id)),
                performed_by_id=str(audit.performed_by_id) if audit.performed_by_id else None,
            )
            for audit in audit_events
        ]
        return ContractTimeline(current_status=application.contract_status, events=events)

    async def _project_loaded(
        self, application: LoanApplication, audience: Audience
    ) -> list[TimelineEvent]:
        stmt = (
            select(LoanApplicationAuditEvent)
            .where(LoanApplicationAuditEvent.loan_application_id == application.id)
            .order_by(LoanApplicationAuditEvent.created_at.asc())
        )
        audit_events = list((await self.db.execute(stmt)).scalars().all())
        user_ids = {audit.performed_by_id for audit in audit_events if audit.performed_by_id}
        if application.created_by:
            user_ids.add(application.created_by)
        users_by_id = await self._users_by_id(user_ids)
        return build_timeline(application, audit_events, users_by_id, audience, self.tz)

    async def _users_by_id(self, user_ids: Iterable[UUID]) -> dict[UUID, User]:
        ids = set(user_ids)
        if not ids:
            return {}
        users = (await self.db.execute(select(User).where(User.id.in_(ids)))).scalars().all()
        return {user.id: user for user in users}

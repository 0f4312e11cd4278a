from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_audit_logger
from app.db.session import commit_in_savepoint
from app.models.loan_application_audit_event import LoanApplicationAuditEvent
from app.schemas.loan import AuditEventType
from app.services.actors import ActorResolver
from app.services.timeline_mapping import event_title, event_type_for_status
from app.utils.clock import Clock, utcnow

__all__ = [
    "UNSET",
    "AuditFailureReporter",
    "AuditTrailRecorder",
    "RequestMeta",
    "clean_details",
    "event_title",
    "event_type_for_status",
    "request_metadata",
    "serialize_for_audit",
]


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

_IP_COLUMN_LENGTH = LoanApplicationAuditEvent.__table__.c.ip_address.type.length


@dataclass(frozen=True)
class RequestMeta:
    ip_address: str | None = None
    user_agent: str | None = None


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(
        value,
        custom_encoder={
            Decimal: lambda v: str(v),
            datetime: lambda v: v.isoformat(),
            date: lambda v: v.isoformat(),
            UUID: lambda v: str(v),
        },
    )


def clean_details(details: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """Drop ``UNSET`` entries, keep explicit ``None``; an empty result is stored as NULL."""
    if not details:
        return None
    cleaned = {key: value for key, value in details.items() if value is not UNSET}
    if not cleaned:
        return None
    return serialize_for_audit(cleaned)


def _normalize_ip(value: str | None) -> str | None:
    if not value:
        return None
    try:
        normalized = str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None
    # scoped IPv6 literals can carry an arbitrarily long zone id
    return normalized if len(normalized) <= _IP_COLUMN_LENGTH else None


def request_metadata(request: Request | None) -> RequestMeta:
    """Client IP and user agent for audit rows.

    The IP comes from the first ``x-forwarded-for`` hop, then ``x-real-ip``,
    then the peer. Values that do not parse as an IP address are skipped.
    """
    if request is None:
        return RequestMeta()
    forwarded = request.headers.get("x-forwarded-for")
    candidates = (
        forwarded.split(",")[0] if forwarded else None,
        request.headers.get("x-real-ip"),
        request.client.host if request.client else None,
    )
    ip_address = next(
        (ip for ip in (_normalize_ip(candidate) for candidate in candidates) if ip), None
    )
    return RequestMeta(ip_address=ip_address, user_agent=request.headers.get("user-agent"))


class AuditFailureReporter:
    """Observability port for audit problems; defaults to the ``app.audit`` log stream."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or get_audit_logger()

    def report(self, message: str, *, exc: BaseException | None = None, **context: Any) -> None:
        self.logger.error(message, exc_info=exc, extra={"audit_context": context})

    def warn(self, message: str, **context: Any) -> None:
        self.logger.warning(message, extra={"audit_context": context})


class AuditTrailRecorder:
    """Appends events to the loan application audit trail.

    ``log_event`` is called after the primary change has committed and never
    raises: an audit failure must not undo or hide a completed business
    operation. The row is flushed inside a savepoint so a failed write rolls
    back the audit row only, and the failure is handed to the reporter.
    """

    def __init__(
        self,
        db: AsyncSession,
        actors: ActorResolver,
        *,
        clock: Clock = utcnow,
        reporter: AuditFailureReporter | None = None,
        request_meta: RequestMeta | None = None,
    ) -> None:
        self.db = db
        self.actors = actors
        self.clock = clock
        self.reporter = reporter or AuditFailureReporter()
        self.request_meta = request_meta or RequestMeta()

    async def log_event(
        self,
        application_id: UUID,
        event_type: AuditEventType | str,
        title: str,
        *,
        actor: str | None = None,
        description: str | None = None,
        status: str | None = None,
        previous_status: str | None = None,
        new_status: str | None = None,
        details: Mapping[str, Any] | None = None,
        request_meta: RequestMeta | None = None,
    ) -> None:
        event_type_value = getattr(event_type, "value", event_type)
        meta = request_meta or self.request_meta
        try:
            performed_by_id = await self._performed_by(application_id, actor)
            entry = LoanApplicationAuditEvent(
                loan_application_id=application_id,
                performed_by_id=performed_by_id,
                event_type=event_type_value,
                title=title,
                description=description,
                status=getattr(status, "value", status),
                previous_status=getattr(previous_status, "value", previous_status),
                new_status=getattr(new_status, "value", new_status),
                details=clean_details(details),
                ip_address=meta.ip_address,
                user_agent=meta.user_agent,
                created_at=self.clock(),
            )
            await commit_in_savepoint(self.db, entry)
        except Exception as exc:
            self.reporter.report(
                "Failed to write loan application audit event",
                exc=exc,
                loan_application_id=str(application_id),
                event_type=event_type_value,
            )

    async def _performed_by(self, application_id: UUID, actor: str | None) -> UUID | None:
        if not actor:
            return None
        try:
            performed_by_id = await self.actors.resolve_id(actor)
        except Exception as exc:
            self.reporter.report(
                "Audit actor lookup failed",
                exc=exc,
                loan_application_id=str(application_id),
                subject=actor,
            )
            return None
        if performed_by_id is None:
            self.reporter.warn(
                "Audit actor could not be resolved; event stored without actor",
                loan_application_id=str(application_id),
                subject=actor,
            )
        return performed_by_id

import uuid

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, String, Text, event, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class AuditEventImmutableError(RuntimeError):
    pass


class LoanApplicationAuditEvent(Base):
    __tablename__ = "loan_application_audit_trail"
    __table_args__ = (
        Index("ix_loan_app_audit_trail_app_created", "loan_application_id", "created_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    performed_by_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    event_type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(40), nullable=True)
    previous_status = Column(String(40), nullable=True)
    new_status = Column(String(40), nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


@event.listens_for(LoanApplicationAuditEvent, "before_update")
def _reject_update(mapper, connection, target):
    raise AuditEventImmutableError("Loan application audit events are append-only")


@event.listens_for(LoanApplicationAuditEvent, "before_delete")
def _reject_delete(mapper, connection, target):
    raise AuditEventImmutableError("Loan application audit events are append-only")

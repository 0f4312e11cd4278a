import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


class LoanApplicationDocumentVerification(Base):
    __tablename__ = "loan_application_document_verifications"
    __table_args__ = (
        UniqueConstraint(
            "loan_application_id",
            "document_type",
            "document_id",
            name="uq_verification_loan_app_document",
        ),
        CheckConstraint(
            "document_type IN ('personal', 'business')",
            name="ck_verification_document_type",
        ),
        CheckConstraint(
            "verification_status IN ('pending', 'approved', 'rejected')",
            name="ck_verification_status",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    loan_application_id = Column(
        UUID(as_uuid=True),
        ForeignKey("loan_applications.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_type = Column(String(20), nullable=False)
    document_id = Column(UUID(as_uuid=True), nullable=False, index=True)
    verification_status = Column(String(20), nullable=False, default="pending")
    verified_by = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    verified_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declared_attr

from app.db.base import Base


class DocumentLockMixin:
    """Lock held by the loan application a document was verified for."""

    is_verified = Column(Boolean, nullable=False, default=False, server_default="false")
    locked_at = Column(DateTime(timezone=True), nullable=True)

    @declared_attr
    def verified_for_loan_application_id(cls):
        return Column(
            UUID(as_uuid=True),
            ForeignKey("loan_applications.id", ondelete="SET NULL"),
            nullable=True,
            index=True,
        )

    def is_locked_to_other(self, loan_application_id) -> bool:
        return bool(self.is_verified) and self.verified_for_loan_application_id != loan_application_id

    def lock_to(self, loan_application_id, when) -> None:
        self.is_verified = True
        self.verified_for_loan_application_id = loan_application_id
        self.locked_at = when


class PersonalDocument(DocumentLockMixin, Base):
    __tablename__ = "personal_documents"
    __table_args__ = (
        Index("ix_personal_documents_user_deleted", "user_id", "deleted_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    doc_type = Column(String(50), nullable=True)
    doc_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)


class BusinessDocument(DocumentLockMixin, Base):
    __tablename__ = "business_documents"
    __table_args__ = (
        Index("ix_business_documents_business_deleted", "business_id", "deleted_at"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(
        UUID(as_uuid=True),
        ForeignKey("business_profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    doc_type = Column(String(50), nullable=False)
    doc_url = Column(Text, nullable=True)
    doc_year = Column(Integer, nullable=True)
    doc_bank_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)

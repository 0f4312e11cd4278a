import uuid

from sqlalchemy import CheckConstraint, Column, DateTime, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from app.db.base import Base


USER_ROLES = ("super-admin", "admin", "member", "entrepreneur")
STAFF_ROLES = frozenset({"super-admin", "admin", "member"})


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("external_id", name="uq_users_external_id"),
        CheckConstraint(
            "role IN ('super-admin', 'admin', 'member', 'entrepreneur')",
            name="ck_users_role",
        ),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    external_id = Column(String(255), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(String(20), nullable=False, default="entrepreneur")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def display_name(self) -> str | None:
        parts = [part.strip() for part in (self.first_name, self.last_name) if part and part.strip()]
        return " ".join(parts) or None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

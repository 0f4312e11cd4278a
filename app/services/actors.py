from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.user import User
from app.services.errors import unauthorized

logger = logging.getLogger(__name__)


class ActorResolver:
    """Maps identity-provider subjects to internal users.

    Lookups are memoised for the lifetime of the resolver, which is one
    request when wired through ``build_workflow``.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self._cache: dict[str, User | None] = {}

    async def resolve(self, subject: str | None) -> User | None:
        if not subject:
            return None
        if subject in self._cache:
            return self._cache[subject]
        stmt = select(User).where(User.external_id == subject, User.deleted_at.is_(None))
        user = (await self.db.execute(stmt)).scalar_one_or_none()
        if user is None:
            logger.info("Actor subject did not resolve to a user", extra={"subject": subject})
        self._cache[subject] = user
        return user

    async def require(self, subject: str | None) -> User:
        user = await self.resolve(subject)
        if user is None:
            raise unauthorized("User not found for the authenticated subject")
        return user

    async def resolve_id(self, subject: str | None) -> UUID | None:
        user = await self.resolve(subject)
        return user.id if user else None

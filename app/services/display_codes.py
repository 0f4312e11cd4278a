from __future__ import annotations

import logging
import secrets
from typing import Awaitable, Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.settings import settings
from app.models.loan_application import LoanApplication
from app.services.errors import ErrorKind, WorkflowError

logger = logging.getLogger(__name__)


def random_loan_code(prefix: str | None = None) -> str:
    return f"{prefix or settings.loan_id_prefix}-{secrets.randbelow(90000) + 10000}"


class DisplayCodeAllocator:
    """Hands out human-facing loan codes such as ``LN-48213``.

    ``generate`` proposes a candidate, ``reserve`` reports whether it is still
    free, and ``allocate`` retries the pair up to ``max_attempts`` times.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        generator: Callable[[], str] | None = None,
        max_attempts: int | None = None,
        exists: Callable[[str], Awaitable[bool]] | None = None,
    ) -> None:
        self.db = db
        self._generator = generator or random_loan_code
        self.max_attempts = max_attempts or settings.loan_id_max_attempts
        self._exists = exists or self._code_in_use

    def generate(self) -> str:
        return self._generator()

    async def reserve(self, candidate: str) -> bool:
        return not await self._exists(candidate)

    async def allocate(self) -> str:
        for attempt in range(1, self.max_attempts + 1):
            code = self.generate()
            if await self.reserve(code):
                return code
            logger.info("Loan code collision", extra={"loan_id": code, "attempt": attempt})
        raise WorkflowError(
            ErrorKind.INTERNAL,
            "LOAN_ID_GENERATION_FAILED",
            "Failed to generate unique loan ID",
        )

    async def _code_in_use(self, code: str) -> bool:
        stmt = select(LoanApplication.id).where(LoanApplication.loan_id == code).limit(1)
        return (await self.db.execute(stmt)).scalar_one_or_none() is not None

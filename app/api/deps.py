from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.context import set_actor_subject
from app.core.security import decode_token
from app.db.session import get_db
from app.models import User
from app.services.audit import request_metadata
from app.services.workflow import Workflow, build_workflow

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"code": "UNAUTHORIZED", "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_db_session(db: AsyncSession = Depends(get_db)) -> AsyncSession:
    return db


async def get_current_subject(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Missing bearer token")
    try:
        payload = decode_token(credentials.credentials)
    except ValueError as exc:
        raise _unauthorized("Invalid token") from exc
    subject = str(payload["sub"])
    set_actor_subject(subject)
    return subject


async def get_current_user(
    subject: str = Depends(get_current_subject),
    db: AsyncSession = Depends(get_db_session),
) -> User:
    stmt = select(User).where(User.external_id == subject, User.deleted_at.is_(None))
    user = (await db.execute(stmt)).scalar_one_or_none()
    if user is None:
        raise _unauthorized("User not found")
    return user


async def require_staff(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": "FORBIDDEN",
                "message": "Only internal staff can perform this action",
            },
        )
    return current_user


async def get_workflow(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> Workflow:
    return build_workflow(db, request_meta=request_metadata(request))

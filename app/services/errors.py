from __future__ import annotations

import functools
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    MISSING_REJECTION_REASON = "missing_rejection_reason"
    DOCUMENT_ALREADY_VERIFIED = "document_already_verified"
    INVALID_STATUS = "invalid_status"
    NO_DOCUMENTS_REVIEWED = "no_documents_reviewed"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    VALIDATION_ERROR = "validation_error"
    INTERNAL = "internal"


class WorkflowError(Exception):
    """Domain failure carrying a closed kind and a stable machine-readable code."""

    def __init__(
        self,
        kind: ErrorKind,
        code: str,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.code = code
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        return f"WorkflowError(kind={self.kind.value!r}, code={self.code!r}, message={self.message!r})"


def not_found(code: str, message: str) -> WorkflowError:
    return WorkflowError(ErrorKind.NOT_FOUND, code, message)


def application_not_found() -> WorkflowError:
    return not_found("LOAN_APPLICATION_NOT_FOUND", "Loan application not found")


def unauthorized(message: str = "Actor could not be resolved") -> WorkflowError:
    return WorkflowError(ErrorKind.UNAUTHORIZED, "UNAUTHORIZED", message)


def invalid_status(expected: str, current: str) -> WorkflowError:
    return WorkflowError(
        ErrorKind.INVALID_STATUS,
        "INVALID_STATUS",
        f"Loan application must be in '{expected}' status. Current status: {current}",
        details={"expected_status": expected, "current_status": current},
    )


def internal_error_boundary(
    code: str,
    message: str = "An unexpected error occurred",
) -> Callable[[Callable[..., Awaitable[T]]], Callable[..., Awaitable[T]]]:
    """Let domain errors through untouched; wrap anything else as INTERNAL with ``code``."""

    def decorator(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return await func(*args, **kwargs)
            except WorkflowError:
                raise
            except Exception as exc:
                logger.exception("Unexpected failure in %s", func.__qualname__, extra={"code": code})
                raise WorkflowError(ErrorKind.INTERNAL, code, message) from exc

        return wrapper

    return decorator

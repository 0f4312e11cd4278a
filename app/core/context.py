import contextvars

_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("request_id", default="-")
_actor_subject: contextvars.ContextVar[str] = contextvars.ContextVar("actor_subject", default="-")


def set_request_id(request_id: str) -> None:
    _request_id.set(request_id)


def get_request_id() -> str:
    return _request_id.get()


def set_actor_subject(subject: str) -> None:
    _actor_subject.set(subject)


def get_actor_subject() -> str:
    return _actor_subject.get()


def clear_context() -> None:
    _request_id.set("-")
    _actor_subject.set("-")

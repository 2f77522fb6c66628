import uuid
from contextvars import ContextVar

REQUEST_ID_HEADER = "X-Request-ID"

_request_id_ctx: ContextVar[str] = ContextVar("affiliate_request_id", default="-")


def set_request_id(value: str) -> None:
    _request_id_ctx.set(value)


def get_request_id() -> str:
    return _request_id_ctx.get()


def resolve_request_id(incoming: str | None) -> str:
    # Caller-supplied ids are echoed back but capped so they cannot flood logs.
    if incoming and incoming.strip():
        return incoming.strip()[:128]
    return uuid.uuid4().hex

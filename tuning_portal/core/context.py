"""Request context for tracing log records and metrics across async calls."""

import uuid
from contextvars import ContextVar

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)


def generate_request_id() -> str:
    """Generate a unique request ID for tracing."""
    return uuid.uuid4().hex


def get_request_id() -> str | None:
    """Get the current request ID, or None outside a request."""
    return request_id_var.get()


def set_request_id(request_id: str) -> None:
    """Bind ``request_id`` to the current context."""
    request_id_var.set(request_id)

"""Request correlation IDs.

The ID lives in a ContextVar so every log line written while serving a
request (route, lifecycle, repositories) carries the same correlationId.
"""

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

CORRELATION_ID_HEADER = "X-Correlation-ID"

_current_id: ContextVar[str] = ContextVar("loaners_correlation_id", default="")


def new_correlation_id() -> str:
    return str(uuid.uuid4())


def get_correlation_id() -> str:
    """Correlation ID bound to the current context, or "" outside a request."""
    return _current_id.get()


@contextmanager
def correlation_scope(cid: str | None = None) -> Iterator[str]:
    """Bind cid (or a fresh ID when empty) until the block exits."""
    cid = cid or new_correlation_id()
    token = _current_id.set(cid)
    try:
        yield cid
    finally:
        _current_id.reset(token)

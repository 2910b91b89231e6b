from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_context.get()


@contextmanager
def request_id_scope(request_id: str) -> Iterator[str]:
    """
    Bind a request ID for the duration of a block and restore the previous one.

    Scheduler ticks and Celery tasks run outside any HTTP request, so they use
    this to tag their log lines the same way the middleware tags requests.
    """
    token = request_id_context.set(request_id)
    try:
        yield request_id
    finally:
        request_id_context.reset(token)

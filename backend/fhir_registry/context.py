"""Per-request context.

The searchable view reads the current request's preference for partially
indexed search parameters from here. The context lives in a ContextVar so
concurrent requests on the same event loop each see their own value.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Request-scoped options that affect search parameter visibility."""

    # Set from the x-ms-use-partial-indices request header
    include_partially_indexed_search_params: bool = False


_DEFAULT_CONTEXT = RequestContext()

_request_context: ContextVar[RequestContext] = ContextVar(
    "fhir_registry_request_context", default=_DEFAULT_CONTEXT
)


def get_request_context() -> RequestContext:
    return _request_context.get()


@contextmanager
def request_context(include_partially_indexed_search_params: bool = False) -> Iterator[RequestContext]:
    """Bind a RequestContext for the duration of a block."""
    context = RequestContext(
        include_partially_indexed_search_params=include_partially_indexed_search_params
    )
    token = _request_context.set(context)
    try:
        yield context
    finally:
        _request_context.reset(token)

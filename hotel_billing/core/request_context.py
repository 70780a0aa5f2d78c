from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator


_REQUEST_ID_CTX: ContextVar[str | None] = ContextVar("request_id", default=None)
_HOTEL_ID_CTX: ContextVar[str | None] = ContextVar("hotel_id", default=None)


def set_request_context(*, request_id: str | None = None, hotel_id: str | None = None) -> None:
    if request_id is not None:
        _REQUEST_ID_CTX.set(request_id)
    if hotel_id is not None:
        _HOTEL_ID_CTX.set(hotel_id)


def get_request_id() -> str | None:
    return _REQUEST_ID_CTX.get()


def get_hotel_id() -> str | None:
    return _HOTEL_ID_CTX.get()


def clear_request_context() -> None:
    _REQUEST_ID_CTX.set(None)
    _HOTEL_ID_CTX.set(None)


@contextmanager
def hotel_scope(hotel_id: str) -> Iterator[None]:
    """Tags log lines emitted inside the block with ``hotel_id``."""
    token = _HOTEL_ID_CTX.set(hotel_id)
    try:
        yield
    finally:
        _HOTEL_ID_CTX.reset(token)

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from hotel_billing.core.database import SessionLocal
from hotel_billing.core.request_context import set_request_context
from hotel_billing.services.auth import decode_access_token
from hotel_billing.services.blob_storage import S3BlobStore
from hotel_billing.services.invoice_storage import InvoiceStorage

bearer_scheme = HTTPBearer(auto_error=False)

logger = logging.getLogger(__name__)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_hotel_id(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """Resolves the verified hotel id from the bearer token's ``sub``."""
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Not authenticated")
    try:
        payload = decode_access_token(credentials.credentials)
    except ValueError:
        raise _unauthorized("Invalid or expired token")

    hotel_id = str(payload.get("sub") or "").strip()
    if not hotel_id:
        raise _unauthorized("Invalid token (missing hotel)")

    request.state.hotel_id = hotel_id
    set_request_context(hotel_id=hotel_id)
    return hotel_id


def get_holder_id(request: Request, hotel_id: str = Depends(get_current_hotel_id)) -> str:
    request_id = getattr(request.state, "request_id", None)
    return request.headers.get("X-Billing-Holder") or f"{hotel_id}:{request_id or 'anonymous'}"


@lru_cache(maxsize=1)
def _default_invoice_storage() -> InvoiceStorage:
    return InvoiceStorage(SessionLocal, blob_store=S3BlobStore())


def get_invoice_storage() -> InvoiceStorage:
    return _default_invoice_storage()

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional
from uuid import uuid4

from pydantic import ValidationError

from hotel_billing.core.metrics import billing_signals
from hotel_billing.invoicing.base import InvoiceGenerator, InvoiceRequest
from hotel_billing.invoicing.deterministic_provider import DeterministicInvoiceGenerator
from hotel_billing.invoicing.remote_provider import RemoteInvoiceGenerator
from hotel_billing.invoicing.schema import InvoiceDocument
from hotel_billing.services.orders import normalize_items
from hotel_billing.services.pricing import to_decimal

logger = logging.getLogger(__name__)


def generate_invoice_number(now_ms: Optional[int] = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    return f"INV-{now_ms}-{uuid4().hex[:12].upper()}"


class FallbackInvoiceGenerator:
    name = "fallback"

    def __init__(self, primary: InvoiceGenerator, fallback: InvoiceGenerator) -> None:
        self.primary = primary
        self.fallback = fallback

    def generate(self, request: InvoiceRequest) -> InvoiceDocument:
        try:
            return self.primary.generate(request)
        except ValidationError as exc:
            error_message = f"validation_error: {exc.error_count()} errors"
        except Exception as exc:
            error_message = f"provider_error: {exc}"

        billing_signals.incr("generation_fallback")
        logger.warning(
            "invoice generator %s failed, using %s: %s",
            getattr(self.primary, "name", "primary"),
            getattr(self.fallback, "name", "fallback"),
            error_message,
            extra={"signal": "generation_fallback", "invoice_number": request.invoice_number},
        )
        return self.fallback.generate(request)


def get_generator() -> InvoiceGenerator:
    return FallbackInvoiceGenerator(RemoteInvoiceGenerator(), DeterministicInvoiceGenerator())


def _read(order: Any, key: str) -> Any:
    if isinstance(order, dict):
        return order.get(key)
    return getattr(order, key, None)


def build_request(
    order: Any,
    adjustment_a_percentage: Any = 0,
    adjustment_b_percentage: Any = 0,
    discount_amount: Any = 0,
    *,
    hotel_name: str = "",
    invoice_number: Optional[str] = None,
    issued_at: Optional[datetime] = None,
) -> InvoiceRequest:
    issued_at = issued_at or datetime.now(timezone.utc)
    for label, value in (
        ("adjustment_a_percentage", adjustment_a_percentage),
        ("adjustment_b_percentage", adjustment_b_percentage),
        ("discount_amount", discount_amount),
    ):
        if to_decimal(value) < 0:
            raise ValueError(f"{label} must not be negative")

    return InvoiceRequest(
        invoice_number=invoice_number or generate_invoice_number(),
        date=issued_at.isoformat(),
        hotel_name=hotel_name or "",
        table_number=int(_read(order, "table_number")),
        items=normalize_items(_read(order, "items") or []),
        adjustment_a_percentage=to_decimal(adjustment_a_percentage),
        adjustment_b_percentage=to_decimal(adjustment_b_percentage),
        discount_amount=to_decimal(discount_amount),
    )


def compose(
    order: Any,
    adjustment_a_percentage: Any = 0,
    adjustment_b_percentage: Any = 0,
    discount_amount: Any = 0,
    hotel_name: str = "",
    *,
    generator: Optional[InvoiceGenerator] = None,
    clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
) -> InvoiceDocument:
    """Builds the invoice document for an order. Nothing is persisted."""
    request = build_request(
        order,
        adjustment_a_percentage,
        adjustment_b_percentage,
        discount_amount,
        hotel_name=hotel_name,
        issued_at=clock(),
    )
    generator = generator or get_generator()
    document = generator.generate(request)
    logger.info(
        "invoice composed",
        extra={"invoice_number": document.invoice_number, "order_id": _read(order, "order_id")},
    )
    return document

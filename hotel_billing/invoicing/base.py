from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Protocol

from hotel_billing.invoicing.schema import InvoiceDocument


@dataclass(frozen=True)
class InvoiceRequest:
    invoice_number: str
    date: str
    hotel_name: str
    table_number: int
    # [{"reference_id", "name", "unit_price", "quantity"}]
    items: list[dict[str, Any]] = field(default_factory=list)
    adjustment_a_percentage: Decimal = Decimal("0")
    adjustment_b_percentage: Decimal = Decimal("0")
    discount_amount: Decimal = Decimal("0")


class InvoiceGenerator(Protocol):
    name: str

    def generate(self, request: InvoiceRequest) -> InvoiceDocument:
        ...

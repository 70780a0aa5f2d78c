from __future__ import annotations

from hotel_billing.invoicing.base import InvoiceRequest
from hotel_billing.invoicing.schema import Adjustment, InvoiceDocument, InvoiceLine
from hotel_billing.services.pricing import calculate_breakdown, line_total, to_decimal


class DeterministicInvoiceGenerator:
    name = "deterministic"

    def generate(self, request: InvoiceRequest) -> InvoiceDocument:
        breakdown = calculate_breakdown(
            request.items,
            request.adjustment_a_percentage,
            request.adjustment_b_percentage,
            request.discount_amount,
        )
        lines = [
            InvoiceLine(
                reference_id=item.get("reference_id"),
                dish_name=item.get("name") or "",
                quantity=int(item.get("quantity") or 0),
                price=to_decimal(item.get("unit_price")),
                total=line_total(item),
            )
            for item in request.items
        ]
        return InvoiceDocument(
            invoice_number=request.invoice_number,
            table_number=request.table_number,
            hotel_name=request.hotel_name,
            date=request.date,
            items=lines,
            subtotal=breakdown.subtotal,
            adjustment_a=Adjustment(
                percentage=to_decimal(request.adjustment_a_percentage),
                amount=breakdown.adjustment_a_amount,
            ),
            adjustment_b=Adjustment(
                percentage=to_decimal(request.adjustment_b_percentage),
                amount=breakdown.adjustment_b_amount,
            ),
            discount=breakdown.discount,
            grand_total=breakdown.grand_total,
        )

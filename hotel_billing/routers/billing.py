from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from hotel_billing.core.database import get_db
from hotel_billing.deps import get_current_hotel_id, get_holder_id, get_invoice_storage
from hotel_billing.models.invoice import Invoice
from hotel_billing.services import orders as order_service
from hotel_billing.services.billing import bill_order
from hotel_billing.services.invoice_storage import InvoiceStorage

router = APIRouter(prefix="/api/billing", tags=["billing"])


class BillRequest(BaseModel):
    adjustment_a_percentage: Decimal = Field(default=Decimal("0"), ge=0)
    adjustment_b_percentage: Decimal = Field(default=Decimal("0"), ge=0)
    discount_amount: Decimal = Field(default=Decimal("0"), ge=0)
    hotel_name: str = ""


def _invoice_to_dict(invoice: Invoice, artifact_url: Optional[str] = None) -> Dict[str, Any]:
    return {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "table_number": invoice.table_number,
        "hotel_name": invoice.hotel_name,
        "issued_at": invoice.issued_at,
        "subtotal": str(invoice.subtotal),
        "discount_amount": str(invoice.discount_amount),
        "adjustment_a_percentage": str(invoice.adjustment_a_percentage),
        "adjustment_a_amount": str(invoice.adjustment_a_amount),
        "adjustment_b_percentage": str(invoice.adjustment_b_percentage),
        "adjustment_b_amount": str(invoice.adjustment_b_amount),
        "grand_total": str(invoice.grand_total),
        "items": [
            {
                "reference_id": item.reference_id,
                "dish_name": item.dish_name,
                "unit_price": str(item.unit_price),
                "quantity": item.quantity,
                "line_total": str(item.line_total),
            }
            for item in invoice.items
        ],
        "artifact_key": invoice.artifact_key,
        "artifact_url": artifact_url,
    }


@router.post("/orders/{order_id}/bill", status_code=201)
def bill(
    order_id: str,
    payload: BillRequest,
    hotel_id: str = Depends(get_current_hotel_id),
    holder_id: str = Depends(get_holder_id),
    db: Session = Depends(get_db),
    storage: InvoiceStorage = Depends(get_invoice_storage),
):
    result = bill_order(
        db,
        storage,
        hotel_id=hotel_id,
        order_id=order_id,
        holder_id=holder_id,
        adjustment_a_percentage=payload.adjustment_a_percentage,
        adjustment_b_percentage=payload.adjustment_b_percentage,
        discount_amount=payload.discount_amount,
        hotel_name=payload.hotel_name,
    )
    return {
        "order": order_service.order_to_dict(result.order),
        "invoice": {
            "id": result.invoice.invoice_id,
            "invoice_number": result.invoice.invoice_number,
            "grand_total": str(result.invoice.grand_total),
            "artifact_key": result.invoice.artifact_key,
            "document": result.invoice.invoice_json,
        },
        "artifact_url": result.artifact_url,
    }


@router.get("/invoices")
def list_invoices(
    limit: int = Query(50, ge=1, le=200),
    hotel_id: str = Depends(get_current_hotel_id),
    storage: InvoiceStorage = Depends(get_invoice_storage),
):
    return [_invoice_to_dict(invoice) for invoice in storage.list_invoices(hotel_id, limit=limit)]


@router.get("/invoices/{invoice_id}")
def get_invoice(
    invoice_id: str,
    hotel_id: str = Depends(get_current_hotel_id),
    storage: InvoiceStorage = Depends(get_invoice_storage),
):
    invoice = storage.retrieve(invoice_id, hotel_id)
    return _invoice_to_dict(invoice, storage.artifact_url(invoice))

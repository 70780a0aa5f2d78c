from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from hotel_billing.core.database import get_db
from hotel_billing.deps import get_current_hotel_id
from hotel_billing.models.order import TableOrder
from hotel_billing.services import orders as order_service
from hotel_billing.services.pricing import calculate_subtotal

router = APIRouter(prefix="/api/orders", tags=["orders"])


class OrderItemIn(BaseModel):
    reference_id: Optional[str] = None
    name: str = Field(..., min_length=1)
    unit_price: Decimal = Field(..., ge=0)
    quantity: int = Field(..., ge=1)


class OrderCreate(BaseModel):
    table_number: int = Field(..., ge=1)
    items: List[OrderItemIn] = Field(default_factory=list)
    notes: Optional[str] = None


class OrderUpdate(BaseModel):
    items: List[OrderItemIn] = Field(default_factory=list)
    notes: Optional[str] = None
    expected_version: int = Field(..., ge=1)


class OrderCancel(BaseModel):
    expected_version: int = Field(..., ge=1)


def _order_to_dict(order: TableOrder) -> Dict[str, Any]:
    data = order_service.order_to_dict(order)
    data["subtotal"] = str(calculate_subtotal(data["items"]))
    return data


def _items_payload(items: List[OrderItemIn]) -> List[Dict[str, Any]]:
    return [item.model_dump() for item in items]


@router.post("", status_code=201)
def create_order(
    payload: OrderCreate,
    hotel_id: str = Depends(get_current_hotel_id),
    db: Session = Depends(get_db),
):
    order = order_service.create_order(
        db,
        hotel_id=hotel_id,
        table_number=payload.table_number,
        items=_items_payload(payload.items),
        notes=payload.notes,
    )
    return _order_to_dict(order)


@router.get("")
def list_orders(
    hotel_id: str = Depends(get_current_hotel_id),
    db: Session = Depends(get_db),
):
    return [_order_to_dict(order) for order in order_service.list_open_orders(db, hotel_id)]


@router.get("/active")
def get_active_order(
    table_number: int = Query(..., ge=1),
    hotel_id: str = Depends(get_current_hotel_id),
    db: Session = Depends(get_db),
):
    order = order_service.get_active_order(db, hotel_id, table_number)
    if order is None:
        raise HTTPException(status_code=404, detail="No active order for this table")
    return _order_to_dict(order)


@router.get("/{order_id}")
def get_order(
    order_id: str,
    hotel_id: str = Depends(get_current_hotel_id),
    db: Session = Depends(get_db),
):
    return _order_to_dict(order_service.get_order(db, order_id, hotel_id=hotel_id))


@router.put("/{order_id}")
def update_order(
    order_id: str,
    payload: OrderUpdate,
    hotel_id: str = Depends(get_current_hotel_id),
    db: Session = Depends(get_db),
):
    order = order_service.update_order(
        db,
        order_id=order_id,
        items=_items_payload(payload.items),
        notes=payload.notes,
        expected_version=payload.expected_version,
        hotel_id=hotel_id,
    )
    return _order_to_dict(order)


@router.post("/{order_id}/cancel")
def cancel_order(
    order_id: str,
    payload: OrderCancel,
    hotel_id: str = Depends(get_current_hotel_id),
    db: Session = Depends(get_db),
):
    order = order_service.cancel_order(
        db,
        order_id=order_id,
        expected_version=payload.expected_version,
        hotel_id=hotel_id,
    )
    return _order_to_dict(order)

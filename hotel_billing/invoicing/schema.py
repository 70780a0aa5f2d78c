from __future__ import annotations

from decimal import Decimal
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class InvoiceLine(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reference_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("reference_id", "menuItemId"))
    dish_name: str = Field(..., validation_alias=AliasChoices("dish_name", "dishName", "name"))
    quantity: int = Field(..., ge=1)
    price: Decimal = Field(..., ge=0, validation_alias=AliasChoices("price", "unit_price", "unitPrice"))
    total: Decimal = Field(..., validation_alias=AliasChoices("total", "line_total", "lineTotal"))


class Adjustment(BaseModel):
    percentage: Decimal = Field(..., ge=0)
    amount: Decimal


class InvoiceDocument(BaseModel):
    """Invoice payload shared by the remote and the deterministic generators.

    Accepts the camelCase names the external service answers with.
    """

    model_config = ConfigDict(populate_by_name=True)

    invoice_number: str = Field(..., min_length=1, validation_alias=AliasChoices("invoice_number", "invoiceNumber"))
    table_number: int = Field(..., ge=1, validation_alias=AliasChoices("table_number", "tableNumber"))
    hotel_name: str = Field(default="", validation_alias=AliasChoices("hotel_name", "hotelName"))
    date: str = Field(..., min_length=1)
    items: List[InvoiceLine] = Field(default_factory=list)
    subtotal: Decimal
    adjustment_a: Adjustment = Field(..., validation_alias=AliasChoices("adjustment_a", "gst", "tax"))
    adjustment_b: Adjustment = Field(
        ..., validation_alias=AliasChoices("adjustment_b", "serviceCharge", "service_charge")
    )
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    grand_total: Decimal = Field(..., validation_alias=AliasChoices("grand_total", "grandTotal"))

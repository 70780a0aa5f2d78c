from hotel_billing.invoicing.base import InvoiceGenerator, InvoiceRequest
from hotel_billing.invoicing.deterministic_provider import DeterministicInvoiceGenerator
from hotel_billing.invoicing.remote_provider import RemoteInvoiceGenerator
from hotel_billing.invoicing.schema import Adjustment, InvoiceDocument, InvoiceLine
from hotel_billing.invoicing.service import (
    FallbackInvoiceGenerator,
    compose,
    generate_invoice_number,
    get_generator,
)

__all__ = [
    "Adjustment",
    "DeterministicInvoiceGenerator",
    "FallbackInvoiceGenerator",
    "InvoiceDocument",
    "InvoiceGenerator",
    "InvoiceLine",
    "InvoiceRequest",
    "RemoteInvoiceGenerator",
    "compose",
    "generate_invoice_number",
    "get_generator",
]

from hotel_billing.models.order import TableOrder
from hotel_billing.models.invoice import Invoice, InvoiceItem
from hotel_billing.models.audit_log import AuditLog

import sqlalchemy as sa
from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship

from hotel_billing.core.database import Base

MONEY = Numeric(12, 4)
PERCENT = Numeric(7, 4)


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(String(36), primary_key=True)
    hotel_id = Column(String(64), index=True, nullable=False)
    invoice_number = Column(String(64), unique=True, nullable=False)
    table_number = Column(Integer, nullable=False)
    hotel_name = Column(String(200), default="", nullable=False)
    issued_at = Column(String(40), nullable=False)

    subtotal = Column(MONEY, nullable=False)
    discount_amount = Column(MONEY, nullable=False, default=0)
    # Adjustment A is the tax (GST), adjustment B the service charge.
    adjustment_a_percentage = Column(PERCENT, nullable=False, default=0)
    adjustment_a_amount = Column(MONEY, nullable=False, default=0)
    adjustment_b_percentage = Column(PERCENT, nullable=False, default=0)
    adjustment_b_amount = Column(MONEY, nullable=False, default=0)
    grand_total = Column(MONEY, nullable=False)

    invoice_json = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False)
    artifact_key = Column(String(512), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.id",
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    invoice_id = Column(String(36), ForeignKey("invoices.id", ondelete="CASCADE"), index=True, nullable=False)
    reference_id = Column(String(64), nullable=True)

    dish_name = Column(String(200), nullable=False)
    unit_price = Column(MONEY, nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    line_total = Column(MONEY, nullable=False)

    invoice = relationship("Invoice", back_populates="items")

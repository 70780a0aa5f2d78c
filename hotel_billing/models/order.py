import sqlalchemy as sa
from sqlalchemy import Column, DateTime, Index, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from hotel_billing.core.database import Base

ORDER_STATUS_OPEN = "OPEN"
ORDER_STATUS_BILLED = "BILLED"
ORDER_STATUS_CANCELLED = "CANCELLED"
ORDER_STATUSES = {ORDER_STATUS_OPEN, ORDER_STATUS_BILLED, ORDER_STATUS_CANCELLED}
TERMINAL_ORDER_STATUSES = {ORDER_STATUS_BILLED, ORDER_STATUS_CANCELLED}


class TableOrder(Base):
    __tablename__ = "table_orders"
    __table_args__ = (
        # One OPEN order per table; backstop for the check done at insert time.
        Index(
            "uq_table_orders_open_table",
            "hotel_id",
            "table_number",
            unique=True,
            postgresql_where=sa.text("status = 'OPEN'"),
            sqlite_where=sa.text("status = 'OPEN'"),
        ),
        Index("ix_table_orders_hotel_status", "hotel_id", "status"),
    )

    order_id = Column(String(36), primary_key=True)
    hotel_id = Column(String(64), index=True, nullable=False)
    table_number = Column(Integer, nullable=False)

    # [{"reference_id", "name", "unit_price" (decimal string), "quantity"}]
    items = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False, default=list)
    notes = Column(Text, default="", nullable=False)

    status = Column(String(16), default=ORDER_STATUS_OPEN, nullable=False)
    version = Column(Integer, default=1, nullable=False)

    lock_holder = Column(String(128), nullable=True)
    lock_expires_at = Column(DateTime(timezone=True), nullable=True)

    invoice_id = Column(String(36), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<TableOrder {self.order_id} table={self.table_number} {self.status} v{self.version}>"

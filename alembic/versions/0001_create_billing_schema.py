from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision = "0001_create_billing_schema"
down_revision = None
branch_labels = None
depends_on = None

_JSON = JSONB().with_variant(sa.JSON(), "sqlite")
_MONEY = sa.Numeric(12, 4)
_PERCENT = sa.Numeric(7, 4)


def upgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    if not inspector.has_table("table_orders"):
        op.create_table(
            "table_orders",
            sa.Column("order_id", sa.String(36), primary_key=True),
            sa.Column("hotel_id", sa.String(64), nullable=False),
            sa.Column("table_number", sa.Integer(), nullable=False),
            sa.Column("items", _JSON, nullable=False),
            sa.Column("notes", sa.Text(), nullable=False, server_default=""),
            sa.Column("status", sa.String(16), nullable=False, server_default="OPEN"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("lock_holder", sa.String(128), nullable=True),
            sa.Column("lock_expires_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("invoice_id", sa.String(36), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_table_orders_hotel_id", "table_orders", ["hotel_id"], unique=False)
        op.create_index("ix_table_orders_hotel_status", "table_orders", ["hotel_id", "status"], unique=False)
        op.create_index(
            "uq_table_orders_open_table",
            "table_orders",
            ["hotel_id", "table_number"],
            unique=True,
            postgresql_where=sa.text("status = 'OPEN'"),
            sqlite_where=sa.text("status = 'OPEN'"),
        )

    if not inspector.has_table("invoices"):
        op.create_table(
            "invoices",
            sa.Column("id", sa.String(36), primary_key=True),
            sa.Column("hotel_id", sa.String(64), nullable=False),
            sa.Column("invoice_number", sa.String(64), nullable=False),
            sa.Column("table_number", sa.Integer(), nullable=False),
            sa.Column("hotel_name", sa.String(200), nullable=False, server_default=""),
            sa.Column("issued_at", sa.String(40), nullable=False),
            sa.Column("subtotal", _MONEY, nullable=False),
            sa.Column("discount_amount", _MONEY, nullable=False, server_default="0"),
            sa.Column("adjustment_a_percentage", _PERCENT, nullable=False, server_default="0"),
            sa.Column("adjustment_a_amount", _MONEY, nullable=False, server_default="0"),
            sa.Column("adjustment_b_percentage", _PERCENT, nullable=False, server_default="0"),
            sa.Column("adjustment_b_amount", _MONEY, nullable=False, server_default="0"),
            sa.Column("grand_total", _MONEY, nullable=False),
            sa.Column("invoice_json", _JSON, nullable=False),
            sa.Column("artifact_key", sa.String(512), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
            sa.UniqueConstraint("invoice_number", name="uq_invoices_invoice_number"),
        )
        op.create_index("ix_invoices_hotel_id", "invoices", ["hotel_id"], unique=False)

    if not inspector.has_table("invoice_items"):
        op.create_table(
            "invoice_items",
            sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
            sa.Column(
                "invoice_id",
                sa.String(36),
                sa.ForeignKey("invoices.id", ondelete="CASCADE"),
                nullable=False,
            ),
            sa.Column("reference_id", sa.String(64), nullable=True),
            sa.Column("dish_name", sa.String(200), nullable=False),
            sa.Column("unit_price", _MONEY, nullable=False),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("line_total", _MONEY, nullable=False),
        )
        op.create_index("ix_invoice_items_invoice_id", "invoice_items", ["invoice_id"], unique=False)

    if not inspector.has_table("audit_logs"):
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("hotel_id", sa.String(64), nullable=False),
            sa.Column("action", sa.String(), nullable=False),
            sa.Column("entity_type", sa.String(), nullable=True),
            sa.Column("entity_id", sa.String(64), nullable=True),
            sa.Column("meta_json", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        )
        op.create_index("ix_audit_logs_id", "audit_logs", ["id"], unique=False)
        op.create_index("ix_audit_logs_hotel_id", "audit_logs", ["hotel_id"], unique=False)


def downgrade() -> None:
    bind = op.get_bind()
    inspector = sa.inspect(bind)

    for table in ("audit_logs", "invoice_items", "invoices", "table_orders"):
        if inspector.has_table(table):
            op.drop_table(table)

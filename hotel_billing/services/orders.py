from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional, Union
from uuid import uuid4

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from hotel_billing.core.config import BILLING_LOCK_TTL_SECONDS
from hotel_billing.core.errors import ConflictError, NotFoundError, VersionConflictError
from hotel_billing.models.order import (
    ORDER_STATUS_BILLED,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_OPEN,
    TableOrder,
)
from hotel_billing.services.audit import log_order_action

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is written in UTC.
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def _get(entry: Any, *keys: str, default: Any = None) -> Any:
    """Reads the first present key from a dict or attribute from a model."""
    for key in keys:
        if isinstance(entry, dict):
            if entry.get(key) not in (None, ""):
                return entry[key]
        else:
            value = getattr(entry, key, None)
            if value not in (None, ""):
                return value
    return default


def normalize_items(items: Iterable[Any]) -> list[dict]:
    normalized: list[dict] = []
    for entry in items or []:
        try:
            unit_price = Decimal(str(_get(entry, "unit_price", "price", default="0")))
        except InvalidOperation as exc:
            raise ValueError("unit_price must be a number") from exc
        try:
            quantity = int(_get(entry, "quantity", "qty", default=0))
        except (TypeError, ValueError) as exc:
            raise ValueError("quantity must be an integer") from exc

        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        if unit_price < 0:
            raise ValueError("unit_price must not be negative")

        reference_id = _get(entry, "reference_id", "menu_item_id")
        normalized.append(
            {
                "reference_id": str(reference_id) if reference_id is not None else None,
                "name": str(_get(entry, "name", "dish_name", default="") or "").strip(),
                "unit_price": str(unit_price),
                "quantity": quantity,
            }
        )
    return normalized


def order_to_dict(order: TableOrder) -> dict:
    return {
        "order_id": order.order_id,
        "hotel_id": order.hotel_id,
        "table_number": order.table_number,
        "items": list(order.items or []),
        "notes": order.notes or "",
        "status": order.status,
        "version": order.version,
        "lock_holder": order.lock_holder,
        "lock_expires_at": order.lock_expires_at,
        "invoice_id": order.invoice_id,
        "created_at": order.created_at,
        "updated_at": order.updated_at,
    }


def _reload(db: Session, order_id: str) -> TableOrder | None:
    return db.get(TableOrder, order_id, populate_existing=True)


def _version_conflict(
    db: Session,
    order_id: str,
    expected_version: int,
    hotel_id: Optional[str] = None,
) -> VersionConflictError:
    current = _reload(db, order_id)
    current_version = current_status = None
    if current is not None and (hotel_id is None or current.hotel_id == hotel_id):
        current_version, current_status = current.version, current.status
    db.rollback()

    if current_status is None:
        message = "Order not found"
    elif current_status != ORDER_STATUS_OPEN:
        message = f"Order is {current_status} and can no longer be changed"
    else:
        message = "Order has been modified by another user"
    return VersionConflictError(
        message,
        order_id=order_id,
        expected_version=expected_version,
        current_version=current_version,
        current_status=current_status,
    )


def create_order(
    db: Session,
    *,
    hotel_id: str,
    table_number: int,
    items: Iterable[Any],
    notes: Optional[str] = None,
) -> TableOrder:
    if int(table_number) < 1:
        raise ValueError("table_number must be a positive integer")
    normalized_items = normalize_items(items)

    try:
        existing = (
            db.query(TableOrder.order_id)
            .filter(
                TableOrder.hotel_id == hotel_id,
                TableOrder.table_number == table_number,
                TableOrder.status == ORDER_STATUS_OPEN,
            )
            .first()
        )
        if existing:
            raise ConflictError(
                f"Table {table_number} already has an active order",
                table_number=table_number,
                order_id=existing.order_id,
            )

        now = utcnow()
        order = TableOrder(
            order_id=str(uuid4()),
            hotel_id=hotel_id,
            table_number=table_number,
            items=normalized_items,
            notes=notes or "",
            status=ORDER_STATUS_OPEN,
            version=1,
            created_at=now,
            updated_at=now,
        )
        db.add(order)
        db.flush()

        log_order_action(
            db,
            hotel_id=hotel_id,
            action="order_created",
            entity_id=order.order_id,
            meta={"table_number": table_number, "item_count": len(normalized_items)},
        )
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(
            f"Table {table_number} already has an active order",
            table_number=table_number,
        ) from exc
    except Exception:
        db.rollback()
        raise

    logger.info("order created", extra={"order_id": order.order_id, "version": order.version})
    return order


def update_order(
    db: Session,
    *,
    order_id: str,
    items: Iterable[Any],
    notes: Optional[str],
    expected_version: int,
    hotel_id: Optional[str] = None,
) -> TableOrder:
    normalized_items = normalize_items(items)

    filters = [
        TableOrder.order_id == order_id,
        TableOrder.version == expected_version,
        TableOrder.status == ORDER_STATUS_OPEN,
    ]
    if hotel_id is not None:
        filters.append(TableOrder.hotel_id == hotel_id)

    try:
        result = db.execute(
            update(TableOrder)
            .where(*filters)
            .values(
                items=normalized_items,
                notes=notes or "",
                version=TableOrder.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise _version_conflict(db, order_id, expected_version, hotel_id)

        order = _reload(db, order_id)
        log_order_action(
            db,
            hotel_id=order.hotel_id,
            action="order_updated",
            entity_id=order_id,
            meta={"item_count": len(normalized_items), "version": order.version},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    return order


def get_order(db: Session, order_id: str, hotel_id: Optional[str] = None) -> TableOrder:
    order = db.get(TableOrder, order_id)
    if order is None or (hotel_id is not None and order.hotel_id != hotel_id):
        raise NotFoundError("Order not found")
    return order


def get_active_order(db: Session, hotel_id: str, table_number: int) -> TableOrder | None:
    return (
        db.query(TableOrder)
        .filter(
            TableOrder.hotel_id == hotel_id,
            TableOrder.table_number == table_number,
            TableOrder.status == ORDER_STATUS_OPEN,
        )
        .order_by(TableOrder.created_at.desc())
        .first()
    )


def list_open_orders(db: Session, hotel_id: str) -> list[TableOrder]:
    return (
        db.query(TableOrder)
        .filter(TableOrder.hotel_id == hotel_id, TableOrder.status == ORDER_STATUS_OPEN)
        .order_by(TableOrder.table_number.asc(), TableOrder.created_at.desc())
        .all()
    )


def lock_for_billing(
    db: Session,
    *,
    order_id: str,
    holder_id: str,
    ttl: Union[int, float, timedelta] = BILLING_LOCK_TTL_SECONDS,
    now: Optional[datetime] = None,
) -> TableOrder:
    """Claims the order for billing until ``now + ttl``.

    Re-acquiring a live lock with the same holder returns the order without
    writing. A live lock held by someone else raises ConflictError.
    """
    if not isinstance(ttl, timedelta):
        ttl = timedelta(seconds=ttl)
    now = _as_utc(now) or utcnow()

    try:
        result = db.execute(
            update(TableOrder)
            .where(
                TableOrder.order_id == order_id,
                TableOrder.status == ORDER_STATUS_OPEN,
                or_(TableOrder.lock_holder.is_(None), TableOrder.lock_expires_at < now),
            )
            .values(
                lock_holder=holder_id,
                lock_expires_at=now + ttl,
                version=TableOrder.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            order = _reload(db, order_id)
            db.commit()
            logger.info("order locked for billing", extra={"order_id": order_id, "version": order.version})
            return order

        order = _reload(db, order_id)
        if order is None:
            db.rollback()
            raise NotFoundError("Order not found")
        status, version = order.status, order.version
        lock_holder, lock_expires_at = order.lock_holder, _as_utc(order.lock_expires_at)
        if status == ORDER_STATUS_OPEN and lock_holder == holder_id and lock_expires_at is not None and lock_expires_at >= now:
            db.commit()
            return order
        db.rollback()
    except Exception:
        db.rollback()
        raise

    if status != ORDER_STATUS_OPEN:
        raise ConflictError(
            f"Order is {status} and cannot be billed",
            order_id=order_id,
            current_status=status,
            current_version=version,
        )
    raise ConflictError(
        "Order is being billed by another session",
        order_id=order_id,
        lock_expires_at=lock_expires_at,
        current_version=version,
    )


def mark_billed(
    db: Session,
    *,
    order_id: str,
    invoice_id: str,
    expected_version: int,
) -> TableOrder:
    try:
        result = db.execute(
            update(TableOrder)
            .where(
                TableOrder.order_id == order_id,
                TableOrder.version == expected_version,
                TableOrder.status == ORDER_STATUS_OPEN,
            )
            .values(
                status=ORDER_STATUS_BILLED,
                invoice_id=invoice_id,
                lock_holder=None,
                lock_expires_at=None,
                version=TableOrder.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise _version_conflict(db, order_id, expected_version)

        order = _reload(db, order_id)
        log_order_action(
            db,
            hotel_id=order.hotel_id,
            action="invoice_generated",
            entity_id=order_id,
            meta={"invoice_id": invoice_id, "table_number": order.table_number},
        )
        log_order_action(
            db,
            hotel_id=order.hotel_id,
            action="table_freed",
            entity_type="TABLE",
            entity_id=order_id,
            meta={"table_number": order.table_number},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("order billed", extra={"order_id": order_id, "invoice_id": invoice_id, "version": order.version})
    return order


def cancel_order(
    db: Session,
    *,
    order_id: str,
    expected_version: int,
    hotel_id: Optional[str] = None,
) -> TableOrder:
    filters = [
        TableOrder.order_id == order_id,
        TableOrder.version == expected_version,
        TableOrder.status == ORDER_STATUS_OPEN,
    ]
    if hotel_id is not None:
        filters.append(TableOrder.hotel_id == hotel_id)

    try:
        result = db.execute(
            update(TableOrder)
            .where(*filters)
            .values(
                status=ORDER_STATUS_CANCELLED,
                lock_holder=None,
                lock_expires_at=None,
                version=TableOrder.version + 1,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise _version_conflict(db, order_id, expected_version, hotel_id)

        order = _reload(db, order_id)
        log_order_action(
            db,
            hotel_id=order.hotel_id,
            action="order_cancelled",
            entity_id=order_id,
            meta={"table_number": order.table_number},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    return order

"""Invoice persistence across the relational store and the blob store.

The two stores cannot share a transaction. The record is written first and
committed; only then is the PDF artifact uploaded. If the upload fails the
invoice stays committed without an artifact: the planned key is cleared on
the row before ``store`` returns. If that patch fails too, a reconciliation
task retries it in the background.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Callable, Mapping, Optional, Union
from uuid import uuid4

from sqlalchemy import update
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import selectinload, sessionmaker

from hotel_billing.core import config
from hotel_billing.core.errors import ArtifactDegradedWarning, NotFoundError, PersistenceError
from hotel_billing.core.metrics import billing_signals
from hotel_billing.core.retry import retry_call
from hotel_billing.invoicing.schema import InvoiceDocument
from hotel_billing.models.invoice import Invoice, InvoiceItem
from hotel_billing.services.blob_storage import invoice_artifact_key
from hotel_billing.services.invoice_pdf import render_invoice_pdf

logger = logging.getLogger(__name__)

_STORED_SCALE = Decimal("0.0001")

Dispatcher = Callable[[Callable[[], None]], Any]

_reconcile_executor: Optional[ThreadPoolExecutor] = None


def _background_dispatch(task: Callable[[], None]) -> Any:
    global _reconcile_executor
    if _reconcile_executor is None:
        _reconcile_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="invoice-reconcile")
    return _reconcile_executor.submit(task)


def is_transient_db_error(exc: Exception) -> bool:
    if isinstance(exc, OperationalError):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


@dataclass(frozen=True)
class StoredInvoice:
    invoice_id: str
    hotel_id: str
    invoice_number: str
    table_number: int
    grand_total: Decimal
    artifact_key: Optional[str]
    invoice_json: dict = field(default_factory=dict)


def _stored_from_row(invoice: Invoice) -> StoredInvoice:
    return StoredInvoice(
        invoice_id=invoice.id,
        hotel_id=invoice.hotel_id,
        invoice_number=invoice.invoice_number,
        table_number=invoice.table_number,
        grand_total=Decimal(invoice.grand_total),
        artifact_key=invoice.artifact_key,
        invoice_json=dict(invoice.invoice_json or {}),
    )


def _same_invoice(existing: Invoice, hotel_id: str, document: InvoiceDocument) -> bool:
    return (
        existing.hotel_id == hotel_id
        and existing.table_number == document.table_number
        and Decimal(existing.grand_total).quantize(_STORED_SCALE)
        == Decimal(document.grand_total).quantize(_STORED_SCALE)
    )


class InvoiceStorage:
    def __init__(
        self,
        session_factory: sessionmaker,
        blob_store: Any = None,
        renderer: Optional[Callable[[Mapping[str, Any]], bytes]] = render_invoice_pdf,
        *,
        dispatcher: Dispatcher = _background_dispatch,
        sleep: Optional[Callable[[float], None]] = None,
        base_delay: float = 1.0,
        pdf_enabled: bool = config.INVOICE_PDF_ENABLED,
    ) -> None:
        self.session_factory = session_factory
        self.blob_store = blob_store
        self.renderer = renderer
        self.dispatcher = dispatcher
        self.sleep = sleep
        self.base_delay = base_delay
        self.pdf_enabled = pdf_enabled

    @property
    def blob_store_configured(self) -> bool:
        return self.blob_store is not None and bool(getattr(self.blob_store, "configured", True))

    def store(
        self,
        hotel_id: str,
        invoice_data: Union[InvoiceDocument, Mapping[str, Any]],
        max_retries: int = config.INVOICE_STORE_MAX_RETRIES,
    ) -> StoredInvoice:
        if isinstance(invoice_data, InvoiceDocument):
            document = invoice_data
        else:
            document = InvoiceDocument.model_validate(invoice_data)
        invoice_json = document.model_dump(mode="json")

        pdf = self._render(invoice_json, document.invoice_number)
        artifact_key = None
        if pdf is not None:
            if self.blob_store_configured:
                artifact_key = invoice_artifact_key(hotel_id, document.invoice_number)
            else:
                self._signal_degraded(document.invoice_number, "blob store is not configured")

        retry_options: dict[str, Any] = {}
        if self.sleep is not None:
            retry_options["sleep"] = self.sleep
        try:
            stored = retry_call(
                lambda: self._write_record(hotel_id, document, invoice_json, artifact_key),
                attempts=max(max_retries, 1),
                base_delay=self.base_delay,
                retry_if=is_transient_db_error,
                on_retry=lambda _attempt, _exc: billing_signals.incr("store_retry"),
                operation_name="invoice store",
                **retry_options,
            )
        except PersistenceError:
            raise
        except Exception as exc:
            logger.exception(
                "invoice store failed",
                extra={"invoice_number": document.invoice_number},
            )
            raise PersistenceError("Failed to store invoice") from exc

        if stored.artifact_key and pdf is not None:
            stored = self._publish_artifact(stored, pdf)
        return stored

    def _render(self, invoice_json: Mapping[str, Any], invoice_number: str) -> Optional[bytes]:
        if not self.pdf_enabled or self.renderer is None:
            return None
        try:
            return self.renderer(invoice_json)
        except Exception as exc:
            logger.warning(
                "invoice pdf render failed: %s",
                exc,
                extra={"invoice_number": invoice_number},
            )
            return None

    def _write_record(
        self,
        hotel_id: str,
        document: InvoiceDocument,
        invoice_json: dict,
        artifact_key: Optional[str],
    ) -> StoredInvoice:
        with self.session_factory() as db:
            invoice = Invoice(
                id=str(uuid4()),
                hotel_id=hotel_id,
                invoice_number=document.invoice_number,
                table_number=document.table_number,
                hotel_name=document.hotel_name,
                issued_at=document.date,
                subtotal=document.subtotal,
                discount_amount=document.discount,
                adjustment_a_percentage=document.adjustment_a.percentage,
                adjustment_a_amount=document.adjustment_a.amount,
                adjustment_b_percentage=document.adjustment_b.percentage,
                adjustment_b_amount=document.adjustment_b.amount,
                grand_total=document.grand_total,
                invoice_json=invoice_json,
                artifact_key=artifact_key,
            )
            invoice.items = [
                InvoiceItem(
                    reference_id=line.reference_id,
                    dish_name=line.dish_name,
                    unit_price=line.price,
                    quantity=line.quantity,
                    line_total=line.total,
                )
                for line in document.items
            ]
            try:
                db.add(invoice)
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                return self._resolve_duplicate(db, hotel_id, document, exc)
            except Exception:
                db.rollback()
                raise

            logger.info(
                "invoice stored",
                extra={"invoice_id": invoice.id, "invoice_number": invoice.invoice_number},
            )
            return _stored_from_row(invoice)

    def _resolve_duplicate(
        self,
        db,
        hotel_id: str,
        document: InvoiceDocument,
        exc: IntegrityError,
    ) -> StoredInvoice:
        # A retry whose first attempt committed but never acknowledged lands here.
        existing = db.query(Invoice).filter(Invoice.invoice_number == document.invoice_number).first()
        if existing is not None and _same_invoice(existing, hotel_id, document):
            logger.info(
                "invoice already stored, reusing it",
                extra={"invoice_id": existing.id, "invoice_number": existing.invoice_number},
            )
            return _stored_from_row(existing)
        raise PersistenceError("Failed to store invoice") from exc

    def _publish_artifact(self, stored: StoredInvoice, pdf: bytes) -> StoredInvoice:
        try:
            self.blob_store.put(stored.artifact_key, pdf)
        except Exception as exc:
            self._signal_degraded(stored.invoice_number, str(exc), invoice_id=stored.invoice_id)
            invoice_id = stored.invoice_id
            if not self._clear_artifact_key(invoice_id):
                self.dispatcher(lambda: self._clear_artifact_key(invoice_id))
            return replace(stored, artifact_key=None)
        return stored

    def _signal_degraded(self, invoice_number: str, reason: str, invoice_id: Optional[str] = None) -> None:
        billing_signals.incr(ArtifactDegradedWarning.signal)
        logger.warning(
            "invoice stored without artifact: %s",
            reason,
            extra={
                "signal": ArtifactDegradedWarning.signal,
                "invoice_id": invoice_id,
                "invoice_number": invoice_number,
            },
        )

    def _clear_artifact_key(self, invoice_id: str) -> bool:
        try:
            with self.session_factory() as db:
                try:
                    db.execute(
                        update(Invoice)
                        .where(Invoice.id == invoice_id)
                        .values(artifact_key=None)
                        .execution_options(synchronize_session=False)
                    )
                    db.commit()
                except Exception:
                    db.rollback()
                    raise
        except Exception:
            logger.exception("artifact key reconciliation failed", extra={"invoice_id": invoice_id})
            return False
        return True

    def retrieve(self, invoice_id: str, hotel_id: str) -> Invoice:
        with self.session_factory() as db:
            invoice = (
                db.query(Invoice)
                .options(selectinload(Invoice.items))
                .filter(Invoice.id == invoice_id, Invoice.hotel_id == hotel_id)
                .first()
            )
            if invoice is None:
                raise NotFoundError("Invoice not found")
            return invoice

    def list_invoices(self, hotel_id: str, limit: int = 50) -> list[Invoice]:
        with self.session_factory() as db:
            return (
                db.query(Invoice)
                .options(selectinload(Invoice.items))
                .filter(Invoice.hotel_id == hotel_id)
                .order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())
                .limit(limit)
                .all()
            )

    def artifact_url(self, invoice: Any) -> Optional[str]:
        key = getattr(invoice, "artifact_key", None)
        if not key or not self.blob_store_configured:
            return None
        try:
            return self.blob_store.presigned_url(key, expires_in=config.PRESIGNED_URL_EXPIRATION_SECONDS)
        except Exception as exc:
            logger.warning("presigned url failed: %s", exc, extra={"invoice_id": getattr(invoice, "id", None)})
            return None

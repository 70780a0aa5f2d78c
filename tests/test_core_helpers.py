import json
import logging
from unittest.mock import MagicMock

import pytest

from hotel_billing.core.logging_setup import JsonFormatter
from hotel_billing.core.metrics import BillingSignals, InMemoryRequestMetrics
from hotel_billing.core.request_context import clear_request_context, get_hotel_id, hotel_scope, set_request_context
from hotel_billing.core.retry import backoff_delays, retry_call
from hotel_billing.services.blob_storage import BlobStoreNotConfigured, S3BlobStore, invoice_artifact_key


def test_backoff_delays_double_each_time():
    assert backoff_delays(4) == [1.0, 2.0, 4.0]
    assert backoff_delays(1) == []


def test_retry_call_retries_until_success():
    calls = []
    sleeps = []

    def _operation():
        calls.append(1)
        if len(calls) < 3:
            raise ConnectionError("flaky")
        return "done"

    result = retry_call(_operation, attempts=3, sleep=sleeps.append)

    assert result == "done"
    assert sleeps == [1.0, 2.0]


def test_retry_call_does_not_retry_rejected_errors():
    sleeps = []

    def _operation():
        raise KeyError("permanent")

    with pytest.raises(KeyError):
        retry_call(_operation, attempts=5, retry_if=lambda exc: isinstance(exc, ConnectionError), sleep=sleeps.append)

    assert sleeps == []


def test_retry_call_reraises_last_error():
    attempts = []

    def _operation():
        attempts.append(1)
        raise ConnectionError(f"attempt {len(attempts)}")

    with pytest.raises(ConnectionError, match="attempt 3"):
        retry_call(_operation, attempts=3, sleep=lambda _delay: None)


def test_json_formatter_masks_secrets_and_adds_context():
    formatter = JsonFormatter("%(message)s")
    record = logging.LogRecord("billing", logging.WARNING, __file__, 1, "call failed api_key=abc123 Authorization: Bearer xyz", None, None)
    record.invoice_number = "INV-1"

    with hotel_scope("hotel-9"):
        payload = json.loads(formatter.format(record))

    assert payload["hotel_id"] == "hotel-9"
    assert payload["invoice_number"] == "INV-1"
    assert "abc123" not in payload["message"]
    assert "xyz" not in payload["message"]


def test_request_context_is_cleared():
    set_request_context(request_id="req-1", hotel_id="hotel-1")
    assert get_hotel_id() == "hotel-1"

    clear_request_context()

    assert get_hotel_id() is None


def test_request_metrics_snapshot():
    metrics = InMemoryRequestMetrics()
    metrics.observe("/api/orders", "POST", 201, 10.0)
    metrics.observe("/api/orders", "POST", 409, 20.0)

    snapshot = metrics.snapshot()

    assert snapshot["POST /api/orders"] == {"total_requests": 2, "avg_duration_ms": 15.0, "error_count": 1}


def test_billing_signals_count_and_reset():
    signals = BillingSignals()
    signals.incr("artifact_degraded")
    signals.incr("artifact_degraded")

    assert signals.snapshot() == {"artifact_degraded": 2}
    signals.reset()
    assert signals.count("artifact_degraded") == 0


def test_s3_blob_store_uses_client():
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://s3.test/signed"
    store = S3BlobStore(bucket="invoices", client=client)

    store.put("invoices/hotel-1/INV-1.pdf", b"%PDF")
    url = store.presigned_url("invoices/hotel-1/INV-1.pdf", expires_in=900)

    assert store.configured is True
    client.put_object.assert_called_once_with(
        Bucket="invoices",
        Key="invoices/hotel-1/INV-1.pdf",
        Body=b"%PDF",
        ContentType="application/pdf",
    )
    client.generate_presigned_url.assert_called_once_with(
        "get_object",
        Params={"Bucket": "invoices", "Key": "invoices/hotel-1/INV-1.pdf"},
        ExpiresIn=900,
    )
    assert url == "https://s3.test/signed"


def test_s3_blob_store_without_bucket_is_not_configured():
    store = S3BlobStore(bucket="", client=MagicMock())

    assert store.configured is False
    with pytest.raises(BlobStoreNotConfigured):
        store.put("key", b"data")


def test_invoice_artifact_key_is_scoped_by_hotel():
    assert invoice_artifact_key("/hotel-1/", "INV-1") == "invoices/hotel-1/INV-1.pdf"

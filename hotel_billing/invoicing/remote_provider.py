from __future__ import annotations

import json
import logging
import re
import time
from typing import Any, Callable, Optional

import httpx

from hotel_billing.core import config
from hotel_billing.core.errors import GenerationFallbackError
from hotel_billing.invoicing.base import InvoiceRequest
from hotel_billing.invoicing.schema import InvoiceDocument

logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


def build_prompt(request: InvoiceRequest) -> str:
    lines = "\n".join(
        f"- {item.get('name')}: {item.get('quantity')} x {item.get('unit_price')}"
        for item in request.items
    )
    return (
        "Generate a professional hotel restaurant invoice as a single JSON object.\n"
        f"Hotel: {request.hotel_name}\n"
        f"Table: {request.table_number}\n"
        f"Invoice number: {request.invoice_number}\n"
        f"Date: {request.date}\n"
        f"Items:\n{lines}\n"
        f"Tax percentage: {request.adjustment_a_percentage}\n"
        f"Service charge percentage: {request.adjustment_b_percentage}\n"
        f"Discount amount: {request.discount_amount}\n"
        "Use the keys invoiceNumber, tableNumber, hotelName, date, "
        "items[dishName, quantity, price, total], subtotal, gst{percentage, amount}, "
        "serviceCharge{percentage, amount}, discount, grandTotal. "
        "Tax and service charge apply to the subtotal after discount."
    )


def extract_payload(body: Any) -> dict[str, Any]:
    """Pulls the invoice object out of a text-generation response."""
    if isinstance(body, list):
        body = body[0] if body else {}
    if not isinstance(body, dict):
        raise ValueError("unexpected response shape")
    if "invoiceNumber" in body or "invoice_number" in body:
        return body

    text = body.get("generated_text")
    if not isinstance(text, str):
        raise ValueError("response has no generated_text")
    match = _JSON_BLOCK.search(text)
    if not match:
        raise ValueError("no JSON object in generated_text")
    payload = json.loads(match.group(0))
    if not isinstance(payload, dict):
        raise ValueError("generated JSON is not an object")
    return payload


class RemoteInvoiceGenerator:
    """Calls a hosted text-generation model for the invoice body.

    Every failure, including a missing key and the overall deadline running
    out, surfaces as GenerationFallbackError.
    """

    name = "remote"

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.BaseTransport] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.api_key = config.INVOICE_AI_API_KEY if api_key is None else api_key
        self.model = model or config.INVOICE_AI_MODEL
        self.base_url = (base_url or config.INVOICE_AI_BASE_URL).rstrip("/")
        self.timeout_seconds = float(
            config.INVOICE_AI_TIMEOUT_SECONDS if timeout_seconds is None else timeout_seconds
        )
        self.max_retries = config.INVOICE_AI_MAX_RETRIES if max_retries is None else max_retries
        self._transport = transport
        self._clock = clock

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    @property
    def url(self) -> str:
        return f"{self.base_url}/models/{self.model}"

    def generate(self, request: InvoiceRequest) -> InvoiceDocument:
        if not self.enabled:
            raise GenerationFallbackError("invoice generation service is not configured")

        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        body = {
            "inputs": build_prompt(request),
            "parameters": {"max_length": 1000, "temperature": 0.3},
        }
        deadline = self._clock() + self.timeout_seconds
        last_error: Optional[str] = None

        for attempt in range(1, self.max_retries + 2):
            remaining = deadline - self._clock()
            if remaining <= 0:
                last_error = last_error or "deadline exceeded"
                break
            try:
                with httpx.Client(timeout=remaining, transport=self._transport) as client:
                    response = client.post(self.url, headers=headers, json=body)
                if response.status_code >= 400:
                    raise ValueError(f"status {response.status_code}")
                payload = extract_payload(response.json())
                # The caller's number and date win over whatever the model echoed.
                payload["invoiceNumber"] = request.invoice_number
                payload.setdefault("date", request.date)
                return InvoiceDocument.model_validate(payload)
            except Exception as exc:
                last_error = str(exc) or exc.__class__.__name__
                logger.warning(
                    "invoice generation attempt %s failed: %s",
                    attempt,
                    last_error,
                    extra={"attempt": attempt, "invoice_number": request.invoice_number},
                )

        raise GenerationFallbackError(f"invoice generation failed: {last_error}")

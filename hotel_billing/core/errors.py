from __future__ import annotations

from typing import Any, Optional


class BillingError(Exception):
    """Base class for errors raised by the billing core."""


class ConflictError(BillingError):
    """A business rule rejected the request before anything was written."""

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class VersionConflictError(ConflictError):
    """Optimistic-concurrency mismatch on an order.

    Callers should re-fetch the order and retry, or show the conflict to a
    human. The store never retries on its own.
    """

    def __init__(
        self,
        message: str,
        *,
        order_id: str,
        expected_version: int,
        current_version: Optional[int] = None,
        current_status: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            order_id=order_id,
            expected_version=expected_version,
            current_version=current_version,
            current_status=current_status,
        )
        self.order_id = order_id
        self.expected_version = expected_version
        self.current_version = current_version
        self.current_status = current_status


class NotFoundError(BillingError):
    """Missing entity, or one owned by another tenant."""


class PersistenceError(BillingError):
    """Transactional write failed after exhausting retries."""


class GenerationFallbackError(BillingError):
    """External invoice generation failed; absorbed by the composer."""


class ArtifactDegradedWarning(UserWarning):
    """Category for the log signal emitted when an artifact upload fails."""

    signal = "artifact_degraded"

from __future__ import annotations

from fastapi import APIRouter, Depends

from hotel_billing.core.metrics import billing_signals, request_metrics
from hotel_billing.deps import get_current_hotel_id

router = APIRouter(prefix="/internal/metrics", tags=["internal-metrics"])


@router.get("/billing")
def billing_metrics(_hotel_id: str = Depends(get_current_hotel_id)):
    return {"signals": billing_signals.snapshot(), "requests": request_metrics.snapshot()}

"""
event_normalizer/routes/service.py

Read-only service endpoints: liveness, the format catalog and counters.
"""
from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter

from event_normalizer.schemas.api_contract import FormatsResponse, HealthResponse, MetricsResponse
from event_normalizer.services import metrics as metrics_service
from event_normalizer.services.registry import supported_formats

SERVICE_NAME = "event-normalizer"
SERVICE_VERSION = "1.0.0"

router = APIRouter(tags=["service"])


@router.get("/health", response_model=HealthResponse)
def health():
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }


@router.get("/formats", response_model=FormatsResponse)
def list_formats():
    formats = supported_formats()
    return {"format_count": len(formats), "formats": formats}


@router.get("/metrics", response_model=MetricsResponse)
def get_metrics():
    return metrics_service.get_metrics()

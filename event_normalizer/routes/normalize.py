from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException

from event_normalizer.schemas.api_contract import (
    InspectResponse,
    NormalizeRequest,
    NormalizeResponse,
)
from event_normalizer.schemas.event_models import NormalizationConfig
from event_normalizer.services import metrics as metrics_service
from event_normalizer.services.normalization import normalization_metrics
from event_normalizer.services.registry import (
    UnsupportedFormatError,
    inspect_event,
    normalize_event,
)
from event_normalizer.services.settings import default_normalization_config, get_settings

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

router = APIRouter(tags=["normalization"])


def _effective_config(requested: Optional[NormalizationConfig]) -> NormalizationConfig:
    """Service defaults overlaid with the keys the caller actually sent."""
    defaults = default_normalization_config()
    if requested is None:
        return defaults
    return defaults.model_copy(update=requested.model_dump(exclude_unset=True))


def _unsupported(exc: UnsupportedFormatError) -> HTTPException:
    try:
        metrics_service.record_unsupported_format()
    except Exception as e:
        logger.warning(f"Metrics update failed: {e}")
    return HTTPException(
        status_code=400,
        detail={"code": "UNSUPPORTED_FORMAT", "message": str(exc)},
    )


@router.post("/normalize", response_model=NormalizeResponse)
def normalize(payload: NormalizeRequest):
    config = _effective_config(payload.config)

    try:
        event = normalize_event(payload.event, config)
    except UnsupportedFormatError as exc:
        raise _unsupported(exc)

    logger.info(
        f"Normalized {payload.event.format} event {event.id} as {event.type} "
        f"(validated={event.validation.validated})"
    )

    # Metrics are best effort and never break normalization.
    try:
        metrics_service.record_normalization(event)
    except Exception as e:
        logger.warning(f"Metrics update failed for {event.id}: {e}")

    if config.strict_validation and not event.validation.validated:
        raise HTTPException(
            status_code=422,
            detail={
                "code": "VALIDATION_FAILED",
                "message": "Normalized event failed validation",
                "errors": [e.model_dump() for e in event.validation.errors or []],
                "normalized_event": event.to_payload(),
            },
        )

    return {
        "status": "success",
        "data": {
            "normalized_event": event.to_payload(),
            "metrics": normalization_metrics(event),
        },
    }


@router.post("/inspect", response_model=InspectResponse)
def inspect(payload: NormalizeRequest):
    config = _effective_config(payload.config)

    try:
        result = inspect_event(payload.event, config)
    except UnsupportedFormatError as exc:
        raise _unsupported(exc)

    return {
        "status": "success",
        "data": {
            "normalized_event": result["normalized_event"].to_payload(),
            "field_mappings": [m.model_dump(exclude_none=True) for m in result["field_mappings"]],
            "detected_type": result["detected_type"],
        },
    }

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence
from uuid import uuid4

from event_normalizer.schemas.event_models import (
    CanonicalEventOutput,
    EventSource,
    ExternalEventInput,
    FieldMapping,
    NormalizationConfig,
    NormalizationInfo,
    TransformContext,
    ValidationInfo,
)
from event_normalizer.services.detection import DetectionRule, detect_with_rules
from event_normalizer.services.field_mapping import apply_field_mappings
from event_normalizer.services.transformations import format_iso8601, parse_iso8601
from event_normalizer.services.validation import FormatCheck, validate_normalized_data

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
IdFactory = Callable[[], str]
Timer = Callable[[], float]

CORRELATION_HEADERS = [
    "x-correlation-id",
    "x-request-id",
    "x-trace-id",
    "correlation-id",
    "request-id",
    "trace-id",
]
CORRELATION_PAYLOAD_KEYS = ["correlation_id", "request_id", "trace_id"]
REGION_HEADERS = ["x-region", "x-aws-region", "x-gcp-region", "x-azure-region"]

DEFAULT_CONNECTOR = "unknown"
DEFAULT_CONNECTOR_VERSION = "1.0.0"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_event_id() -> str:
    return str(uuid4())


def header_value(headers: Optional[Mapping[str, str]], names: Sequence[str]) -> Optional[str]:
    """First non-empty header among names; header keys compare case-insensitively."""
    if not headers:
        return None
    lowered = {str(k).lower(): v for k, v in headers.items()}
    for name in names:
        value = lowered.get(name.lower())
        if value:
            return value
    return None


def extract_correlation_id(event: ExternalEventInput) -> Optional[str]:
    from_headers = header_value(event.headers, CORRELATION_HEADERS)
    if from_headers:
        return from_headers

    payload = event.raw_payload
    if isinstance(payload, dict):
        for key in CORRELATION_PAYLOAD_KEYS:
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    return None


def extract_region(event: ExternalEventInput) -> Optional[str]:
    return header_value(event.headers, REGION_HEADERS)


@dataclass(frozen=True)
class FormatNormalizer:
    """One external format: detection rules, mapping table, system name and
    structural checks. normalize() is the shared template every format runs.
    """

    format: str
    rules: Sequence[DetectionRule]
    mappings: Sequence[FieldMapping]
    system_name: Callable[[ExternalEventInput], str]
    format_checks: Sequence[FormatCheck] = field(default_factory=tuple)

    def detect_event_type(self, payload: Any) -> str:
        return detect_with_rules(list(self.rules), payload)

    def get_field_mappings(self) -> List[FieldMapping]:
        return list(self.mappings)

    def get_system_name(self, event: ExternalEventInput) -> str:
        return self.system_name(event)

    def normalize(
        self,
        event: ExternalEventInput,
        config: Optional[NormalizationConfig] = None,
        *,
        clock: Clock = _utcnow,
        id_factory: IdFactory = _new_event_id,
        timer: Timer = time.perf_counter,
    ) -> CanonicalEventOutput:
        config = config or NormalizationConfig()
        started = timer()

        event_type = self.detect_event_type(event.raw_payload)
        timestamp = event.received_at or format_iso8601(clock())

        context = TransformContext(
            format=event.format,
            raw_payload=event.raw_payload,
            headers=event.headers,
            timestamp=timestamp,
        )

        mapped = apply_field_mappings(event.raw_payload, self.mappings, context, config)
        validated, errors = validate_normalized_data(
            mapped.data, event_type, config, self.format_checks
        )

        connector = event.connector_metadata
        source = EventSource(
            format=event.format,
            system=self.get_system_name(event),
            connector=connector.connector_id if connector else DEFAULT_CONNECTOR,
            version=connector.connector_version if connector else DEFAULT_CONNECTOR_VERSION,
            region=extract_region(event),
        )

        validation = ValidationInfo(
            validated=validated,
            validation_timestamp=format_iso8601(clock()),
            errors=errors,
        )

        processing_time_ms = int(round((timer() - started) * 1000))
        normalization = NormalizationInfo(
            source_format=event.format,
            target_type=event_type,
            field_mappings=mapped.applied_mappings if config.include_field_mappings else [],
            dropped_fields=mapped.dropped_fields if config.include_dropped_fields else None,
            warnings=mapped.warnings or None,
            processing_time_ms=processing_time_ms,
        )

        logger.debug(
            f"Normalized {event.format} event as {event_type} "
            f"(validated={validated}, warnings={len(mapped.warnings)})"
        )

        return CanonicalEventOutput(
            id=id_factory(),
            type=event_type,
            source=source,
            timestamp=timestamp,
            data=mapped.data,
            correlation_id=extract_correlation_id(event),
            validation=validation,
            normalization=normalization,
        )


# ---------------------------------------------------------------------------
# Boundary helpers for callers of the engine
# ---------------------------------------------------------------------------

def normalization_metrics(event: CanonicalEventOutput) -> Dict[str, int]:
    info = event.normalization
    return {
        "processing_time_ms": info.processing_time_ms,
        "field_mappings_applied": len(info.field_mappings),
        "fields_dropped": len(info.dropped_fields or []),
        "warnings_count": len(info.warnings or []),
    }


def to_persistence_record(
    event: CanonicalEventOutput,
    request_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Document handed to the persistence layer, keyed by event_id.

    Adds the denormalized index fields next to the full event payload.
    """
    epoch = parse_iso8601(event.timestamp).timestamp()
    record = event.to_payload()
    record.update(
        {
            "event_id": event.id,
            "event_type": event.type,
            "source_format": event.source.format,
            "source_system": event.source.system,
            "validated": event.validation.validated,
            "request_id": request_id,
            "timestamp_epoch": int(round(epoch * 1000)),
        }
    )
    return record

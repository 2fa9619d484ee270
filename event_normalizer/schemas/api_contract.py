from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict

from event_normalizer.schemas.event_models import (
    ExternalEventInput,
    FieldMapping,
    NormalizationConfig,
)


class _ContractModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


class NormalizeRequest(_ContractModel):
    event: ExternalEventInput
    config: Optional[NormalizationConfig] = None


class NormalizationMetrics(_ContractModel):
    processing_time_ms: int
    field_mappings_applied: int
    fields_dropped: int
    warnings_count: int


class NormalizeData(_ContractModel):
    normalized_event: Dict[str, Any]
    metrics: NormalizationMetrics


class NormalizeResponse(_ContractModel):
    status: Literal["success"]
    data: NormalizeData


class InspectData(_ContractModel):
    normalized_event: Dict[str, Any]
    field_mappings: List[FieldMapping]
    detected_type: str


class InspectResponse(_ContractModel):
    status: Literal["success"]
    data: InspectData


class FormatItem(_ContractModel):
    format: str
    family: Literal["llm", "webhook", "erp", "database", "generic"]


class FormatsResponse(_ContractModel):
    format_count: int
    formats: List[FormatItem]


class HealthResponse(_ContractModel):
    status: Literal["healthy"]
    service: str
    version: str
    timestamp: str


class MetricsResponse(_ContractModel):
    normalizations_total: int
    validation_failed_total: int
    unsupported_format_total: int
    warnings_total: int
    dropped_fields_total: int
    events_by_format: Dict[str, int]
    events_by_type: Dict[str, int]

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Closed set of external wire formats. The input model keeps `format` as a
# plain string so that an unknown id reaches the registry, which rejects it.
SUPPORTED_FORMATS = (
    "openai_api",
    "anthropic_api",
    "google_ai_api",
    "azure_openai_api",
    "aws_bedrock_api",
    "webhook_github",
    "webhook_stripe",
    "webhook_slack",
    "webhook_generic",
    "erp_salesforce",
    "erp_sap",
    "erp_dynamics",
    "database_postgres",
    "database_mysql",
    "database_mongodb",
    "auth_oauth2",
    "auth_saml",
    "auth_oidc",
    "custom",
)

# Formats without a mapping table; they normalize through the generic
# normalizer (empty table, type "unknown").
GENERIC_FORMATS = frozenset({"auth_oauth2", "auth_saml", "auth_oidc", "custom"})

CanonicalEventType = Literal[
    "llm.request",
    "llm.response",
    "llm.stream_chunk",
    "llm.error",
    "webhook.received",
    "webhook.validated",
    "erp.record_change",
    "erp.query_result",
    "database.query_result",
    "database.connection_event",
    "auth.token_verified",
    "auth.identity_resolved",
    "connector.health_check",
    "connector.metrics",
    "unknown",
]

SCHEMA_VERSION = "1.0.0"
VALIDATOR_VERSION = "1.0.0"
DEFAULT_MAX_PAYLOAD_BYTES = 10 * 1024 * 1024


def _is_iso8601(value: str) -> bool:
    s = value.strip()
    if not s:
        return False
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    try:
        datetime.fromisoformat(s)
        return True
    except ValueError:
        return False


class _EngineModel(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------------
# Input side
# ---------------------------------------------------------------------------

class ConnectorMetadata(_EngineModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    connector_id: str
    connector_version: str
    environment: Optional[Literal["development", "staging", "production"]] = None


class ExternalEventInput(_EngineModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    format: str
    raw_payload: Any = None
    headers: Optional[Dict[str, str]] = None
    received_at: Optional[str] = None  # ISO 8601, copied verbatim into the output
    connector_metadata: Optional[ConnectorMetadata] = None

    @field_validator("received_at")
    @classmethod
    def _check_received_at(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not _is_iso8601(value):
            raise ValueError("received_at must be an ISO 8601 timestamp")
        return value


class NormalizationConfig(_EngineModel):
    strict_validation: bool = False  # enforced by callers, never by the engine
    max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES
    include_dropped_fields: bool = True
    include_field_mappings: bool = True
    custom_transformations: Optional[Dict[str, str]] = None


class FieldMapping(_EngineModel):
    source_path: str
    target_path: str
    transformation: Optional[str] = None
    required: bool = False
    params: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class TransformContext:
    format: str
    raw_payload: Any
    headers: Optional[Dict[str, str]]
    timestamp: str


# ---------------------------------------------------------------------------
# Output side
# ---------------------------------------------------------------------------

class AppliedMapping(_EngineModel):
    source_path: str
    target_path: str
    transformation: Optional[str] = None


class ValidationIssue(_EngineModel):
    path: str
    message: str
    code: str


class EventSource(_EngineModel):
    format: str
    system: str
    connector: str
    version: str
    region: Optional[str] = None


class ValidationInfo(_EngineModel):
    validated: bool
    validator_version: str = VALIDATOR_VERSION
    validation_timestamp: str
    errors: Optional[List[ValidationIssue]] = None


class NormalizationInfo(_EngineModel):
    source_format: str
    target_type: CanonicalEventType
    field_mappings: List[AppliedMapping] = Field(default_factory=list)
    dropped_fields: Optional[List[str]] = None
    warnings: Optional[List[str]] = None
    processing_time_ms: int


class CanonicalEventOutput(_EngineModel):
    id: str
    type: CanonicalEventType
    source: EventSource
    timestamp: str
    data: Dict[str, Any]
    correlation_id: Optional[str] = None
    schema_version: str = SCHEMA_VERSION
    validation: ValidationInfo
    normalization: NormalizationInfo

    def to_payload(self) -> Dict[str, Any]:
        """JSON-ready dict with absent optional members omitted.

        Only engine-owned optional keys are pruned; nulls inside `data` stay.
        """
        out = self.model_dump(mode="json")
        if out.get("correlation_id") is None:
            out.pop("correlation_id", None)
        if out["source"].get("region") is None:
            out["source"].pop("region", None)
        if out["validation"].get("errors") is None:
            out["validation"].pop("errors", None)
        for key in ("dropped_fields", "warnings"):
            if out["normalization"].get(key) is None:
                out["normalization"].pop(key, None)
        for mapping in out["normalization"]["field_mappings"]:
            if mapping.get("transformation") is None:
                mapping.pop("transformation", None)
        return out

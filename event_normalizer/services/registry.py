"""
event_normalizer/services/registry.py

Static dispatch from external format id to its FormatNormalizer.

    normalizer = get_normalizer("openai_api")
    event = normalize_event(ExternalEventInput(...), config)

An id outside SUPPORTED_FORMATS raises UnsupportedFormatError before any
output is built; it is the only error the engine raises for a request.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from event_normalizer.schemas.event_models import (
    GENERIC_FORMATS,
    SUPPORTED_FORMATS,
    CanonicalEventOutput,
    ExternalEventInput,
    NormalizationConfig,
)
from event_normalizer.services import detection
from event_normalizer.services.mapping_loader import get_field_mappings
from event_normalizer.services.normalization import FormatNormalizer, header_value
from event_normalizer.services.validation import FormatCheck, check_llm_shape, check_stripe_shape

logger = logging.getLogger(__name__)


class UnsupportedFormatError(ValueError):
    def __init__(self, external_format: str):
        self.format = external_format
        super().__init__(
            f"Unsupported event format '{external_format}'. "
            f"Supported formats: {', '.join(SUPPORTED_FORMATS)}"
        )


# ---------------------------------------------------------------------------
# System names
# ---------------------------------------------------------------------------

def _fixed(name: str) -> Callable[[ExternalEventInput], str]:
    return lambda event: name


def _payload(event: ExternalEventInput) -> Dict[str, Any]:
    return event.raw_payload if isinstance(event.raw_payload, dict) else {}


def _github_system(event: ExternalEventInput) -> str:
    return f"github-{header_value(event.headers, ['x-github-event']) or 'unknown'}"


def _stripe_system(event: ExternalEventInput) -> str:
    event_type = _payload(event).get("type") or "unknown"
    return f"stripe-{str(event_type).replace('.', '-')}"


def _slack_system(event: ExternalEventInput) -> str:
    payload = _payload(event)
    inner = payload.get("event")
    inner_type = inner.get("type") if isinstance(inner, dict) else None
    return f"slack-{inner_type or payload.get('type') or 'unknown'}"


# ---------------------------------------------------------------------------
# Dispatch table
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FormatSpec:
    family: str
    rules: Sequence[detection.DetectionRule]
    system_name: Callable[[ExternalEventInput], str]
    format_checks: Sequence[FormatCheck] = ()


_LLM_CHECKS: Sequence[FormatCheck] = (check_llm_shape,)

FORMAT_SPECS: Dict[str, FormatSpec] = {
    "openai_api": FormatSpec("llm", detection.OPENAI_RULES, _fixed("openai"), _LLM_CHECKS),
    "anthropic_api": FormatSpec("llm", detection.ANTHROPIC_RULES, _fixed("anthropic"), _LLM_CHECKS),
    "google_ai_api": FormatSpec("llm", detection.GOOGLE_AI_RULES, _fixed("google-ai"), _LLM_CHECKS),
    "azure_openai_api": FormatSpec("llm", detection.OPENAI_RULES, _fixed("azure-openai"), _LLM_CHECKS),
    "aws_bedrock_api": FormatSpec("llm", detection.BEDROCK_RULES, _fixed("aws-bedrock"), _LLM_CHECKS),
    "webhook_github": FormatSpec("webhook", detection.GITHUB_RULES, _github_system),
    "webhook_stripe": FormatSpec("webhook", detection.STRIPE_RULES, _stripe_system, (check_stripe_shape,)),
    "webhook_slack": FormatSpec("webhook", detection.SLACK_RULES, _slack_system),
    "webhook_generic": FormatSpec("webhook", detection.GENERIC_WEBHOOK_RULES, _fixed("generic-webhook")),
    "erp_salesforce": FormatSpec("erp", detection.SALESFORCE_RULES, _fixed("salesforce")),
    "erp_sap": FormatSpec("erp", detection.SAP_RULES, _fixed("sap")),
    "erp_dynamics": FormatSpec("erp", detection.DYNAMICS_RULES, _fixed("dynamics-365")),
    "database_postgres": FormatSpec("database", detection.DATABASE_RULES, _fixed("postgres")),
    "database_mysql": FormatSpec("database", detection.DATABASE_RULES, _fixed("mysql")),
    "database_mongodb": FormatSpec("database", detection.DATABASE_RULES, _fixed("mongodb")),
}

for _generic in GENERIC_FORMATS:
    FORMAT_SPECS[_generic] = FormatSpec("generic", [], _fixed(f"generic-{_generic}"))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def supported_formats() -> List[Dict[str, str]]:
    return [{"format": fmt, "family": FORMAT_SPECS[fmt].family} for fmt in SUPPORTED_FORMATS]


def get_normalizer(external_format: str) -> FormatNormalizer:
    spec = FORMAT_SPECS.get(external_format)
    if spec is None:
        logger.warning(f"Rejected unsupported event format '{external_format}'")
        raise UnsupportedFormatError(external_format)

    return FormatNormalizer(
        format=external_format,
        rules=spec.rules,
        mappings=get_field_mappings(external_format),
        system_name=spec.system_name,
        format_checks=spec.format_checks,
    )


def normalize_event(
    event: ExternalEventInput,
    config: Optional[NormalizationConfig] = None,
    **collaborators: Any,
) -> CanonicalEventOutput:
    """Normalize one event. collaborators: clock, id_factory, timer."""
    normalizer = get_normalizer(event.format)
    return normalizer.normalize(event, config, **collaborators)


def inspect_event(
    event: ExternalEventInput,
    config: Optional[NormalizationConfig] = None,
    **collaborators: Any,
) -> Dict[str, Any]:
    """Normalized event plus the table and detected type behind it."""
    normalizer = get_normalizer(event.format)
    normalized = normalizer.normalize(event, config, **collaborators)
    return {
        "normalized_event": normalized,
        "field_mappings": normalizer.get_field_mappings(),
        "detected_type": normalizer.detect_event_type(event.raw_payload),
    }

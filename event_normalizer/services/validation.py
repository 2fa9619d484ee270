"""
event_normalizer/services/validation.py

Checks on mapped data: a size limit shared by every format plus optional
per-format structural checks. Problems come back as ValidationIssue entries;
nothing here raises on bad data.
"""
from __future__ import annotations

import json
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from event_normalizer.schemas.event_models import NormalizationConfig, ValidationIssue
from event_normalizer.services.path_accessor import MISSING, get_nested_value

FormatCheck = Callable[[Dict[str, Any], str], List[ValidationIssue]]


def serialized_size(data: Dict[str, Any]) -> int:
    """Byte length of data as compact UTF-8 JSON."""
    text = json.dumps(data, separators=(",", ":"), ensure_ascii=False, default=str)
    return len(text.encode("utf-8"))


def check_payload_size(data: Dict[str, Any], max_payload_bytes: int) -> List[ValidationIssue]:
    size = serialized_size(data)
    if size > max_payload_bytes:
        return [
            ValidationIssue(
                path="$",
                message=f"Payload size {size} exceeds maximum {max_payload_bytes}",
                code="PAYLOAD_TOO_LARGE",
            )
        ]
    return []


# ---------------------------------------------------------------------------
# Format-specific checks
# ---------------------------------------------------------------------------

_USAGE_COUNTERS = ("prompt_tokens", "completion_tokens", "total_tokens")


def check_llm_shape(data: Dict[str, Any], event_type: str) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []

    if event_type == "llm.request":
        messages = get_nested_value(data, "messages")
        if messages is not MISSING and not isinstance(messages, list):
            issues.append(
                ValidationIssue(
                    path="$.messages",
                    message=f"messages must be a list, got {type(messages).__name__}",
                    code="INVALID_TYPE",
                )
            )

    if event_type == "llm.response":
        for counter in _USAGE_COUNTERS:
            value = get_nested_value(data, f"response.usage.{counter}")
            if value is MISSING:
                continue
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                issues.append(
                    ValidationIssue(
                        path=f"$.response.usage.{counter}",
                        message=f"{counter} must be a non-negative integer, got {value!r}",
                        code="INVALID_VALUE",
                    )
                )

    return issues


def check_stripe_shape(data: Dict[str, Any], event_type: str) -> List[ValidationIssue]:
    if event_type != "webhook.validated":
        return []
    issues: List[ValidationIssue] = []
    for path in ("event.id", "event.type"):
        if get_nested_value(data, path) in (MISSING, None, ""):
            issues.append(
                ValidationIssue(
                    path=f"$.{path}",
                    message=f"Stripe event is missing {path}",
                    code="MISSING_FIELD",
                )
            )
    return issues


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def validate_normalized_data(
    data: Dict[str, Any],
    event_type: str,
    config: NormalizationConfig,
    format_checks: Sequence[FormatCheck] = (),
) -> Tuple[bool, Optional[List[ValidationIssue]]]:
    """Return (validated, errors); errors is None when there are none."""
    errors: List[ValidationIssue] = []
    errors.extend(check_payload_size(data, config.max_payload_bytes))
    for check in format_checks:
        errors.extend(check(data, event_type))
    return (len(errors) == 0, errors or None)

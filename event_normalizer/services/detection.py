"""
event_normalizer/services/detection.py

Structural sniffing of raw payloads into canonical event types.

Each format owns an ordered list of (event_type, predicate) rules; the first
predicate that holds decides the type. Predicates only look at the payload's
shape, never at what the event means.
"""
from __future__ import annotations

from typing import Any, Callable, List, Tuple

Predicate = Callable[[Any], bool]
DetectionRule = Tuple[str, Predicate]

UNKNOWN = "unknown"


def _has(payload: Any, *keys: str) -> bool:
    return isinstance(payload, dict) and all(k in payload for k in keys)


def _has_any(payload: Any, *keys: str) -> bool:
    return isinstance(payload, dict) and any(k in payload for k in keys)


def _equals(payload: Any, key: str, value: Any) -> bool:
    return isinstance(payload, dict) and payload.get(key) == value


def _is_list(payload: Any, key: str) -> bool:
    return isinstance(payload, dict) and isinstance(payload.get(key), list)


def _is_object(payload: Any) -> bool:
    return isinstance(payload, dict)


def _always(payload: Any) -> bool:
    return True


# ---------------------------------------------------------------------------
# LLM providers
# ---------------------------------------------------------------------------

def _openai_stream_chunk(p: Any) -> bool:
    if not _is_list(p, "choices") or not p["choices"]:
        return False
    first = p["choices"][0]
    return isinstance(first, dict) and bool(first.get("delta"))


OPENAI_RULES: List[DetectionRule] = [
    ("llm.response", lambda p: _has(p, "choices", "usage")),
    ("llm.request", lambda p: _has(p, "model", "messages")),
    ("llm.stream_chunk", _openai_stream_chunk),
    ("llm.error", lambda p: _has(p, "error")),
]

ANTHROPIC_RULES: List[DetectionRule] = [
    ("llm.response", lambda p: _has(p, "content", "stop_reason")),
    ("llm.request", lambda p: _has(p, "model", "messages", "max_tokens")),
    ("llm.stream_chunk", lambda p: _equals(p, "type", "content_block_delta")),
    ("llm.error", lambda p: _equals(p, "type", "error")),
]

GOOGLE_AI_RULES: List[DetectionRule] = [
    ("llm.response", lambda p: _has(p, "candidates")),
    ("llm.request", lambda p: _has(p, "contents")),
    ("llm.error", lambda p: _has(p, "error")),
]

# Anthropic-on-Bedrock shapes are checked before the Titan/Llama ones.
BEDROCK_RULES: List[DetectionRule] = [
    ("llm.response", lambda p: _has(p, "content", "stop_reason")),
    ("llm.request", lambda p: _has(p, "anthropic_version", "messages")),
    ("llm.response", lambda p: _has_any(p, "results", "generation")),
    ("llm.error", lambda p: _has(p, "message") and _has_any(p, "__type", "error")),
]

# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------

GITHUB_RULES: List[DetectionRule] = [
    ("webhook.validated", lambda p: _has_any(p, "repository", "sender", "action")),
    ("webhook.received", _is_object),
]

STRIPE_RULES: List[DetectionRule] = [
    ("webhook.validated", lambda p: _equals(p, "object", "event") and _has(p, "type", "data")),
    ("webhook.received", _is_object),
]

SLACK_RULES: List[DetectionRule] = [
    ("webhook.received", lambda p: _has(p, "challenge") and _equals(p, "type", "url_verification")),
    ("webhook.validated", lambda p: _equals(p, "type", "event_callback") and _has(p, "event")),
    ("webhook.validated", lambda p: _has_any(p, "command", "payload")),
    ("webhook.received", _is_object),
]

GENERIC_WEBHOOK_RULES: List[DetectionRule] = [
    ("webhook.received", _always),
]

# ---------------------------------------------------------------------------
# ERP systems
# ---------------------------------------------------------------------------

def _salesforce_change(p: Any) -> bool:
    return _is_object(p) and _has(p.get("payload"), "ChangeEventHeader")


def _odata_v2_results(p: Any) -> bool:
    return _is_object(p) and _is_list(p.get("d"), "results")


SALESFORCE_RULES: List[DetectionRule] = [
    ("erp.record_change", _salesforce_change),
    ("erp.query_result", lambda p: _has(p, "totalSize") and _is_list(p, "records")),
]

SAP_RULES: List[DetectionRule] = [
    ("erp.record_change", lambda p: _has(p, "specversion", "type", "data")),
    ("erp.query_result", _odata_v2_results),
    ("erp.query_result", lambda p: _is_list(p, "value")),
]

DYNAMICS_RULES: List[DetectionRule] = [
    ("erp.record_change", lambda p: _has(p, "MessageName", "PrimaryEntityName")),
    ("erp.query_result", lambda p: _is_list(p, "value")),
]

# ---------------------------------------------------------------------------
# Databases
# ---------------------------------------------------------------------------

_CONNECTION_EVENTS = {"connect", "disconnect", "connection_opened", "connection_closed", "authenticated"}


def _connection_event(p: Any) -> bool:
    if not _is_object(p):
        return False
    event = p.get("event")
    return isinstance(event, str) and event.lower() in _CONNECTION_EVENTS


DATABASE_RULES: List[DetectionRule] = [
    ("database.query_result", lambda p: _is_list(p, "rows")),
    ("database.query_result", lambda p: _has(p, "cursor")),
    ("database.connection_event", _connection_event),
]


def detect_with_rules(rules: List[DetectionRule], payload: Any) -> str:
    """First matching rule decides the type; no match is 'unknown'."""
    for event_type, predicate in rules:
        if predicate(payload):
            return event_type
    return UNKNOWN

"""
event_normalizer/services/metrics.py

Thread-safe in-memory counters for the HTTP layer, optionally persisted as
JSON. The normalization engine itself never touches these.

Public API:
    record_normalization(event)
    record_unsupported_format()
    get_metrics() -> dict
    rehydrate()
    reset()
"""
from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict

from event_normalizer.schemas.event_models import CanonicalEventOutput
from event_normalizer.services.settings import get_settings

logger = logging.getLogger(__name__)

_lock = threading.Lock()

# ---------------------------------------------------------------------------
# Counter state
# ---------------------------------------------------------------------------

_DEFAULT_COUNTERS: Dict[str, Any] = {
    "normalizations_total": 0,
    "validation_failed_total": 0,
    "unsupported_format_total": 0,
    "warnings_total": 0,
    "dropped_fields_total": 0,
    "events_by_format": {},
    "events_by_type": {},
}

_counters: Dict[str, Any] = json.loads(json.dumps(_DEFAULT_COUNTERS))


def _ensure_counter_shape() -> None:
    """Ensure all expected metric keys exist. Caller must hold _lock."""
    for key, value in _DEFAULT_COUNTERS.items():
        if key not in _counters:
            _counters[key] = json.loads(json.dumps(value))


def _persist() -> None:
    """Write current counters to the metrics file, if one is configured. Caller must hold _lock."""
    path = get_settings().metrics_file
    if path is None:
        return
    try:
        path.write_text(json.dumps(_counters, indent=2), encoding="utf-8")
    except OSError as exc:
        logger.warning(f"Failed to persist metrics: {exc}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def record_normalization(event: CanonicalEventOutput) -> None:
    with _lock:
        _ensure_counter_shape()
        _counters["normalizations_total"] += 1
        if not event.validation.validated:
            _counters["validation_failed_total"] += 1
        _counters["warnings_total"] += len(event.normalization.warnings or [])
        _counters["dropped_fields_total"] += len(event.normalization.dropped_fields or [])

        by_format = _counters["events_by_format"]
        by_format[event.source.format] = by_format.get(event.source.format, 0) + 1

        by_type = _counters["events_by_type"]
        by_type[event.type] = by_type.get(event.type, 0) + 1

        _persist()


def record_unsupported_format() -> None:
    with _lock:
        _ensure_counter_shape()
        _counters["unsupported_format_total"] += 1
        _persist()


def get_metrics() -> Dict[str, Any]:
    """Return a snapshot of current counters."""
    with _lock:
        _ensure_counter_shape()
        return json.loads(json.dumps(_counters))  # deep copy via JSON round-trip


def reset() -> None:
    with _lock:
        _counters.clear()
        _counters.update(json.loads(json.dumps(_DEFAULT_COUNTERS)))


def rehydrate() -> None:
    """Load counters from the configured metrics file, if it exists."""
    path = get_settings().metrics_file
    if path is None or not path.exists():
        return
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.warning(f"Failed to read {path}, starting from zero: {exc}")
        return

    if isinstance(data, dict) and "normalizations_total" in data:
        with _lock:
            _counters.update(data)
            _ensure_counter_shape()
        logger.info(f"Metrics rehydrated from {path}")

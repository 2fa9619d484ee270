"""
event_normalizer/services/settings.py

Environment-driven service settings. Modules read configuration through
get_settings() rather than touching os.environ themselves.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from event_normalizer.schemas.event_models import DEFAULT_MAX_PAYLOAD_BYTES, NormalizationConfig

DEFAULT_MAPPING_CONFIG_PATH = (
    Path(__file__).resolve().parents[1] / "config" / "field_mappings.yaml"
)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "y", "on"}:
        return True
    if v in {"0", "false", "no", "n", "off"}:
        return False
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class Settings:
    mapping_config_path: Path
    max_payload_bytes: int
    include_dropped_fields: bool
    include_field_mappings: bool
    strict_validation: bool
    metrics_file: Optional[Path]
    log_level: str


def get_settings() -> Settings:
    mapping_path = os.environ.get("MAPPING_CONFIG_PATH")
    metrics_file = os.environ.get("EVENT_NORMALIZER_METRICS_FILE")
    return Settings(
        mapping_config_path=Path(mapping_path) if mapping_path else DEFAULT_MAPPING_CONFIG_PATH,
        max_payload_bytes=_env_int("EVENT_NORMALIZER_MAX_PAYLOAD_BYTES", DEFAULT_MAX_PAYLOAD_BYTES),
        include_dropped_fields=_env_bool("EVENT_NORMALIZER_INCLUDE_DROPPED_FIELDS", True),
        include_field_mappings=_env_bool("EVENT_NORMALIZER_INCLUDE_FIELD_MAPPINGS", True),
        strict_validation=_env_bool("EVENT_NORMALIZER_STRICT_VALIDATION", False),
        metrics_file=Path(metrics_file) if metrics_file else None,
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )


def default_normalization_config(settings: Optional[Settings] = None) -> NormalizationConfig:
    s = settings or get_settings()
    return NormalizationConfig(
        strict_validation=s.strict_validation,
        max_payload_bytes=s.max_payload_bytes,
        include_dropped_fields=s.include_dropped_fields,
        include_field_mappings=s.include_field_mappings,
    )

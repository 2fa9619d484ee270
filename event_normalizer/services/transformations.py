"""
event_normalizer/services/transformations.py

Named value transforms applied by field mappings.

Built-ins take (value, context, params). Custom transforms come from
NormalizationConfig.custom_transformations: a name mapped to a pipeline
expression such as "trim | to_lowercase | redact_email", where each step is a
built-in or a function the embedding application registered at startup with
register_custom_transform(). Expressions are resolved against these two closed
sets only; nothing from configuration is ever compiled or evaluated as code.
"""
from __future__ import annotations

import base64
import json
import re
from datetime import datetime, timedelta, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable, Dict, Mapping, Optional

from event_normalizer.schemas.event_models import NormalizationConfig, TransformContext

BuiltinTransform = Callable[[Any, TransformContext, Mapping[str, Any]], Any]
CustomTransform = Callable[[Any, TransformContext], Any]

# Numbers below this are Unix seconds, at or above it milliseconds.
SECONDS_THRESHOLD = 1e12

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NUMERIC_RE = re.compile(r"^-?\d+(\.\d+)?$")

_CUSTOM_TRANSFORMS: Dict[str, CustomTransform] = {}


class TransformationError(ValueError):
    """A built-in transform could not convert its input."""


# ---------------------------------------------------------------------------
# Timestamp helpers
# ---------------------------------------------------------------------------

def parse_iso8601(value: str) -> datetime:
    s = value.strip()
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"
    dt = datetime.fromisoformat(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_date_string(value: str) -> datetime:
    """ISO-8601 first, then RFC 2822 / HTTP-date ("Mon, 15 Jan 2024 10:30:00 GMT").

    A trailing " UTC" or " GMT" zone name is accepted on ISO-style input.
    """
    s = value.strip()
    for zone in (" UTC", " GMT"):
        if s.upper().endswith(zone):
            s = s[: -len(zone)] + "+00:00"
            break
    try:
        return parse_iso8601(s)
    except ValueError:
        pass

    try:
        dt = parsedate_to_datetime(value.strip())
    except (TypeError, ValueError):
        raise ValueError(f"Unrecognized date string: {value!r}")
    if dt is None:
        raise ValueError(f"Unrecognized date string: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_iso8601(dt: datetime) -> str:
    """Millisecond precision, UTC, trailing Z."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return f"{dt:%Y-%m-%dT%H:%M:%S}.{dt.microsecond // 1000:03d}Z"


def _scale_to_millis(number: float, unit: Optional[str]) -> float:
    if unit == "s":
        return number * 1000
    if unit == "ms":
        return number
    if unit is not None:
        raise ValueError(f"Unsupported timestamp unit '{unit}'")
    return number * 1000 if number < SECONDS_THRESHOLD else number


def _to_epoch_millis(value: Any, params: Mapping[str, Any]) -> int:
    unit = params.get("unit")

    if isinstance(value, datetime):
        dt = value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
        return int((dt - _EPOCH) / timedelta(milliseconds=1))

    if isinstance(value, bool):
        raise TypeError("boolean is not a timestamp")

    if isinstance(value, (int, float)):
        return int(_scale_to_millis(float(value), unit))

    if isinstance(value, str):
        s = value.strip()
        if _NUMERIC_RE.match(s):
            return int(_scale_to_millis(float(s), unit))
        dt = parse_date_string(s)
        return int((dt - _EPOCH) / timedelta(milliseconds=1))

    raise TypeError(f"cannot read a timestamp from {type(value).__name__}")


# ---------------------------------------------------------------------------
# Built-in catalog
# ---------------------------------------------------------------------------

def _to_string(value, context, params):
    return str(value)


def _to_number(value, context, params):
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        s = value.strip()
        try:
            return int(s)
        except ValueError:
            return float(s)
    raise TypeError(f"cannot convert {type(value).__name__} to a number")


def _to_boolean(value, context, params):
    return bool(value)


def _to_lowercase(value, context, params):
    return value.lower() if isinstance(value, str) else value


def _to_uppercase(value, context, params):
    return value.upper() if isinstance(value, str) else value


def _trim(value, context, params):
    return value.strip() if isinstance(value, str) else value


def _to_iso_date(value, context, params):
    millis = _to_epoch_millis(value, params)
    return format_iso8601(_EPOCH + timedelta(milliseconds=millis))


def _to_unix_timestamp(value, context, params):
    return _to_epoch_millis(value, params)


def _json_parse(value, context, params):
    return json.loads(value) if isinstance(value, str) else value


def _json_stringify(value, context, params):
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _base64_encode(value, context, params):
    if not isinstance(value, str):
        return value
    return base64.b64encode(value.encode("utf-8")).decode("ascii")


def _base64_decode(value, context, params):
    if not isinstance(value, str):
        return value
    return base64.b64decode(value).decode("utf-8")


def _map_value(value, context, params):
    table = params.get("mapping") or {}
    if value in table:
        return table[value]
    if str(value) in table:
        return table[str(value)]
    return params.get("default", value)


BUILTIN_TRANSFORMS: Dict[str, BuiltinTransform] = {
    "to_string": _to_string,
    "to_number": _to_number,
    "to_boolean": _to_boolean,
    "to_lowercase": _to_lowercase,
    "to_uppercase": _to_uppercase,
    "trim": _trim,
    "to_iso_date": _to_iso_date,
    "to_unix_timestamp": _to_unix_timestamp,
    "json_parse": _json_parse,
    "json_stringify": _json_stringify,
    "base64_encode": _base64_encode,
    "base64_decode": _base64_decode,
    "map_value": _map_value,
}


# ---------------------------------------------------------------------------
# Custom transform registry
# ---------------------------------------------------------------------------

def register_custom_transform(name: str, fn: Optional[CustomTransform] = None):
    """Register fn under name; usable as a decorator.

    Registered names become available as steps of custom transform expressions.
    """
    def _register(func: CustomTransform) -> CustomTransform:
        if not name or "|" in name:
            raise ValueError(f"Invalid custom transform name: {name!r}")
        _CUSTOM_TRANSFORMS[name] = func
        return func

    if fn is not None:
        return _register(fn)
    return _register


def unregister_custom_transform(name: str) -> None:
    _CUSTOM_TRANSFORMS.pop(name, None)


def registered_custom_transforms() -> Dict[str, CustomTransform]:
    return dict(_CUSTOM_TRANSFORMS)


def _run_expression(expression: str, value: Any, context: TransformContext) -> Any:
    steps = [s.strip() for s in expression.split("|")]
    if not any(steps):
        raise TransformationError("Empty custom transform expression")

    result = value
    for step in steps:
        if step in _CUSTOM_TRANSFORMS:
            result = _CUSTOM_TRANSFORMS[step](result, context)
        elif step in BUILTIN_TRANSFORMS:
            result = BUILTIN_TRANSFORMS[step](result, context, {})
        else:
            raise TransformationError(f"Unknown transform step '{step}'")
    return result


# ---------------------------------------------------------------------------
# Public entry point
# ---------------------------------------------------------------------------

def apply_transformation(
    value: Any,
    name: str,
    context: TransformContext,
    config: Optional[NormalizationConfig] = None,
    params: Optional[Mapping[str, Any]] = None,
) -> Any:
    """Run the named transform on value.

    Custom transforms are looked up first and never raise: any failure returns
    the untransformed value. Unknown names are a no-op. A failing built-in
    raises TransformationError so the caller can record it.
    """
    custom = None
    if config is not None and config.custom_transformations:
        custom = config.custom_transformations.get(name)

    if custom:
        try:
            return _run_expression(custom, value, context)
        except Exception:
            return value

    fn = BUILTIN_TRANSFORMS.get(name)
    if fn is None:
        return value

    try:
        return fn(value, context, params or {})
    except (TypeError, ValueError, OverflowError) as exc:
        raise TransformationError(str(exc)) from exc

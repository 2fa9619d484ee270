#!/usr/bin/env python
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import ValidationError

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from event_normalizer.schemas.event_models import ExternalEventInput
from event_normalizer.services.registry import (
    UnsupportedFormatError,
    inspect_event,
    normalize_event,
)
from event_normalizer.services.settings import default_normalization_config


def _parse_headers(pairs: List[str]) -> Optional[Dict[str, str]]:
    headers: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Header must look like name=value, got '{pair}'")
        headers[key.strip()] = value.strip()
    return headers or None


def _read_payload(source: str):
    if source == "-":
        return json.load(sys.stdin)
    with open(source, "r", encoding="utf-8") as fh:
        return json.load(fh)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Normalize an external event payload into the canonical envelope.")
    parser.add_argument("command", choices=["normalize", "inspect"])
    parser.add_argument("input", nargs="?", default="-", help="Path to a JSON payload, or '-' for stdin")
    parser.add_argument("--format", required=True, dest="external_format", help="External format id, e.g. openai_api")
    parser.add_argument("--received-at", help="ISO-8601 receipt time (defaults to now)")
    parser.add_argument("--header", action="append", default=[], help="Request header as name=value (repeatable)")
    parser.add_argument("--no-dropped-fields", action="store_true", help="Omit normalization.dropped_fields")
    parser.add_argument("-o", "--output", help="Output file (defaults to stdout)")
    args = parser.parse_args(argv)

    try:
        raw_payload = _read_payload(args.input)
    except (OSError, ValueError) as exc:
        print(f"Failed to read JSON: {exc}", file=sys.stderr)
        return 2

    try:
        event = ExternalEventInput(
            format=args.external_format,
            raw_payload=raw_payload,
            headers=_parse_headers(args.header),
            received_at=args.received_at,
        )
    except (ValidationError, ValueError) as exc:
        print(f"Invalid event: {exc}", file=sys.stderr)
        return 2

    config = default_normalization_config()
    if args.no_dropped_fields:
        config = config.model_copy(update={"include_dropped_fields": False})

    try:
        if args.command == "inspect":
            result = inspect_event(event, config)
            out = {
                "normalized_event": result["normalized_event"].to_payload(),
                "field_mappings": [m.model_dump(exclude_none=True) for m in result["field_mappings"]],
                "detected_type": result["detected_type"],
            }
        else:
            out = normalize_event(event, config).to_payload()
    except UnsupportedFormatError as exc:
        print(str(exc), file=sys.stderr)
        return 2

    payload = json.dumps(out, indent=2)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as fh:
            fh.write(payload + "\n")
    else:
        print(payload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""
event_normalizer/services/mapping_loader.py

Loads and caches the per-format field mapping tables from
config/field_mappings.yaml. Profile names are external format ids; profiles
starting with "_" are shared bases. A profile may extend another one, in which
case its table is the base table followed by its own rows.

Formats without a profile (auth_*, custom) resolve to an empty table.

CLI validation:
    python -m event_normalizer.services.mapping_loader --validate
"""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from event_normalizer.schemas.event_models import (
    GENERIC_FORMATS,
    SUPPORTED_FORMATS,
    FieldMapping,
)
from event_normalizer.services.settings import get_settings
from event_normalizer.services.transformations import BUILTIN_TRANSFORMS

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level cache: the tables are static data, read once per config path.
# ---------------------------------------------------------------------------
_CACHE: Optional[Tuple[Path, Dict[str, Any]]] = None

_ROW_KEYS = {"source_path", "target_path", "transformation", "required", "params"}
_PROFILE_KEYS = {"extends", "mappings"}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def load_mappings(force_reload: bool = False) -> Dict[str, Any]:
    """Load and cache the field mappings config.

    Reads MAPPING_CONFIG_PATH if set, otherwise the bundled
    config/field_mappings.yaml. Raises RuntimeError on missing or malformed
    config.
    """
    global _CACHE
    config_path = get_settings().mapping_config_path

    if _CACHE is not None and _CACHE[0] == config_path and not force_reload:
        return _CACHE[1]

    if not config_path.exists():
        raise RuntimeError(
            f"Field mappings config not found at: {config_path}. "
            "Set MAPPING_CONFIG_PATH env var to override the default location."
        )

    with config_path.open("r", encoding="utf-8") as fh:
        try:
            data = yaml.safe_load(fh)
        except yaml.YAMLError as exc:
            raise RuntimeError(f"Field mappings config at {config_path} is not valid YAML: {exc}")

    if not isinstance(data, dict):
        raise RuntimeError(
            f"Field mappings config at {config_path} must be a YAML mapping at the top level."
        )

    _CACHE = (config_path, data)
    logger.info(f"Loaded {len(data)} mapping profiles from {config_path}")
    return data


def resolve_table(profile_name: str, mappings: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """Return the raw rows of a profile with its `extends` chain expanded.

    The result is base rows + own rows, so later (more specific) rows win on a
    shared target_path.
    """
    mappings = load_mappings() if mappings is None else mappings
    chain: List[str] = []
    name: Optional[str] = profile_name

    while name is not None:
        if name in chain:
            raise RuntimeError(f"Mapping profile cycle: {' -> '.join(chain + [name])}")
        profile = mappings.get(name)
        if not isinstance(profile, dict):
            if not chain:
                return []
            raise RuntimeError(f"Profile '{chain[-1]}' extends unknown profile '{name}'.")
        chain.append(name)
        name = profile.get("extends")

    rows: List[Dict[str, Any]] = []
    for link in reversed(chain):
        rows = rows + list(mappings[link].get("mappings") or [])
    return rows


def get_field_mappings(external_format: str) -> List[FieldMapping]:
    """Return the ordered FieldMapping table for a format (empty if none)."""
    return [FieldMapping(**row) for row in resolve_table(external_format)]


# ---------------------------------------------------------------------------
# Validation logic (used by both the CLI and tests)
# ---------------------------------------------------------------------------

def _validate_row(profile_name: str, index: int, row: Any) -> List[str]:
    where = f"Profile '{profile_name}' row {index}"
    if not isinstance(row, dict):
        return [f"{where} must be a mapping, got {type(row).__name__}."]

    errors: List[str] = []
    unknown = set(row) - _ROW_KEYS
    if unknown:
        errors.append(f"{where} has unknown keys: {', '.join(sorted(unknown))}.")

    for key in ("source_path", "target_path"):
        value = row.get(key)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"{where} is missing a non-empty '{key}'.")

    transformation = row.get("transformation")
    if transformation is not None and transformation not in BUILTIN_TRANSFORMS:
        errors.append(f"{where} uses unknown transformation '{transformation}'.")

    if "required" in row and not isinstance(row["required"], bool):
        errors.append(f"{where}: 'required' must be a boolean.")

    if row.get("params") is not None and not isinstance(row["params"], dict):
        errors.append(f"{where}: 'params' must be a mapping.")

    return errors


def validate_mappings(mappings: Dict[str, Any]) -> List[str]:
    """Validate the loaded mappings dict. Returns a list of error strings.

    Rules:
    - Every non-generic supported format has a profile.
    - Profile names are supported formats, or start with "_" (shared bases).
    - Each profile has a `mappings` list of well-formed rows.
    - Row transformations are built-in transform names.
    - `extends` points at an existing profile and never forms a cycle.
    """
    errors: List[str] = []

    for fmt in SUPPORTED_FORMATS:
        if fmt not in GENERIC_FORMATS and fmt not in mappings:
            errors.append(f"Missing mapping profile for format '{fmt}'.")

    for profile_name, profile in mappings.items():
        if not isinstance(profile, dict):
            errors.append(f"Profile '{profile_name}' must be a YAML mapping, got {type(profile).__name__}.")
            continue

        if not profile_name.startswith("_") and profile_name not in SUPPORTED_FORMATS:
            errors.append(f"Profile '{profile_name}' is not a supported format.")

        unknown = set(profile) - _PROFILE_KEYS
        if unknown:
            errors.append(f"Profile '{profile_name}' has unknown keys: {', '.join(sorted(unknown))}.")

        rows = profile.get("mappings")
        if not isinstance(rows, list):
            errors.append(f"Profile '{profile_name}': 'mappings' must be a list.")
        else:
            for index, row in enumerate(rows):
                errors.extend(_validate_row(profile_name, index, row))

        base = profile.get("extends")
        if base is not None:
            if base not in mappings:
                errors.append(f"Profile '{profile_name}' extends unknown profile '{base}'.")
            else:
                try:
                    resolve_table(profile_name, mappings)
                except RuntimeError as exc:
                    errors.append(str(exc))

    return errors


# ---------------------------------------------------------------------------
# CLI entry point: python -m event_normalizer.services.mapping_loader --validate
# ---------------------------------------------------------------------------

def _main() -> None:
    if "--validate" not in sys.argv:
        print("Usage: python -m event_normalizer.services.mapping_loader --validate", file=sys.stderr)
        sys.exit(1)

    try:
        mappings = load_mappings(force_reload=True)
    except RuntimeError as exc:
        print(f"FAIL  Config load error: {exc}", file=sys.stderr)
        sys.exit(1)

    errors = validate_mappings(mappings)

    profiles = [k for k in mappings if not k.startswith("_")]
    print(f"Profiles found: {', '.join(profiles) or '(none)'}")
    for name in profiles:
        try:
            print(f"  {name}: {len(resolve_table(name, mappings))} rows")
        except RuntimeError:
            pass

    if errors:
        for err in errors:
            print(f"FAIL  {err}", file=sys.stderr)
        sys.exit(1)

    print("OK    All checks passed.")


if __name__ == "__main__":
    _main()

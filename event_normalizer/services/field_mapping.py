from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set

from event_normalizer.schemas.event_models import (
    AppliedMapping,
    FieldMapping,
    NormalizationConfig,
    TransformContext,
)
from event_normalizer.services.path_accessor import (
    MISSING,
    get_all_paths,
    get_nested_value,
    set_nested_value,
)
from event_normalizer.services.transformations import TransformationError, apply_transformation

logger = logging.getLogger(__name__)


@dataclass
class MappingResult:
    data: Dict[str, Any] = field(default_factory=dict)
    dropped_fields: List[str] = field(default_factory=list)
    applied_mappings: List[AppliedMapping] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def apply_field_mappings(
    source: Any,
    mappings: Sequence[FieldMapping],
    context: TransformContext,
    config: Optional[NormalizationConfig] = None,
) -> MappingResult:
    """Move values from source into a fresh dict, in table order.

    Later rows overwrite earlier rows that share a target_path. Values are
    deep-copied so the output never aliases the caller's payload.
    """
    result = MappingResult()
    mapped_paths: Set[str] = set()
    payload = source if isinstance(source, dict) else {}

    for mapping in mappings:
        value = get_nested_value(payload, mapping.source_path)

        if value is MISSING:
            if mapping.required:
                result.warnings.append(f"Required field missing: {mapping.source_path}")
            continue

        if mapping.transformation:
            try:
                value = apply_transformation(
                    value,
                    mapping.transformation,
                    context,
                    config,
                    mapping.params,
                )
            except TransformationError as exc:
                result.warnings.append(
                    f"Transformation failed: {mapping.transformation} on {mapping.source_path}: {exc}"
                )

        try:
            copied = copy.deepcopy(value)
        except RecursionError:
            result.warnings.append(f"Value too deeply nested to map: {mapping.source_path}")
            continue

        set_nested_value(result.data, mapping.target_path, copied)
        mapped_paths.add(mapping.source_path)
        result.applied_mappings.append(
            AppliedMapping(
                source_path=mapping.source_path,
                target_path=mapping.target_path,
                transformation=mapping.transformation,
            )
        )

    result.dropped_fields = [p for p in get_all_paths(payload) if p not in mapped_paths]

    logger.debug(
        f"Applied {len(result.applied_mappings)}/{len(mappings)} mappings for {context.format}, "
        f"{len(result.dropped_fields)} dropped, {len(result.warnings)} warnings"
    )
    return result

"""Pipeline configuration serialization.

This module renders the typed config model back to a JSON document that
``parse_pipeline_config`` reads to an equal model.
"""

from __future__ import annotations

import json
from dataclasses import fields, is_dataclass
from typing import Any, Mapping

from core.pipeline_config import PipelineConfig


def pipeline_config_to_payload(config: PipelineConfig) -> dict[str, Any]:
    """Convert a pipeline config into a JSON-compatible mapping.

    Absent optional fields are omitted, and every tagged variant gets its
    ``"type"`` discriminator.
    """
    payload: dict[str, Any] = _to_payload(config)
    return payload


def serialize_pipeline_config(config: PipelineConfig) -> str:
    """Render a pipeline config as indented JSON text.

    Args:
        config: Pipeline configuration to serialize.

    Returns:
        JSON document text.
    """
    return json.dumps(pipeline_config_to_payload(config), indent=2)


def _to_payload(value: object) -> Any:
    if is_dataclass(value) and not isinstance(value, type):
        payload: dict[str, Any] = {}
        type_tag = getattr(type(value), "TYPE_TAG", None)
        if type_tag is not None:
            payload["type"] = type_tag
        for field in fields(value):
            field_value = getattr(value, field.name)
            if field_value is None:
                continue
            payload[field.name] = _to_payload(field_value)
        return payload
    if isinstance(value, Mapping):
        return {str(key): _to_payload(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_payload(item) for item in value]
    return value

"""Tool input schemas.

Every tool source (registry actions, OpenAPI operations, synthesized tools)
ends up as a :class:`ToolSchema`. The same object renders the JSON Schema shown
to agents and validates incoming call arguments, so the two can never drift.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from jsonschema import Draft7Validator


_OPENAPI_ONLY_KEYWORDS = {
    "discriminator",
    "xml",
    "externalDocs",
    "example",
    "readOnly",
    "writeOnly",
    "deprecated",
    "nullable",
}
_NESTED_SCHEMA_LISTS = ("allOf", "anyOf", "oneOf")


@dataclass(frozen=True)
class ToolSchema:
    schema: Dict[str, Any] = field(default_factory=lambda: {"type": "object", "properties": {}})

    @classmethod
    def from_json_schema(cls, schema: Optional[Dict[str, Any]]) -> "ToolSchema":
        lowered = copy.deepcopy(schema) if schema else {}
        lowered.setdefault("type", "object")
        if lowered["type"] == "object":
            lowered.setdefault("properties", {})
        return cls(lowered)

    @property
    def required(self) -> List[str]:
        return list(self.schema.get("required") or [])

    @property
    def properties(self) -> Dict[str, Any]:
        return self.schema.get("properties") or {}

    def json_schema(self) -> Dict[str, Any]:
        return copy.deepcopy(self.schema)

    def validate(self, arguments: Any) -> List[Dict[str, Any]]:
        validator = Draft7Validator(self.schema)
        errors = sorted(
            validator.iter_errors(arguments),
            key=lambda e: [str(part) for part in e.absolute_path],
        )
        return [
            {
                "path": "/" + "/".join(str(part) for part in error.absolute_path),
                "message": error.message,
                "validator": error.validator,
            }
            for error in errors
        ]


def lower_schema(schema: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Convert an OpenAPI schema object into plain JSON Schema."""
    if not isinstance(schema, dict):
        return {}

    lowered: Dict[str, Any] = {}
    for key, value in schema.items():
        if key in _OPENAPI_ONLY_KEYWORDS:
            continue
        if key == "properties" and isinstance(value, dict):
            lowered[key] = {name: lower_schema(prop) for name, prop in value.items()}
        elif key in ("items", "not") and isinstance(value, dict):
            lowered[key] = lower_schema(value)
        elif key == "additionalProperties" and isinstance(value, dict):
            lowered[key] = lower_schema(value)
        elif key in _NESTED_SCHEMA_LISTS and isinstance(value, list):
            lowered[key] = [lower_schema(item) for item in value]
        else:
            lowered[key] = copy.deepcopy(value)

    if schema.get("nullable") is True:
        schema_type = lowered.get("type")
        if isinstance(schema_type, str):
            lowered["type"] = [schema_type, "null"]
        elif isinstance(schema_type, list) and "null" not in schema_type:
            lowered["type"] = [*schema_type, "null"]
        if "enum" in lowered and None not in lowered["enum"]:
            lowered["enum"] = [*lowered["enum"], None]

    return lowered


def lower_parameter(parameter: Dict[str, Any]) -> Dict[str, Any]:
    """Convert an OpenAPI parameter object into the JSON Schema of its value."""
    schema = parameter.get("schema")
    if schema is None:
        content = parameter.get("content") or {}
        for media in content.values():
            if isinstance(media, dict) and media.get("schema"):
                schema = media["schema"]
                break

    lowered = lower_schema(schema or {})
    if parameter.get("description") and "description" not in lowered:
        lowered["description"] = parameter["description"]
    return lowered

"""Record map schema enforcement."""

from __future__ import annotations

from typing import Any, Dict

from jsonschema import Draft7Validator

from .errors import FormatError

RECORD_MAP_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": {
        "type": "array",
        "minItems": 1,
        "maxItems": 2,
        "items": [
            {},
            {"type": "integer", "minimum": 0},
        ],
    },
}

_validator = Draft7Validator(RECORD_MAP_SCHEMA)


def validate_record_map(payload: Any) -> Dict[str, list]:
    errors = sorted(_validator.iter_errors(payload), key=lambda e: list(e.path))
    if errors:
        messages = ", ".join(error.message for error in errors[:3])
        raise FormatError(f"record map validation failed: {messages}")
    return payload

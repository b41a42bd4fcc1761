"""
Record map serializers.

Each serializer turns the whole record map into bytes and back. Decoding
failures surface as FormatError; the store treats those as an empty cache.
"""

from __future__ import annotations

import json
import pickle
from typing import Any, Dict, Union

import yaml

from .errors import ConfigError, FormatError

RecordMap = Dict[str, list]


class JSONSerializer:
    """UTF-8 JSON. Human-readable, the default."""

    name = "json"

    def encode(self, record_map: RecordMap) -> bytes:
        try:
            return json.dumps(record_map, ensure_ascii=False).encode("utf-8")
        except (TypeError, ValueError) as e:
            raise FormatError(f"JSON encode failed: {e}") from e

    def decode(self, raw: bytes) -> RecordMap:
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            raise FormatError(f"JSON decode failed: {e}") from e


class YAMLSerializer:
    """YAML via PyYAML safe_dump/safe_load."""

    name = "yaml"

    def encode(self, record_map: RecordMap) -> bytes:
        try:
            text = yaml.safe_dump(record_map, allow_unicode=True, sort_keys=True)
        except yaml.YAMLError as e:
            raise FormatError(f"YAML encode failed: {e}") from e
        return text.encode("utf-8")

    def decode(self, raw: bytes) -> RecordMap:
        try:
            data = yaml.safe_load(raw.decode("utf-8"))
        except (UnicodeDecodeError, yaml.YAMLError) as e:
            raise FormatError(f"YAML decode failed: {e}") from e
        # an empty document loads as None
        return {} if data is None else data


class PickleSerializer:
    """
    Binary pickle encoding for values JSON can't hold (sets, datetimes, ...).

    Only use it on files you trust: unpickling runs arbitrary code.
    """

    name = "pickle"

    def encode(self, record_map: RecordMap) -> bytes:
        try:
            return pickle.dumps(record_map, protocol=pickle.HIGHEST_PROTOCOL)
        except (pickle.PicklingError, TypeError, AttributeError) as e:
            raise FormatError(f"pickle encode failed: {e}") from e

    def decode(self, raw: bytes) -> RecordMap:
        try:
            return pickle.loads(raw)
        except Exception as e:
            # unpickling garbage can raise nearly anything
            raise FormatError(f"pickle decode failed: {e}") from e


SERIALIZERS = {
    JSONSerializer.name: JSONSerializer,
    YAMLSerializer.name: YAMLSerializer,
    PickleSerializer.name: PickleSerializer,
}


def get_serializer(spec: Union[str, Any]) -> Any:
    """Resolve a serializer name ("json", "yaml", "pickle") or pass an instance through."""
    if not isinstance(spec, str):
        if not (hasattr(spec, "encode") and hasattr(spec, "decode")):
            raise ConfigError(f"Serializer must provide encode/decode: {spec!r}")
        return spec
    try:
        return SERIALIZERS[spec.lower()]()
    except KeyError:
        raise ConfigError(
            f"Unknown serializer {spec!r} (expected one of {sorted(SERIALIZERS)})"
        ) from None

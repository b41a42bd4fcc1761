"""Configuration loader for cache handles."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import ConfigError
from .serializers import SERIALIZERS

WRITE_MODES = ("immediate", "deferred")
DEFAULT_DIRECTORY = Path("~/.cache/flatcache")


@dataclass(frozen=True)
class CacheConfig:
    default_ttl: Optional[int] = None
    serializer: str = "json"
    write_mode: str = "immediate"
    directory: Path = field(default=DEFAULT_DIRECTORY)
    name: str = "cache"

    def __post_init__(self) -> None:
        if not isinstance(self.directory, Path):
            object.__setattr__(self, "directory", Path(self.directory))
        object.__setattr__(self, "serializer", str(self.serializer).lower())
        object.__setattr__(self, "write_mode", str(self.write_mode).lower())
        if self.default_ttl is not None:
            if isinstance(self.default_ttl, bool) or not isinstance(self.default_ttl, int):
                raise ConfigError(f"default_ttl must be an int or None, got {self.default_ttl!r}")
            if self.default_ttl < 0:
                raise ConfigError(f"default_ttl must not be negative, got {self.default_ttl}")
        if self.serializer not in SERIALIZERS:
            raise ConfigError(f"Unknown serializer {self.serializer!r}")
        if self.write_mode not in WRITE_MODES:
            raise ConfigError(f"write_mode must be one of {WRITE_MODES}, got {self.write_mode!r}")
        if not self.name:
            raise ConfigError("name must not be empty")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        ttl = data.get("default_ttl")
        try:
            ttl = None if ttl is None else int(ttl)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"default_ttl must be an integer: {ttl!r}") from e
        return cls(
            default_ttl=ttl,
            serializer=str(data.get("serializer", "json")).lower(),
            write_mode=str(data.get("write_mode", "immediate")).lower(),
            directory=Path(data.get("directory", DEFAULT_DIRECTORY)),
            name=str(data.get("name", "cache")),
        )

    def resolve_path(self, name: Optional[str] = None) -> Path:
        """Absolute path of the cache file for `name` (default: self.name)."""
        return (self.directory.expanduser() / (name or self.name)).resolve()


ENV_MAP = {
    "default_ttl": "FLATCACHE_DEFAULT_TTL",
    "serializer": "FLATCACHE_SERIALIZER",
    "write_mode": "FLATCACHE_WRITE_MODE",
    "directory": "FLATCACHE_DIRECTORY",
    "name": "FLATCACHE_NAME",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    return data


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data, default=str))  # deep copy via json

    for key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        value: Any = os.environ[env_name]
        if key == "default_ttl":
            # empty or "none" disables the default TTL
            value = None if value.strip().lower() in {"", "none"} else value
        merged[key] = value

    return merged


def load_config(config_path: str | Path = "flatcache.yml") -> CacheConfig:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = load_yaml(path)
    data = merge_env_overrides(data)
    return CacheConfig.from_dict(data)


def config_from_env() -> CacheConfig:
    """Build a config from defaults plus FLATCACHE_* environment variables."""
    return CacheConfig.from_dict(merge_env_overrides({}))

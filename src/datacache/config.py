"""Configuration loader for the data cache."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .store import DEFAULT_TTL_SEC


@dataclass(frozen=True)
class CacheConfig:
    default_ttl_sec: float = DEFAULT_TTL_SEC
    stale_while_revalidate: bool = True
    single_flight: bool = False
    max_entries: Optional[int] = None
    namespace: str = ""

    def __post_init__(self) -> None:
        if self.default_ttl_sec <= 0:
            raise ValueError(f"default_ttl_sec must be positive, got {self.default_ttl_sec}")
        if self.max_entries is not None and self.max_entries < 1:
            raise ValueError(f"max_entries must be >= 1, got {self.max_entries}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheConfig":
        max_entries = data.get("max_entries")
        return cls(
            default_ttl_sec=float(data.get("default_ttl_sec", DEFAULT_TTL_SEC)),
            stale_while_revalidate=bool(data.get("stale_while_revalidate", True)),
            single_flight=bool(data.get("single_flight", False)),
            max_entries=int(max_entries) if max_entries is not None else None,
            namespace=str(data.get("namespace") or ""),
        )


ENV_MAP = {
    "default_ttl_sec": "DATACACHE_DEFAULT_TTL_SEC",
    "stale_while_revalidate": "DATACACHE_STALE_WHILE_REVALIDATE",
    "single_flight": "DATACACHE_SINGLE_FLIGHT",
    "max_entries": "DATACACHE_MAX_ENTRIES",
    "namespace": "DATACACHE_NAMESPACE",
}

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, raw: str) -> bool:
    lowered = raw.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        value: Any = os.environ[env_name]
        if key == "default_ttl_sec":
            value = float(value)
        elif key in {"stale_while_revalidate", "single_flight"}:
            value = _parse_bool(env_name, value)
        elif key == "max_entries":
            # empty string lifts the bound
            value = int(value) if value.strip() else None
        merged[key] = value

    return merged


def load_config(config_path: str | Path = "config/datacache.defaults.yml") -> CacheConfig:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = load_yaml(path)
    data = merge_env_overrides(data)
    return CacheConfig.from_dict(data)

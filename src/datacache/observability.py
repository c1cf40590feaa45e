"""Cache event records with schema enforcement."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from jsonschema import Draft7Validator

EVENT_TYPES = ["hit", "miss", "stale", "write", "failure", "invalidate", "clear", "evict"]

CACHE_EVENT_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["event", "key", "at"],
    "properties": {
        "event": {"type": "string", "enum": EVENT_TYPES},
        "key": {"type": "string"},
        "at": {"type": "number", "minimum": 0},
        "ttl_sec": {"type": ["number", "null"], "exclusiveMinimum": 0},
        "count": {"type": "integer", "minimum": 0},
        "error": {"type": ["string", "null"]},
    },
    "additionalProperties": False,
}

_validator = Draft7Validator(CACHE_EVENT_SCHEMA)

EventSink = Callable[[Dict[str, Any]], None]


def validate_event(payload: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(payload), key=lambda e: list(e.path))
    if errors:
        messages = ", ".join(error.message for error in errors)
        raise ValueError(f"cache event validation failed: {messages}")


@dataclass
class CacheEventRecord:
    event: str
    key: str
    at: float = field(default_factory=time.time)
    ttl_sec: Optional[float] = None
    count: int = 1
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "event": self.event,
            "key": self.key,
            "at": self.at,
            "ttl_sec": self.ttl_sec,
            "count": self.count,
            "error": self.error,
        }
        validate_event(payload)
        return payload

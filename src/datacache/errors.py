"""Error types raised by the data cache."""

from __future__ import annotations

from typing import Any


class CacheError(Exception):
    """Base class for every error the cache raises on its own."""


class InvalidKey(CacheError, ValueError):
    def __init__(self, key: Any) -> None:
        super().__init__(f"cache key must be a non-empty string, got {key!r}")
        self.key = key


class ProducerFailure(CacheError):
    """A caller-supplied producer raised while fetching a value for ``key``."""

    def __init__(self, key: str, cause: BaseException) -> None:
        super().__init__(f"producer for {key!r} failed: {cause!r}")
        self.key = key
        self.cause = cause


def validate_key(key: Any) -> str:
    if not isinstance(key, str) or not key:
        raise InvalidKey(key)
    return key

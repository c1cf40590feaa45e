#!/usr/bin/env python3
"""
Cache Key Generation — Parameter-Aware Keys

Implements:
- generate_cache_key(name, **params) → deterministic key
- page_key(prefix, page) → "<prefix>_page_<n>"
- Same name + same params = same key (cache hit)
- Any changed param = different key (cache miss)
- Optional namespace so several tenants can share one store
"""

import hashlib
import json
import logging
from typing import Any, Optional

from .errors import validate_key

logger = logging.getLogger(__name__)

NAMESPACE_SEPARATOR = ":"


def page_key(prefix: str, page: int) -> str:
    """Key under which a paginated accumulator caches one page."""
    return f"{prefix}_page_{page}"


def page_key_prefix(prefix: str) -> str:
    """Common prefix of every page key built by page_key(prefix, n)."""
    return f"{prefix}_page_"


class CacheKeyGenerator:
    """
    Generate deterministic cache keys that encode every parameter.

    Design:
    - key = [namespace:]name[:SHA256(params)[:12]]
    - params are serialized as sorted JSON, so keyword order is irrelevant
    - Non-JSON values fall back to str()
    """

    def __init__(self, namespace: Optional[str] = None):
        if namespace and NAMESPACE_SEPARATOR in namespace:
            raise ValueError(f"namespace must not contain {NAMESPACE_SEPARATOR!r}: {namespace!r}")
        self.namespace = namespace or ""

    def _qualify(self, name: str) -> str:
        if self.namespace:
            return f"{self.namespace}{NAMESPACE_SEPARATOR}{name}"
        return name

    def params_signature(self, params: dict) -> str:
        """Short hash of the parameters; stable across processes."""
        payload = json.dumps(params, sort_keys=True, default=str, separators=(",", ":"))
        return hashlib.sha256(payload.encode()).hexdigest()[:12]

    def generate_cache_key(self, name: str, **params: Any) -> str:
        """
        Generate a deterministic cache key.

        Args:
            name: What is being fetched (token_balance, listings, ...)
            **params: Everything that changes the result (wallet, chain, ...)

        Returns:
            "name" or "name:<hash>", prefixed with "namespace:" when set
        """
        validate_key(name)
        key = self._qualify(name)
        if params:
            key = f"{key}{NAMESPACE_SEPARATOR}{self.params_signature(params)}"

        logger.debug(f"Generated key: {key} (name={name}, params={sorted(params)})")
        return key

    def namespace_prefix(self) -> str:
        """Prefix shared by every key this generator produces."""
        if not self.namespace:
            return ""
        return f"{self.namespace}{NAMESPACE_SEPARATOR}"

"""
Data Cache
In-memory TTL cache with stale-while-revalidate and paginated loading
"""

from .config import CacheConfig, load_config
from .errors import CacheError, InvalidKey, ProducerFailure
from .key_generator import CacheKeyGenerator, page_key
from .pagination import AccumulatorState, Page, PaginatedAccumulator
from .resolver import DataCache, Resolution
from .store import CacheEntry, CacheStore

__all__ = [
    'AccumulatorState',
    'CacheConfig',
    'CacheEntry',
    'CacheError',
    'CacheKeyGenerator',
    'CacheStore',
    'DataCache',
    'InvalidKey',
    'Page',
    'PaginatedAccumulator',
    'ProducerFailure',
    'Resolution',
    'load_config',
    'page_key',
]

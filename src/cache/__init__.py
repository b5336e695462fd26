"""
Radio PWA Cache Store
Partitioned request → response snapshots, in memory or on SQLite
"""

from .keys import make_cache_key, normalize_url, request_identity
from .snapshot import RequestSpec, ResponseSnapshot
from .store import CacheStore, MemoryCacheStore, SQLiteCacheStore

__all__ = [
    'CacheStore', 'MemoryCacheStore', 'SQLiteCacheStore',
    'RequestSpec', 'ResponseSnapshot',
    'make_cache_key', 'normalize_url', 'request_identity',
]

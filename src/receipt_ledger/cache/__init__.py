"""
Aggregate result cache with per-owner invalidation.
"""

from .result_cache import CacheEntry, ResultCache, cache_key

__all__ = ["ResultCache", "CacheEntry", "cache_key"]

"""
Serving Module
"""
from .cache import init_redis, close_redis, get_redis, CacheManager, analytics_cache, dashboard_cache

__all__ = [
    "init_redis",
    "close_redis",
    "get_redis",
    "CacheManager",
    "analytics_cache",
    "dashboard_cache",
]

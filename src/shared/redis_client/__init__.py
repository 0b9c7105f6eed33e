"""Redis client wrapper with pub/sub support.

Database Layout:
- DB 0: PubSub (rbac:invalidations)
- DB 1: Caching (rbac:perm:{user_id}:{generation}, rbac:gen:{user_id})
"""

from .client import RedisClient, RedisDB

__all__ = [
    "RedisClient",
    "RedisDB",
]

"""
Redis client for the grassroots API.

Postgres holds the durable state; losing Redis costs cache hits and resets
rate-limit windows, nothing more. Users:
  - feed_cache: cached feed pages plus the per-location generation counters
    that invalidate them
  - rate_limiting: sliding-window sorted sets per user and action
  - notifications: the notifications:events pub/sub channel

Every module gets its client from get_redis() so the process shares one
bounded pool. Clients hand their connection back to the pool when they are
dropped; do NOT call r.close().
"""

import os
import redis

_pool = None


def get_redis():
    """Client on the shared pool; short socket timeouts keep a stalled Redis from blocking requests."""
    global _pool
    if _pool is None:
        redis_url = os.environ.get('REDIS_URL', 'redis://redis:6379')
        max_connections = int(os.environ.get('REDIS_POOL_MAX', 20))
        _pool = redis.ConnectionPool.from_url(
            redis_url, max_connections=max_connections, decode_responses=True,
            socket_timeout=2, socket_connect_timeout=2,
        )
    return redis.Redis(connection_pool=_pool)

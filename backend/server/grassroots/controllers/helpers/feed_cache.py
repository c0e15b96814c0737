"""
Short-lived Redis cache for location feeds.

Keys embed a per-location generation number. Writing under a location bumps
the generation of that location and every ancestor, which orphans every
cached page of every affected feed at once without scanning keys. Orphaned
pages expire on their own TTL.

Redis is an optimisation here: every function degrades to "no cache" on
RedisError rather than failing the request.
"""

import json
import logging

import redis

from grassroots.controllers import config
from grassroots.controllers.helpers.redis_pool import get_redis

logger = logging.getLogger(__name__)

GEN_KEY = "feed_gen:{location_id}"


def _page_key(location_id, generation, limit, cursor):
    return f"feed:{location_id}:g{generation}:{limit}:{cursor or '-'}"


def get_page(location_id, limit, cursor):
    """Return (cached_page_or_None, page_key_or_None)."""
    try:
        r = get_redis()
        generation = r.get(GEN_KEY.format(location_id=location_id)) or 0
        key = _page_key(location_id, generation, limit, cursor)
        cached = r.get(key)
    except redis.RedisError as e:
        logger.warning("Feed cache read skipped for %s: %s", location_id, e)
        return None, None
    return (json.loads(cached) if cached else None), key


def set_page(key, page):
    if key is None:
        return
    try:
        get_redis().setex(key, config.FEED_CACHE_TTL, json.dumps(page))
    except redis.RedisError as e:
        logger.warning("Feed cache write skipped for %s: %s", key, e)


def invalidate_feeds(location_ids):
    """Bump the generation of each location (callers pass the ancestor chain)."""
    try:
        pipe = get_redis().pipeline()
        for location_id in location_ids:
            pipe.incr(GEN_KEY.format(location_id=location_id))
        pipe.execute()
    except redis.RedisError as e:
        # Stale pages age out after FEED_CACHE_TTL
        logger.warning("Feed cache invalidation failed for %s: %s", list(location_ids), e)

"""Sliding-window rate limiting using Redis sorted sets."""

import logging
import time

import redis

from grassroots.controllers.helpers.errors import RateLimitedError
from grassroots.controllers.helpers.redis_pool import get_redis

logger = logging.getLogger(__name__)

# action -> (max_count, window_seconds), counted per user
RATE_LIMITS = {
    "idea_create":       (10,  3600),
    "idea_support":      (200, 3600),   # support and unsupport share a window
    "plan_start":        (3,   86400),
    "plan_contribution": (60,  3600),   # issues, goals, actions, comments, votes
    "idea_relate":       (60,  3600),
}


def _window_count(r, key, now, window_seconds):
    """Prune, count and optimistically add `now` in one round trip."""
    pipe = r.pipeline()
    pipe.zremrangebyscore(key, 0, now - window_seconds)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds + 60)
    return pipe.execute()[1]


def check_rate_limit(identifier, action, limit, window_seconds=3600):
    """Check if action is within rate limit.

    Skipped in dev mode. When Redis is unreachable the check fails open:
    a cache outage must not take writes down with it.

    Returns:
        (allowed: bool, count: int); count includes this request if allowed.
    """
    from grassroots.controllers import config
    if config.DEV:
        return True, 0

    key = f"rate:{identifier}:{action}"
    now = time.time()
    try:
        r = get_redis()
        count = _window_count(r, key, now, window_seconds)
        if count >= limit:
            r.zrem(key, str(now))
            return False, count
    except redis.RedisError as e:
        logger.warning("Rate limit check skipped for %s/%s: %s", identifier, action, e)
        return True, 0
    return True, count + 1


def enforce_rate_limit(identifier, action):
    """Raise RateLimitedError when `identifier` is over the RATE_LIMITS entry for `action`."""
    limit, window = RATE_LIMITS[action]
    allowed, count = check_rate_limit(identifier, action, limit, window)
    if not allowed:
        raise RateLimitedError(
            f"Rate limit exceeded. Max {limit} per {window // 60} minutes.",
            action=action, count=count,
        )

"""
Helper functions for publishing notification events to Redis pub/sub.

These events are consumed by the external notification dispatcher, which
owns delivery (in-app, email, push). Publishing is best-effort: the state
change that produced an event is already committed, so a failed publish is
logged and reported through the return value, never raised.
"""

import json
import logging
from datetime import datetime, timezone

import redis

from grassroots.controllers.helpers.redis_pool import get_redis

logger = logging.getLogger(__name__)

# Channel name (must match the notification dispatcher)
NOTIFICATION_EVENTS_CHANNEL = "notifications:events"


def _publish(event):
    event["emittedAt"] = datetime.now(timezone.utc).isoformat()
    try:
        get_redis().publish(NOTIFICATION_EVENTS_CHANNEL, json.dumps(event))
        return True
    except redis.RedisError as e:
        logger.error("Error publishing %s event: %s", event["event"], e)
        return False


def publish_plan_stage_changed(plan_id, location_id, from_stage, to_stage, override=False):
    """Publish a PlanStageChanged event.

    Called exactly once per successful stage transition, after the
    conditional update that performed it.

    Returns:
        True if published successfully, False otherwise
    """
    return _publish({
        "event": "PlanStageChanged",
        "planId": str(plan_id),
        "locationId": str(location_id),
        "fromStage": from_stage,
        "toStage": to_stage,
        "override": override,
    })


def publish_badge_awarded(user_id, kind, scope):
    """Publish a BadgeAwarded event for a newly inserted badge grant.

    Returns:
        True if published successfully, False otherwise
    """
    return _publish({
        "event": "BadgeAwarded",
        "userId": str(user_id),
        "kind": kind,
        "scope": scope,
    })

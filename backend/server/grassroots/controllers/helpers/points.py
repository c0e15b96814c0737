"""
Points ledger and points-based badges.

Points are never stored as a mutable total: every credit or debit is an
append-only row in `points_ledger` and totals are sums over it. Each row
names its source event, and (user, source, source_id) is unique, so
replaying the same event is harmless.

Badges are derived from the totals and granted at most once per
(user, kind, scope) by an INSERT ... ON CONFLICT DO NOTHING.
"""

import logging
import uuid
from typing import Dict, List, Optional, Tuple

from grassroots.controllers import db
from grassroots.controllers.helpers.errors import (
    NotFoundError, ServiceError, ValidationError,
)
from grassroots.controllers.helpers.locations import get_location_graph
from grassroots.controllers.helpers.notifications import publish_badge_awarded

logger = logging.getLogger(__name__)

# Ledger source -> sign of the amounts it may carry
LEDGER_SOURCES = {
    "idea_support": 1,
    "idea_unsupport": -1,
    "plan_issue": 1,
    "plan_goal": 1,
    "plan_action": 1,
    "plan_comment": 1,
    "plan_vote": 1,
}

# Contribution kind -> points credited to its author
PLAN_CONTRIBUTION_POINTS = {
    "issue": 2,
    "goal": 2,
    "action": 3,
    "comment": 1,
    "vote": 1,
}

GLOBAL_SCOPE = "global"

# kind -> scope -> threshold
BADGE_THRESHOLDS = {
    "bronze": {"local": 10, "global": 25},
    "silver": {"local": 50, "global": 100},
    "gold":   {"local": 200, "global": 400},
}


def location_scope(location_id):
    return f"location:{location_id}"


def qualifying_badges(global_points, local_points, home_location_id=None) -> List[Tuple[str, str]]:
    """Every (kind, scope) the given totals qualify for.

    Local badges are scoped to the member's home location and are only
    considered when they have one.
    """
    earned = []
    for kind, thresholds in BADGE_THRESHOLDS.items():
        if home_location_id and local_points >= thresholds["local"]:
            earned.append((kind, location_scope(home_location_id)))
        if global_points >= thresholds["global"]:
            earned.append((kind, GLOBAL_SCOPE))
    return earned


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------

def check_delta(amount, source):
    """Reject amounts a ledger source may not carry."""
    if source not in LEDGER_SOURCES:
        raise ValidationError(f"Unknown points source '{source}'")
    if not isinstance(amount, int) or amount == 0:
        raise ValidationError("amount must be a non-zero integer")
    if (amount > 0) != (LEDGER_SOURCES[source] > 0):
        raise ValidationError(f"Points from '{source}' cannot be {amount}")


def apply_delta(user_id, amount, source, source_id=None, location_id=None):
    """Append one ledger row.

    Writes that credit points as a side effect of inserting something else
    (supports, plan contributions, votes) fold the ledger insert into their
    own statement instead; this is for standalone grants.

    Returns:
        True if a row was written, False if this (user, source, source_id)
        was already recorded.
    """
    check_delta(amount, source)

    row = db.execute_query("""
        INSERT INTO points_ledger (id, user_id, amount, source, source_id, location_id)
        VALUES (%s, %s, %s, %s, %s, %s)
        ON CONFLICT (user_id, source, source_id) DO NOTHING
        RETURNING id
    """, (str(uuid.uuid4()), user_id, amount, source,
          source_id or str(uuid.uuid4()), location_id),
        fetchone=True, raise_on_error=True)
    return row is not None


def total_points(user_id) -> int:
    row = db.execute_query(
        "SELECT COALESCE(SUM(amount), 0) AS total FROM points_ledger WHERE user_id = %s",
        (user_id,), fetchone=True, raise_on_error=True,
    )
    return int(row["total"]) if row else 0


def points_within(user_id, location_id) -> int:
    """Points a user earned at `location_id` or anywhere beneath it."""
    location_ids = list(get_location_graph().descendant_ids(location_id))
    row = db.execute_query("""
        SELECT COALESCE(SUM(amount), 0) AS total
        FROM points_ledger
        WHERE user_id = %s AND location_id = ANY(%s)
    """, (user_id, location_ids), fetchone=True, raise_on_error=True)
    return int(row["total"]) if row else 0


def points_summary(user_id) -> Dict:
    user = db.execute_query(
        "SELECT id, display_name, home_location_id FROM users WHERE id = %s",
        (user_id,), fetchone=True, raise_on_error=True,
    )
    if not user:
        raise NotFoundError("User not found", user_id=user_id)

    home_id = str(user["home_location_id"]) if user.get("home_location_id") else None
    summary = {
        "userId": str(user["id"]),
        "globalPoints": total_points(user_id),
        "localPoints": 0,
        "location": None,
    }
    if home_id:
        summary["localPoints"] = points_within(user_id, home_id)
        summary["location"] = get_location_graph().get(home_id).to_dict()
    return summary


# ---------------------------------------------------------------------------
# Badges
# ---------------------------------------------------------------------------

def _badge_to_dict(row):
    return {
        "kind": row["kind"],
        "scope": row["scope"],
        "awardedAt": row["created_time"].isoformat() if row.get("created_time") else None,
    }


def list_badges(user_id):
    """Badges a user already holds. Read-only; grants happen after writes."""
    user = db.execute_query(
        "SELECT id FROM users WHERE id = %s", (user_id,), fetchone=True, raise_on_error=True,
    )
    if not user:
        raise NotFoundError("User not found", user_id=user_id)
    rows = db.execute_query("""
        SELECT kind, scope, created_time FROM badge
        WHERE user_id = %s ORDER BY created_time, kind
    """, (user_id,), raise_on_error=True) or []
    return {"badges": [_badge_to_dict(b) for b in rows]}


def evaluate_badges(user_id):
    """Grant any badge the user's current totals qualify for.

    Safe to run redundantly: existing grants are skipped up front and the
    insert itself ignores a grant that a concurrent evaluation won.

    Returns:
        {"badges": [...all grants...], "newBadges": [...granted now...]}
    """
    summary = points_summary(user_id)
    home_id = summary["location"]["id"] if summary["location"] else None
    targets = qualifying_badges(summary["globalPoints"], summary["localPoints"], home_id)

    existing = db.execute_query("""
        SELECT kind, scope, created_time FROM badge
        WHERE user_id = %s ORDER BY created_time, kind
    """, (user_id,), raise_on_error=True) or []
    held = {(b["kind"], b["scope"]) for b in existing}

    new_badges = []
    for kind, scope in targets:
        if (kind, scope) in held:
            continue
        granted = db.execute_query("""
            INSERT INTO badge (id, user_id, kind, scope)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (user_id, kind, scope) DO NOTHING
            RETURNING kind, scope, created_time
        """, (str(uuid.uuid4()), user_id, kind, scope), fetchone=True, raise_on_error=True)
        if granted:
            new_badges.append(granted)
            logger.info("Badge %s/%s awarded to %s", kind, scope, user_id)
            publish_badge_awarded(user_id, kind, scope)

    return {
        "badges": [_badge_to_dict(b) for b in list(existing) + new_badges],
        "newBadges": [_badge_to_dict(b) for b in new_badges],
    }


def refresh_badges_quietly(user_id):
    """Badge evaluation after a write; failures are logged and retried on the next write."""
    try:
        evaluate_badges(user_id)
    except ServiceError as e:
        logger.warning("Deferred badge evaluation for %s: %s", user_id, e)


# ---------------------------------------------------------------------------
# Leaderboard
# ---------------------------------------------------------------------------

def location_leaderboard(location_id, limit: Optional[int] = 10):
    """Members whose home location lies within `location_id`, by total points."""
    graph = get_location_graph()
    location = graph.get(location_id)
    limit = max(1, min(limit or 10, 100))
    rows = db.execute_query("""
        SELECT u.id, u.display_name, u.home_location_id,
               COALESCE(SUM(pl.amount), 0) AS points
        FROM users u
        LEFT JOIN points_ledger pl ON pl.user_id = u.id
        WHERE u.home_location_id = ANY(%s)
        GROUP BY u.id, u.display_name, u.home_location_id
        ORDER BY points DESC, u.display_name ASC
        LIMIT %s
    """, (list(graph.descendant_ids(location_id)), limit), raise_on_error=True) or []
    return {
        "location": location.to_dict(),
        "users": [{
            "id": str(r["id"]),
            "name": r["display_name"],
            "homeLocationId": str(r["home_location_id"]) if r.get("home_location_id") else None,
            "points": int(r["points"]),
        } for r in rows],
    }

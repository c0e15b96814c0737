"""
Support ledger: at most one support per (user, idea).

Each state change is a single statement built from data-modifying CTEs:
the support row insert/delete, the idea's support_count adjustment and the
author's points ledger row either all happen or none do. The primary key on
idea_support(user_id, idea_id) is what serializes concurrent callers: a
second insert of the same pair waits for the first and then does nothing,
so the counter can neither lose an update nor count a pair twice.

Only members who have posted an idea of their own may support others.
"""

import logging
import uuid

from grassroots.controllers import db
from grassroots.controllers.helpers.errors import ValidationError
from grassroots.controllers.helpers.feed_cache import invalidate_feeds
from grassroots.controllers.helpers.ideas import get_idea_row, has_posted_idea
from grassroots.controllers.helpers.locations import get_location_graph
from grassroots.controllers.helpers.points import refresh_badges_quietly

logger = logging.getLogger(__name__)

SUPPORT_SQL = """
    WITH ins AS (
        INSERT INTO idea_support (id, user_id, idea_id)
        VALUES (%s, %s, %s)
        ON CONFLICT (user_id, idea_id) DO NOTHING
        RETURNING id, idea_id
    ), bumped AS (
        UPDATE idea SET support_count = idea.support_count + 1
        FROM ins
        WHERE idea.id = ins.idea_id
        RETURNING idea.id, idea.author_user_id, idea.location_id,
                  idea.support_count, ins.id AS support_id
    ), credited AS (
        INSERT INTO points_ledger (id, user_id, amount, source, source_id, location_id)
        SELECT %s, author_user_id, 1, 'idea_support', support_id, location_id
        FROM bumped
        RETURNING id
    )
    SELECT id, author_user_id, location_id, support_count FROM bumped
"""

UNSUPPORT_SQL = """
    WITH del AS (
        DELETE FROM idea_support
        WHERE user_id = %s AND idea_id = %s
        RETURNING id, idea_id
    ), dropped AS (
        UPDATE idea SET support_count = idea.support_count - 1
        FROM del
        WHERE idea.id = del.idea_id
        RETURNING idea.id, idea.author_user_id, idea.location_id,
                  idea.support_count, del.id AS support_id
    ), debited AS (
        INSERT INTO points_ledger (id, user_id, amount, source, source_id, location_id)
        SELECT %s, author_user_id, -1, 'idea_unsupport', support_id, location_id
        FROM dropped
        RETURNING id
    )
    SELECT id, author_user_id, location_id, support_count FROM dropped
"""


def _after_change(changed):
    location_id = str(changed["location_id"])
    invalidate_feeds(get_location_graph().ancestor_ids(location_id))
    refresh_badges_quietly(str(changed["author_user_id"]))


def support_idea(user_id, idea_id):
    """Record a support. Supporting an idea twice is a no-op, not an error.

    Returns:
        {"ideaId", "supported": True, "changed": bool, "supportCount": int}

    Raises:
        NotFoundError: unknown or removed idea.
        ValidationError: the member has not posted an idea yet.
    """
    idea = get_idea_row(idea_id)
    if not has_posted_idea(user_id):
        raise ValidationError("Please add at least one idea before supporting others.",
                              user_id=user_id, idea_id=idea_id)
    changed = db.execute_query(
        SUPPORT_SQL, (str(uuid.uuid4()), user_id, idea_id, str(uuid.uuid4())),
        fetchone=True, raise_on_error=True,
    )
    if changed:
        logger.info("User %s supported idea %s", user_id, idea_id)
        _after_change(changed)
        support_count = changed["support_count"]
    else:
        support_count = idea["support_count"]
    return {
        "ideaId": str(idea_id),
        "supported": True,
        "changed": changed is not None,
        "supportCount": support_count,
    }


def unsupport_idea(user_id, idea_id):
    """Withdraw a support. Withdrawing a support that does not exist is a no-op."""
    idea = get_idea_row(idea_id, include_removed=True)
    changed = db.execute_query(
        UNSUPPORT_SQL, (user_id, idea_id, str(uuid.uuid4())),
        fetchone=True, raise_on_error=True,
    )
    if changed:
        logger.info("User %s withdrew support for idea %s", user_id, idea_id)
        _after_change(changed)
        support_count = changed["support_count"]
    else:
        support_count = idea["support_count"]
    return {
        "ideaId": str(idea_id),
        "supported": False,
        "changed": changed is not None,
        "supportCount": support_count,
    }


def has_supported(user_id, idea_id):
    row = db.execute_query(
        "SELECT 1 AS supported FROM idea_support WHERE user_id = %s AND idea_id = %s",
        (user_id, idea_id), fetchone=True, raise_on_error=True,
    )
    return row is not None

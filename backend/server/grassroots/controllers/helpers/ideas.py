"""Idea records: create, read, edit and soft removal, plus amendments and related ideas.

An amendment is an ordinary idea that names the idea it amends. Relations
are symmetric and stored once per pair, smaller id first.
"""

import logging
import re
import uuid

from grassroots.controllers import db
from grassroots.controllers.helpers.auth import has_role
from grassroots.controllers.helpers.errors import (
    ForbiddenError, NotFoundError, ValidationError,
)
from grassroots.controllers.helpers.feed_cache import invalidate_feeds
from grassroots.controllers.helpers.locations import get_location_graph

logger = logging.getLogger(__name__)

MAX_TITLE = 200
MAX_DESCRIPTION = 10000
MAX_TAGS = 10
MAX_TAG_LENGTH = 40

# Columns every idea read selects; `i` is idea, `u` the author.
IDEA_SELECT = """
    SELECT i.id, i.location_id, i.author_user_id, i.title, i.description,
           i.tags, i.support_count, i.status, i.amends_idea_id,
           i.created_time, i.updated_time,
           u.display_name AS author_name
    FROM idea i
    JOIN users u ON u.id = i.author_user_id
"""


def _strip_html(text):
    """Remove HTML tags from text."""
    return re.sub(r'<[^<]+?>', '', text) if text else text


def _clean_tags(tags):
    """Normalize tags to a de-duplicated list, keeping first-seen order."""
    if tags is None:
        return []
    if isinstance(tags, str) or not isinstance(tags, (list, tuple, set)):
        raise ValidationError("tags must be a list of strings")
    cleaned = []
    for tag in tags:
        if not isinstance(tag, str):
            raise ValidationError("tags must be a list of strings")
        tag = _strip_html(tag).strip().lower()
        if not tag:
            continue
        if len(tag) > MAX_TAG_LENGTH:
            raise ValidationError(f"Tags must be {MAX_TAG_LENGTH} characters or less")
        if tag not in cleaned:
            cleaned.append(tag)
    if len(cleaned) > MAX_TAGS:
        raise ValidationError(f"At most {MAX_TAGS} tags are allowed")
    return cleaned


def _clean_text(value, field, max_length, required=True):
    text = _strip_html((value or "").strip())
    if required and not text:
        raise ValidationError(f"{field} is required")
    if len(text) > max_length:
        raise ValidationError(f"{field} must be {max_length} characters or less")
    return text


def row_to_idea(row):
    """Convert a DB row to an Idea response dict."""
    return {
        "id": str(row["id"]),
        "locationId": str(row["location_id"]),
        "title": row["title"],
        "description": row["description"],
        "tags": list(row.get("tags") or []),
        "supportCount": row.get("support_count", 0),
        "status": row.get("status", "active"),
        "amendsId": str(row["amends_idea_id"]) if row.get("amends_idea_id") else None,
        "author": {
            "id": str(row["author_user_id"]),
            "name": row.get("author_name"),
        },
        "createdAt": row["created_time"].isoformat() if row.get("created_time") else None,
        "updatedAt": row["updated_time"].isoformat() if row.get("updated_time") else None,
    }


def get_idea_row(idea_id, include_removed=False):
    row = db.execute_query(
        IDEA_SELECT + " WHERE i.id = %s", (idea_id,),
        fetchone=True, raise_on_error=True,
    )
    if not row or (row["status"] != "active" and not include_removed):
        raise NotFoundError("Idea not found", idea_id=idea_id)
    return row


def get_idea(idea_id):
    return row_to_idea(get_idea_row(idea_id))


def create_idea(author_id, location_id, title, description, tags=None, amends_id=None):
    """Post an idea, optionally as an amendment of an existing active idea."""
    title = _clean_text(title, "Title", MAX_TITLE)
    description = _clean_text(description, "Description", MAX_DESCRIPTION)
    tags = _clean_tags(tags)
    if not location_id:
        raise ValidationError("locationId is required")

    graph = get_location_graph()
    graph.get(location_id)
    if amends_id is not None:
        get_idea_row(amends_id)

    row = db.execute_query("""
        WITH ins AS (
            INSERT INTO idea (id, location_id, author_user_id, title, description, tags, amends_idea_id)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING *
        )
        SELECT ins.*, u.display_name AS author_name
        FROM ins JOIN users u ON u.id = ins.author_user_id
    """, (str(uuid.uuid4()), location_id, author_id, title, description, tags, amends_id),
        fetchone=True, raise_on_error=True)

    invalidate_feeds(graph.ancestor_ids(location_id))
    logger.info("Idea %s posted at %s by %s", row["id"], location_id, author_id)
    if amends_id is not None:
        logger.info("Idea %s amends %s", row["id"], amends_id)
    return row_to_idea(row)


def _check_can_edit(row, editor):
    if str(row["author_user_id"]) != str(editor["id"]) and not has_role(editor, "mod"):
        raise ForbiddenError("Only the author or a moderator can change this idea",
                             idea_id=str(row["id"]), user_id=str(editor["id"]))


def update_idea(idea_id, editor, title=None, description=None, tags=None):
    """Edit an idea's text or tags. Fields left as None are unchanged."""
    row = get_idea_row(idea_id)
    _check_can_edit(row, editor)

    if title is None and description is None and tags is None:
        raise ValidationError("No editable fields provided")
    new_title = _clean_text(title, "Title", MAX_TITLE) if title is not None else row["title"]
    new_description = (_clean_text(description, "Description", MAX_DESCRIPTION)
                       if description is not None else row["description"])
    new_tags = _clean_tags(tags) if tags is not None else list(row.get("tags") or [])

    updated = db.execute_query("""
        WITH upd AS (
            UPDATE idea SET title = %s, description = %s, tags = %s, updated_time = NOW()
            WHERE id = %s AND status = 'active'
            RETURNING *
        )
        SELECT upd.*, u.display_name AS author_name
        FROM upd JOIN users u ON u.id = upd.author_user_id
    """, (new_title, new_description, new_tags, idea_id), fetchone=True, raise_on_error=True)
    if not updated:
        raise NotFoundError("Idea not found", idea_id=idea_id)

    invalidate_feeds(get_location_graph().ancestor_ids(str(row["location_id"])))
    return row_to_idea(updated)


def remove_idea(idea_id, editor):
    """Hide an idea from every feed. Supports and points already earned stay."""
    row = get_idea_row(idea_id)
    _check_can_edit(row, editor)
    db.execute_query(
        "UPDATE idea SET status = 'removed', updated_time = NOW() WHERE id = %s",
        (idea_id,), raise_on_error=True,
    )
    invalidate_feeds(get_location_graph().ancestor_ids(str(row["location_id"])))
    logger.info("Idea %s removed by %s", idea_id, editor["id"])


def has_posted_idea(user_id):
    """Whether the user has ever posted an idea, at any location."""
    row = db.execute_query(
        "SELECT 1 AS posted FROM idea WHERE author_user_id = %s LIMIT 1",
        (user_id,), fetchone=True, raise_on_error=True,
    )
    return row is not None


# ---------------------------------------------------------------------------
# Amendments and related ideas
# ---------------------------------------------------------------------------

def list_amendments(idea_id):
    """Active ideas that amend `idea_id`, oldest first."""
    get_idea_row(idea_id)
    rows = db.execute_query(IDEA_SELECT + """
        WHERE i.amends_idea_id = %s AND i.status = 'active'
        ORDER BY i.created_time, i.id
    """, (idea_id,), raise_on_error=True) or []
    return [row_to_idea(r) for r in rows]


def related_ideas(idea_id):
    get_idea_row(idea_id)
    rows = db.execute_query(IDEA_SELECT + """
        JOIN idea_relation r
          ON (r.idea_id = %s AND r.related_idea_id = i.id)
          OR (r.related_idea_id = %s AND r.idea_id = i.id)
        WHERE i.status = 'active'
        ORDER BY i.support_count DESC, i.created_time DESC, i.id
    """, (idea_id, idea_id), raise_on_error=True) or []
    return [row_to_idea(r) for r in rows]


def relate_ideas(idea_id, related_idea_id, user_id):
    """Link two active ideas. Relating an already related pair is a no-op.

    Returns:
        True if a new relation was recorded.
    """
    if not related_idea_id:
        raise ValidationError("relatedIdeaId is required")
    if str(idea_id) == str(related_idea_id):
        raise ValidationError("An idea cannot be related to itself")
    get_idea_row(idea_id)
    get_idea_row(related_idea_id)

    low, high = sorted((str(idea_id), str(related_idea_id)))
    row = db.execute_query("""
        INSERT INTO idea_relation (idea_id, related_idea_id, created_by_user_id)
        VALUES (%s, %s, %s)
        ON CONFLICT (idea_id, related_idea_id) DO NOTHING
        RETURNING idea_id
    """, (low, high, user_id), fetchone=True, raise_on_error=True)
    if row:
        logger.info("Ideas %s and %s related by %s", low, high, user_id)
    return row is not None

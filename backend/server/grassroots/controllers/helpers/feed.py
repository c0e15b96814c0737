"""
Location feeds: every idea posted at a location or anywhere beneath it.

Ordering is supportCount desc, then createdAt desc (newest first), then id
asc so that ties are deterministic. Pages are cut with an opaque keyset
cursor over that same triple, so paging stays stable while supports change.
"""

import base64
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from grassroots.controllers import db, config
from grassroots.controllers.helpers.errors import ValidationError
from grassroots.controllers.helpers.feed_cache import get_page, set_page
from grassroots.controllers.helpers.ideas import IDEA_SELECT, row_to_idea
from grassroots.controllers.helpers.locations import get_location_graph

logger = logging.getLogger(__name__)


def feed_sort_key(row):
    return (-row["support_count"], -row["created_time"].timestamp(), str(row["id"]))


def order_feed(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """De-duplicate rows by idea id and sort them in feed order.

    The store should never return an idea twice, but if overlapping result
    sets do arrive the copy with the freshest support count wins.
    """
    by_id = {}
    for row in rows:
        idea_id = str(row["id"])
        seen = by_id.get(idea_id)
        if seen is None or row["support_count"] > seen["support_count"]:
            by_id[idea_id] = row
    return sorted(by_id.values(), key=feed_sort_key)


def encode_cursor(row):
    """Encode the sort position of `row` as an opaque cursor."""
    payload = json.dumps({
        "s": row["support_count"],
        "t": row["created_time"].isoformat(),
        "id": str(row["id"]),
    })
    return base64.urlsafe_b64encode(payload.encode()).decode()


def decode_cursor(cursor):
    """Decode a cursor into (support_count, created_time, id)."""
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode()))
        return int(payload["s"]), datetime.fromisoformat(payload["t"]), str(payload["id"])
    except (ValueError, KeyError, TypeError) as e:
        raise ValidationError("Invalid cursor") from e


def _page_size(limit):
    if limit is None:
        return config.FEED_PAGE_SIZE
    if limit < 1:
        raise ValidationError("limit must be at least 1")
    return min(limit, config.FEED_MAX_PAGE_SIZE)


def _query_feed(location_ids, limit, cursor):
    params: list = [list(location_ids)]
    after = ""
    if cursor:
        support_count, created_time, idea_id = decode_cursor(cursor)
        after = """
          AND (i.support_count < %s
               OR (i.support_count = %s AND i.created_time < %s)
               OR (i.support_count = %s AND i.created_time = %s AND i.id > %s))
        """
        params += [support_count, support_count, created_time,
                   support_count, created_time, idea_id]
    params.append(limit + 1)

    return db.execute_query(
        IDEA_SELECT + """
        WHERE i.location_id = ANY(%s)
          AND i.status = 'active'
        """ + after + """
        ORDER BY i.support_count DESC, i.created_time DESC, i.id ASC
        LIMIT %s
        """, tuple(params), raise_on_error=True) or []


def ideas_visible_at(location_id, limit: Optional[int] = None, cursor: Optional[str] = None):
    """Ideas visible at a location: its own plus those of every descendant.

    Args:
        location_id: Any location in the hierarchy.
        limit: Page size (defaults to FEED_PAGE_SIZE, capped at FEED_MAX_PAGE_SIZE).
        cursor: Opaque cursor from a previous page's `nextCursor`.

    Returns:
        {"ideas": [...], "nextCursor": str or None}

    Raises:
        NotFoundError: unknown location.
        ValidationError: bad limit or cursor.
    """
    limit = _page_size(limit)
    location_ids = get_location_graph().descendant_ids(location_id)

    cached, cache_key = get_page(location_id, limit, cursor)
    if cached is not None:
        return cached

    raw = _query_feed(location_ids, limit, cursor)
    # The store fetched limit + 1; decide before any duplicate collapses
    has_more = len(raw) > limit
    rows = order_feed(raw)[:limit]

    page = {
        "ideas": [row_to_idea(r) for r in rows],
        "nextCursor": encode_cursor(rows[-1]) if has_more and rows else None,
    }
    set_page(cache_key, page)
    return page

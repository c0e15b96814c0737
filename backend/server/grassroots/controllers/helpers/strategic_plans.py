"""
Strategic plans: per-location planning sessions with scheduled stages.

Every stage change is a compare-and-swap (`UPDATE ... WHERE stage = <seen>`),
so any number of sweeps or replicas can evaluate the same plans without
double-advancing one. Contributions keep their true author for scoring but
are only ever read back by other members under a per-plan pseudonym.
"""

import logging
import re
import threading
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from grassroots.controllers import db, config
from grassroots.controllers.helpers.errors import (
    ConflictError, ForbiddenError, InvalidStageError, NotFoundError,
    TransientStoreError, ValidationError,
)
from grassroots.controllers.helpers.locations import get_location_graph
from grassroots.controllers.helpers.notifications import publish_plan_stage_changed
from grassroots.controllers.helpers.plan_stages import (
    COMPLETED, CONTRIBUTION_KINDS, CONTRIBUTION_STAGES, DRAFT, check_contribution_allowed,
    check_stage, check_vote_allowed, is_forward_step, next_stage, pseudonym,
    stage_deadline,
)
from grassroots.controllers.helpers.points import (
    PLAN_CONTRIBUTION_POINTS, check_delta, refresh_badges_quietly, total_points,
)

logger = logging.getLogger(__name__)

MAX_TITLE = 200
MAX_BODY = 5000
MIN_YEAR = 2000
MAX_YEAR = 2100


def _iso(value):
    return value.isoformat() if value else None


def plan_to_dict(row):
    """Convert a strategic_plan row to its API dict."""
    return {
        "id": str(row["id"]),
        "locationId": str(row["location_id"]),
        "locationType": row["location_type"],
        "year": row["plan_year"],
        "title": row["title"],
        "vision": row.get("vision") or "",
        "stage": row["stage"],
        "stageEnteredAt": _iso(row.get("stage_entered_time")),
        "stageDeadline": _iso(row.get("stage_deadline")),
        "createdAt": _iso(row.get("created_time")),
        "archivedAt": _iso(row.get("archived_time")),
    }


def public_contribution(row):
    """What other members may see of a contribution: no author, only a pseudonym."""
    index = row.get("contributor_index")
    item = {
        "id": str(row["id"]),
        "kind": row["kind"],
        "title": row.get("title"),
        "body": row["body"],
        "parentId": str(row["parent_id"]) if row.get("parent_id") else None,
        "contributor": pseudonym(index) if index else "Anonymous contributor",
        "createdAt": _iso(row.get("created_time")),
    }
    if row["kind"] == "issue":
        item["votes"] = int(row.get("vote_count") or 0)
    if row["kind"] == "action":
        item["dueDate"] = _iso(row.get("due_date"))
        item["status"] = row.get("status") or "proposed"
    return item


# ---------------------------------------------------------------------------
# Member-name filter
# ---------------------------------------------------------------------------

NAMES_CACHE_TTL = 300

_names_lock = threading.Lock()
_names_cache: Dict[str, Any] = {"names": None, "fetched_at": 0.0}


def _member_names():
    with _names_lock:
        if (_names_cache["names"] is None
                or time.monotonic() - _names_cache["fetched_at"] > NAMES_CACHE_TTL):
            rows = db.execute_query("""
                SELECT DISTINCT TRIM(display_name) AS name FROM users
                WHERE display_name IS NOT NULL AND TRIM(display_name) <> ''
            """, raise_on_error=True) or []
            _names_cache["names"] = [r["name"] for r in rows]
            _names_cache["fetched_at"] = time.monotonic()
        return _names_cache["names"]


def find_member_name(text, names) -> Optional[str]:
    """The first member name token (3+ letters, whole word) that appears in `text`."""
    if not text or not text.strip():
        return None
    for full_name in names:
        for token in str(full_name).split():
            if len(token) >= 3 and re.search(rf"\b{re.escape(token)}\b", text, re.IGNORECASE):
                return token
    return None


def assert_no_member_names(*texts):
    if not config.PLAN_NAME_FILTER_ENABLED:
        return
    names = _member_names()
    for text in texts:
        if find_member_name(text, names):
            raise ValidationError(
                "For safety, please avoid naming individual members in plans. "
                "Keep it about ideas, not people."
            )


# ---------------------------------------------------------------------------
# Plan lifecycle
# ---------------------------------------------------------------------------

def get_plan_row(plan_id):
    row = db.execute_query(
        "SELECT * FROM strategic_plan WHERE id = %s", (plan_id,),
        fetchone=True, raise_on_error=True,
    )
    if not row:
        raise NotFoundError("Plan not found", plan_id=plan_id)
    return row


def get_plan(plan_id, include_contributions=False):
    plan = plan_to_dict(get_plan_row(plan_id))
    if include_contributions:
        plan["contributions"] = list_contributions(plan_id)
    return plan


def start_plan(location_id, initiator, year=None, title=None, vision=None, now=None):
    """Open a new plan in Draft for a location.

    Raises:
        NotFoundError: unknown location.
        ForbiddenError: the initiator lacks the points needed to start a plan.
        ConflictError: the location already has an active plan for that year
            (adhoc groups: any active plan at all).
    """
    location = get_location_graph().get(location_id)
    now = now or datetime.now(timezone.utc)
    year = now.year if year is None else year
    if not isinstance(year, int) or not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationError(f"year must be between {MIN_YEAR} and {MAX_YEAR}")

    title = (title or "").strip() or "Strategic Plan"
    vision = (vision or "").strip()
    if len(title) > MAX_TITLE:
        raise ValidationError(f"Title must be {MAX_TITLE} characters or less")
    if len(vision) > MAX_BODY:
        raise ValidationError(f"Vision must be {MAX_BODY} characters or less")

    initiator_id = str(initiator["id"])
    if config.PLAN_MIN_POINTS_TO_START > 0:
        points = total_points(initiator_id)
        if points < config.PLAN_MIN_POINTS_TO_START:
            raise ForbiddenError(
                f"Starting a plan requires {config.PLAN_MIN_POINTS_TO_START} points",
                user_id=initiator_id, points=points,
            )

    plan_id = str(uuid.uuid4())
    # ON CONFLICT without a target covers both partial unique indexes
    row = db.execute_query("""
        WITH created AS (
            INSERT INTO strategic_plan
                (id, location_id, location_type, plan_year, title, vision, stage,
                 stage_entered_time, stage_deadline, created_by_user_id, created_time, updated_time)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT DO NOTHING
            RETURNING *
        ), logged AS (
            INSERT INTO plan_stage_event (id, plan_id, event_type, from_stage, to_stage, actor_user_id)
            SELECT %s, id, 'created', NULL, stage, created_by_user_id FROM created
            RETURNING id
        )
        SELECT * FROM created
    """, (plan_id, location.id, location.location_type, year, title, vision, DRAFT,
          now, stage_deadline(DRAFT, now, config.PLAN_STAGE_DURATION_DAYS),
          initiator_id, now, now, str(uuid.uuid4())),
        fetchone=True, raise_on_error=True)

    if not row:
        raise ConflictError(
            "This location already has an active Strategic Plan",
            location_id=location.id, year=year,
        )
    logger.info("Plan %s started for %s (%s) by %s", plan_id, location.id, year, initiator_id)
    return plan_to_dict(row)


def get_current_plan(location_id, include_contributions=True):
    """The location's newest plan that has not been archived, or None."""
    get_location_graph().get(location_id)
    row = db.execute_query("""
        SELECT * FROM strategic_plan
        WHERE location_id = %s AND archived_time IS NULL
        ORDER BY created_time DESC
        LIMIT 1
    """, (location_id,), fetchone=True, raise_on_error=True)
    if not row:
        return None
    plan = plan_to_dict(row)
    if include_contributions:
        plan["contributions"] = list_contributions(plan["id"])
    return plan


def plan_history(location_id, limit=20):
    get_location_graph().get(location_id)
    rows = db.execute_query("""
        SELECT * FROM strategic_plan
        WHERE location_id = %s AND archived_time IS NOT NULL
        ORDER BY created_time DESC
        LIMIT %s
    """, (location_id, max(1, min(limit or 20, 100))), raise_on_error=True) or []
    return [plan_to_dict(r) for r in rows]


def archive_plan(plan_id, admin):
    """Archive a completed plan. Archiving twice returns the archived plan."""
    row = db.execute_query("""
        WITH archived AS (
            UPDATE strategic_plan SET archived_time = NOW(), updated_time = NOW()
            WHERE id = %s AND stage = %s AND archived_time IS NULL
            RETURNING *
        ), logged AS (
            INSERT INTO plan_stage_event (id, plan_id, event_type, from_stage, to_stage, actor_user_id)
            SELECT %s, id, 'archive', stage, stage, %s FROM archived
            RETURNING id
        )
        SELECT * FROM archived
    """, (plan_id, COMPLETED, str(uuid.uuid4()), str(admin["id"])),
        fetchone=True, raise_on_error=True)
    if row:
        logger.info("Plan %s archived by %s", plan_id, admin["id"])
        return plan_to_dict(row)

    current = get_plan_row(plan_id)
    if current["stage"] != COMPLETED:
        raise InvalidStageError("Only completed plans can be archived",
                                plan_id=plan_id, stage=current["stage"])
    return plan_to_dict(current)


def update_plan(plan_id, admin, title=None, vision=None):
    """Admin edit of a plan's title or vision. Stages only move through override_stage."""
    if title is None and vision is None:
        raise ValidationError("No editable fields provided")
    if title is not None:
        title = title.strip()
        if not title:
            raise ValidationError("Title is required")
        if len(title) > MAX_TITLE:
            raise ValidationError(f"Title must be {MAX_TITLE} characters or less")
    if vision is not None:
        vision = vision.strip()
        if len(vision) > MAX_BODY:
            raise ValidationError(f"Vision must be {MAX_BODY} characters or less")

    row = db.execute_query("""
        UPDATE strategic_plan
        SET title = COALESCE(%s, title), vision = COALESCE(%s, vision), updated_time = NOW()
        WHERE id = %s AND archived_time IS NULL
        RETURNING *
    """, (title, vision, plan_id), fetchone=True, raise_on_error=True)
    if not row:
        get_plan_row(plan_id)
        raise InvalidStageError("Archived plans cannot be edited", plan_id=plan_id)

    logger.info("Plan %s edited by %s (title: %s, vision: %s)", plan_id, admin["id"],
                title is not None, vision is not None)
    return plan_to_dict(row)


# ---------------------------------------------------------------------------
# Scheduled stage advancement
# ---------------------------------------------------------------------------

def advance_plan(plan, now):
    """Move one due plan to its next stage if nobody else already has.

    Returns:
        (from_stage, to_stage) when this call performed the transition,
        None when the plan had already moved on.
    """
    from_stage = plan["stage"]
    to_stage = next_stage(from_stage)
    deadline = stage_deadline(to_stage, now, config.PLAN_STAGE_DURATION_DAYS)

    moved = db.execute_query("""
        WITH moved AS (
            UPDATE strategic_plan
            SET stage = %s, stage_entered_time = %s, stage_deadline = %s, updated_time = %s
            WHERE id = %s AND stage = %s AND stage_deadline <= %s
            RETURNING id, location_id
        ), logged AS (
            INSERT INTO plan_stage_event (id, plan_id, event_type, from_stage, to_stage)
            SELECT %s, id, 'transition', %s, %s FROM moved
            RETURNING id
        )
        SELECT id, location_id FROM moved
    """, (to_stage, now, deadline, now, str(plan["id"]), from_stage, now,
          str(uuid.uuid4()), from_stage, to_stage),
        fetchone=True, raise_on_error=True)

    if not moved:
        return None
    logger.info("Plan %s advanced %s -> %s", plan["id"], from_stage, to_stage)
    publish_plan_stage_changed(plan["id"], moved["location_id"], from_stage, to_stage)
    return from_stage, to_stage


def evaluate_due_transitions(now=None, batch_size=None) -> Dict[str, Any]:
    """Advance every plan whose stage deadline has passed by one stage.

    Safe to run concurrently and to re-run after a partial failure. A
    transient store error on one plan is recorded and the sweep moves on;
    the plan is picked up again by the next sweep.

    Returns summary of the sweep.
    """
    now = now or datetime.now(timezone.utc)
    due = db.execute_query("""
        SELECT id, location_id, stage, stage_deadline
        FROM strategic_plan
        WHERE stage <> %s AND stage_deadline <= %s
        ORDER BY stage_deadline, id
        LIMIT %s
    """, (COMPLETED, now, batch_size or config.PLAN_SWEEP_BATCH_SIZE),
        raise_on_error=True) or []

    advanced = []
    skipped = 0
    errors = []
    for plan in due:
        try:
            result = advance_plan(plan, now)
        except TransientStoreError as e:
            errors.append(f"{plan['id']}: {e}")
            continue
        if result is None:
            skipped += 1
        else:
            advanced.append({"planId": str(plan["id"]), "fromStage": result[0], "toStage": result[1]})

    if errors:
        logger.warning("Stage sweep hit %d transient errors", len(errors))
    return {
        "evaluated": len(due),
        "advanced": advanced,
        "skipped": skipped,
        "errors": errors,
        "sweptAt": now.isoformat(),
    }


def override_stage(plan_id, target_stage, admin, reason=None, now=None):
    """Privileged move to any stage, including backwards.

    Recorded as an 'override' event, separate from scheduled transitions.
    """
    check_stage(target_stage)
    now = now or datetime.now(timezone.utc)
    plan = get_plan_row(plan_id)
    from_stage = plan["stage"]
    if plan.get("archived_time"):
        raise InvalidStageError("Archived plans cannot change stage", plan_id=plan_id)
    if target_stage == from_stage:
        raise ValidationError(f"Plan is already in {target_stage}")

    # Reopening a completed plan must not collide with a newer active plan
    moved = db.execute_query("""
        WITH moved AS (
            UPDATE strategic_plan
            SET stage = %s, stage_entered_time = %s, stage_deadline = %s, updated_time = %s
            WHERE id = %s AND stage = %s
              AND (%s = 'completed' OR NOT EXISTS (
                  SELECT 1 FROM strategic_plan other
                  WHERE other.id <> strategic_plan.id
                    AND other.location_id = strategic_plan.location_id
                    AND other.stage <> 'completed'
                    AND (strategic_plan.location_type = 'adhocGroup'
                         OR other.plan_year = strategic_plan.plan_year)))
            RETURNING *
        ), logged AS (
            INSERT INTO plan_stage_event
                (id, plan_id, event_type, from_stage, to_stage, actor_user_id, reason)
            SELECT %s, id, 'override', %s, %s, %s, %s FROM moved
            RETURNING id
        )
        SELECT * FROM moved
    """, (target_stage, now, stage_deadline(target_stage, now, config.PLAN_STAGE_DURATION_DAYS),
          now, plan_id, from_stage, target_stage, str(uuid.uuid4()), from_stage, target_stage,
          str(admin["id"]), reason),
        fetchone=True, raise_on_error=True)
    if not moved:
        if get_plan_row(plan_id)["stage"] != from_stage:
            raise ConflictError("The plan changed stage while this request was processed",
                                plan_id=plan_id)
        raise ConflictError("This location already has an active Strategic Plan",
                            plan_id=plan_id, location_id=plan["location_id"])

    logger.warning("Plan %s stage overridden %s -> %s by %s (forward step: %s) reason=%r",
                   plan_id, from_stage, target_stage, admin["id"],
                   is_forward_step(from_stage, target_stage), reason)
    publish_plan_stage_changed(plan_id, moved["location_id"], from_stage, target_stage, override=True)
    return plan_to_dict(moved)


def stage_events(plan_id):
    get_plan_row(plan_id)
    rows = db.execute_query("""
        SELECT event_type, from_stage, to_stage, reason, created_time
        FROM plan_stage_event
        WHERE plan_id = %s
        ORDER BY created_time, id
    """, (plan_id,), raise_on_error=True) or []
    return [{
        "eventType": r["event_type"],
        "fromStage": r["from_stage"],
        "toStage": r["to_stage"],
        "reason": r.get("reason"),
        "createdAt": _iso(r.get("created_time")),
    } for r in rows]


# ---------------------------------------------------------------------------
# Contributions
# ---------------------------------------------------------------------------

def _ensure_contributor(plan_id, user_id):
    """The user's contributor number within the plan, assigning the next one if new.

    Numbers come from a counter on the plan row, so concurrent newcomers are
    serialized by the row lock and never share a number.
    """
    sql = """
        WITH existing AS (
            SELECT contributor_index FROM plan_contributor
            WHERE plan_id = %s AND user_id = %s
        ), bump AS (
            UPDATE strategic_plan SET contributor_count = contributor_count + 1
            WHERE id = %s AND NOT EXISTS (SELECT 1 FROM existing)
            RETURNING contributor_count
        ), ins AS (
            INSERT INTO plan_contributor (plan_id, user_id, contributor_index)
            SELECT %s, %s, contributor_count FROM bump
            ON CONFLICT (plan_id, user_id) DO NOTHING
            RETURNING contributor_index
        )
        SELECT contributor_index FROM existing
        UNION ALL
        SELECT contributor_index FROM ins
    """
    params = (plan_id, user_id, plan_id, plan_id, user_id)
    row = db.execute_query(sql, params, fetchone=True, raise_on_error=True)
    if row is None:
        # Lost a race against our own concurrent first contribution
        row = db.execute_query(
            "SELECT contributor_index FROM plan_contributor WHERE plan_id = %s AND user_id = %s",
            (plan_id, user_id), fetchone=True, raise_on_error=True,
        )
    return row["contributor_index"]


def _clean(value, field, max_length, required=True):
    text = (value or "").strip()
    if required and not text:
        raise ValidationError(f"{field} is required")
    if len(text) > max_length:
        raise ValidationError(f"{field} must be {max_length} characters or less")
    return text or None


def _add_contribution(kind, plan_id, author_id, body, title=None, parent_id=None, due_date=None):
    plan = get_plan_row(plan_id)
    check_contribution_allowed(kind, plan["stage"])
    assert_no_member_names(title or "", body or "")

    if parent_id is not None:
        parent = db.execute_query("""
            SELECT id, kind FROM plan_contribution WHERE id = %s AND plan_id = %s
        """, (parent_id, plan_id), fetchone=True, raise_on_error=True)
        if not parent:
            raise NotFoundError("Parent item not found", plan_id=plan_id, parent_id=parent_id)
        if parent["kind"] not in ("issue", "goal"):
            raise ValidationError("Comments can only be attached to issues or goals")

    points, source = PLAN_CONTRIBUTION_POINTS[kind], f"plan_{kind}"
    check_delta(points, source)
    contributor_index = _ensure_contributor(plan_id, author_id)

    # The insert and the author's ledger credit commit together or not at all
    row = db.execute_query("""
        WITH plan AS (
            SELECT id, location_id FROM strategic_plan WHERE id = %s AND stage = ANY(%s)
        ), created AS (
            INSERT INTO plan_contribution
                (id, plan_id, kind, author_user_id, parent_id, title, body, due_date)
            SELECT %s, plan.id, %s, %s, %s, %s, %s, %s FROM plan
            RETURNING *
        ), credited AS (
            INSERT INTO points_ledger (id, user_id, amount, source, source_id, location_id)
            SELECT %s, created.author_user_id, %s, %s, created.id, plan.location_id
            FROM created CROSS JOIN plan
            RETURNING id
        )
        SELECT * FROM created
    """, (plan_id, sorted(CONTRIBUTION_STAGES[kind]), str(uuid.uuid4()), kind, author_id,
          parent_id, title, body, due_date, str(uuid.uuid4()), points, source),
        fetchone=True, raise_on_error=True)
    if not row:
        # The plan advanced between the read and the insert
        raise InvalidStageError(
            f"{kind.capitalize()}s can no longer be added to this plan",
            plan_id=plan_id, kind=kind,
        )

    refresh_badges_quietly(author_id)

    item = dict(row)
    item["contributor_index"] = contributor_index
    return public_contribution(item)


def add_issue(plan_id, author_id, title, body=None):
    return _add_contribution("issue", plan_id, author_id,
                             body=_clean(body, "Description", MAX_BODY, required=False) or "",
                             title=_clean(title, "Title", MAX_TITLE))


def add_goal(plan_id, author_id, title, body=None):
    return _add_contribution("goal", plan_id, author_id,
                             body=_clean(body, "Description", MAX_BODY, required=False) or "",
                             title=_clean(title, "Title", MAX_TITLE))


def add_action(plan_id, author_id, body, due_date=None):
    if due_date is not None and not hasattr(due_date, "isoformat"):
        try:
            due_date = datetime.fromisoformat(str(due_date)).date()
        except ValueError as e:
            raise ValidationError("dueDate must be an ISO date") from e
    return _add_contribution("action", plan_id, author_id,
                             body=_clean(body, "Description", MAX_BODY),
                             due_date=due_date)


def add_comment(plan_id, author_id, body, parent_id=None):
    return _add_contribution("comment", plan_id, author_id,
                             body=_clean(body, "Comment", MAX_BODY),
                             parent_id=parent_id)


def _contribution_rows(plan_id, kind=None):
    kind_filter = "AND c.kind = %s" if kind else ""
    params = (plan_id, kind) if kind else (plan_id,)
    return db.execute_query(f"""
        SELECT c.*, pc.contributor_index,
               (SELECT COUNT(*) FROM plan_issue_vote v WHERE v.issue_id = c.id) AS vote_count
        FROM plan_contribution c
        LEFT JOIN plan_contributor pc
               ON pc.plan_id = c.plan_id AND pc.user_id = c.author_user_id
        WHERE c.plan_id = %s {kind_filter}
        ORDER BY c.created_time, c.id
    """, params, raise_on_error=True) or []


def list_contributions(plan_id, kind=None):
    """Pseudonymized contributions of a plan, grouped by kind."""
    if kind is not None and kind not in CONTRIBUTION_KINDS:
        raise ValidationError(f"Unknown contribution kind '{kind}'")
    grouped: Dict[str, List] = {"issues": [], "goals": [], "actions": [], "comments": []}
    for row in _contribution_rows(plan_id, kind):
        grouped[row["kind"] + "s"].append(public_contribution(row))
    return grouped


def plan_participation(plan_id):
    """Attributed view for scoring and administration: who contributed what.

    Never returned to ordinary members.
    """
    get_plan_row(plan_id)
    rows = db.execute_query("""
        SELECT c.author_user_id, pc.contributor_index, c.kind, COUNT(*) AS n
        FROM plan_contribution c
        LEFT JOIN plan_contributor pc
               ON pc.plan_id = c.plan_id AND pc.user_id = c.author_user_id
        WHERE c.plan_id = %s
        GROUP BY c.author_user_id, pc.contributor_index, c.kind
        ORDER BY pc.contributor_index, c.kind
    """, (plan_id,), raise_on_error=True) or []

    by_author: Dict[str, Dict[str, Any]] = {}
    for r in rows:
        author_id = str(r["author_user_id"])
        entry = by_author.setdefault(author_id, {
            "userId": author_id,
            "contributor": pseudonym(r["contributor_index"]) if r["contributor_index"] else None,
            "counts": {},
            "points": 0,
        })
        entry["counts"][r["kind"]] = int(r["n"])
        entry["points"] += int(r["n"]) * PLAN_CONTRIBUTION_POINTS[r["kind"]]
    return list(by_author.values())


def vote_on_issue(plan_id, issue_id, user_id):
    """Vote for an issue during the decision stage; a repeat vote is a no-op."""
    plan = get_plan_row(plan_id)
    check_vote_allowed(plan["stage"])

    points = PLAN_CONTRIBUTION_POINTS["vote"]
    check_delta(points, "plan_vote")

    row = db.execute_query("""
        WITH issue AS (
            SELECT c.id, p.location_id FROM plan_contribution c
            JOIN strategic_plan p ON p.id = c.plan_id
            WHERE c.id = %s AND c.plan_id = %s AND c.kind = 'issue' AND p.stage = %s
        ), ins AS (
            INSERT INTO plan_issue_vote (id, issue_id, user_id)
            SELECT %s, id, %s FROM issue
            ON CONFLICT (issue_id, user_id) DO NOTHING
            RETURNING id, user_id
        ), credited AS (
            INSERT INTO points_ledger (id, user_id, amount, source, source_id, location_id)
            SELECT %s, ins.user_id, %s, 'plan_vote', ins.id, issue.location_id
            FROM ins CROSS JOIN issue
            RETURNING id
        )
        SELECT (SELECT COUNT(*) FROM issue) AS issue_found,
               (SELECT id FROM ins) AS vote_id,
               (SELECT COUNT(*) FROM plan_issue_vote WHERE issue_id = %s) AS prior_votes
    """, (issue_id, plan_id, plan["stage"], str(uuid.uuid4()), user_id,
          str(uuid.uuid4()), points, issue_id),
        fetchone=True, raise_on_error=True)

    if not row or not row["issue_found"]:
        check_vote_allowed(get_plan_row(plan_id)["stage"])
        raise NotFoundError("Issue not found", plan_id=plan_id, issue_id=issue_id)

    voted = row["vote_id"] is not None
    if voted:
        refresh_badges_quietly(user_id)
    return {
        "issueId": str(issue_id),
        "votes": int(row["prior_votes"]) + (1 if voted else 0),
        "changed": voted,
    }

"""Strategic plans controller: plan lifecycle, contributions and admin stage control."""

from grassroots.controllers.helpers.auth import require_user
from grassroots.controllers.helpers.errors import ServiceError, error_response
from grassroots.controllers.helpers.rate_limiting import enforce_rate_limit
from grassroots.controllers.helpers import strategic_plans as plans


def start_plan(location_id, body=None, token_info=None):  # noqa: E501
    body = body or {}
    try:
        user = require_user(token_info)
        enforce_rate_limit(str(user["id"]), "plan_start")
        plan = plans.start_plan(
            location_id, user,
            year=body.get("year"),
            title=body.get("title"),
            vision=body.get("vision"),
        )
        return plan, 201
    except ServiceError as e:
        return error_response(e, "start_plan", location_id=location_id)


def get_current_plan(location_id):  # noqa: E501
    """The location's current (non-archived) plan with its pseudonymized contributions."""
    try:
        plan = plans.get_current_plan(location_id)
        if plan is None:
            return {"code": 404, "kind": "NotFound",
                    "message": "No Strategic Plan has been started here yet."}, 404
        return plan, 200
    except ServiceError as e:
        return error_response(e, "get_current_plan", location_id=location_id)


def get_plan_history(location_id, limit=None):  # noqa: E501
    try:
        return plans.plan_history(location_id, limit), 200
    except ServiceError as e:
        return error_response(e, "get_plan_history", location_id=location_id)


def get_plan(plan_id):  # noqa: E501
    try:
        return plans.get_plan(plan_id, include_contributions=True), 200
    except ServiceError as e:
        return error_response(e, "get_plan", plan_id=plan_id)


def get_plan_contributions(plan_id, kind=None):  # noqa: E501
    try:
        plans.get_plan_row(plan_id)
        return plans.list_contributions(plan_id, kind), 200
    except ServiceError as e:
        return error_response(e, "get_plan_contributions", plan_id=plan_id)


def get_plan_events(plan_id):  # noqa: E501
    try:
        return plans.stage_events(plan_id), 200
    except ServiceError as e:
        return error_response(e, "get_plan_events", plan_id=plan_id)


def _contributor(token_info):
    user = require_user(token_info)
    user_id = str(user["id"])
    enforce_rate_limit(user_id, "plan_contribution")
    return user_id


def add_issue(plan_id, body, token_info=None):  # noqa: E501
    try:
        user_id = _contributor(token_info)
        return plans.add_issue(plan_id, user_id, body.get("title"), body.get("body")), 201
    except ServiceError as e:
        return error_response(e, "add_issue", plan_id=plan_id)


def add_goal(plan_id, body, token_info=None):  # noqa: E501
    try:
        user_id = _contributor(token_info)
        return plans.add_goal(plan_id, user_id, body.get("title"), body.get("body")), 201
    except ServiceError as e:
        return error_response(e, "add_goal", plan_id=plan_id)


def add_action(plan_id, body, token_info=None):  # noqa: E501
    try:
        user_id = _contributor(token_info)
        return plans.add_action(plan_id, user_id, body.get("body"),
                                due_date=body.get("dueDate")), 201
    except ServiceError as e:
        return error_response(e, "add_action", plan_id=plan_id)


def add_comment(plan_id, body, token_info=None):  # noqa: E501
    try:
        user_id = _contributor(token_info)
        return plans.add_comment(plan_id, user_id, body.get("body"),
                                 parent_id=body.get("parentId")), 201
    except ServiceError as e:
        return error_response(e, "add_comment", plan_id=plan_id)


def vote_on_issue(plan_id, issue_id, token_info=None):  # noqa: E501
    try:
        user_id = _contributor(token_info)
        return plans.vote_on_issue(plan_id, issue_id, user_id), 200
    except ServiceError as e:
        return error_response(e, "vote_on_issue", plan_id=plan_id, issue_id=issue_id)


# ---------- Admin ----------

def override_plan_stage(plan_id, body, token_info=None):  # noqa: E501
    """Admin: force a plan into any stage."""
    try:
        admin = require_user(token_info, "admin")
        return plans.override_stage(plan_id, body.get("stage"), admin,
                                    reason=body.get("reason")), 200
    except ServiceError as e:
        return error_response(e, "override_plan_stage", plan_id=plan_id)


def update_plan(plan_id, body, token_info=None):  # noqa: E501
    """Admin: edit a plan's title or vision."""
    try:
        admin = require_user(token_info, "admin")
        return plans.update_plan(plan_id, admin, title=body.get("title"),
                                 vision=body.get("vision")), 200
    except ServiceError as e:
        return error_response(e, "update_plan", plan_id=plan_id)


def archive_plan(plan_id, token_info=None):  # noqa: E501
    try:
        admin = require_user(token_info, "admin")
        return plans.archive_plan(plan_id, admin), 200
    except ServiceError as e:
        return error_response(e, "archive_plan", plan_id=plan_id)


def get_plan_participation(plan_id, token_info=None):  # noqa: E501
    """Admin: contributions attributed to their real authors."""
    try:
        require_user(token_info, "admin")
        return plans.plan_participation(plan_id), 200
    except ServiceError as e:
        return error_response(e, "get_plan_participation", plan_id=plan_id)


def run_stage_sweep(token_info=None):  # noqa: E501
    """Admin: advance every due plan now instead of waiting for the worker."""
    try:
        require_user(token_info, "admin")
        return plans.evaluate_due_transitions(), 200
    except ServiceError as e:
        return error_response(e, "run_stage_sweep")

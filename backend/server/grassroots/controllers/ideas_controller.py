"""Ideas controller: posting, editing, supporting and relating ideas."""

from grassroots.controllers.helpers.auth import require_user
from grassroots.controllers.helpers.errors import ServiceError, error_response
from grassroots.controllers.helpers import ideas
from grassroots.controllers.helpers.rate_limiting import enforce_rate_limit
from grassroots.controllers.helpers.support import (
    has_supported, support_idea as record_support, unsupport_idea as withdraw_support,
)


def create_idea(body, token_info=None):  # noqa: E501
    try:
        user = require_user(token_info)
        user_id = str(user["id"])
        enforce_rate_limit(user_id, "idea_create")
        idea = ideas.create_idea(
            user_id,
            body.get("locationId"),
            body.get("title"),
            body.get("description"),
            tags=body.get("tags"),
            amends_id=body.get("amendsId"),
        )
        return idea, 201
    except ServiceError as e:
        return error_response(e, "create_idea")


def get_idea(idea_id, token_info=None):  # noqa: E501
    try:
        idea = ideas.get_idea(idea_id)
        if token_info:
            idea["supportedByMe"] = has_supported(token_info["sub"], idea_id)
        return idea, 200
    except ServiceError as e:
        return error_response(e, "get_idea", idea_id=idea_id)


def update_idea(idea_id, body, token_info=None):  # noqa: E501
    try:
        user = require_user(token_info)
        return ideas.update_idea(
            idea_id, user,
            title=body.get("title"),
            description=body.get("description"),
            tags=body.get("tags"),
        ), 200
    except ServiceError as e:
        return error_response(e, "update_idea", idea_id=idea_id)


def delete_idea(idea_id, token_info=None):  # noqa: E501
    try:
        user = require_user(token_info)
        ideas.remove_idea(idea_id, user)
        return '', 204
    except ServiceError as e:
        return error_response(e, "delete_idea", idea_id=idea_id)


def support_idea(idea_id, token_info=None):  # noqa: E501
    """Support an idea. Repeating the request changes nothing."""
    try:
        user = require_user(token_info)
        user_id = str(user["id"])
        enforce_rate_limit(user_id, "idea_support")
        return record_support(user_id, idea_id), 200
    except ServiceError as e:
        return error_response(e, "support_idea", idea_id=idea_id)


def unsupport_idea(idea_id, token_info=None):  # noqa: E501
    try:
        user = require_user(token_info)
        user_id = str(user["id"])
        enforce_rate_limit(user_id, "idea_support")
        return withdraw_support(user_id, idea_id), 200
    except ServiceError as e:
        return error_response(e, "unsupport_idea", idea_id=idea_id)


def get_idea_amendments(idea_id):  # noqa: E501
    try:
        return ideas.list_amendments(idea_id), 200
    except ServiceError as e:
        return error_response(e, "get_idea_amendments", idea_id=idea_id)


def get_related_ideas(idea_id):  # noqa: E501
    try:
        return ideas.related_ideas(idea_id), 200
    except ServiceError as e:
        return error_response(e, "get_related_ideas", idea_id=idea_id)


def relate_idea(idea_id, body, token_info=None):  # noqa: E501
    """Link two ideas; 201 when the link is new, 200 when it already existed."""
    try:
        user = require_user(token_info)
        user_id = str(user["id"])
        enforce_rate_limit(user_id, "idea_relate")
        related_id = body.get("relatedIdeaId")
        created = ideas.relate_ideas(idea_id, related_id, user_id)
        result = {"ideaId": str(idea_id), "relatedIdeaId": str(related_id), "changed": created}
        return result, 201 if created else 200
    except ServiceError as e:
        return error_response(e, "relate_idea", idea_id=idea_id)

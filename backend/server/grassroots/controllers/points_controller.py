"""Points controller: point totals and badges."""

from grassroots.controllers.helpers.auth import require_user
from grassroots.controllers.helpers.errors import ServiceError, error_response
from grassroots.controllers.helpers.points import list_badges, points_summary


def get_my_points(token_info=None):  # noqa: E501
    try:
        user = require_user(token_info, "guest")
        return points_summary(str(user["id"])), 200
    except ServiceError as e:
        return error_response(e, "get_my_points")


def get_user_points(user_id):  # noqa: E501
    try:
        return points_summary(user_id), 200
    except ServiceError as e:
        return error_response(e, "get_user_points", user_id=user_id)


def get_user_badges(user_id):  # noqa: E501
    """Badges a user holds. Never grants; see refresh_badges_quietly."""
    try:
        return list_badges(user_id), 200
    except ServiceError as e:
        return error_response(e, "get_user_badges", user_id=user_id)

"""Locations controller: hierarchy browsing, location feeds and admin edits."""

from grassroots.controllers.helpers.auth import require_user
from grassroots.controllers.helpers.errors import ServiceError, error_response
from grassroots.controllers.helpers.feed import ideas_visible_at
from grassroots.controllers.helpers.locations import (
    get_location_graph, list_children_of_kind, list_countries, list_provinces,
    province_overview, resolve_location,
)
from grassroots.controllers.helpers import locations
from grassroots.controllers.helpers.points import location_leaderboard


def get_countries():  # noqa: E501
    """List every country."""
    try:
        return list_countries(), 200
    except ServiceError as e:
        return error_response(e, "get_countries")


def get_provinces(country_id):  # noqa: E501
    try:
        return list_provinces(country_id), 200
    except ServiceError as e:
        return error_response(e, "get_provinces", country_id=country_id)


def get_province(province_id):  # noqa: E501
    """A province with its ridings, towns, First Nations and ad-hoc groups."""
    try:
        return province_overview(province_id), 200
    except ServiceError as e:
        return error_response(e, "get_province", province_id=province_id)


def get_province_locations(province_id, kind):  # noqa: E501
    try:
        return list_children_of_kind(province_id, kind), 200
    except ServiceError as e:
        return error_response(e, "get_province_locations", province_id=province_id, kind=kind)


def get_location(kind, location_id):  # noqa: E501
    """A single location with its ancestor chain and direct children."""
    try:
        loc = resolve_location(kind, location_id)
        graph = get_location_graph()
        result = loc.to_dict()
        result["ancestors"] = [
            graph.get(a).to_dict() for a in graph.ancestor_ids(loc.id)[1:]
        ]
        result["children"] = [c.to_dict() for c in graph.get_children(loc.id)]
        return result, 200
    except ServiceError as e:
        return error_response(e, "get_location", kind=kind, location_id=location_id)


def get_location_ideas(kind, location_id, limit=None, cursor=None):  # noqa: E501
    """Ideas posted at the location or anywhere beneath it, most supported first."""
    try:
        loc = resolve_location(kind, location_id)
        return ideas_visible_at(loc.id, limit=limit, cursor=cursor), 200
    except ServiceError as e:
        return error_response(e, "get_location_ideas", location_id=location_id)


def get_location_leaderboard(location_id, limit=None):  # noqa: E501
    try:
        return location_leaderboard(location_id, limit), 200
    except ServiceError as e:
        return error_response(e, "get_location_leaderboard", location_id=location_id)


def create_location(body, token_info=None):  # noqa: E501
    """Admin: add a level-2 location under a province."""
    try:
        require_user(token_info, "admin")
        created = locations.create_location(
            locations.type_from_slug(body.get("kind", "")),
            body.get("parentId"),
            body.get("name"),
            location_id=body.get("id"),
        )
        return created, 201
    except ServiceError as e:
        return error_response(e, "create_location")


def rename_location(location_id, body, token_info=None):  # noqa: E501
    try:
        require_user(token_info, "admin")
        return locations.rename_location(location_id, body.get("name")), 200
    except ServiceError as e:
        return error_response(e, "rename_location", location_id=location_id)

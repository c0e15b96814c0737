"""
Location hierarchy: country -> province -> level-2 locations.

The hierarchy is small, fixed-depth and effectively static, so it is loaded
once into a LocationGraph that precomputes the ancestor closure. Descendant
sets and ancestor chains are then O(1) lookups and feeds can filter ideas
with a single `location_id = ANY(...)` instead of walking the tree in SQL.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Optional

from grassroots.controllers import db, config
from grassroots.controllers.helpers.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

COUNTRY = "country"
PROVINCE = "province"
LEVEL_TWO_TYPES = (
    "federalRiding",
    "provincialRiding",
    "town",
    "firstNation",
    "adhocGroup",
)
LOCATION_TYPES = (COUNTRY, PROVINCE) + LEVEL_TWO_TYPES

# Legal parent type for each kind; the country is the only root.
PARENT_TYPE = {COUNTRY: None, PROVINCE: COUNTRY}
PARENT_TYPE.update({t: PROVINCE for t in LEVEL_TWO_TYPES})

# URL slugs used by the API
LOCATION_TYPE_SLUGS = {
    "countries": COUNTRY,
    "provinces": PROVINCE,
    "federal-ridings": "federalRiding",
    "provincial-ridings": "provincialRiding",
    "towns": "town",
    "first-nations": "firstNation",
    "adhoc-groups": "adhocGroup",
}

# Kinds an admin may add after seeding
CREATABLE_TYPES = LEVEL_TWO_TYPES


@dataclass(frozen=True)
class Location:
    id: str
    location_type: str
    parent_id: Optional[str]
    name: str

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.location_type,
            "parentId": self.parent_id,
            "name": self.name,
        }


def type_from_slug(slug):
    """Map a URL slug ('federal-ridings') to a location type, or raise NotFoundError."""
    location_type = LOCATION_TYPE_SLUGS.get(slug)
    if location_type is None:
        raise NotFoundError(f"Unknown location kind '{slug}'", slug=slug)
    return location_type


class LocationGraph:
    """Immutable, validated view of the whole location tree."""

    def __init__(self, locations):
        self._by_id: Dict[str, Location] = {}
        order = {}
        for position, loc in enumerate(locations):
            if loc.id in self._by_id:
                raise ValidationError(f"Duplicate location id '{loc.id}'")
            self._by_id[loc.id] = loc
            order[loc.id] = position

        for loc in self._by_id.values():
            self._check_parent(loc)

        self._children: Dict[str, List[Location]] = {loc_id: [] for loc_id in self._by_id}
        for loc in self._by_id.values():
            if loc.parent_id is not None:
                self._children[loc.parent_id].append(loc)
        for kids in self._children.values():
            # Sorting is stable, so equal names keep insertion order
            kids.sort(key=lambda l: (l.name.casefold(), order[l.id]))

        self._ancestors: Dict[str, tuple] = {}
        for loc_id in self._by_id:
            chain = []
            current = self._by_id[loc_id]
            while current is not None:
                chain.append(current.id)
                current = self._by_id.get(current.parent_id) if current.parent_id else None
            self._ancestors[loc_id] = tuple(chain)

        closure: Dict[str, set] = {loc_id: set() for loc_id in self._by_id}
        for loc_id, chain in self._ancestors.items():
            for ancestor_id in chain:
                closure[ancestor_id].add(loc_id)
        self._descendants: Dict[str, FrozenSet[str]] = {
            k: frozenset(v) for k, v in closure.items()
        }

    def _check_parent(self, loc):
        if loc.location_type not in PARENT_TYPE:
            raise ValidationError(f"Unknown location type '{loc.location_type}'", location_id=loc.id)
        expected = PARENT_TYPE[loc.location_type]
        if expected is None:
            if loc.parent_id is not None:
                raise ValidationError("A country cannot have a parent", location_id=loc.id)
            return
        parent = self._by_id.get(loc.parent_id) if loc.parent_id else None
        if parent is None:
            raise ValidationError(
                f"{loc.location_type} '{loc.id}' needs an existing {expected} parent",
                location_id=loc.id,
            )
        if parent.location_type != expected:
            raise ValidationError(
                f"{loc.location_type} '{loc.id}' cannot be placed under a {parent.location_type}",
                location_id=loc.id, parent_id=parent.id,
            )

    def __len__(self):
        return len(self._by_id)

    def __contains__(self, location_id):
        return location_id in self._by_id

    def get(self, location_id) -> Location:
        loc = self._by_id.get(location_id)
        if loc is None:
            raise NotFoundError("Location not found", location_id=location_id)
        return loc

    def get_parent(self, location_id) -> Optional[Location]:
        loc = self.get(location_id)
        return self._by_id[loc.parent_id] if loc.parent_id else None

    def get_children(self, location_id, location_type=None) -> List[Location]:
        self.get(location_id)
        kids = self._children[location_id]
        if location_type is None:
            return list(kids)
        return [k for k in kids if k.location_type == location_type]

    def is_descendant(self, candidate_id, ancestor_id) -> bool:
        """True when `candidate_id` lies strictly below `ancestor_id`."""
        self.get(candidate_id)
        self.get(ancestor_id)
        return candidate_id != ancestor_id and candidate_id in self._descendants[ancestor_id]

    def descendant_ids(self, location_id) -> FrozenSet[str]:
        """Ids of the location and everything beneath it."""
        self.get(location_id)
        return self._descendants[location_id]

    def descendants_of(self, location_id):
        return {self._by_id[i] for i in self.descendant_ids(location_id)}

    def ancestor_ids(self, location_id):
        """The location's own id followed by its ancestors, nearest first."""
        self.get(location_id)
        return self._ancestors[location_id]

    def level(self, location_id):
        return len(self.ancestor_ids(location_id)) - 1

    def roots(self) -> List[Location]:
        return sorted(
            (l for l in self._by_id.values() if l.parent_id is None),
            key=lambda l: l.name.casefold(),
        )

    def with_location(self, location):
        """A new graph including `location`; raises ValidationError if it does not fit."""
        return LocationGraph(list(self._by_id.values()) + [location])

    def renamed(self, location_id, name):
        loc = self.get(location_id)
        updated = Location(loc.id, loc.location_type, loc.parent_id, name)
        return LocationGraph([updated if l.id == location_id else l for l in self._by_id.values()])


# ---------------------------------------------------------------------------
# Process-wide cached graph
# ---------------------------------------------------------------------------

_graph_lock = threading.Lock()
_graph: Optional[LocationGraph] = None
_graph_loaded_at = 0.0


def load_location_graph():
    rows = db.execute_query("""
        SELECT id, location_type, parent_location_id, name
        FROM location
        ORDER BY created_time, id
    """, raise_on_error=True)
    return LocationGraph([
        Location(str(r["id"]), r["location_type"],
                 str(r["parent_location_id"]) if r["parent_location_id"] else None,
                 r["name"])
        for r in (rows or [])
    ])


def get_location_graph():
    """Return the cached graph, reloading it after LOCATION_GRAPH_TTL seconds."""
    global _graph, _graph_loaded_at
    with _graph_lock:
        if _graph is None or time.monotonic() - _graph_loaded_at > config.LOCATION_GRAPH_TTL:
            _graph = load_location_graph()
            _graph_loaded_at = time.monotonic()
            logger.info("Loaded location graph (%d locations)", len(_graph))
        return _graph


def invalidate_location_graph():
    global _graph
    with _graph_lock:
        _graph = None


# ---------------------------------------------------------------------------
# Read helpers used by the controllers
# ---------------------------------------------------------------------------

def resolve_location(slug, location_id) -> Location:
    """Look up a location addressed as /{slug}/{id}; the kind must match."""
    location_type = type_from_slug(slug)
    loc = get_location_graph().get(location_id)
    if loc.location_type != location_type:
        raise NotFoundError("Location not found", location_id=location_id, slug=slug)
    return loc


def list_countries():
    return [c.to_dict() for c in get_location_graph().roots()]


def list_provinces(country_id):
    graph = get_location_graph()
    if graph.get(country_id).location_type != COUNTRY:
        raise NotFoundError("Country not found", location_id=country_id)
    return [p.to_dict() for p in graph.get_children(country_id, PROVINCE)]


def list_children_of_kind(province_id, slug):
    graph = get_location_graph()
    if graph.get(province_id).location_type != PROVINCE:
        raise NotFoundError("Province not found", location_id=province_id)
    location_type = type_from_slug(slug)
    if location_type not in LEVEL_TWO_TYPES:
        raise ValidationError(f"'{slug}' is not a level-2 location kind")
    return [loc.to_dict() for loc in graph.get_children(province_id, location_type)]


def province_overview(province_id):
    """A province with its level-2 locations grouped by kind."""
    graph = get_location_graph()
    province = graph.get(province_id)
    if province.location_type != PROVINCE:
        raise NotFoundError("Province not found", location_id=province_id)
    overview = province.to_dict()
    for location_type in LEVEL_TWO_TYPES:
        overview[location_type + "s"] = [
            loc.to_dict() for loc in graph.get_children(province_id, location_type)
        ]
    return overview


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------

def create_location(location_type, parent_id, name, location_id=None):
    """Add a level-2 location under a province.

    The candidate is validated against the full graph before it is written.
    """
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required")
    if len(name) > 200:
        raise ValidationError("Name must be 200 characters or less")
    if location_type not in CREATABLE_TYPES:
        raise ValidationError(f"Locations of type '{location_type}' cannot be created here")

    location = Location(location_id or str(uuid.uuid4()), location_type, parent_id, name)
    get_location_graph().with_location(location)

    db.execute_query("""
        INSERT INTO location (id, location_type, parent_location_id, name)
        VALUES (%s, %s, %s, %s)
    """, (location.id, location.location_type, location.parent_id, location.name),
        raise_on_error=True)
    invalidate_location_graph()
    logger.info("Created %s %s under %s", location_type, location.id, parent_id)
    return location.to_dict()


def rename_location(location_id, name):
    name = (name or "").strip()
    if not name:
        raise ValidationError("Name is required")
    get_location_graph().renamed(location_id, name)
    db.execute_query(
        "UPDATE location SET name = %s WHERE id = %s",
        (name, location_id), raise_on_error=True,
    )
    invalidate_location_graph()
    return get_location_graph().get(location_id).to_dict()

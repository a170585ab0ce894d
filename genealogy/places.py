from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from flask import url_for

from .db import db_connect, split_place_name

logger = logging.getLogger(__name__)

# Longest place name (in components) we are prepared to walk.
MAX_PLACE_DEPTH = 32

WORLD_BOUNDS = [[-90.0, -180.0], [90.0, 180.0]]

# SQLite INTEGER range
MIN_ROW_ID = -(2**63)
MAX_ROW_ID = 2**63 - 1


def world_bounds() -> list[list[float]]:
    return [list(corner) for corner in WORLD_BOUNDS]


class PlaceHierarchyError(RuntimeError):
    """A place hierarchy walk did not terminate within MAX_PLACE_DEPTH steps."""


@dataclass(frozen=True)
class Tree:
    id: int
    name: str
    title: str


def find_tree(name: str) -> Optional[Tree]:
    with db_connect() as con:
        row = con.execute(
            "SELECT id, name, title FROM trees WHERE name = ?",
            ((name or "").strip().lower(),),
        ).fetchone()
    if not row:
        return None
    return Tree(id=int(row["id"]), name=row["name"], title=row["title"])


def all_trees() -> list[Tree]:
    with db_connect() as con:
        rows = con.execute("SELECT id, name, title FROM trees ORDER BY name").fetchall()
    return [Tree(id=int(r["id"]), name=r["name"], title=r["title"]) for r in rows]


def _checked_parts(name: str) -> list[str]:
    parts = split_place_name(name)
    if len(parts) > MAX_PLACE_DEPTH:
        raise PlaceHierarchyError(f"Place name has more than {MAX_PLACE_DEPTH} components: {name!r}")
    return parts


# -----------------------------
# PLACE
# -----------------------------
class Place:
    """
    A place within one tree, named by its full hierarchy ("Town, County, Country").
    The empty name is the world: the root above every top-level place.
    """

    def __init__(self, gedcom_name: str, tree: Tree):
        self.tree = tree
        self._parts = _checked_parts(gedcom_name)
        self._id: int | None = None

    @classmethod
    def find(cls, place_id: int, tree: Tree) -> "Place":
        """Load a place by id. Unknown ids give the world place (id 0)."""
        parts: list[str] = []
        current = int(place_id)
        if not MIN_ROW_ID <= current <= MAX_ROW_ID:
            return cls("", tree)

        with db_connect() as con:
            while current != 0:
                if len(parts) >= MAX_PLACE_DEPTH:
                    logger.warning("Place %d in tree %s: parent chain too deep", place_id, tree.name)
                    raise PlaceHierarchyError(f"Parent chain of place {place_id} is too deep")
                row = con.execute(
                    "SELECT p_place, p_parent_id FROM places WHERE p_id = ? AND p_file = ?",
                    (current, tree.id),
                ).fetchone()
                if not row:
                    return cls("", tree)
                parts.append(row["p_place"])
                current = int(row["p_parent_id"])

        place = cls(", ".join(parts), tree)
        place._id = int(place_id) if parts else 0
        return place

    def gedcom_name(self) -> str:
        return ", ".join(self._parts)

    def place_name(self) -> str:
        return self._parts[0] if self._parts else ""

    def id(self) -> int:
        if self._id is None:
            self._id = self._lookup_id()
        return self._id

    def _lookup_id(self) -> int:
        place_id = 0
        with db_connect() as con:
            for part in reversed(self._parts):
                row = con.execute(
                    "SELECT p_id FROM places WHERE p_parent_id = ? AND p_file = ? AND p_place = ?",
                    (place_id, self.tree.id, part),
                ).fetchone()
                if not row:
                    return 0
                place_id = int(row["p_id"])
        return place_id

    def parent(self) -> "Place":
        return Place(", ".join(self._parts[1:]), self.tree)

    def child_places(self) -> list["Place"]:
        place_id = self.id()
        if place_id == 0 and self._parts:
            return []

        with db_connect() as con:
            rows = con.execute(
                """
                SELECT p_id, p_place FROM places
                WHERE p_parent_id = ? AND p_file = ?
                ORDER BY p_place COLLATE NOCASE
                """,
                (place_id, self.tree.id),
            ).fetchall()

        children = []
        for r in rows:
            child = Place(", ".join([r["p_place"], *self._parts]), self.tree)
            child._id = int(r["p_id"])
            children.append(child)
        return children

    def url(self) -> str:
        return url_for("place_list", tree_name=self.tree.name, place_id=self.id())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Place):
            return NotImplemented
        return self.tree == other.tree and self._parts == other._parts

    def __hash__(self) -> int:
        return hash((self.tree.id, tuple(self._parts)))

    def __repr__(self) -> str:
        return f"Place({self.gedcom_name()!r}, tree={self.tree.name!r})"


# -----------------------------
# GEOCODING
# -----------------------------
class PlaceLocation:
    """
    Coordinates for a place name, looked up in the shared place_location gazetteer.
    Unknown or ungeocoded names have no latitude/longitude.
    """

    def __init__(self, location_name: str):
        self._parts = _checked_parts(location_name)
        self._row: dict | None = None
        self._loaded = False

    def location_name(self) -> str:
        return ", ".join(self._parts)

    def parent(self) -> "PlaceLocation":
        return PlaceLocation(", ".join(self._parts[1:]))

    def _details(self) -> dict | None:
        if self._loaded:
            return self._row

        self._loaded = True
        if not self._parts:
            self._row = {"id": 0, "latitude": None, "longitude": None}
            return self._row

        location_id = 0
        row = None
        with db_connect() as con:
            for part in reversed(self._parts):
                row = con.execute(
                    "SELECT id, latitude, longitude FROM place_location WHERE parent_id = ? AND place = ?",
                    (location_id, part),
                ).fetchone()
                if not row:
                    return None
                location_id = int(row["id"])

        self._row = dict(row) if row else None
        return self._row

    def id(self) -> int | None:
        details = self._details()
        return None if details is None else int(details["id"])

    def latitude(self) -> float | None:
        details = self._details()
        if details is None or details["latitude"] is None:
            return None
        return float(details["latitude"])

    def longitude(self) -> float | None:
        details = self._details()
        if details is None or details["longitude"] is None:
            return None
        return float(details["longitude"])

    def bounding_rectangle(self) -> list[list[float]]:
        """
        [[min_lat, min_lng], [max_lat, max_lng]] over this location's geocoded
        children, else its own point, else the parent's rectangle.
        """
        location_id = self.id()
        if location_id is None:
            return self.parent().bounding_rectangle() if self._parts else world_bounds()

        with db_connect() as con:
            row = con.execute(
                """
                SELECT MIN(latitude) AS min_lat, MIN(longitude) AS min_lng,
                       MAX(latitude) AS max_lat, MAX(longitude) AS max_lng
                FROM place_location
                WHERE parent_id = ? AND latitude IS NOT NULL AND longitude IS NOT NULL
                """,
                (location_id,),
            ).fetchone()

        if row["min_lat"] is None:
            latitude = self.latitude()
            longitude = self.longitude()
            if latitude is None or longitude is None:
                return self.parent().bounding_rectangle() if self._parts else world_bounds()
            return [[latitude, longitude], [latitude, longitude]]

        return [
            [float(row["min_lat"]), float(row["min_lng"])],
            [float(row["max_lat"]), float(row["max_lng"])],
        ]

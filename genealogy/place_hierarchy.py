from __future__ import annotations

"""
Place hierarchy list: browse the places of a tree as a list, as a
drill-down hierarchy, or on a map.

Views (query string action2):
    list         every place in the tree, alphabetically, in columns
    hierarchy    children of the current place (default)
    hierarchy-e  children plus the individuals/families at the place

The map replaces the hierarchy columns when a map provider is configured.
"""

import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple, TypeVar, Union
from urllib.parse import urlencode

from flask import render_template, url_for

from .db import db_connect
from .places import MAX_PLACE_DEPTH, Place, PlaceHierarchyError, PlaceLocation, Tree
from .services import SearchService, Statistics

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A dict, or (key, value) pairs when a key repeats
QueryParameters = Union[Dict[str, Any], Iterable[Tuple[str, Any]]]

ACCESS_PUBLIC = "public"
ACCESS_USER = "user"

DEFAULT_TILE_URL = "https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png"
DEFAULT_TILE_ATTRIBUTION = (
    '<a href="https://www.openstreetmap.org/copyright">&copy; OpenStreetMap</a> contributors'
)


class ListModule(Protocol):
    """What the site menus need from any list page (places, individuals, ...)."""

    def title(self) -> str: ...

    def description(self) -> str: ...

    def list_menu_class(self) -> str: ...

    def list_url(self, tree: Tree, parameters: Optional[QueryParameters] = None) -> str: ...

    def list_url_attributes(self) -> Dict[str, str]: ...

    def list_is_empty(self, tree: Tree) -> bool: ...


# -----------------------------
# HELPERS
# -----------------------------
def chunk_columns(items: Sequence[T]) -> List[List[T]]:
    """
    Split items into 2 columns (up to 20 items) or 3 (more than 20).
    No items -> no columns. Trailing columns may be empty.
    """
    count = len(items)
    if count == 0:
        return []

    columns = 3 if count > 20 else 2
    size = math.ceil(count / columns)
    return [list(items[i * size:(i + 1) * size]) for i in range(columns)]


def breadcrumbs(place: Place, max_depth: int = MAX_PLACE_DEPTH) -> Tuple[List[Place], Optional[Place]]:
    """
    (ancestors root-first, current place). The world has neither.
    """
    if place.gedcom_name() == "":
        return [], None

    trail = [place]
    parent = place.parent()
    while parent.gedcom_name() != "":
        if len(trail) >= max_depth:
            raise PlaceHierarchyError(f"{place!r}: parent chain longer than {max_depth}")
        trail.append(parent)
        parent = parent.parent()

    trail.reverse()
    current = trail.pop()
    return trail, current


# -----------------------------
# MODULE
# -----------------------------
class PlaceHierarchyList:
    def __init__(
        self,
        search_service: SearchService,
        map_provider: str = "",
        tile_url: str = DEFAULT_TILE_URL,
        access_level: str = ACCESS_USER,
    ):
        self.search_service = search_service
        self.map_provider = (map_provider or "").strip()
        self.tile_url = tile_url or DEFAULT_TILE_URL
        self.access_level = access_level if access_level in (ACCESS_PUBLIC, ACCESS_USER) else ACCESS_USER

    def title(self) -> str:
        return "Place hierarchy"

    def description(self) -> str:
        return "The place hierarchy."

    def list_menu_class(self) -> str:
        return "menu-list-plac"

    def list_url(self, tree: Tree, parameters: Optional[QueryParameters] = None) -> str:
        url = url_for("place_list", tree_name=tree.name)
        if isinstance(parameters, dict):
            pairs = list(parameters.items())
        else:
            pairs = list(parameters or [])
        return f"{url}?{urlencode(pairs)}" if pairs else url

    def list_url_attributes(self) -> Dict[str, str]:
        return {}

    def list_is_empty(self, tree: Tree) -> bool:
        with db_connect() as con:
            row = con.execute("SELECT 1 FROM places WHERE p_file = ? LIMIT 1", (tree.id,)).fetchone()
        return row is None

    def requires_login(self) -> bool:
        return self.access_level == ACCESS_USER

    def provider(self) -> Dict[str, Any]:
        return {
            "name": self.map_provider,
            "url": self.tile_url,
            "options": {
                "attribution": DEFAULT_TILE_ATTRIBUTION,
                "max_zoom": 19,
            },
        }

    # -----------------------------
    # VIEW DATA
    # -----------------------------
    def get_list(self, tree: Tree) -> List[List[Place]]:
        places = sorted(self.search_service.search_places(tree, ""), key=lambda p: p.gedcom_name())
        return chunk_columns(places)

    def get_hierarchy(self, place: Place) -> Optional[Dict[str, Any]]:
        """Column data for the children of place, or None when it has none."""
        columns = chunk_columns(place.child_places())
        if not columns:
            return None

        return {
            "tree": place.tree,
            "col_class": "w-25" if len(columns) == 2 else "w-50",
            "columns": columns,
            "place": place,
        }

    def map_data(self, tree: Tree, place: Place) -> Dict[str, Any]:
        places = place.child_places()
        show_link = True

        if not places:
            places = [place]
            show_link = False

        statistics = Statistics(tree)
        features = []
        sidebar = ""

        for index, child in enumerate(places):
            location = PlaceLocation(child.gedcom_name())
            latitude = location.latitude()
            longitude = location.longitude()

            if latitude is None or longitude is None:
                sidebar_class = "unmapped"
            else:
                sidebar_class = "mapped"
                features.append(
                    {
                        "type": "Feature",
                        "id": index,
                        "geometry": {
                            "type": "Point",
                            "coordinates": [longitude, latitude],
                        },
                        "properties": {
                            "tooltip": child.gedcom_name(),
                            "popup": render_template(
                                "place_hierarchy/popup.html",
                                showlink=show_link,
                                place=child,
                                latitude=latitude,
                                longitude=longitude,
                            ),
                        },
                    }
                )

            stats = {}
            for record_type in ("INDI", "FAM"):
                rows = statistics.stats_places(record_type, "", child.id())
                stats[record_type] = rows[0]["tot"] if rows else 0

            sidebar += render_template(
                "place_hierarchy/sidebar.html",
                showlink=show_link,
                id=index,
                place=child,
                sidebar_class=sidebar_class,
                stats=stats,
            )

        return {
            "bounds": PlaceLocation(place.gedcom_name()).bounding_rectangle(),
            "sidebar": sidebar,
            "markers": {
                "type": "FeatureCollection",
                "features": features,
            },
        }

    def page_data(self, tree: Tree, action2: str, place: Place) -> Dict[str, Any]:
        """View-model for place_hierarchy/page.html."""
        place_id = place.id()
        show_map = self.map_provider != ""
        content = ""
        data = None

        if show_map:
            content += render_template(
                "place_hierarchy/map.html",
                data=self.map_data(tree, place),
                provider=self.provider(),
            )

        if action2 in ("hierarchy", "hierarchy-e"):
            alt_link = "Show all places in a list"
            alt_url = self.list_url(tree, {"action2": "list", "place_id": 0})
            data = self.get_hierarchy(place)
            if data is not None and not show_map:
                content += render_template("place_hierarchy/hierarchy.html", **data)
            if data is None or action2 == "hierarchy-e":
                content += render_template(
                    "place_hierarchy/events.html",
                    indilist=self.search_service.search_individuals_in_place(place),
                    famlist=self.search_service.search_families_in_place(place),
                    tree=place.tree,
                )
        else:
            alt_link = "Show place hierarchy"
            alt_url = self.list_url(tree, {"action2": "hierarchy", "place_id": place_id})
            content += render_template("place_hierarchy/list.html", columns=self.get_list(tree))

        if data is not None and action2 != "hierarchy-e" and place.gedcom_name() != "":
            events_link = self.list_url(tree, {"action2": "hierarchy-e", "place_id": place_id})
        else:
            events_link = ""

        trail, current = breadcrumbs(place)

        return {
            "alt_link": alt_link,
            "alt_url": alt_url,
            "breadcrumbs": trail,
            "content": content,
            "current": current,
            "events_link": events_link,
            "place": place,
            "title": self.title(),
            "tree": tree,
            "world_url": self.list_url(tree),
        }

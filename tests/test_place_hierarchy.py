# tests/test_place_hierarchy.py

from __future__ import annotations

import pytest

from genealogy import db
from genealogy.place_hierarchy import PlaceHierarchyList
from genealogy.places import Place, find_tree
from genealogy.services import SearchService


@pytest.fixture
def module() -> PlaceHierarchyList:
    return PlaceHierarchyList(SearchService())


def test_map_data_marks_only_geocoded_children(flask_app, module) -> None:
    db.import_tree({
        "name": "land",
        "individuals": [
            {"xref": "I1", "name": "A", "facts": [{"tag": "BIRT", "place": "Alpha, Land"}]},
            {"xref": "I2", "name": "B", "facts": [{"tag": "BIRT", "place": "Beta, Land"}]},
        ],
        "locations": [{"place": "Alpha, Land", "latitude": 10, "longitude": 20}],
    })
    tree = find_tree("land")

    with flask_app.test_request_context():
        data = module.map_data(tree, Place("Land", tree))

    features = data["markers"]["features"]
    assert data["markers"]["type"] == "FeatureCollection"
    assert len(features) == 1
    assert features[0]["id"] == 0
    assert features[0]["geometry"] == {"type": "Point", "coordinates": [20.0, 10.0]}
    assert features[0]["properties"]["tooltip"] == "Alpha, Land"
    assert data["sidebar"].count('class="mapped"') == 1
    assert data["sidebar"].count('class="unmapped"') == 1


def test_map_data_counts_records_per_child(flask_app, module, tree) -> None:
    with flask_app.test_request_context():
        data = module.map_data(tree, Place("Somerset, England", tree))

    assert "Individuals: 2, Families: 1" in data["sidebar"]  # Bath
    assert "Individuals: 1, Families: 0" in data["sidebar"]  # Wells
    assert data["bounds"] == [[51.3811, -2.359], [51.3811, -2.359]]


def test_map_data_for_leaf_maps_the_place_itself_without_links(flask_app, module, tree) -> None:
    with flask_app.test_request_context():
        data = module.map_data(tree, Place("Bath, Somerset, England", tree))

    features = data["markers"]["features"]
    assert len(features) == 1
    assert features[0]["properties"]["tooltip"] == "Bath, Somerset, England"
    assert "href" not in features[0]["properties"]["popup"]
    assert "href" not in data["sidebar"]


def test_hierarchy_column_class(tree, module) -> None:
    data = module.get_hierarchy(Place("England", tree))
    assert data is not None
    assert data["col_class"] == "w-25"
    assert [[p.place_name() for p in column] for column in data["columns"]] == [["London"], ["Somerset"]]

    assert module.get_hierarchy(Place("Bath, Somerset, England", tree)) is None


def test_list_is_alphabetical(tree, module) -> None:
    columns = module.get_list(tree)
    names = [p.gedcom_name() for column in columns for p in column]
    assert names == sorted(names)
    assert len(columns) == 2


def test_list_is_empty(tree, module) -> None:
    assert module.list_is_empty(tree) is False
    db.import_tree({"name": "bare"})
    assert module.list_is_empty(find_tree("bare")) is True


def test_page_data_for_intermediate_place(flask_app, module, tree, place_id) -> None:
    somerset = Place.find(place_id("Somerset, England"), tree)

    with flask_app.test_request_context():
        model = module.page_data(tree, "hierarchy", somerset)

    assert [p.gedcom_name() for p in model["breadcrumbs"]] == ["England"]
    assert model["current"] == somerset
    assert model["alt_link"] == "Show all places in a list"
    assert "action2=list" in model["alt_url"]
    assert "action2=hierarchy-e" in model["events_link"]
    assert 'class="place-hierarchy' in model["content"]
    assert "place-events" not in model["content"]
    assert model["world_url"] == "/tree/fam/place-list"


def test_page_data_hierarchy_e_adds_events(flask_app, module, tree, place_id) -> None:
    somerset = Place.find(place_id("Somerset, England"), tree)

    with flask_app.test_request_context():
        model = module.page_data(tree, "hierarchy-e", somerset)

    assert 'class="place-hierarchy' in model["content"]
    assert "place-events" in model["content"]
    assert model["events_link"] == ""


def test_page_data_for_world_has_no_events_link(flask_app, module, tree) -> None:
    with flask_app.test_request_context():
        model = module.page_data(tree, "hierarchy", Place("", tree))

    assert model["breadcrumbs"] == []
    assert model["current"] is None
    assert model["events_link"] == ""


def test_page_data_with_map_hides_hierarchy_columns(flask_app, tree, place_id) -> None:
    module = PlaceHierarchyList(SearchService(), map_provider="openstreetmap")
    england = Place.find(place_id("England"), tree)

    with flask_app.test_request_context():
        model = module.page_data(tree, "hierarchy", england)

    assert 'id="place-map"' in model["content"]
    assert 'class="place-hierarchy' not in model["content"]
    assert model["events_link"] != ""


def test_unknown_access_level_falls_back_to_members_only() -> None:
    assert PlaceHierarchyList(SearchService(), access_level="everyone").requires_login()
    assert not PlaceHierarchyList(SearchService(), access_level="public").requires_login()

# tests/test_breadcrumbs.py

from __future__ import annotations

import pytest

from genealogy.place_hierarchy import breadcrumbs
from genealogy.places import Place, PlaceHierarchyError, Tree

TREE = Tree(id=1, name="fam", title="Test family")


def test_world_has_no_breadcrumbs() -> None:
    assert breadcrumbs(Place("", TREE)) == ([], None)


def test_breadcrumbs_are_root_first() -> None:
    trail, current = breadcrumbs(Place("Town, County, Country", TREE))

    assert [p.gedcom_name() for p in trail] == ["Country", "County, Country"]
    assert [p.place_name() for p in trail] == ["Country", "County"]
    assert current == Place("Town, County, Country", TREE)


def test_top_level_place_has_empty_trail() -> None:
    trail, current = breadcrumbs(Place("Country", TREE))
    assert trail == []
    assert current is not None and current.gedcom_name() == "Country"


class LoopingPlace:
    """A broken place whose parent is always itself."""

    def gedcom_name(self) -> str:
        return "Nowhere"

    def parent(self) -> "LoopingPlace":
        return self


def test_cyclic_parent_chain_fails() -> None:
    with pytest.raises(PlaceHierarchyError):
        breadcrumbs(LoopingPlace(), max_depth=10)  # type: ignore[arg-type]


def test_overlong_place_name_is_rejected() -> None:
    name = ", ".join(f"Level {i}" for i in range(40))
    with pytest.raises(PlaceHierarchyError):
        Place(name, TREE)

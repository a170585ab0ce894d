import os
import sys
import tempfile
from pathlib import Path

# Ensure the project root is on sys.path for test imports
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# app.py creates and seeds its database on import; keep that out of the repo
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="place-hierarchy-"))
os.environ.setdefault("LINEAGE_SECRET", "test-secret")

import pytest

from genealogy import db
from genealogy.places import Place, find_tree

FAMILY_TREE = {
    "name": "fam",
    "title": "Test family",
    "individuals": [
        {"xref": "I1", "name": "John Smith", "sex": "M",
         "facts": [{"tag": "BIRT", "place": "Camden, London, England"},
                   {"tag": "DEAT", "place": "Bath, Somerset, England"}]},
        {"xref": "I2", "name": "Mary Jones", "sex": "F",
         "facts": [{"tag": "BIRT", "place": "Cardiff, Glamorgan, Wales"}]},
        {"xref": "I3", "name": "William Smith", "sex": "M",
         "facts": [{"tag": "BIRT", "place": "Bath, Somerset, England"}]},
        {"xref": "I4", "name": "Anne Smith", "sex": "F",
         "facts": [{"tag": "BIRT", "place": "Wells, Somerset, England"}]},
    ],
    "families": [
        {"xref": "F1", "husband": "I1", "wife": "I2",
         "facts": [{"tag": "MARR", "place": "Bath, Somerset, England"}]},
    ],
    "locations": [
        {"place": "England", "latitude": 52.5, "longitude": -1.5},
        {"place": "London, England", "latitude": 51.5072, "longitude": -0.1276},
        {"place": "Somerset, England", "latitude": 51.1, "longitude": -2.9},
        {"place": "Bath, Somerset, England", "latitude": 51.3811, "longitude": -2.359},
    ],
}


@pytest.fixture(autouse=True)
def data_dir(tmp_path, monkeypatch):
    """Every test gets its own empty database."""
    monkeypatch.setattr(db, "DATA_DIR", tmp_path)
    db.db_init()
    return tmp_path


@pytest.fixture
def tree():
    db.import_tree(FAMILY_TREE)
    return find_tree("fam")


@pytest.fixture
def place_id(tree):
    def lookup(name: str) -> int:
        return Place(name, tree).id()

    return lookup


@pytest.fixture
def flask_app(monkeypatch):
    from app import app

    monkeypatch.setitem(app.config, "TESTING", True)
    monkeypatch.setitem(app.config, "MAP_PROVIDER", "")
    monkeypatch.setitem(app.config, "PLACE_LIST_ACCESS", "public")
    return app


@pytest.fixture
def client(flask_app):
    return flask_app.test_client()

from __future__ import annotations

"""
Storage for trees, places, records and the geocoding gazetteer.

- SQLite under DATA_DIR (env DATA_DIR, default ./data)
- Schema created on import, safe to re-run
- Sample trees shipped as ./data/samples/*.json are imported on boot
  when no tree of that name exists yet

Sample / import payload:
    {
      "name": "demo",
      "title": "Demo tree",
      "individuals": [{"xref": "I1", "name": "...", "sex": "M",
                       "facts": [{"tag": "BIRT", "place": "Town, County, Country"}]}],
      "families": [{"xref": "F1", "husband": "I1", "wife": "I2",
                    "facts": [{"tag": "MARR", "place": "..."}]}],
      "locations": [{"place": "Town, County, Country",
                     "latitude": 51.5, "longitude": -0.1}]
    }
"""

import json
import logging
import os
import sqlite3
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

# -----------------------------
# PATHS / STORAGE
# -----------------------------
APP_DIR = Path(__file__).resolve().parent.parent

DATA_DIR_ENV = os.environ.get("DATA_DIR", "data")
DATA_DIR = Path(DATA_DIR_ENV)
if not DATA_DIR.is_absolute():
    DATA_DIR = APP_DIR / DATA_DIR


def genealogy_db_path() -> Path:
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return DATA_DIR / "genealogy.db"


def db_connect() -> sqlite3.Connection:
    con = sqlite3.connect(genealogy_db_path())
    con.row_factory = sqlite3.Row
    return con


def require_lastrowid(cur: sqlite3.Cursor) -> int:
    rid = cur.lastrowid
    if rid is None:
        raise RuntimeError("Insert failed: lastrowid is None")
    return int(rid)


def db_init() -> None:
    with db_connect() as con:
        con.executescript(
            """
            CREATE TABLE IF NOT EXISTS trees (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              name TEXT NOT NULL UNIQUE,
              title TEXT NOT NULL DEFAULT ''
            );

            CREATE TABLE IF NOT EXISTS places (
              p_id INTEGER PRIMARY KEY AUTOINCREMENT,
              p_place TEXT NOT NULL,
              p_parent_id INTEGER NOT NULL DEFAULT 0,
              p_file INTEGER NOT NULL,
              UNIQUE (p_parent_id, p_file, p_place)
            );

            CREATE TABLE IF NOT EXISTS placelinks (
              pl_p_id INTEGER NOT NULL,
              pl_gid TEXT NOT NULL,
              pl_file INTEGER NOT NULL,
              pl_fact TEXT NOT NULL DEFAULT '',
              PRIMARY KEY (pl_p_id, pl_gid, pl_file, pl_fact)
            );

            CREATE TABLE IF NOT EXISTS individuals (
              i_id TEXT NOT NULL,
              i_file INTEGER NOT NULL,
              i_name TEXT NOT NULL DEFAULT '',
              i_sex TEXT NOT NULL DEFAULT 'U',
              PRIMARY KEY (i_id, i_file)
            );

            CREATE TABLE IF NOT EXISTS families (
              f_id TEXT NOT NULL,
              f_file INTEGER NOT NULL,
              f_husb TEXT NOT NULL DEFAULT '',
              f_wife TEXT NOT NULL DEFAULT '',
              PRIMARY KEY (f_id, f_file)
            );

            CREATE TABLE IF NOT EXISTS place_location (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              parent_id INTEGER NOT NULL DEFAULT 0,
              place TEXT NOT NULL,
              latitude REAL,
              longitude REAL,
              UNIQUE (parent_id, place)
            );

            CREATE TABLE IF NOT EXISTS users (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              email TEXT NOT NULL UNIQUE,
              password_hash TEXT NOT NULL,
              created_at TEXT NOT NULL DEFAULT (datetime('now'))
            );
            """
        )
        con.commit()


# -----------------------------
# IMPORT
# -----------------------------
def split_place_name(name: str) -> list[str]:
    """'Town, County, Country' -> ['Town', 'County', 'Country'] (blank parts dropped)."""
    return [part.strip() for part in (name or "").split(",") if part.strip()]


def ensure_place(con: sqlite3.Connection, tree_id: int, name: str) -> int:
    """
    Store every component of a hierarchical place name, country first.
    Returns the id of the leftmost component, or 0 for an empty name.
    """
    parent_id = 0
    for part in reversed(split_place_name(name)):
        row = con.execute(
            "SELECT p_id FROM places WHERE p_parent_id = ? AND p_file = ? AND p_place = ?",
            (parent_id, tree_id, part),
        ).fetchone()
        if row:
            parent_id = int(row["p_id"])
            continue
        cur = con.execute(
            "INSERT INTO places (p_place, p_parent_id, p_file) VALUES (?, ?, ?)",
            (part, parent_id, tree_id),
        )
        parent_id = require_lastrowid(cur)
    return parent_id


def ensure_location(
    con: sqlite3.Connection,
    name: str,
    latitude: float | None = None,
    longitude: float | None = None,
) -> int:
    """Same walk as ensure_place, on the shared gazetteer. Coordinates go on the leaf only."""
    parts = list(reversed(split_place_name(name)))
    parent_id = 0
    for depth, part in enumerate(parts):
        row = con.execute(
            "SELECT id FROM place_location WHERE parent_id = ? AND place = ?",
            (parent_id, part),
        ).fetchone()
        if row:
            parent_id = int(row["id"])
        else:
            cur = con.execute(
                "INSERT INTO place_location (parent_id, place) VALUES (?, ?)",
                (parent_id, part),
            )
            parent_id = require_lastrowid(cur)

        if depth == len(parts) - 1 and latitude is not None and longitude is not None:
            con.execute(
                "UPDATE place_location SET latitude = ?, longitude = ? WHERE id = ?",
                (float(latitude), float(longitude), parent_id),
            )
    return parent_id


def _link_facts(con: sqlite3.Connection, tree_id: int, xref: str, facts: Any) -> None:
    if not isinstance(facts, list):
        return
    for fact in facts:
        if not isinstance(fact, dict):
            continue
        place_id = ensure_place(con, tree_id, str(fact.get("place") or ""))
        if place_id == 0:
            continue
        con.execute(
            "INSERT OR IGNORE INTO placelinks (pl_p_id, pl_gid, pl_file, pl_fact) VALUES (?, ?, ?, ?)",
            (place_id, xref, tree_id, str(fact.get("tag") or "").upper()),
        )


def import_tree(payload: Dict[str, Any]) -> int:
    """Import one tree payload (see module docstring). Returns the new tree id."""
    name = str(payload.get("name") or "").strip().lower()
    if not name:
        raise ValueError("Tree payload has no name.")

    with db_connect() as con:
        cur = con.execute(
            "INSERT INTO trees (name, title) VALUES (?, ?)",
            (name, str(payload.get("title") or name)),
        )
        tree_id = require_lastrowid(cur)

        for indi in payload.get("individuals") or []:
            xref = str(indi.get("xref") or "")
            if not xref:
                continue
            con.execute(
                "INSERT INTO individuals (i_id, i_file, i_name, i_sex) VALUES (?, ?, ?, ?)",
                (xref, tree_id, str(indi.get("name") or ""), str(indi.get("sex") or "U")),
            )
            _link_facts(con, tree_id, xref, indi.get("facts"))

        for fam in payload.get("families") or []:
            xref = str(fam.get("xref") or "")
            if not xref:
                continue
            con.execute(
                "INSERT INTO families (f_id, f_file, f_husb, f_wife) VALUES (?, ?, ?, ?)",
                (xref, tree_id, str(fam.get("husband") or ""), str(fam.get("wife") or "")),
            )
            _link_facts(con, tree_id, xref, fam.get("facts"))

        for loc in payload.get("locations") or []:
            ensure_location(con, str(loc.get("place") or ""), loc.get("latitude"), loc.get("longitude"))

        con.commit()

    logger.info("Imported tree %r as id %d", name, tree_id)
    return tree_id


# -----------------------------
# SAMPLES (built-in demo trees)
# -----------------------------
def samples_repo_dir() -> Path:
    return APP_DIR / "data" / "samples"


def seed_samples_if_missing() -> None:
    """Import every shipped sample tree whose name is not in the database yet."""
    repo = samples_repo_dir()
    if not repo.exists():
        return

    with db_connect() as con:
        existing = {r["name"] for r in con.execute("SELECT name FROM trees").fetchall()}

    for src in sorted(repo.glob("*.json")):
        payload = json.loads(src.read_text(encoding="utf-8"))
        payload.setdefault("name", src.stem)
        if str(payload["name"]).strip().lower() in existing:
            continue
        import_tree(payload)
        logger.info("Seeded sample tree from %s", src.name)

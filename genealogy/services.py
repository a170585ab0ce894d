from __future__ import annotations

from typing import Any, Dict, List

from .db import db_connect
from .places import MAX_PLACE_DEPTH, Place, PlaceHierarchyError, Tree


class SearchService:
    """Place and record lookups scoped to one tree."""

    def search_places(self, tree: Tree, search: str = "") -> List[Place]:
        with db_connect() as con:
            rows = con.execute(
                "SELECT p_id, p_place, p_parent_id FROM places WHERE p_file = ?",
                (tree.id,),
            ).fetchall()

        by_id = {int(r["p_id"]): r for r in rows}
        needle = (search or "").strip().lower()

        places: list[Place] = []
        for place_id in by_id:
            parts: list[str] = []
            current = place_id
            while current in by_id:
                if len(parts) >= MAX_PLACE_DEPTH:
                    raise PlaceHierarchyError(f"Parent chain of place {place_id} is too deep")
                parts.append(by_id[current]["p_place"])
                current = int(by_id[current]["p_parent_id"])

            name = ", ".join(parts)
            if needle and needle not in name.lower():
                continue
            place = Place(name, tree)
            place._id = place_id
            places.append(place)

        return places

    def search_individuals_in_place(self, place: Place) -> List[Dict[str, Any]]:
        with db_connect() as con:
            rows = con.execute(
                """
                SELECT DISTINCT i_id, i_name, i_sex
                FROM individuals
                JOIN placelinks ON pl_gid = i_id AND pl_file = i_file
                WHERE pl_p_id = ? AND pl_file = ?
                ORDER BY i_name COLLATE NOCASE, i_id
                """,
                (place.id(), place.tree.id),
            ).fetchall()

        return [{"xref": r["i_id"], "name": r["i_name"], "sex": r["i_sex"]} for r in rows]

    def search_families_in_place(self, place: Place) -> List[Dict[str, Any]]:
        with db_connect() as con:
            rows = con.execute(
                """
                SELECT DISTINCT f_id,
                       COALESCE(h.i_name, '') AS husband,
                       COALESCE(w.i_name, '') AS wife
                FROM families
                JOIN placelinks ON pl_gid = f_id AND pl_file = f_file
                LEFT JOIN individuals h ON h.i_id = f_husb AND h.i_file = f_file
                LEFT JOIN individuals w ON w.i_id = f_wife AND w.i_file = f_file
                WHERE pl_p_id = ? AND pl_file = ?
                ORDER BY husband COLLATE NOCASE, wife COLLATE NOCASE, f_id
                """,
                (place.id(), place.tree.id),
            ).fetchall()

        out = []
        for r in rows:
            spouses = [n for n in (r["husband"], r["wife"]) if n]
            out.append({"xref": r["f_id"], "name": " + ".join(spouses) or r["f_id"]})
        return out


class Statistics:
    """Aggregate counts for one tree."""

    def __init__(self, tree: Tree):
        self.tree = tree

    def stats_places(self, what: str = "ALL", fact: str = "", parent: int = 0) -> List[Dict[str, Any]]:
        """
        Count records linked to places.

        what:   "INDI" or "FAM"; anything else counts both
        fact:   restrict to one fact tag ("BIRT", "MARR", ...) when non-empty
        parent: > 0 counts records at that exact place (zero or one row);
                0 gives one row per place, most used first
        """
        joins = {
            "INDI": "JOIN individuals ON i_id = pl_gid AND i_file = pl_file",
            "FAM": "JOIN families ON f_id = pl_gid AND f_file = pl_file",
        }
        join = joins.get(what.upper(), "")

        where = ["pl_file = ?"]
        params: list[Any] = [self.tree.id]
        if fact:
            where.append("pl_fact = ?")
            params.append(fact.upper())
        if parent > 0:
            where.append("pl_p_id = ?")
            params.append(parent)

        sql = f"""
            SELECT p_place AS place, pl_p_id AS place_id, COUNT(DISTINCT pl_gid) AS tot
            FROM placelinks
            JOIN places ON p_id = pl_p_id AND p_file = pl_file
            {join}
            WHERE {' AND '.join(where)}
            GROUP BY pl_p_id
            ORDER BY tot DESC, p_place
        """

        with db_connect() as con:
            rows = con.execute(sql, params).fetchall()

        return [{"place": r["place"], "place_id": int(r["place_id"]), "tot": int(r["tot"])} for r in rows]

from __future__ import annotations

"""
Place hierarchy browser: app.py

- Session-based auth (session["user_id"]), werkzeug password hashes
- Persistent storage under DATA_DIR (see genealogy/db.py)
- Built-in sample trees (data/samples/*.json) imported on boot
- Place list per tree:
    /tree/<tree>/place-list?action2=list|hierarchy|hierarchy-e&place_id=N
  Unknown place ids redirect to the place they resolve to (the world).
  Links from older versions (/tree/<tree>/module/places_list/List)
  redirect to the place list keeping their query string.
- Map: set MAP_PROVIDER (e.g. "openstreetmap") to show places on a map
  instead of the hierarchy columns. JSON for the map is also served at
  /api/tree/<tree>/place-map?place_id=N
- Access: PLACE_LIST_ACCESS=user (default) needs a login, =public does not.
"""

import logging
import os
import sqlite3
from functools import wraps
from pathlib import Path
from typing import Optional

import click
from flask import Flask, abort, jsonify, redirect, render_template, request, session, url_for
from werkzeug.security import check_password_hash, generate_password_hash

from genealogy.db import db_connect, db_init, require_lastrowid, seed_samples_if_missing
from genealogy.place_hierarchy import ACCESS_USER, DEFAULT_TILE_URL, PlaceHierarchyList
from genealogy.places import Place, Tree, all_trees, find_tree
from genealogy.services import SearchService

# -----------------------------
# CONFIG
# -----------------------------
APP_DIR = Path(__file__).parent

# Session secret (set LINEAGE_SECRET in production)
SECRET = os.environ.get("LINEAGE_SECRET", "dev-secret-change-me")

# Empty = no map; hierarchy columns are shown instead
MAP_PROVIDER = os.environ.get("MAP_PROVIDER", "")
MAP_TILE_URL = os.environ.get("MAP_TILE_URL", DEFAULT_TILE_URL)

# "user" (signed-in users only) or "public"
PLACE_LIST_ACCESS = os.environ.get("PLACE_LIST_ACCESS", ACCESS_USER)

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(
    __name__,
    template_folder=str(APP_DIR / "templates"),
    static_folder=str(APP_DIR / "static"),
)
app.secret_key = SECRET
app.config.update(
    MAP_PROVIDER=MAP_PROVIDER,
    MAP_TILE_URL=MAP_TILE_URL,
    PLACE_LIST_ACCESS=PLACE_LIST_ACCESS,
)

db_init()
seed_samples_if_missing()


# -----------------------------
# SMALL HELPERS (type-safe)
# -----------------------------
def get_session_uid() -> int | None:
    raw = session.get("user_id")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.isdigit():
        return int(raw)
    return None


def safe_next_url(raw: str | None) -> str | None:
    """Only same-site paths are accepted as post-login targets."""
    if raw and raw.startswith("/") and not raw.startswith("//"):
        return raw
    return None


def tree_or_404(tree_name: str) -> Tree:
    tree = find_tree(tree_name)
    if tree is None:
        abort(404, description=f"Tree '{tree_name}' not found.")
    return tree


def place_hierarchy_module() -> PlaceHierarchyList:
    return PlaceHierarchyList(
        SearchService(),
        map_provider=app.config.get("MAP_PROVIDER", ""),
        tile_url=app.config.get("MAP_TILE_URL", DEFAULT_TILE_URL),
        access_level=app.config.get("PLACE_LIST_ACCESS", ACCESS_USER),
    )


# -----------------------------
# CURRENT USER
# -----------------------------
def get_current_user() -> Optional[dict]:
    uid = get_session_uid()
    if uid is None:
        return None

    with db_connect() as con:
        row = con.execute("SELECT id, email FROM users WHERE id = ?", (uid,)).fetchone()

    if not row:
        session.pop("user_id", None)
        return None

    return {"id": int(row["id"]), "email": row["email"]}


@app.context_processor
def inject_current_user() -> dict:
    return {"current_user": get_current_user()}


# -----------------------------
# AUTH HELPERS
# -----------------------------
def authenticate_user(email: str, password: str) -> Optional[dict]:
    email = (email or "").strip().lower()
    if not email or not password:
        return None

    with db_connect() as con:
        row = con.execute(
            "SELECT id, email, password_hash FROM users WHERE email = ?",
            (email,),
        ).fetchone()

    if not row:
        return None
    if not check_password_hash(row["password_hash"], password):
        return None

    return {"id": int(row["id"]), "email": row["email"]}


def create_user(email: str, password: str) -> int:
    email = (email or "").strip().lower()
    password = password or ""

    if not email or "@" not in email or len(email) > 254:
        raise ValueError("Please enter a valid email.")
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters.")

    pw_hash = generate_password_hash(password)

    try:
        with db_connect() as con:
            cur = con.execute(
                "INSERT INTO users (email, password_hash) VALUES (?, ?)",
                (email, pw_hash),
            )
            uid = require_lastrowid(cur)
            con.commit()
    except sqlite3.IntegrityError:
        raise ValueError("That email is already registered.")

    logger.info("Created user %d", uid)
    return uid


def place_list_access(view):
    """Send anonymous visitors to the login page when the place list is members-only."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        if place_hierarchy_module().requires_login() and get_session_uid() is None:
            return redirect(url_for("login", next=request.full_path.rstrip("?")))
        return view(*args, **kwargs)

    return wrapped


@app.cli.command("create-user")
@click.argument("email")
@click.argument("password")
def create_user_command(email: str, password: str) -> None:
    """Create a user who can sign in to see the place lists."""
    try:
        uid = create_user(email, password)
    except ValueError as e:
        raise click.ClickException(str(e))
    click.echo(f"Created user {uid} ({email.strip().lower()})")


# -----------------------------
# PAGES
# -----------------------------
@app.get("/")
def index():
    module = place_hierarchy_module()
    trees = [
        {"tree": t, "url": module.list_url(t), "is_empty": module.list_is_empty(t)}
        for t in all_trees()
    ]
    return render_template("index.html", trees=trees, module=module)


@app.get("/tree/<tree_name>/place-list")
@place_list_access
def place_list(tree_name: str):
    tree = tree_or_404(tree_name)
    module = place_hierarchy_module()

    action2 = request.args.get("action2", "hierarchy")
    place_id = request.args.get("place_id", 0, type=int)
    place = Place.find(place_id, tree)

    # Request for a non-existent place?
    if place_id != place.id():
        logger.info("Tree %s: place %d not found, redirecting to %r", tree.name, place_id, place)
        return redirect(place.url())

    return render_template("place_hierarchy/page.html", **module.page_data(tree, action2, place))


@app.get("/tree/<tree_name>/module/places_list/List")
def place_list_legacy(tree_name: str):
    """Handle URLs generated by older versions."""
    tree = tree_or_404(tree_name)
    return redirect(place_hierarchy_module().list_url(tree, request.args.items(multi=True)))


# -----------------------------
# AUTH PAGES
# -----------------------------
@app.get("/login")
def login():
    return render_template("login.html", error=None, next=safe_next_url(request.args.get("next")))


@app.post("/login")
def login_post():
    email = request.form.get("email", "").strip().lower()
    password = request.form.get("password", "")
    next_url = safe_next_url(request.args.get("next") or request.form.get("next"))

    user = authenticate_user(email, password)
    if not user:
        return render_template("login.html", error="Invalid email or password.", next=next_url)

    session["user_id"] = user["id"]
    return redirect(next_url or url_for("index"))


@app.get("/logout")
def logout():
    session.pop("user_id", None)
    return redirect(safe_next_url(request.args.get("next")) or url_for("index"))


# -----------------------------
# MAP DATA API
# -----------------------------
@app.get("/api/tree/<tree_name>/place-map")
@place_list_access
def api_place_map(tree_name: str):
    tree = find_tree(tree_name)
    if tree is None:
        return jsonify({"error": "not found"}), 404

    place = Place.find(request.args.get("place_id", 0, type=int), tree)
    return jsonify(place_hierarchy_module().map_data(tree, place))


# -----------------------------
# LOCAL RUN
# -----------------------------
if __name__ == "__main__":
    app.run(host="127.0.0.1", port=5000, debug=True)

#!/usr/bin/env python3
"""
Ideas Taxonomy Server
---------------------
Serves the taxonomy pages (ideas, stories, sprints, updates, figures,
materials), a small operator admin area and a JSON API, backed by SQLite or
a PostgREST endpoint (see pkg/taxonomy/config.py).

Usage:
    python taxonomy_server.py
    python taxonomy_server.py --config taxonomy.yaml --port 3000
    python taxonomy_server.py --db /var/lib/taxonomy/taxonomy.db

Pages:
    GET  /                          → section index
    GET  /<table>                   → list page (status filters on ideas/stories/sprints/figures)
    GET  /<table>/<key>             → detail page by display key (404 if missing)
    GET  /auth/login, POST          → operator sign-in
    GET  /admin                     → dashboard (operator only)
    POST /admin/logout              → sign out, back to /
    GET  /admin/<table>             → manage list
    GET  /admin/<table>/<id>/delete → confirmation; POST deletes
    GET  /admin/ideas/new, POST     → create idea
    GET  /admin/ideas/<n>/edit, POST→ edit idea

API:
    GET    /api/<table>             → { records, count }
    GET    /api/<table>/<key>       → { record }
    DELETE /api/<table>/<id>        → { deleted }   (X-API-Key required)
    GET    /health                  → { status, datastore }
"""

import argparse
import logging
import os
import sys
from datetime import date, datetime
from functools import wraps
from pathlib import Path

from flask import (
    Flask, abort, flash, g, jsonify, redirect, render_template, request,
    session, url_for,
)

import pkg.taxonomy as taxonomy_pkg
from pkg.taxonomy.auth import AuthError, OperatorAuth, api_key_matches
from pkg.taxonomy.config import Config, ConfigError, open_store
from pkg.taxonomy.schema import (
    ENTITIES, STORY_PRIORITY_COLORS, Idea, IdeaStatus, get_entity,
)
from pkg.taxonomy.store import RecordNotFound, StoreError

PACKAGE_DIR = Path(taxonomy_pkg.__file__).parent

app = Flask(
    __name__,
    template_folder=str(PACKAGE_DIR / "templates"),
    static_folder=str(PACKAGE_DIR / "static"),
)

logger = logging.getLogger("taxonomy")


# ── Config ───────────────────────────────────────────────────────────────────

def configure(cfg: Config, store=None):
    """Bind config, datastore and operator auth to the app."""
    app.config["TAXONOMY"] = cfg
    app.secret_key = cfg.secret_key
    app.extensions["taxonomy_store"] = store if store is not None else open_store(cfg)
    app.extensions["taxonomy_auth"] = OperatorAuth(cfg.operators)


def get_config() -> Config:
    if "TAXONOMY" not in app.config:
        configure(Config.load())
    return app.config["TAXONOMY"]


def get_store():
    get_config()
    return app.extensions["taxonomy_store"]


def get_auth() -> OperatorAuth:
    get_config()
    return app.extensions["taxonomy_auth"]


# ── Auth ─────────────────────────────────────────────────────────────────────

def login_required(f):
    """Decorator: send anonymous visitors to the sign-in page."""
    @wraps(f)
    def decorated(*args, **kwargs):
        operator = get_auth().current_operator(session)
        if not operator:
            return redirect(url_for("login", next=request.path))
        g.operator = operator
        return f(*args, **kwargs)
    return decorated


def require_api_key(f):
    """Decorator: reject requests without a valid X-API-Key header."""
    @wraps(f)
    def decorated(*args, **kwargs):
        secret = get_config().api_secret
        if not secret:
            return jsonify({"error": "API secret not set"}), 503
        provided = request.headers.get("X-API-Key", "").strip()
        if not api_key_matches(provided, secret):
            code = 401 if not provided else 403
            return jsonify({"error": "Unauthorized"}), code
        return f(*args, **kwargs)
    return decorated


# ── Template helpers ─────────────────────────────────────────────────────────

@app.template_filter("format_date")
def format_date(value) -> str:
    """Render ISO dates/timestamps as e.g. "Mar 04, 2025"; unknown input passes through."""
    if not value:
        return ""
    if isinstance(value, (date, datetime)):
        return value.strftime("%b %d, %Y")
    try:
        return datetime.fromisoformat(str(value)[:10]).strftime("%b %d, %Y")
    except ValueError:
        return str(value)


@app.context_processor
def inject_globals():
    return {
        "sections": list(ENTITIES.values()),
        "operator": get_auth().current_operator(session),
        "priority_colors": STORY_PRIORITY_COLORS,
    }


@app.errorhandler(404)
def not_found(e):
    if request.path.startswith("/api/"):
        return jsonify({"error": "Not found"}), 404
    return render_template("404.html"), 404


def _entity_or_404(table: str):
    entity = get_entity(table)
    if entity is None:
        abort(404)
    return entity


def _fetch(entity):
    """Ordered fetch for list pages: (records, error message or None)."""
    try:
        return get_store().fetch(entity.table, entity.order_by, entity.descending), None
    except StoreError as e:
        app.logger.warning(f"fetch {entity.table} error: {e.message}")
        return [], e.message


# ── Public pages ─────────────────────────────────────────────────────────────

@app.route("/")
def index():
    return render_template("index.html")


@app.route("/<table>")
def entity_list(table):
    entity = _entity_or_404(table)
    records, error = _fetch(entity)
    return render_template("list.html", entity=entity, records=records, error=error)


@app.route("/<table>/<key>")
def entity_detail(table, key):
    entity = _entity_or_404(table)
    value = entity.parse_key(key)
    if value is None:
        abort(404)
    try:
        record = get_store().get_by_key(entity.table, value)
    except StoreError as e:
        app.logger.warning(f"detail {table}/{key} error: {e.message}")
        abort(404)
    if record is None:
        abort(404)
    return render_template(f"detail/{entity.name}.html", entity=entity, record=record)


# ── Operator session ─────────────────────────────────────────────────────────

@app.route("/auth/login", methods=["GET", "POST"])
def login():
    next_url = request.values.get("next") or url_for("admin_index")
    # Only same-site redirects
    if not next_url.startswith("/") or next_url.startswith("//"):
        next_url = url_for("admin_index")
    email = ""
    error = None
    if request.method == "POST":
        email = request.form.get("email", "").strip()
        try:
            get_auth().sign_in(session, email, request.form.get("password", ""))
            return redirect(next_url)
        except AuthError as e:
            error = str(e)
    return render_template("auth/login.html", error=error, email=email, next_url=next_url)


@app.route("/admin/logout", methods=["POST"])
def admin_logout():
    get_auth().sign_out(session)
    return redirect(url_for("index"))


# ── Admin ────────────────────────────────────────────────────────────────────

@app.route("/admin")
@login_required
def admin_index():
    return render_template("admin/index.html")


@app.route("/admin/<table>")
@login_required
def admin_list(table):
    entity = _entity_or_404(table)
    records, error = _fetch(entity)
    return render_template("admin/list.html", entity=entity, records=records, error=error)


@app.route("/admin/<table>/<int:record_id>/delete", methods=["GET", "POST"])
@login_required
def admin_delete(table, record_id):
    entity = _entity_or_404(table)
    try:
        record = get_store().get(entity.table, "id", record_id)
    except StoreError as e:
        flash(f"Error deleting: {e.message}", "error")
        return redirect(url_for("admin_list", table=entity.table))
    if record is None:
        abort(404)

    prompt = f'Delete {entity.name} "{entity.heading(record)}"?'
    if request.method == "GET" or request.form.get("confirm") != "yes":
        return render_template("admin/confirm_delete.html", entity=entity, record=record, prompt=prompt)

    try:
        get_store().delete(entity.table, record_id)
    except StoreError as e:
        app.logger.warning(f"delete {table} id={record_id} by {g.operator} failed: {e.message}")
        flash(f"Error deleting: {e.message}", "error")
        return redirect(url_for("admin_list", table=entity.table))

    app.logger.info(f"{g.operator} deleted {entity.name} {entity.label(record)}")
    flash(f"Deleted {entity.name} {entity.label(record)}", "success")
    return redirect(url_for("admin_list", table=entity.table))


def _idea_form(idea: Idea = None) -> dict:
    if idea is None:
        return {
            "idea_number": "", "title": "", "description": "",
            "status": IdeaStatus.PLANNED.value,
            "created": date.today().isoformat(), "tags": "", "body": "",
        }
    return {
        "idea_number": idea.idea_number,
        "title": idea.title,
        "description": idea.description,
        "status": idea.status.value,
        "created": idea.created[:10],
        "tags": ", ".join(idea.tags),
        "body": idea.body or "",
    }


def _idea_from_form(form, existing: Idea = None) -> Idea:
    """Build an Idea from posted fields. Raises ValueError on bad input."""
    title = form.get("title", "").strip()
    if not title:
        raise ValueError("Title is required")
    if existing is not None:
        number = existing.idea_number
    else:
        try:
            number = int(form.get("idea_number", ""))
        except ValueError:
            raise ValueError("Idea number must be a whole number")
        if number < 1:
            raise ValueError("Idea number must be positive")
    tags = [t.strip() for t in form.get("tags", "").split(",") if t.strip()]
    return Idea(
        idea_number=number,
        title=title,
        description=form.get("description", "").strip(),
        status=IdeaStatus.from_str(form.get("status")),
        created=form.get("created", "").strip() or date.today().isoformat(),
        tags=tags,
        body=form.get("body", "").strip() or None,
        id=existing.id if existing else None,
        created_at=existing.created_at if existing else "",
    )


@app.route("/admin/ideas/new", methods=["GET", "POST"])
@login_required
def admin_idea_new():
    statuses = ENTITIES["ideas"].statuses()
    if request.method == "GET":
        form = _idea_form()
        try:
            form["idea_number"] = get_store().next_number("ideas")
        except StoreError:
            pass  # operator types the number in
        return render_template("admin/idea_form.html", form=form, statuses=statuses, editing=False)

    form = request.form.to_dict()
    try:
        idea = get_store().save(_idea_from_form(request.form))
    except (ValueError, StoreError) as e:
        message = e.message if isinstance(e, StoreError) else str(e)
        return render_template("admin/idea_form.html", form=form, statuses=statuses,
                               editing=False, error=message), 400
    app.logger.info(f"{g.operator} created idea i{idea.idea_number}")
    flash(f"Created idea i{idea.idea_number}", "success")
    return redirect(url_for("admin_list", table="ideas"))


@app.route("/admin/ideas/<int:idea_number>/edit", methods=["GET", "POST"])
@login_required
def admin_idea_edit(idea_number):
    statuses = ENTITIES["ideas"].statuses()
    try:
        existing = get_store().get_by_key("ideas", idea_number)
    except StoreError as e:
        flash(f"Error loading idea: {e.message}", "error")
        return redirect(url_for("admin_list", table="ideas"))
    if existing is None:
        abort(404)

    if request.method == "GET":
        return render_template("admin/idea_form.html", form=_idea_form(existing),
                               statuses=statuses, editing=True)

    form = request.form.to_dict()
    form["idea_number"] = existing.idea_number
    try:
        get_store().save(_idea_from_form(request.form, existing))
    except (ValueError, StoreError) as e:
        message = e.message if isinstance(e, StoreError) else str(e)
        return render_template("admin/idea_form.html", form=form, statuses=statuses,
                               editing=True, error=message), 400
    app.logger.info(f"{g.operator} edited idea i{idea_number}")
    flash(f"Saved idea i{idea_number}", "success")
    return redirect(url_for("admin_list", table="ideas"))


# ── JSON API ─────────────────────────────────────────────────────────────────

@app.route("/api/<table>", methods=["GET"])
def api_list(table):
    entity = _entity_or_404(table)
    try:
        records = get_store().fetch(entity.table, entity.order_by, entity.descending)
    except StoreError as e:
        return jsonify({"error": e.message}), 500
    return jsonify({"records": [r.to_dict() for r in records], "count": len(records)})


@app.route("/api/<table>/<key>", methods=["GET"])
def api_detail(table, key):
    entity = _entity_or_404(table)
    value = entity.parse_key(key)
    if value is None:
        return jsonify({"error": "Not found"}), 404
    try:
        record = get_store().get_by_key(entity.table, value)
    except StoreError as e:
        return jsonify({"error": e.message}), 500
    if record is None:
        return jsonify({"error": "Not found"}), 404
    return jsonify({"record": record.to_dict()})


@app.route("/api/<table>/<int:record_id>", methods=["DELETE"])
@require_api_key
def api_delete(table, record_id):
    entity = _entity_or_404(table)
    try:
        get_store().delete(entity.table, record_id)
    except RecordNotFound as e:
        return jsonify({"error": e.message}), 404
    except StoreError as e:
        return jsonify({"error": e.message}), 500
    return jsonify({"deleted": record_id})


@app.route("/health")
def health():
    cfg = get_config()
    payload = {"status": "ok", "datastore": cfg.datastore}
    if cfg.datastore == "sqlite":
        payload["db"] = cfg.db_path
    return jsonify(payload)


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(description="Ideas Taxonomy Server")
    parser.add_argument("--config", help="Path to taxonomy.yaml (overrides TAXONOMY_CONFIG)")
    parser.add_argument("--host", help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int)
    parser.add_argument("--db", help="Path to taxonomy.db (overrides TAXONOMY_DB)")
    args = parser.parse_args(argv)

    if args.db:
        os.environ["TAXONOMY_DB"] = args.db

    try:
        cfg = Config.load(args.config)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1

    logging.basicConfig(
        level=getattr(logging, str(cfg.log_level).upper(), logging.INFO),
        format="%(asctime)s [taxonomy] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    host = args.host or cfg.host
    port = args.port or cfg.port
    configure(cfg)

    store_desc = cfg.db_path if cfg.datastore == "sqlite" else cfg.rest_url
    print(f"""
╔═══════════════════════════════════════╗
║  Ideas Taxonomy Server                ║
╠═══════════════════════════════════════╣
║  URL:   http://{host}:{port:<19}║
║  Store: {cfg.datastore:<30}║
╚═══════════════════════════════════════╝
  {store_desc}
""")
    if not cfg.operators:
        logger.warning("No operators configured; the admin area is unreachable")

    app.run(host=host, port=port, debug=False, threaded=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())

import logging
import sqlite3
import time

import click
from flask import Flask, current_app, g, jsonify, request
from werkzeug.middleware.proxy_fix import ProxyFix

from . import store
from .config import Config
from .normalize import MalformedPayload, normalize_event, parse_events, request_context

logger = logging.getLogger(__name__)

# bump whenever the /stats response shape changes
STATS_VERSION = "0.0.3"

DAY = 86400
MONTH = 30 * DAY

# routes answer every one of these; the wrong ones are a silent no-op
ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE", "CONNECT"]


# -----------------------------------------------------------------------------
# DB helpers
# -----------------------------------------------------------------------------
def open_db():
    return store.connect(
        current_app.config["TRACKING_DB"],
        timeout=current_app.config["TRACKING_DB_TIMEOUT"],
    )


def get_db():
    if "db" not in g:
        g.db = open_db()
    return g.db


def close_db(exc):
    db = g.pop("db", None)
    if db:
        db.close()


@click.command("init-db")
def init_db_command():
    """Create the events table and index if missing."""
    store.initialize(get_db())
    click.echo(f"Initialized {current_app.config['TRACKING_DB']}")


# -----------------------------------------------------------------------------
# CORS
# -----------------------------------------------------------------------------
def pick_cors_origin(request_origin, allowed_origins):
    """
    Return the request Origin if it is on the allowlist.
    """
    if request_origin and request_origin in allowed_origins:
        return request_origin
    return None


def add_cors_headers(resp):
    origin = pick_cors_origin(
        request.headers.get("Origin"),
        current_app.config["CORS_ALLOW_ORIGINS"],
    )
    if origin:
        resp.headers["Access-Control-Allow-Origin"] = origin
        resp.headers["Vary"] = "Origin"
        resp.headers["Access-Control-Allow-Methods"] = request.headers.get(
            "Access-Control-Request-Method", "GET,POST,OPTIONS"
        )
        resp.headers["Access-Control-Allow-Headers"] = request.headers.get(
            "Access-Control-Request-Headers", "Content-Type"
        )
        resp.headers["Access-Control-Max-Age"] = "600"
    return resp


# -----------------------------------------------------------------------------
# Ingest
# -----------------------------------------------------------------------------
def post_events():
    """
    Store one event or a batch of them.
    Body example:
      [{"property": "test", "ip": "192.168.0.0",
        "user_agent": "secret agent", "description": "awesome thing"}]
    ip, user_agent and description are optional and filled in from the request.
    """
    if request.method != "POST":
        return ("", 200)

    # decode whatever the content type, sendBeacon posts text/plain
    payload = request.get_json(force=True, silent=True)
    try:
        events = parse_events(payload)
    except MalformedPayload as exc:
        logger.warning("unable to parse events: %s", exc)
        return ("", 400)

    # one timestamp for the whole batch
    now = int(time.time())
    remote_addr, user_agent, target = request_context(request)

    db = get_db()
    stored = 0
    for event in events:
        event = normalize_event(event, remote_addr, user_agent, target)
        try:
            store.insert_event(db, now, event)
        except sqlite3.Error as exc:
            logger.error("dropping event for property %r: %s", event.property, exc)
            continue
        stored += 1

    logger.debug("stored %d/%d events", stored, len(events))
    return ("", 200)


# -----------------------------------------------------------------------------
# Stats
# -----------------------------------------------------------------------------
def _safe_count(query, db, prop, since, label):
    try:
        return query(db, prop, since)
    except sqlite3.Error as exc:
        logger.error("stats query %s failed for property %r: %s", label, prop, exc)
        return 0


def stats():
    if request.method != "GET":
        return ("", 200)

    prop = request.args.get("property", "")
    if not prop:
        return ("", 400)

    now = int(time.time())
    month_since = now - MONTH
    day_since = now - DAY

    db = get_db()
    return jsonify(
        {
            "version": STATS_VERSION,
            "last_month_unique_hits": _safe_count(store.count_unique, db, prop, month_since, "last_month_unique_hits"),
            "last_day_unique_hits": _safe_count(store.count_unique, db, prop, day_since, "last_day_unique_hits"),
            "last_month_hits": _safe_count(store.count_hits, db, prop, month_since, "last_month_hits"),
            "last_day_hits": _safe_count(store.count_hits, db, prop, day_since, "last_day_hits"),
        }
    )


def healthz():
    return "ok", 200


# -----------------------------------------------------------------------------
# App factory
# -----------------------------------------------------------------------------
def create_app(overrides=None):
    """
    Build the collector. Settings come from Config, then FLASK_* environment
    variables, then `overrides`. The schema is created here, so a database
    that cannot be opened or initialized stops startup.
    """
    app = Flask(__name__)
    app.config.from_object(Config)
    app.config.from_prefixed_env()
    if overrides:
        app.config.from_mapping(overrides)

    db = store.connect(app.config["TRACKING_DB"], timeout=app.config["TRACKING_DB_TIMEOUT"])
    try:
        store.initialize(db)
    finally:
        db.close()
    logger.info("tracking events in %s", app.config["TRACKING_DB"])

    proxies = app.config["TRACKING_PROXY_COUNT"]
    if proxies:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxies)

    app.teardown_appcontext(close_db)
    app.after_request(add_cors_headers)
    app.cli.add_command(init_db_command)

    app.add_url_rule("/events", "events", post_events, methods=ALL_METHODS)
    app.add_url_rule("/stats", "stats", stats, methods=ALL_METHODS)
    app.add_url_rule("/healthz", "healthz", healthz)

    return app

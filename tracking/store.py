import logging
import sqlite3

logger = logging.getLogger(__name__)

# -----------------------------------------------------------------------------
# Schema / queries
# -----------------------------------------------------------------------------
EVENTS_TABLE = """
    CREATE TABLE IF NOT EXISTS events (
        id INTEGER NOT NULL PRIMARY KEY,
        timestamp INTEGER NOT NULL,
        property TEXT NOT NULL,
        ip TEXT NOT NULL,
        user_agent TEXT NOT NULL,
        description TEXT NOT NULL
    );
"""

EVENTS_INDEX = """
    CREATE INDEX IF NOT EXISTS idx_property_timestamp
    ON events (property, timestamp);
"""

INSERT_EVENT = """
    INSERT INTO events (timestamp, property, ip, user_agent, description)
    VALUES (?, ?, ?, ?, ?)
"""

# strict ">": a row at exactly `since` is outside the window
COUNT_HITS = "SELECT COUNT(id) FROM events WHERE property = ? AND timestamp > ?"
COUNT_UNIQUE = "SELECT COUNT(DISTINCT ip) FROM events WHERE property = ? AND timestamp > ?"


# -----------------------------------------------------------------------------
# Connections
# -----------------------------------------------------------------------------
def connect(path, timeout=5.0) -> sqlite3.Connection:
    """
    Open a connection to the events database. Callers own it and must close it.
    """
    db = sqlite3.connect(path, timeout=timeout)
    db.row_factory = sqlite3.Row
    return db


# -----------------------------------------------------------------------------
# Operations
# -----------------------------------------------------------------------------
def initialize(db: sqlite3.Connection):
    """
    Create the events table and its (property, timestamp) index if missing.
    Safe to run on every start.
    """
    db.execute(EVENTS_TABLE)
    db.execute(EVENTS_INDEX)
    db.commit()
    logger.debug("events schema ready")


def insert_event(db: sqlite3.Connection, timestamp: int, event) -> int:
    """
    Append one fully-normalized event and commit it on its own, so a later
    failure in the same batch cannot undo it. Raises sqlite3.Error.
    """
    try:
        cur = db.execute(
            INSERT_EVENT,
            (timestamp, event.property, event.ip, event.user_agent, event.description),
        )
        db.commit()
    except sqlite3.Error:
        db.rollback()
        raise
    return cur.lastrowid


def _scalar(db, sql, params) -> int:
    row = db.execute(sql, params).fetchone()
    if row is None or row[0] is None:
        return 0
    return int(row[0])


def count_hits(db: sqlite3.Connection, property: str, since: int) -> int:
    return _scalar(db, COUNT_HITS, (property, since))


def count_unique(db: sqlite3.Connection, property: str, since: int) -> int:
    """Distinct ip values for the property after `since`."""
    return _scalar(db, COUNT_UNIQUE, (property, since))

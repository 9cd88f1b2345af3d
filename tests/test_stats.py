import sqlite3
import time

import pytest

from tracking import store
from tracking.app import STATS_VERSION, create_app
from tracking.normalize import Event


def _event(ip):
    return Event("test", ip, "ua", "/")


def _stats(client, prop="test"):
    resp = client.get("/stats", query_string={"property": prop})
    assert resp.status_code == 200
    return resp.get_json()


def test_single_event_counts_in_both_windows(client):
    client.post("/events", json=[{"property": "test", "ip": "192.168.0.0"}])
    assert _stats(client) == {
        "version": STATS_VERSION,
        "last_month_unique_hits": 1,
        "last_day_unique_hits": 1,
        "last_month_hits": 1,
        "last_day_hits": 1,
    }


def test_same_ip_is_one_unique_visitor(client):
    client.post("/events", json=[{"property": "test", "ip": "192.168.0.0"}] * 2)
    data = _stats(client)
    assert data["last_day_hits"] == data["last_month_hits"] == 2
    assert data["last_day_unique_hits"] == data["last_month_unique_hits"] == 1


def test_old_events_only_count_for_the_month(client, db):
    now = int(time.time())
    store.insert_event(db, now - 3 * 86400, _event("10.0.0.1"))
    store.insert_event(db, now - 60 * 86400, _event("10.0.0.2"))

    data = _stats(client)
    assert data["last_day_hits"] == 0
    assert data["last_month_hits"] == 1
    assert data["last_month_unique_hits"] == 1


def test_unknown_property_is_all_zero(client):
    data = _stats(client, "nobody")
    assert data["last_month_hits"] == 0
    assert data["last_day_unique_hits"] == 0


def test_missing_property_is_empty_response(client):
    for resp in (client.get("/stats"), client.get("/stats?property=")):
        assert resp.status_code == 400
        assert resp.data == b""


def test_other_methods_are_a_no_op(client):
    for method in ("POST", "PUT", "DELETE", "TRACE"):
        resp = client.open("/stats?property=test", method=method)
        assert resp.status_code == 200
        assert resp.data == b""


def test_failed_query_falls_back_to_zero(client, monkeypatch):
    client.post("/events", json=[{"property": "test", "ip": "192.168.0.0"}])

    def broken(db, prop, since):
        raise sqlite3.OperationalError("database is locked")

    monkeypatch.setattr(store, "count_unique", broken)
    data = _stats(client)
    assert data["last_month_unique_hits"] == 0
    assert data["last_day_unique_hits"] == 0
    assert data["last_month_hits"] == 1
    assert data["last_day_hits"] == 1


def test_startup_fails_when_database_cannot_be_opened(tmp_path):
    with pytest.raises(sqlite3.Error):
        create_app({"TRACKING_DB": str(tmp_path / "missing" / "tracking.db")})


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.data == b"ok"

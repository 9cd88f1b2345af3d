import pytest

from tracking import create_app
from tracking import store


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "tracking.db")


@pytest.fixture
def app(db_path):
    return create_app({"TESTING": True, "TRACKING_DB": db_path, "CORS_ALLOW_ORIGINS": ["https://example.org"]})


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(db_path):
    conn = store.connect(db_path)
    store.initialize(conn)
    yield conn
    conn.close()


@pytest.fixture
def rows(db_path):
    """Read back every stored event, oldest first."""
    def _rows():
        conn = store.connect(db_path)
        try:
            return [dict(r) for r in conn.execute("SELECT * FROM events ORDER BY id")]
        finally:
            conn.close()
    return _rows

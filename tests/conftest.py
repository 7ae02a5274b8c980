import importlib
import os
import sqlite3
import sys
import tempfile
from pathlib import Path

import httpx
import pytest

# Ensure project root is on sys.path for imports like 'money_tracker.db'
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Keep logs and data of the test run out of the project tree
_TMP_ROOT = Path(tempfile.mkdtemp(prefix="money_tracker_tests_"))
os.environ.setdefault("LOG_DIR", str(_TMP_ROOT / "logs"))
os.environ.setdefault("DATA_DIR", str(_TMP_ROOT / "data"))


@pytest.fixture(scope="session")
def temp_db_path(tmp_path_factory) -> Path:
    tmp_dir = tmp_path_factory.mktemp("db")
    return tmp_dir / "money_tracker_test.sqlite3"


@pytest.fixture(scope="session")
def app_client(temp_db_path):
    os.environ["MONEY_TRACKER_DB_PATH"] = str(temp_db_path)
    # Ensure modules read the env var at import time and initialize schema
    import money_tracker.db as db_module
    importlib.reload(db_module)
    db_module.initialise_database()

    from fastapi.testclient import TestClient
    import money_tracker.main as main_app

    client = TestClient(main_app.app)
    return client


@pytest.fixture()
def db_conn(app_client, temp_db_path):
    conn = sqlite3.connect(str(temp_db_path))
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


_user_counter = {"n": 0}


@pytest.fixture()
def user(app_client):
    """Register and log in a fresh user; returns (username, password, user_id)."""
    _user_counter["n"] += 1
    username = f"pytest-user-{os.getpid()}-{_user_counter['n']}"
    password = "secret"
    r = app_client.post("/api", json={"action": "register", "username": username, "password": password})
    assert r.status_code == 200, r.text
    r = app_client.post("/api", json={"action": "login", "username": username, "password": password})
    assert r.status_code == 200, r.text
    return username, password, r.json()["user_id"]


@pytest.fixture()
def cache(tmp_path):
    from money_tracker.client.local_cache import LocalCacheStore

    store = LocalCacheStore(tmp_path / "client_cache.sqlite3")
    try:
        yield store
    finally:
        store.close()


@pytest.fixture()
def asgi_remote(app_client):
    """RemoteTransactionService talking to the real app in-process."""
    from money_tracker.client.remote import RemoteTransactionService
    import money_tracker.main as main_app

    def factory():
        transport = httpx.ASGITransport(app=main_app.app)
        client = httpx.AsyncClient(transport=transport, base_url="http://testserver")
        return RemoteTransactionService("http://testserver/api", client=client)

    return factory

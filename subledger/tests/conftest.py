import os
import sys
import sqlite3
import pytest
from pathlib import Path

# Ensure project root on sys.path
_THIS_DIR = Path(__file__).resolve().parent
_PROJECT_ROOT = _THIS_DIR.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


@pytest.fixture(scope="session")
def tmp_db_path(tmp_path_factory):
    path = tmp_path_factory.mktemp("db") / "subledger_test.db"
    # Point subledger to this temp DB
    os.environ["SUBLEDGER_DB_PATH"] = str(path)
    from subledger.api import ensure_schemas
    ensure_schemas()
    return str(path)


@pytest.fixture()
def provider(tmp_db_path):
    from subledger.db import ConnectionProvider
    p = ConnectionProvider(tmp_db_path, busy_timeout_s=1.0)
    yield p
    p.close()


@pytest.fixture()
def service(provider):
    from subledger.services.subscription_svc import SubscriptionService
    return SubscriptionService(provider)


@pytest.fixture()
def client(tmp_db_path):
    from subledger.api import app
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture(autouse=True)
def _clean_db(tmp_db_path):
    # Clean tables before each test for isolation
    # Safety: ensure we only ever wipe the temp DB, never a real one
    assert os.environ.get("SUBLEDGER_DB_PATH") == tmp_db_path, "Refusing to clean non-temp DB"
    conn = sqlite3.connect(tmp_db_path)
    try:
        for t in ("subscriptions", "operation_log"):
            conn.execute(f"DELETE FROM {t}")
        conn.commit()
    finally:
        conn.close()
    yield

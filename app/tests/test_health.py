"""Smoke tests for the FastAPI application shell."""

from fastapi.testclient import TestClient
from sqlalchemy import inspect
from sqlalchemy.pool import StaticPool

from app import main as main_module
from app.core.config import Settings
from app.db.session import build_engine


def test_healthcheck(client) -> None:
    """The /health endpoint should return a success payload."""

    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_startup_creates_tables_when_enabled(monkeypatch) -> None:
    engine = build_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    monkeypatch.setattr(main_module, "get_settings", lambda: Settings(auto_create_tables=True))
    monkeypatch.setattr(main_module, "get_engine", lambda: engine)

    with TestClient(main_module.create_app()) as client:
        assert client.get("/health").status_code == 200

    tables = set(inspect(engine).get_table_names())
    assert {"patent", "assignee", "inventor", "classification", "citation", "patent_assignee"} <= tables
    engine.dispose()

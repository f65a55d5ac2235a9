"""Shared fixtures: an in-memory SQLite store and sample source rows."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from app.db.base import Base
from app.db.session import build_engine, build_session_factory, get_db
from app.main import app


@pytest.fixture
def engine():
    engine = build_engine(
        "sqlite+pysqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def client(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def fixed_clock():
    moment = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
    return lambda: moment


@pytest.fixture
def bigquery_record():
    """A publications row shaped like patents-public-data.patents.publications."""

    return {
        "publication_number": "US-11000001-B2",
        "publication_date": 20210601,
        "filing_date": 20190315,
        "priority_date": "2018-11-02",
        "title_localized": [
            {"text": "Graphen-Batterieanode", "language": "de"},
            {"text": "Graphene battery anode", "language": "en"},
        ],
        "abstract_localized": [
            {"text": "An anode comprising layered graphene sheets.", "language": "en"},
        ],
        "assignee": ["Flat Name Corp"],
        "inventor": ["Flat Inventor"],
        "assignee_harmonized": [
            {"name": "Acme Energy Inc", "country_code": "US"},
            {"name": "  ", "country_code": "DE"},
        ],
        "inventor_harmonized": [
            {"name": "Ada Marie Lovelace", "country_code": "GB"},
            {"name": "", "country_code": "US"},
        ],
        "cpc": [
            {"code": "H01M4/583", "title": "Carbonaceous material"},
            {"group_id": "H01M4/13"},
            {"code": ""},
        ],
        "ipc": [
            {"code": "H01M4/58"},
            {"symbol": "H01M4/02"},
            {},
        ],
        "citation": [
            {"publication_number": "US-9000000-B1", "category": "SEA"},
            {"category": "APP"},
        ],
    }

"""Database engine and session management helpers."""

from collections.abc import Generator
from functools import lru_cache

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import get_settings


def build_engine(database_url: str, echo: bool = False, **engine_options) -> Engine:
    """Create an engine; SQLite connections get foreign keys enforced."""

    engine = create_engine(database_url, pool_pre_ping=True, echo=echo, **engine_options)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, class_=Session)


@lru_cache()
def get_engine() -> Engine:
    """Provide the cached engine for the configured database."""

    settings = get_settings()
    return build_engine(settings.database_url, echo=settings.database_echo)


@lru_cache()
def get_session_factory() -> sessionmaker[Session]:
    return build_session_factory(get_engine())


def get_db() -> Generator[Session, None, None]:
    """Yield a database session and ensure it is closed after use."""

    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()

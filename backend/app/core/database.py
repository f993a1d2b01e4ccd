from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.app.core.config import settings


def _engine_options(database_url: str) -> dict[str, Any]:
    """SQLite needs cross-thread connections; in-memory databases share one."""
    options: dict[str, Any] = {"echo": settings.DATABASE_ECHO}
    if database_url.startswith("sqlite"):
        options["connect_args"] = {"check_same_thread": False}
        if database_url == "sqlite://" or ":memory:" in database_url:
            options["poolclass"] = StaticPool
    return options


engine = create_engine(settings.DATABASE_URL, **_engine_options(settings.DATABASE_URL))


def _unicode_lower(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


if settings.DATABASE_URL.startswith("sqlite"):

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
        # SQLite's built-in lower() only folds ASCII letters
        dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        # Lock waits share the query timeout
        cursor.execute(f"PRAGMA busy_timeout={int(settings.STORE_TIMEOUT_SECONDS * 1000)}")
        cursor.close()


SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


class Base(DeclarativeBase):
    pass


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Create any missing tables. Schema migrations are managed outside this service."""
    # Register every model on Base.metadata before create_all
    from backend.app.models import catalog, customer, transaction  # noqa: F401

    Base.metadata.create_all(bind=engine)

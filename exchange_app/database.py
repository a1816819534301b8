"""Database configuration and session management."""

from datetime import UTC, datetime

from sqlalchemy import create_engine, delete, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from exchange_app.config import settings
from exchange_app.models.database import Base, ExchangeRate, Transaction, User

# Children before parents so foreign keys never dangle mid-reset
RESET_ORDER = (Transaction, ExchangeRate, User)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str) -> Engine:
    """Create an engine with database-specific options."""
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False},  # Sessions run in worker threads
            echo=False,
        )
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    return create_engine(
        database_url,
        pool_size=10,
        max_overflow=20,
        pool_recycle=3600,
        pool_pre_ping=True,
        echo=False,
    )


def build_session_factory(bind: Engine) -> sessionmaker[Session]:
    """Create a session factory bound to ``bind``."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=bind)


engine = build_engine(settings.database_url)
SessionLocal = build_session_factory(engine)


def create_tables(bind: Engine | None = None) -> None:
    """Create all database tables."""
    Base.metadata.create_all(bind=bind or engine)


def get_db():
    """Dependency to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def reset_database(session: Session) -> dict[str, int]:
    """Delete every row of every application table.

    Returns:
        Number of deleted rows per table name
    """
    deleted = {}
    for model in RESET_ORDER:
        result = session.execute(delete(model))
        deleted[model.__tablename__] = result.rowcount
    session.commit()
    return deleted


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from SQLite."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)

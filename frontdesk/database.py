"""Database configuration and session management."""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from frontdesk.config import settings

SQLALCHEMY_DATABASE_URL = settings.DATABASE_URL


def _use_immediate_transactions(engine) -> None:
    """
    Make every SQLite transaction take the write lock up front.

    Deferred transactions that read and then write can deadlock under
    concurrent writers and fail with "database is locked" instead of waiting.
    """
    @event.listens_for(engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str):
    """Create an engine with the per-backend options the service relies on."""
    if url.startswith("sqlite"):
        # SQLite-specific config
        engine = create_engine(
            url,
            connect_args={"check_same_thread": False, "timeout": 30}
        )
        _use_immediate_transactions(engine)
        return engine
    # PostgreSQL config (production)
    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=5,
        max_overflow=10
    )


engine = build_engine(SQLALCHEMY_DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """Dependency for FastAPI endpoints to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

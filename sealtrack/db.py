"""Database engine, session factory and FastAPI dependency."""
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from sealtrack.settings import settings


def make_engine(url: str):
    """Create an engine; SQLite gets a thread-safe connection setup."""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


engine = make_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def init_db(bind=None) -> None:
    """Create all tables (development and tests; use migrations in production)."""
    # models register themselves on Base.metadata when imported
    import sealtrack.models  # noqa: F401

    Base.metadata.create_all(bind=bind or engine)


def get_db() -> Generator[Session, None, None]:
    """Yield a session per request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import make_url
from sqlalchemy.orm import declarative_base, sessionmaker

DEFAULT_DATABASE_URL = "postgresql://cmms@localhost/cmms"

# Services hand ORM rows back after their session has closed.
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)

Base = declarative_base()

DATABASE_URL = ""
engine = None


def _engine_options(database_url: str) -> dict:
    if make_url(database_url).drivername.startswith("sqlite"):
        # TestClient runs handlers on a worker thread.
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True}


def configure_database(database_url: Optional[str] = None) -> None:
    """Bind SessionLocal to ``database_url`` (default: $DATABASE_URL).

    Re-binding to the URL already in use is a no-op, so callers can
    invoke this repeatedly.
    """
    global DATABASE_URL, engine

    database_url = database_url or os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL)
    if engine is not None and DATABASE_URL == database_url:
        return

    if engine is not None:
        engine.dispose()

    engine = create_engine(database_url, **_engine_options(database_url))
    SessionLocal.configure(bind=engine)
    DATABASE_URL = database_url


configure_database()

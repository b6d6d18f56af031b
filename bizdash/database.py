"""Database configuration and session management."""
import os
import uuid
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

DEFAULT_DATABASE_URL = "sqlite:///./bizdash.db"


def database_url(raw: Optional[str] = None) -> str:
    """
    Resolve the connection URL from DATABASE_URL, falling back to a local
    SQLite file. Hosted PostgreSQL often hands out the legacy postgres://
    scheme, which SQLAlchemy 2 no longer accepts.
    """
    url = raw or os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    return url


def build_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        # Sessions cross threads under FastAPI's threadpool
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,  # Hosted PostgreSQL drops idle connections
        pool_size=5,
        max_overflow=10
    )


engine = build_engine(database_url())

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def new_id() -> str:
    """Opaque primary key shared by every table."""
    return str(uuid.uuid4())


def get_db():
    """Dependency for FastAPI endpoints to get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

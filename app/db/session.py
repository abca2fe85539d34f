from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from typing import Generator

from app.core.config import settings


def build_engine(database_url: str, timeout_seconds: int) -> Engine:
    """
    Create a database engine whose every call is bounded by ``timeout_seconds``.

    SQLite only gets a lock-wait timeout; PostgreSQL gets connect, statement
    and pool checkout timeouts.
    """
    if database_url.startswith("sqlite"):
        # SQLite doesn't support connection pooling parameters (max_overflow, pool_size)
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": timeout_seconds},
            echo=False,
        )
    return create_engine(
        database_url,
        connect_args={
            "connect_timeout": timeout_seconds,
            "options": f"-c statement_timeout={timeout_seconds * 1000}",
        },
        echo=False,
        pool_size=10,
        max_overflow=20,
        pool_timeout=timeout_seconds,
        pool_pre_ping=True,  # Test connections for liveness
    )


engine = build_engine(settings.database_url, settings.store_timeout_seconds)

# Create declarative base for models
Base = declarative_base()

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency for database sessions.
    Yields a database session and closes it after the request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

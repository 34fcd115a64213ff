"""Database configuration with SQLite fallback for local development."""
import logging
from contextlib import contextmanager
from typing import Iterator

from fastapi import Request
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

logger = logging.getLogger(__name__)

# Create Base class for models
Base = declarative_base()


class Database:
    """Owns the engine and session factory for one process.

    Built once at startup and handed to every component that needs the
    datastore; tests build their own against in-memory SQLite.
    """

    def __init__(self, url: str, engine: Engine = None):
        self.url = url
        if engine is not None:
            self.engine = engine
        elif url.startswith("sqlite"):
            self.engine = create_engine(
                url,
                connect_args={"check_same_thread": False},
                echo=False
            )
        else:
            self.engine = create_engine(
                url,
                pool_pre_ping=True,
                pool_size=10,
                max_overflow=20,
                echo=False
            )
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_all(self) -> None:
        """Initialize database tables."""
        # Register models on Base.metadata before creating tables
        from contract_review import models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        logger.info("Database tables initialized")

    def drop_all(self) -> None:
        Base.metadata.drop_all(bind=self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Open a short-lived session that is always closed."""
        db = self.SessionLocal()
        try:
            yield db
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request) -> Iterator[Session]:
    """Dependency to get database session."""
    db = request.app.state.database.SessionLocal()
    try:
        yield db
    finally:
        db.close()

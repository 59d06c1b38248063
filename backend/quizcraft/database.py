# SQLAlchemy engine handle and request-scoped DB dependency.
import logging
from threading import Lock
from typing import Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from quizcraft.errors import StoreUnavailable

logger = logging.getLogger("quizcraft.database")

Base = declarative_base()


class Database:
    """Owns the engine for one application; connects lazily on first use."""

    def __init__(self, url: str):
        self.url = url
        self._engine: Optional[Engine] = None
        self._sessionmaker: Optional[sessionmaker] = None
        self._lock = Lock()

    def _build_engine(self) -> Engine:
        if self.url.startswith("sqlite"):
            kwargs = {"connect_args": {"check_same_thread": False}}
            if self.url in ("sqlite://", "sqlite:///:memory:"):
                kwargs["poolclass"] = StaticPool
            return create_engine(self.url, future=True, **kwargs)
        return create_engine(self.url, future=True, pool_pre_ping=True)

    @property
    def engine(self) -> Engine:
        if self._engine is not None:
            return self._engine
        with self._lock:
            if self._engine is None:
                engine = self._build_engine()
                try:
                    with engine.connect() as connection:
                        connection.execute(text("SELECT 1"))
                except OperationalError as exc:
                    engine.dispose()
                    logger.error("Database connection failed: %s", exc)
                    raise StoreUnavailable("database is unavailable") from exc
                self._sessionmaker = sessionmaker(
                    autocommit=False, autoflush=False, bind=engine
                )
                self._engine = engine
                logger.info("Connected to database %s", engine.url.render_as_string())
        return self._engine

    def create_all(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def drop_all(self) -> None:
        Base.metadata.drop_all(bind=self.engine)

    def session(self) -> Session:
        self.engine
        return self._sessionmaker()

    def dispose(self) -> None:
        with self._lock:
            if self._engine is not None:
                self._engine.dispose()
            self._engine = None
            self._sessionmaker = None


# Provide a SQLAlchemy session for request-scoped usage.
def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.database.session()
    try:
        yield db
    finally:
        db.close()

"""SQLAlchemy engine and session handling.

Every storage failure is re-raised as StorageError so the pipeline can fail
the current scan without crashing the host process.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from vigil.exceptions import StorageError
from vigil.storage.base import Base

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///.vigil/vigil.db"


def create_db_engine(url: str) -> Engine:
    """Create a SQLAlchemy engine.

    SQLite file databases get their parent directory created. In-memory
    SQLite shares one connection across threads so every session sees the
    same database.

    Raises:
        StorageError: If the URL is invalid
    """
    try:
        parsed = make_url(url)
    except SQLAlchemyError as e:
        raise StorageError(f"Invalid database URL '{url}': {e}") from e

    if parsed.get_backend_name() != "sqlite":
        return create_engine(url, pool_pre_ping=True)

    database = parsed.database
    if not database or database == ":memory:":
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    Path(database).expanduser().parent.mkdir(parents=True, exist_ok=True)
    return create_engine(url, connect_args={"check_same_thread": False})


class Database:
    """Engine plus session factory for one storage URL.

    Usage:
        db = Database("sqlite:///.vigil/vigil.db")
        db.create_all()
        with db.session_scope() as session:
            ...
    """

    def __init__(self, url: str = DEFAULT_DATABASE_URL) -> None:
        self.url = url
        self.engine = create_db_engine(url)
        self._session_factory = sessionmaker(self.engine, expire_on_commit=False)

    def create_all(self) -> None:
        """Create all tables that do not exist yet."""
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to create tables: {e}") from e

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Transactional scope: commit on success, roll back on error.

        Raises:
            StorageError: If any database operation fails
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StorageError(f"Database error: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self) -> None:
        """Open a connection and run a trivial query.

        Raises:
            StorageError: If the database is unreachable
        """
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except SQLAlchemyError as e:
            raise StorageError(f"Cannot connect to {self.engine.url!r}: {e}") from e

    def dispose(self) -> None:
        self.engine.dispose()

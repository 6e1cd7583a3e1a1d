"""
Session and transaction management for the meta-model store.

All engine operations run through MetaModelStore.transaction(), which commits on
success, rolls back on any error and always closes the session it opened.
Connectivity failures from the driver are translated into
StorageUnavailableError; everything else propagates unchanged.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional, Tuple

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from eamodel.config import EngineSettings
from eamodel.errors import StorageUnavailableError
from eamodel.storage.sql_models import SUPPORTED_DIALECTS, Base

# Fragments drivers put in unique-violation messages (sqlite, postgres, mysql)
_UNIQUE_MARKERS = ("unique constraint", "duplicate key", "duplicate entry", "unique")


def is_unique_violation(error: IntegrityError) -> bool:
    """Whether an IntegrityError comes from a unique index rather than e.g. NOT NULL."""
    pgcode = getattr(error.orig, "pgcode", None)
    if pgcode is not None:
        return pgcode == "23505"
    message = str(error.orig).lower()
    return any(marker in message for marker in _UNIQUE_MARKERS)


def _is_unavailable(error: Exception) -> bool:
    if isinstance(error, (OperationalError, InterfaceError)):
        return True
    return isinstance(error, DBAPIError) and error.connection_invalidated


class MetaModelStore:
    """
    Relational store holding one table per node kind plus the relationship table.

    Args:
        session_factory: Factory producing SQLAlchemy sessions
        engine: Engine the factory is bound to; needed for schema management
    """
    _logger = logging.getLogger("MetaModelStore")

    def __init__(self, session_factory: sessionmaker, engine: Optional[Engine] = None) -> None:
        self._session_factory = session_factory
        self._engine = engine

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> "MetaModelStore":
        engine = create_engine(database_url, echo=echo)
        cls._logger.info(f"Using database {engine.url.render_as_string(hide_password=True)}")
        return cls(sessionmaker(bind=engine), engine)

    @classmethod
    def from_settings(cls, settings: EngineSettings) -> "MetaModelStore":
        return cls.from_url(settings.database_url, echo=settings.sql_echo)

    @property
    def engine(self) -> Optional[Engine]:
        return self._engine

    def create_all(self) -> None:
        """
        Create all tables and indexes that do not exist yet.

        Raises:
            RuntimeError: No engine, or a dialect without partial index support
        """
        if self._engine is None:
            raise RuntimeError("create_all() needs a store built with an engine")
        dialect = self._engine.dialect.name
        if dialect not in SUPPORTED_DIALECTS:
            self._logger.error(f"Refusing to create schema on unsupported dialect {dialect!r}")
            raise RuntimeError(
                f"Dialect {dialect!r} is not supported; name uniqueness needs partial indexes "
                f"({', '.join(SUPPORTED_DIALECTS)})"
            )
        try:
            Base.metadata.create_all(self._engine)
        except DBAPIError as e:
            if _is_unavailable(e):
                raise StorageUnavailableError(f"Database not available: {e.orig}") from e
            raise
        self._logger.info("Schema created")

    def drop_all(self) -> None:
        if self._engine is None:
            raise RuntimeError("drop_all() needs a store built with an engine")
        Base.metadata.drop_all(self._engine)

    def get_session(self, existing_session: Optional[Session] = None) -> Tuple[Session, bool]:
        """
        Get a session - either the provided one or a new one.

        Args:
            existing_session: Optional existing session to reuse

        Returns:
            Tuple of (session, should_close_when_done)
        """
        if existing_session is not None:
            self._logger.debug("Reusing provided session")
            return existing_session, False

        self._logger.debug("Creating new session")
        return self._session_factory(), True

    @contextmanager
    def transaction(self, session: Optional[Session] = None) -> Iterator[Session]:
        """
        Run a block as one atomic unit.

        When an outer session is passed in, commit and rollback are left to
        whoever owns it.
        """
        session, own_session = self.get_session(session)
        try:
            yield session
            if own_session:
                session.commit()
        except DBAPIError as e:
            if own_session:
                session.rollback()
            if _is_unavailable(e):
                self._logger.error(f"Storage unavailable: {e.orig}")
                raise StorageUnavailableError(f"Database not available: {e.orig}") from e
            raise
        except Exception:
            if own_session:
                session.rollback()
            raise
        finally:
            if own_session:
                session.close()

    def get_registry_status(self) -> Dict[str, Any]:
        return {
            "storage": "sql",
            "dialect": self._engine.dialect.name if self._engine is not None else None,
        }

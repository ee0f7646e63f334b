import random
import time
from typing import Callable, Optional, TypeVar

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError
from sqlmodel import create_engine, SQLModel, Session, text

from sprintkeeper.config import settings
from sprintkeeper.core.exceptions import (
    ConfigurationError,
    IntegrityViolation,
    TransientRepositoryError,
)
from sprintkeeper.core.logging import get_logger
from sprintkeeper.services.sprint_repository import SprintRepository

logger = get_logger(__name__)

T = TypeVar("T")

# No AUTOCOMMIT: every unit of work commits as a whole.
SUPPORTED_ISOLATION_LEVELS = {
    "SERIALIZABLE",
    "REPEATABLE READ",
    "READ COMMITTED",
    "READ UNCOMMITTED",
}

# Levels the pysqlite dialect accepts; every other dialect gets the full set.
DIALECT_ISOLATION_LEVELS = {
    "sqlite": {"SERIALIZABLE", "READ UNCOMMITTED"},
}


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: Optional[str] = None, **kwargs) -> Engine:
    """
    Create an engine for `database_url` (defaults to settings.database_url).

    PostgreSQL gets a tuned connection pool. SQLite gets foreign keys switched on
    so ON DELETE CASCADE on sprint_commitments actually fires.
    """
    url = database_url or settings.database_url
    if not url:
        raise ConfigurationError("DATABASE_URL is not set")

    is_sqlite = url.startswith("sqlite")
    options = dict(echo=False)
    if not is_sqlite:
        options.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=settings.db_pool_recycle,
        )
    options.update(kwargs)

    new_engine = create_engine(url, **options)
    if is_sqlite:
        event.listen(new_engine, "connect", _enable_sqlite_foreign_keys)

    logger.info(
        "database_engine_configured",
        dialect=new_engine.dialect.name,
        pool_size=options.get("pool_size"),
        max_overflow=options.get("max_overflow"),
    )
    return new_engine


engine = build_engine()


def init_db(bind: Optional[Engine] = None, max_retries: int = 5, delay: float = 2.0):
    """
    Creates the sprint tables if they do not exist yet.
    Retries a few times because the database container may still be starting.
    """
    bind = bind or engine
    for i in range(max_retries):
        try:
            logger.info("connecting_to_database", attempt=i + 1)

            # Register tables
            from sprintkeeper import schema  # noqa: F401

            SQLModel.metadata.create_all(bind)
            logger.info("database_initialized", status="success", dialect=bind.dialect.name)
            return
        except OperationalError as e:
            logger.error("database_connection_failed", error=str(e), attempt=i + 1)
            if i < max_retries - 1:
                logger.info("retrying_connection", delay=delay)
                time.sleep(delay)
            else:
                logger.critical("initialization_failed")
                raise


class TransactionRunner:
    """
    Runs a unit of work against a SprintRepository inside one transaction.

    - commit on success, full rollback on any exception (including timeouts)
    - configurable isolation level
    - bounded exponential backoff with jitter for write conflicts and dropped
      connections; the work callable is re-invoked from scratch on every attempt,
      so it must read its inputs inside the transaction
    - IntegrityViolation raised by the work is never retried
    """

    def __init__(
        self,
        bind: Optional[Engine] = None,
        isolation_level: Optional[str] = "default",
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        statement_timeout_ms: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if isolation_level == "default":
            isolation_level = settings.tx_isolation_level
        if isolation_level is not None:
            isolation_level = isolation_level.upper()
            if isolation_level not in SUPPORTED_ISOLATION_LEVELS:
                raise ConfigurationError(f"Unsupported isolation level: {isolation_level}")

        self.bind = bind or engine
        if isolation_level is not None:
            dialect = self.bind.dialect.name
            if isolation_level not in DIALECT_ISOLATION_LEVELS.get(dialect, SUPPORTED_ISOLATION_LEVELS):
                raise ConfigurationError(f"Isolation level {isolation_level} is not supported by {dialect}")
        self.isolation_level = isolation_level
        self.max_retries = settings.tx_max_retries if max_retries is None else max_retries
        self.base_delay = settings.tx_base_delay_seconds if base_delay is None else base_delay
        self.max_delay = settings.tx_max_delay_seconds if max_delay is None else max_delay
        self.statement_timeout_ms = (
            settings.statement_timeout_ms if statement_timeout_ms is None else statement_timeout_ms
        )
        self.sleep = sleep

        if self.max_retries < 0:
            raise ConfigurationError("max_retries must not be negative")

    def _session_bind(self):
        if self.isolation_level is None:
            return self.bind
        return self.bind.execution_options(isolation_level=self.isolation_level)

    def _apply_timeout(self, session: Session):
        if self.statement_timeout_ms and self.bind.dialect.name == "postgresql":
            session.exec(text(f"SET LOCAL statement_timeout = {int(self.statement_timeout_ms)}"))

    def backoff(self, attempt: int) -> float:
        """min(base * 2^attempt, max) plus up to 20% jitter."""
        delay = min(self.base_delay * (2 ** attempt), self.max_delay)
        return delay * (1 + random.uniform(0, 0.2))

    def read(self, work: Callable[[SprintRepository], T]) -> T:
        """Run read-only work. Nothing is committed."""
        with Session(self._session_bind(), expire_on_commit=False) as session:
            return work(SprintRepository(session))

    def run(self, work: Callable[[SprintRepository], T], label: str = "transaction") -> T:
        last_error: Optional[Exception] = None
        attempts = self.max_retries + 1

        for attempt in range(attempts):
            session = Session(self._session_bind(), expire_on_commit=False)
            try:
                with session.begin():
                    self._apply_timeout(session)
                    return work(SprintRepository(session))
            except IntegrityViolation:
                logger.error("transaction_integrity_violation", label=label, attempt=attempt + 1)
                raise
            except (IntegrityError, StaleDataError) as e:
                # A concurrent writer got there first: duplicate sprint index, or
                # a row this unit of work updates was deleted underneath it.
                last_error = e
                logger.warning(
                    "transaction_conflict", label=label, attempt=attempt + 1, error=str(getattr(e, "orig", e))
                )
            except OperationalError as e:
                last_error = e
                logger.warning("transaction_transient_failure", label=label, attempt=attempt + 1, error=str(e.orig))
            except DBAPIError as e:
                if not e.connection_invalidated:
                    raise
                last_error = e
                logger.warning("transaction_connection_lost", label=label, attempt=attempt + 1)
            finally:
                session.close()

            if attempt < attempts - 1:
                delay = self.backoff(attempt)
                logger.info("transaction_retry_scheduled", label=label, delay=round(delay, 3))
                self.sleep(delay)

        logger.error("transaction_retries_exhausted", label=label, attempts=attempts)
        if isinstance(last_error, (IntegrityError, StaleDataError)):
            raise IntegrityViolation(
                f"{label}: conflict still present after {attempts} attempts: {getattr(last_error, 'orig', last_error)}"
            ) from last_error
        raise TransientRepositoryError(
            f"{label}: failed after {attempts} attempts: {last_error}", attempts=attempts
        ) from last_error

"""
Target Store Access

Wraps a SQLAlchemy engine bound to one PostgreSQL schema. A single set of
models serves every schema: sessions run with ``schema_translate_map`` so the
unqualified tables resolve to the configured schema.

Key Features:
- Transactional session context manager, one unit of work per block
- Connection check with linear-backoff retry for connection establishment
- Cached availability check; the live dispatcher gate reads it without
  blocking and refreshes it in the background
- Filtered row counts for the verifier and run summaries
- Verbatim application of externally supplied DDL files
"""

import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Mapping, Optional

import structlog
from sqlalchemy import create_engine, func, inspect, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from dualsync.models import db
from dualsync.services.base import FatalMigrationError, retry_with_linear_backoff

logger = structlog.get_logger(__name__)


def create_target_engine(url: str, pool_size: int = 5, **options) -> Engine:
    """
    Build a target engine with a deliberately small connection pool.

    The pool bounds backfill throughput so the relational store is not
    saturated while it also serves live traffic.
    """
    engine_options = {'pool_pre_ping': True, 'pool_recycle': 3600}
    engine_options.update(options)
    if url.startswith('sqlite'):
        for key in ('pool_size', 'max_overflow', 'pool_recycle'):
            engine_options.pop(key, None)
    else:
        engine_options['pool_size'] = pool_size
        engine_options.setdefault('max_overflow', 0)
    return create_engine(url, **engine_options)


class TargetStore:
    """
    Session factory and maintenance operations for one target schema.

    Args:
        engine: SQLAlchemy engine for the relational store
        schema: PostgreSQL schema name, or None for the connection default
        availability_ttl: Seconds an availability check result is reused
    """

    def __init__(self, engine: Engine, schema: Optional[str] = None,
                 availability_ttl: float = 5.0):
        self.schema = schema
        self.base_engine = engine
        if schema:
            self.engine = engine.execution_options(schema_translate_map={None: schema})
        else:
            self.engine = engine
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self._availability_ttl = availability_ttl
        self._availability_lock = threading.Lock()
        self._refresh_lock = threading.Lock()
        self._available: Optional[bool] = None
        self._checked_at = 0.0

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session committed on success and rolled back on any error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def ping(self) -> None:
        with self.engine.connect() as connection:
            connection.execute(text('SELECT 1'))

    def connect_with_retry(self, max_attempts: int = 5, backoff: float = 3.0,
                           sleep: Callable[[float], Any] = time.sleep) -> None:
        """
        Ping the target until it answers or the attempt ceiling is reached.

        Raises:
            TargetUnavailableError: After ``max_attempts`` failed pings
        """
        ping = retry_with_linear_backoff(
            max_attempts=max_attempts,
            backoff=backoff,
            exceptions=(SQLAlchemyError,),
            sleep=sleep,
        )(self.ping)
        ping()
        logger.info("target_connected", schema=self.schema)
        self._mark_available(True)

    def is_available(self) -> bool:
        """
        Return the cached result of a ``SELECT 1`` check, refreshing it when
        stale. May block for one round trip; the live dispatch gate uses
        ``known_availability`` instead.
        """
        cached = self._fresh_availability()
        if cached is not None:
            return cached
        with self._refresh_lock:
            cached = self._fresh_availability()
            if cached is not None:
                return cached
            return self._check()

    def known_availability(self) -> bool:
        """
        Last check result, without touching the database.

        A stale or missing result starts one background refresh. Until the
        first check completes the target counts as available.
        """
        with self._availability_lock:
            available = self._available
            stale = available is None or time.monotonic() - self._checked_at >= self._availability_ttl
        if stale and self._refresh_lock.acquire(blocking=False):
            threading.Thread(target=self._background_refresh, name='target-ping', daemon=True).start()
        return True if available is None else available

    def _background_refresh(self) -> None:
        try:
            self._check()
        finally:
            self._refresh_lock.release()

    def _check(self) -> bool:
        try:
            self.ping()
            available = True
        except SQLAlchemyError as e:
            logger.warning("target_unavailable", schema=self.schema, error=str(e)[:200])
            available = False
        self._mark_available(available)
        return available

    def _fresh_availability(self) -> Optional[bool]:
        with self._availability_lock:
            if self._available is not None and time.monotonic() - self._checked_at < self._availability_ttl:
                return self._available
        return None

    def _mark_available(self, available: bool) -> None:
        with self._availability_lock:
            self._available = available
            self._checked_at = time.monotonic()

    def count(self, model, filters: Optional[Mapping[str, Any]] = None) -> int:
        """Count rows of ``model``, optionally restricted by column equality filters."""
        query = select(func.count()).select_from(model)
        for key, value in (filters or {}).items():
            column = getattr(model, key)
            query = query.where(column.is_(None) if value is None else column == value)
        with self.session() as session:
            return session.execute(query).scalar_one()

    def source_ids(self, model) -> Iterator[str]:
        """Stream every non-null source id stored for ``model``."""
        with self.session() as session:
            result = session.execute(
                select(model.source_id).where(model.source_id.is_not(None)).execution_options(yield_per=1000)
            )
            for (source_id,) in result:
                yield source_id

    def missing_tables(self) -> set:
        with self.engine.connect() as connection:
            existing = set(inspect(connection).get_table_names(schema=self.schema))
        return set(db.metadata.tables) - existing

    def ensure_schema(self, ddl_dir: Optional[str] = None) -> None:
        """
        Make sure the schema and its tables exist.

        On PostgreSQL the schema is created if absent. When tables are missing
        every ``*.sql`` file in ``ddl_dir`` is executed verbatim, in name
        order. Failures here abort the run for this schema.

        Raises:
            FatalMigrationError: Missing privileges, DDL directory or tables
        """
        if self.schema and self.dialect == 'postgresql':
            try:
                with self.base_engine.begin() as connection:
                    connection.exec_driver_sql(f'CREATE SCHEMA IF NOT EXISTS "{self.schema}"')
            except SQLAlchemyError as e:
                raise FatalMigrationError(
                    f"Cannot create schema {self.schema!r}", original_error=e, schema=self.schema
                )

        missing = self.missing_tables()
        if not missing:
            return

        if not ddl_dir:
            raise FatalMigrationError(
                f"Target schema is missing tables: {', '.join(sorted(missing))}",
                schema=self.schema,
            )

        ddl_files = sorted(Path(ddl_dir).glob('*.sql'))
        if not ddl_files:
            raise FatalMigrationError(f"No DDL files found in {ddl_dir}", schema=self.schema)

        for ddl_file in ddl_files:
            logger.info("applying_ddl", schema=self.schema, file=ddl_file.name)
            try:
                with self.base_engine.begin() as connection:
                    if self.schema and self.dialect == 'postgresql':
                        connection.exec_driver_sql(f'SET search_path TO "{self.schema}"')
                    connection.exec_driver_sql(ddl_file.read_text())
            except SQLAlchemyError as e:
                raise FatalMigrationError(
                    f"Applying {ddl_file.name} failed", original_error=e, schema=self.schema
                )

        still_missing = self.missing_tables()
        if still_missing:
            raise FatalMigrationError(
                f"Tables still missing after DDL: {', '.join(sorted(still_missing))}",
                schema=self.schema,
            )

    def dispose(self) -> None:
        self.base_engine.dispose()


__all__ = ['TargetStore', 'create_target_engine']

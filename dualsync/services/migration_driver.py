"""
Batch Migration Driver

Backfills (or verifies) every entity type from the source store into one
target schema, strictly in dependency order, with durable per-type progress.

Per entity type the driver moves ``pending -> in_progress -> completed |
partial``. A type whose stored state is ``completed`` with a synced count
equal to the live source count is skipped unless the run is forced, so an
interrupted run resumes at the next entity-type boundary.

Per-record failures and deferrals are tallied and sampled, never fatal. Only
connection establishment is retried, and only a fatal error (unreachable
target, missing DDL, missing privileges) aborts the schema. MigrationRunner
isolates schemas from each other.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

import structlog

from dualsync.config import MigrationSettings
from dualsync.models import SyncStatus
from dualsync.services.base import (
    ConfigurationError, FatalMigrationError, RecordWriteError, SyncError,
)
from dualsync.services.migration_state import MigrationStateStore
from dualsync.services.target_store import TargetStore, create_target_engine
from dualsync.services.upsert_writer import UpsertWriter, WriteOutcome
from dualsync.services.verifier import ReconciliationVerifier
from dualsync.transformers import MIGRATION_ORDER, TRANSFORMER_REGISTRY
from dualsync.utils.logging import bind_run_context

logger = structlog.get_logger(__name__)


class RunMode(Enum):
    MIGRATE = 'migrate'
    DRY_RUN = 'dry_run'
    VERIFY = 'verify'


@dataclass
class EntityReport:
    """Summary row for one entity type in one schema run."""
    entity_type: str
    source_count: int = 0
    target_count: int = 0
    synced: int = 0
    deferred: int = 0
    errors: int = 0
    duration: float = 0.0
    status: str = SyncStatus.PENDING.value
    skipped: bool = False
    error_samples: List[str] = field(default_factory=list)

    @property
    def error_total(self) -> int:
        """Records not synced: hard failures plus deferrals."""
        return self.errors + self.deferred

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity_type': self.entity_type,
            'source_count': self.source_count,
            'target_count': self.target_count,
            'synced': self.synced,
            'deferred': self.deferred,
            'errors': self.errors,
            'duration': round(self.duration, 3),
            'status': self.status,
            'skipped': self.skipped,
            'error_samples': list(self.error_samples),
        }


@dataclass
class SchemaRunReport:
    target_name: str
    schema: Optional[str]
    mode: RunMode
    entities: List[EntityReport] = field(default_factory=list)
    fatal_error: Optional[str] = None

    @property
    def has_errors(self) -> bool:
        if self.fatal_error:
            return True
        if any(e.error_total for e in self.entities):
            return True
        if self.mode is RunMode.VERIFY:
            return any(e.source_count != e.target_count for e in self.entities)
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {
            'target': self.target_name,
            'schema': self.schema,
            'mode': self.mode.value,
            'fatal_error': self.fatal_error,
            'entities': [e.to_dict() for e in self.entities],
        }


class BatchMigrationDriver:
    """
    Runs one mode against target schemas.

    Args:
        source: Source store (count / fetch_page)
        settings: Batch tuning
        sleep: Sleep function used by the connection retry
    """

    def __init__(self, source, settings: MigrationSettings,
                 sleep: Callable[[float], Any] = time.sleep):
        self.source = source
        self.settings = settings
        self.sleep = sleep

    def run_schema(self, target: TargetStore, mode: RunMode = RunMode.MIGRATE,
                   force: bool = False, target_name: Optional[str] = None,
                   entity_types: Optional[Iterable[str]] = None) -> SchemaRunReport:
        """
        Process every entity type for one target schema.

        Raises:
            FatalMigrationError: The schema cannot be reached or prepared
        """
        entity_types = list(entity_types or MIGRATION_ORDER)
        report = SchemaRunReport(target_name or (target.schema or 'default'), target.schema, mode)
        bind_run_context(target=report.target_name, schema=target.schema, mode=mode.value)

        try:
            target.connect_with_retry(
                max_attempts=self.settings.connect_attempts,
                backoff=self.settings.connect_backoff,
                sleep=self.sleep,
            )
        except SyncError as e:
            raise FatalMigrationError(
                f"Target {report.target_name!r} is unreachable: {e.message}",
                original_error=e, schema=target.schema,
            )

        if mode is RunMode.MIGRATE:
            target.ensure_schema(self.settings.ddl_dir)

        writer = UpsertWriter(target)
        state = MigrationStateStore(target)
        verifier = ReconciliationVerifier(self.source, target, writer=writer,
                                          error_sample_size=self.settings.error_sample_size)

        logger.info("schema_run_started", entity_types=len(entity_types))
        for entity_type in entity_types:
            started = time.monotonic()
            entity = EntityReport(entity_type)
            try:
                self._process(entity, target, writer, state, verifier, mode, force)
            except Exception as e:
                entity.errors = 1
                entity.status = SyncStatus.PARTIAL.value
                self._sample(entity, f"{type(e).__name__}: {e}")
                logger.exception("entity_migration_failed", entity_type=entity_type)
            entity.duration = time.monotonic() - started
            report.entities.append(entity)

        logger.info(
            "schema_run_finished",
            synced=sum(e.synced for e in report.entities),
            errors=sum(e.error_total for e in report.entities),
        )
        return report

    # ------------------------------------------------------------------

    def _process(self, entity: EntityReport, target: TargetStore, writer: UpsertWriter,
                 state: MigrationStateStore, verifier: ReconciliationVerifier,
                 mode: RunMode, force: bool) -> None:
        entity_type = entity.entity_type
        model = TRANSFORMER_REGISTRY[entity_type].model

        if mode is RunMode.DRY_RUN:
            entity.source_count = self.source.count(entity_type)
            entity.target_count = target.count(model)
            entity.status = 'dry_run'
            logger.info("dry_run_counts", entity_type=entity_type,
                        source_count=entity.source_count, target_count=entity.target_count)
            return

        if mode is RunMode.VERIFY:
            drift = verifier.compare(entity_type)
            entity.source_count = drift.source_count
            entity.target_count = drift.target_count
            entity.status = 'match' if drift.match else 'drift'
            return

        entity.source_count = self.source.count(entity_type)
        previous = state.get(target.schema, entity_type)
        if (not force and previous is not None
                and previous.sync_status is SyncStatus.COMPLETED
                and previous.synced_count == entity.source_count):
            entity.skipped = True
            entity.synced = previous.synced_count
            entity.status = previous.status
            entity.target_count = target.count(model)
            logger.info("entity_skipped_complete", entity_type=entity_type, synced=entity.synced)
            return

        state.mark_in_progress(target.schema, entity_type)
        logger.info("entity_migration_started", entity_type=entity_type, source_count=entity.source_count)

        self._backfill(entity, writer)

        status = SyncStatus.COMPLETED if entity.error_total == 0 else SyncStatus.PARTIAL
        state.finish(target.schema, entity_type, status, entity.synced, entity.error_total)
        entity.status = status.value
        entity.target_count = target.count(model)

        log = logger.info if status is SyncStatus.COMPLETED else logger.warning
        log(
            "entity_migration_finished",
            entity_type=entity_type,
            status=status.value,
            synced=entity.synced,
            deferred=entity.deferred,
            errors=entity.errors,
        )

    def _backfill(self, entity: EntityReport, writer: UpsertWriter) -> None:
        batch_size = self.settings.batch_size
        executor = None
        if self.settings.workers > 1:
            executor = ThreadPoolExecutor(max_workers=self.settings.workers,
                                          thread_name_prefix='migration')
        try:
            skip = 0
            while True:
                page = self.source.fetch_page(entity.entity_type, skip, batch_size)
                if not page:
                    break
                self._write_page(entity, writer, page, executor)
                logger.debug("batch_processed", entity_type=entity.entity_type,
                             skip=skip, size=len(page))
                if len(page) < batch_size:
                    break
                skip += batch_size
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

    def _write_page(self, entity: EntityReport, writer: UpsertWriter,
                    page: List[Dict[str, Any]], executor: Optional[ThreadPoolExecutor]) -> None:
        if executor is None:
            outcomes = (self._write_one(writer, entity.entity_type, doc) for doc in page)
        else:
            outcomes = executor.map(lambda doc: self._write_one(writer, entity.entity_type, doc), page)

        for outcome, error in outcomes:
            if error is not None:
                entity.errors += 1
                self._sample(entity, error)
            elif outcome is WriteOutcome.WRITTEN:
                entity.synced += 1
            elif outcome is WriteOutcome.DEFERRED:
                entity.deferred += 1
            else:
                entity.errors += 1

    @staticmethod
    def _write_one(writer: UpsertWriter, entity_type: str, document: Dict[str, Any]):
        try:
            return writer.write(entity_type, document).outcome, None
        except RecordWriteError as e:
            return None, e.message

    def _sample(self, entity: EntityReport, message: str) -> None:
        if len(entity.error_samples) < self.settings.error_sample_size:
            entity.error_samples.append(message[:200])


class MigrationRunner:
    """
    Runs the driver over one or more named targets, each on its own engine.

    A fatal error in one schema is recorded on that schema's report and the
    remaining schemas still run.
    """

    def __init__(self, source, settings: MigrationSettings,
                 engine_factory: Callable[..., Any] = create_target_engine,
                 sleep: Callable[[float], Any] = time.sleep,
                 dispose_engines: bool = True):
        self.source = source
        self.settings = settings
        self.engine_factory = engine_factory
        self.dispose_engines = dispose_engines
        self.driver = BatchMigrationDriver(source, settings, sleep=sleep)

    def run(self, selectors: Optional[Iterable[str]] = None, mode: RunMode = RunMode.MIGRATE,
            force: bool = False) -> List[SchemaRunReport]:
        targets = self.settings.resolve_targets(list(selectors or []))
        reports = []
        for target_name, schema in targets.items():
            reports.append(self._run_target(target_name, schema, mode, force))
        return reports

    def _run_target(self, target_name: str, schema: Optional[str], mode: RunMode,
                    force: bool) -> SchemaRunReport:
        engine = None
        try:
            engine = self.engine_factory(
                self.settings.database_url,
                pool_size=self.settings.pool_size,
                **self.settings.engine_options,
            )
            target = TargetStore(engine, schema=schema)
            return self.driver.run_schema(target, mode=mode, force=force, target_name=target_name)
        except (FatalMigrationError, ConfigurationError) as e:
            logger.error("schema_run_aborted", target=target_name, schema=schema, error=e.message)
            return SchemaRunReport(target_name, schema, mode, fatal_error=e.message)
        finally:
            if engine is not None and self.dispose_engines:
                engine.dispose()

"""
Reconciliation Verifier

Count-based drift detection between the source and target stores. Equal
counts mean no detectable drift; they cannot reveal field-level mismatches.

The verifier also closes the gap left by bulk source mutations, which are
not dispatched live:
- ``reconcile_after_bulk_update`` re-transforms every source document
  matching the bulk filter (bounded by a resync limit)
- ``reconcile_after_bulk_delete`` removes target rows whose source document
  no longer exists
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import structlog

from dualsync.services.base import RecordWriteError
from dualsync.services.target_store import TargetStore
from dualsync.services.upsert_writer import UpsertWriter, WriteOutcome
from dualsync.transformers import MIGRATION_ORDER, TRANSFORMER_REGISTRY

logger = structlog.get_logger(__name__)


@dataclass
class DriftReport:
    entity_type: str
    source_count: int
    target_count: int

    @property
    def match(self) -> bool:
        return self.source_count == self.target_count

    @property
    def difference(self) -> int:
        return self.source_count - self.target_count

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity_type': self.entity_type,
            'source_count': self.source_count,
            'target_count': self.target_count,
            'match': self.match,
        }


@dataclass
class ReconcileResult:
    """Outcome of a bulk-mutation reconciliation."""
    entity_type: str
    operation: str
    matched: int = 0
    written: int = 0
    deferred: int = 0
    deleted: int = 0
    failed: int = 0
    truncated: bool = False
    errors: List[str] = field(default_factory=list)
    drift: Optional[DriftReport] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity_type': self.entity_type,
            'operation': self.operation,
            'matched': self.matched,
            'written': self.written,
            'deferred': self.deferred,
            'deleted': self.deleted,
            'failed': self.failed,
            'truncated': self.truncated,
            'errors': list(self.errors),
            'drift': self.drift.to_dict() if self.drift else None,
        }


class ReconciliationVerifier:
    """
    Args:
        source: Source store (count / find / ids)
        target: Target store for the schema being checked
        writer: Writer used to re-transform records; built on ``target`` if omitted
        resync_limit: Upper bound on documents re-written per bulk update
    """

    def __init__(self, source, target: TargetStore, writer: Optional[UpsertWriter] = None,
                 resync_limit: int = 5000, error_sample_size: int = 5):
        self.source = source
        self.target = target
        self.writer = writer or UpsertWriter(target)
        self.resync_limit = resync_limit
        self.error_sample_size = error_sample_size

    def compare(self, entity_type: str, source_filter: Optional[Mapping[str, Any]] = None,
                target_filter: Optional[Mapping[str, Any]] = None) -> DriftReport:
        model = TRANSFORMER_REGISTRY[entity_type].model
        report = DriftReport(
            entity_type=entity_type,
            source_count=self.source.count(entity_type, source_filter),
            target_count=self.target.count(model, target_filter),
        )
        log = logger.info if report.match else logger.warning
        log("drift_checked", **report.to_dict())
        return report

    def verify_all(self, entity_types: Optional[List[str]] = None) -> List[DriftReport]:
        return [self.compare(entity_type) for entity_type in (entity_types or MIGRATION_ORDER)]

    def reconcile_after_bulk_update(self, entity_type: str, source_filter: Mapping[str, Any],
                                    limit: Optional[int] = None) -> ReconcileResult:
        """
        Re-write every source document matching ``source_filter``.

        At most ``limit`` (default: the resync limit) documents are processed;
        a warning is logged when more match.
        """
        limit = limit or self.resync_limit
        result = ReconcileResult(entity_type, 'bulkUpdate')
        result.matched = self.source.count(entity_type, source_filter)
        if result.matched > limit:
            result.truncated = True
            logger.warning(
                "bulk_resync_truncated",
                entity_type=entity_type,
                matched=result.matched,
                limit=limit,
            )

        for document in self.source.find(entity_type, source_filter, limit=limit):
            try:
                outcome = self.writer.write(entity_type, document).outcome
            except RecordWriteError as e:
                result.failed += 1
                self._sample(result, str(e))
                continue
            if outcome is WriteOutcome.WRITTEN:
                result.written += 1
            elif outcome is WriteOutcome.DEFERRED:
                result.deferred += 1

        result.drift = self.compare(entity_type)
        logger.info("bulk_update_reconciled", **{k: v for k, v in result.to_dict().items() if k != 'drift'})
        return result

    def reconcile_after_bulk_delete(self, entity_type: str) -> ReconcileResult:
        """Hard-delete target rows whose source document no longer exists."""
        result = ReconcileResult(entity_type, 'bulkDelete')
        model = TRANSFORMER_REGISTRY[entity_type].model

        live_ids = set(self.source.ids(entity_type))
        orphans = [sid for sid in self.target.source_ids(model) if sid not in live_ids]
        result.matched = len(orphans)

        for source_id in orphans:
            try:
                if self.writer.delete(entity_type, source_id).outcome is WriteOutcome.DELETED:
                    result.deleted += 1
            except RecordWriteError as e:
                result.failed += 1
                self._sample(result, str(e))

        result.drift = self.compare(entity_type)
        logger.info("bulk_delete_reconciled", entity_type=entity_type,
                    orphans=result.matched, deleted=result.deleted, failed=result.failed)
        return result

    def _sample(self, result: ReconcileResult, message: str) -> None:
        if len(result.errors) < self.error_sample_size:
            result.errors.append(message[:200])

"""
Migration state persistence.

Reads and writes the ``migration_sync`` rows that make batch runs resumable
at entity-type granularity.
"""

from typing import List, Optional

import structlog
from sqlalchemy import select

from dualsync.models import MigrationSync, SyncStatus, state_key
from dualsync.models.base import utcnow
from dualsync.services.target_store import TargetStore

logger = structlog.get_logger(__name__)


class MigrationStateStore:

    def __init__(self, target: TargetStore):
        self.target = target

    def get(self, schema: Optional[str], entity_type: str) -> Optional[MigrationSync]:
        with self.target.session() as session:
            return session.execute(
                select(MigrationSync).where(MigrationSync.collection == state_key(schema, entity_type))
            ).scalar_one_or_none()

    def all(self, schema: Optional[str]) -> List[MigrationSync]:
        prefix = state_key(schema, '')
        with self.target.session() as session:
            return list(session.execute(
                select(MigrationSync)
                .where(MigrationSync.collection.startswith(prefix, autoescape=True))
                .order_by(MigrationSync.collection)
            ).scalars())

    def mark_in_progress(self, schema: Optional[str], entity_type: str) -> MigrationSync:
        return self._save(schema, entity_type, SyncStatus.IN_PROGRESS)

    def finish(self, schema: Optional[str], entity_type: str, status: SyncStatus,
               synced: int, errors: int) -> MigrationSync:
        state = self._save(schema, entity_type, status, synced=synced, errors=errors, stamp=True)
        logger.info(
            "migration_state_saved",
            schema=schema,
            entity_type=entity_type,
            status=status.value,
            synced=synced,
            errors=errors,
        )
        return state

    def _save(self, schema: Optional[str], entity_type: str, status: SyncStatus,
              synced: Optional[int] = None, errors: Optional[int] = None,
              stamp: bool = False) -> MigrationSync:
        key = state_key(schema, entity_type)
        with self.target.session() as session:
            state = session.execute(
                select(MigrationSync).where(MigrationSync.collection == key)
            ).scalar_one_or_none()
            if state is None:
                state = MigrationSync(collection=key, synced_count=0, error_count=0)
                session.add(state)
            state.status = status.value
            if synced is not None:
                state.synced_count = synced
            if errors is not None:
                state.error_count = errors
            if stamp:
                state.last_sync_at = utcnow()
            session.flush()
            return state

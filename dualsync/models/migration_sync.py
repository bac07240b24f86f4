"""
Durable batch-migration progress, one row per (schema, entity type).

The row is keyed by the unique ``collection`` column holding
``"{schema}:{entity}"``, which matches the externally supplied DDL and lets a
single state table live in each target schema.
"""

import uuid
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import Column, DateTime, Integer, Text, Uuid

from dualsync.models.base import db, utcnow


class SyncStatus(Enum):
    """Per-entity-type migration state."""
    PENDING = 'pending'
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'
    PARTIAL = 'partial'


def state_key(schema: Optional[str], entity_type: str) -> str:
    return f"{schema or 'public'}:{entity_type}"


class MigrationSync(db.Model):
    __tablename__ = 'migration_sync'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    collection = Column(Text, unique=True, nullable=False)
    status = Column(Text, nullable=False, default=SyncStatus.PENDING.value)
    synced_count = Column(Integer, nullable=False, default=0)
    error_count = Column(Integer, nullable=False, default=0)
    last_sync_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def key_parts(self) -> Tuple[str, str]:
        schema, _, entity_type = self.collection.partition(':')
        return schema, entity_type

    @property
    def schema(self) -> str:
        return self.key_parts[0]

    @property
    def entity_type(self) -> str:
        return self.key_parts[1]

    @property
    def sync_status(self) -> SyncStatus:
        return SyncStatus(self.status)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'schema': self.schema,
            'entity_type': self.entity_type,
            'status': self.status,
            'synced_count': self.synced_count,
            'error_count': self.error_count,
            'last_sync_at': self.last_sync_at.isoformat() if self.last_sync_at else None,
        }

    def __repr__(self) -> str:
        return f"<MigrationSync {self.collection} {self.status} synced={self.synced_count} errors={self.error_count}>"

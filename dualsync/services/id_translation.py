"""
ID Translation

The persisted mapping from a source document id to a target primary key is
the unique ``mongo_id`` column on every replicated table. This module looks
that mapping up inside the caller's session, so reads see rows written
earlier in the same unit of work.
"""

import uuid
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from dualsync.services.base import UnresolvedReference


def normalize_source_id(value: Any) -> Optional[str]:
    """
    Turn a source id reference into its canonical string form.

    Accepts ObjectId instances, extended-JSON ``{"$oid": ...}`` dicts, embedded
    documents carrying ``_id`` and plain strings. Empty values map to None.
    """
    if value is None:
        return None
    if isinstance(value, dict):
        if '$oid' in value:
            value = value['$oid']
        elif '_id' in value:
            return normalize_source_id(value['_id'])
        else:
            return None
    text = str(value).strip()
    return text or None


class IdTranslator:
    """
    Resolve source ids to target primary keys within one session.

    Lookups are memoized for the lifetime of the translator, which is one
    record write.
    """

    def __init__(self, session: Session):
        self.session = session
        self._cache: Dict[Tuple[str, str], Optional[uuid.UUID]] = {}

    def lookup(self, model, source_id: Any) -> Optional[uuid.UUID]:
        source_id = normalize_source_id(source_id)
        if source_id is None:
            return None
        key = (model.__tablename__, source_id)
        if key not in self._cache:
            self._cache[key] = self.session.execute(
                select(model.id).where(model.source_id == source_id)
            ).scalar_one_or_none()
        return self._cache[key]

    def require(self, owner_type: str, field: str, model, source_id: Any) -> uuid.UUID:
        """
        Resolve a mandatory reference.

        Raises:
            UnresolvedReference: The referenced record has not been replicated yet
        """
        target_id = self.lookup(model, source_id)
        if target_id is None:
            raise UnresolvedReference(owner_type, field, model.__name__,
                                      normalize_source_id(source_id))
        return target_id

    def optional(self, model, source_id: Any) -> Optional[uuid.UUID]:
        """Resolve a nullable reference; a miss yields None."""
        return self.lookup(model, source_id)

    def find_by_source_id(self, model, source_id: str):
        return self.session.execute(
            select(model).where(model.source_id == source_id)
        ).scalar_one_or_none()

    def find_by_natural_key(self, model, column: str, value: Any):
        return self.session.execute(
            select(model).where(getattr(model, column) == value).limit(1)
        ).scalar_one_or_none()

"""
Upsert Writer

Idempotent replication of one source document into its target row.

Write path, one transaction per record:
1. transform the document, resolving references through ID Translation
2. find the row by ``source_id``; update it in place or insert a new one
3. replace child collections wholesale (delete, then reinsert)

On a unique violation the transaction is rolled back and the row is looked
up by ``source_id`` once more in a fresh transaction, since a concurrent
writer may have inserted it; a hit is updated in place. Otherwise the
entity's natural keys are tried in order (e.g. ``mobile`` then ``username`` for
users). A match means the same real-world record was created in the target
independently; it is updated in place and adopts the new ``source_id``. Only
when no natural key matches does the conflict surface as RecordWriteError.

A required reference that is not replicated yet defers the record: nothing
is written, a warning is logged and the DEFERRED outcome is returned.
"""

import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from dualsync.services.base import RecordWriteError, UnresolvedReference
from dualsync.services.id_translation import IdTranslator, normalize_source_id
from dualsync.services.target_store import TargetStore
from dualsync.transformers import TRANSFORMER_REGISTRY, EntityTransformer, TransformResult

logger = structlog.get_logger(__name__)


class WriteOutcome(Enum):
    """Result of a single writer call."""
    WRITTEN = 'written'
    DEFERRED = 'deferred'
    SKIPPED = 'skipped'
    DELETED = 'deleted'


@dataclass
class WriteResult:
    entity_type: str
    source_id: Optional[str]
    outcome: WriteOutcome
    target_id: Optional[uuid.UUID] = None
    created: bool = False
    natural_key: Optional[str] = None
    reason: Optional[str] = None

    @property
    def written(self) -> bool:
        return self.outcome is WriteOutcome.WRITTEN

    def to_dict(self) -> Dict[str, Any]:
        return {
            'entity_type': self.entity_type,
            'source_id': self.source_id,
            'outcome': self.outcome.value,
            'target_id': str(self.target_id) if self.target_id else None,
            'created': self.created,
            'natural_key': self.natural_key,
            'reason': self.reason,
        }


def is_unique_violation(error: IntegrityError) -> bool:
    """Tell unique-constraint violations apart from other integrity errors."""
    original = getattr(error, 'orig', None)
    code = getattr(original, 'pgcode', None) or getattr(original, 'sqlstate', None)
    if code:
        return code == '23505'
    message = str(original or error).lower()
    return 'unique' in message or 'duplicate key' in message


class UpsertWriter:
    """
    Writes and hard-deletes target rows for source documents.

    Args:
        target: Target store the writer is bound to
        transformers: Entity type to transformer mapping
    """

    def __init__(self, target: TargetStore,
                 transformers: Optional[Mapping[str, EntityTransformer]] = None):
        self.target = target
        self.transformers = transformers or TRANSFORMER_REGISTRY

    def transformer_for(self, entity_type: str) -> EntityTransformer:
        try:
            return self.transformers[entity_type]
        except KeyError:
            raise RecordWriteError(f"Unknown entity type: {entity_type!r}", entity_type=entity_type)

    def write(self, entity_type: str, document: Mapping[str, Any]) -> WriteResult:
        """
        Upsert one source document.

        Returns:
            WriteResult with outcome WRITTEN, DEFERRED or SKIPPED

        Raises:
            RecordWriteError: The record could not be written
        """
        transformer = self.transformer_for(entity_type)
        source_id = transformer.source_id(document)
        if source_id is None:
            logger.warning("write_skipped_missing_id", entity_type=entity_type)
            return WriteResult(entity_type, None, WriteOutcome.SKIPPED, reason='missing _id')

        try:
            with self.target.session() as session:
                return self._upsert(session, transformer, source_id, document)
        except UnresolvedReference as e:
            return self._deferred(transformer, source_id, e)
        except IntegrityError as e:
            if not is_unique_violation(e):
                raise self._failure(transformer, source_id, e)
            return self._resolve_conflict(transformer, source_id, document, e)
        except (SQLAlchemyError, ValueError, TypeError) as e:
            raise self._failure(transformer, source_id, e)

    def delete(self, entity_type: str, source_id: Any) -> WriteResult:
        """
        Hard-delete the row (and its children) mirroring ``source_id``.

        Deleting a record that was never replicated is a no-op.
        """
        transformer = self.transformer_for(entity_type)
        source_id = normalize_source_id(source_id)
        if source_id is None:
            return WriteResult(entity_type, None, WriteOutcome.SKIPPED, reason='missing _id')

        try:
            with self.target.session() as session:
                row = IdTranslator(session).find_by_source_id(transformer.model, source_id)
                if row is None:
                    return WriteResult(entity_type, source_id, WriteOutcome.SKIPPED, reason='not replicated')
                target_id = row.id
                for child_model, parent_key in transformer.child_models.values():
                    session.execute(delete(child_model).where(getattr(child_model, parent_key) == target_id))
                session.delete(row)
        except SQLAlchemyError as e:
            raise self._failure(transformer, source_id, e)

        logger.info("record_deleted", entity_type=entity_type, source_id=source_id)
        return WriteResult(entity_type, source_id, WriteOutcome.DELETED, target_id=target_id)

    # ------------------------------------------------------------------

    def _upsert(self, session: Session, transformer: EntityTransformer, source_id: str,
                document: Mapping[str, Any], row=None,
                result: Optional[TransformResult] = None) -> WriteResult:
        refs = IdTranslator(session)
        if result is None:
            result = transformer.transform(document, refs)

        model = transformer.model
        if row is None:
            row = refs.find_by_source_id(model, source_id)
        created = row is None
        if created:
            row = model(id=uuid.uuid4())
            session.add(row)

        row.source_id = source_id
        for key, value in result.fields.items():
            setattr(row, key, value)
        session.flush()

        if result.children is not None:
            self._replace_children(session, transformer, row.id, result.children)

        return WriteResult(
            transformer.entity_type, source_id, WriteOutcome.WRITTEN,
            target_id=row.id, created=created,
        )

    def _replace_children(self, session: Session, transformer: EntityTransformer,
                          parent_id: uuid.UUID, children: Mapping[str, Any]) -> None:
        for name, rows in children.items():
            child_model, parent_key = transformer.child_models[name]
            session.execute(delete(child_model).where(getattr(child_model, parent_key) == parent_id))
            for values in rows:
                session.add(child_model(id=uuid.uuid4(), **{parent_key: parent_id}, **values))
        session.flush()

    def _resolve_conflict(self, transformer: EntityTransformer, source_id: str,
                          document: Mapping[str, Any], conflict: IntegrityError) -> WriteResult:
        # Another writer may have inserted this source id between lookup and insert.
        try:
            with self.target.session() as session:
                row = IdTranslator(session).find_by_source_id(transformer.model, source_id)
                if row is not None:
                    logger.info("source_id_conflict_retried", entity_type=transformer.entity_type,
                                source_id=source_id)
                    return self._upsert(session, transformer, source_id, document, row=row)
        except UnresolvedReference as e:
            return self._deferred(transformer, source_id, e)
        except IntegrityError as e:
            if not is_unique_violation(e):
                raise self._failure(transformer, source_id, e)
            conflict = e
        except (SQLAlchemyError, ValueError, TypeError) as e:
            raise self._failure(transformer, source_id, e)

        if not transformer.natural_keys:
            raise self._failure(transformer, source_id, conflict)
        return self._write_by_natural_key(transformer, source_id, document, conflict)

    def _write_by_natural_key(self, transformer: EntityTransformer, source_id: str,
                              document: Mapping[str, Any], conflict: IntegrityError) -> WriteResult:
        try:
            with self.target.session() as session:
                refs = IdTranslator(session)
                result = transformer.transform(document, refs)
                for key in transformer.natural_keys:
                    value = result.fields.get(key)
                    if value is None or value == '':
                        continue
                    row = refs.find_by_natural_key(transformer.model, key, value)
                    if row is None:
                        continue
                    logger.info(
                        "natural_key_match",
                        entity_type=transformer.entity_type,
                        source_id=source_id,
                        natural_key=key,
                        previous_source_id=row.source_id,
                    )
                    written = self._upsert(session, transformer, source_id, document, row=row, result=result)
                    written.natural_key = key
                    return written
        except UnresolvedReference as e:
            return self._deferred(transformer, source_id, e)
        except (SQLAlchemyError, ValueError, TypeError) as e:
            raise self._failure(transformer, source_id, e)

        raise self._failure(transformer, source_id, conflict)

    def _deferred(self, transformer: EntityTransformer, source_id: str,
                  error: UnresolvedReference) -> WriteResult:
        logger.warning(
            "write_deferred",
            entity_type=transformer.entity_type,
            source_id=source_id,
            field=error.field,
            referenced_type=error.referenced_type,
            referenced_id=error.referenced_id,
        )
        return WriteResult(
            transformer.entity_type, source_id, WriteOutcome.DEFERRED, reason=error.message
        )

    def _failure(self, transformer: EntityTransformer, source_id: str,
                 error: Exception) -> RecordWriteError:
        logger.error(
            "write_failed",
            entity_type=transformer.entity_type,
            source_id=source_id,
            error=str(error)[:500],
        )
        return RecordWriteError(
            f"{transformer.entity_type} {source_id}: {error}",
            original_error=error,
            entity_type=transformer.entity_type,
            source_id=source_id,
        )

"""
Source-store mutation signals.

The application layer (or ObservedCollection) announces each source-store
mutation on one of these blinker signals, with the entity type name as the
sender. The live dispatcher subscribes to all four.

Bulk updates and bulk deletes have no signal: they do not yield the changed
documents, so callers reconcile explicitly afterwards.
"""

from typing import Any, Iterable, Mapping

from blinker import Namespace

_signals = Namespace()

record_saved = _signals.signal('record-saved', doc="A document was created or saved. Kwargs: document")
record_updated = _signals.signal('record-updated', doc="A document was updated in place. Kwargs: document")
records_inserted = _signals.signal('records-inserted', doc="Documents were bulk inserted. Kwargs: documents")
record_deleted = _signals.signal('record-deleted', doc="A document was deleted. Kwargs: source_id")


def notify_saved(entity_type: str, document: Mapping[str, Any]) -> None:
    record_saved.send(entity_type, document=document)


def notify_updated(entity_type: str, document: Mapping[str, Any]) -> None:
    record_updated.send(entity_type, document=document)


def notify_inserted(entity_type: str, documents: Iterable[Mapping[str, Any]]) -> None:
    records_inserted.send(entity_type, documents=list(documents))


def notify_deleted(entity_type: str, source_id: Any) -> None:
    record_deleted.send(entity_type, source_id=source_id)

"""
Observed pymongo collection.

Wraps a pymongo Collection so single-document mutations announce themselves
on the ``dualsync.signals`` signals after the source write succeeds. Bulk
``update_many``/``delete_many`` pass straight through without a signal;
callers reconcile those explicitly.
"""

from typing import Any, Iterable, Mapping

from pymongo import ReturnDocument

from dualsync import signals


class ObservedCollection:
    """
    Args:
        collection: pymongo Collection for the entity
        entity_type: Entity type name used as the signal sender
    """

    def __init__(self, collection, entity_type: str):
        self.collection = collection
        self.entity_type = entity_type

    def insert_one(self, document: Mapping[str, Any], *args, **kwargs):
        result = self.collection.insert_one(document, *args, **kwargs)
        saved = dict(document)
        saved.setdefault('_id', result.inserted_id)
        signals.notify_saved(self.entity_type, saved)
        return result

    def insert_many(self, documents: Iterable[Mapping[str, Any]], *args, **kwargs):
        documents = list(documents)
        result = self.collection.insert_many(documents, *args, **kwargs)
        inserted = []
        for document, inserted_id in zip(documents, result.inserted_ids):
            document = dict(document)
            document.setdefault('_id', inserted_id)
            inserted.append(document)
        signals.notify_inserted(self.entity_type, inserted)
        return result

    def replace_one(self, filter: Mapping[str, Any], replacement: Mapping[str, Any], *args, **kwargs):
        result = self.collection.replace_one(filter, replacement, *args, **kwargs)
        if result.matched_count or result.upserted_id is not None:
            saved = dict(replacement)
            saved.setdefault('_id', result.upserted_id if result.upserted_id is not None else filter.get('_id'))
            if saved.get('_id') is None:
                saved = self.collection.find_one(filter)
            if saved is not None:
                signals.notify_saved(self.entity_type, saved)
        return result

    def find_one_and_update(self, filter: Mapping[str, Any], update: Mapping[str, Any], *args, **kwargs):
        kwargs.setdefault('return_document', ReturnDocument.AFTER)
        document = self.collection.find_one_and_update(filter, update, *args, **kwargs)
        if document is not None:
            if kwargs['return_document'] is not ReturnDocument.AFTER:
                document = self.collection.find_one({'_id': document['_id']})
            if document is not None:
                signals.notify_updated(self.entity_type, document)
        return document

    def find_one_and_delete(self, filter: Mapping[str, Any], *args, **kwargs):
        document = self.collection.find_one_and_delete(filter, *args, **kwargs)
        if document is not None:
            signals.notify_deleted(self.entity_type, document['_id'])
        return document

    def delete_one(self, filter: Mapping[str, Any], *args, **kwargs):
        existing = self.collection.find_one(filter, {'_id': 1})
        result = self.collection.delete_one(filter, *args, **kwargs)
        if existing is not None and result.deleted_count:
            signals.notify_deleted(self.entity_type, existing['_id'])
        return result

    def __getattr__(self, name: str):
        return getattr(self.collection, name)

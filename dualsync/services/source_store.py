"""
MongoDB Source Store

Read access to the legacy document store: per-entity counts, paged full
scans and filtered queries. Documents come back normalized, with every
ObjectId turned into its hex string, so transformers and the target store
only ever see plain Python values.

Paging uses skip/limit over an ``_id`` sort, which keeps page boundaries
stable while a backfill runs.
"""

from typing import Any, Dict, Iterator, List, Mapping, Optional

import structlog
from bson import ObjectId
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

from dualsync.services.base import ConfigurationError, TargetUnavailableError
from dualsync.transformers import ENTITY_COLLECTIONS

logger = structlog.get_logger(__name__)


def normalize_document(value: Any) -> Any:
    """Recursively replace ObjectId values with their string form."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, Mapping):
        return {key: normalize_document(item) for key, item in value.items()}
    if isinstance(value, list):
        return [normalize_document(item) for item in value]
    return value


def _id_filter(source_filter: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Coerce hex-string ``_id`` filters back into ObjectIds."""
    query = dict(source_filter or {})
    raw = query.get('_id')
    if isinstance(raw, str) and ObjectId.is_valid(raw):
        query['_id'] = ObjectId(raw)
    return query


class MongoSourceStore:
    """
    Source store backed by a pymongo Database.

    Args:
        database: pymongo Database holding the legacy collections
        collections: Entity type to collection name mapping
    """

    def __init__(self, database: Database, collections: Optional[Mapping[str, str]] = None,
                 client: Optional[MongoClient] = None):
        self.database = database
        self.collections = dict(collections or ENTITY_COLLECTIONS)
        self._client = client

    @classmethod
    def from_uri(cls, uri: str, database: Optional[str] = None,
                 timeout_ms: int = 10000) -> 'MongoSourceStore':
        """
        Build a store from a connection string.

        The client connects lazily; call ``ping()`` to fail fast.
        """
        if not uri:
            raise ConfigurationError("MONGODB_URI is not configured")
        client = MongoClient(uri, serverSelectionTimeoutMS=timeout_ms, tz_aware=False)
        if database:
            db_handle = client[database]
        else:
            db_handle = client.get_default_database()
            if db_handle is None:
                raise ConfigurationError("MONGODB_DATABASE is not configured and the URI names no database")
        return cls(db_handle, client=client)

    def ping(self) -> None:
        try:
            self.database.command('ping')
        except PyMongoError as e:
            raise TargetUnavailableError("Source store is unreachable", original_error=e)

    def collection(self, entity_type: str):
        try:
            return self.database[self.collections[entity_type]]
        except KeyError:
            raise ConfigurationError(f"No source collection for entity type {entity_type!r}")

    def count(self, entity_type: str, source_filter: Optional[Mapping[str, Any]] = None) -> int:
        return self.collection(entity_type).count_documents(_id_filter(source_filter))

    def fetch_page(self, entity_type: str, skip: int, limit: int,
                   source_filter: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        cursor = (
            self.collection(entity_type)
            .find(_id_filter(source_filter))
            .sort('_id', ASCENDING)
            .skip(skip)
            .limit(limit)
        )
        return [normalize_document(doc) for doc in cursor]

    def find(self, entity_type: str, source_filter: Optional[Mapping[str, Any]] = None,
             limit: Optional[int] = None) -> List[Dict[str, Any]]:
        cursor = self.collection(entity_type).find(_id_filter(source_filter)).sort('_id', ASCENDING)
        if limit:
            cursor = cursor.limit(limit)
        return [normalize_document(doc) for doc in cursor]

    def ids(self, entity_type: str) -> Iterator[str]:
        for doc in self.collection(entity_type).find({}, {'_id': 1}):
            yield str(doc['_id'])

    def close(self) -> None:
        if self._client is not None:
            self._client.close()

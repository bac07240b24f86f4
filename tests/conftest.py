"""
Pytest configuration and shared fixtures.

Provides:
- an in-memory SQLite target engine (StaticPool, so worker threads share the
  same database) with every replicated table created
- an in-memory source store double implementing the read surface of
  MongoSourceStore
- a Flask application built with TestingConfig around that source double
"""

from collections import defaultdict
from typing import Any, Dict, Iterator, List, Mapping, Optional

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from dualsync.app import create_app
from dualsync.config import MigrationSettings
from dualsync.models import db
from dualsync.services.failure_counters import FailureCounters
from dualsync.services.id_translation import normalize_source_id
from dualsync.services.target_store import TargetStore
from dualsync.services.upsert_writer import UpsertWriter


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: Unit tests against in-memory stores")
    config.addinivalue_line("markers", "integration: Tests through the Flask test client and CLI runner")


class InMemorySourceStore:
    """Source store double keyed by entity type, with equality filters."""

    def __init__(self):
        self.documents: Dict[str, Dict[str, Dict[str, Any]]] = defaultdict(dict)
        self.closed = False

    def add(self, entity_type: str, *documents: Mapping[str, Any]) -> List[Dict[str, Any]]:
        added = []
        for document in documents:
            document = dict(document)
            self.documents[entity_type][normalize_source_id(document['_id'])] = document
            added.append(document)
        return added

    def remove(self, entity_type: str, source_id: str) -> None:
        self.documents[entity_type].pop(source_id, None)

    def _matching(self, entity_type: str, source_filter: Optional[Mapping[str, Any]]):
        source_filter = source_filter or {}
        for source_id in sorted(self.documents[entity_type]):
            document = self.documents[entity_type][source_id]
            if all(document.get(key) == value for key, value in source_filter.items()):
                yield dict(document)

    def count(self, entity_type: str, source_filter=None) -> int:
        return sum(1 for _ in self._matching(entity_type, source_filter))

    def fetch_page(self, entity_type: str, skip: int, limit: int, source_filter=None):
        return list(self._matching(entity_type, source_filter))[skip:skip + limit]

    def find(self, entity_type: str, source_filter=None, limit=None):
        documents = list(self._matching(entity_type, source_filter))
        return documents[:limit] if limit else documents

    def ids(self, entity_type: str) -> Iterator[str]:
        return iter(sorted(self.documents[entity_type]))

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def engine():
    engine = create_engine(
        'sqlite://',
        poolclass=StaticPool,
        connect_args={'check_same_thread': False},
    )
    db.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def target(engine):
    store = TargetStore(engine)
    # Known-available up front, so the dispatch gate never pings in the background.
    store.connect_with_retry(max_attempts=1)
    return store


@pytest.fixture
def writer(target):
    return UpsertWriter(target)


@pytest.fixture
def source():
    return InMemorySourceStore()


@pytest.fixture
def counters():
    return FailureCounters()


@pytest.fixture
def settings():
    return MigrationSettings(
        database_url='sqlite://',
        targets={'test': None},
        batch_size=2,
        connect_attempts=3,
        connect_backoff=0.0,
    )


@pytest.fixture
def app(source):
    app = create_app('testing', source_store=source)
    services = app.extensions['dualsync']

    with app.app_context():
        db.create_all()
        engine = db.engine

    # Migration runs reuse the app's in-memory database instead of opening a new one.
    services.engine_factory = lambda url, **options: engine
    services.dispose_engines = False
    services.target.connect_with_retry(max_attempts=1)

    yield app

    services.shutdown()
    with app.app_context():
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def cli_runner(app):
    return app.test_cli_runner()


@pytest.fixture
def services(app):
    return app.extensions['dualsync']

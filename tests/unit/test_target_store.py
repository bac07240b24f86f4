"""
Unit tests for TargetStore maintenance operations and FailureCounters.
"""

import threading
import time
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError

from dualsync.models import User
from dualsync.services.base import FatalMigrationError
from dualsync.services.failure_counters import FailureCounters
from dualsync.services.target_store import TargetStore, create_target_engine

from factories import UserDocumentFactory


@pytest.fixture
def empty_target():
    engine = create_engine('sqlite://')
    yield TargetStore(engine)
    engine.dispose()


@pytest.mark.unit
class TestEnsureSchema:

    def test_complete_schema_needs_no_ddl(self, target):
        assert target.missing_tables() == set()
        target.ensure_schema(ddl_dir=None)

    def test_missing_tables_without_ddl_dir_is_fatal(self, empty_target):
        with pytest.raises(FatalMigrationError) as excinfo:
            empty_target.ensure_schema()
        assert 'users' in excinfo.value.message

    def test_empty_ddl_dir_is_fatal(self, empty_target, tmp_path):
        with pytest.raises(FatalMigrationError) as excinfo:
            empty_target.ensure_schema(str(tmp_path))
        assert 'No DDL files' in excinfo.value.message

    def test_failing_ddl_is_fatal(self, empty_target, tmp_path):
        (tmp_path / '001_broken.sql').write_text('CREATE TABLE (')
        with pytest.raises(FatalMigrationError) as excinfo:
            empty_target.ensure_schema(str(tmp_path))
        assert '001_broken.sql' in excinfo.value.message
        assert excinfo.value.original_error is not None

    def test_incomplete_ddl_is_fatal(self, empty_target, tmp_path):
        (tmp_path / '001_users.sql').write_text('CREATE TABLE users (id INTEGER PRIMARY KEY)')
        with pytest.raises(FatalMigrationError) as excinfo:
            empty_target.ensure_schema(str(tmp_path))
        assert 'still missing' in excinfo.value.message
        assert 'users' not in empty_target.missing_tables()


@pytest.mark.unit
class TestAvailability:

    def test_check_result_is_cached(self, engine):
        target = TargetStore(engine)
        with patch.object(TargetStore, 'ping') as ping:
            assert target.is_available() is True
            assert target.is_available() is True
        assert ping.call_count == 1

    def test_failed_ping_reports_unavailable(self, engine):
        target = TargetStore(engine, availability_ttl=0)
        with patch.object(TargetStore, 'ping',
                          side_effect=OperationalError('SELECT 1', {}, Exception('down'))):
            assert target.is_available() is False
        assert target.is_available() is True

    def test_known_availability_never_waits_for_the_ping(self, engine):
        target = TargetStore(engine, availability_ttl=0)
        probing, release = threading.Event(), threading.Event()

        def slow_ping():
            probing.set()
            release.wait(5)

        with patch.object(TargetStore, 'ping', side_effect=slow_ping):
            started = time.monotonic()
            assert target.known_availability() is True
            assert target.known_availability() is True
            elapsed = time.monotonic() - started
            assert probing.wait(5)
            release.set()

        assert elapsed < 0.5

    def test_background_refresh_updates_cached_flag(self, engine):
        target = TargetStore(engine, availability_ttl=60)
        refreshed = threading.Event()

        def failing_ping():
            refreshed.set()
            raise OperationalError('SELECT 1', {}, Exception('down'))

        with patch.object(TargetStore, 'ping', side_effect=failing_ping):
            assert target.known_availability() is True
            assert refreshed.wait(5)
            target._refresh_lock.acquire(timeout=5)
            target._refresh_lock.release()

        assert target.known_availability() is False

    def test_count_with_null_filter(self, target, writer):
        writer.write('User', UserDocumentFactory(email=None))
        writer.write('User', UserDocumentFactory())
        assert target.count(User, {'email': None}) == 1
        assert target.count(User) == 2

    def test_sqlite_engine_drops_pool_sizing(self):
        engine = create_target_engine('sqlite://', pool_size=3, max_overflow=0)
        try:
            assert engine.dialect.name == 'sqlite'
        finally:
            engine.dispose()


@pytest.mark.unit
class TestFailureCounters:

    def test_increment_snapshot_and_reset(self):
        counters = FailureCounters()
        counters.increment('User', 'save')
        counters.increment('User', 'save')
        counters.increment('Order', 'bulkUpdate', amount=3)

        assert counters.get('User', 'save') == 2
        assert counters.snapshot() == {'User:save': 2, 'Order:bulkUpdate': 3}
        assert counters.total() == 5

        counters.reset()
        assert counters.snapshot() == {}
        assert counters.get('User', 'save') == 0

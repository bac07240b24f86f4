"""
Unit tests for LiveHookDispatcher: gating, failure counting, bulk
reconciliation and signal wiring.
"""

import threading
import time
from unittest.mock import MagicMock, patch

import pytest
from structlog.testing import capture_logs

from dualsync import signals
from dualsync.models import User
from dualsync.services.dispatcher import LiveHookDispatcher
from dualsync.services.failure_counters import FailureCounters
from dualsync.services.target_store import TargetStore
from dualsync.services.upsert_writer import UpsertWriter, WriteOutcome, WriteResult
from dualsync.services.verifier import ReconciliationVerifier

from factories import BrandDocumentFactory, UserDocumentFactory, object_id


@pytest.fixture
def dispatcher(writer, target, counters, source):
    verifier = ReconciliationVerifier(source, target, writer=writer)
    dispatcher = LiveHookDispatcher(
        writer, target, enabled=True, counters=counters,
        max_workers=1, queue_size=10, verifier=verifier,
    ).connect()
    yield dispatcher
    dispatcher.shutdown()


@pytest.mark.unit
class TestGating:

    def test_disabled_flag_is_silent_noop(self, dispatcher, target):
        dispatcher.enabled = False
        assert dispatcher.dispatch_write('User', UserDocumentFactory()) is None
        signals.notify_saved('User', UserDocumentFactory())

        assert dispatcher.drain(timeout=5)
        assert target.count(User) == 0
        assert dispatcher.get_failure_counters() == {}

    def test_unavailable_target_is_silent_noop(self, writer, counters):
        target = MagicMock()
        target.known_availability.return_value = False
        dispatcher = LiveHookDispatcher(writer, target, enabled=True, counters=counters)
        try:
            assert dispatcher.dispatch_write('User', UserDocumentFactory()) is None
            assert counters.snapshot() == {}
        finally:
            dispatcher.shutdown()

    def test_flag_may_be_a_callable(self, writer, target):
        flags = {'on': False}
        dispatcher = LiveHookDispatcher(writer, target, enabled=lambda: flags['on'])
        try:
            assert dispatcher.is_active() is False
            flags['on'] = True
            assert dispatcher.is_active() is True
        finally:
            dispatcher.shutdown()

    def test_stale_availability_does_not_block_the_caller(self, engine, counters):
        target = TargetStore(engine, availability_ttl=0)
        writer = MagicMock(spec=UpsertWriter)
        release = threading.Event()
        dispatcher = LiveHookDispatcher(writer, target, enabled=True, counters=counters)
        try:
            with patch.object(TargetStore, 'ping', side_effect=lambda: release.wait(5)):
                started = time.monotonic()
                dispatcher.dispatch_write('User', UserDocumentFactory())
                elapsed = time.monotonic() - started
                release.set()
            assert dispatcher.drain(timeout=5)
        finally:
            release.set()
            dispatcher.shutdown()

        assert elapsed < 0.5
        writer.write.assert_called_once()

    def test_malformed_payload_is_counted_not_raised(self, dispatcher):
        signals.notify_saved('User', 'not-a-document')
        signals.notify_inserted('User', [42])

        assert dispatcher.get_failure_counters() == {'User:save': 1, 'User:insertMany': 1}

    def test_malformed_payload_with_closed_gate_is_silent(self, dispatcher):
        dispatcher.enabled = False
        signals.notify_saved('User', 'not-a-document')
        signals.record_deleted.send('User', source_id=object())
        assert dispatcher.get_failure_counters() == {}


@pytest.mark.unit
class TestDispatch:

    def test_save_signal_replicates_record(self, dispatcher, target):
        signals.notify_saved('User', UserDocumentFactory())
        assert dispatcher.drain(timeout=5)
        assert target.count(User) == 1

    def test_insert_many_dispatches_each_document(self, dispatcher, target):
        signals.notify_inserted('User', UserDocumentFactory.build_batch(3))
        assert dispatcher.drain(timeout=5)
        assert target.count(User) == 3

    def test_update_with_no_match_is_ignored(self, dispatcher, target):
        signals.notify_updated('User', None)
        assert dispatcher.pending == 0
        assert target.count(User) == 0

    def test_delete_signal_removes_row(self, dispatcher, writer, target):
        document = UserDocumentFactory()
        writer.write('User', document)

        signals.notify_deleted('User', document['_id'])
        assert dispatcher.drain(timeout=5)
        assert target.count(User) == 0

    def test_natural_key_match_does_not_count_failure(self, dispatcher, writer, target):
        existing = UserDocumentFactory(mobile='9111111111')
        writer.write('User', existing)

        recreated = UserDocumentFactory(mobile='9111111111')
        signals.notify_saved('User', recreated)
        assert dispatcher.drain(timeout=5)

        assert target.count(User) == 1
        assert target.count(User, {'source_id': recreated['_id']}) == 1
        assert dispatcher.counters.get('User', 'save') == 0

    def test_deferred_write_is_not_a_failure(self, dispatcher, target):
        signals.notify_saved('Brand', BrandDocumentFactory(ownerUserId=object_id()))
        assert dispatcher.drain(timeout=5)
        assert dispatcher.get_failure_counters() == {}


@pytest.mark.unit
class TestFailureCounting:

    def test_writer_failure_is_counted_and_never_raised(self, target, counters):
        writer = MagicMock(spec=UpsertWriter)
        writer.write.side_effect = RuntimeError('boom')
        dispatcher = LiveHookDispatcher(writer, target, enabled=True, counters=counters).connect()
        try:
            with capture_logs() as logs:
                signals.notify_saved('User', UserDocumentFactory())
                assert dispatcher.drain(timeout=5)
        finally:
            dispatcher.shutdown()

        assert counters.get('User', 'save') == 1
        assert any(log['event'] == 'dual_write_failed' for log in logs)

    def test_full_queue_counts_instead_of_blocking(self, target, counters):
        release = threading.Event()
        writer = MagicMock(spec=UpsertWriter)
        writer.write.side_effect = lambda entity_type, document: (
            release.wait(5) and WriteResult(entity_type, document['_id'], WriteOutcome.WRITTEN)
        )
        dispatcher = LiveHookDispatcher(writer, target, enabled=True, counters=counters,
                                        max_workers=1, queue_size=1)
        try:
            assert dispatcher.dispatch_write('User', UserDocumentFactory()) is not None
            assert dispatcher.dispatch_write('User', UserDocumentFactory(), 'insertMany') is None
            assert counters.get('User', 'insertMany') == 1
        finally:
            release.set()
            dispatcher.shutdown()

    def test_counters_are_isolated_and_resettable(self, writer, target):
        first = LiveHookDispatcher(writer, target, enabled=True, counters=FailureCounters())
        second = LiveHookDispatcher(writer, target, enabled=True, counters=FailureCounters())
        try:
            first.counters.increment('Order', 'update')
            first.counters.increment('Order', 'update')
            assert first.get_failure_counters() == {'Order:update': 2}
            assert second.get_failure_counters() == {}

            first.reset_failure_counters()
            assert first.get_failure_counters() == {}
        finally:
            first.shutdown()
            second.shutdown()


@pytest.mark.unit
class TestBulkReconciliation:

    def test_bulk_update_resyncs_matching_documents(self, dispatcher, source, target):
        active = source.add('User', *UserDocumentFactory.build_batch(2, status='suspended'))
        source.add('User', UserDocumentFactory(status='active'))

        result = dispatcher.reconcile_after_bulk_update('User', {'status': 'suspended'})

        assert result.matched == 2
        assert result.written == 2
        assert target.count(User, {'status': 'suspended'}) == 2
        assert {row['_id'] for row in active} == set(target.source_ids(User))

    def test_bulk_update_limit_truncates_with_warning(self, dispatcher, source):
        source.add('User', *UserDocumentFactory.build_batch(3))
        with capture_logs() as logs:
            result = dispatcher.reconcile_after_bulk_update('User', {}, limit=2)

        assert result.truncated is True
        assert result.written == 2
        assert any(log['event'] == 'bulk_resync_truncated' and log['log_level'] == 'warning'
                   for log in logs)

    def test_bulk_delete_sweeps_orphans(self, dispatcher, source, writer, target):
        kept, removed = UserDocumentFactory(), UserDocumentFactory()
        source.add('User', kept, removed)
        writer.write('User', kept)
        writer.write('User', removed)
        source.remove('User', removed['_id'])

        result = dispatcher.reconcile_after_bulk_delete('User')

        assert result.deleted == 1
        assert result.drift.match is True
        assert list(target.source_ids(User)) == [kept['_id']]

    def test_reconcile_is_noop_when_disabled(self, dispatcher, source):
        dispatcher.enabled = False
        source.add('User', UserDocumentFactory())
        assert dispatcher.reconcile_after_bulk_update('User', {}) is None
        assert dispatcher.reconcile_after_bulk_delete('User') is None

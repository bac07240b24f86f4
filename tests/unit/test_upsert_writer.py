"""
Unit tests for UpsertWriter against an in-memory SQLite target.
"""

from unittest.mock import patch

import pytest
from sqlalchemy import select
from structlog.testing import capture_logs

from dualsync.models import Brand, Order, OrderItem, PendingConnection, User, Wallet
from dualsync.services.base import RecordWriteError
from dualsync.services.id_translation import IdTranslator
from dualsync.services.upsert_writer import WriteOutcome

from factories import (
    BrandDocumentFactory, CampaignDocumentFactory, OrderDocumentFactory,
    OrderItemDocumentFactory, UserDocumentFactory, WalletDocumentFactory, object_id,
)


def fetch(target, model, source_id):
    with target.session() as session:
        return session.execute(select(model).where(model.source_id == source_id)).scalar_one_or_none()


@pytest.mark.unit
class TestUpsert:

    def test_insert_then_update_in_place(self, writer, target):
        document = UserDocumentFactory(name='First Name')
        created = writer.write('User', document)
        assert created.outcome is WriteOutcome.WRITTEN
        assert created.created is True

        document['name'] = 'Second Name'
        updated = writer.write('User', document)
        assert updated.created is False
        assert updated.target_id == created.target_id

        row = fetch(target, User, document['_id'])
        assert row.name == 'Second Name'
        assert target.count(User) == 1

    def test_replaying_a_document_is_idempotent(self, writer, target):
        document = UserDocumentFactory(pendingConnections=[{'agencyCode': 'ALP'}])
        writer.write('User', document)
        first = fetch(target, User, document['_id'])

        writer.write('User', document)
        second = fetch(target, User, document['_id'])

        assert target.count(User) == 1
        assert target.count(PendingConnection) == 1
        assert second.id == first.id
        assert second.updated_at == first.updated_at

    def test_created_at_copied_from_source(self, writer, target):
        document = UserDocumentFactory()
        writer.write('User', document)
        assert fetch(target, User, document['_id']).created_at == document['createdAt']

    def test_document_without_id_is_skipped(self, writer, target):
        document = UserDocumentFactory()
        del document['_id']
        with capture_logs() as logs:
            result = writer.write('User', document)
        assert result.outcome is WriteOutcome.SKIPPED
        assert target.count(User) == 0
        assert any(log['event'] == 'write_skipped_missing_id' for log in logs)

    def test_unknown_entity_type(self, writer):
        with pytest.raises(RecordWriteError):
            writer.write('Widget', {'_id': object_id()})


@pytest.mark.unit
class TestDeferredReferences:

    def test_missing_owner_defers_without_writing(self, writer, target):
        document = BrandDocumentFactory(ownerUserId=object_id())
        with capture_logs() as logs:
            result = writer.write('Brand', document)

        assert result.outcome is WriteOutcome.DEFERRED
        assert result.written is False
        assert target.count(Brand) == 0

        deferred = [log for log in logs if log['event'] == 'write_deferred']
        assert len(deferred) == 1
        assert deferred[0]['log_level'] == 'warning'
        assert deferred[0]['field'] == 'ownerUserId'
        assert deferred[0]['referenced_id'] == document['ownerUserId']

    def test_deferred_record_writes_once_parent_exists(self, writer, target):
        owner = UserDocumentFactory()
        brand = BrandDocumentFactory(ownerUserId=owner['_id'])
        assert writer.write('Brand', brand).outcome is WriteOutcome.DEFERRED

        writer.write('User', owner)
        assert writer.write('Brand', brand).outcome is WriteOutcome.WRITTEN

        row = fetch(target, Brand, brand['_id'])
        assert row.owner_user_id == fetch(target, User, owner['_id']).id


@pytest.mark.unit
class TestNaturalKeyFallback:

    def test_same_mobile_adopts_existing_row(self, writer, target):
        original = UserDocumentFactory(mobile='9000000001')
        first = writer.write('User', original)

        recreated = UserDocumentFactory(mobile='9000000001', name='Recreated')
        with capture_logs() as logs:
            result = writer.write('User', recreated)

        assert result.outcome is WriteOutcome.WRITTEN
        assert result.natural_key == 'mobile'
        assert result.target_id == first.target_id
        assert target.count(User) == 1

        row = fetch(target, User, recreated['_id'])
        assert row.name == 'Recreated'
        assert fetch(target, User, original['_id']) is None
        assert any(log['event'] == 'natural_key_match' for log in logs)

    def test_brand_code_match(self, writer, target):
        owner = UserDocumentFactory()
        writer.write('User', owner)
        writer.write('Brand', BrandDocumentFactory(ownerUserId=owner['_id'], brandCode='DUP'))

        again = BrandDocumentFactory(ownerUserId=owner['_id'], brandCode='DUP')
        assert writer.write('Brand', again).natural_key == 'brand_code'
        assert target.count(Brand) == 1

    def test_conflict_without_usable_natural_key_raises(self, writer, target):
        # Both users lack a mobile, so the empty value collides and is not a usable key.
        writer.write('User', UserDocumentFactory(mobile=None, username=None))
        with capture_logs() as logs:
            with pytest.raises(RecordWriteError) as excinfo:
                writer.write('User', UserDocumentFactory(mobile=None, username=None))

        assert excinfo.value.entity_type == 'User'
        assert target.count(User) == 1
        assert any(log['event'] == 'write_failed' and log['log_level'] == 'error' for log in logs)

    def test_source_id_inserted_concurrently_is_updated(self, writer, target):
        owner = UserDocumentFactory()
        writer.write('User', owner)
        wallet = WalletDocumentFactory(ownerUserId=owner['_id'])
        first = writer.write('Wallet', wallet)

        lookup = IdTranslator.find_by_source_id
        misses = []

        def miss_first_wallet_lookup(refs, model, source_id):
            if model is Wallet and not misses:
                misses.append(source_id)
                return None
            return lookup(refs, model, source_id)

        wallet['availablePaise'] = 2500
        with patch.object(IdTranslator, 'find_by_source_id', miss_first_wallet_lookup):
            with capture_logs() as logs:
                result = writer.write('Wallet', wallet)

        assert misses == [wallet['_id']]
        assert result.outcome is WriteOutcome.WRITTEN
        assert result.target_id == first.target_id
        assert target.count(Wallet) == 1
        assert fetch(target, Wallet, wallet['_id']).available_paise == 2500
        assert any(log['event'] == 'source_id_conflict_retried' for log in logs)


@pytest.mark.unit
class TestChildCollections:

    @pytest.fixture
    def parents(self, writer):
        buyer = UserDocumentFactory()
        brand_owner = UserDocumentFactory()
        writer.write('User', buyer)
        writer.write('User', brand_owner)
        campaign = CampaignDocumentFactory(brandUserId=brand_owner['_id'])
        writer.write('Campaign', campaign)
        return buyer, campaign

    def test_items_replaced_wholesale(self, writer, target, parents):
        buyer, campaign = parents
        order = OrderDocumentFactory(userId=buyer['_id'], items=[
            OrderItemDocumentFactory(campaignId=campaign['_id']),
            OrderItemDocumentFactory(campaignId=campaign['_id']),
        ])
        writer.write('Order', order)
        assert target.count(OrderItem) == 2

        order['items'] = [OrderItemDocumentFactory(campaignId=campaign['_id'], title='Only One')]
        writer.write('Order', order)
        with target.session() as session:
            titles = session.execute(select(OrderItem.title)).scalars().all()
        assert titles == ['Only One']

        del order['items']
        writer.write('Order', order)
        assert target.count(OrderItem) == 0
        assert target.count(Order) == 1

    def test_item_with_unreplicated_campaign_dropped(self, writer, target, parents):
        buyer, campaign = parents
        order = OrderDocumentFactory(userId=buyer['_id'], items=[
            OrderItemDocumentFactory(campaignId=campaign['_id']),
            OrderItemDocumentFactory(campaignId=object_id()),
        ])
        with capture_logs() as logs:
            result = writer.write('Order', order)

        assert result.outcome is WriteOutcome.WRITTEN
        assert target.count(OrderItem) == 1
        assert any(log['event'] == 'order_item_dropped' for log in logs)


@pytest.mark.unit
class TestDelete:

    def test_delete_removes_row_and_children(self, writer, target):
        user = UserDocumentFactory(pendingConnections=[{'agencyCode': 'A'}, {'agencyCode': 'B'}])
        writer.write('User', user)

        result = writer.delete('User', user['_id'])

        assert result.outcome is WriteOutcome.DELETED
        assert target.count(User) == 0
        assert target.count(PendingConnection) == 0

    def test_delete_of_unreplicated_record_is_noop(self, writer):
        result = writer.delete('User', object_id())
        assert result.outcome is WriteOutcome.SKIPPED

"""
Source document factories.

factory_boy DictFactory classes producing documents shaped like the legacy
MongoDB collections, with hex-string ObjectIds and camelCase keys. Reference
fields default to None; tests pass the parent ``_id`` explicitly.
"""

from datetime import datetime

import factory
from bson import ObjectId


def object_id() -> str:
    return str(ObjectId())


class SourceDocumentFactory(factory.DictFactory):
    """Base factory adding ``_id`` and ``createdAt``."""

    class Meta:
        rename = {'id': '_id'}

    id = factory.LazyFunction(object_id)
    createdAt = factory.LazyFunction(lambda: datetime(2024, 1, 15, 10, 30))


class UserDocumentFactory(SourceDocumentFactory):
    name = factory.Faker('name')
    mobile = factory.Sequence(lambda n: f"98{n:08d}")
    username = factory.Sequence(lambda n: f"user{n}")
    email = factory.Sequence(lambda n: f"user{n}@example.com")
    passwordHash = 'pbkdf2:sha256$test'
    role = 'shopper'
    roles = factory.LazyAttribute(lambda o: [o.role])
    status = 'active'


class BrandDocumentFactory(SourceDocumentFactory):
    name = factory.Faker('company')
    brandCode = factory.Sequence(lambda n: f"BRD{n:04d}")
    ownerUserId = None
    status = 'active'


class WalletDocumentFactory(SourceDocumentFactory):
    ownerUserId = None
    availablePaise = 10000
    pendingPaise = 0
    lockedPaise = 0
    version = 0


class CampaignDocumentFactory(SourceDocumentFactory):
    title = factory.Faker('catch_phrase')
    brandUserId = None
    brandName = 'Acme'
    platform = 'Amazon'
    image = 'https://cdn.example.com/p.png'
    productUrl = 'https://shop.example.com/p/1'
    originalPricePaise = 199900
    pricePaise = 149900
    payoutPaise = 5000
    dealType = 'Discount'
    totalSlots = 10
    usedSlots = 0
    status = 'active'


class OrderItemDocumentFactory(factory.DictFactory):
    productId = factory.Sequence(lambda n: f"P{n}")
    title = 'Wireless Mouse'
    image = 'https://cdn.example.com/m.png'
    priceAtPurchasePaise = 89900
    commissionPaise = 2500
    campaignId = None
    dealType = 'Discount'
    quantity = 1
    platform = 'Amazon'


class OrderDocumentFactory(SourceDocumentFactory):
    userId = None
    brandUserId = None
    totalPaise = 89900
    workflowStatus = 'ORDERED'
    status = 'Ordered'
    paymentStatus = 'Pending'
    affiliateStatus = 'Unchecked'
    externalOrderId = factory.Sequence(lambda n: f"405-{n:07d}")
    buyerName = factory.Faker('name')
    buyerMobile = '9800000000'
    managerName = 'Ops Team'
    items = factory.List([])


class TransactionDocumentFactory(SourceDocumentFactory):
    idempotencyKey = factory.Sequence(lambda n: f"txn-{n}")
    type = 'brand_deposit'
    status = 'completed'
    amountPaise = 50000
    walletId = None

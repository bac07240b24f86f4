"""
Target-store models.

Importing this package registers every replicated table on ``db.metadata``.
``MODEL_REGISTRY`` maps entity type names to their model classes.
"""

from dualsync.models.base import SyncedModel, db
from dualsync.models.commerce import Campaign, Deal, Order, OrderItem
from dualsync.models.ledger import Payout, Transaction, Wallet
from dualsync.models.migration_sync import MigrationSync, SyncStatus, state_key
from dualsync.models.operations import (
    AuditLog, Invite, PushSubscription, Suspension, SystemConfig, Ticket,
)
from dualsync.models.organization import Agency, Brand, MediatorProfile, ShopperProfile
from dualsync.models.user import PendingConnection, User

MODEL_REGISTRY = {
    model.__name__: model
    for model in (
        User, Brand, Agency, Wallet, MediatorProfile, ShopperProfile, Campaign,
        Deal, Order, Transaction, Payout, Invite, Ticket, PushSubscription,
        Suspension, AuditLog, SystemConfig,
    )
}

__all__ = [
    'db',
    'SyncedModel',
    'MODEL_REGISTRY',
    'User',
    'PendingConnection',
    'Brand',
    'Agency',
    'MediatorProfile',
    'ShopperProfile',
    'Campaign',
    'Deal',
    'Order',
    'OrderItem',
    'Wallet',
    'Transaction',
    'Payout',
    'Invite',
    'Ticket',
    'PushSubscription',
    'Suspension',
    'AuditLog',
    'SystemConfig',
    'MigrationSync',
    'SyncStatus',
    'state_key',
]

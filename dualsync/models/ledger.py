"""
Wallet, transaction and payout target models.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, Uuid

from dualsync.models.base import (
    JsonDocument, SoftDeleteMixin, SyncedModel, UpdatedAtMixin, pg_enum, utcnow,
)
from dualsync.models.enums import (
    CURRENCIES, PAYOUT_STATUSES, TRANSACTION_STATUSES, TRANSACTION_TYPES,
)


class Wallet(SyncedModel, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = 'wallets'

    owner_user_id = Column(Uuid, ForeignKey('users.id'), nullable=False)
    currency = Column(pg_enum('currency', CURRENCIES), nullable=False, default='INR')
    available_paise = Column(Integer, nullable=False, default=0)
    pending_paise = Column(Integer, nullable=False, default=0)
    locked_paise = Column(Integer, nullable=False, default=0)
    version = Column(Integer, nullable=False, default=0)


class Transaction(SyncedModel, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = 'transactions'

    idempotency_key = Column(Text, unique=True, nullable=False)
    type = Column(pg_enum('transaction_type', TRANSACTION_TYPES), nullable=False)
    status = Column(pg_enum('transaction_status', TRANSACTION_STATUSES), nullable=False, default='pending')
    amount_paise = Column(Integer, nullable=False)
    currency = Column(Text, nullable=False, default='INR')
    order_id = Column(String(64), nullable=True)
    wallet_id = Column(Uuid, ForeignKey('wallets.id'), nullable=True)
    metadata_ = Column('metadata', JsonDocument, nullable=True)


class Payout(SyncedModel, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = 'payouts'

    beneficiary_user_id = Column(Uuid, ForeignKey('users.id'), nullable=False)
    wallet_id = Column(Uuid, ForeignKey('wallets.id'), nullable=False)
    amount_paise = Column(Integer, nullable=False)
    currency = Column(Text, nullable=False, default='INR')
    status = Column(pg_enum('payout_status', PAYOUT_STATUSES), nullable=False, default='requested')
    provider = Column(Text, nullable=True)
    provider_ref = Column(Text, nullable=True)
    failure_code = Column(Text, nullable=True)
    failure_message = Column(Text, nullable=True)
    requested_at = Column(DateTime, nullable=False, default=utcnow)
    processed_at = Column(DateTime, nullable=True)

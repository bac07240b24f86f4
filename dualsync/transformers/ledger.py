"""
Wallet, transaction and payout transformers.

Transactions keep their ledger entry even when the wallet is not replicated
yet (``wallet_id`` is nullable); payouts cannot exist without both their
beneficiary and wallet and defer instead.
"""

from dualsync.models import Payout, Transaction, User, Wallet
from dualsync.models.enums import PAYOUT_STATUSES, TRANSACTION_STATUSES, TRANSACTION_TYPES
from dualsync.transformers.base import (
    EntityTransformer, choice, integer, json_object, optional_text, text, timestamp,
)


class WalletTransformer(EntityTransformer):
    entity_type = 'Wallet'
    collection = 'wallets'
    model = Wallet

    def build_fields(self, document, refs):
        return {
            'owner_user_id': self.require(refs, document, 'ownerUserId', User),
            'currency': 'INR',
            'available_paise': integer(document.get('availablePaise')),
            'pending_paise': integer(document.get('pendingPaise')),
            'locked_paise': integer(document.get('lockedPaise')),
            'version': integer(document.get('version')),
            'deleted_at': timestamp(document.get('deletedAt')),
        }


class TransactionTransformer(EntityTransformer):
    entity_type = 'Transaction'
    collection = 'transactions'
    model = Transaction
    natural_keys = ('idempotency_key',)

    def build_fields(self, document, refs):
        return {
            'idempotency_key': text(document.get('idempotencyKey')),
            'type': choice(document.get('type'), TRANSACTION_TYPES, 'brand_deposit'),
            'status': choice(document.get('status'), TRANSACTION_STATUSES, 'pending'),
            'amount_paise': integer(document.get('amountPaise')),
            'currency': optional_text(document.get('currency')) or 'INR',
            'order_id': optional_text(document.get('orderId')),
            'wallet_id': refs.optional(Wallet, document.get('walletId')),
            'metadata_': json_object(document.get('metadata')),
            'deleted_at': timestamp(document.get('deletedAt')),
        }


class PayoutTransformer(EntityTransformer):
    entity_type = 'Payout'
    collection = 'payouts'
    model = Payout

    def build_fields(self, document, refs):
        requested_at = (
            timestamp(document.get('requestedAt'))
            or timestamp(document.get('createdAt'))
        )
        fields = {
            'beneficiary_user_id': self.require(refs, document, 'beneficiaryUserId', User),
            'wallet_id': self.require(refs, document, 'walletId', Wallet),
            'amount_paise': integer(document.get('amountPaise')),
            'currency': optional_text(document.get('currency')) or 'INR',
            'status': choice(document.get('status'), PAYOUT_STATUSES, 'requested'),
            'provider': optional_text(document.get('provider')),
            'provider_ref': optional_text(document.get('providerRef')),
            'failure_code': optional_text(document.get('failureCode')),
            'failure_message': optional_text(document.get('failureMessage')),
            'processed_at': timestamp(document.get('processedAt')),
            'deleted_at': timestamp(document.get('deletedAt')),
        }
        # Left unset when unknown so the column default stamps the insert time.
        if requested_at is not None:
            fields['requested_at'] = requested_at
        return fields

"""
Valid value sets for the enum-typed target columns.

Transformers coerce source values into these sets; the first element of
each tuple is not necessarily the default, defaults are declared per field
by the transformer that uses them.
"""

USER_ROLES = ('shopper', 'mediator', 'agency', 'brand', 'admin', 'ops')
USER_STATUSES = ('active', 'suspended', 'pending')
KYC_STATUSES = ('none', 'pending', 'verified', 'rejected')
BRAND_STATUSES = ('active', 'suspended', 'pending')
AGENCY_STATUSES = ('active', 'suspended', 'pending')
MEDIATOR_STATUSES = ('active', 'suspended', 'pending')

ORDER_WORKFLOW_STATUSES = (
    'CREATED', 'REDIRECTED', 'ORDERED', 'PROOF_SUBMITTED', 'UNDER_REVIEW',
    'APPROVED', 'REJECTED', 'REWARD_PENDING', 'COMPLETED', 'FAILED',
)
ORDER_STATUSES = ('Ordered', 'Shipped', 'Delivered', 'Cancelled', 'Returned')
PAYMENT_STATUSES = ('Pending', 'Paid', 'Refunded', 'Failed')
AFFILIATE_STATUSES = (
    'Unchecked', 'Pending_Cooling', 'Approved_Settled', 'Rejected',
    'Fraud_Alert', 'Cap_Exceeded', 'Frozen_Disputed',
)
SETTLEMENT_MODES = ('wallet', 'external')
REJECTION_TYPES = ('order', 'review', 'rating', 'returnWindow')

DEAL_TYPES = ('Discount', 'Review', 'Rating')
CAMPAIGN_STATUSES = ('draft', 'active', 'paused', 'completed')

TRANSACTION_TYPES = (
    'brand_deposit', 'platform_fee', 'commission_lock', 'commission_settle',
    'cashback_lock', 'cashback_settle', 'order_settlement_debit',
    'commission_reversal', 'margin_reversal', 'agency_payout', 'agency_receipt',
    'payout_request', 'payout_complete', 'payout_failed', 'refund',
)
TRANSACTION_STATUSES = ('pending', 'completed', 'failed', 'reversed')
PAYOUT_STATUSES = ('requested', 'processing', 'paid', 'failed', 'canceled', 'recorded')
CURRENCIES = ('INR',)

INVITE_STATUSES = ('active', 'used', 'revoked', 'expired')
TICKET_STATUSES = ('Open', 'Resolved', 'Rejected')
SUSPENSION_ACTIONS = ('suspend', 'unsuspend')
PUSH_APPS = ('buyer', 'mediator')

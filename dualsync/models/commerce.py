"""
Campaign, deal and order target models.

Order line items are a child table owned by the order row; the writer
replaces them wholesale on every order write.
"""

import uuid

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, Uuid,
)

from dualsync.models.base import (
    JsonDocument, SoftDeleteMixin, SyncedModel, TextArray, UpdatedAtMixin, db,
    pg_enum,
)
from dualsync.models.enums import (
    AFFILIATE_STATUSES, CAMPAIGN_STATUSES, DEAL_TYPES, ORDER_STATUSES,
    ORDER_WORKFLOW_STATUSES, PAYMENT_STATUSES, REJECTION_TYPES, SETTLEMENT_MODES,
)


class Campaign(SyncedModel, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = 'campaigns'

    title = Column(String(200), nullable=False)
    brand_user_id = Column(Uuid, ForeignKey('users.id'), nullable=False)
    brand_name = Column(String(200), nullable=False)
    platform = Column(String(80), nullable=False)
    image = Column(Text, nullable=False)
    product_url = Column(Text, nullable=False)
    original_price_paise = Column(Integer, nullable=False)
    price_paise = Column(Integer, nullable=False)
    payout_paise = Column(Integer, nullable=False)
    return_window_days = Column(Integer, nullable=False, default=14)
    deal_type = Column(pg_enum('deal_type', DEAL_TYPES), nullable=True)
    total_slots = Column(Integer, nullable=False)
    used_slots = Column(Integer, nullable=False, default=0)
    status = Column(pg_enum('campaign_status', CAMPAIGN_STATUSES), nullable=False, default='draft')
    allowed_agency_codes = Column(TextArray, nullable=True)
    assignments = Column(JsonDocument, nullable=False, default=dict)
    locked = Column(Boolean, nullable=False, default=False)
    locked_at = Column(DateTime, nullable=True)
    locked_reason = Column(Text, nullable=True)


class Deal(SyncedModel, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = 'deals'

    campaign_id = Column(Uuid, ForeignKey('campaigns.id'), nullable=False)
    mediator_code = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=False, default='Exclusive')
    image = Column(Text, nullable=False)
    product_url = Column(Text, nullable=False)
    platform = Column(Text, nullable=False)
    brand_name = Column(Text, nullable=False)
    deal_type = Column(pg_enum('deal_type', DEAL_TYPES), nullable=False)
    original_price_paise = Column(Integer, nullable=False)
    price_paise = Column(Integer, nullable=False)
    commission_paise = Column(Integer, nullable=False)
    payout_paise = Column(Integer, nullable=False)
    rating = Column(Float, nullable=False, default=5)
    category = Column(Text, nullable=False, default='General')
    active = Column(Boolean, nullable=False, default=True)


class Order(SyncedModel, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = 'orders'

    user_id = Column(Uuid, ForeignKey('users.id'), nullable=False)
    brand_user_id = Column(Uuid, ForeignKey('users.id'), nullable=True)
    total_paise = Column(Integer, nullable=False)
    workflow_status = Column(
        pg_enum('order_workflow_status', ORDER_WORKFLOW_STATUSES), nullable=False, default='CREATED'
    )
    frozen = Column(Boolean, nullable=False, default=False)
    frozen_at = Column(DateTime, nullable=True)
    frozen_reason = Column(Text, nullable=True)
    reactivated_at = Column(DateTime, nullable=True)
    status = Column(pg_enum('order_status', ORDER_STATUSES), nullable=False, default='Ordered')
    payment_status = Column(pg_enum('payment_status', PAYMENT_STATUSES), nullable=False, default='Pending')
    affiliate_status = Column(
        pg_enum('affiliate_status', AFFILIATE_STATUSES), nullable=False, default='Unchecked'
    )
    external_order_id = Column(Text, nullable=True)
    order_date = Column(DateTime, nullable=True)
    sold_by = Column(Text, nullable=True)
    extracted_product_name = Column(Text, nullable=True)
    settlement_ref = Column(Text, nullable=True)
    settlement_mode = Column(pg_enum('settlement_mode', SETTLEMENT_MODES), nullable=False, default='wallet')

    screenshot_order = Column(Text, nullable=True)
    screenshot_payment = Column(Text, nullable=True)
    screenshot_review = Column(Text, nullable=True)
    screenshot_rating = Column(Text, nullable=True)
    screenshot_return_window = Column(Text, nullable=True)
    review_link = Column(Text, nullable=True)
    return_window_days = Column(Integer, nullable=False, default=14)

    order_ai_verification = Column(JsonDocument, nullable=True)
    rating_ai_verification = Column(JsonDocument, nullable=True)
    return_window_ai_verification = Column(JsonDocument, nullable=True)

    rejection_type = Column(pg_enum('rejection_type', REJECTION_TYPES), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    rejection_at = Column(DateTime, nullable=True)

    verification = Column(JsonDocument, nullable=True)
    manager_name = Column(Text, nullable=False)
    agency_name = Column(Text, nullable=True)
    buyer_name = Column(Text, nullable=False)
    buyer_mobile = Column(String(10), nullable=False)
    reviewer_name = Column(Text, nullable=True)
    brand_name = Column(Text, nullable=True)
    events = Column(JsonDocument, nullable=False, default=list)
    missing_proof_requests = Column(JsonDocument, nullable=False, default=list)
    expected_settlement_date = Column(DateTime, nullable=True)


class OrderItem(db.Model):
    """Line item embedded in the source order document."""

    __tablename__ = 'order_items'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey('orders.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(Text, nullable=False)
    title = Column(Text, nullable=False)
    image = Column(Text, nullable=False)
    price_at_purchase_paise = Column(Integer, nullable=False)
    commission_paise = Column(Integer, nullable=False)
    campaign_id = Column(Uuid, ForeignKey('campaigns.id'), nullable=False)
    deal_type = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    platform = Column(Text, nullable=True)
    brand_name = Column(Text, nullable=True)

"""
Campaign, deal and order transformers.

Orders are the widest documents in the source: the ``screenshots`` and
``rejection`` sub-documents flatten into prefixed columns and the ``items``
array becomes the ``order_items`` child table. An item whose campaign has
not been replicated is dropped on its own; the order itself is still written.
"""

import structlog

from dualsync.models import Campaign, Deal, Order, OrderItem, User
from dualsync.models.enums import (
    AFFILIATE_STATUSES, CAMPAIGN_STATUSES, DEAL_TYPES, ORDER_STATUSES,
    ORDER_WORKFLOW_STATUSES, PAYMENT_STATUSES, REJECTION_TYPES, SETTLEMENT_MODES,
)
from dualsync.transformers.base import (
    EntityTransformer, choice, flag, integer, json_list, json_object, nested,
    number, optional_text, string_list, text, timestamp,
)

logger = structlog.get_logger(__name__)


class CampaignTransformer(EntityTransformer):
    entity_type = 'Campaign'
    collection = 'campaigns'
    model = Campaign

    def build_fields(self, document, refs):
        return {
            'title': text(document.get('title')),
            'brand_user_id': self.require(refs, document, 'brandUserId', User),
            'brand_name': text(document.get('brandName')),
            'platform': text(document.get('platform')),
            'image': text(document.get('image')),
            'product_url': text(document.get('productUrl')),
            'original_price_paise': integer(document.get('originalPricePaise')),
            'price_paise': integer(document.get('pricePaise')),
            'payout_paise': integer(document.get('payoutPaise')),
            'return_window_days': integer(document.get('returnWindowDays'), 14),
            'deal_type': choice(document.get('dealType'), DEAL_TYPES, None),
            'total_slots': integer(document.get('totalSlots')),
            'used_slots': integer(document.get('usedSlots')),
            'status': choice(document.get('status'), CAMPAIGN_STATUSES, 'draft'),
            'allowed_agency_codes': string_list(document.get('allowedAgencyCodes')),
            # Stored as a Map in the source; arrives as a plain sub-document.
            'assignments': json_object(document.get('assignments'), {}),
            'locked': flag(document.get('locked')),
            'locked_at': timestamp(document.get('lockedAt')),
            'locked_reason': optional_text(document.get('lockedReason')),
            'deleted_at': timestamp(document.get('deletedAt')),
        }


class DealTransformer(EntityTransformer):
    entity_type = 'Deal'
    collection = 'deals'
    model = Deal

    def build_fields(self, document, refs):
        return {
            'campaign_id': self.require(refs, document, 'campaignId', Campaign),
            'mediator_code': text(document.get('mediatorCode')),
            'title': text(document.get('title')),
            'description': optional_text(document.get('description')) or 'Exclusive',
            'image': text(document.get('image')),
            'product_url': text(document.get('productUrl')),
            'platform': text(document.get('platform')),
            'brand_name': text(document.get('brandName')),
            'deal_type': choice(document.get('dealType'), DEAL_TYPES, 'Discount'),
            'original_price_paise': integer(document.get('originalPricePaise')),
            'price_paise': integer(document.get('pricePaise')),
            'commission_paise': integer(document.get('commissionPaise')),
            'payout_paise': integer(document.get('payoutPaise')),
            'rating': number(document.get('rating'), 5.0),
            'category': optional_text(document.get('category')) or 'General',
            'active': flag(document.get('active'), True),
            'deleted_at': timestamp(document.get('deletedAt')),
        }


class OrderTransformer(EntityTransformer):
    entity_type = 'Order'
    collection = 'orders'
    model = Order
    child_models = {'items': (OrderItem, 'order_id')}

    def build_fields(self, document, refs):
        screenshots = nested(document, 'screenshots')
        rejection = nested(document, 'rejection')

        return {
            'user_id': self.require(refs, document, 'userId', User),
            'brand_user_id': refs.optional(User, document.get('brandUserId')),
            'total_paise': integer(document.get('totalPaise')),
            'workflow_status': choice(document.get('workflowStatus'), ORDER_WORKFLOW_STATUSES, 'CREATED'),
            'frozen': flag(document.get('frozen')),
            'frozen_at': timestamp(document.get('frozenAt')),
            'frozen_reason': optional_text(document.get('frozenReason')),
            'reactivated_at': timestamp(document.get('reactivatedAt')),
            'status': choice(document.get('status'), ORDER_STATUSES, 'Ordered'),
            'payment_status': choice(document.get('paymentStatus'), PAYMENT_STATUSES, 'Pending'),
            'affiliate_status': choice(document.get('affiliateStatus'), AFFILIATE_STATUSES, 'Unchecked'),
            'external_order_id': optional_text(document.get('externalOrderId')),
            'order_date': timestamp(document.get('orderDate')),
            'sold_by': optional_text(document.get('soldBy')),
            'extracted_product_name': optional_text(document.get('extractedProductName')),
            'settlement_ref': optional_text(document.get('settlementRef')),
            'settlement_mode': choice(document.get('settlementMode'), SETTLEMENT_MODES, 'wallet'),
            'screenshot_order': optional_text(screenshots.get('order')),
            'screenshot_payment': optional_text(screenshots.get('payment')),
            'screenshot_review': optional_text(screenshots.get('review')),
            'screenshot_rating': optional_text(screenshots.get('rating')),
            'screenshot_return_window': optional_text(screenshots.get('returnWindow')),
            'review_link': optional_text(document.get('reviewLink')),
            'return_window_days': integer(document.get('returnWindowDays'), 14),
            'order_ai_verification': json_object(document.get('orderAiVerification')),
            'rating_ai_verification': json_object(document.get('ratingAiVerification')),
            'return_window_ai_verification': json_object(document.get('returnWindowAiVerification')),
            'rejection_type': choice(rejection.get('type'), REJECTION_TYPES, None),
            'rejection_reason': optional_text(rejection.get('reason')),
            'rejection_at': timestamp(rejection.get('rejectedAt')),
            'verification': json_object(document.get('verification')),
            'manager_name': text(document.get('managerName')),
            'agency_name': optional_text(document.get('agencyName')),
            'buyer_name': text(document.get('buyerName')),
            'buyer_mobile': text(document.get('buyerMobile')),
            'reviewer_name': optional_text(document.get('reviewerName')),
            'brand_name': optional_text(document.get('brandName')),
            'events': json_list(document.get('events')),
            'missing_proof_requests': json_list(document.get('missingProofRequests')),
            'expected_settlement_date': timestamp(document.get('expectedSettlementDate')),
            'deleted_at': timestamp(document.get('deletedAt')),
        }

    def build_children(self, document, refs, result):
        items = document.get('items')
        if not isinstance(items, (list, tuple)):
            items = []

        rows = []
        for position, item in enumerate(items):
            if not isinstance(item, dict):
                continue
            campaign_id = refs.optional(Campaign, item.get('campaignId'))
            if campaign_id is None:
                logger.warning(
                    "order_item_dropped",
                    order_id=result.source_id,
                    position=position,
                    campaign_id=str(item.get('campaignId')),
                )
                result.dropped_children.append(f"items[{position}]")
                continue
            rows.append({
                'product_id': text(item.get('productId')),
                'title': text(item.get('title')),
                'image': text(item.get('image')),
                'price_at_purchase_paise': integer(item.get('priceAtPurchasePaise')),
                'commission_paise': integer(item.get('commissionPaise')),
                'campaign_id': campaign_id,
                'deal_type': optional_text(item.get('dealType')),
                'quantity': integer(item.get('quantity'), 1),
                'platform': optional_text(item.get('platform')),
                'brand_name': optional_text(item.get('brandName')),
            })
        return {'items': rows}

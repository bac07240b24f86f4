"""
Brand, agency and profile transformers.

All four hang off a user; a missing owner or user defers the record.
"""

from dualsync.models import Agency, Brand, MediatorProfile, ShopperProfile, User
from dualsync.models.enums import AGENCY_STATUSES, BRAND_STATUSES, MEDIATOR_STATUSES
from dualsync.transformers.base import (
    EntityTransformer, choice, optional_text, string_list, text, timestamp,
)


class BrandTransformer(EntityTransformer):
    entity_type = 'Brand'
    collection = 'brands'
    model = Brand
    natural_keys = ('brand_code',)

    def build_fields(self, document, refs):
        return {
            'name': text(document.get('name')),
            'brand_code': text(document.get('brandCode')),
            'owner_user_id': self.require(refs, document, 'ownerUserId', User),
            'connected_agency_codes': string_list(document.get('connectedAgencyCodes')),
            'status': choice(document.get('status'), BRAND_STATUSES, 'active'),
            'deleted_at': timestamp(document.get('deletedAt')),
        }


class AgencyTransformer(EntityTransformer):
    entity_type = 'Agency'
    collection = 'agencies'
    model = Agency
    natural_keys = ('agency_code',)

    def build_fields(self, document, refs):
        return {
            'name': text(document.get('name')),
            'agency_code': text(document.get('agencyCode')),
            'owner_user_id': self.require(refs, document, 'ownerUserId', User),
            'status': choice(document.get('status'), AGENCY_STATUSES, 'active'),
            'deleted_at': timestamp(document.get('deletedAt')),
        }


class MediatorProfileTransformer(EntityTransformer):
    entity_type = 'MediatorProfile'
    collection = 'mediatorprofiles'
    model = MediatorProfile

    def build_fields(self, document, refs):
        return {
            'user_id': self.require(refs, document, 'userId', User),
            'mediator_code': text(document.get('mediatorCode')),
            'parent_agency_code': optional_text(document.get('parentAgencyCode')),
            'status': choice(document.get('status'), MEDIATOR_STATUSES, 'active'),
            'deleted_at': timestamp(document.get('deletedAt')),
        }


class ShopperProfileTransformer(EntityTransformer):
    entity_type = 'ShopperProfile'
    collection = 'shopperprofiles'
    model = ShopperProfile

    def build_fields(self, document, refs):
        return {
            'user_id': self.require(refs, document, 'userId', User),
            'default_mediator_code': optional_text(document.get('defaultMediatorCode')),
            'deleted_at': timestamp(document.get('deletedAt')),
        }

"""
Brand, agency and per-user profile target models.
"""

from sqlalchemy import Column, ForeignKey, String, Text, Uuid

from dualsync.models.base import (
    SoftDeleteMixin, SyncedModel, TextArray, UpdatedAtMixin, pg_enum,
)
from dualsync.models.enums import AGENCY_STATUSES, BRAND_STATUSES, MEDIATOR_STATUSES


class Brand(SyncedModel, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = 'brands'

    name = Column(String(200), nullable=False)
    brand_code = Column(Text, unique=True, nullable=False)
    owner_user_id = Column(Uuid, ForeignKey('users.id'), nullable=False)
    connected_agency_codes = Column(TextArray, nullable=True)
    status = Column(pg_enum('brand_status', BRAND_STATUSES), nullable=False, default='active')


class Agency(SyncedModel, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = 'agencies'

    name = Column(String(200), nullable=False)
    agency_code = Column(Text, unique=True, nullable=False)
    owner_user_id = Column(Uuid, ForeignKey('users.id'), nullable=False)
    status = Column(pg_enum('agency_status', AGENCY_STATUSES), nullable=False, default='active')


class MediatorProfile(SyncedModel, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = 'mediator_profiles'

    user_id = Column(Uuid, ForeignKey('users.id'), nullable=False)
    mediator_code = Column(Text, nullable=False)
    parent_agency_code = Column(Text, nullable=True)
    status = Column(pg_enum('mediator_status', MEDIATOR_STATUSES), nullable=False, default='active')


class ShopperProfile(SyncedModel, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = 'shopper_profiles'

    user_id = Column(Uuid, ForeignKey('users.id'), nullable=False)
    default_mediator_code = Column(Text, nullable=True)

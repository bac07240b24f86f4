"""
User target model and its pending agency connections.

``mobile`` and ``username`` are natural keys: the same person can be created
in the relational store during the dual-write window before their source
document is replicated, so both carry unique constraints the writer falls
back on.
"""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, Uuid

from dualsync.models.base import (
    EnumArray, SoftDeleteMixin, SyncedModel, TextArray, UpdatedAtMixin, db,
    pg_enum, utcnow,
)
from dualsync.models.enums import KYC_STATUSES, USER_ROLES, USER_STATUSES


class User(SyncedModel, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = 'users'

    name = Column(String(120), nullable=False)
    username = Column(String(64), unique=True, nullable=True)
    mobile = Column(String(10), unique=True, nullable=False)
    email = Column(String(320), nullable=True)
    password_hash = Column(Text, nullable=False)
    role = Column(pg_enum('user_role', USER_ROLES), nullable=False, default='shopper')
    roles = Column(EnumArray('user_role', USER_ROLES), nullable=True)
    status = Column(pg_enum('user_status', USER_STATUSES), nullable=False, default='active')
    mediator_code = Column(String(64), nullable=True)
    parent_code = Column(String(64), nullable=True)
    generated_codes = Column(TextArray, nullable=True)
    is_verified_by_mediator = Column(Boolean, nullable=False, default=False)
    brand_code = Column(String(64), nullable=True)
    connected_agencies = Column(TextArray, nullable=True)

    kyc_status = Column(pg_enum('kyc_status', KYC_STATUSES), nullable=False, default='none')
    kyc_pan_card = Column(Text, nullable=True)
    kyc_aadhaar = Column(Text, nullable=True)
    kyc_gst = Column(Text, nullable=True)
    upi_id = Column(Text, nullable=True)
    qr_code = Column(Text, nullable=True)

    bank_account_number = Column(Text, nullable=True)
    bank_ifsc = Column(Text, nullable=True)
    bank_name = Column(Text, nullable=True)
    bank_holder_name = Column(Text, nullable=True)

    wallet_balance_paise = Column(Integer, nullable=False, default=0)
    wallet_pending_paise = Column(Integer, nullable=False, default=0)
    avatar = Column(Text, nullable=True)
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    lockout_until = Column(DateTime, nullable=True)
    google_refresh_token = Column(Text, nullable=True)
    google_email = Column(String(320), nullable=True)


class PendingConnection(db.Model):
    """Agency connection request embedded in the source user document."""

    __tablename__ = 'pending_connections'

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    agency_id = Column(Text, nullable=True)
    agency_name = Column(Text, nullable=True)
    agency_code = Column(Text, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=utcnow)

"""
Operational target models: invites, support tickets, push subscriptions,
suspensions, audit logs and the system configuration singleton.

Suspensions and audit logs are append-only in the source and carry no
``updated_at`` column.
"""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, Uuid

from dualsync.models.base import (
    JsonDocument, SoftDeleteMixin, SyncedModel, TextArray, UpdatedAtMixin, pg_enum,
)
from dualsync.models.enums import (
    INVITE_STATUSES, PUSH_APPS, SUSPENSION_ACTIONS, TICKET_STATUSES, USER_ROLES,
)


class Invite(SyncedModel, UpdatedAtMixin):
    __tablename__ = 'invites'

    code = Column(Text, unique=True, nullable=False)
    role = Column(pg_enum('user_role', USER_ROLES), nullable=False)
    label = Column(Text, nullable=True)
    parent_code = Column(Text, nullable=True)
    status = Column(pg_enum('invite_status', INVITE_STATUSES), nullable=False, default='active')
    max_uses = Column(Integer, nullable=False, default=1)
    use_count = Column(Integer, nullable=False, default=0)
    expires_at = Column(DateTime, nullable=True)
    created_by = Column(Uuid, ForeignKey('users.id'), nullable=True)
    used_at = Column(DateTime, nullable=True)
    uses = Column(JsonDocument, nullable=False, default=list)
    revoked_at = Column(DateTime, nullable=True)


class Ticket(SyncedModel, UpdatedAtMixin, SoftDeleteMixin):
    __tablename__ = 'tickets'

    user_id = Column(Uuid, ForeignKey('users.id'), nullable=False)
    user_name = Column(Text, nullable=False)
    role = Column(Text, nullable=False)
    order_id = Column(Text, nullable=True)
    issue_type = Column(Text, nullable=False)
    description = Column(Text, nullable=False)
    status = Column(pg_enum('ticket_status', TICKET_STATUSES), nullable=False, default='Open')
    resolved_at = Column(DateTime, nullable=True)
    resolution_note = Column(String(1000), nullable=True)


class PushSubscription(SyncedModel, UpdatedAtMixin):
    __tablename__ = 'push_subscriptions'

    user_id = Column(Uuid, ForeignKey('users.id'), nullable=False)
    app = Column(pg_enum('push_app', PUSH_APPS), nullable=False)
    endpoint = Column(Text, unique=True, nullable=False)
    expiration_time = Column(Integer, nullable=True)
    keys_p256dh = Column(Text, nullable=False)
    keys_auth = Column(Text, nullable=False)
    user_agent = Column(Text, nullable=True)


class Suspension(SyncedModel):
    __tablename__ = 'suspensions'

    target_user_id = Column(Uuid, ForeignKey('users.id'), nullable=False)
    action = Column(pg_enum('suspension_action', SUSPENSION_ACTIONS), nullable=False)
    reason = Column(Text, nullable=True)
    admin_user_id = Column(Uuid, ForeignKey('users.id'), nullable=False)


class AuditLog(SyncedModel):
    __tablename__ = 'audit_logs'

    actor_user_id = Column(Uuid, ForeignKey('users.id'), nullable=True)
    actor_roles = Column(TextArray, nullable=True)
    action = Column(Text, nullable=False)
    entity_type = Column(Text, nullable=True)
    entity_id = Column(Text, nullable=True)
    ip = Column(Text, nullable=True)
    user_agent = Column(Text, nullable=True)
    metadata_ = Column('metadata', JsonDocument, nullable=True)


class SystemConfig(SyncedModel, UpdatedAtMixin):
    __tablename__ = 'system_configs'

    key = Column(Text, unique=True, nullable=False, default='system')
    admin_contact_email = Column(Text, nullable=True)

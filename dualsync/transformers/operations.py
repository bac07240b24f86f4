"""
Transformers for invites, tickets, push subscriptions, suspensions, audit
logs and the system configuration singleton.
"""

from dualsync.models import (
    AuditLog, Invite, PushSubscription, Suspension, SystemConfig, Ticket, User,
)
from dualsync.models.enums import (
    INVITE_STATUSES, PUSH_APPS, SUSPENSION_ACTIONS, TICKET_STATUSES, USER_ROLES,
)
from dualsync.transformers.base import (
    EntityTransformer, choice, integer, json_list, json_object, nested,
    optional_text, string_list, text, timestamp,
)


class InviteTransformer(EntityTransformer):
    entity_type = 'Invite'
    collection = 'invites'
    model = Invite
    natural_keys = ('code',)

    def build_fields(self, document, refs):
        return {
            'code': text(document.get('code')),
            'role': choice(document.get('role'), USER_ROLES, 'shopper'),
            'label': optional_text(document.get('label')),
            'parent_code': optional_text(document.get('parentCode')),
            'status': choice(document.get('status'), INVITE_STATUSES, 'active'),
            'max_uses': integer(document.get('maxUses'), 1),
            'use_count': integer(document.get('useCount')),
            'expires_at': timestamp(document.get('expiresAt')),
            'created_by': refs.optional(User, document.get('createdBy')),
            'used_at': timestamp(document.get('usedAt')),
            'uses': json_list(document.get('uses')),
            'revoked_at': timestamp(document.get('revokedAt')),
        }


class TicketTransformer(EntityTransformer):
    entity_type = 'Ticket'
    collection = 'tickets'
    model = Ticket

    def build_fields(self, document, refs):
        return {
            'user_id': self.require(refs, document, 'userId', User),
            'user_name': text(document.get('userName')),
            'role': text(document.get('role')),
            'order_id': optional_text(document.get('orderId')),
            'issue_type': text(document.get('issueType')),
            'description': text(document.get('description')),
            'status': choice(document.get('status'), TICKET_STATUSES, 'Open'),
            'resolution_note': optional_text(document.get('resolutionNote')),
            'resolved_at': timestamp(document.get('resolvedAt')),
            'deleted_at': timestamp(document.get('deletedAt')),
        }


class PushSubscriptionTransformer(EntityTransformer):
    entity_type = 'PushSubscription'
    collection = 'pushsubscriptions'
    model = PushSubscription
    natural_keys = ('endpoint',)

    def build_fields(self, document, refs):
        keys = nested(document, 'keys')
        return {
            'user_id': self.require(refs, document, 'userId', User),
            'app': choice(document.get('app'), PUSH_APPS, 'buyer'),
            'endpoint': text(document.get('endpoint')),
            'expiration_time': integer(document.get('expirationTime'), None),
            'keys_p256dh': text(keys.get('p256dh')),
            'keys_auth': text(keys.get('auth')),
            'user_agent': optional_text(document.get('userAgent')),
        }


class SuspensionTransformer(EntityTransformer):
    entity_type = 'Suspension'
    collection = 'suspensions'
    model = Suspension

    def build_fields(self, document, refs):
        return {
            'target_user_id': self.require(refs, document, 'targetUserId', User),
            'action': choice(document.get('action'), SUSPENSION_ACTIONS, 'suspend'),
            'reason': optional_text(document.get('reason')),
            'admin_user_id': self.require(refs, document, 'adminUserId', User),
        }


class AuditLogTransformer(EntityTransformer):
    entity_type = 'AuditLog'
    collection = 'auditlogs'
    model = AuditLog

    def build_fields(self, document, refs):
        return {
            'actor_user_id': refs.optional(User, document.get('actorUserId')),
            'actor_roles': string_list(document.get('actorRoles')),
            'action': text(document.get('action')),
            'entity_type': optional_text(document.get('entityType')),
            'entity_id': optional_text(document.get('entityId')),
            'ip': optional_text(document.get('ip')),
            'user_agent': optional_text(document.get('userAgent')),
            'metadata_': json_object(document.get('metadata')),
        }


class SystemConfigTransformer(EntityTransformer):
    entity_type = 'SystemConfig'
    collection = 'systemconfigs'
    model = SystemConfig
    natural_keys = ('key',)

    def build_fields(self, document, refs):
        return {
            'key': optional_text(document.get('key')) or 'system',
            'admin_contact_email': optional_text(document.get('adminContactEmail')),
        }

"""
User transformer.

Users are the root of the reference graph, so they never defer. Their
embedded ``pendingConnections`` array is replicated as the
``pending_connections`` child table, and the ``kycDocuments`` and
``bankDetails`` sub-documents are flattened into prefixed columns.
"""

from dualsync.models import PendingConnection, User
from dualsync.models.base import utcnow
from dualsync.models.enums import KYC_STATUSES, USER_ROLES, USER_STATUSES
from dualsync.transformers.base import (
    EntityTransformer, choice, flag, integer, nested, optional_text,
    string_list, text, timestamp,
)


class UserTransformer(EntityTransformer):
    entity_type = 'User'
    collection = 'users'
    model = User
    natural_keys = ('mobile', 'username')
    child_models = {'pending_connections': (PendingConnection, 'user_id')}

    def build_fields(self, document, refs):
        kyc = nested(document, 'kycDocuments')
        bank = nested(document, 'bankDetails')

        role = choice(document.get('role'), USER_ROLES, 'shopper')
        raw_roles = document.get('roles')
        if not isinstance(raw_roles, (list, tuple)):
            raw_roles = [role]
        roles = [r for r in raw_roles if r in USER_ROLES]

        return {
            'name': text(document.get('name')),
            'username': optional_text(document.get('username')),
            'mobile': text(document.get('mobile')).strip(),
            'email': optional_text(document.get('email')),
            'password_hash': text(document.get('passwordHash')),
            'role': role,
            'roles': roles,
            'status': choice(document.get('status'), USER_STATUSES, 'active'),
            'mediator_code': optional_text(document.get('mediatorCode')),
            'parent_code': optional_text(document.get('parentCode')),
            'generated_codes': string_list(document.get('generatedCodes')),
            'is_verified_by_mediator': flag(document.get('isVerifiedByMediator')),
            'brand_code': optional_text(document.get('brandCode')),
            'connected_agencies': string_list(document.get('connectedAgencies')),
            'kyc_status': choice(document.get('kycStatus'), KYC_STATUSES, 'none'),
            'kyc_pan_card': optional_text(kyc.get('panCard')),
            'kyc_aadhaar': optional_text(kyc.get('aadhaar')),
            'kyc_gst': optional_text(kyc.get('gst')),
            'upi_id': optional_text(document.get('upiId')),
            'qr_code': optional_text(document.get('qrCode')),
            'bank_account_number': optional_text(bank.get('accountNumber')),
            'bank_ifsc': optional_text(bank.get('ifsc')),
            'bank_name': optional_text(bank.get('bankName')),
            'bank_holder_name': optional_text(bank.get('holderName')),
            'wallet_balance_paise': integer(document.get('walletBalancePaise')),
            'wallet_pending_paise': integer(document.get('walletPendingPaise')),
            'avatar': optional_text(document.get('avatar')),
            'failed_login_attempts': integer(document.get('failedLoginAttempts')),
            'lockout_until': timestamp(document.get('lockoutUntil')),
            'google_refresh_token': optional_text(document.get('googleRefreshToken')),
            'google_email': optional_text(document.get('googleEmail')),
            'deleted_at': timestamp(document.get('deletedAt')),
        }

    def build_children(self, document, refs, result):
        connections = document.get('pendingConnections')
        if not isinstance(connections, (list, tuple)):
            connections = []

        rows = []
        for connection in connections:
            if not isinstance(connection, dict):
                continue
            rows.append({
                'agency_id': optional_text(connection.get('agencyId')),
                'agency_name': optional_text(connection.get('agencyName')),
                'agency_code': optional_text(connection.get('agencyCode')),
                'timestamp': timestamp(connection.get('timestamp')) or utcnow(),
            })
        return {'pending_connections': rows}

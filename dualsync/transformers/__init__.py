"""
Per-entity transformers and the replication order.

``MIGRATION_ORDER`` lists entity types parents-first: every type appears after
all the types its required references point to, so a sequential backfill in
this order never defers a record whose parent exists in the source.
"""

from typing import Dict, List

from dualsync.transformers.base import EntityTransformer, TransformResult
from dualsync.transformers.commerce import CampaignTransformer, DealTransformer, OrderTransformer
from dualsync.transformers.ledger import PayoutTransformer, TransactionTransformer, WalletTransformer
from dualsync.transformers.operations import (
    AuditLogTransformer, InviteTransformer, PushSubscriptionTransformer,
    SuspensionTransformer, SystemConfigTransformer, TicketTransformer,
)
from dualsync.transformers.organizations import (
    AgencyTransformer, BrandTransformer, MediatorProfileTransformer,
    ShopperProfileTransformer,
)
from dualsync.transformers.users import UserTransformer

TRANSFORMERS: List[EntityTransformer] = [
    UserTransformer(),
    BrandTransformer(),
    AgencyTransformer(),
    WalletTransformer(),
    MediatorProfileTransformer(),
    ShopperProfileTransformer(),
    CampaignTransformer(),
    DealTransformer(),
    OrderTransformer(),
    TransactionTransformer(),
    PayoutTransformer(),
    InviteTransformer(),
    TicketTransformer(),
    PushSubscriptionTransformer(),
    SuspensionTransformer(),
    AuditLogTransformer(),
    SystemConfigTransformer(),
]

TRANSFORMER_REGISTRY: Dict[str, EntityTransformer] = {t.entity_type: t for t in TRANSFORMERS}
MIGRATION_ORDER: List[str] = [t.entity_type for t in TRANSFORMERS]
ENTITY_COLLECTIONS: Dict[str, str] = {t.entity_type: t.collection for t in TRANSFORMERS}


def get_transformer(entity_type: str) -> EntityTransformer:
    """
    Look up the transformer for an entity type.

    Raises:
        KeyError: Unknown entity type
    """
    try:
        return TRANSFORMER_REGISTRY[entity_type]
    except KeyError:
        raise KeyError(f"Unknown entity type: {entity_type!r}") from None


__all__ = [
    'EntityTransformer',
    'TransformResult',
    'TRANSFORMERS',
    'TRANSFORMER_REGISTRY',
    'MIGRATION_ORDER',
    'ENTITY_COLLECTIONS',
    'get_transformer',
]

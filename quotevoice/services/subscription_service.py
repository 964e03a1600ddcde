"""
Subscription lookups: the tenant's plan is the tier that gates branding and features.
"""

import logging
from sqlalchemy.orm import Session

from quotevoice.models.subscription import Subscription, PLAN_TIERS, DEFAULT_TIER

logger = logging.getLogger(__name__)


# Features unlocked per tier
PLAN_FEATURES = {
    'free': frozenset(),
    'starter': frozenset({'invoicing'}),
    'pro': frozenset({'invoicing', 'peppol_export'}),
    'business': frozenset({'invoicing', 'peppol_export'}),
    'corporate': frozenset({'invoicing', 'peppol_export'}),
}


def normalize_tier(tier) -> str:
    """Unknown or missing tiers resolve to the most restrictive one."""
    if tier in PLAN_TIERS:
        return tier
    return DEFAULT_TIER


def get_tenant_tier(session: Session, tenant_id: int) -> str:
    """
    Effective tier of a tenant.

    Tenants without a subscription, or with a lapsed one, are on the free tier.
    """
    subscription = session.query(Subscription).filter_by(tenant_id=tenant_id).first()
    if not subscription:
        return DEFAULT_TIER
    return normalize_tier(subscription.tier)


def has_feature(tier: str, feature: str) -> bool:
    return feature in PLAN_FEATURES[normalize_tier(tier)]

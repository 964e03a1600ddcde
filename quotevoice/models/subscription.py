"""
Subscription model for tenant monetization.

The plan code doubles as the subscription tier consulted by branding
permissions and plan feature gating.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship, backref
from sqlalchemy.sql import func
from quotevoice.database import Base


PLAN_TIERS = ('free', 'starter', 'pro', 'business', 'corporate')
DEFAULT_TIER = 'free'


class Subscription(Base):
    """
    Tenant subscription plan and billing status.

    Relationship: One-to-One with Tenant
    """
    __tablename__ = 'tenant_subscriptions'

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey('tenant.id', ondelete='CASCADE'), nullable=False, unique=True)

    # Plan and Status
    plan_code = Column(String(20), nullable=False, default=DEFAULT_TIER)
    status = Column(String(20), nullable=False, default='active')

    # Dates
    trial_ends_at = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Use backref to avoid circular import in Tenant model
    tenant = relationship('Tenant', backref=backref('subscription', uselist=False))

    __table_args__ = (
        CheckConstraint(
            "plan_code IN ('free', 'starter', 'pro', 'business', 'corporate')",
            name='check_plan_code'
        ),
        CheckConstraint("status IN ('trial', 'active', 'past_due', 'canceled')", name='check_status'),
    )

    def __repr__(self):
        return f'<Subscription tenant_id={self.tenant_id} plan={self.plan_code} status={self.status}>'

    @property
    def is_active(self):
        """Check if subscription is active (trial or paid)."""
        return self.status in ('trial', 'active')

    @property
    def tier(self):
        """Effective tier: lapsed subscriptions fall back to the free tier."""
        if not self.is_active or self.plan_code not in PLAN_TIERS:
            return DEFAULT_TIER
        return self.plan_code

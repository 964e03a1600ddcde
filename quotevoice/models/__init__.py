"""Models package - exports all SQLAlchemy models."""
# SaaS Core Models
from quotevoice.models.tenant import Tenant
from quotevoice.models.app_user import AppUser
from quotevoice.models.user_tenant import UserTenant, UserRole
from quotevoice.models.subscription import Subscription, PLAN_TIERS, DEFAULT_TIER
from quotevoice.models.company import Company

# Billing Models
from quotevoice.models.quote import Quote, QuoteStatus, IMMUTABLE_QUOTE_STATUSES
from quotevoice.models.quote_item import QuoteItem
from quotevoice.models.invoice import Invoice, InvoiceType, InvoiceStatus
from quotevoice.models.invoice_item import InvoiceItem
from quotevoice.models.audit_log import AuditLog, AuditAction

__all__ = [
    # SaaS Core
    'Tenant', 'AppUser', 'UserTenant', 'UserRole',
    'Subscription', 'PLAN_TIERS', 'DEFAULT_TIER', 'Company',
    # Billing
    'Quote', 'QuoteStatus', 'IMMUTABLE_QUOTE_STATUSES', 'QuoteItem',
    'Invoice', 'InvoiceType', 'InvoiceStatus', 'InvoiceItem',
    'AuditLog', 'AuditAction',
]

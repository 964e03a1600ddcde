"""
Permission decorators for role-based access control.
Extends the basic require_login and require_tenant decorators with role
and plan checks. Failures raise exceptions rendered by the app's JSON
error handler.
"""

from functools import wraps
from flask import g

from quotevoice.database import get_session
from quotevoice.exceptions import UnauthorizedError, PlanFeatureError
from quotevoice.models import UserRole
from quotevoice.services.subscription_service import get_tenant_tier, has_feature


QUOTE_PERMISSIONS = frozenset({'view_quotes', 'create_quotes', 'edit_quotes', 'import_quotes'})
INVOICE_PERMISSIONS = frozenset({
    'view_invoices', 'create_invoices', 'pay_invoices', 'send_invoices',
    'cancel_invoices', 'export_invoices',
})
SETTINGS_PERMISSIONS = frozenset({'view_settings', 'edit_settings'})

# Role -> permissions; the owner holds every permission
PERMISSION_MAP = {
    UserRole.OWNER.value: 'all',
    UserRole.ADMIN.value: QUOTE_PERMISSIONS | INVOICE_PERMISSIONS | SETTINGS_PERMISSIONS,
    UserRole.STAFF.value: frozenset({'view_quotes', 'create_quotes'}),
}


def role_has_permission(role, permission_name):
    role_permissions = PERMISSION_MAP.get(role, frozenset())
    if role_permissions == 'all':
        return True
    return permission_name in role_permissions


def require_permission(permission_name):
    """
    Decorator to check for specific permission.

    Permission mapping by role:
    - OWNER: All permissions
    - ADMIN: Quote, invoice and settings permissions
    - STAFF: View and create quotes only

    Must be used AFTER require_login and require_tenant.

    Usage:
        @require_permission('create_invoices')
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user_role = g.get('user_role')
            if not user_role or not role_has_permission(user_role, permission_name):
                raise UnauthorizedError(
                    f'Missing permission: {permission_name}',
                    payload={'permission': permission_name, 'role': user_role}
                )
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_plan_feature(feature_key):
    """
    Decorator to restrict access based on the tenant's subscription tier.

    Usage:
        @require_plan_feature('peppol_export')
        def export_peppol(invoice_id):
            ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            tier = get_tenant_tier(get_session(), g.tenant_id)
            if not has_feature(tier, feature_key):
                raise PlanFeatureError(feature_key, tier)
            g.tier = tier
            return f(*args, **kwargs)

        return decorated_function
    return decorator

"""Branding API blueprint - tier-gated PDF branding settings."""
from flask import Blueprint, request, jsonify, g

from quotevoice.database import get_session
from quotevoice.exceptions import NotFoundError, ValidationError
from quotevoice.middleware import require_login, require_tenant
from quotevoice.decorators.permissions import require_permission
from quotevoice.models import Company
from quotevoice.services.subscription_service import get_tenant_tier
from quotevoice.services.pdf_cache_service import get_pdf_cache
from quotevoice.services.branding_service import apply_branding_update, get_branding_settings

branding_bp = Blueprint('branding', __name__, url_prefix='/api/branding')


@branding_bp.route('', methods=['GET'])
@require_login
@require_tenant
@require_permission('view_settings')
def show():
    """Stored preferences, tier capabilities and the branding actually rendered."""
    db_session = get_session()
    company = db_session.query(Company).filter_by(tenant_id=g.tenant_id).first()
    if not company:
        raise NotFoundError('Company profile not found')

    tier = get_tenant_tier(db_session, g.tenant_id)
    return jsonify(get_branding_settings(company, tier))


@branding_bp.route('', methods=['PATCH'])
@require_login
@require_tenant
@require_permission('edit_settings')
def update():
    """Apply a branding update; rejected as a whole if any field exceeds the tier."""
    changes = request.get_json(silent=True)
    if not isinstance(changes, dict):
        raise ValidationError('A JSON object body is required')

    db_session = get_session()
    tier = get_tenant_tier(db_session, g.tenant_id)
    company = apply_branding_update(db_session, g.tenant_id, tier, changes,
                                    user_id=g.user_id, cache=get_pdf_cache())
    return jsonify(get_branding_settings(company, tier))

"""
Branding service: which PDF customizations a subscription tier allows,
and the branding actually applied when rendering.

Stored preferences on Company are only honoured while the tier permits them,
so a downgraded tenant falls back to the default DEAL branding.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quotevoice.exceptions import NotFoundError, StorageError, UnauthorizedError, ValidationError
from quotevoice.models.audit_log import AuditAction
from quotevoice.models.company import Company
from quotevoice.models.quote import Quote
from quotevoice.services.audit_service import log_action
from quotevoice.services.subscription_service import normalize_tier

logger = logging.getLogger(__name__)


DEFAULT_PRIMARY_COLOR = '#2563eb'
DEFAULT_SECONDARY_COLOR = '#64748b'
DEFAULT_ACCENT_COLOR = '#64748b'
DEFAULT_TEXT_COLOR = '#1e293b'
DEFAULT_MUTED_COLOR = '#94a3b8'
DEAL_FOOTER = 'Powered by DEAL'
DEAL_WATERMARK = 'DEAL'


@dataclass(frozen=True)
class TierCapabilities:
    can_customize_logo: bool
    can_customize_colors: bool
    can_remove_watermark: bool
    can_white_label: bool
    # Defaults applied when the tenant stored no preference
    show_watermark: bool
    show_deal_footer: bool
    white_label: bool


TIER_CAPABILITIES: Dict[str, TierCapabilities] = {
    'free': TierCapabilities(
        can_customize_logo=False, can_customize_colors=False,
        can_remove_watermark=False, can_white_label=False,
        show_watermark=True, show_deal_footer=True, white_label=False,
    ),
    'starter': TierCapabilities(
        can_customize_logo=True, can_customize_colors=False,
        can_remove_watermark=True, can_white_label=False,
        show_watermark=False, show_deal_footer=True, white_label=False,
    ),
    'pro': TierCapabilities(
        can_customize_logo=True, can_customize_colors=True,
        can_remove_watermark=True, can_white_label=False,
        show_watermark=False, show_deal_footer=True, white_label=False,
    ),
    'business': TierCapabilities(
        can_customize_logo=True, can_customize_colors=True,
        can_remove_watermark=True, can_white_label=True,
        show_watermark=False, show_deal_footer=False, white_label=False,
    ),
    'corporate': TierCapabilities(
        can_customize_logo=True, can_customize_colors=True,
        can_remove_watermark=True, can_white_label=True,
        show_watermark=False, show_deal_footer=False, white_label=True,
    ),
}

# Company column -> capability required to change it
BRANDING_FIELDS = {
    'name': 'can_customize_logo',
    'logo_url': 'can_customize_logo',
    'primary_color': 'can_customize_colors',
    'secondary_color': 'can_customize_colors',
    'accent_color': 'can_customize_colors',
    'show_watermark': 'can_remove_watermark',
    'footer_text': 'can_white_label',
    'white_label': 'can_white_label',
}

COLOR_FIELDS = ('primary_color', 'secondary_color', 'accent_color')
HEX_COLOR_RE = re.compile(r'^#[0-9a-fA-F]{6}$')


@dataclass(frozen=True)
class PDFBranding:
    """Branding applied to one rendered document."""

    company_name: str
    logo_url: Optional[str]
    primary_color: str
    secondary_color: str
    accent_color: str
    text_color: str
    muted_color: str
    show_watermark: bool
    watermark_text: str
    footer_text: Optional[str]
    white_label: bool
    show_page_numbers: bool = True


def get_capabilities(tier: Optional[str]) -> TierCapabilities:
    return TIER_CAPABILITIES[normalize_tier(tier)]


def can_customize(tier: Optional[str], field: str) -> bool:
    """True if the tier may change the given branding field."""
    capability = BRANDING_FIELDS.get(field)
    if capability is None:
        return False
    return getattr(get_capabilities(tier), capability)


def _validate_changes(changes: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = {}
    for field, value in changes.items():
        if field not in BRANDING_FIELDS:
            raise ValidationError(f"Unknown branding field '{field}'", field=field)

        if field in COLOR_FIELDS:
            if value is not None and not HEX_COLOR_RE.match(str(value)):
                raise ValidationError('Colors must be formatted as #RRGGBB', field=field)
        elif field in ('show_watermark', 'white_label'):
            if not isinstance(value, bool):
                raise ValidationError(f"'{field}' must be a boolean", field=field)
        elif field == 'name':
            if not value or not str(value).strip():
                raise ValidationError('Company name is required', field=field)
            value = str(value).strip()
        elif value is not None:
            value = str(value).strip() or None

        cleaned[field] = value
    return cleaned


def _invalidate_tenant_pdfs(session: Session, tenant_id: int, cache=None) -> None:
    """Drop cached PDFs of every quote of a tenant whose branding changed."""
    if cache is None and has_app_context():
        cache = current_app.extensions.get('pdf_cache')
    if cache is not None:
        quote_ids = [row.id for row in session.query(Quote.id).filter_by(tenant_id=tenant_id)]
        cache.invalidate_quotes(quote_ids)


def apply_branding_update(session: Session, tenant_id: int, tier: str,
                          changes: Dict[str, Any], user_id: int = None, cache=None) -> Company:
    """
    Apply branding changes to the tenant's company.

    All-or-nothing: if any field is outside the tier's capabilities the
    whole update is rejected and nothing is written.

    Raises:
        ValidationError: Unknown field or malformed value
        UnauthorizedError: Tier does not allow one of the fields
        NotFoundError: Tenant has no company profile
    """
    if not changes:
        raise ValidationError('No branding changes provided')

    cleaned = _validate_changes(changes)

    denied = sorted(field for field in cleaned if not can_customize(tier, field))
    if denied:
        logger.warning(f"Branding update denied for tenant {tenant_id} on tier '{tier}': {denied}")
        raise UnauthorizedError(
            'Your plan does not allow these branding changes',
            payload={'fields': denied, 'tier': normalize_tier(tier)}
        )

    company = session.query(Company).filter_by(tenant_id=tenant_id).first()
    if not company:
        raise NotFoundError('Company profile not found')

    try:
        for field, value in cleaned.items():
            setattr(company, field, value)

        log_action(
            session,
            AuditAction.BRANDING_CHANGED,
            resource_type='company',
            resource_id=company.id,
            details={'fields': sorted(cleaned)},
            tenant_id=tenant_id,
            user_id=user_id
        )
        session.commit()
        logger.info(f"Branding updated for tenant {tenant_id}: {sorted(cleaned)}")
        _invalidate_tenant_pdfs(session, tenant_id, cache)
        return company

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Failed to update branding for tenant {tenant_id}: {e}")
        raise StorageError(str(e))


def resolve_branding(company: Optional[Company], tier: Optional[str]) -> PDFBranding:
    """Branding for a document, honouring only what the tier permits."""
    caps = get_capabilities(tier)

    def pick(attr, allowed, default):
        value = getattr(company, attr, None) if company is not None else None
        return value if allowed and value else default

    company_name = getattr(company, 'name', None) or 'DEAL'

    show_watermark = caps.show_watermark
    stored_watermark = getattr(company, 'show_watermark', None) if company is not None else None
    if caps.can_remove_watermark and stored_watermark is not None:
        show_watermark = bool(stored_watermark)

    white_label = caps.white_label or (caps.can_white_label and bool(getattr(company, 'white_label', False)))

    footer_text = pick('footer_text', caps.can_white_label, None)
    if footer_text is None and caps.show_deal_footer and not white_label:
        footer_text = DEAL_FOOTER

    return PDFBranding(
        company_name=company_name,
        logo_url=pick('logo_url', caps.can_customize_logo, None),
        primary_color=pick('primary_color', caps.can_customize_colors, DEFAULT_PRIMARY_COLOR),
        secondary_color=pick('secondary_color', caps.can_customize_colors, DEFAULT_SECONDARY_COLOR),
        accent_color=pick('accent_color', caps.can_customize_colors, DEFAULT_ACCENT_COLOR),
        text_color=DEFAULT_TEXT_COLOR,
        muted_color=DEFAULT_MUTED_COLOR,
        show_watermark=show_watermark,
        watermark_text=DEAL_WATERMARK,
        footer_text=footer_text,
        white_label=white_label,
    )


def get_branding_settings(company: Optional[Company], tier: str) -> Dict[str, Any]:
    """Stored preferences, effective branding and capabilities for the settings API."""
    caps = get_capabilities(tier)
    branding = resolve_branding(company, tier)
    stored = {}
    if company is not None:
        stored = {field: getattr(company, field) for field in BRANDING_FIELDS}
    return {
        'tier': normalize_tier(tier),
        'capabilities': {
            'can_customize_logo': caps.can_customize_logo,
            'can_customize_colors': caps.can_customize_colors,
            'can_remove_watermark': caps.can_remove_watermark,
            'can_white_label': caps.can_white_label,
        },
        'stored': stored,
        'effective': {
            'company_name': branding.company_name,
            'logo_url': branding.logo_url,
            'primary_color': branding.primary_color,
            'secondary_color': branding.secondary_color,
            'accent_color': branding.accent_color,
            'show_watermark': branding.show_watermark,
            'footer_text': branding.footer_text,
            'white_label': branding.white_label,
        },
    }

"""Invoices API blueprint - quote conversion, payments and exports (tenant-scoped)."""
from io import BytesIO

from flask import Blueprint, request, jsonify, send_file, current_app, g

from quotevoice.database import get_session
from quotevoice.exceptions import ValidationError, UnauthorizedError
from quotevoice.middleware import require_login, require_tenant
from quotevoice.decorators.permissions import require_permission, require_plan_feature, role_has_permission
from quotevoice.services.rate_limit_service import rate_limit
from quotevoice.services.pdf_service import get_invoice_pdf
from quotevoice.services.peppol_service import export_invoice
from quotevoice.services.invoice_service import (
    convert_quote_to_invoice,
    get_invoice,
    list_invoices,
    mark_invoice_as_paid,
    send_invoice,
    cancel_invoice
)

invoices_bp = Blueprint('invoices', __name__, url_prefix='/api/invoices')

# PATCH action -> required permission
INVOICE_ACTIONS = {
    'mark_paid': 'pay_invoices',
    'send': 'send_invoices',
    'cancel': 'cancel_invoices',
}


def _param(payload, *names, default=None):
    """First present key among snake_case / camelCase spellings."""
    for name in names:
        if payload.get(name) is not None:
            return payload[name]
    return default


def _int_param(payload, *names, default=None):
    value = _param(payload, *names, default=default)
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{names[0]} must be an integer', field=names[0])


@invoices_bp.route('', methods=['GET'])
@require_login
@require_tenant
@require_permission('view_invoices')
def list_all():
    """List invoices (?status=&quote_id=)."""
    quote_id = request.args.get('quote_id', type=int)
    invoices = list_invoices(
        get_session(), g.tenant_id,
        status=request.args.get('status') or None,
        quote_id=quote_id
    )
    return jsonify({'invoices': [invoice.to_dict() for invoice in invoices]})


@invoices_bp.route('', methods=['POST'])
@require_login
@require_tenant
@require_permission('create_invoices')
@require_plan_feature('invoicing')
@rate_limit('invoice')
def create():
    """
    Convert a quote into an invoice.

    Body: {"quoteId": 1, "type": "standard|deposit|balance|credit_note",
           "depositPercentage": 30, "dueInDays": 30}
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError('A JSON object body is required')

    quote_id = _int_param(payload, 'quoteId', 'quote_id')
    if quote_id is None:
        raise ValidationError('quoteId is required', field='quoteId')

    invoice = convert_quote_to_invoice(
        get_session(),
        g.tenant_id,
        quote_id,
        invoice_type=_param(payload, 'type', 'invoice_type', default='standard'),
        deposit_percentage=_param(
            payload, 'depositPercentage', 'deposit_percentage',
            default=current_app.config.get('INVOICE_DEFAULT_DEPOSIT_PERCENTAGE', 30)
        ),
        due_in_days=_param(
            payload, 'dueInDays', 'due_in_days',
            default=current_app.config.get('INVOICE_DEFAULT_DUE_DAYS', 30)
        ),
        user_id=g.user_id
    )
    return jsonify(invoice.to_dict()), 201


@invoices_bp.route('/<int:invoice_id>', methods=['GET'])
@require_login
@require_tenant
@require_permission('view_invoices')
def detail(invoice_id):
    return jsonify(get_invoice(get_session(), g.tenant_id, invoice_id).to_dict())


@invoices_bp.route('/<int:invoice_id>', methods=['PATCH'])
@require_login
@require_tenant
def update(invoice_id):
    """Body: {"action": "mark_paid|send|cancel", "amount": "121.00"}."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError('A JSON object body is required')

    action = payload.get('action')
    if action not in INVOICE_ACTIONS:
        raise ValidationError(
            f"action must be one of: {', '.join(sorted(INVOICE_ACTIONS))}", field='action'
        )

    permission = INVOICE_ACTIONS[action]
    if not role_has_permission(g.get('user_role'), permission):
        raise UnauthorizedError(f'Missing permission: {permission}',
                                payload={'permission': permission, 'role': g.get('user_role')})

    db_session = get_session()
    if action == 'mark_paid':
        invoice = mark_invoice_as_paid(db_session, g.tenant_id, invoice_id,
                                       amount_paid=_param(payload, 'amount', 'amount_paid'),
                                       user_id=g.user_id)
    elif action == 'send':
        invoice = send_invoice(db_session, g.tenant_id, invoice_id, user_id=g.user_id)
    else:
        invoice = cancel_invoice(db_session, g.tenant_id, invoice_id, user_id=g.user_id)

    return jsonify(invoice.to_dict())


@invoices_bp.route('/<int:invoice_id>/pdf', methods=['GET'])
@require_login
@require_tenant
@require_permission('view_invoices')
def pdf(invoice_id):
    db_session = get_session()
    pdf_bytes = get_invoice_pdf(
        db_session,
        g.tenant_id,
        invoice_id,
        density=request.args.get('density') or None,
        locale=request.args.get('locale') or None,
        default_locale=current_app.config.get('PDF_DEFAULT_LOCALE', 'fr-BE')
    )
    invoice = get_invoice(db_session, g.tenant_id, invoice_id)

    return send_file(
        BytesIO(pdf_bytes),
        mimetype='application/pdf',
        as_attachment=False,
        download_name=f'{invoice.invoice_number}.pdf'
    )


@invoices_bp.route('/<int:invoice_id>/peppol', methods=['GET'])
@require_login
@require_tenant
@require_permission('export_invoices')
@require_plan_feature('peppol_export')
def peppol(invoice_id):
    """Download the invoice as Peppol BIS Billing 3.0 UBL XML."""
    invoice, xml = export_invoice(get_session(), g.tenant_id, invoice_id, user_id=g.user_id)

    return send_file(
        BytesIO(xml.encode('utf-8')),
        mimetype='application/xml',
        as_attachment=True,
        download_name=f'{invoice.invoice_number}.xml'
    )

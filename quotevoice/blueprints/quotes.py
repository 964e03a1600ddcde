"""Quotes API blueprint - devis management (tenant-scoped)."""
from io import BytesIO

from flask import Blueprint, request, jsonify, send_file, current_app, g

from quotevoice.database import get_session
from quotevoice.exceptions import ValidationError
from quotevoice.middleware import require_login, require_tenant
from quotevoice.decorators.permissions import require_permission
from quotevoice.services.rate_limit_service import rate_limit
from quotevoice.services.pdf_cache_service import get_pdf_cache
from quotevoice.services.pdf_service import get_quote_pdf
from quotevoice.services.audit_service import get_audit_logs
from quotevoice.services.csv_import_service import generate_csv_template, import_quote_items
from quotevoice.services.quote_service import (
    create_quote,
    get_quote,
    list_quotes,
    update_quote,
    replace_quote_items,
    reorder_quote_items,
    change_quote_status
)

quotes_bp = Blueprint('quotes', __name__, url_prefix='/api/quotes')


def _json_body():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError('A JSON object body is required')
    return payload


@quotes_bp.route('', methods=['GET'])
@require_login
@require_tenant
@require_permission('view_quotes')
def list_all():
    """List quotes, optionally filtered by ?status=."""
    quotes = list_quotes(get_session(), g.tenant_id, status=request.args.get('status') or None)
    return jsonify({'quotes': [quote.to_dict() for quote in quotes]})


@quotes_bp.route('', methods=['POST'])
@require_login
@require_tenant
@require_permission('create_quotes')
@rate_limit('general')
def create():
    quote = create_quote(get_session(), g.tenant_id, g.user_id, _json_body())
    return jsonify(quote.to_dict()), 201


@quotes_bp.route('/<int:quote_id>', methods=['GET'])
@require_login
@require_tenant
@require_permission('view_quotes')
def detail(quote_id):
    quote = get_quote(get_session(), g.tenant_id, quote_id)
    return jsonify(quote.to_dict())


@quotes_bp.route('/<int:quote_id>', methods=['PATCH'])
@require_login
@require_tenant
@require_permission('edit_quotes')
def update(quote_id):
    quote = update_quote(get_session(), g.tenant_id, quote_id, _json_body(),
                         user_id=g.user_id, cache=get_pdf_cache())
    return jsonify(quote.to_dict())


@quotes_bp.route('/<int:quote_id>/items', methods=['PUT'])
@require_login
@require_tenant
@require_permission('edit_quotes')
def replace_items(quote_id):
    """Replace all items; body: {"items": [...]} in display order."""
    items = _json_body().get('items')
    if not isinstance(items, list):
        raise ValidationError('items must be a list', field='items')

    quote = replace_quote_items(get_session(), g.tenant_id, quote_id, items,
                                user_id=g.user_id, cache=get_pdf_cache())
    return jsonify(quote.to_dict())


@quotes_bp.route('/<int:quote_id>/items/reorder', methods=['POST'])
@require_login
@require_tenant
@require_permission('edit_quotes')
def reorder_items(quote_id):
    """Body: {"item_ids": [...]} - a permutation of the quote's item ids."""
    payload = _json_body()
    item_ids = payload.get('item_ids', payload.get('itemIds'))
    if not isinstance(item_ids, list):
        raise ValidationError('item_ids must be a list', field='item_ids')

    quote = reorder_quote_items(get_session(), g.tenant_id, quote_id, item_ids,
                                user_id=g.user_id, cache=get_pdf_cache())
    return jsonify(quote.to_dict())


@quotes_bp.route('/<int:quote_id>/status', methods=['POST'])
@require_login
@require_tenant
@require_permission('edit_quotes')
def change_status(quote_id):
    new_status = (_json_body().get('status') or '').strip().lower()
    if not new_status:
        raise ValidationError('status is required', field='status')

    quote = change_quote_status(get_session(), g.tenant_id, quote_id, new_status, user_id=g.user_id)
    return jsonify(quote.to_dict())


@quotes_bp.route('/<int:quote_id>/items/import', methods=['POST'])
@require_login
@require_tenant
@require_permission('import_quotes')
@rate_limit('general')
def import_items(quote_id):
    """
    Append items from a CSV file.

    Accepts a multipart upload under "file" or a raw text/csv body.
    ?delimiter= overrides the default ';'.
    """
    upload = request.files.get('file')
    if upload is not None:
        try:
            content = upload.read().decode('utf-8-sig')
        except UnicodeDecodeError:
            raise ValidationError('The file must be UTF-8 encoded', field='file')
    else:
        content = request.get_data(as_text=True)

    if not content or not content.strip():
        raise ValidationError('CSV content is required', field='file')

    delimiter = request.args.get('delimiter') or ';'
    if len(delimiter) != 1:
        raise ValidationError('delimiter must be a single character', field='delimiter')

    result = import_quote_items(get_session(), g.tenant_id, quote_id, content,
                                delimiter=delimiter, user_id=g.user_id, cache=get_pdf_cache())
    quote = get_quote(get_session(), g.tenant_id, quote_id)
    return jsonify({'import': result.to_dict(), 'quote': quote.to_dict()})


@quotes_bp.route('/import/template', methods=['GET'])
@require_login
@require_tenant
@require_permission('import_quotes')
def import_template():
    """Example CSV for item import (?delimiter= overrides ';')."""
    delimiter = request.args.get('delimiter') or ';'
    if len(delimiter) != 1:
        raise ValidationError('delimiter must be a single character', field='delimiter')

    template = generate_csv_template('quote_items', delimiter)
    return send_file(
        BytesIO(template.encode('utf-8-sig')),
        mimetype='text/csv',
        as_attachment=True,
        download_name='import_lignes_devis.csv'
    )


@quotes_bp.route('/<int:quote_id>/history', methods=['GET'])
@require_login
@require_tenant
@require_permission('view_quotes')
def history(quote_id):
    """Audit trail of a quote, newest first."""
    db_session = get_session()
    quote = get_quote(db_session, g.tenant_id, quote_id)
    entries = get_audit_logs(db_session, g.tenant_id, resource_type_filter='quote',
                             resource_id_filter=quote.id)
    return jsonify({'history': [entry.to_dict() for entry in entries]})


@quotes_bp.route('/<int:quote_id>/pdf', methods=['GET'])
@require_login
@require_tenant
@require_permission('view_quotes')
def pdf(quote_id):
    """Download the quote PDF (?density=compact|normal|detailed&locale=fr-BE)."""
    db_session = get_session()
    pdf_bytes = get_quote_pdf(
        db_session,
        get_pdf_cache(),
        g.tenant_id,
        quote_id,
        density=request.args.get('density') or None,
        locale=request.args.get('locale') or None,
        default_locale=current_app.config.get('PDF_DEFAULT_LOCALE', 'fr-BE')
    )
    quote = get_quote(db_session, g.tenant_id, quote_id)

    return send_file(
        BytesIO(pdf_bytes),
        mimetype='application/pdf',
        as_attachment=False,
        download_name=f'{quote.quote_number}.pdf'
    )

"""Quote service: quote lifecycle, line items and derived totals."""

import logging
from datetime import date
from decimal import Decimal
from typing import Dict, Any, List, Optional

from flask import current_app, has_app_context
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from quotevoice.models import Quote, QuoteItem, QuoteStatus, AuditAction
from quotevoice.exceptions import (
    QuoteVoiceError, ValidationError, NotFoundError, ImmutableError,
    InvalidTransitionError, StorageError
)
from quotevoice.services.audit_service import log_action
from quotevoice.utils.number_format import round_cents, to_decimal

logger = logging.getLogger(__name__)


QUOTE_CLIENT_FIELDS = ('client_name', 'client_email', 'client_phone', 'client_address', 'client_vat_number')

# Allowed status changes; archived is terminal
QUOTE_TRANSITIONS = {
    QuoteStatus.DRAFT.value: {QuoteStatus.SENT.value, QuoteStatus.ARCHIVED.value},
    QuoteStatus.SENT.value: {
        QuoteStatus.ACCEPTED.value, QuoteStatus.REJECTED.value,
        QuoteStatus.DRAFT.value, QuoteStatus.ARCHIVED.value
    },
    QuoteStatus.ACCEPTED.value: {QuoteStatus.FINALIZED.value, QuoteStatus.ARCHIVED.value},
    QuoteStatus.REJECTED.value: {QuoteStatus.DRAFT.value, QuoteStatus.ARCHIVED.value},
    QuoteStatus.FINALIZED.value: {QuoteStatus.EXPORTED.value, QuoteStatus.ARCHIVED.value},
    QuoteStatus.EXPORTED.value: {QuoteStatus.ARCHIVED.value},
    QuoteStatus.ARCHIVED.value: set(),
}


def _invalidate_pdf_cache(quote_id: int, cache=None) -> None:
    """Drop cached PDFs of a quote whose content changed."""
    if cache is None and has_app_context():
        cache = current_app.extensions.get('pdf_cache')
    if cache is not None:
        cache.invalidate_quote(quote_id)


def _parse_tax_rate(value) -> Decimal:
    try:
        tax_rate = to_decimal(value, 'tax_rate')
    except ValueError as e:
        raise ValidationError(str(e), field='tax_rate')
    if tax_rate < 0 or tax_rate > 100:
        raise ValidationError('Tax rate must be between 0 and 100', field='tax_rate')
    return tax_rate


def _parse_items(items_data: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Validate raw item payloads.

    Returns a list of dicts with description, quantity, unit and unit_price.
    """
    if not isinstance(items_data, list):
        raise ValidationError('Items must be a list', field='items')

    parsed = []
    for index, raw in enumerate(items_data):
        if not isinstance(raw, dict):
            raise ValidationError(f'Item {index + 1} is malformed', field=f'items[{index}]')

        description = (raw.get('description') or '').strip()
        if not description:
            raise ValidationError(f'Item {index + 1}: description is required', field=f'items[{index}].description')

        try:
            quantity = to_decimal(raw.get('quantity'), 'quantity')
            unit_price = to_decimal(raw.get('unit_price'), 'unit_price')
        except ValueError as e:
            raise ValidationError(f'Item {index + 1}: {e}', field=f'items[{index}]')

        if quantity <= 0:
            raise ValidationError(f'Item {index + 1}: quantity must be greater than 0', field=f'items[{index}].quantity')
        if unit_price < 0:
            raise ValidationError(f'Item {index + 1}: unit price cannot be negative', field=f'items[{index}].unit_price')

        parsed.append({
            'description': description,
            'quantity': quantity,
            'unit': (raw.get('unit') or '').strip() or None,
            'unit_price': unit_price,
        })
    return parsed


def recalculate_totals(quote: Quote) -> None:
    """
    Recompute line totals, subtotal, tax and total from the items.

    Line totals are rounded per line; the subtotal is the rounded sum of the
    unrounded products so it equals sum(quantity * unit_price).
    """
    raw_subtotal = Decimal('0')
    for item in quote.items:
        line = Decimal(str(item.quantity)) * Decimal(str(item.unit_price))
        item.total = round_cents(line)
        raw_subtotal += line

    subtotal = round_cents(raw_subtotal)
    tax_amount = round_cents(subtotal * Decimal(str(quote.tax_rate)) / Decimal('100'))

    quote.subtotal = subtotal
    quote.tax_amount = tax_amount
    quote.total = subtotal + tax_amount


def _build_items(quote: Quote, parsed_items: List[Dict[str, Any]], start_index: int = 0) -> None:
    for offset, data in enumerate(parsed_items):
        quote.items.append(QuoteItem(
            description=data['description'],
            quantity=data['quantity'],
            unit=data['unit'],
            unit_price=data['unit_price'],
            total=round_cents(data['quantity'] * data['unit_price']),
            order_index=start_index + offset
        ))


def generate_quote_number(session: Session, tenant_id: int, today: Optional[date] = None) -> str:
    """Next quote number for the tenant and year: DEV-{YYYY}-{NNNN}."""
    today = today or date.today()
    prefix = f"DEV-{today.year}-"
    numbers = session.query(Quote.quote_number).filter(
        Quote.tenant_id == tenant_id,
        Quote.quote_number.like(f"{prefix}%")
    ).all()

    last = 0
    for (number,) in numbers:
        suffix = number[len(prefix):]
        if suffix.isdigit():
            last = max(last, int(suffix))
    return f"{prefix}{str(last + 1).zfill(4)}"


def get_quote(session: Session, tenant_id: int, quote_id: int) -> Quote:
    """Get a quote of the tenant; other tenants' quotes are reported as missing."""
    quote = session.query(Quote).filter(
        Quote.id == quote_id,
        Quote.tenant_id == tenant_id
    ).first()
    if not quote:
        raise NotFoundError('Quote not found')
    return quote


def list_quotes(session: Session, tenant_id: int, status: Optional[str] = None) -> List[Quote]:
    query = session.query(Quote).filter(Quote.tenant_id == tenant_id)
    if status:
        query = query.filter(Quote.status == status)
    return query.order_by(Quote.created_at.desc(), Quote.id.desc()).all()


def _get_mutable_quote(session: Session, tenant_id: int, quote_id: int) -> Quote:
    quote = session.query(Quote).filter(
        Quote.id == quote_id,
        Quote.tenant_id == tenant_id
    ).with_for_update().first()
    if not quote:
        raise NotFoundError('Quote not found')
    if quote.is_immutable:
        raise ImmutableError(
            f"Quote {quote.quote_number} is {quote.status} and can no longer be modified",
            payload={'quote_id': quote.id, 'status': quote.status}
        )
    return quote


def create_quote(session: Session, tenant_id: int, user_id: Optional[int], data: Dict[str, Any],
                 today: Optional[date] = None) -> Quote:
    """
    Create a draft quote with its items.

    Raises:
        ValidationError: Missing client name, bad items or tax rate
        StorageError: Database rejected the insert
    """
    client_name = (data.get('client_name') or '').strip()
    if not client_name:
        raise ValidationError('Client name is required', field='client_name')

    parsed_items = _parse_items(data.get('items') or [])
    tax_rate = _parse_tax_rate(data['tax_rate']) if data.get('tax_rate') is not None else Decimal('21')

    try:
        quote = Quote(
            tenant_id=tenant_id,
            user_id=user_id,
            quote_number=generate_quote_number(session, tenant_id, today),
            status=QuoteStatus.DRAFT.value,
            client_name=client_name,
            client_email=(data.get('client_email') or '').strip() or None,
            client_phone=(data.get('client_phone') or '').strip() or None,
            client_address=(data.get('client_address') or '').strip() or None,
            client_vat_number=(data.get('client_vat_number') or '').strip() or None,
            tax_rate=tax_rate,
            notes=(data.get('notes') or '').strip() or None,
        )
        _build_items(quote, parsed_items)
        recalculate_totals(quote)

        session.add(quote)
        session.flush()

        log_action(
            session,
            AuditAction.QUOTE_CREATED,
            resource_type='quote',
            resource_id=quote.id,
            details={'quote_number': quote.quote_number, 'total': str(quote.total)},
            tenant_id=tenant_id,
            user_id=user_id
        )
        session.commit()

        logger.info(f"Quote {quote.quote_number} created for tenant {tenant_id} (total {quote.total})")
        return quote

    except IntegrityError as e:
        session.rollback()
        logger.error(f"Integrity error creating quote for tenant {tenant_id}: {e}")
        raise StorageError(str(e))
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error creating quote for tenant {tenant_id}: {e}")
        raise StorageError(str(e))


def replace_quote_items(session: Session, tenant_id: int, quote_id: int, items: List[Dict[str, Any]],
                        user_id: Optional[int] = None, cache=None) -> Quote:
    """
    Replace every item of a quote, in the given order.

    Items are deleted and re-inserted with a contiguous order_index.
    """
    parsed_items = _parse_items(items)

    try:
        quote = _get_mutable_quote(session, tenant_id, quote_id)

        quote.items.clear()
        session.flush()
        _build_items(quote, parsed_items)
        recalculate_totals(quote)

        log_action(
            session,
            AuditAction.QUOTE_UPDATED,
            resource_type='quote',
            resource_id=quote.id,
            details={'items': len(parsed_items), 'total': str(quote.total)},
            tenant_id=tenant_id,
            user_id=user_id
        )
        session.commit()

    except QuoteVoiceError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error replacing items of quote {quote_id}: {e}")
        raise StorageError(str(e))

    _invalidate_pdf_cache(quote.id, cache)
    return quote


def add_quote_items(session: Session, tenant_id: int, quote_id: int, items: List[Dict[str, Any]],
                    user_id: Optional[int] = None, cache=None,
                    action: AuditAction = AuditAction.QUOTE_UPDATED) -> Quote:
    """Append items after the existing ones."""
    parsed_items = _parse_items(items)
    if not parsed_items:
        raise ValidationError('No items to add', field='items')

    try:
        quote = _get_mutable_quote(session, tenant_id, quote_id)

        _build_items(quote, parsed_items, start_index=len(quote.items))
        recalculate_totals(quote)

        log_action(
            session,
            action,
            resource_type='quote',
            resource_id=quote.id,
            details={'added': len(parsed_items), 'total': str(quote.total)},
            tenant_id=tenant_id,
            user_id=user_id
        )
        session.commit()

    except QuoteVoiceError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error adding items to quote {quote_id}: {e}")
        raise StorageError(str(e))

    _invalidate_pdf_cache(quote.id, cache)
    return quote


def reorder_quote_items(session: Session, tenant_id: int, quote_id: int, item_ids: List[int],
                        user_id: Optional[int] = None, cache=None) -> Quote:
    """
    Reorder items: item_ids must be a permutation of the quote's item ids.

    Raises:
        ValidationError: item_ids is not a permutation of the current items
    """
    try:
        quote = _get_mutable_quote(session, tenant_id, quote_id)

        current = {item.id: item for item in quote.items}
        try:
            requested = [int(item_id) for item_id in item_ids]
        except (TypeError, ValueError):
            raise ValidationError('Item ids must be integers', field='item_ids')

        if len(requested) != len(current) or set(requested) != set(current):
            raise ValidationError(
                'Item ids must list every item of the quote exactly once',
                field='item_ids'
            )

        for index, item_id in enumerate(requested):
            current[item_id].order_index = index

        log_action(
            session,
            AuditAction.QUOTE_UPDATED,
            resource_type='quote',
            resource_id=quote.id,
            details={'reordered': requested},
            tenant_id=tenant_id,
            user_id=user_id
        )
        session.commit()
        session.refresh(quote)

    except QuoteVoiceError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error reordering quote {quote_id}: {e}")
        raise StorageError(str(e))

    _invalidate_pdf_cache(quote.id, cache)
    return quote


def update_quote(session: Session, tenant_id: int, quote_id: int, data: Dict[str, Any],
                 user_id: Optional[int] = None, cache=None) -> Quote:
    """Update client fields, notes or tax rate of a quote."""
    allowed = set(QUOTE_CLIENT_FIELDS) | {'notes', 'tax_rate'}
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(unknown)}", field=unknown[0])

    if 'client_name' in data and not (data['client_name'] or '').strip():
        raise ValidationError('Client name is required', field='client_name')
    tax_rate = _parse_tax_rate(data['tax_rate']) if 'tax_rate' in data else None

    try:
        quote = _get_mutable_quote(session, tenant_id, quote_id)

        for field in QUOTE_CLIENT_FIELDS:
            if field in data:
                setattr(quote, field, (data[field] or '').strip() or None)
        if 'notes' in data:
            quote.notes = (data['notes'] or '').strip() or None
        if tax_rate is not None:
            quote.tax_rate = tax_rate
            recalculate_totals(quote)

        log_action(
            session,
            AuditAction.QUOTE_UPDATED,
            resource_type='quote',
            resource_id=quote.id,
            details={'fields': sorted(data)},
            tenant_id=tenant_id,
            user_id=user_id
        )
        session.commit()

    except QuoteVoiceError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error updating quote {quote_id}: {e}")
        raise StorageError(str(e))

    _invalidate_pdf_cache(quote.id, cache)
    return quote


def change_quote_status(session: Session, tenant_id: int, quote_id: int, new_status: str,
                        user_id: Optional[int] = None) -> Quote:
    """
    Move a quote along its lifecycle.

    Raises:
        ValidationError: Unknown status
        InvalidTransitionError: Transition not allowed from the current status
    """
    valid = {status.value for status in QuoteStatus}
    if new_status not in valid:
        raise ValidationError(f"Unknown quote status '{new_status}'", field='status')

    try:
        quote = session.query(Quote).filter(
            Quote.id == quote_id,
            Quote.tenant_id == tenant_id
        ).with_for_update().first()
        if not quote:
            raise NotFoundError('Quote not found')

        old_status = quote.status
        if new_status not in QUOTE_TRANSITIONS.get(old_status, set()):
            raise InvalidTransitionError('quote', old_status, new_status)

        quote.status = new_status

        log_action(
            session,
            AuditAction.QUOTE_STATUS_CHANGED,
            resource_type='quote',
            resource_id=quote.id,
            details={'from': old_status, 'to': new_status},
            tenant_id=tenant_id,
            user_id=user_id
        )
        session.commit()

        logger.info(f"Quote {quote.quote_number} status {old_status} -> {new_status}")
        return quote

    except QuoteVoiceError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Database error changing status of quote {quote_id}: {e}")
        raise StorageError(str(e))

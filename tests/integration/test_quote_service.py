"""
Integration tests for quote management: totals, numbering, items and lifecycle.
"""

import pytest
from datetime import date
from decimal import Decimal

from quotevoice.exceptions import (
    ValidationError, NotFoundError, ImmutableError, InvalidTransitionError
)
from quotevoice.models import AuditAction, QuoteItem
from quotevoice.services.audit_service import get_audit_logs
from quotevoice.services.pdf_cache_service import CacheKey, PDFCache
from quotevoice.services.quote_service import (
    create_quote,
    get_quote,
    list_quotes,
    update_quote,
    replace_quote_items,
    add_quote_items,
    reorder_quote_items,
    change_quote_status,
    generate_quote_number
)

TODAY = date(2026, 3, 15)


def three_item_quote(session, tenant, user):
    return create_quote(session, tenant.id, user.id, {
        'client_name': 'Client Renard',
        'items': [
            {'description': 'A', 'quantity': 1, 'unit_price': '10.00'},
            {'description': 'B', 'quantity': 2, 'unit_price': '20.00'},
            {'description': 'C', 'quantity': 3, 'unit_price': '30.00'},
        ],
    }, today=TODAY)


class TestCreateQuote:

    def test_totals(self, quote):
        assert quote.quote_number == 'DEV-2026-0001'
        assert quote.status == 'draft'
        assert quote.subtotal == Decimal('100.00')
        assert quote.tax_amount == Decimal('21.00')
        assert quote.total == Decimal('121.00')
        assert [item.order_index for item in quote.items] == [0]

    def test_tax_rounded_half_up(self, session, tenant1, user1):
        quote = create_quote(session, tenant1.id, user1.id, {
            'client_name': 'X',
            'tax_rate': '21',
            'items': [{'description': 'Vis', 'quantity': '3', 'unit_price': '0.05'}],
        }, today=TODAY)
        # 0.15 * 21% = 0.0315
        assert quote.subtotal == Decimal('0.15')
        assert quote.tax_amount == Decimal('0.03')
        assert quote.total == Decimal('0.18')

    def test_default_tax_rate_is_21(self, session, tenant1, user1):
        quote = create_quote(session, tenant1.id, user1.id, {
            'client_name': 'X', 'items': [{'description': 'a', 'quantity': 1, 'unit_price': 10}],
        }, today=TODAY)
        assert quote.tax_rate == Decimal('21')

    def test_numbering_per_tenant_and_year(self, session, tenant1, tenant2, user1, quote):
        assert generate_quote_number(session, tenant1.id, TODAY) == 'DEV-2026-0002'
        assert generate_quote_number(session, tenant2.id, TODAY) == 'DEV-2026-0001'
        assert generate_quote_number(session, tenant1.id, date(2027, 1, 2)) == 'DEV-2027-0001'

    def test_audit_logged(self, session, tenant1, quote):
        entries = get_audit_logs(session, tenant1.id, resource_type_filter='quote', resource_id_filter=quote.id)
        assert [entry.action for entry in entries] == [AuditAction.QUOTE_CREATED]

    def test_history_newest_first(self, session, tenant1, tenant2, quote):
        change_quote_status(session, tenant1.id, quote.id, 'sent')

        entries = get_audit_logs(session, tenant1.id, resource_id_filter=quote.id)
        assert [entry.action for entry in entries] == [AuditAction.QUOTE_STATUS_CHANGED, AuditAction.QUOTE_CREATED]
        assert '"to": "sent"' in entries[0].details
        assert get_audit_logs(session, tenant2.id) == []

    @pytest.mark.parametrize('data,field', [
        ({'client_name': '  '}, 'client_name'),
        ({'client_name': 'X', 'tax_rate': 120}, 'tax_rate'),
        ({'client_name': 'X', 'items': [{'description': '', 'quantity': 1, 'unit_price': 1}]},
         'items[0].description'),
        ({'client_name': 'X', 'items': [{'description': 'a', 'quantity': 0, 'unit_price': 1}]},
         'items[0].quantity'),
        ({'client_name': 'X', 'items': [{'description': 'a', 'quantity': 1, 'unit_price': -1}]},
         'items[0].unit_price'),
    ])
    def test_validation(self, session, tenant1, user1, data, field):
        with pytest.raises(ValidationError) as exc_info:
            create_quote(session, tenant1.id, user1.id, data, today=TODAY)
        assert exc_info.value.field == field


class TestTenantScoping:

    def test_other_tenant_sees_not_found(self, session, tenant2, quote):
        with pytest.raises(NotFoundError):
            get_quote(session, tenant2.id, quote.id)

    def test_list_is_scoped(self, session, tenant1, tenant2, quote):
        assert [q.id for q in list_quotes(session, tenant1.id)] == [quote.id]
        assert list_quotes(session, tenant2.id) == []


class TestItems:

    def test_replace_items_reindexes(self, session, tenant1, user1, quote):
        quote = replace_quote_items(session, tenant1.id, quote.id, [
            {'description': 'Second', 'quantity': 2, 'unit_price': '5.00'},
            {'description': 'First', 'quantity': 1, 'unit_price': '50.00'},
        ])

        assert [(i.description, i.order_index) for i in quote.items] == [('Second', 0), ('First', 1)]
        assert quote.subtotal == Decimal('60.00')
        assert quote.total == Decimal('72.60')
        assert session.query(QuoteItem).filter_by(quote_id=quote.id).count() == 2

    def test_add_items_appends(self, session, tenant1, quote):
        quote = add_quote_items(session, tenant1.id, quote.id, [
            {'description': 'Extra', 'quantity': 1, 'unit_price': '10'},
        ])
        assert [i.order_index for i in quote.items] == [0, 1]
        assert quote.total == Decimal('133.10')

    def test_reorder_items(self, session, tenant1, user1):
        quote = three_item_quote(session, tenant1, user1)
        a, b, c = [item.id for item in quote.items]

        quote = reorder_quote_items(session, tenant1.id, quote.id, [c, a, b])

        assert [item.id for item in quote.items] == [c, a, b]
        assert [item.order_index for item in quote.items] == [0, 1, 2]
        assert quote.total == Decimal('169.40')

    @pytest.mark.parametrize('pick', [
        lambda ids: ids[:2],
        lambda ids: ids + [ids[0]],
        lambda ids: [ids[0], ids[0], ids[1]],
        lambda ids: ids[:2] + [999999],
    ])
    def test_reorder_rejects_non_permutations(self, session, tenant1, user1, pick):
        quote = three_item_quote(session, tenant1, user1)
        ids = [item.id for item in quote.items]

        with pytest.raises(ValidationError):
            reorder_quote_items(session, tenant1.id, quote.id, pick(ids))

        assert [item.order_index for item in get_quote(session, tenant1.id, quote.id).items] == [0, 1, 2]

    def test_update_tax_rate_recomputes(self, session, tenant1, quote):
        quote = update_quote(session, tenant1.id, quote.id, {'tax_rate': 6, 'notes': 'Rénovation'})
        assert quote.tax_amount == Decimal('6.00')
        assert quote.total == Decimal('106.00')
        assert quote.notes == 'Rénovation'

    def test_update_rejects_unknown_fields(self, session, tenant1, quote):
        with pytest.raises(ValidationError):
            update_quote(session, tenant1.id, quote.id, {'total': '1.00'})


class TestPdfCacheInvalidation:

    def test_mutations_drop_cached_pdfs(self, session, tenant1, quote):
        cache = PDFCache()
        cache.set(CacheKey(quote.id, 'normal', 'fr-BE', 'h1'), b'pdf')
        cache.set(CacheKey(quote.id, 'compact', 'nl-BE', 'h1'), b'pdf')

        update_quote(session, tenant1.id, quote.id, {'notes': 'changed'}, cache=cache)

        assert cache.get_stats()['entries'] == 0

    def test_other_quotes_keep_their_pdfs(self, session, tenant1, quote):
        cache = PDFCache()
        cache.set(CacheKey(quote.id + 1, 'normal', 'fr-BE', 'h1'), b'pdf')

        add_quote_items(session, tenant1.id, quote.id,
                        [{'description': 'x', 'quantity': 1, 'unit_price': 1}], cache=cache)

        assert cache.get_stats()['entries'] == 1


class TestLifecycle:

    def test_happy_path(self, session, tenant1, quote):
        for status in ('sent', 'accepted', 'finalized', 'exported', 'archived'):
            quote = change_quote_status(session, tenant1.id, quote.id, status)
            assert quote.status == status

    def test_rejected_back_to_draft(self, session, tenant1, quote):
        change_quote_status(session, tenant1.id, quote.id, 'sent')
        change_quote_status(session, tenant1.id, quote.id, 'rejected')
        assert change_quote_status(session, tenant1.id, quote.id, 'draft').status == 'draft'

    @pytest.mark.parametrize('target', ['accepted', 'finalized', 'exported'])
    def test_invalid_transitions_from_draft(self, session, tenant1, quote, target):
        with pytest.raises(InvalidTransitionError):
            change_quote_status(session, tenant1.id, quote.id, target)

    def test_archived_is_terminal(self, session, tenant1, quote):
        change_quote_status(session, tenant1.id, quote.id, 'archived')
        with pytest.raises(InvalidTransitionError):
            change_quote_status(session, tenant1.id, quote.id, 'draft')

    def test_unknown_status(self, session, tenant1, quote):
        with pytest.raises(ValidationError):
            change_quote_status(session, tenant1.id, quote.id, 'lost')

    @pytest.mark.parametrize('mutate', [
        lambda s, t, q: update_quote(s, t, q, {'notes': 'x'}),
        lambda s, t, q: add_quote_items(s, t, q, [{'description': 'x', 'quantity': 1, 'unit_price': 1}]),
        lambda s, t, q: replace_quote_items(s, t, q, [{'description': 'x', 'quantity': 1, 'unit_price': 1}]),
        lambda s, t, q: reorder_quote_items(s, t, q, []),
    ])
    def test_finalized_quote_is_immutable(self, session, tenant1, quote, mutate):
        for status in ('sent', 'accepted', 'finalized'):
            change_quote_status(session, tenant1.id, quote.id, status)

        with pytest.raises(ImmutableError):
            mutate(session, tenant1.id, quote.id)

        quote = get_quote(session, tenant1.id, quote.id)
        assert quote.total == Decimal('121.00')
        assert len(quote.items) == 1

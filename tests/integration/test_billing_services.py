"""
Integration tests for the document side of billing: PDFs, Peppol export,
branding settings and CSV item import.
"""

import pytest
from datetime import date
from decimal import Decimal

from quotevoice.exceptions import (
    ValidationError, NotFoundError, UnauthorizedError, ImmutableError
)
from quotevoice.models import AuditLog, AuditAction, Company
from quotevoice.services.branding_service import apply_branding_update, get_branding_settings
from quotevoice.services.csv_import_service import import_quote_items
from quotevoice.services.invoice_service import convert_quote_to_invoice, send_invoice, cancel_invoice
from quotevoice.services.pdf_cache_service import PDFCache
from quotevoice.services.pdf_service import get_quote_pdf, get_invoice_pdf
from quotevoice.services.peppol_service import export_invoice
from quotevoice.services.quote_service import change_quote_status, get_quote

TODAY = date(2026, 3, 15)


class TestQuotePdf:

    def test_renders_pdf(self, session, tenant1, company, quote):
        pdf = get_quote_pdf(session, None, tenant1.id, quote.id)
        assert pdf.startswith(b'%PDF')

    def test_second_render_is_served_from_cache(self, session, tenant1, company, quote):
        cache = PDFCache()

        first = get_quote_pdf(session, cache, tenant1.id, quote.id, density='compact', locale='nl-BE')
        assert cache.get_stats()['entries'] == 1

        second = get_quote_pdf(session, cache, tenant1.id, quote.id, density='compact', locale='nl-BE')
        assert second is first

    def test_each_density_cached_separately(self, session, tenant1, company, quote):
        cache = PDFCache()
        get_quote_pdf(session, cache, tenant1.id, quote.id, density='compact')
        get_quote_pdf(session, cache, tenant1.id, quote.id, density='detailed')
        assert cache.get_stats()['entries'] == 2

    def test_tenant_default_locale(self, session, tenant1, company, quote):
        tenant1.default_locale = 'nl-BE'
        session.commit()
        cache = PDFCache()

        first = get_quote_pdf(session, cache, tenant1.id, quote.id, density='normal')

        assert get_quote_pdf(session, cache, tenant1.id, quote.id, density='normal', locale='nl-BE') is first
        assert get_quote_pdf(session, cache, tenant1.id, quote.id, density='normal', locale='fr-BE') is not first

    def test_branding_update_drops_cached_pdfs(self, session, tenant1, subscription, company, quote):
        cache = PDFCache()
        first = get_quote_pdf(session, cache, tenant1.id, quote.id, density='normal')

        apply_branding_update(session, tenant1.id, 'pro', {
            'primary_color': '#ff0000',
            'show_watermark': True,
        }, cache=cache)
        assert cache.get_stats()['entries'] == 0

        second = get_quote_pdf(session, cache, tenant1.id, quote.id, density='normal')
        assert second is not first
        assert second != first

    def test_tier_downgrade_is_not_served_from_cache(self, session, tenant1, subscription, company, quote):
        cache = PDFCache()
        pro_pdf = get_quote_pdf(session, cache, tenant1.id, quote.id, density='normal')

        subscription.plan_code = 'free'
        session.commit()

        free_pdf = get_quote_pdf(session, cache, tenant1.id, quote.id, density='normal')
        assert free_pdf is not pro_pdf
        assert free_pdf != pro_pdf
        assert cache.get_stats()['entries'] == 2

    def test_renders_without_company(self, session, tenant1, quote):
        assert get_quote_pdf(session, None, tenant1.id, quote.id).startswith(b'%PDF')

    def test_other_tenant(self, session, tenant2, quote):
        with pytest.raises(NotFoundError):
            get_quote_pdf(session, None, tenant2.id, quote.id)


class TestInvoicePdf:

    def test_renders_with_payment_qr(self, session, tenant1, company, quote):
        invoice = convert_quote_to_invoice(session, tenant1.id, quote.id, today=TODAY)
        assert invoice.qr_code_data

        pdf = get_invoice_pdf(session, tenant1.id, invoice.id, locale='en')
        assert pdf.startswith(b'%PDF')

    def test_renders_deposit_invoice(self, session, tenant1, company, big_quote):
        invoice = convert_quote_to_invoice(session, tenant1.id, big_quote.id, invoice_type='deposit',
                                           deposit_percentage=30, today=TODAY)
        assert get_invoice_pdf(session, tenant1.id, invoice.id).startswith(b'%PDF')


class TestPeppolExport:

    def test_exports_sent_invoice(self, session, tenant1, user1, company, quote):
        invoice = convert_quote_to_invoice(session, tenant1.id, quote.id, today=TODAY)
        send_invoice(session, tenant1.id, invoice.id)

        exported, xml = export_invoice(session, tenant1.id, invoice.id, user_id=user1.id)

        assert exported.id == invoice.id
        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
        assert '<cbc:ID>FAC-2026-0001</cbc:ID>' in xml
        assert '<cbc:PayableAmount currencyID="EUR">121.00</cbc:PayableAmount>' in xml
        assert 'Menuiserie Dupont SRL' in xml

        entry = session.query(AuditLog).filter_by(action=AuditAction.INVOICE_EXPORTED).one()
        assert entry.resource_id == invoice.id

    @pytest.mark.parametrize('cancel', [False, True])
    def test_draft_and_cancelled_rejected(self, session, tenant1, company, quote, cancel):
        invoice = convert_quote_to_invoice(session, tenant1.id, quote.id, today=TODAY)
        if cancel:
            cancel_invoice(session, tenant1.id, invoice.id)

        with pytest.raises(ValidationError):
            export_invoice(session, tenant1.id, invoice.id)

    def test_requires_company(self, session, tenant1, quote):
        invoice = convert_quote_to_invoice(session, tenant1.id, quote.id, today=TODAY)
        send_invoice(session, tenant1.id, invoice.id)

        with pytest.raises(NotFoundError):
            export_invoice(session, tenant1.id, invoice.id)

    def test_other_tenant(self, session, tenant1, tenant2, company, quote):
        invoice = convert_quote_to_invoice(session, tenant1.id, quote.id, today=TODAY)
        send_invoice(session, tenant1.id, invoice.id)

        with pytest.raises(NotFoundError):
            export_invoice(session, tenant2.id, invoice.id)


class TestBrandingUpdate:

    def test_pro_can_change_colors(self, session, tenant1, company):
        updated = apply_branding_update(session, tenant1.id, 'pro', {
            'primary_color': '#112233',
            'show_watermark': False,
        })

        assert updated.primary_color == '#112233'
        entry = session.query(AuditLog).filter_by(action=AuditAction.BRANDING_CHANGED).one()
        assert entry.resource_type == 'company'

    def test_denied_field_rejects_whole_update(self, session, tenant1, company):
        company_id = company.id

        with pytest.raises(UnauthorizedError) as exc_info:
            apply_branding_update(session, tenant1.id, 'free', {
                'primary_color': '#112233',
                'footer_text': 'Merci',
            })

        assert exc_info.value.payload['fields'] == ['footer_text', 'primary_color']
        stored = session.get(Company, company_id)
        assert stored.primary_color is None
        assert stored.footer_text is None
        assert session.query(AuditLog).count() == 0

    def test_pro_cannot_white_label(self, session, tenant1, company):
        with pytest.raises(UnauthorizedError):
            apply_branding_update(session, tenant1.id, 'pro', {'white_label': True})

    @pytest.mark.parametrize('changes', [
        {},
        {'primary_color': 'blue'},
        {'show_watermark': 'no'},
        {'name': '  '},
        {'favicon': 'x.ico'},
    ])
    def test_invalid_changes(self, session, tenant1, company, changes):
        with pytest.raises(ValidationError):
            apply_branding_update(session, tenant1.id, 'corporate', changes)

    def test_settings_reflect_tier(self, session, tenant1, company):
        apply_branding_update(session, tenant1.id, 'business', {'primary_color': '#112233'})

        assert get_branding_settings(company, 'business')['effective']['primary_color'] == '#112233'
        downgraded = get_branding_settings(company, 'free')
        assert downgraded['effective']['primary_color'] == '#2563eb'
        assert downgraded['stored']['primary_color'] == '#112233'
        assert downgraded['effective']['show_watermark'] is True


class TestCsvItemImport:

    def test_imports_valid_rows(self, session, tenant1, user1, quote):
        content = (
            '\ufeffDescription;Quantité;Unité;Prix unitaire\n'
            'Plinthes;12;m;4,50\n'
            'Colle;2;pot;18.00\n'
        )

        result = import_quote_items(session, tenant1.id, quote.id, content, user_id=user1.id)

        assert (result.total_rows, result.success_rows, result.error_rows) == (2, 2, 0)
        quote = get_quote(session, tenant1.id, quote.id)
        assert [item.description for item in quote.items] == ['Pose de parquet', 'Plinthes', 'Colle']
        assert [item.order_index for item in quote.items] == [0, 1, 2]
        assert quote.subtotal == Decimal('190.00')

        entry = session.query(AuditLog).filter_by(action=AuditAction.QUOTE_ITEMS_IMPORTED).one()
        assert entry.resource_id == quote.id

    def test_invalid_rows_reported_and_skipped(self, session, tenant1, quote):
        content = (
            'description;quantite;prix_unitaire\n'
            'Plinthes;12;4,50\n'
            'Rien;0;10\n'
            ';1;10\n'
            'Remise;1;-5\n'
            'Colle;deux;18\n'
        )

        result = import_quote_items(session, tenant1.id, quote.id, content)

        assert (result.total_rows, result.success_rows, result.error_rows) == (5, 1, 4)
        assert sorted(error.row for error in result.errors) == [3, 4, 5, 6]
        assert {error.field for error in result.errors} == {'quantity', 'description', 'unit_price'}
        assert len(get_quote(session, tenant1.id, quote.id).items) == 2

    def test_no_valid_row(self, session, tenant1, quote):
        content = 'description;quantite;prix_unitaire\nRien;0;10\n'

        with pytest.raises(ValidationError) as exc_info:
            import_quote_items(session, tenant1.id, quote.id, content)

        assert exc_info.value.payload['error_rows'] == 1
        assert len(get_quote(session, tenant1.id, quote.id).items) == 1

    def test_missing_required_column(self, session, tenant1, quote):
        with pytest.raises(ValidationError) as exc_info:
            import_quote_items(session, tenant1.id, quote.id, 'description;unite\nA;m\n')
        assert exc_info.value.payload['missing'] == ['quantity', 'unit_price']

    def test_comma_delimiter(self, session, tenant1, quote):
        content = 'description,quantite,prix_unitaire\nVis,100,"0,10"\n'
        result = import_quote_items(session, tenant1.id, quote.id, content, delimiter=',')
        assert result.success_rows == 1
        assert get_quote(session, tenant1.id, quote.id).subtotal == Decimal('110.00')

    def test_finalized_quote_rejected(self, session, tenant1, quote):
        for status in ('sent', 'accepted', 'finalized'):
            change_quote_status(session, tenant1.id, quote.id, status)

        with pytest.raises(ImmutableError):
            import_quote_items(session, tenant1.id, quote.id, 'description;quantite;prix_unitaire\nA;1;1\n')

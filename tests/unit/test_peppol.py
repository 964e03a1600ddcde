"""
Unit tests for the Peppol BIS 3.0 (UBL) export.
"""

import xml.etree.ElementTree as ET
from datetime import date
from decimal import Decimal

import pytest

from quotevoice.models import Company, Invoice, InvoiceItem
from quotevoice.services.peppol_service import (
    CAC_NS,
    CBC_NS,
    INVOICE_NS,
    export_to_peppol_xml
)

NS = {'cac': CAC_NS, 'cbc': CBC_NS}


@pytest.fixture
def company():
    return Company(
        name='Menuiserie Dupont SRL',
        vat_number='BE 0123.456.749',
        address='Rue des Artisans 12\n1000 Bruxelles',
        iban='BE68 5390 0754 7034',
        bic='GKCCBEBB'
    )


def make_invoice(**overrides):
    values = dict(
        invoice_number='FAC-2026-0001',
        invoice_type='standard',
        status='sent',
        client_name='A & B <Co>',
        client_vat_number=None,
        client_address='Chaussée de Louvain 5, 1030 Schaerbeek',
        subtotal=Decimal('100.00'),
        tax_rate=Decimal('21.00'),
        tax_amount=Decimal('21.00'),
        total=Decimal('121.00'),
        amount_paid=Decimal('0.00'),
        amount_due=Decimal('121.00'),
        structured_reference='+++002/0260/00196+++',
        issue_date=date(2026, 3, 15),
        due_date=date(2026, 4, 14),
        payment_terms='Paiement à 30 jours',
        notes=None,
    )
    values.update(overrides)
    invoice = Invoice(**values)
    invoice.items.append(InvoiceItem(
        description='Pose <parquet> & finition',
        quantity=Decimal('2.000'),
        unit='m2',
        unit_price=Decimal('50.00'),
        tax_rate=Decimal('21.00'),
        total=Decimal('100.00'),
        order_index=0
    ))
    return invoice


def parse(xml):
    return ET.fromstring(xml.encode('utf-8'))


def local_names(element):
    return [child.tag.split('}')[1] for child in element]


class TestPeppolDocument:

    def test_declaration_and_root(self, company):
        xml = export_to_peppol_xml(make_invoice(), company)
        assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>\n')

        root = parse(xml)
        assert root.tag == f'{{{INVOICE_NS}}}Invoice'
        assert root.find('cbc:ID', NS).text == 'FAC-2026-0001'
        assert root.find('cbc:InvoiceTypeCode', NS).text == '380'
        assert root.find('cbc:DocumentCurrencyCode', NS).text == 'EUR'
        assert root.find('cbc:IssueDate', NS).text == '2026-03-15'
        assert root.find('cbc:DueDate', NS).text == '2026-04-14'

    def test_default_namespace_with_unqualified_attributes(self, company):
        xml = export_to_peppol_xml(make_invoice(), company)

        assert xml.split('\n')[1].startswith(f'<Invoice xmlns="{INVOICE_NS}"')
        assert '<cbc:PayableAmount currencyID="EUR">121.00</cbc:PayableAmount>' in xml
        assert 'unitCode="EA"' in xml
        assert 'ns0:' not in xml

    def test_element_order(self, company):
        root = parse(export_to_peppol_xml(make_invoice(notes='Merci'), company))
        assert local_names(root) == [
            'CustomizationID', 'ProfileID', 'ID', 'IssueDate', 'DueDate', 'InvoiceTypeCode',
            'Note', 'DocumentCurrencyCode', 'AccountingSupplierParty', 'AccountingCustomerParty',
            'PaymentMeans', 'PaymentTerms', 'TaxTotal', 'LegalMonetaryTotal', 'InvoiceLine',
        ]

    def test_special_characters_are_escaped(self, company):
        xml = export_to_peppol_xml(make_invoice(), company)

        assert 'A &amp; B &lt;Co&gt;' in xml
        assert 'Pose &lt;parquet&gt; &amp; finition' in xml
        root = parse(xml)
        customer = root.find('cac:AccountingCustomerParty/cac:Party', NS)
        assert customer.find('cac:PartyName/cbc:Name', NS).text == 'A & B <Co>'

    def test_supplier_party(self, company):
        root = parse(export_to_peppol_xml(make_invoice(), company))
        supplier = root.find('cac:AccountingSupplierParty/cac:Party', NS)

        endpoint = supplier.find('cbc:EndpointID', NS)
        assert endpoint.text == 'BE0123456749'
        assert endpoint.get('schemeID') == '9925'
        assert supplier.find('cac:PartyTaxScheme/cbc:CompanyID', NS).text == 'BE0123456749'
        assert supplier.find('cac:PostalAddress/cac:Country/cbc:IdentificationCode', NS).text == 'BE'
        assert supplier.find('cac:PartyLegalEntity/cbc:RegistrationName', NS).text == 'Menuiserie Dupont SRL'

    def test_customer_without_vat_has_no_tax_scheme(self, company):
        root = parse(export_to_peppol_xml(make_invoice(), company))
        customer = root.find('cac:AccountingCustomerParty/cac:Party', NS)

        assert customer.find('cac:PartyTaxScheme', NS) is None
        assert customer.find('cbc:EndpointID', NS) is None

    def test_customer_with_foreign_vat(self, company):
        root = parse(export_to_peppol_xml(make_invoice(client_vat_number='FR12345678901'), company))
        customer = root.find('cac:AccountingCustomerParty/cac:Party', NS)

        assert customer.find('cac:PartyTaxScheme/cbc:CompanyID', NS).text == 'FR12345678901'
        assert customer.find('cac:PostalAddress/cac:Country/cbc:IdentificationCode', NS).text == 'FR'

    def test_payment_means(self, company):
        root = parse(export_to_peppol_xml(make_invoice(), company))
        means = root.find('cac:PaymentMeans', NS)

        assert means.find('cbc:PaymentMeansCode', NS).text == '30'
        assert means.find('cbc:PaymentID', NS).text == '+++002/0260/00196+++'
        assert means.find('cac:PayeeFinancialAccount/cbc:ID', NS).text == 'BE68539007547034'
        assert means.find('cac:PayeeFinancialAccount/cac:FinancialInstitutionBranch/cbc:ID', NS).text == 'GKCCBEBB'

    def test_payment_id_requires_valid_reference(self, company):
        root = parse(export_to_peppol_xml(make_invoice(structured_reference='+++002/0260/00197+++'), company))
        assert root.find('cac:PaymentMeans/cbc:PaymentID', NS) is None

    def test_totals(self, company):
        root = parse(export_to_peppol_xml(make_invoice(), company))

        tax_total = root.find('cac:TaxTotal', NS)
        assert tax_total.find('cbc:TaxAmount', NS).text == '21.00'
        assert tax_total.find('cbc:TaxAmount', NS).get('currencyID') == 'EUR'
        subtotal = tax_total.find('cac:TaxSubtotal', NS)
        assert subtotal.find('cbc:TaxableAmount', NS).text == '100.00'
        assert subtotal.find('cac:TaxCategory/cbc:ID', NS).text == 'S'
        assert subtotal.find('cac:TaxCategory/cbc:Percent', NS).text == '21.00'

        monetary = root.find('cac:LegalMonetaryTotal', NS)
        assert local_names(monetary) == [
            'LineExtensionAmount', 'TaxExclusiveAmount', 'TaxInclusiveAmount', 'PayableAmount',
        ]
        assert monetary.find('cbc:TaxInclusiveAmount', NS).text == '121.00'
        assert monetary.find('cbc:PayableAmount', NS).text == '121.00'

    def test_prepaid_amount_after_partial_payment(self, company):
        invoice = make_invoice(amount_paid=Decimal('21.00'), amount_due=Decimal('100.00'))
        monetary = parse(export_to_peppol_xml(invoice, company)).find('cac:LegalMonetaryTotal', NS)

        assert monetary.find('cbc:PrepaidAmount', NS).text == '21.00'
        assert monetary.find('cbc:PayableAmount', NS).text == '100.00'

    def test_zero_rate_category(self, company):
        invoice = make_invoice(tax_rate=Decimal('0'), tax_amount=Decimal('0'), total=Decimal('100.00'))
        root = parse(export_to_peppol_xml(invoice, company))
        assert root.find('cac:TaxTotal/cac:TaxSubtotal/cac:TaxCategory/cbc:ID', NS).text == 'Z'

    def test_invoice_lines(self, company):
        root = parse(export_to_peppol_xml(make_invoice(), company))
        line = root.find('cac:InvoiceLine', NS)

        assert line.find('cbc:ID', NS).text == '1'
        quantity = line.find('cbc:InvoicedQuantity', NS)
        assert quantity.text == '2'
        assert quantity.get('unitCode') == 'EA'
        assert line.find('cbc:LineExtensionAmount', NS).text == '100.00'
        assert line.find('cac:Item/cac:ClassifiedTaxCategory/cbc:ID', NS).text == 'S'
        assert line.find('cac:Price/cbc:PriceAmount', NS).text == '50.00'

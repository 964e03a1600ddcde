"""
Peppol BIS Billing 3.0 export (UBL 2.1 Invoice).

Documents are built as ElementTree elements, so every interpolated value
(client name, descriptions, notes) is escaped by the serializer.
"""
import logging
import xml.etree.ElementTree as ET
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from quotevoice.exceptions import NotFoundError, ValidationError
from quotevoice.models import AuditAction, Company, Invoice, InvoiceStatus
from quotevoice.services.audit_service import log_action
from quotevoice.services.invoice_service import get_invoice
from quotevoice.utils.payment_codes import validate_structured_reference

logger = logging.getLogger(__name__)

INVOICE_NS = 'urn:oasis:names:specification:ubl:schema:xsd:Invoice-2'
CAC_NS = 'urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2'
CBC_NS = 'urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2'

CUSTOMIZATION_ID = 'urn:cen.eu:en16931:2017#compliant#urn:fdc:peppol.eu:2017:poacc:billing:3.0'
PROFILE_ID = 'urn:fdc:peppol.eu:2017:poacc:billing:01:1.0'
COMMERCIAL_INVOICE = '380'
CREDIT_TRANSFER = '30'
CURRENCY = 'EUR'
UNIT_CODE = 'EA'
BELGIAN_VAT_SCHEME = '9925'
DEFAULT_COUNTRY = 'BE'

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

ET.register_namespace('', INVOICE_NS)
ET.register_namespace('cac', CAC_NS)
ET.register_namespace('cbc', CBC_NS)


def _cbc(parent, name, text=None, **attrib):
    element = ET.SubElement(parent, f'{{{CBC_NS}}}{name}', attrib)
    if text is not None:
        element.text = str(text)
    return element


def _cac(parent, name):
    return ET.SubElement(parent, f'{{{CAC_NS}}}{name}')


def _amount(value) -> str:
    return f"{Decimal(str(value or 0)):.2f}"


def _quantity(value) -> str:
    text = format(Decimal(str(value)).normalize(), 'f')
    return text


def _tax_category_id(tax_rate) -> str:
    """Standard rate (S), or zero rated (Z) when the rate is 0."""
    return 'S' if Decimal(str(tax_rate or 0)) > 0 else 'Z'


def _country_code(vat_number: Optional[str]) -> str:
    prefix = (vat_number or '')[:2].upper()
    return prefix if prefix.isalpha() and len(prefix) == 2 else DEFAULT_COUNTRY


def _clean_vat(vat_number: Optional[str]) -> str:
    return ''.join((vat_number or '').split()).replace('.', '').upper()


def _add_party(parent, tag: str, name: str, vat_number: Optional[str], address: Optional[str]) -> None:
    party = _cac(_cac(parent, tag), 'Party')
    vat = _clean_vat(vat_number)

    if vat.startswith('BE'):
        _cbc(party, 'EndpointID', vat, schemeID=BELGIAN_VAT_SCHEME)

    _cbc(_cac(party, 'PartyName'), 'Name', name)

    postal = _cac(party, 'PostalAddress')
    if address:
        _cbc(_cac(postal, 'AddressLine'), 'Line', ' '.join(address.split()))
    _cbc(_cac(postal, 'Country'), 'IdentificationCode', _country_code(vat))

    # VAT scheme only when the VAT number is known
    if vat:
        tax_scheme = _cac(party, 'PartyTaxScheme')
        _cbc(tax_scheme, 'CompanyID', vat)
        _cbc(_cac(tax_scheme, 'TaxScheme'), 'ID', 'VAT')

    _cbc(_cac(party, 'PartyLegalEntity'), 'RegistrationName', name)


def _add_tax_category(parent, tag: str, tax_rate) -> None:
    category = _cac(parent, tag)
    _cbc(category, 'ID', _tax_category_id(tax_rate))
    _cbc(category, 'Percent', _amount(tax_rate))
    _cbc(_cac(category, 'TaxScheme'), 'ID', 'VAT')


def build_peppol_document(invoice: Invoice, company: Optional[Company]) -> ET.Element:
    """UBL Invoice element tree, children in UBL 2.1 sequence order."""
    root = ET.Element(f'{{{INVOICE_NS}}}Invoice')

    _cbc(root, 'CustomizationID', CUSTOMIZATION_ID)
    _cbc(root, 'ProfileID', PROFILE_ID)
    _cbc(root, 'ID', invoice.invoice_number)
    _cbc(root, 'IssueDate', invoice.issue_date.isoformat())
    _cbc(root, 'DueDate', invoice.due_date.isoformat())
    _cbc(root, 'InvoiceTypeCode', COMMERCIAL_INVOICE)
    if invoice.notes:
        _cbc(root, 'Note', invoice.notes)
    _cbc(root, 'DocumentCurrencyCode', CURRENCY)

    _add_party(
        root, 'AccountingSupplierParty',
        name=company.name if company else '',
        vat_number=company.vat_number if company else None,
        address=company.address if company else None
    )
    _add_party(
        root, 'AccountingCustomerParty',
        name=invoice.client_name,
        vat_number=invoice.client_vat_number,
        address=invoice.client_address
    )

    payment_means = _cac(root, 'PaymentMeans')
    _cbc(payment_means, 'PaymentMeansCode', CREDIT_TRANSFER)
    if validate_structured_reference(invoice.structured_reference):
        _cbc(payment_means, 'PaymentID', invoice.structured_reference)
    if company and company.iban:
        account = _cac(payment_means, 'PayeeFinancialAccount')
        _cbc(account, 'ID', ''.join(company.iban.split()).upper())
        if company.bic:
            _cbc(_cac(account, 'FinancialInstitutionBranch'), 'ID', company.bic)

    if invoice.payment_terms:
        _cbc(_cac(root, 'PaymentTerms'), 'Note', invoice.payment_terms)

    tax_total = _cac(root, 'TaxTotal')
    _cbc(tax_total, 'TaxAmount', _amount(invoice.tax_amount), currencyID=CURRENCY)
    tax_subtotal = _cac(tax_total, 'TaxSubtotal')
    _cbc(tax_subtotal, 'TaxableAmount', _amount(invoice.subtotal), currencyID=CURRENCY)
    _cbc(tax_subtotal, 'TaxAmount', _amount(invoice.tax_amount), currencyID=CURRENCY)
    _add_tax_category(tax_subtotal, 'TaxCategory', invoice.tax_rate)

    monetary_total = _cac(root, 'LegalMonetaryTotal')
    _cbc(monetary_total, 'LineExtensionAmount', _amount(invoice.subtotal), currencyID=CURRENCY)
    _cbc(monetary_total, 'TaxExclusiveAmount', _amount(invoice.subtotal), currencyID=CURRENCY)
    _cbc(monetary_total, 'TaxInclusiveAmount', _amount(invoice.total), currencyID=CURRENCY)
    if Decimal(str(invoice.amount_paid or 0)) > 0:
        _cbc(monetary_total, 'PrepaidAmount', _amount(invoice.amount_paid), currencyID=CURRENCY)
    _cbc(monetary_total, 'PayableAmount', _amount(invoice.amount_due), currencyID=CURRENCY)

    for index, item in enumerate(invoice.items, start=1):
        line = _cac(root, 'InvoiceLine')
        _cbc(line, 'ID', index)
        _cbc(line, 'InvoicedQuantity', _quantity(item.quantity), unitCode=UNIT_CODE)
        _cbc(line, 'LineExtensionAmount', _amount(item.total), currencyID=CURRENCY)
        line_item = _cac(line, 'Item')
        _cbc(line_item, 'Name', item.description)
        _add_tax_category(line_item, 'ClassifiedTaxCategory', item.tax_rate)
        _cbc(_cac(line, 'Price'), 'PriceAmount', _amount(item.unit_price), currencyID=CURRENCY)

    return root


def export_to_peppol_xml(invoice: Invoice, company: Optional[Company]) -> str:
    """Serialize an invoice to a Peppol BIS 3.0 XML string. No I/O."""
    root = build_peppol_document(invoice, company)
    ET.indent(root, space='  ')
    return XML_DECLARATION + ET.tostring(root, encoding='unicode')


def export_invoice(session: Session, tenant_id: int, invoice_id: int,
                   user_id: Optional[int] = None) -> Tuple[Invoice, str]:
    """
    Export a tenant's invoice and record the export in the audit log.

    Raises:
        NotFoundError: Invoice missing or owned by another tenant
        ValidationError: Draft and cancelled invoices are not exported
    """
    invoice = get_invoice(session, tenant_id, invoice_id)
    if invoice.status in (InvoiceStatus.DRAFT.value, InvoiceStatus.CANCELLED.value):
        raise ValidationError(f"A {invoice.status} invoice cannot be exported", field='status')

    company = session.query(Company).filter_by(tenant_id=tenant_id).first()
    if not company:
        raise NotFoundError('Company profile not found')

    xml = export_to_peppol_xml(invoice, company)

    log_action(
        session,
        AuditAction.INVOICE_EXPORTED,
        resource_type='invoice',
        resource_id=invoice.id,
        details={'format': 'peppol-bis-3.0'},
        tenant_id=tenant_id,
        user_id=user_id
    )
    session.commit()

    logger.info(f"[INVOICE] {invoice.invoice_number} exported to Peppol XML")
    return invoice, xml

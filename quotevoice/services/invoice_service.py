"""
Invoice service - quote to invoice conversion and invoice lifecycle (tenant-scoped).

Amounts use Decimal with ROUND_HALF_UP to cents. Partial invoices (deposit,
balance) scale the quote's subtotal, tax and total independently, so
subtotal + tax may differ from total by a cent; the total is authoritative.
"""
import logging
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from quotevoice.blueprints.metrics import invoices_created_total
from quotevoice.exceptions import (
    QuoteVoiceError, ValidationError, NotFoundError, ConflictError,
    DuplicateStandardInvoiceError, NoBalanceRemainingError,
    InvalidTransitionError, StorageError
)
from quotevoice.models import (
    Company, Quote, Invoice, InvoiceItem, InvoiceType, InvoiceStatus, AuditAction
)
from quotevoice.services.audit_service import log_action
from quotevoice.utils.number_format import round_cents, to_decimal
from quotevoice.utils.payment_codes import generate_structured_reference, generate_epc_payload

logger = logging.getLogger(__name__)

HUNDRED = Decimal('100')
DEFAULT_BENEFICIARY = 'Entreprise'
STANDARD_INVOICE_INDEX = 'uq_invoice_standard_per_quote'

INVOICE_TYPES = {t.value for t in InvoiceType}


def generate_invoice_number(session: Session, tenant_id: int, today: Optional[date] = None) -> str:
    """Next invoice number for the tenant and year: FAC-{YYYY}-{NNNN}."""
    today = today or date.today()
    prefix = f"FAC-{today.year}-"
    numbers = session.query(Invoice.invoice_number).filter(
        Invoice.tenant_id == tenant_id,
        Invoice.invoice_number.like(f"{prefix}%")
    ).all()

    last = 0
    for (number,) in numbers:
        suffix = number[len(prefix):]
        if suffix.isdigit():
            last = max(last, int(suffix))
    return f"{prefix}{str(last + 1).zfill(4)}"


def get_invoice(session: Session, tenant_id: int, invoice_id: int) -> Invoice:
    """Get an invoice of the tenant; other tenants' invoices are reported as missing."""
    invoice = session.query(Invoice).filter(
        Invoice.id == invoice_id,
        Invoice.tenant_id == tenant_id
    ).first()
    if not invoice:
        raise NotFoundError('Invoice not found')
    return invoice


def list_invoices(session: Session, tenant_id: int, status: Optional[str] = None,
                  quote_id: Optional[int] = None) -> List[Invoice]:
    query = session.query(Invoice).filter(Invoice.tenant_id == tenant_id)
    if status:
        query = query.filter(Invoice.status == status)
    if quote_id:
        query = query.filter(Invoice.quote_id == quote_id)
    return query.order_by(Invoice.issue_date.desc(), Invoice.id.desc()).all()


def _get_quote(session: Session, tenant_id: int, quote_id: int) -> Quote:
    quote = session.query(Quote).filter(
        Quote.id == quote_id,
        Quote.tenant_id == tenant_id
    ).first()
    if not quote:
        raise NotFoundError('Quote not found')
    return quote


def _paid_deposits(session: Session, tenant_id: int, quote_id: int) -> Decimal:
    """Sum of amount_paid over the quote's non-cancelled deposit invoices."""
    deposits = session.query(Invoice).filter(
        Invoice.tenant_id == tenant_id,
        Invoice.quote_id == quote_id,
        Invoice.invoice_type == InvoiceType.DEPOSIT.value,
        Invoice.status != InvoiceStatus.CANCELLED.value
    ).all()
    return sum((Decimal(str(d.amount_paid or 0)) for d in deposits), Decimal('0'))


def _format_percentage(percentage: Decimal) -> str:
    text = f"{percentage.quantize(Decimal('0.01')):f}".rstrip('0').rstrip('.')
    return text or '0'


def _scaled_amounts(quote: Quote, factor: Optional[Decimal], exact_total: Optional[Decimal] = None) -> Dict[str, Decimal]:
    """
    Invoice amounts for a quote.

    factor None copies the quote amounts. Otherwise subtotal, tax and total
    are each scaled and rounded independently; exact_total overrides the
    scaled total (balance invoices).
    """
    subtotal = Decimal(str(quote.subtotal))
    tax_amount = Decimal(str(quote.tax_amount))
    total = Decimal(str(quote.total))

    if factor is None:
        return {'subtotal': subtotal, 'tax_amount': tax_amount, 'total': total}

    return {
        'subtotal': round_cents(subtotal * factor),
        'tax_amount': round_cents(tax_amount * factor),
        'total': exact_total if exact_total is not None else round_cents(total * factor),
    }


def _build_items(invoice: Invoice, quote: Quote, factor: Optional[Decimal]) -> None:
    """Copy quote items; partial invoices scale unit price and line total independently."""
    for item in quote.items:
        quantity = Decimal(str(item.quantity))
        unit_price = Decimal(str(item.unit_price))

        if factor is None:
            scaled_price = unit_price
            line_total = round_cents(quantity * unit_price)
        else:
            scaled_price = round_cents(unit_price * factor)
            line_total = round_cents(quantity * unit_price * factor)

        invoice.items.append(InvoiceItem(
            description=item.description,
            quantity=quantity,
            unit=item.unit,
            unit_price=scaled_price,
            tax_rate=quote.tax_rate,
            total=line_total,
            order_index=item.order_index
        ))


def _create_invoice(session: Session, tenant_id: int, quote: Quote, invoice_type: str,
                    factor: Optional[Decimal], due_in_days: int, user_id: Optional[int],
                    today: date, notes: Optional[str] = None,
                    exact_total: Optional[Decimal] = None) -> Invoice:
    """Insert the invoice, its items and payment codes, then commit."""
    amounts = _scaled_amounts(quote, factor, exact_total)
    company = session.query(Company).filter_by(tenant_id=tenant_id).first()

    invoice_number = generate_invoice_number(session, tenant_id, today)
    structured_reference = generate_structured_reference(invoice_number)
    qr_code_data = generate_epc_payload(
        beneficiary_name=(company.name if company else None) or DEFAULT_BENEFICIARY,
        iban=company.iban if company else None,
        amount=amounts['total'],
        reference=structured_reference,
        bic=company.bic if company else None
    )

    try:
        invoice = Invoice(
            tenant_id=tenant_id,
            user_id=user_id if user_id is not None else quote.user_id,
            quote_id=quote.id,
            invoice_number=invoice_number,
            invoice_type=invoice_type,
            status=InvoiceStatus.DRAFT.value,
            client_name=quote.client_name,
            client_email=quote.client_email,
            client_phone=quote.client_phone,
            client_address=quote.client_address,
            client_vat_number=quote.client_vat_number,
            subtotal=amounts['subtotal'],
            tax_rate=quote.tax_rate,
            tax_amount=amounts['tax_amount'],
            total=amounts['total'],
            amount_paid=Decimal('0.00'),
            amount_due=amounts['total'],
            structured_reference=structured_reference,
            qr_code_data=qr_code_data,
            issue_date=today,
            due_date=today + timedelta(days=due_in_days),
            payment_terms=f"Paiement à {due_in_days} jours",
            notes=notes
        )
        _build_items(invoice, quote, factor)

        session.add(invoice)
        session.flush()

        log_action(
            session,
            AuditAction.INVOICE_CREATED,
            resource_type='invoice',
            resource_id=invoice.id,
            details={
                'quote_id': quote.id,
                'invoice_type': invoice_type,
                'total': str(invoice.total)
            },
            tenant_id=tenant_id,
            user_id=user_id
        )
        session.commit()

    except IntegrityError as e:
        session.rollback()
        error_msg = str(e.orig)
        if invoice_type == InvoiceType.STANDARD.value and (
            STANDARD_INVOICE_INDEX in error_msg or 'invoice.quote_id' in error_msg
        ):
            raise DuplicateStandardInvoiceError(quote.id)
        logger.error(f"[INVOICE] Integrity error creating invoice for quote {quote.id}: {error_msg}")
        raise StorageError(error_msg)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[INVOICE] Database error creating invoice for quote {quote.id}: {e}")
        raise StorageError(str(e))

    invoices_created_total.labels(invoice_type=invoice_type).inc()

    logger.info(
        f"[INVOICE] {invoice.invoice_number} ({invoice_type}) created from quote "
        f"{quote.quote_number} for tenant {tenant_id}: total {invoice.total}"
    )
    return invoice


def _validate_due_in_days(due_in_days) -> int:
    try:
        days = int(due_in_days)
    except (TypeError, ValueError):
        raise ValidationError('dueInDays must be an integer', field='dueInDays')
    if days < 0:
        raise ValidationError('dueInDays cannot be negative', field='dueInDays')
    return days


def convert_quote_to_invoice(session: Session, tenant_id: int, quote_id: int,
                             invoice_type: str = 'standard', deposit_percentage=30,
                             due_in_days: int = 30, user_id: Optional[int] = None,
                             today: Optional[date] = None) -> Invoice:
    """
    Convert a quote into an invoice.

    standard and credit_note invoices carry the full quote amounts, deposit
    invoices deposit_percentage of them, balance invoices the part of the
    total not yet paid through deposits.

    Raises:
        NotFoundError: Quote missing or owned by another tenant
        ValidationError: Unknown type, bad percentage or due delay
        DuplicateStandardInvoiceError: Quote already has its standard invoice
        NoBalanceRemainingError: Deposits already cover the quote (balance)
    """
    if invoice_type not in INVOICE_TYPES:
        raise ValidationError(f"Unknown invoice type '{invoice_type}'", field='type')
    days = _validate_due_in_days(due_in_days)

    if invoice_type == InvoiceType.BALANCE.value:
        return generate_balance_invoice(session, tenant_id, quote_id, due_in_days=days,
                                        user_id=user_id, today=today)

    today = today or date.today()
    quote = _get_quote(session, tenant_id, quote_id)

    if invoice_type == InvoiceType.STANDARD.value:
        existing = session.query(Invoice.id).filter(
            Invoice.quote_id == quote.id,
            Invoice.invoice_type == InvoiceType.STANDARD.value
        ).first()
        if existing:
            raise DuplicateStandardInvoiceError(quote.id)

    factor = None
    notes = None
    if invoice_type == InvoiceType.DEPOSIT.value:
        try:
            percentage = to_decimal(deposit_percentage, 'depositPercentage')
        except ValueError as e:
            raise ValidationError(str(e), field='depositPercentage')
        if percentage <= 0 or percentage > HUNDRED:
            raise ValidationError('Deposit percentage must be greater than 0 and at most 100',
                                  field='depositPercentage')
        factor = percentage / HUNDRED
        notes = f"Facture d'acompte de {_format_percentage(percentage)}% sur devis {quote.quote_number}"

    return _create_invoice(session, tenant_id, quote, invoice_type, factor, days, user_id, today, notes)


def generate_balance_invoice(session: Session, tenant_id: int, quote_id: int,
                             due_in_days: int = 30, user_id: Optional[int] = None,
                             today: Optional[date] = None) -> Invoice:
    """
    Invoice what deposits have not paid yet: quote.total - sum(deposit.amount_paid).

    The balance is passed as an absolute amount, so the invoice total is exact;
    subtotal and tax are scaled by balance / quote.total.

    Raises:
        NoBalanceRemainingError: Paid deposits cover the whole quote
        ConflictError: A balance invoice is already open for this quote
    """
    days = _validate_due_in_days(due_in_days)
    today = today or date.today()
    quote = _get_quote(session, tenant_id, quote_id)

    quote_total = Decimal(str(quote.total))
    balance_amount = quote_total - _paid_deposits(session, tenant_id, quote.id)
    if balance_amount <= 0 or quote_total <= 0:
        raise NoBalanceRemainingError(quote.id)

    open_balance = session.query(Invoice.id).filter(
        Invoice.tenant_id == tenant_id,
        Invoice.quote_id == quote.id,
        Invoice.invoice_type == InvoiceType.BALANCE.value,
        Invoice.status != InvoiceStatus.CANCELLED.value
    ).first()
    if open_balance:
        raise ConflictError('A balance invoice already exists for this quote', payload={'quote_id': quote.id})

    factor = balance_amount / quote_total
    notes = f"Facture de solde sur devis {quote.quote_number}"
    return _create_invoice(session, tenant_id, quote, InvoiceType.BALANCE.value, factor, days,
                           user_id, today, notes, exact_total=round_cents(balance_amount))


def _get_invoice_for_update(session: Session, tenant_id: int, invoice_id: int) -> Invoice:
    invoice = session.query(Invoice).filter(
        Invoice.id == invoice_id,
        Invoice.tenant_id == tenant_id
    ).with_for_update().first()
    if not invoice:
        raise NotFoundError('Invoice not found')
    return invoice


def mark_invoice_as_paid(session: Session, tenant_id: int, invoice_id: int, amount_paid=None,
                         user_id: Optional[int] = None, now: Optional[datetime] = None) -> Invoice:
    """
    Record the cumulative amount paid on an invoice.

    amount_paid defaults to the full total. The invoice becomes paid when
    nothing is due anymore; a partial payment leaves it sent (or overdue).
    """
    try:
        invoice = _get_invoice_for_update(session, tenant_id, invoice_id)
        if invoice.status == InvoiceStatus.CANCELLED.value:
            raise InvalidTransitionError('invoice', invoice.status, InvoiceStatus.PAID.value)

        total = Decimal(str(invoice.total))
        if amount_paid is None:
            paid = total
        else:
            try:
                paid = round_cents(to_decimal(amount_paid, 'amount'))
            except ValueError as e:
                raise ValidationError(str(e), field='amount')
            if paid < 0:
                raise ValidationError('Amount paid cannot be negative', field='amount')

        amount_due = total - paid
        invoice.amount_paid = paid
        invoice.amount_due = max(amount_due, Decimal('0.00'))

        if amount_due <= 0:
            invoice.status = InvoiceStatus.PAID.value
            invoice.paid_at = now or datetime.now(timezone.utc)
        else:
            if invoice.status != InvoiceStatus.OVERDUE.value:
                invoice.status = InvoiceStatus.SENT.value
            invoice.paid_at = None

        log_action(
            session,
            AuditAction.INVOICE_PAID,
            resource_type='invoice',
            resource_id=invoice.id,
            details={'amount_paid': str(paid), 'amount_due': str(invoice.amount_due), 'status': invoice.status},
            tenant_id=tenant_id,
            user_id=user_id
        )
        session.commit()

        logger.info(f"[INVOICE] {invoice.invoice_number} payment recorded: {paid} (status {invoice.status})")
        return invoice

    except QuoteVoiceError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[INVOICE] Database error recording payment on invoice {invoice_id}: {e}")
        raise StorageError(str(e))


def _transition(session: Session, tenant_id: int, invoice_id: int, target: str,
                allowed_from, action: AuditAction, user_id: Optional[int]) -> Invoice:
    try:
        invoice = _get_invoice_for_update(session, tenant_id, invoice_id)
        if invoice.status not in allowed_from:
            raise InvalidTransitionError('invoice', invoice.status, target)

        previous = invoice.status
        invoice.status = target

        log_action(
            session,
            action,
            resource_type='invoice',
            resource_id=invoice.id,
            details={'from': previous, 'to': target},
            tenant_id=tenant_id,
            user_id=user_id
        )
        session.commit()

        logger.info(f"[INVOICE] {invoice.invoice_number} {previous} -> {target}")
        return invoice

    except QuoteVoiceError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[INVOICE] Database error moving invoice {invoice_id} to {target}: {e}")
        raise StorageError(str(e))


def send_invoice(session: Session, tenant_id: int, invoice_id: int, user_id: Optional[int] = None) -> Invoice:
    """draft -> sent."""
    return _transition(session, tenant_id, invoice_id, InvoiceStatus.SENT.value,
                       {InvoiceStatus.DRAFT.value}, AuditAction.INVOICE_SENT, user_id)


def cancel_invoice(session: Session, tenant_id: int, invoice_id: int, user_id: Optional[int] = None) -> Invoice:
    """Manual override from any status; cancelled is terminal."""
    allowed = {s.value for s in InvoiceStatus} - {InvoiceStatus.CANCELLED.value}
    return _transition(session, tenant_id, invoice_id, InvoiceStatus.CANCELLED.value,
                       allowed, AuditAction.INVOICE_CANCELLED, user_id)


def check_overdue_invoices(session: Session, today: Optional[date] = None,
                           tenant_id: Optional[int] = None) -> int:
    """
    Move sent invoices whose due date has passed to overdue.

    Periodic sweep (see `flask check-overdue`); returns the number of invoices moved.
    """
    today = today or date.today()

    try:
        query = session.query(Invoice).filter(
            Invoice.status == InvoiceStatus.SENT.value,
            Invoice.due_date < today
        )
        if tenant_id is not None:
            query = query.filter(Invoice.tenant_id == tenant_id)

        invoices = query.all()
        for invoice in invoices:
            invoice.status = InvoiceStatus.OVERDUE.value
        session.commit()

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"[INVOICE] Overdue sweep failed: {e}")
        raise StorageError(str(e))

    if invoices:
        logger.info(f"[INVOICE] Overdue sweep moved {len(invoices)} invoice(s) to overdue")
    return len(invoices)

"""PDF rendering for quotes and invoices, driven by density and branding settings."""

import logging
import time
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from io import BytesIO
from typing import Dict, List, Optional, Union
from xml.sax.saxutils import escape

import qrcode
from qrcode.constants import ERROR_CORRECT_M
from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT, TA_RIGHT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Image, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.orm import Session

from quotevoice.blueprints.metrics import pdf_cache_requests_total, pdf_render_duration_seconds
from quotevoice.models import Company, Invoice, InvoiceType, Quote, Tenant
from quotevoice.services.branding_service import PDFBranding, resolve_branding
from quotevoice.services.invoice_service import get_invoice
from quotevoice.services.pdf_cache_service import CacheKey, PDFCache, branding_hash, quote_content_hash
from quotevoice.services.pdf_config_service import (
    DensityConfig, DEFAULT_LOCALE, get_density_config, get_locale_labels,
    normalize_density, normalize_locale, suggest_density
)
from quotevoice.services.quote_service import get_quote
from quotevoice.services.subscription_service import get_tenant_tier, normalize_tier
from quotevoice.utils.number_format import money_eu
from quotevoice.utils.payment_codes import format_iban

logger = logging.getLogger(__name__)

QR_SIZE = 32 * mm
WATERMARK_FONT_SIZE = 72


@dataclass(frozen=True)
class RenderConfig:
    """Everything a render needs besides the document itself."""

    density: str
    density_config: DensityConfig
    branding: PDFBranding
    locale: str
    labels: Dict[str, str]
    tier: str


def resolve_render_config(density: Optional[str], tier: Optional[str], locale: Optional[str],
                          company: Optional[Company], item_count: int = 0,
                          default_locale: str = DEFAULT_LOCALE) -> RenderConfig:
    """
    Resolve the layout of one render.

    No density means one suggested from the item count. Unknown densities,
    tiers and locales fall back to defaults instead of failing.
    """
    if not density:
        density = suggest_density(item_count)
    density = normalize_density(density)
    locale = normalize_locale(locale, default_locale)
    tier = normalize_tier(tier)

    return RenderConfig(
        density=density,
        density_config=get_density_config(density),
        branding=resolve_branding(company, tier),
        locale=locale,
        labels=get_locale_labels(locale),
        tier=tier,
    )


def _format_date(value: Union[date, datetime, None]) -> str:
    if value is None:
        return '-'
    return value.strftime('%d/%m/%Y')


def _format_quantity(value) -> str:
    qty = Decimal(str(value))
    if qty == qty.to_integral_value():
        return str(int(qty))
    return format(qty.normalize(), 'f').replace('.', ',')


def _text(value) -> str:
    """Escape user content for reportlab paragraph markup."""
    return escape(str(value)) if value is not None else ''


def _truncate(description: str, max_length: Optional[int]) -> str:
    if max_length and len(description) > max_length:
        return description[:max_length - 1].rstrip() + '…'
    return description


def _build_styles(cfg: DensityConfig, branding: PDFBranding) -> Dict[str, ParagraphStyle]:
    styles = getSampleStyleSheet()
    text_color = colors.HexColor(branding.text_color)
    muted_color = colors.HexColor(branding.muted_color)

    return {
        'title': ParagraphStyle(
            'DocTitle',
            parent=styles['Heading1'],
            fontSize=cfg.title_size,
            leading=cfg.title_size * 1.2,
            textColor=colors.HexColor(branding.primary_color),
            spaceAfter=cfg.item_spacing,
            alignment=TA_LEFT,
            fontName='Helvetica-Bold'
        ),
        'header': ParagraphStyle(
            'DocHeader',
            parent=styles['Normal'],
            fontSize=cfg.header_size,
            leading=cfg.header_size * 1.3,
            textColor=colors.HexColor(branding.secondary_color),
            fontName='Helvetica-Bold',
            spaceAfter=cfg.item_spacing / 2
        ),
        'body': ParagraphStyle(
            'DocBody',
            parent=styles['Normal'],
            fontSize=cfg.body_size,
            leading=cfg.body_size * 1.3,
            textColor=text_color
        ),
        'body_right': ParagraphStyle(
            'DocBodyRight',
            parent=styles['Normal'],
            fontSize=cfg.body_size,
            leading=cfg.body_size * 1.3,
            textColor=text_color,
            alignment=TA_RIGHT
        ),
        'small': ParagraphStyle(
            'DocSmall',
            parent=styles['Normal'],
            fontSize=cfg.small_size,
            leading=cfg.small_size * 1.3,
            textColor=muted_color,
            spaceAfter=cfg.item_spacing / 2
        ),
        'footer': ParagraphStyle(
            'DocFooter',
            parent=styles['Normal'],
            fontSize=cfg.small_size,
            textColor=muted_color,
            alignment=TA_CENTER
        ),
    }


def _page_decorations(config: RenderConfig):
    """onPage callback: watermark, footer text and page numbers."""
    branding = config.branding
    cfg = config.density_config

    def draw(canvas, doc):
        width, height = doc.pagesize
        canvas.saveState()

        if branding.show_watermark:
            canvas.setFillColor(colors.Color(0.58, 0.64, 0.72, alpha=0.18))
            canvas.setFont('Helvetica-Bold', WATERMARK_FONT_SIZE)
            canvas.translate(width / 2, height / 2)
            canvas.rotate(45)
            canvas.drawCentredString(0, 0, branding.watermark_text)
            canvas.rotate(-45)
            canvas.translate(-width / 2, -height / 2)

        canvas.setFillColor(colors.HexColor(branding.muted_color))
        canvas.setFont('Helvetica', cfg.small_size)
        if branding.footer_text:
            canvas.drawCentredString(width / 2, cfg.page_margin / 2, branding.footer_text)
        if branding.show_page_numbers:
            canvas.drawRightString(width - cfg.page_margin, cfg.page_margin / 2, str(doc.page))

        canvas.restoreState()

    return draw


def _new_document(buffer: BytesIO, config: RenderConfig, title: str, company: Optional[Company]) -> SimpleDocTemplate:
    margin = config.density_config.page_margin
    branding = config.branding
    return SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=margin,
        leftMargin=margin,
        topMargin=margin,
        bottomMargin=margin,
        title=title,
        author=company.name if company else '',
        creator=branding.company_name if branding.white_label else 'DEAL'
    )


def _logo(branding: PDFBranding, cfg: DensityConfig):
    if not (cfg.show_logo and branding.logo_url):
        return None
    try:
        logo = Image(branding.logo_url)
        ratio = logo.imageHeight / float(logo.imageWidth or 1)
        logo.drawWidth = 40 * mm
        logo.drawHeight = 40 * mm * ratio
        return logo
    except Exception as e:
        # A broken logo must not prevent the document from rendering
        logger.warning(f"Could not load logo {branding.logo_url}: {e}")
        return None


def _header_block(elements: List, title: str, number: str, company: Optional[Company],
                  config: RenderConfig, styles: Dict[str, ParagraphStyle]) -> None:
    cfg = config.density_config
    labels = config.labels

    logo = _logo(config.branding, cfg)
    if logo is not None:
        elements.append(logo)
        elements.append(Spacer(1, cfg.item_spacing))

    elements.append(Paragraph(f"{_text(title)} {_text(number)}", styles['title']))

    if company:
        lines = [f"<b>{_text(company.name)}</b>"]
        if company.address:
            lines.append(_text(company.address).replace('\n', '<br/>'))
        if company.vat_number:
            lines.append(f"{_text(labels['vat_number'])}: {_text(company.vat_number)}")
        contact = ' | '.join(_text(part) for part in (company.phone, company.email) if part)
        if contact:
            lines.append(contact)
        elements.append(Paragraph('<br/>'.join(lines), styles['body']))

    elements.append(Spacer(1, cfg.section_spacing))


def _details_block(elements: List, rows: List[List[str]], client: Dict[str, Optional[str]],
                   config: RenderConfig, styles: Dict[str, ParagraphStyle], available_width: float) -> None:
    cfg = config.density_config
    labels = config.labels
    columns = []

    if cfg.show_quote_details and rows:
        detail_table = Table(
            [[Paragraph(_text(k), styles['small']), Paragraph(_text(v), styles['body'])] for k, v in rows],
            colWidths=[available_width * 0.2, available_width * 0.28]
        )
        detail_table.setStyle(TableStyle([
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('LEFTPADDING', (0, 0), (-1, -1), 0),
            ('BOTTOMPADDING', (0, 0), (-1, -1), cfg.item_spacing / 2),
        ]))
        columns.append(detail_table)

    if cfg.show_client_details:
        lines = [f"<b>{_text(labels['client'])}</b>", _text(client.get('name'))]
        if client.get('address'):
            lines.append(_text(client['address']).replace('\n', '<br/>'))
        if client.get('vat_number'):
            lines.append(f"{_text(labels['vat_number'])}: {_text(client['vat_number'])}")
        if client.get('email'):
            lines.append(_text(client['email']))
        columns.append(Paragraph('<br/>'.join(lines), styles['body']))

    if not columns:
        return

    widths = [available_width / len(columns)] * len(columns)
    block = Table([columns], colWidths=widths)
    block.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
    ]))
    elements.append(block)
    elements.append(Spacer(1, cfg.section_spacing))


def _items_table(items, subtotal, config: RenderConfig, styles: Dict[str, ParagraphStyle],
                 available_width: float) -> Table:
    cfg = config.density_config
    labels = config.labels
    branding = config.branding

    header = []
    if cfg.show_item_numbers:
        header.append('#')
    header.append(labels['description'])
    header.append(labels['quantity'])
    if cfg.show_unit_prices:
        header.append(labels['unit_price'])
    header.append(labels['line_total'])

    fixed_widths = []
    if cfg.show_item_numbers:
        fixed_widths.append(0.06)
    description_index = len(fixed_widths)
    fixed_widths.append(None)
    fixed_widths.append(0.12)
    if cfg.show_unit_prices:
        fixed_widths.append(0.17)
    fixed_widths.append(0.17)
    used = sum(w for w in fixed_widths if w)
    col_widths = [available_width * (w if w else 1 - used) for w in fixed_widths]

    data = [header]
    for number, item in enumerate(items, start=1):
        description = _truncate(item.description, cfg.max_description_length)
        if cfg.wrap_descriptions:
            description_cell = Paragraph(_text(description), styles['body'])
        else:
            description_cell = description

        quantity = _format_quantity(item.quantity)
        if item.unit:
            quantity = f"{quantity} {item.unit}"

        row = []
        if cfg.show_item_numbers:
            row.append(str(number))
        row.append(description_cell)
        row.append(quantity)
        if cfg.show_unit_prices:
            row.append(money_eu(item.unit_price))
        row.append(money_eu(item.total))
        data.append(row)

    if cfg.show_subtotal_per_section:
        subtotal_row = [''] * len(header)
        subtotal_row[-2] = labels['subtotal']
        subtotal_row[-1] = money_eu(subtotal)
        data.append(subtotal_row)

    table = Table(data, colWidths=col_widths, repeatRows=1)
    commands = [
        ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor(branding.primary_color)),
        ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
        ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
        ('FONTSIZE', (0, 0), (-1, -1), cfg.body_size),
        ('TEXTCOLOR', (0, 1), (-1, -1), colors.HexColor(branding.text_color)),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('ALIGN', (description_index + 1, 0), (-1, -1), 'RIGHT'),
        ('TOPPADDING', (0, 0), (-1, -1), cfg.table_padding / 2),
        ('BOTTOMPADDING', (0, 0), (-1, -1), cfg.table_padding / 2),
        ('LEFTPADDING', (0, 0), (-1, -1), cfg.table_padding),
        ('RIGHTPADDING', (0, 0), (-1, -1), cfg.table_padding),
    ]
    last_item_row = len(items)
    if cfg.show_table_borders:
        commands.append(('GRID', (0, 0), (-1, last_item_row), 0.5, colors.HexColor(branding.muted_color)))
    else:
        commands.append(('LINEBELOW', (0, 0), (-1, 0), 0.75, colors.HexColor(branding.primary_color)))
    if cfg.alternate_row_colors and items:
        commands.append(('ROWBACKGROUNDS', (0, 1), (-1, last_item_row), [colors.white, colors.HexColor('#f1f5f9')]))
    if cfg.show_subtotal_per_section:
        commands.append(('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'))
    table.setStyle(TableStyle(commands))
    return table


def _totals_table(document, config: RenderConfig, available_width: float) -> Table:
    cfg = config.density_config
    labels = config.labels
    branding = config.branding

    tax_rate = Decimal(str(document.tax_rate))
    tax_label = f"{labels['vat']} {_format_quantity(tax_rate)}%"
    rows = [
        [labels['subtotal'], money_eu(document.subtotal)],
        [tax_label, money_eu(document.tax_amount)],
        [labels['total'], money_eu(document.total)],
    ]
    table = Table(rows, colWidths=[available_width * 0.3, available_width * 0.2], hAlign='RIGHT')
    table.setStyle(TableStyle([
        ('ALIGN', (0, 0), (-1, -1), 'RIGHT'),
        ('FONTSIZE', (0, 0), (-1, -1), cfg.body_size),
        ('FONTNAME', (0, -1), (-1, -1), 'Helvetica-Bold'),
        ('FONTSIZE', (0, -1), (-1, -1), cfg.header_size),
        ('TEXTCOLOR', (0, 0), (-1, -2), colors.HexColor(branding.text_color)),
        ('TEXTCOLOR', (0, -1), (-1, -1), colors.HexColor(branding.primary_color)),
        ('LINEABOVE', (0, -1), (-1, -1), 1, colors.HexColor(branding.primary_color)),
        ('TOPPADDING', (0, 0), (-1, -1), cfg.table_padding / 2),
        ('BOTTOMPADDING', (0, 0), (-1, -1), cfg.table_padding / 2),
    ]))
    return table


def _banking_lines(company: Optional[Company], labels: Dict[str, str]) -> List[str]:
    if not company or not company.iban:
        return []
    lines = [f"<b>{_text(labels['bank_transfer'])}</b>", f"IBAN: {_text(format_iban(company.iban))}"]
    if company.bic:
        lines.append(f"BIC: {_text(company.bic)}")
    return lines


def _signature_block(elements: List, config: RenderConfig, styles: Dict[str, ParagraphStyle],
                     available_width: float) -> None:
    cfg = config.density_config
    block = Table(
        [[Paragraph(_text(config.labels['signature']), styles['small'])], ['']],
        colWidths=[available_width * 0.45],
        rowHeights=[None, 25 * mm],
        hAlign='RIGHT'
    )
    block.setStyle(TableStyle([
        ('BOX', (0, 0), (-1, -1), 0.5, colors.HexColor(config.branding.muted_color)),
        ('LEFTPADDING', (0, 0), (-1, -1), cfg.table_padding),
    ]))
    elements.append(Spacer(1, cfg.section_spacing))
    elements.append(block)


def _qr_image(payload: str) -> Image:
    """EPC QR code as a reportlab flowable."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=ERROR_CORRECT_M,
        box_size=10,
        border=2,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    img_buffer = BytesIO()
    img.save(img_buffer, format='PNG')
    img_buffer.seek(0)
    return Image(img_buffer, width=QR_SIZE, height=QR_SIZE)


def render_quote_pdf(quote: Quote, company: Optional[Company], config: RenderConfig) -> bytes:
    """Render a quote to PDF bytes."""
    started = time.perf_counter()
    cfg = config.density_config
    labels = config.labels
    styles = _build_styles(cfg, config.branding)

    buffer = BytesIO()
    doc = _new_document(buffer, config, f"{labels['quote']} {quote.quote_number}", company)
    available_width = doc.width
    elements = []

    _header_block(elements, labels['quote'], quote.quote_number, company, config, styles)

    issued = quote.created_at or datetime.now()
    _details_block(
        elements,
        [[labels['date'], _format_date(issued)]],
        {
            'name': quote.client_name,
            'address': quote.client_address,
            'vat_number': quote.client_vat_number,
            'email': quote.client_email,
        },
        config, styles, available_width
    )

    elements.append(_items_table(quote.items, quote.subtotal, config, styles, available_width))
    elements.append(Spacer(1, cfg.item_spacing))
    elements.append(_totals_table(quote, config, available_width))

    if cfg.show_notes and quote.notes:
        elements.append(Spacer(1, cfg.section_spacing))
        elements.append(Paragraph(f"<b>{_text(labels['notes'])}</b>", styles['header']))
        elements.append(Paragraph(_text(quote.notes).replace('\n', '<br/>'), styles['body']))

    if cfg.show_banking_info:
        lines = _banking_lines(company, labels)
        if lines:
            elements.append(Spacer(1, cfg.section_spacing))
            elements.append(Paragraph('<br/>'.join(lines), styles['body']))

    if cfg.show_legal_mentions:
        elements.append(Spacer(1, cfg.section_spacing))
        for key in ('quote_validity', 'late_payment'):
            elements.append(Paragraph(_text(labels[key]), styles['small']))

    if cfg.show_signature:
        _signature_block(elements, config, styles, available_width)

    decorations = _page_decorations(config)
    doc.build(elements, onFirstPage=decorations, onLaterPages=decorations)

    pdf_render_duration_seconds.labels(document='quote').observe(time.perf_counter() - started)
    return buffer.getvalue()


def render_invoice_pdf(invoice: Invoice, company: Optional[Company], config: RenderConfig) -> bytes:
    """
    Render an invoice to PDF bytes.

    Payment details (structured reference, IBAN and the EPC QR code) are part
    of the invoice and render at every density.
    """
    started = time.perf_counter()
    cfg = config.density_config
    labels = config.labels
    styles = _build_styles(cfg, config.branding)

    title_keys = {
        InvoiceType.DEPOSIT.value: 'deposit',
        InvoiceType.BALANCE.value: 'balance',
        InvoiceType.CREDIT_NOTE.value: 'credit_note',
    }
    title = labels['invoice']
    if invoice.invoice_type in title_keys:
        title = f"{labels['invoice']} - {labels[title_keys[invoice.invoice_type]]}"

    buffer = BytesIO()
    doc = _new_document(buffer, config, f"{title} {invoice.invoice_number}", company)
    available_width = doc.width
    elements = []

    _header_block(elements, title, invoice.invoice_number, company, config, styles)

    _details_block(
        elements,
        [
            [labels['date'], _format_date(invoice.issue_date)],
            [labels['payment_due'], _format_date(invoice.due_date)],
        ],
        {
            'name': invoice.client_name,
            'address': invoice.client_address,
            'vat_number': invoice.client_vat_number,
            'email': invoice.client_email,
        },
        config, styles, available_width
    )

    elements.append(_items_table(invoice.items, invoice.subtotal, config, styles, available_width))
    elements.append(Spacer(1, cfg.item_spacing))
    elements.append(_totals_table(invoice, config, available_width))

    if cfg.show_notes and invoice.notes:
        elements.append(Spacer(1, cfg.section_spacing))
        elements.append(Paragraph(_text(invoice.notes), styles['body']))

    payment_lines = _banking_lines(company, labels)
    if invoice.structured_reference:
        payment_lines.append(
            f"{_text(labels['structured_reference'])}: <b>{_text(invoice.structured_reference)}</b>"
        )
    payment_lines.append(f"{_text(labels['payment_due'])}: {_format_date(invoice.due_date)}")

    payment_paragraph = Paragraph('<br/>'.join(payment_lines), styles['body'])
    elements.append(Spacer(1, cfg.section_spacing))
    if invoice.qr_code_data:
        payment_table = Table(
            [[payment_paragraph, _qr_image(invoice.qr_code_data)]],
            colWidths=[available_width - QR_SIZE - 10, QR_SIZE + 10]
        )
        payment_table.setStyle(TableStyle([
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
            ('LEFTPADDING', (0, 0), (-1, -1), 0),
        ]))
        elements.append(payment_table)
    else:
        elements.append(payment_paragraph)

    if cfg.show_legal_mentions:
        elements.append(Spacer(1, cfg.section_spacing))
        if invoice.payment_terms:
            elements.append(Paragraph(_text(invoice.payment_terms), styles['small']))
        elements.append(Paragraph(_text(labels['late_payment']), styles['small']))

    decorations = _page_decorations(config)
    doc.build(elements, onFirstPage=decorations, onLaterPages=decorations)

    pdf_render_duration_seconds.labels(document='invoice').observe(time.perf_counter() - started)
    return buffer.getvalue()


def _tenant_locale(session: Session, tenant_id: int) -> Optional[str]:
    tenant = session.get(Tenant, tenant_id)
    return tenant.default_locale if tenant else None


def get_quote_pdf(session: Session, cache: Optional[PDFCache], tenant_id: int, quote_id: int,
                  density: Optional[str] = None, locale: Optional[str] = None,
                  default_locale: str = DEFAULT_LOCALE) -> bytes:
    """
    PDF of a tenant's quote, served from the cache when its content is unchanged.

    Raises:
        NotFoundError: Quote missing or owned by another tenant
    """
    quote = get_quote(session, tenant_id, quote_id)
    company = session.query(Company).filter_by(tenant_id=tenant_id).first()
    tier = get_tenant_tier(session, tenant_id)
    locale = locale or _tenant_locale(session, tenant_id)

    config = resolve_render_config(density, tier, locale, company, len(quote.items), default_locale)
    content_hash = f"{quote_content_hash(quote)}.{branding_hash(tier, config.branding)}"
    key = CacheKey(quote.id, config.density, config.locale, content_hash)

    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            pdf_cache_requests_total.labels(result='hit').inc()
            logger.debug(f"[PDF_CACHE] HIT: quote {quote.id} ({config.density}, {config.locale})")
            return cached
        pdf_cache_requests_total.labels(result='miss').inc()

    pdf = render_quote_pdf(quote, company, config)
    if cache is not None:
        cache.set(key, pdf)
    return pdf


def get_invoice_pdf(session: Session, tenant_id: int, invoice_id: int, density: Optional[str] = None,
                    locale: Optional[str] = None, default_locale: str = DEFAULT_LOCALE) -> bytes:
    """PDF of a tenant's invoice. Invoices are rendered on demand, not cached."""
    invoice = get_invoice(session, tenant_id, invoice_id)
    company = session.query(Company).filter_by(tenant_id=tenant_id).first()
    tier = get_tenant_tier(session, tenant_id)
    locale = locale or _tenant_locale(session, tenant_id)

    config = resolve_render_config(density, tier, locale, company, len(invoice.items), default_locale)
    return render_invoice_pdf(invoice, company, config)

"""
PDF layout configuration.

Density presets (margins, font sizes, optional sections) and the locale
label packs used by the renderer. Everything here is a pure lookup: unknown
inputs fall back to a default instead of raising, since it only feeds
presentation.
"""
from dataclasses import dataclass
from typing import Dict, Optional


DENSITIES = ('compact', 'normal', 'detailed')
DEFAULT_DENSITY = 'normal'
DEFAULT_LOCALE = 'fr-BE'


@dataclass(frozen=True)
class DensityConfig:
    """Visual parameters of one density level (sizes in points)."""

    page_margin: int
    section_spacing: int
    item_spacing: int

    title_size: int
    header_size: int
    body_size: int
    small_size: int

    table_padding: int
    show_table_borders: bool
    alternate_row_colors: bool

    show_item_numbers: bool
    show_unit_prices: bool
    show_subtotal_per_section: bool
    wrap_descriptions: bool
    max_description_length: Optional[int]

    show_logo: bool
    show_client_details: bool
    show_quote_details: bool
    show_notes: bool
    show_legal_mentions: bool
    show_banking_info: bool
    show_signature: bool


DENSITY_CONFIGS: Dict[str, DensityConfig] = {
    'compact': DensityConfig(
        page_margin=30, section_spacing=10, item_spacing=4,
        title_size=18, header_size=10, body_size=8, small_size=7,
        table_padding=4, show_table_borders=False, alternate_row_colors=True,
        show_item_numbers=False, show_unit_prices=True, show_subtotal_per_section=False,
        wrap_descriptions=False, max_description_length=80,
        show_logo=True, show_client_details=True, show_quote_details=True, show_notes=True,
        show_legal_mentions=False, show_banking_info=False, show_signature=False,
    ),
    'normal': DensityConfig(
        page_margin=40, section_spacing=20, item_spacing=6,
        title_size=24, header_size=12, body_size=10, small_size=8,
        table_padding=8, show_table_borders=True, alternate_row_colors=True,
        show_item_numbers=True, show_unit_prices=True, show_subtotal_per_section=True,
        wrap_descriptions=True, max_description_length=None,
        show_logo=True, show_client_details=True, show_quote_details=True, show_notes=True,
        show_legal_mentions=True, show_banking_info=True, show_signature=False,
    ),
    'detailed': DensityConfig(
        page_margin=40, section_spacing=25, item_spacing=8,
        title_size=28, header_size=14, body_size=11, small_size=9,
        table_padding=10, show_table_borders=True, alternate_row_colors=True,
        show_item_numbers=True, show_unit_prices=True, show_subtotal_per_section=True,
        wrap_descriptions=True, max_description_length=None,
        show_logo=True, show_client_details=True, show_quote_details=True, show_notes=True,
        show_legal_mentions=True, show_banking_info=True, show_signature=True,
    ),
}


def normalize_density(density: Optional[str]) -> str:
    """Return a known density name, falling back to the default one."""
    if density in DENSITY_CONFIGS:
        return density
    return DEFAULT_DENSITY


def get_density_config(density: Optional[str]) -> DensityConfig:
    return DENSITY_CONFIGS[normalize_density(density)]


def suggest_density(item_count: int) -> str:
    """Few items get room to breathe, long quotes get packed."""
    if item_count <= 5:
        return 'detailed'
    if item_count <= 15:
        return 'normal'
    return 'compact'


# Locale packs: document vocabulary and legal mentions per market
LOCALE_LABELS: Dict[str, Dict[str, str]] = {
    'fr-BE': {
        'quote': 'Devis',
        'invoice': 'Facture',
        'client': 'Client',
        'provider': 'Prestataire',
        'vat': 'TVA',
        'vat_number': 'Numéro de TVA',
        'subtotal': 'Sous-total HTVA',
        'total': 'Total TVAC',
        'deposit': 'Acompte',
        'balance': 'Solde',
        'credit_note': 'Note de crédit',
        'description': 'Description',
        'quantity': 'Qté',
        'unit_price': 'Prix unitaire',
        'line_total': 'Total',
        'date': 'Date',
        'payment_due': 'Échéance',
        'bank_transfer': 'Virement bancaire',
        'structured_reference': 'Communication structurée',
        'notes': 'Remarques',
        'signature': 'Bon pour accord, date et signature',
        'quote_validity': "Ce devis est valable 30 jours à compter de sa date d'émission.",
        'payment_terms': 'Paiement à 30 jours date de facture, sauf accord contraire.',
        'late_payment': (
            'En cas de retard de paiement, des intérêts de retard de 10% par an seront appliqués, '
            "ainsi qu'une indemnité forfaitaire de 40€ pour frais de recouvrement (Loi du 2 août 2002)."
        ),
    },
    'nl-BE': {
        'quote': 'Offerte',
        'invoice': 'Factuur',
        'client': 'Klant',
        'provider': 'Dienstverlener',
        'vat': 'BTW',
        'vat_number': 'BTW-nummer',
        'subtotal': 'Subtotaal excl. BTW',
        'total': 'Totaal incl. BTW',
        'deposit': 'Voorschot',
        'balance': 'Saldo',
        'credit_note': 'Creditnota',
        'description': 'Omschrijving',
        'quantity': 'Aantal',
        'unit_price': 'Eenheidsprijs',
        'line_total': 'Totaal',
        'date': 'Datum',
        'payment_due': 'Vervaldatum',
        'bank_transfer': 'Overschrijving',
        'structured_reference': 'Gestructureerde mededeling',
        'notes': 'Opmerkingen',
        'signature': 'Voor akkoord, datum en handtekening',
        'quote_validity': 'Deze offerte is geldig gedurende 30 dagen vanaf de datum van uitgifte.',
        'payment_terms': 'Betaling binnen 30 dagen na factuurdatum, tenzij anders overeengekomen.',
        'late_payment': (
            'Bij laattijdige betaling worden verwijlintresten van 10% per jaar aangerekend, alsook een '
            'forfaitaire schadevergoeding van €40 voor invorderingskosten (Wet van 2 augustus 2002).'
        ),
    },
    'de-BE': {
        'quote': 'Angebot',
        'invoice': 'Rechnung',
        'client': 'Kunde',
        'provider': 'Dienstleister',
        'vat': 'MwSt.',
        'vat_number': 'MwSt.-Nummer',
        'subtotal': 'Zwischensumme ohne MwSt.',
        'total': 'Gesamtbetrag inkl. MwSt.',
        'deposit': 'Anzahlung',
        'balance': 'Restbetrag',
        'credit_note': 'Gutschrift',
        'description': 'Beschreibung',
        'quantity': 'Menge',
        'unit_price': 'Einzelpreis',
        'line_total': 'Gesamt',
        'date': 'Datum',
        'payment_due': 'Fälligkeitsdatum',
        'bank_transfer': 'Überweisung',
        'structured_reference': 'Strukturierte Mitteilung',
        'notes': 'Bemerkungen',
        'signature': 'Für Einverständnis, Datum und Unterschrift',
        'quote_validity': 'Dieses Angebot ist 30 Tage ab Ausstellungsdatum gültig.',
        'payment_terms': 'Zahlung innerhalb von 30 Tagen nach Rechnungsdatum, sofern nicht anders vereinbart.',
        'late_payment': (
            'Bei verspäteter Zahlung werden Verzugszinsen von 10% pro Jahr berechnet sowie eine pauschale '
            'Entschädigung von 40€ für Inkassokosten (Gesetz vom 2. August 2002).'
        ),
    },
    'fr-FR': {
        'quote': 'Devis',
        'invoice': 'Facture',
        'client': 'Client',
        'provider': 'Prestataire',
        'vat': 'TVA',
        'vat_number': 'N° TVA intracommunautaire',
        'subtotal': 'Total HT',
        'total': 'Total TTC',
        'deposit': 'Acompte',
        'balance': 'Solde à payer',
        'credit_note': 'Avoir',
        'description': 'Désignation',
        'quantity': 'Qté',
        'unit_price': 'Prix unitaire HT',
        'line_total': 'Total HT',
        'date': 'Date',
        'payment_due': "Date d'échéance",
        'bank_transfer': 'Virement bancaire',
        'structured_reference': 'Référence de paiement',
        'notes': 'Remarques',
        'signature': 'Bon pour accord, date et signature',
        'quote_validity': "Ce devis est valable 30 jours à compter de sa date d'émission, sauf indication contraire.",
        'payment_terms': "Paiement à 30 jours date de facture. Pas d'escompte pour paiement anticipé.",
        'late_payment': (
            "En cas de retard de paiement, une pénalité de 3 fois le taux d'intérêt légal sera appliquée, "
            "ainsi qu'une indemnité forfaitaire de 40€ pour frais de recouvrement (Art. L441-10 Code de commerce)."
        ),
    },
    'en': {
        'quote': 'Quote',
        'invoice': 'Invoice',
        'client': 'Client',
        'provider': 'Provider',
        'vat': 'VAT',
        'vat_number': 'VAT number',
        'subtotal': 'Subtotal excl. VAT',
        'total': 'Total incl. VAT',
        'deposit': 'Deposit',
        'balance': 'Balance',
        'credit_note': 'Credit note',
        'description': 'Description',
        'quantity': 'Qty',
        'unit_price': 'Unit price',
        'line_total': 'Total',
        'date': 'Date',
        'payment_due': 'Due date',
        'bank_transfer': 'Bank transfer',
        'structured_reference': 'Structured reference',
        'notes': 'Notes',
        'signature': 'Agreed, date and signature',
        'quote_validity': 'This quote is valid for 30 days from its date of issue.',
        'payment_terms': 'Payment within 30 days of the invoice date unless otherwise agreed.',
        'late_payment': (
            'Late payments bear interest of 10% per year and a fixed recovery fee of €40 '
            '(Belgian Act of 2 August 2002).'
        ),
    },
}


def normalize_locale(locale: Optional[str], default: str = DEFAULT_LOCALE) -> str:
    if locale in LOCALE_LABELS:
        return locale
    return default if default in LOCALE_LABELS else DEFAULT_LOCALE


def get_locale_labels(locale: Optional[str]) -> Dict[str, str]:
    """Label pack of a locale (a copy, callers may not mutate the table)."""
    return dict(LOCALE_LABELS[normalize_locale(locale)])

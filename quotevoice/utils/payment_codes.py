"""
Belgian payment codes: structured communication (OGM/VCS) and EPC QR payloads.

Both formats are read by Belgian banking apps, so field order, widths and the
checksum law are fixed.
"""
import re
from decimal import Decimal

from quotevoice.utils.number_format import round_cents

STRUCTURED_REFERENCE_PATTERN = re.compile(r'^\+\+\+(\d{3})/(\d{4})/(\d{5})\+\+\+$')

EPC_SERVICE_TAG = 'BCD'
EPC_VERSION = '002'
EPC_CHARACTER_SET = '1'  # UTF-8
EPC_IDENTIFICATION = 'SCT'  # SEPA Credit Transfer
EPC_MAX_NAME_LENGTH = 70


def structured_reference_checksum(base_digits: str) -> int:
    """mod 97 of the 10-digit base; a remainder of 0 is written as 97."""
    checksum = int(base_digits) % 97
    return checksum or 97


def generate_structured_reference(invoice_number: str) -> str:
    """
    Build a Belgian structured communication from an invoice number.

    The digits of the invoice number are left-padded to 10 (or the last 10
    are kept when longer), followed by the 2-digit mod-97 checksum, and the
    12 digits are grouped 3/4/5: +++XXX/XXXX/XXXXX+++

    Example:
        generate_structured_reference('FAC-0000000123') -> '+++000/0000/12326+++'
    """
    digits = re.sub(r'\D', '', invoice_number or '')
    base = digits.rjust(10, '0')[-10:]
    payload = f"{base}{structured_reference_checksum(base):02d}"
    return f"+++{payload[:3]}/{payload[3:7]}/{payload[7:]}+++"


def validate_structured_reference(reference: str) -> bool:
    """Check format and checksum of a structured communication."""
    match = STRUCTURED_REFERENCE_PATTERN.match((reference or '').strip())
    if not match:
        return False
    payload = ''.join(match.groups())
    return int(payload[10:]) == structured_reference_checksum(payload[:10])


def generate_epc_payload(beneficiary_name, iban, amount, reference='', bic=None) -> str:
    """
    Build an EPC069-12 ("SCT") QR payload: 12 newline-separated lines.

    Returns an empty string when no IBAN is configured; the invoice stays
    valid without a scannable code.
    """
    if not iban or not iban.strip():
        return ''

    lines = [
        EPC_SERVICE_TAG,
        EPC_VERSION,
        EPC_CHARACTER_SET,
        EPC_IDENTIFICATION,
        bic or '',
        (beneficiary_name or '')[:EPC_MAX_NAME_LENGTH],
        re.sub(r'\s', '', iban),
        f"EUR{round_cents(Decimal(str(amount))):.2f}",
        '',  # purpose
        re.sub(r'[+/]', '', reference or ''),
        '',  # unstructured remittance
        '',  # beneficiary to originator information
    ]
    return '\n'.join(lines)


def format_iban(iban: str) -> str:
    """Format an IBAN for display, in groups of 4 characters."""
    clean = re.sub(r'\s', '', iban or '').upper()
    return ' '.join(clean[i:i + 4] for i in range(0, len(clean), 4))

"""
Unit tests for Belgian structured references and EPC QR payloads.
"""

import pytest
from decimal import Decimal

from quotevoice.utils.payment_codes import (
    structured_reference_checksum,
    generate_structured_reference,
    validate_structured_reference,
    generate_epc_payload,
    format_iban
)


class TestStructuredReference:
    """Tests for the +++XXX/XXXX/XXXXX+++ communication."""

    def test_checksum_is_mod_97(self):
        assert structured_reference_checksum('0000000123') == 26

    def test_zero_remainder_is_written_97(self):
        assert structured_reference_checksum('0000000097') == 97
        assert structured_reference_checksum('0000000000') == 97

    def test_generate_from_short_number(self):
        assert generate_structured_reference('FAC-0000000123') == '+++000/0000/12326+++'

    def test_generate_zero_remainder(self):
        assert generate_structured_reference('97') == '+++000/0000/09797+++'

    def test_generate_from_invoice_number(self):
        # 20260001 % 97 == 96
        assert generate_structured_reference('FAC-2026-0001') == '+++002/0260/00196+++'

    def test_long_numbers_keep_last_ten_digits(self):
        reference = generate_structured_reference('FAC-123456789012')
        assert reference.startswith('+++345/6789/012')
        assert validate_structured_reference(reference)

    @pytest.mark.parametrize('invoice_number', ['FAC-2026-0001', 'FAC-2026-0042', 'FAC-2031-9999', ''])
    def test_generated_references_validate(self, invoice_number):
        assert validate_structured_reference(generate_structured_reference(invoice_number))

    def test_rejects_bad_checksum(self):
        assert not validate_structured_reference('+++000/0000/12327+++')

    @pytest.mark.parametrize('reference', [
        None, '', '000/0000/12326', '+++000/000/12326+++', '+++000/0000/1232A+++',
    ])
    def test_rejects_malformed(self, reference):
        assert not validate_structured_reference(reference)


class TestEpcPayload:
    """Tests for the EPC069-12 QR payload."""

    def test_payload_lines(self):
        payload = generate_epc_payload(
            beneficiary_name='Menuiserie Dupont SRL',
            iban='BE68 5390 0754 7034',
            amount=Decimal('121'),
            reference='+++002/0260/00196+++',
            bic='GKCCBEBB'
        )
        lines = payload.split('\n')

        assert len(lines) == 12
        assert lines[:4] == ['BCD', '002', '1', 'SCT']
        assert lines[4] == 'GKCCBEBB'
        assert lines[5] == 'Menuiserie Dupont SRL'
        assert lines[6] == 'BE68539007547034'
        assert lines[7] == 'EUR121.00'
        assert lines[9] == '002026000196'

    def test_amount_rounded_half_up(self):
        payload = generate_epc_payload('X', 'BE68539007547034', Decimal('10.005'))
        assert payload.split('\n')[7] == 'EUR10.01'

    def test_name_truncated_to_70(self):
        payload = generate_epc_payload('N' * 100, 'BE68539007547034', 1)
        assert payload.split('\n')[5] == 'N' * 70

    @pytest.mark.parametrize('iban', [None, '', '   '])
    def test_empty_without_iban(self, iban):
        assert generate_epc_payload('X', iban, 10) == ''


def test_format_iban_groups_of_four():
    assert format_iban('be68539007547034') == 'BE68 5390 0754 7034'
    assert format_iban(None) == ''

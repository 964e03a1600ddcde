"""
Unit tests for CSV parsing and column mapping.
"""

import pytest
from decimal import Decimal

from quotevoice.exceptions import ValidationError
from quotevoice.services.csv_import_service import (
    DEFAULT_MAPPINGS,
    ColumnMapping,
    apply_mapping,
    detect_columns,
    generate_csv_template,
    normalize_column_name,
    parse_csv,
    suggest_mapping,
    validate_mapping
)


ITEMS_CSV = (
    '\ufeffDescription;Quantité;Unité;Prix unitaire (€)\n'
    'Pose de parquet ; 12,5 ;m2;45,00\n'
    '\n'
    'Plinthes;3;m;12.50\n'
)


class TestParseCsv:

    def test_rows_are_trimmed_and_blank_lines_skipped(self):
        rows = parse_csv(ITEMS_CSV)

        assert len(rows) == 2
        assert rows[0] == {
            'Description': 'Pose de parquet',
            'Quantité': '12,5',
            'Unité': 'm2',
            'Prix unitaire (€)': '45,00',
        }
        assert detect_columns(rows) == ['Description', 'Quantité', 'Unité', 'Prix unitaire (€)']

    def test_short_rows_get_empty_values(self):
        rows = parse_csv('a;b;c\n1;2\n')
        assert rows == [{'a': '1', 'b': '2', 'c': ''}]

    def test_other_delimiter(self):
        rows = parse_csv('nom,email\nDupont,info@dupont.be\n', delimiter=',')
        assert rows == [{'nom': 'Dupont', 'email': 'info@dupont.be'}]

    def test_empty_content(self):
        assert parse_csv('') == []

    def test_none_content(self):
        with pytest.raises(ValidationError):
            parse_csv(None)


class TestSuggestMapping:

    def test_normalize_column_name(self):
        assert normalize_column_name('Prix unitaire (€)') == 'prixunitaire'
        assert normalize_column_name('Quantité') == 'quantite'

    def test_quote_items_columns_are_matched(self):
        mapping = suggest_mapping(['Description', 'Quantité', 'Unité', 'Prix unitaire (€)'], 'quote_items')
        by_field = {m.db_field: m.csv_column for m in mapping}

        assert by_field == {
            'description': 'Description',
            'quantity': 'Quantité',
            'unit': 'Unité',
            'unit_price': 'Prix unitaire (€)',
        }

    def test_unmatched_fields_have_no_column(self):
        mapping = suggest_mapping(['Nom'], 'clients')
        by_field = {m.db_field: m.csv_column for m in mapping}

        assert by_field['name'] == 'Nom'
        assert by_field['email'] == ''

    def test_unknown_import_type(self):
        with pytest.raises(ValidationError):
            suggest_mapping(['a'], 'invoices')


class TestApplyMapping:

    def test_transforms_values(self):
        rows = parse_csv(ITEMS_CSV)
        mapping = suggest_mapping(detect_columns(rows), 'quote_items')
        result = apply_mapping(rows, mapping)

        assert result.total_rows == 2
        assert result.success_rows == 2
        assert result.error_rows == 0
        assert result.records[0] == {
            'description': 'Pose de parquet',
            'quantity': Decimal('12.5'),
            'unit': 'm2',
            'unit_price': Decimal('45.00'),
        }
        assert result.records[1]['unit_price'] == Decimal('12.50')

    def test_row_errors_use_spreadsheet_row_numbers(self):
        rows = [
            {'description': 'ok', 'quantite': '1', 'prix_unitaire': '10'},
            {'description': '', 'quantite': '1', 'prix_unitaire': '10'},
            {'description': 'bad qty', 'quantite': 'beaucoup', 'prix_unitaire': '10'},
        ]
        result = apply_mapping(rows, DEFAULT_MAPPINGS['quote_items'])

        assert result.success_rows == 1
        assert result.error_rows == 2
        assert [(e.row, e.field) for e in result.errors] == [(3, 'description'), (4, 'quantity')]
        assert result.errors[1].value == 'beaucoup'

    def test_optional_empty_value_is_none(self):
        rows = [{'description': 'x', 'quantite': '1', 'prix_unitaire': '1', 'unite': ''}]
        result = apply_mapping(rows, DEFAULT_MAPPINGS['quote_items'])
        assert result.records[0]['unit'] is None

    def test_unmapped_columns_are_skipped(self):
        mapping = [ColumnMapping('nom', 'name', required=True), ColumnMapping('', 'email')]
        result = apply_mapping([{'nom': 'Dupont', 'email': 'ignored'}], mapping)
        assert result.records == [{'name': 'Dupont'}]


class TestValidateMapping:

    def test_empty_file(self):
        with pytest.raises(ValidationError):
            validate_mapping([], DEFAULT_MAPPINGS['clients'])

    def test_required_column_not_mapped(self):
        mapping = suggest_mapping(['Description'], 'quote_items')
        with pytest.raises(ValidationError) as exc_info:
            validate_mapping([{'Description': 'x'}], mapping)
        assert exc_info.value.payload['missing'] == ['quantity', 'unit_price']

    def test_warns_about_empty_required_values(self):
        warnings = validate_mapping([{'nom': ''}], [ColumnMapping('nom', 'name', required=True)])
        assert warnings == ['1 required value(s) are empty']


def test_template_round_trips_through_suggestion():
    template = generate_csv_template('products')
    rows = parse_csv(template)

    assert detect_columns(rows) == [m.csv_column for m in DEFAULT_MAPPINGS['products']]
    result = apply_mapping(rows, suggest_mapping(detect_columns(rows), 'products'))
    assert result.error_rows == 0
    assert result.records[0]['unit_price'] == Decimal('100.00')

"""
CSV import: column mapping, row validation and quote item import.

Files use the Belgian spreadsheet default (';' delimiter). A mapping is a
list of ColumnMapping entries binding a CSV column to a field, with an
optional transform and a required flag.
"""
import csv
import io
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from quotevoice.exceptions import ValidationError
from quotevoice.models import AuditAction
from quotevoice.services.quote_service import add_quote_items
from quotevoice.utils.number_format import to_decimal

logger = logging.getLogger(__name__)

MAX_ROWS_WARNING = 10000


@dataclass(frozen=True)
class ColumnMapping:
    csv_column: str
    db_field: str
    transform: Optional[Callable[[str], Any]] = None
    required: bool = False


@dataclass
class ImportRowError:
    row: int
    message: str
    field: Optional[str] = None
    value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'row': self.row, 'field': self.field, 'value': self.value, 'message': self.message}


@dataclass
class ImportResult:
    total_rows: int
    success_rows: int = 0
    error_rows: int = 0
    records: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[ImportRowError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_rows': self.total_rows,
            'success_rows': self.success_rows,
            'error_rows': self.error_rows,
            'errors': [error.to_dict() for error in self.errors],
        }


DEFAULT_MAPPINGS: Dict[str, List[ColumnMapping]] = {
    'clients': [
        ColumnMapping('nom', 'name', required=True),
        ColumnMapping('email', 'email'),
        ColumnMapping('telephone', 'phone'),
        ColumnMapping('adresse', 'address'),
        ColumnMapping('code_postal', 'postal_code'),
        ColumnMapping('ville', 'city'),
        ColumnMapping('pays', 'country'),
        ColumnMapping('tva', 'vat_number'),
        ColumnMapping('notes', 'notes'),
    ],
    'products': [
        ColumnMapping('reference', 'reference', required=True),
        ColumnMapping('nom', 'name', required=True),
        ColumnMapping('description', 'description'),
        ColumnMapping('prix', 'unit_price', transform=to_decimal),
        ColumnMapping('unite', 'unit'),
        ColumnMapping('categorie', 'category'),
        ColumnMapping('tva', 'tax_rate', transform=to_decimal),
    ],
    'suppliers': [
        ColumnMapping('nom', 'name', required=True),
        ColumnMapping('categorie', 'category'),
        ColumnMapping('email', 'contact_email'),
        ColumnMapping('telephone', 'contact_phone'),
        ColumnMapping('site_web', 'website'),
        ColumnMapping('adresse', 'address'),
        ColumnMapping('ville', 'city'),
        ColumnMapping('code_postal', 'postal_code'),
        ColumnMapping('tva', 'vat_number'),
    ],
    'quote_items': [
        ColumnMapping('description', 'description', required=True),
        ColumnMapping('quantite', 'quantity', transform=to_decimal, required=True),
        ColumnMapping('unite', 'unit'),
        ColumnMapping('prix_unitaire', 'unit_price', transform=to_decimal, required=True),
    ],
}

TEMPLATE_EXAMPLES = {
    'name': 'Exemple SRL',
    'email': 'contact@exemple.be',
    'contact_email': 'contact@exemple.be',
    'phone': '+32 2 123 45 67',
    'contact_phone': '+32 2 123 45 67',
    'address': "Rue de l'Exemple 123",
    'postal_code': '1000',
    'city': 'Bruxelles',
    'country': 'Belgique',
    'vat_number': 'BE0123.456.789',
    'unit_price': '100,00',
    'quantity': '1',
    'unit': 'pièce',
    'reference': 'REF-001',
    'description': 'Description du produit',
    'category': 'Catégorie',
    'tax_rate': '21',
}


def parse_csv(content: str, delimiter: str = ';') -> List[Dict[str, str]]:
    """
    Parse CSV text with a header row into dicts.

    Keys and values are trimmed, blank lines skipped; short rows get empty
    values and extra cells are dropped.

    Raises:
        ValidationError: The content is not readable CSV.
    """
    if content is None:
        raise ValidationError('CSV content is required', field='file')

    text = content.lstrip('\ufeff')
    reader = csv.DictReader(io.StringIO(text), delimiter=delimiter)

    records = []
    try:
        for raw in reader:
            row = {
                key.strip(): (value or '').strip()
                for key, value in raw.items()
                if key is not None
            }
            if not any(row.values()):
                continue
            records.append(row)
    except csv.Error as e:
        raise ValidationError(f'Failed to parse CSV: {e}', field='file')

    return records


def detect_columns(records: List[Dict[str, str]]) -> List[str]:
    if not records:
        return []
    return list(records[0].keys())


def normalize_column_name(name: str) -> str:
    """Lowercase, strip accents and anything that is not a letter or digit."""
    decomposed = unicodedata.normalize('NFD', name.lower())
    without_accents = ''.join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r'[^a-z0-9]', '', without_accents)


def suggest_mapping(columns: List[str], import_type: str) -> List[ColumnMapping]:
    """
    Match CSV columns to the default mapping of an import type.

    Exact or containing matches after normalization; unmatched entries get
    an empty csv_column.
    """
    if import_type not in DEFAULT_MAPPINGS:
        raise ValidationError(f"Unknown import type '{import_type}'", field='import_type')

    suggestions = []
    for mapping in DEFAULT_MAPPINGS[import_type]:
        target = normalize_column_name(mapping.csv_column)
        match = ''
        for column in columns:
            candidate = normalize_column_name(column)
            if not candidate:
                continue
            if candidate == target or target in candidate or candidate in target:
                match = column
                break
        suggestions.append(ColumnMapping(match, mapping.db_field, mapping.transform, mapping.required))
    return suggestions


def validate_mapping(records: List[Dict[str, str]], mapping: List[ColumnMapping]) -> List[str]:
    """
    Pre-import checks; returns warnings.

    Raises:
        ValidationError: Empty file or a required field without a column.
    """
    if not records:
        raise ValidationError('The file is empty', field='file')

    missing = [m.db_field for m in mapping if m.required and not m.csv_column]
    if missing:
        raise ValidationError(
            f"Required column(s) not mapped: {', '.join(missing)}",
            payload={'missing': missing}
        )

    warnings = []
    if len(records) > MAX_ROWS_WARNING:
        warnings.append(f'The file has more than {MAX_ROWS_WARNING} rows')

    empty_required = sum(
        1 for record in records for m in mapping
        if m.required and not (record.get(m.csv_column) or '').strip()
    )
    if empty_required:
        warnings.append(f'{empty_required} required value(s) are empty')
    return warnings


def apply_mapping(records: List[Dict[str, str]], mapping: List[ColumnMapping]) -> ImportResult:
    """
    Transform rows through a mapping, collecting row and field level errors.

    Row numbers count the header as row 1.
    """
    result = ImportResult(total_rows=len(records))

    for index, record in enumerate(records):
        row_number = index + 2
        data = {}
        row_errors = []

        for col in mapping:
            if not col.csv_column:
                continue

            raw_value = record.get(col.csv_column)
            value = (raw_value or '').strip() or None

            if value is None:
                if col.required:
                    row_errors.append(ImportRowError(
                        row=row_number, field=col.db_field,
                        message=f'Required field "{col.db_field}" is missing'
                    ))
                data[col.db_field] = None
                continue

            if col.transform:
                try:
                    value = col.transform(value)
                except (ValueError, TypeError, ArithmeticError):
                    row_errors.append(ImportRowError(
                        row=row_number, field=col.db_field, value=raw_value,
                        message=f'Could not convert "{col.db_field}"'
                    ))
                    continue

            data[col.db_field] = value

        if row_errors:
            result.errors.extend(row_errors)
            result.error_rows += 1
        else:
            result.records.append(data)
            result.success_rows += 1

    return result


def generate_csv_template(import_type: str, delimiter: str = ';') -> str:
    """Header line plus one example row for an import type."""
    if import_type not in DEFAULT_MAPPINGS:
        raise ValidationError(f"Unknown import type '{import_type}'", field='import_type')

    mapping = DEFAULT_MAPPINGS[import_type]
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter, lineterminator='\n')
    writer.writerow([m.csv_column for m in mapping])
    writer.writerow([TEMPLATE_EXAMPLES.get(m.db_field, '') for m in mapping])
    return buffer.getvalue()


def _check_quote_item(result: ImportResult, record: Dict[str, Any], row_number: int) -> bool:
    if record['quantity'] <= 0:
        result.errors.append(ImportRowError(row=row_number, field='quantity',
                                            value=str(record['quantity']),
                                            message='Quantity must be greater than 0'))
        return False
    if record['unit_price'] < 0:
        result.errors.append(ImportRowError(row=row_number, field='unit_price',
                                            value=str(record['unit_price']),
                                            message='Unit price cannot be negative'))
        return False
    return True


def import_quote_items(session: Session, tenant_id: int, quote_id: int, content: str,
                       mapping: Optional[List[ColumnMapping]] = None, delimiter: str = ';',
                       user_id: Optional[int] = None, cache=None) -> ImportResult:
    """
    Append the valid rows of a CSV file to a quote's items.

    Invalid rows are reported in the result and skipped.

    Raises:
        ValidationError: Unreadable file, unmapped required column, or no valid row
        NotFoundError / ImmutableError: from the quote service
    """
    records = parse_csv(content, delimiter)
    if mapping is None:
        mapping = suggest_mapping(detect_columns(records), 'quote_items')
    for warning in validate_mapping(records, mapping):
        logger.warning(f"[CSV_IMPORT] quote {quote_id}: {warning}")

    mapped = apply_mapping(records, mapping)

    # Rows passing the mapping still need item constraints
    result = ImportResult(total_rows=mapped.total_rows, errors=list(mapped.errors))
    result.error_rows = mapped.error_rows
    failed_rows = {error.row for error in mapped.errors}
    valid_rows = [n for n in range(2, mapped.total_rows + 2) if n not in failed_rows]

    for row_number, record in zip(valid_rows, mapped.records):
        if _check_quote_item(result, record, row_number):
            result.records.append(record)
            result.success_rows += 1
        else:
            result.error_rows += 1

    if not result.records:
        raise ValidationError('No valid rows to import', payload=result.to_dict())

    add_quote_items(
        session, tenant_id, quote_id, result.records,
        user_id=user_id, cache=cache, action=AuditAction.QUOTE_ITEMS_IMPORTED
    )

    logger.info(
        f"Imported {result.success_rows}/{result.total_rows} item(s) into quote {quote_id} "
        f"({result.error_rows} rejected)"
    )
    return result

# ==============================================================================
# app/billing/parser.py
# ------------------------------------------------------------------------------
# Reads an uploaded usage export (JSON, .xlsx or .ods) and validates it row by
# row into usage rows: an admin username plus six limited volumes and six
# unlimited counts. Bad rows are skipped and counted; only an unreadable file
# aborts the import.
# ==============================================================================

import json
import logging
import os

import pandas as pd

from app.billing import schema
from app.billing.errors import QuantityRangeError, UnparseableFileError
from app.billing.money import parse_quantity, is_blank

FORMAT_NAMED = 'named'
FORMAT_LEGACY = 'legacy'

EXCEL_ENGINES = {
    '.xlsx': 'openpyxl',
    '.ods': 'odf',
}


def _cell_text(value):
    if is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        # Phone numbers and ids typed as numbers come back from pandas as floats
        value = int(value)
    return str(value).strip()


def _usage_row(row_number, admin_username, limited, unlimited, details=None):
    return {
        'row_number': row_number,
        'admin_username': admin_username,
        'details': details or {},
        'limited_volumes': [parse_quantity(v) for v in limited],
        'unlimited_counts': [parse_quantity(v) for v in unlimited],
    }


def _has_activity(usage):
    return any(q > 0 for q in usage['limited_volumes'] + usage['unlimited_counts'])


def parse_named_rows(rows, first_row_number=1):
    """
    Validates rows keyed by field name (the JSON export layout).

    Args:
        rows (list): Sequence of dicts.
        first_row_number (int): Number reported in logs for the first row.

    Returns:
        dict: 'records_processed', 'records_skipped' and 'rows' (the usage rows
              that carry any activity).
    """
    usage_rows = []
    skipped = 0
    for row_number, row in enumerate(rows, start=first_row_number):
        if not isinstance(row, dict):
            logging.warning(f"Row {row_number}: not an object, skipped")
            skipped += 1
            continue
        admin_username = _cell_text(row.get(schema.IDENTIFIER_FIELD))
        if not admin_username:
            logging.warning(f"Row {row_number}: missing '{schema.IDENTIFIER_FIELD}', skipped")
            skipped += 1
            continue
        missing = [f for f in schema.LIMITED_FIELDS + schema.UNLIMITED_FIELDS if f not in row]
        if missing:
            logging.warning(f"Row {row_number} ({admin_username}): malformed, missing {', '.join(missing)}")
            skipped += 1
            continue

        try:
            usage = _usage_row(row_number, admin_username,
                               [row[f] for f in schema.LIMITED_FIELDS],
                               [row[f] for f in schema.UNLIMITED_FIELDS])
        except QuantityRangeError:
            logging.warning(f"Row {row_number} ({admin_username}): malformed, quantity out of range")
            skipped += 1
            continue
        if not _has_activity(usage):
            logging.debug(f"Row {row_number} ({admin_username}): no activity, skipped")
            skipped += 1
            continue
        usage_rows.append(usage)

    return {'records_processed': len(usage_rows), 'records_skipped': skipped, 'rows': usage_rows}


def parse_legacy_rows(rows):
    """
    Validates rows of the fixed-column sheet layout.

    The first row is a header. Processing stops at two consecutive fully
    blank rows, which tolerates formatting padding at the end of a sheet.
    """
    usage_rows = []
    skipped = 0
    blank_run = 0
    for index, row in enumerate(rows):
        if index < schema.LEGACY_HEADER_ROWS:
            continue
        row_number = index + 1
        row = list(row) if row is not None else []

        if all(is_blank(cell) for cell in row):
            blank_run += 1
            if blank_run >= schema.LEGACY_BLANK_ROWS_TO_STOP:
                logging.info(f"Two consecutive blank rows at row {row_number}, stopping")
                break
            continue
        blank_run = 0

        admin_username = _cell_text(row[schema.LEGACY_COLUMNS['admin_username']])
        if not admin_username:
            logging.warning(f"Row {row_number}: missing admin username in column A, skipped")
            skipped += 1
            continue
        if len(row) < schema.LEGACY_MIN_WIDTH:
            logging.warning(f"Row {row_number} ({admin_username}): malformed, "
                            f"{len(row)} columns instead of {schema.LEGACY_MIN_WIDTH}")
            skipped += 1
            continue

        details = {field: _cell_text(row[col]) for field, col in schema.LEGACY_COLUMNS.items()
                   if field != 'admin_username'}
        try:
            usage = _usage_row(row_number, admin_username,
                               [row[c] for c in schema.LEGACY_LIMITED_COLUMNS],
                               [row[c] for c in schema.LEGACY_UNLIMITED_COLUMNS],
                               details={k: v for k, v in details.items() if v})
        except QuantityRangeError:
            logging.warning(f"Row {row_number} ({admin_username}): malformed, quantity out of range")
            skipped += 1
            continue
        if not _has_activity(usage):
            logging.debug(f"Row {row_number} ({admin_username}): no activity, skipped")
            skipped += 1
            continue
        usage_rows.append(usage)

    return {'records_processed': len(usage_rows), 'records_skipped': skipped, 'rows': usage_rows}


def parse_rows(rows, fmt):
    if fmt == FORMAT_NAMED:
        return parse_named_rows(rows)
    if fmt == FORMAT_LEGACY:
        return parse_legacy_rows(rows)
    raise ValueError(f"Unknown row format: {fmt}")


def _read_json(filepath):
    try:
        with open(filepath, encoding='utf-8-sig') as f:
            data = json.load(f)
    except (OSError, UnicodeDecodeError, ValueError) as e:
        raise UnparseableFileError(f"فایل JSON نامعتبر است یا قابل خواندن نیست. خطای فنی: {e}") from e
    if not isinstance(data, list):
        raise UnparseableFileError('فایل JSON باید شامل آرایه‌ای از ردیف‌ها باشد.')
    return data


def _read_sheet(filepath, engine):
    try:
        df = pd.read_excel(filepath, sheet_name=0, header=None, dtype=object, engine=engine)
    except Exception as e:
        raise UnparseableFileError(f"فایل صفحه‌گسترده نامعتبر است یا قابل خواندن نیست. خطای فنی: {e}") from e
    # NaN -> None so that every blank cell looks the same downstream
    return df.astype(object).where(pd.notna(df), None).values.tolist()


def _is_named_header(first_row):
    return any(_cell_text(cell) == schema.IDENTIFIER_FIELD for cell in first_row)


def read_upload(filepath):
    """
    Reads an import file into raw rows.

    Returns:
        tuple: (rows, format) where format is 'named' (rows are dicts) or
               'legacy' (rows are lists of cells, header included).

    Raises:
        UnparseableFileError: The file cannot be read in any supported format.
    """
    extension = os.path.splitext(filepath)[1].lower()
    if extension == '.json':
        return _read_json(filepath), FORMAT_NAMED
    if extension not in EXCEL_ENGINES:
        raise UnparseableFileError(f"نوع فایل '{extension}' پشتیبانی نمی‌شود. فایل JSON، XLSX یا ODS بارگذاری کنید.")

    rows = _read_sheet(filepath, EXCEL_ENGINES[extension])
    if not rows:
        return [], FORMAT_LEGACY
    if _is_named_header(rows[0]):
        header = [_cell_text(cell) for cell in rows[0]]
        named = [{key: value for key, value in zip(header, row) if key} for row in rows[1:]]
        # Trailing blank lines of the sheet carry no username and would count as skipped
        while named and all(is_blank(v) for v in named[-1].values()):
            named.pop()
        return named, FORMAT_NAMED
    return rows, FORMAT_LEGACY

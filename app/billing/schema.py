# ==============================================================================
# app/billing/schema.py
# ------------------------------------------------------------------------------
# Defines the expected structure of an uploaded usage export.
# This schema is the single source of truth for the import parser.
# ==============================================================================

from decimal import Decimal

DURATIONS = (1, 2, 3, 4, 5, 6)

# --- Named-field layout (JSON export, or a sheet whose header row names the fields) ---

IDENTIFIER_FIELD = 'admin_username'
LIMITED_FIELDS = tuple(f'limited_{months}_month_volume' for months in DURATIONS)
UNLIMITED_FIELDS = tuple(f'unlimited_{months}_month' for months in DURATIONS)
REQUIRED_FIELDS = (IDENTIFIER_FIELD,) + LIMITED_FIELDS + UNLIMITED_FIELDS

# --- Legacy fixed-column layout (first sheet, first row is a header) ---

LEGACY_COLUMNS = {
    'admin_username': 0,   # A
    'full_name': 1,        # B
    'phone_number': 2,     # C
    'telegram_id': 3,      # D
    'store_name': 4,       # E
}
LEGACY_LIMITED_COLUMNS = tuple(range(7, 13))     # H..M
LEGACY_UNLIMITED_COLUMNS = tuple(range(19, 25))  # T..Y
LEGACY_MIN_WIDTH = LEGACY_UNLIMITED_COLUMNS[-1] + 1
LEGACY_HEADER_ROWS = 1
LEGACY_BLANK_ROWS_TO_STOP = 2

# --- Default price schedule (Toman) for representatives created on demand ---

DEFAULT_LIMITED_PRICES = tuple(Decimal(p) for p in ('900', '900', '900', '1400', '1500', '1600'))
DEFAULT_UNLIMITED_PRICES = tuple(Decimal(p) for p in ('40000', '80000', '120000', '160000', '200000', '240000'))

DEFAULT_COMMISSION_PERCENTAGE = Decimal('10.00')
DEFAULT_INVOICE_DUE_DAYS = 30

# ==============================================================================
# app/billing/numbering.py
# ------------------------------------------------------------------------------
# Invoice number generation: INV-{year}-{6-digit time-derived suffix}.
# Uniqueness is enforced by the unique constraint on invoice.invoice_number;
# the generator only makes a collision unlikely.
# ==============================================================================

import re
import threading
import time
from datetime import datetime, timezone

INVOICE_NUMBER_RE = re.compile(r'^INV-(\d{4})-(\d{6})$')


class InvoiceNumberGenerator:
    """
    Derives the suffix from the current time in milliseconds. Within one
    process the underlying millisecond value never repeats: two calls in the
    same millisecond get consecutive suffixes.
    """

    def __init__(self, clock=None):
        self._clock = clock or time.time
        self._last_ms = 0
        self._lock = threading.Lock()

    def next_number(self):
        with self._lock:
            now = self._clock()
            ms = max(int(now * 1000), self._last_ms + 1)
            self._last_ms = ms
        year = datetime.fromtimestamp(ms / 1000, tz=timezone.utc).year
        # The suffix wraps every 10^6 ms and restarts with the process; the unique
        # constraint on invoice.invoice_number is what guarantees uniqueness
        return f'INV-{year:04d}-{ms % 1_000_000:06d}'


def parse_invoice_number(number):
    """Returns (year, suffix) or None when the text is not an invoice number."""
    match = INVOICE_NUMBER_RE.match(number or '')
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))

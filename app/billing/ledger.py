# ==============================================================================
# app/billing/ledger.py
# ------------------------------------------------------------------------------
# Append-only per-representative statement of account.
# Invoices debit the representative (positive amount), payments credit it
# (negative amount); every entry stores the balance after itself.
# ==============================================================================

import logging
from decimal import Decimal

from sqlalchemy import select

from app.models import LedgerEntry, Representative
from app.billing.errors import LedgerError, NotFoundError
from app.billing.money import money, ZERO

TRANSACTION_INVOICE = 'invoice'
TRANSACTION_PAYMENT = 'payment'
TRANSACTION_TYPES = (TRANSACTION_INVOICE, TRANSACTION_PAYMENT)


class FinancialLedger:
    """
    Appends and reads ledger entries. `append_entry` does not commit: it joins
    the caller's transaction so the entry commits or rolls back together with
    the invoice or payment that caused it.
    """

    def __init__(self, session):
        self.session = session

    def _lock_representative(self, representative_id):
        # Row lock serializes concurrent appends for one representative
        rep = self.session.execute(
            select(Representative).where(Representative.id == representative_id).with_for_update()
        ).scalar_one_or_none()
        if rep is None:
            raise NotFoundError(f'نماینده با شناسه {representative_id} یافت نشد.')
        return rep

    def _last_entry(self, representative_id):
        return (LedgerEntry.query
                .filter_by(representative_id=representative_id)
                .order_by(LedgerEntry.id.desc())
                .first())

    def append_entry(self, representative_id, transaction_type, amount,
                     reference_id=None, reference_number=None, description=None):
        """
        Appends one entry and returns it (flushed, not committed).

        Args:
            representative_id (int): Owner of the ledger.
            transaction_type (str): 'invoice' (debit) or 'payment' (credit).
            amount (Decimal): Positive amount; the sign comes from the type.
        """
        if transaction_type not in TRANSACTION_TYPES:
            raise LedgerError(f"نوع تراکنش '{transaction_type}' نامعتبر است.")
        amount = money(amount)
        if amount <= 0:
            raise LedgerError('مبلغ تراکنش باید بزرگتر از صفر باشد.')

        self._lock_representative(representative_id)
        last = self._last_entry(representative_id)
        last_balance = last.running_balance if last is not None else ZERO
        signed = amount if transaction_type == TRANSACTION_INVOICE else -amount

        entry = LedgerEntry(representative_id=representative_id, transaction_type=transaction_type,
                            amount=signed, running_balance=money(last_balance + signed),
                            reference_id=reference_id, reference_number=reference_number,
                            description=description)
        self.session.add(entry)
        self.session.flush()
        logging.debug(f"Ledger rep={representative_id}: {transaction_type} {signed} -> {entry.running_balance}")
        return entry

    def get_balance(self, representative_id):
        last = self._last_entry(representative_id)
        return last.running_balance if last is not None else ZERO

    def get_ledger(self, representative_id):
        return (LedgerEntry.query
                .filter_by(representative_id=representative_id)
                .order_by(LedgerEntry.id)
                .all())

    def verify(self, representative_id):
        """
        Replays the ledger from zero.

        Returns:
            LedgerEntry or None: the first entry whose stored running balance
            differs from the replayed one, or None when the ledger is consistent.
        """
        balance = Decimal('0')
        for entry in self.get_ledger(representative_id):
            balance += entry.amount
            if entry.running_balance != balance:
                logging.error(f"Ledger mismatch for representative {representative_id} at entry {entry.id}: "
                              f"stored {entry.running_balance}, replayed {balance}")
                return entry
        return None

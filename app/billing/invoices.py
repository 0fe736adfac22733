# ==============================================================================
# app/billing/invoices.py
# ------------------------------------------------------------------------------
# Turns one representative's usage into an invoice of record, and manages the
# invoice lifecycle (pending -> paid | overdue | cancelled) afterwards.
# ==============================================================================

import logging
from datetime import timedelta
from decimal import InvalidOperation

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.models import Invoice, InvoiceItem, utcnow, SERVICE_LIMITED, SERVICE_UNLIMITED
from app.billing import schema
from app.billing.errors import BillingError, InvoiceIntegrityError, InvalidStatusTransitionError, NotFoundError
from app.billing.ledger import TRANSACTION_INVOICE
from app.billing.money import money, quantize_quantity, fa_digits, format_quantity, MAX_QUANTITY, ZERO

ALLOWED_TRANSITIONS = {
    'pending': {'paid', 'overdue', 'cancelled'},
    'overdue': {'paid', 'cancelled'},
    'paid': set(),
    'cancelled': set(),
}


def describe_item(service_type, months, quantity):
    if service_type == SERVICE_LIMITED:
        return f'اشتراک {fa_digits(months)} ماهه حجمی ({format_quantity(quantity)} گیگابایت)'
    return f'اشتراک {fa_digits(months)} ماهه نامحدود ({format_quantity(quantity)} عدد)'


class InvoiceBuilder:
    """
    Prices an activity record with the representative's current price table and
    persists the invoice, its items and its ledger debit in one transaction.
    """

    def __init__(self, session, ledger, commission_engine, number_generator, config):
        self.session = session
        self.ledger = ledger
        self.commission_engine = commission_engine
        self.number_generator = number_generator
        self.config = config

    def build_line_items(self, representative, activity):
        """
        Returns unsaved InvoiceItems, one per bucket with a positive quantity.
        Unit prices are copied from the representative at this moment.
        """
        items = []
        buckets = ((SERVICE_LIMITED, activity['limited_volumes']),
                   (SERVICE_UNLIMITED, activity['unlimited_counts']))
        for service_type, quantities in buckets:
            for months, quantity in zip(schema.DURATIONS, quantities):
                try:
                    quantity = quantize_quantity(quantity)
                except InvalidOperation:
                    quantity = None
                if quantity is None or quantity > MAX_QUANTITY:
                    raise InvoiceIntegrityError(
                        f"مقدار {service_type} {months} ماهه برای نماینده '{representative.admin_username}' خارج از محدوده است.",
                        representative_id=representative.id, activity=activity)
                if quantity <= 0:
                    continue
                unit_price = representative.unit_price(service_type, months)
                if unit_price is None:
                    raise InvoiceIntegrityError(
                        f"قیمت {service_type} {months} ماهه برای نماینده '{representative.admin_username}' تعریف نشده است.",
                        representative_id=representative.id, activity=activity)
                items.append(InvoiceItem(
                    description=describe_item(service_type, months, quantity),
                    service_type=service_type, duration_months=months, quantity=quantity,
                    unit_price=unit_price, total_price=money(quantity * unit_price)))
        return items

    def create_invoice(self, representative, activity, batch=None):
        """
        Creates and commits one invoice, then calculates its commission.

        Args:
            representative (Representative): The invoiced representative.
            activity (dict): Activity record with 'limited_volumes' and 'unlimited_counts'.
            batch (InvoiceBatch): Optional batch of the current import.

        Returns:
            Invoice or None: None when the activity prices to zero.

        Raises:
            InvoiceIntegrityError: Nothing of this invoice was committed.
        """
        items = self.build_line_items(representative, activity)
        total = sum((item.total_price for item in items), ZERO)
        if not items or total == 0:
            logging.warning(f"Representative {representative.admin_username}: activity prices to zero, no invoice created")
            return None

        now = utcnow()
        invoice = Invoice(invoice_number=self.number_generator.next_number(), representative_id=representative.id,
                          batch_id=batch.id if batch is not None else None, total_amount=total, status='pending',
                          created_at=now, due_date=now + timedelta(days=self.config.INVOICE_DUE_DAYS))
        invoice.items = items
        if invoice.items_total() != invoice.total_amount:
            raise InvoiceIntegrityError(
                f'جمع ردیف‌های فاکتور با مبلغ کل آن برابر نیست ({invoice.items_total()} != {invoice.total_amount}).',
                representative_id=representative.id, activity=activity)

        self.session.add(invoice)
        try:
            self.session.flush()
            self.ledger.append_entry(representative.id, TRANSACTION_INVOICE, total, reference_id=invoice.id,
                                     reference_number=invoice.invoice_number,
                                     description=f'فاکتور {invoice.invoice_number}')
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            logging.error(f"Invoice write failed for representative {representative.id} "
                          f"(activity={activity}): {e.orig}", exc_info=True)
            raise InvoiceIntegrityError(
                f"ثبت فاکتور برای نماینده '{representative.admin_username}' ناموفق بود (شماره فاکتور تکراری یا نقض یکپارچگی).",
                representative_id=representative.id, activity=activity) from e
        except (SQLAlchemyError, BillingError) as e:
            self.session.rollback()
            logging.error(f"Invoice write failed for representative {representative.id} "
                          f"(activity={activity}): {e}", exc_info=True)
            raise InvoiceIntegrityError(
                f"ثبت فاکتور برای نماینده '{representative.admin_username}' ناموفق بود.",
                representative_id=representative.id, activity=activity) from e

        logging.info(f"Invoice {invoice.invoice_number} created for {representative.admin_username}: "
                     f"{total} ({len(items)} items)")

        # Commission is secondary bookkeeping; the invoice stays committed if it fails
        try:
            self.commission_engine.calculate(invoice.id)
        except Exception:
            logging.error(f"Commission calculation failed for invoice {invoice.invoice_number}; "
                          f"re-run it with 'flask recalc-commission {invoice.invoice_number}'", exc_info=True)
        return invoice


class InvoiceRegister:
    """Reads invoices and applies the lifecycle transitions allowed after creation."""

    def __init__(self, session, payments):
        self.session = session
        self.payments = payments

    def get(self, invoice_id):
        invoice = self.session.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError(f'فاکتور با شناسه {invoice_id} یافت نشد.')
        return invoice

    def get_by_number(self, invoice_number):
        invoice = Invoice.query.filter_by(invoice_number=invoice_number).first()
        if invoice is None:
            raise NotFoundError(f"فاکتور '{invoice_number}' یافت نشد.")
        return invoice

    def for_representative(self, representative_id):
        return Invoice.query.filter_by(representative_id=representative_id).order_by(Invoice.id).all()

    def set_status(self, invoice_id, status, payment_method=None):
        """
        Moves an invoice to a new status. Moving to 'paid' settles the
        outstanding amount as a payment, which credits the ledger.
        """
        invoice = self.get(invoice_id)
        if status not in ALLOWED_TRANSITIONS.get(invoice.status, set()):
            raise InvalidStatusTransitionError(
                f"تغییر وضعیت فاکتور {invoice.invoice_number} از '{invoice.status}' به '{status}' مجاز نیست.")
        if status == 'paid':
            self.payments.settle_invoice(invoice.id, payment_method=payment_method)
            return invoice
        invoice.status = status
        self.session.commit()
        logging.info(f"Invoice {invoice.invoice_number} -> {status}")
        return invoice

    def mark_overdue(self, now=None):
        """Moves pending invoices past their due date to 'overdue'; returns how many moved."""
        now = now or utcnow()
        overdue = Invoice.query.filter(Invoice.status == 'pending', Invoice.due_date < now).all()
        for invoice in overdue:
            invoice.status = 'overdue'
        self.session.commit()
        if overdue:
            logging.info(f"{len(overdue)} invoices marked overdue")
        return len(overdue)

    def mark_shared(self, invoice_id, telegram=True):
        invoice = self.get(invoice_id)
        invoice.sent_to_representative = True
        if telegram:
            invoice.telegram_sent = True
        self.session.commit()
        return invoice

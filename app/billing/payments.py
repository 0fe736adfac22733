# ==============================================================================
# app/billing/payments.py
# ------------------------------------------------------------------------------
# Money received from representatives. Each payment credits the ledger in the
# same transaction and settles its invoice once the invoice is fully covered.
# ==============================================================================

import logging

from sqlalchemy.exc import SQLAlchemyError

from app.models import Invoice, Payment, utcnow
from app.billing.errors import BillingError, InvalidStatusTransitionError, NotFoundError
from app.billing.ledger import TRANSACTION_PAYMENT
from app.billing.money import money, ZERO


class PaymentRecorder:

    def __init__(self, session, ledger):
        self.session = session
        self.ledger = ledger

    def amount_paid(self, invoice_id):
        payments = Payment.query.filter_by(invoice_id=invoice_id).all()
        return sum((p.amount for p in payments), ZERO)

    def outstanding(self, invoice):
        return max(money(invoice.total_amount - self.amount_paid(invoice.id)), ZERO)

    def record_payment(self, representative_id, amount, invoice_id=None, payment_method=None, notes=None):
        """
        Records a payment and its ledger credit, then commits.

        Args:
            representative_id (int): The paying representative.
            amount (Decimal): Positive amount received.
            invoice_id (int): Optional invoice the payment is made against.

        Returns:
            Payment: The committed payment.
        """
        amount = money(amount)
        if amount <= 0:
            raise BillingError('مبلغ پرداخت باید بزرگتر از صفر باشد.')

        invoice = None
        if invoice_id is not None:
            invoice = self.session.get(Invoice, invoice_id)
            if invoice is None:
                raise NotFoundError(f'فاکتور با شناسه {invoice_id} یافت نشد.')
            if invoice.representative_id != representative_id:
                raise BillingError(f'فاکتور {invoice.invoice_number} متعلق به این نماینده نیست.')
            if invoice.status in ('paid', 'cancelled'):
                raise InvalidStatusTransitionError(
                    f"برای فاکتور {invoice.invoice_number} با وضعیت '{invoice.status}' پرداخت ثبت نمی‌شود.")

        payment = Payment(representative_id=representative_id, invoice_id=invoice_id, amount=amount,
                          payment_method=payment_method, notes=notes)
        try:
            self.session.add(payment)
            self.session.flush()
            description = f'پرداخت فاکتور {invoice.invoice_number}' if invoice is not None else 'پرداخت علی‌الحساب'
            self.ledger.append_entry(representative_id, TRANSACTION_PAYMENT, amount, reference_id=payment.id,
                                     reference_number=invoice.invoice_number if invoice is not None else None,
                                     description=description)
            if invoice is not None and self.amount_paid(invoice.id) >= invoice.total_amount:
                invoice.status = 'paid'
                invoice.paid_date = utcnow()
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logging.error(f"Payment of {amount} for representative {representative_id} failed: {e}", exc_info=True)
            raise BillingError('ثبت پرداخت ناموفق بود.') from e

        logging.info(f"Payment {payment.id}: {amount} from representative {representative_id}"
                     + (f" against {invoice.invoice_number} ({invoice.status})" if invoice is not None else ''))
        return payment

    def settle_invoice(self, invoice_id, payment_method=None):
        """Pays whatever is still outstanding on an invoice and marks it paid."""
        invoice = self.session.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError(f'فاکتور با شناسه {invoice_id} یافت نشد.')
        remaining = self.outstanding(invoice)
        if remaining > 0:
            self.record_payment(invoice.representative_id, remaining, invoice_id=invoice.id,
                                payment_method=payment_method, notes='تسویه فاکتور')
            return invoice
        invoice.status = 'paid'
        invoice.paid_date = utcnow()
        self.session.commit()
        return invoice

    def for_representative(self, representative_id):
        return Payment.query.filter_by(representative_id=representative_id).order_by(Payment.id).all()

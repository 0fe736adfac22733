# ==============================================================================
# app/billing/commission.py
# ------------------------------------------------------------------------------
# Commission owed to collaborators on the invoices of the representatives
# they introduced. One CommissionRecord per invoice line item.
# ==============================================================================

import logging

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.models import Invoice, Collaborator, CommissionRecord, REVENUE_TYPE_BY_SERVICE
from app.billing.errors import CommissionError, NotFoundError
from app.billing.money import money


def effective_rate(representative, collaborator, revenue_type):
    """The representative's override rate for the revenue type, else the collaborator's default."""
    override = representative.override_rate(revenue_type)
    if override is not None:
        return override
    return collaborator.commission_percentage


class CommissionEngine:

    def __init__(self, session):
        self.session = session

    def _credit(self, collaborator_id, amount):
        # In-database increment; concurrent payouts never see a lost update
        self.session.execute(
            update(Collaborator)
            .where(Collaborator.id == collaborator_id)
            .values(current_accumulated_earnings=Collaborator.current_accumulated_earnings + amount,
                    total_earnings_to_date=Collaborator.total_earnings_to_date + amount)
            .execution_options(synchronize_session=False)
        )

    def calculate(self, invoice_id):
        """
        Calculates and records the commission of one invoice, then commits.

        Re-running it for an invoice that already has commission records is a
        no-op that returns the existing records.

        Returns:
            list: The invoice's CommissionRecords (empty for direct representatives).
        """
        invoice = self.session.get(Invoice, invoice_id)
        if invoice is None:
            raise NotFoundError(f'فاکتور با شناسه {invoice_id} یافت نشد.')
        rep = invoice.representative
        if rep.sourcing_type != 'collaborator_introduced' or rep.collaborator_id is None:
            logging.debug(f"Invoice {invoice.invoice_number}: representative {rep.admin_username} has no collaborator")
            return []

        existing = CommissionRecord.query.filter_by(invoice_id=invoice.id).order_by(CommissionRecord.id).all()
        if existing:
            logging.info(f"Invoice {invoice.invoice_number}: commission already recorded ({len(existing)} records), skipping")
            return existing

        collaborator = rep.collaborator
        records = []
        try:
            for item in invoice.items:
                revenue_type = REVENUE_TYPE_BY_SERVICE[item.service_type]
                rate = effective_rate(rep, collaborator, revenue_type)
                amount = money(item.total_price * rate / 100)

                record = CommissionRecord(
                    collaborator_id=collaborator.id, representative_id=rep.id, invoice_id=invoice.id,
                    invoice_item_id=item.id, batch_id=invoice.batch_id, revenue_type=revenue_type,
                    base_revenue_amount=item.total_price, commission_rate=rate, commission_amount=amount)
                item.commission_rate = rate
                item.commission_amount = amount
                self.session.add(record)
                self._credit(collaborator.id, amount)
                records.append(record)
                logging.debug(f"  {invoice.invoice_number} item {item.id}: {item.total_price} x {rate}% = {amount} ({revenue_type})")
            self.session.commit()
        except IntegrityError as e:
            self.session.rollback()
            # A concurrent calculation won the race for these line items
            existing = CommissionRecord.query.filter_by(invoice_id=invoice_id).order_by(CommissionRecord.id).all()
            if existing:
                logging.info(f"Invoice {invoice_id}: commission recorded concurrently, keeping existing records")
                return existing
            raise CommissionError(f'ثبت کمیسیون فاکتور {invoice_id} ناموفق بود.', invoice_id=invoice_id) from e
        except SQLAlchemyError as e:
            self.session.rollback()
            raise CommissionError(f'ثبت کمیسیون فاکتور {invoice_id} ناموفق بود.', invoice_id=invoice_id) from e

        total = sum(r.commission_amount for r in records)
        logging.info(f"Invoice {invoice.invoice_number}: commission {total} credited to collaborator "
                     f"{collaborator.collaborator_code} ({len(records)} items)")
        return records

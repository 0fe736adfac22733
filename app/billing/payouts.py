# ==============================================================================
# app/billing/payouts.py
# ------------------------------------------------------------------------------
# Disbursements to collaborators. The balance check and the decrement are one
# conditional UPDATE, so a payout can never overdraw a concurrently credited
# or debited balance.
# ==============================================================================

import logging

from sqlalchemy import update, func

from app.models import Collaborator, CollaboratorPayout, CommissionRecord
from app.billing.errors import BillingError, InsufficientBalanceError, NotFoundError
from app.billing.money import money


class PayoutTracker:

    def __init__(self, session):
        self.session = session

    def _collaborator(self, collaborator_id):
        collaborator = self.session.get(Collaborator, collaborator_id)
        if collaborator is None:
            raise NotFoundError(f'همکار با شناسه {collaborator_id} یافت نشد.')
        return collaborator

    def record_payout(self, collaborator_id, amount, payment_method=None, admin_actor=None, notes=None):
        """
        Pays a collaborator out of their accumulated earnings.

        Raises:
            InsufficientBalanceError: The amount exceeds the current balance;
                nothing was changed.
        """
        amount = money(amount)
        if amount <= 0:
            raise BillingError('مبلغ پرداخت باید بزرگتر از صفر باشد.')
        collaborator = self._collaborator(collaborator_id)

        result = self.session.execute(
            update(Collaborator)
            .where(Collaborator.id == collaborator_id)
            .where(func.round(Collaborator.current_accumulated_earnings, 2) >= amount)
            .values(current_accumulated_earnings=Collaborator.current_accumulated_earnings - amount,
                    total_payouts_to_date=Collaborator.total_payouts_to_date + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.rollback()
            available = self.session.get(Collaborator, collaborator_id).current_accumulated_earnings
            logging.warning(f"Payout of {amount} to collaborator {collaborator.collaborator_code} rejected: "
                            f"balance {available}")
            raise InsufficientBalanceError(
                f'مبلغ درخواستی ({amount}) از موجودی همکار ({available}) بیشتر است.',
                requested=amount, available=available)

        payout = CollaboratorPayout(collaborator_id=collaborator_id, payout_amount=amount,
                                    payment_method=payment_method, admin_actor=admin_actor, notes=notes)
        self.session.add(payout)
        self.session.commit()
        # The UPDATE bypassed the identity map
        self.session.refresh(collaborator)
        logging.info(f"Payout {payout.id}: {amount} to collaborator {collaborator.collaborator_code}, "
                     f"remaining balance {collaborator.current_accumulated_earnings}")
        return payout

    def collaborator_statement(self, collaborator_id):
        """Balances, payouts and commission records of one collaborator."""
        collaborator = self._collaborator(collaborator_id)
        self.session.refresh(collaborator)
        payouts = (CollaboratorPayout.query.filter_by(collaborator_id=collaborator.id)
                   .order_by(CollaboratorPayout.id).all())
        records = (CommissionRecord.query.filter_by(collaborator_id=collaborator.id)
                   .order_by(CommissionRecord.id).all())
        return {
            'collaborator': collaborator,
            'current_accumulated_earnings': collaborator.current_accumulated_earnings,
            'total_earnings_to_date': collaborator.total_earnings_to_date,
            'total_payouts_to_date': collaborator.total_payouts_to_date,
            'payouts': payouts,
            'commission_records': records,
        }

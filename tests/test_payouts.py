# tests/test_payouts.py

from decimal import Decimal

import pytest

from app import db
from app.billing.errors import BillingError, InsufficientBalanceError
from app.models import CollaboratorPayout


@pytest.fixture
def earning_collaborator(services, make_activity, introduced_rep):
    """Collaborator with 900 of commission earned on a 9000 invoice."""
    rep, collaborator = introduced_rep
    services.builder.create_invoice(rep, make_activity(limited={1: 10}))
    db.session.refresh(collaborator)
    assert collaborator.current_accumulated_earnings == Decimal('900')
    return collaborator


def test_payout_above_balance_is_rejected(services, earning_collaborator):
    with pytest.raises(InsufficientBalanceError) as excinfo:
        services.payouts.record_payout(earning_collaborator.id, Decimal('1000'))

    assert excinfo.value.requested == Decimal('1000')
    assert excinfo.value.available == Decimal('900')
    db.session.refresh(earning_collaborator)
    assert earning_collaborator.current_accumulated_earnings == Decimal('900')
    assert earning_collaborator.total_payouts_to_date == Decimal('0')
    assert CollaboratorPayout.query.count() == 0


def test_payout_decrements_balance(services, earning_collaborator):
    payout = services.payouts.record_payout(earning_collaborator.id, Decimal('400'),
                                            payment_method='card', admin_actor='admin')

    assert payout.payout_amount == Decimal('400')
    db.session.refresh(earning_collaborator)
    assert earning_collaborator.current_accumulated_earnings == Decimal('500')
    assert earning_collaborator.total_payouts_to_date == Decimal('400')
    assert earning_collaborator.total_earnings_to_date == Decimal('900')


def test_whole_balance_can_be_paid_out(services, earning_collaborator):
    services.payouts.record_payout(earning_collaborator.id, Decimal('900'))
    db.session.refresh(earning_collaborator)
    assert earning_collaborator.current_accumulated_earnings == Decimal('0')

    with pytest.raises(InsufficientBalanceError):
        services.payouts.record_payout(earning_collaborator.id, Decimal('0.01'))


@pytest.mark.parametrize("amount", ['0', '-10'])
def test_non_positive_payout(services, earning_collaborator, amount):
    with pytest.raises(BillingError):
        services.payouts.record_payout(earning_collaborator.id, Decimal(amount))


def test_collaborator_statement(services, earning_collaborator):
    services.payouts.record_payout(earning_collaborator.id, Decimal('300'))
    statement = services.payouts.collaborator_statement(earning_collaborator.id)

    assert statement['current_accumulated_earnings'] == Decimal('600')
    assert statement['total_earnings_to_date'] - statement['total_payouts_to_date'] \
        == statement['current_accumulated_earnings']
    assert len(statement['payouts']) == 1
    assert len(statement['commission_records']) == 1

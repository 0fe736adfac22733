# tests/test_invoices.py

from datetime import timedelta
from decimal import Decimal

import pytest

from app import db
from app.billing import build_services
from app.billing.errors import InvoiceIntegrityError, InvalidStatusTransitionError
from app.models import Invoice, InvoiceItem, LedgerEntry, utcnow


class FixedNumbers:
    """Always hands out the same invoice number."""

    def next_number(self):
        return 'INV-2025-000001'


def test_single_limited_bucket_invoice(services, make_activity):
    rep = services.registry.create_representative('shopA')
    invoice = services.builder.create_invoice(rep, make_activity(limited={1: 10}))

    assert invoice.status == 'pending'
    assert invoice.total_amount == Decimal('9000')
    assert len(invoice.items) == 1
    item = invoice.items[0]
    assert (item.service_type, item.duration_months) == ('limited', 1)
    assert item.quantity == Decimal('10')
    assert item.unit_price == Decimal('900')
    assert item.total_price == Decimal('9000')
    assert item.description == 'اشتراک ۱ ماهه حجمی (۱۰ گیگابایت)'


def test_total_matches_items_for_mixed_activity(services, make_activity):
    rep = services.registry.create_representative('shopA')
    invoice = services.builder.create_invoice(
        rep, make_activity(limited={1: '2.5', 4: 7}, unlimited={2: 3, 6: 1}))

    # 2.5*900 + 7*1400 + 3*80000 + 1*240000
    assert invoice.total_amount == Decimal('492050')
    assert len(invoice.items) == 4
    for stored in Invoice.query.all():
        assert stored.total_amount == stored.items_total()


def test_due_date_and_ledger_debit(services, make_activity):
    rep = services.registry.create_representative('shopA')
    invoice = services.builder.create_invoice(rep, make_activity(unlimited={1: 1}))

    assert invoice.due_date - invoice.created_at == timedelta(days=30)
    entries = services.ledger.get_ledger(rep.id)
    assert len(entries) == 1
    assert entries[0].transaction_type == 'invoice'
    assert entries[0].reference_number == invoice.invoice_number
    assert services.ledger.get_balance(rep.id) == Decimal('40000')


def test_zero_activity_creates_no_invoice(services, make_activity):
    rep = services.registry.create_representative('shopA')
    assert services.builder.create_invoice(rep, make_activity()) is None
    assert Invoice.query.count() == 0
    assert LedgerEntry.query.count() == 0


def test_price_change_does_not_touch_existing_invoice(services, make_activity):
    rep = services.registry.create_representative('shopA')
    invoice = services.builder.create_invoice(rep, make_activity(limited={1: 10}))

    services.registry.set_prices(rep.id, 'limited', [1000, 1000, 1000, 1500, 1600, 1700])
    db.session.expire_all()

    item = InvoiceItem.query.filter_by(invoice_id=invoice.id).one()
    assert item.unit_price == Decimal('900')
    assert item.total_price == Decimal('9000')
    assert db.session.get(Invoice, invoice.id).total_amount == Decimal('9000')

    second = services.builder.create_invoice(rep, make_activity(limited={1: 10}))
    assert second.total_amount == Decimal('10000')


def test_invoice_number_collision_rolls_back_whole_invoice(app, make_activity):
    services = build_services(db.session, number_generator=FixedNumbers())
    rep = services.registry.create_representative('shopA')
    services.builder.create_invoice(rep, make_activity(limited={1: 10}))

    with pytest.raises(InvoiceIntegrityError) as excinfo:
        services.builder.create_invoice(rep, make_activity(limited={2: 5}))

    assert excinfo.value.representative_id == rep.id
    assert Invoice.query.count() == 1
    assert InvoiceItem.query.count() == 1
    assert LedgerEntry.query.count() == 1
    assert services.ledger.get_balance(rep.id) == Decimal('9000')


def test_commission_failure_keeps_invoice(services, make_activity, introduced_rep, monkeypatch):
    rep, _ = introduced_rep

    def boom(invoice_id):
        raise RuntimeError('commission store unavailable')
    monkeypatch.setattr(services.commission, 'calculate', boom)

    invoice = services.builder.create_invoice(rep, make_activity(limited={1: 10}))
    assert invoice is not None
    assert Invoice.query.filter_by(invoice_number=invoice.invoice_number).count() == 1


def test_invoices_get_distinct_numbers(services, make_activity):
    rep = services.registry.create_representative('shopA')
    numbers = {services.builder.create_invoice(rep, make_activity(limited={1: 1})).invoice_number
               for _ in range(5)}
    assert len(numbers) == 5


def test_status_transitions(services, make_activity):
    rep = services.registry.create_representative('shopA')
    invoice = services.builder.create_invoice(rep, make_activity(limited={1: 10}))

    services.invoices.set_status(invoice.id, 'cancelled')
    assert invoice.status == 'cancelled'
    with pytest.raises(InvalidStatusTransitionError):
        services.invoices.set_status(invoice.id, 'paid')


def test_marking_paid_settles_outstanding_amount(services, make_activity):
    rep = services.registry.create_representative('shopA')
    invoice = services.builder.create_invoice(rep, make_activity(limited={1: 10}))

    services.invoices.set_status(invoice.id, 'paid', payment_method='card')
    assert invoice.status == 'paid'
    assert invoice.paid_date is not None
    assert services.ledger.get_balance(rep.id) == Decimal('0')
    assert services.ledger.verify(rep.id) is None


def test_mark_overdue(services, make_activity):
    rep = services.registry.create_representative('shopA')
    first = services.builder.create_invoice(rep, make_activity(limited={1: 1}))
    second = services.builder.create_invoice(rep, make_activity(limited={1: 2}))
    services.invoices.set_status(second.id, 'cancelled')

    assert services.invoices.mark_overdue() == 0
    assert services.invoices.mark_overdue(now=utcnow() + timedelta(days=31)) == 1
    assert services.invoices.get(first.id).status == 'overdue'
    assert services.invoices.get(second.id).status == 'cancelled'


def test_mark_shared_and_read_model(services, make_activity):
    rep = services.registry.create_representative('shopA')
    invoice = services.builder.create_invoice(rep, make_activity(limited={1: 10}, unlimited={3: 1}))

    services.invoices.mark_shared(invoice.id)
    assert invoice.telegram_sent and invoice.sent_to_representative

    data = services.invoices.get_by_number(invoice.invoice_number).to_dict()
    assert data['total_amount'] == '129000.00'
    assert [(i['service_type'], i['duration_months']) for i in data['items']] == [('limited', 1), ('unlimited', 3)]


def test_unstorable_quantity_is_an_integrity_error(services, make_activity):
    rep = services.registry.create_representative('shopA')
    with pytest.raises(InvoiceIntegrityError):
        services.builder.create_invoice(rep, make_activity(limited={1: '1e30'}))
    assert Invoice.query.count() == 0
    assert LedgerEntry.query.count() == 0

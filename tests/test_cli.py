# tests/test_cli.py

import json
from decimal import Decimal

from app import db
from app.models import AppSetting, Collaborator, CollaboratorPayout, Invoice, LedgerEntry


def test_seed_is_idempotent(app):
    runner = app.test_cli_runner()
    assert runner.invoke(args=['seed']).exit_code == 0
    assert runner.invoke(args=['seed']).exit_code == 0
    keys = {s.key for s in AppSetting.query.all()}
    assert keys == {'DEFAULT_LIMITED_PRICES', 'DEFAULT_UNLIMITED_PRICES',
                    'DEFAULT_COMMISSION_PERCENTAGE', 'INVOICE_DUE_DAYS'}


def test_import_invoices_command(app, tmp_path, make_row):
    path = tmp_path / 'usage.json'
    path.write_text(json.dumps([make_row('shopA', limited_1_month_volume='10'), make_row('shopB')]),
                    encoding='utf-8')
    result = app.test_cli_runner().invoke(args=['import-invoices', str(path), '--batch-name', 'batch-1'])

    assert result.exit_code == 0, result.output
    assert 'فاکتورهای صادر شده: 1' in result.output
    assert Invoice.query.count() == 1


def test_import_invoices_rejects_bad_file(app, tmp_path):
    path = tmp_path / 'usage.json'
    path.write_text('{"not": "a list"}', encoding='utf-8')
    result = app.test_cli_runner().invoke(args=['import-invoices', str(path)])
    assert result.exit_code != 0
    assert Invoice.query.count() == 0


def test_recalc_commission_command(app, services, make_activity, introduced_rep):
    rep, _ = introduced_rep
    invoice = services.builder.create_invoice(rep, make_activity(limited={1: 10}))
    runner = app.test_cli_runner()

    result = runner.invoke(args=['recalc-commission', invoice.invoice_number])
    assert result.exit_code == 0, result.output
    assert '1 رکورد کمیسیون' in result.output

    assert runner.invoke(args=['recalc-commission', 'INV-1999-000000']).exit_code != 0


def test_payout_command(app, services, make_activity, introduced_rep):
    rep, collaborator = introduced_rep
    services.builder.create_invoice(rep, make_activity(limited={1: 10}))
    runner = app.test_cli_runner()

    rejected = runner.invoke(args=['payout', 'C-100', '1000'])
    assert rejected.exit_code != 0
    assert CollaboratorPayout.query.count() == 0

    accepted = runner.invoke(args=['payout', 'C-100', '250', '--method', 'card'])
    assert accepted.exit_code == 0, accepted.output
    payout = CollaboratorPayout.query.one()
    assert payout.payment_method == 'card'
    db.session.expire_all()
    assert db.session.get(Collaborator, collaborator.id).current_accumulated_earnings == Decimal('650')


def test_verify_ledgers_command(app, services, make_activity):
    rep = services.registry.create_representative('shopA')
    services.builder.create_invoice(rep, make_activity(limited={1: 10}))
    services.builder.create_invoice(rep, make_activity(limited={1: 1}))
    runner = app.test_cli_runner()

    assert runner.invoke(args=['verify-ledgers']).exit_code == 0

    entry = LedgerEntry.query.order_by(LedgerEntry.id.desc()).first()
    entry.running_balance = Decimal('1')
    db.session.commit()
    assert runner.invoke(args=['verify-ledgers']).exit_code == 1


def test_mark_overdue_command(app):
    result = app.test_cli_runner().invoke(args=['mark-overdue'])
    assert result.exit_code == 0
    assert '0 فاکتور' in result.output

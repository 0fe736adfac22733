# ==============================================================================
# app/cli.py
# ------------------------------------------------------------------------------
# Flask CLI commands: the operator's entry points into the billing core.
# Each command is one unit of work with its own service graph.
# ==============================================================================

import os
import sys
from decimal import Decimal, InvalidOperation

import click

from app import db
from app.billing import build_services
from app.billing.errors import BillingError
from app.billing.money import format_toman
from app.models import Representative


def register_commands(app):
    """Attaches the billing commands to the application's CLI group."""

    @app.cli.command("seed")
    def seed():
        """Seeds the database with default business settings."""
        from app.seed import seed_data
        seed_data()
        app.logger.info("Database has been seeded with default values.")

    @app.cli.command("import-invoices")
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    @click.option("--batch-name", default=None, help="Name of the invoice batch.")
    def import_invoices(path, batch_name):
        """Creates invoices from a JSON, XLSX or ODS usage export."""
        extension = os.path.splitext(path)[1].lower()
        if extension not in app.config["ALLOWED_EXTENSIONS"]:
            raise click.BadParameter(f"نوع فایل '{extension}' مجاز نیست.", param_hint="PATH")
        services = build_services(db.session)
        try:
            result = services.importer.import_file(path, batch_name=batch_name)
        except BillingError as e:
            raise click.ClickException(str(e))
        click.echo(f"ردیف‌های پردازش شده: {result['records_processed']}")
        click.echo(f"ردیف‌های رد شده: {result['records_skipped']}")
        click.echo(f"فاکتورهای صادر شده: {len(result['invoices'])}")
        click.echo(f"مبلغ کل دسته: {format_toman(result['batch'].total_amount)} تومان")
        for failure in result['failures']:
            click.echo(f"خطا در ردیف {failure['row_number']} ({failure['admin_username']}): {failure['error']}", err=True)

    @app.cli.command("recalc-commission")
    @click.argument("invoice_number")
    def recalc_commission(invoice_number):
        """Calculates the commission of one invoice if it has none yet."""
        services = build_services(db.session)
        try:
            invoice = services.invoices.get_by_number(invoice_number)
            records = services.commission.calculate(invoice.id)
        except BillingError as e:
            raise click.ClickException(str(e))
        total = sum((r.commission_amount for r in records), Decimal('0'))
        click.echo(f"فاکتور {invoice.invoice_number}: {len(records)} رکورد کمیسیون، مجموع {format_toman(total)} تومان")

    @app.cli.command("payout")
    @click.argument("collaborator_code")
    @click.argument("amount")
    @click.option("--method", "payment_method", default=None, help="Payment method, e.g. card-to-card.")
    def payout(collaborator_code, amount, payment_method):
        """Records a payout to a collaborator."""
        try:
            amount = Decimal(amount)
        except InvalidOperation:
            raise click.BadParameter(f"'{amount}' عدد معتبر نیست.", param_hint="AMOUNT")
        services = build_services(db.session)
        try:
            collaborator = services.registry.get_collaborator_by_code(collaborator_code)
            services.payouts.record_payout(collaborator.id, amount, payment_method=payment_method, admin_actor='cli')
        except BillingError as e:
            raise click.ClickException(str(e))
        click.echo(f"پرداخت {format_toman(amount)} تومان به {collaborator.collaborator_name} ثبت شد. "
                   f"موجودی: {format_toman(collaborator.current_accumulated_earnings)} تومان")

    @app.cli.command("mark-overdue")
    def mark_overdue():
        """Moves pending invoices past their due date to 'overdue'."""
        services = build_services(db.session)
        count = services.invoices.mark_overdue()
        click.echo(f"{count} فاکتور سررسید گذشته شد.")

    @app.cli.command("verify-ledgers")
    def verify_ledgers():
        """Replays every representative's ledger; exits non-zero on a mismatch."""
        services = build_services(db.session)
        mismatches = 0
        for rep in Representative.query.order_by(Representative.id).all():
            entry = services.ledger.verify(rep.id)
            if entry is not None:
                mismatches += 1
                click.echo(f"ناهمخوانی در دفتر '{rep.admin_username}' از ردیف {entry.id}", err=True)
        if mismatches:
            sys.exit(1)
        click.echo("همه دفاتر مالی سازگار هستند.")

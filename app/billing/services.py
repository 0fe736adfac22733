# ==============================================================================
# app/billing/services.py
# ------------------------------------------------------------------------------
# Builds the billing service graph for one unit of work (a CLI command, a
# test). Nothing here is cached between units of work except the invoice
# number generator, which the caller passes in.
# ==============================================================================

from flask import current_app, has_app_context

from app.billing.commission import CommissionEngine
from app.billing.importer import BulkImporter
from app.billing.invoices import InvoiceBuilder, InvoiceRegister
from app.billing.ledger import FinancialLedger
from app.billing.numbering import InvoiceNumberGenerator
from app.billing.payments import PaymentRecorder
from app.billing.payouts import PayoutTracker
from app.billing.registry import RepresentativeRegistry
from app.billing.settings import BillingConfig


class BillingServices:
    """Container for the services sharing one session and one configuration."""

    def __init__(self, session, config, number_generator):
        self.session = session
        self.config = config
        self.registry = RepresentativeRegistry(session, config)
        self.ledger = FinancialLedger(session)
        self.commission = CommissionEngine(session)
        self.builder = InvoiceBuilder(session, self.ledger, self.commission, number_generator, config)
        self.payments = PaymentRecorder(session, self.ledger)
        self.invoices = InvoiceRegister(session, self.payments)
        self.payouts = PayoutTracker(session)
        self.importer = BulkImporter(session, self.registry, self.builder)

    def representative_statement(self, representative_id):
        """Ledger entries and current balance of one representative."""
        rep = self.registry.get(representative_id)
        return {
            'representative': rep,
            'balance': self.ledger.get_balance(rep.id),
            'entries': self.ledger.get_ledger(rep.id),
            'invoices': self.invoices.for_representative(rep.id),
            'payments': self.payments.for_representative(rep.id),
        }


def build_services(session, config=None, number_generator=None):
    """
    Args:
        session: The SQLAlchemy session of this unit of work.
        config (BillingConfig): Business rules; loaded from AppSetting if omitted.
        number_generator (InvoiceNumberGenerator): Defaults to the application's.
    """
    if config is None:
        config = BillingConfig.load()
    if number_generator is None:
        if has_app_context() and 'invoice_numbers' in current_app.extensions:
            number_generator = current_app.extensions['invoice_numbers']
        else:
            number_generator = InvoiceNumberGenerator()
    return BillingServices(session, config, number_generator)

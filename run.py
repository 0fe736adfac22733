# ==============================================================================
# run.py
# ------------------------------------------------------------------------------
# Entry point for the Flask CLI (`flask --app run ...`) and the shell.
# ==============================================================================

from app import create_app, db
from app.billing import build_services
from app.models import (AppSetting, Representative, Collaborator, Invoice, InvoiceBatch,
                        CommissionRecord, CollaboratorPayout, LedgerEntry, Payment)

# Create the Flask application instance using the factory function
app = create_app()

@app.shell_context_processor
def make_shell_context():
    """Provides a shell context for the `flask shell` command."""
    return {
        'db': db,
        'services': build_services(db.session),
        'AppSetting': AppSetting,
        'Representative': Representative,
        'Collaborator': Collaborator,
        'Invoice': Invoice,
        'InvoiceBatch': InvoiceBatch,
        'CommissionRecord': CommissionRecord,
        'CollaboratorPayout': CollaboratorPayout,
        'LedgerEntry': LedgerEntry,
        'Payment': Payment,
    }

# ==============================================================================
# app/billing/errors.py
# ------------------------------------------------------------------------------
# Typed failures of the billing core. Messages are shown to operators and are
# therefore Persian; the attributes carry the context needed for logging.
# ==============================================================================


class BillingError(Exception):
    """Base class for every failure raised by the billing core."""


class NotFoundError(BillingError):
    pass


class UnparseableFileError(BillingError):
    """The uploaded file cannot be read as any supported import format."""


class InvoiceIntegrityError(BillingError):
    """An invoice could not be written consistently; nothing was committed for it."""

    def __init__(self, message, representative_id=None, activity=None):
        super().__init__(message)
        self.representative_id = representative_id
        self.activity = activity


class CommissionError(BillingError):
    def __init__(self, message, invoice_id=None):
        super().__init__(message)
        self.invoice_id = invoice_id


class InsufficientBalanceError(BillingError):
    def __init__(self, message, requested=None, available=None):
        super().__init__(message)
        self.requested = requested
        self.available = available


class DeletionConflictError(BillingError):
    """A record cannot be deleted while financial records still reference it."""


class InvalidStatusTransitionError(BillingError):
    pass


class LedgerError(BillingError):
    pass


class QuantityRangeError(BillingError):
    """A usage quantity is larger than any stored quantity can be."""

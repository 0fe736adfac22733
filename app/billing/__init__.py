# ==============================================================================
# app/billing/__init__.py
# ------------------------------------------------------------------------------
# Pricing, invoicing, commission, payout and ledger core of MarFanet.
# ==============================================================================

from app.billing.services import BillingServices, build_services

__all__ = ['BillingServices', 'build_services']

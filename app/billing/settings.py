# ==============================================================================
# app/billing/settings.py
# ------------------------------------------------------------------------------
# Loads the administrator-editable business rules from the AppSetting table.
# ==============================================================================

import logging
from decimal import Decimal

from flask import current_app, has_app_context

from app.models import AppSetting
from app.billing import schema


class BillingConfig:
    """
    Holds the business rules used by the billing services. Built explicitly
    for each unit of work, so an edited setting takes effect on the next one.
    """

    def __init__(self, limited_prices=None, unlimited_prices=None,
                 default_commission_percentage=None, invoice_due_days=None):
        self.DEFAULT_LIMITED_PRICES = _price_list(limited_prices, schema.DEFAULT_LIMITED_PRICES)
        self.DEFAULT_UNLIMITED_PRICES = _price_list(unlimited_prices, schema.DEFAULT_UNLIMITED_PRICES)
        self.DEFAULT_COMMISSION_PERCENTAGE = Decimal(str(
            default_commission_percentage if default_commission_percentage is not None
            else schema.DEFAULT_COMMISSION_PERCENTAGE))
        self.INVOICE_DUE_DAYS = int(invoice_due_days if invoice_due_days is not None
                                    else schema.DEFAULT_INVOICE_DUE_DAYS)

    @classmethod
    def load(cls):
        """Reads every setting from the database, falling back to built-in defaults."""
        settings_dict = {s.key: s.get_value() for s in AppSetting.query.all()}
        due_days = settings_dict.get('INVOICE_DUE_DAYS')
        if due_days is None and has_app_context():
            due_days = current_app.config.get('INVOICE_DUE_DAYS')
        config = cls(
            limited_prices=settings_dict.get('DEFAULT_LIMITED_PRICES'),
            unlimited_prices=settings_dict.get('DEFAULT_UNLIMITED_PRICES'),
            default_commission_percentage=settings_dict.get('DEFAULT_COMMISSION_PERCENTAGE'),
            invoice_due_days=due_days,
        )
        logging.debug(f"BillingConfig loaded: limited={config.DEFAULT_LIMITED_PRICES}, "
                      f"unlimited={config.DEFAULT_UNLIMITED_PRICES}, due_days={config.INVOICE_DUE_DAYS}")
        return config


def _price_list(values, default):
    if values is None:
        return tuple(default)
    prices = tuple(Decimal(str(v)) for v in values)
    if len(prices) != len(schema.DURATIONS):
        raise ValueError(f"A price schedule needs {len(schema.DURATIONS)} prices, got {len(prices)}")
    return prices

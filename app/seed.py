# ==============================================================================
# app/seed.py
# ------------------------------------------------------------------------------
# Default values of the administrator-editable business settings.
# ==============================================================================

import json
import logging

from app import db
from app.models import AppSetting
from app.billing import schema

DEFAULT_SETTINGS = {
    # key: [value, description, value_type]
    'DEFAULT_LIMITED_PRICES': [json.dumps([str(p) for p in schema.DEFAULT_LIMITED_PRICES]),
                               'قیمت پیش‌فرض هر گیگابایت اشتراک حجمی ۱ تا ۶ ماهه (تومان) (فرمت JSON)', 'json'],
    'DEFAULT_UNLIMITED_PRICES': [json.dumps([str(p) for p in schema.DEFAULT_UNLIMITED_PRICES]),
                                 'قیمت پیش‌فرض اشتراک نامحدود ۱ تا ۶ ماهه (تومان) (فرمت JSON)', 'json'],
    'DEFAULT_COMMISSION_PERCENTAGE': [str(schema.DEFAULT_COMMISSION_PERCENTAGE),
                                      'درصد کمیسیون پیش‌فرض همکاران جدید', 'decimal'],
    'INVOICE_DUE_DAYS': [str(schema.DEFAULT_INVOICE_DUE_DAYS), 'مهلت پرداخت فاکتور (روز)', 'int'],
}


def seed_data():
    """Populates the database with default settings. Existing keys are left as they are."""
    for key, data in DEFAULT_SETTINGS.items():
        setting = AppSetting.query.filter_by(key=key).first()
        if not setting:  # Only add if it doesn't exist
            setting = AppSetting(key=key, value=data[0], description=data[1], value_type=data[2])
            db.session.add(setting)
            logging.info(f'Seeding setting: {key}')

    db.session.commit()
    logging.info('Seeding complete.')

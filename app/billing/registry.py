# ==============================================================================
# app/billing/registry.py
# ------------------------------------------------------------------------------
# Representative and collaborator administration: creation (including the
# on-demand creation used by imports), price schedules, collaborator links,
# status changes and conflict-checked deletion.
# ==============================================================================

import logging
from decimal import Decimal, InvalidOperation

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from app.models import (Representative, RepresentativePrice, Collaborator, Invoice, CommissionRecord,
                        CollaboratorPayout, LedgerEntry, Payment, SERVICE_LIMITED, SERVICE_UNLIMITED)
from app.billing import schema
from app.billing.errors import BillingError, DeletionConflictError, NotFoundError

REPRESENTATIVE_STATUSES = ('active', 'inactive', 'suspended')
SOURCING_TYPES = ('direct', 'collaborator_introduced')
EDITABLE_REPRESENTATIVE_FIELDS = ('full_name', 'telegram_id', 'phone_number', 'store_name')
EDITABLE_COLLABORATOR_FIELDS = ('collaborator_name', 'phone_number', 'telegram_id', 'email',
                                'bank_account_details', 'status')


def _rate(value):
    """Validates a commission percentage; None stays None."""
    if value is None:
        return None
    try:
        rate = Decimal(str(value))
    except InvalidOperation:
        raise BillingError(f"نرخ کمیسیون '{value}' عدد معتبر نیست.")
    if rate < 0 or rate > 100:
        raise BillingError('نرخ کمیسیون باید بین ۰ تا ۱۰۰ درصد باشد.')
    return rate


def _prices(values):
    try:
        prices = [Decimal(str(v)) for v in values]
    except InvalidOperation:
        raise BillingError('قیمت‌های وارد شده باید عدد باشند.')
    if len(prices) != len(schema.DURATIONS):
        raise BillingError(f'جدول قیمت باید دقیقاً {len(schema.DURATIONS)} قیمت داشته باشد.')
    if any(p < 0 for p in prices):
        raise BillingError('قیمت نمی‌تواند منفی باشد.')
    return prices


class RepresentativeRegistry:
    """Read/write access to representatives and collaborators."""

    def __init__(self, session, config):
        self.session = session
        self.config = config

    # --- Representatives ---

    def get(self, representative_id):
        rep = self.session.get(Representative, representative_id)
        if rep is None:
            raise NotFoundError(f'نماینده با شناسه {representative_id} یافت نشد.')
        return rep

    def get_by_username(self, admin_username):
        return Representative.query.filter_by(admin_username=admin_username.strip()).first()

    def search(self, query):
        pattern = f'%{query.strip()}%'
        return (Representative.query
                .filter(or_(Representative.admin_username.ilike(pattern),
                            Representative.full_name.ilike(pattern),
                            Representative.store_name.ilike(pattern)))
                .order_by(Representative.admin_username)
                .all())

    def _new_representative(self, admin_username, full_name=None, telegram_id=None, phone_number=None,
                            store_name=None, limited_prices=None, unlimited_prices=None):
        rep = Representative(admin_username=admin_username, full_name=full_name or admin_username,
                             telegram_id=telegram_id, phone_number=phone_number, store_name=store_name)
        limited = _prices(limited_prices) if limited_prices is not None else self.config.DEFAULT_LIMITED_PRICES
        unlimited = _prices(unlimited_prices) if unlimited_prices is not None else self.config.DEFAULT_UNLIMITED_PRICES
        for service_type, schedule in ((SERVICE_LIMITED, limited), (SERVICE_UNLIMITED, unlimited)):
            for months, price in zip(schema.DURATIONS, schedule):
                rep.prices.append(RepresentativePrice(service_type=service_type, duration_months=months,
                                                      unit_price=price))
        return rep

    def create_representative(self, admin_username, **details):
        """Creates a representative; prices not given follow the default schedule."""
        admin_username = (admin_username or '').strip()
        if not admin_username:
            raise BillingError('نام کاربری ادمین الزامی است.')
        rep = self._new_representative(admin_username, **details)
        self.session.add(rep)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise BillingError(f"نام کاربری ادمین '{admin_username}' قبلاً استفاده شده است.")
        logging.info(f"Representative created: {admin_username} (id={rep.id})")
        return rep

    def get_or_create(self, admin_username, **details):
        """
        Returns (representative, created). Safe against a concurrent creation of
        the same username: the unique constraint decides, the loser re-reads.
        """
        admin_username = admin_username.strip()
        rep = self.get_by_username(admin_username)
        if rep is not None:
            return rep, False
        rep = self._new_representative(admin_username, **details)
        self.session.add(rep)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            rep = self.get_by_username(admin_username)
            if rep is None:
                raise
            return rep, False
        logging.info(f"Representative '{admin_username}' created on demand with default pricing (id={rep.id})")
        return rep, True

    def update_representative(self, representative_id, **fields):
        rep = self.get(representative_id)
        for key, value in fields.items():
            if key not in EDITABLE_REPRESENTATIVE_FIELDS:
                raise BillingError(f"فیلد '{key}' قابل ویرایش نیست.")
            setattr(rep, key, value)
        self.session.commit()
        return rep

    def set_prices(self, representative_id, service_type, prices):
        """
        Replaces one service type's six unit prices. Existing invoice items keep
        the prices they were created with.
        """
        if service_type not in (SERVICE_LIMITED, SERVICE_UNLIMITED):
            raise BillingError(f"نوع سرویس '{service_type}' نامعتبر است.")
        prices = _prices(prices)
        rep = self.get(representative_id)
        by_months = {p.duration_months: p for p in rep.prices if p.service_type == service_type}
        for months, price in zip(schema.DURATIONS, prices):
            if months in by_months:
                by_months[months].unit_price = price
            else:
                rep.prices.append(RepresentativePrice(service_type=service_type, duration_months=months,
                                                      unit_price=price))
        self.session.commit()
        logging.info(f"Price schedule '{service_type}' of representative {rep.admin_username} updated: {prices}")
        return rep

    def set_status(self, representative_id, status):
        if status not in REPRESENTATIVE_STATUSES:
            raise BillingError(f"وضعیت '{status}' نامعتبر است.")
        rep = self.get(representative_id)
        rep.status = status
        self.session.commit()
        return rep

    def link_collaborator(self, representative_id, collaborator_id, volume_rate=None, unlimited_rate=None):
        """Marks the representative as collaborator-introduced, with optional override rates."""
        volume_rate, unlimited_rate = _rate(volume_rate), _rate(unlimited_rate)
        rep = self.get(representative_id)
        collaborator = self.get_collaborator(collaborator_id)
        rep.sourcing_type = 'collaborator_introduced'
        rep.collaborator_id = collaborator.id
        rep.volume_commission_rate = volume_rate
        rep.unlimited_commission_rate = unlimited_rate
        self.session.commit()
        logging.info(f"Representative {rep.admin_username} linked to collaborator {collaborator.collaborator_code}")
        return rep

    def unlink_collaborator(self, representative_id):
        rep = self.get(representative_id)
        rep.sourcing_type = 'direct'
        rep.collaborator_id = None
        rep.volume_commission_rate = None
        rep.unlimited_commission_rate = None
        self.session.commit()
        return rep

    def delete_representative(self, representative_id):
        """Deletes a representative that has no financial history."""
        rep = self.get(representative_id)
        dependents = {
            'فاکتور': Invoice.query.filter_by(representative_id=rep.id).count(),
            'رکورد کمیسیون': CommissionRecord.query.filter_by(representative_id=rep.id).count(),
            'پرداخت': Payment.query.filter_by(representative_id=rep.id).count(),
            'ردیف دفتر مالی': LedgerEntry.query.filter_by(representative_id=rep.id).count(),
        }
        blocking = {label: count for label, count in dependents.items() if count}
        if blocking:
            details = '، '.join(f'{count} {label}' for label, count in blocking.items())
            raise DeletionConflictError(f"نماینده '{rep.admin_username}' دارای سوابق مالی است ({details}) و قابل حذف نیست.")
        self.session.delete(rep)
        self.session.commit()
        logging.info(f"Representative {rep.admin_username} deleted")

    # --- Collaborators ---

    def get_collaborator(self, collaborator_id):
        collaborator = self.session.get(Collaborator, collaborator_id)
        if collaborator is None:
            raise NotFoundError(f'همکار با شناسه {collaborator_id} یافت نشد.')
        return collaborator

    def get_collaborator_by_code(self, code):
        collaborator = Collaborator.query.filter_by(collaborator_code=code).first()
        if collaborator is None:
            raise NotFoundError(f"همکار با کد '{code}' یافت نشد.")
        return collaborator

    def create_collaborator(self, collaborator_code, collaborator_name, commission_percentage=None, **contact):
        for key in contact:
            if key not in EDITABLE_COLLABORATOR_FIELDS:
                raise BillingError(f"فیلد '{key}' برای همکار تعریف نشده است.")
        percentage = _rate(commission_percentage)
        collaborator = Collaborator(
            collaborator_code=collaborator_code, collaborator_name=collaborator_name,
            commission_percentage=percentage if percentage is not None else self.config.DEFAULT_COMMISSION_PERCENTAGE,
            **contact)
        self.session.add(collaborator)
        try:
            self.session.commit()
        except IntegrityError:
            self.session.rollback()
            raise BillingError(f"کد همکار '{collaborator_code}' قبلاً استفاده شده است.")
        logging.info(f"Collaborator created: {collaborator_code} (id={collaborator.id})")
        return collaborator

    def update_collaborator(self, collaborator_id, **fields):
        collaborator = self.get_collaborator(collaborator_id)
        for key, value in fields.items():
            if key not in EDITABLE_COLLABORATOR_FIELDS:
                raise BillingError(f"فیلد '{key}' قابل ویرایش نیست.")
            setattr(collaborator, key, value)
        self.session.commit()
        return collaborator

    def set_commission_percentage(self, collaborator_id, percentage):
        collaborator = self.get_collaborator(collaborator_id)
        rate = _rate(percentage)
        if rate is None:
            raise BillingError('درصد کمیسیون الزامی است.')
        collaborator.commission_percentage = rate
        self.session.commit()
        return collaborator

    def delete_collaborator(self, collaborator_id):
        collaborator = self.get_collaborator(collaborator_id)
        dependents = {
            'نماینده': collaborator.representatives.count(),
            'رکورد کمیسیون': CommissionRecord.query.filter_by(collaborator_id=collaborator.id).count(),
            'پرداخت به همکار': CollaboratorPayout.query.filter_by(collaborator_id=collaborator.id).count(),
        }
        blocking = {label: count for label, count in dependents.items() if count}
        if blocking:
            details = '، '.join(f'{count} {label}' for label, count in blocking.items())
            raise DeletionConflictError(f"همکار '{collaborator.collaborator_code}' دارای سوابق است ({details}) و قابل حذف نیست.")
        self.session.delete(collaborator)
        self.session.commit()

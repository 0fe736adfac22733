# ==============================================================================
# app/models.py
# ------------------------------------------------------------------------------
# Defines the database schema using SQLAlchemy ORM models.
# Monetary columns are fixed-point Numeric and are handled as Decimal in Python.
# ==============================================================================

import json
from datetime import datetime, timezone
from decimal import Decimal

from app import db


def utcnow():
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


SERVICE_LIMITED = 'limited'
SERVICE_UNLIMITED = 'unlimited'

REVENUE_VOLUME = 'volume'
REVENUE_UNLIMITED = 'unlimited'

# limited line items earn volume commission, unlimited ones unlimited commission
REVENUE_TYPE_BY_SERVICE = {
    SERVICE_LIMITED: REVENUE_VOLUME,
    SERVICE_UNLIMITED: REVENUE_UNLIMITED,
}


class Representative(db.Model):
    """
    A reseller shop. `admin_username` is the natural key used by every import
    file; pricing lives in RepresentativePrice rows.
    """
    __tablename__ = 'representative'
    id = db.Column(db.Integer, primary_key=True)
    admin_username = db.Column(db.String(128), unique=True, nullable=False, index=True)
    full_name = db.Column(db.String(256), nullable=False)
    telegram_id = db.Column(db.String(128))
    phone_number = db.Column(db.String(64))
    store_name = db.Column(db.String(256))
    status = db.Column(db.String(16), nullable=False, default='active')  # active, inactive, suspended

    sourcing_type = db.Column(db.String(32), nullable=False, default='direct')  # direct, collaborator_introduced
    collaborator_id = db.Column(db.Integer, db.ForeignKey('collaborator.id'), nullable=True)
    # Override rates in percent; NULL means "use the collaborator's percentage"
    volume_commission_rate = db.Column(db.Numeric(5, 2), nullable=True)
    unlimited_commission_rate = db.Column(db.Numeric(5, 2), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    prices = db.relationship('RepresentativePrice', backref='representative', lazy='selectin',
                             cascade='all, delete-orphan')
    invoices = db.relationship('Invoice', backref='representative', lazy='dynamic')

    def __repr__(self):
        return f'<Representative {self.id}: {self.admin_username}>'

    def unit_price(self, service_type, duration_months):
        """Current unit price for one (service type, duration) bucket, or None."""
        for price in self.prices:
            if price.service_type == service_type and price.duration_months == duration_months:
                return price.unit_price
        return None

    def price_schedule(self, service_type):
        """The six unit prices of one service type, ordered by duration."""
        return [self.unit_price(service_type, months) for months in range(1, 7)]

    def override_rate(self, revenue_type):
        if revenue_type == REVENUE_VOLUME:
            return self.volume_commission_rate
        return self.unlimited_commission_rate


class RepresentativePrice(db.Model):
    """One cell of a representative's price table."""
    __tablename__ = 'representative_price'
    id = db.Column(db.Integer, primary_key=True)
    representative_id = db.Column(db.Integer, db.ForeignKey('representative.id'), nullable=False)
    service_type = db.Column(db.String(16), nullable=False)
    duration_months = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)

    __table_args__ = (
        db.UniqueConstraint('representative_id', 'service_type', 'duration_months', name='_rep_price_bucket_uc'),
        db.CheckConstraint('duration_months BETWEEN 1 AND 6', name='_rep_price_duration_ck'),
    )

    def __repr__(self):
        return f'<RepresentativePrice {self.service_type}/{self.duration_months}: {self.unit_price}>'


class InvoiceBatch(db.Model):
    """Groups the invoices created by one import."""
    __tablename__ = 'invoice_batch'
    id = db.Column(db.Integer, primary_key=True)
    batch_name = db.Column(db.String(256), nullable=False)
    file_name = db.Column(db.String(256), nullable=False)
    upload_date = db.Column(db.DateTime, default=utcnow)
    total_invoices = db.Column(db.Integer, nullable=False, default=0)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal('0'))
    processing_status = db.Column(db.String(16), nullable=False, default='pending')  # pending, completed, failed
    created_at = db.Column(db.DateTime, default=utcnow)

    invoices = db.relationship('Invoice', backref='batch', lazy='dynamic')

    def __repr__(self):
        return f'<InvoiceBatch {self.id}: {self.batch_name}>'

    def refresh_totals(self):
        """Recomputes the denormalized totals from the batch's invoices."""
        invoices = self.invoices.all()
        self.total_invoices = len(invoices)
        self.total_amount = sum((inv.total_amount for inv in invoices), Decimal('0'))


class Invoice(db.Model):
    """
    An invoice of record. Number, representative, items and total are
    immutable once committed; only status, paid date and share flags change.
    """
    __tablename__ = 'invoice'
    id = db.Column(db.Integer, primary_key=True)
    invoice_number = db.Column(db.String(32), unique=True, nullable=False, index=True)
    representative_id = db.Column(db.Integer, db.ForeignKey('representative.id'), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey('invoice_batch.id'), nullable=True, index=True)
    total_amount = db.Column(db.Numeric(14, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default='pending')  # pending, paid, overdue, cancelled
    due_date = db.Column(db.DateTime)
    paid_date = db.Column(db.DateTime)
    telegram_sent = db.Column(db.Boolean, nullable=False, default=False)
    sent_to_representative = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    items = db.relationship('InvoiceItem', backref='invoice', lazy='selectin',
                            cascade='all, delete-orphan', order_by='InvoiceItem.id')

    def __repr__(self):
        return f'<Invoice {self.invoice_number}: {self.total_amount}>'

    def items_total(self):
        return sum((item.total_price for item in self.items), Decimal('0'))

    def to_dict(self):
        """Invoice with its line-item breakdown, rebuilt from the item rows."""
        return {
            'id': self.id,
            'invoice_number': self.invoice_number,
            'representative_id': self.representative_id,
            'batch_id': self.batch_id,
            'status': self.status,
            'total_amount': str(self.total_amount),
            'due_date': self.due_date.isoformat() if self.due_date else None,
            'paid_date': self.paid_date.isoformat() if self.paid_date else None,
            'items': [item.to_dict() for item in self.items],
        }


class InvoiceItem(db.Model):
    """A priced line of an invoice; unit_price is a snapshot taken at creation."""
    __tablename__ = 'invoice_item'
    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoice.id'), nullable=False, index=True)
    description = db.Column(db.String(256), nullable=False)
    service_type = db.Column(db.String(16), nullable=False)
    duration_months = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_price = db.Column(db.Numeric(14, 2), nullable=False)
    commission_rate = db.Column(db.Numeric(5, 2), nullable=True)
    commission_amount = db.Column(db.Numeric(14, 2), nullable=True)

    def __repr__(self):
        return f'<InvoiceItem {self.service_type}/{self.duration_months}: {self.total_price}>'

    def to_dict(self):
        return {
            'description': self.description,
            'service_type': self.service_type,
            'duration_months': self.duration_months,
            'quantity': str(self.quantity),
            'unit_price': str(self.unit_price),
            'total_price': str(self.total_price),
            'commission_rate': None if self.commission_rate is None else str(self.commission_rate),
            'commission_amount': None if self.commission_amount is None else str(self.commission_amount),
        }


class Collaborator(db.Model):
    """
    An affiliate who introduces representatives.
    total_earnings_to_date - total_payouts_to_date == current_accumulated_earnings
    """
    __tablename__ = 'collaborator'
    id = db.Column(db.Integer, primary_key=True)
    collaborator_code = db.Column(db.String(64), unique=True, nullable=False, index=True)
    collaborator_name = db.Column(db.String(256), nullable=False)
    phone_number = db.Column(db.String(64))
    telegram_id = db.Column(db.String(128))
    email = db.Column(db.String(256))
    bank_account_details = db.Column(db.String(512))
    current_accumulated_earnings = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal('0'))
    total_earnings_to_date = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal('0'))
    total_payouts_to_date = db.Column(db.Numeric(14, 2), nullable=False, default=Decimal('0'))
    commission_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal('10.00'))
    status = db.Column(db.String(16), nullable=False, default='active')
    date_joined = db.Column(db.DateTime, default=utcnow)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    representatives = db.relationship('Representative', backref='collaborator', lazy='dynamic')

    def __repr__(self):
        return f'<Collaborator {self.id}: {self.collaborator_code}>'


class CommissionRecord(db.Model):
    """Append-only commission calculation for one invoice line item."""
    __tablename__ = 'commission_record'
    id = db.Column(db.Integer, primary_key=True)
    collaborator_id = db.Column(db.Integer, db.ForeignKey('collaborator.id'), nullable=False, index=True)
    representative_id = db.Column(db.Integer, db.ForeignKey('representative.id'), nullable=False, index=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoice.id'), nullable=False, index=True)
    # One record per line item; the unique key makes a second calculation fail loudly
    invoice_item_id = db.Column(db.Integer, db.ForeignKey('invoice_item.id'), nullable=False, unique=True)
    batch_id = db.Column(db.Integer, db.ForeignKey('invoice_batch.id'), nullable=True)
    transaction_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    revenue_type = db.Column(db.String(16), nullable=False)
    base_revenue_amount = db.Column(db.Numeric(14, 2), nullable=False)
    commission_rate = db.Column(db.Numeric(5, 2), nullable=False)
    commission_amount = db.Column(db.Numeric(14, 2), nullable=False)
    calculation_method = db.Column(db.String(16), nullable=False, default='automatic')
    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<CommissionRecord {self.id}: {self.revenue_type} {self.commission_amount}>'


class CollaboratorPayout(db.Model):
    """A disbursement against a collaborator's accumulated earnings."""
    __tablename__ = 'collaborator_payout'
    id = db.Column(db.Integer, primary_key=True)
    collaborator_id = db.Column(db.Integer, db.ForeignKey('collaborator.id'), nullable=False, index=True)
    payout_amount = db.Column(db.Numeric(14, 2), nullable=False)
    payout_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    admin_actor = db.Column(db.String(128))
    payment_method = db.Column(db.String(64))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<CollaboratorPayout {self.id}: {self.payout_amount}>'


class LedgerEntry(db.Model):
    """
    Append-only statement line of a representative. `amount` is signed
    (invoice positive, payment negative) and running_balance is the sum of
    every amount up to and including this entry.
    """
    __tablename__ = 'financial_ledger'
    id = db.Column(db.Integer, primary_key=True)
    representative_id = db.Column(db.Integer, db.ForeignKey('representative.id'), nullable=False, index=True)
    transaction_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    transaction_type = db.Column(db.String(16), nullable=False)  # invoice, payment
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    running_balance = db.Column(db.Numeric(14, 2), nullable=False)
    reference_id = db.Column(db.Integer)
    reference_number = db.Column(db.String(64))
    description = db.Column(db.String(512))
    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<LedgerEntry {self.id}: {self.transaction_type} {self.amount} -> {self.running_balance}>'

    def to_dict(self):
        return {
            'id': self.id,
            'transaction_date': self.transaction_date.isoformat() if self.transaction_date else None,
            'transaction_type': self.transaction_type,
            'amount': str(self.amount),
            'running_balance': str(self.running_balance),
            'reference_number': self.reference_number,
            'description': self.description,
        }


class Payment(db.Model):
    """Money received from a representative, optionally against one invoice."""
    __tablename__ = 'payment'
    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoice.id'), nullable=True, index=True)
    representative_id = db.Column(db.Integer, db.ForeignKey('representative.id'), nullable=False, index=True)
    amount = db.Column(db.Numeric(14, 2), nullable=False)
    payment_method = db.Column(db.String(64))
    notes = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<Payment {self.id}: {self.amount}>'


class FileImport(db.Model):
    """Tracks one uploaded import file and its outcome."""
    __tablename__ = 'file_import'
    id = db.Column(db.Integer, primary_key=True)
    file_name = db.Column(db.String(256), nullable=False)
    batch_id = db.Column(db.Integer, db.ForeignKey('invoice_batch.id'), nullable=True)
    records_processed = db.Column(db.Integer, nullable=False, default=0)
    records_skipped = db.Column(db.Integer, nullable=False, default=0)
    invoices_created = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(16), nullable=False, default='processing')  # processing, completed, failed
    error_details = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow)

    def __repr__(self):
        return f'<FileImport {self.id}: {self.file_name} ({self.status})>'


class AppSetting(db.Model):
    """
    Stores key-value pairs for business rules that an administrator may
    change without a deploy (default price schedule, due days, ...).
    """
    __tablename__ = 'app_setting'
    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(128), unique=True, nullable=False, index=True)
    value = db.Column(db.String(512), nullable=False)
    description = db.Column(db.String(512))
    value_type = db.Column(db.String(32), default='string')  # 'decimal', 'float', 'int', 'string', 'json'

    def __repr__(self):
        return f'<AppSetting {self.key}: {self.value}>'

    def get_value(self):
        """Casts the string value to its correct Python type."""
        if self.value_type == 'decimal':
            return Decimal(self.value)
        if self.value_type == 'float':
            return float(self.value)
        if self.value_type == 'int':
            return int(self.value)
        if self.value_type == 'json':
            return json.loads(self.value)
        return self.value

# tests/test_registry.py

import json
from decimal import Decimal

import pytest

from app import db
from app.billing import build_services
from app.billing.errors import BillingError, DeletionConflictError, NotFoundError
from app.billing.settings import BillingConfig
from app.models import AppSetting, Representative, RepresentativePrice


def test_new_representative_gets_default_schedule(services):
    rep = services.registry.create_representative('shopA', full_name='فروشگاه الف')

    assert rep.status == 'active'
    assert rep.sourcing_type == 'direct'
    assert RepresentativePrice.query.filter_by(representative_id=rep.id).count() == 12
    assert rep.price_schedule('limited') == [Decimal(p) for p in ('900', '900', '900', '1400', '1500', '1600')]
    assert rep.unit_price('unlimited', 6) == Decimal('240000')


def test_duplicate_username_is_rejected(services):
    services.registry.create_representative('shopA')
    with pytest.raises(BillingError):
        services.registry.create_representative('shopA')
    assert Representative.query.count() == 1


def test_get_or_create_returns_existing(services):
    first, created = services.registry.get_or_create('shopA', store_name='الف')
    again, created_again = services.registry.get_or_create(' shopA ')

    assert created and not created_again
    assert first.id == again.id
    assert Representative.query.count() == 1


def test_set_prices_validates_schedule(services):
    rep = services.registry.create_representative('shopA')
    with pytest.raises(BillingError):
        services.registry.set_prices(rep.id, 'limited', [1, 2, 3])
    with pytest.raises(BillingError):
        services.registry.set_prices(rep.id, 'limited', [1, 2, 3, 4, 5, -6])
    with pytest.raises(BillingError):
        services.registry.set_prices(rep.id, 'weekly', [1, 2, 3, 4, 5, 6])

    services.registry.set_prices(rep.id, 'unlimited', [10, 20, 30, 40, 50, 60])
    assert rep.price_schedule('unlimited') == [Decimal(p) for p in (10, 20, 30, 40, 50, 60)]


def test_update_and_search(services):
    rep = services.registry.create_representative('mobile-shop', store_name='موبایل رضا')
    services.registry.create_representative('other')
    services.registry.update_representative(rep.id, phone_number='09121111111')

    assert rep.phone_number == '09121111111'
    assert [r.admin_username for r in services.registry.search('mobile')] == ['mobile-shop']
    with pytest.raises(BillingError):
        services.registry.update_representative(rep.id, admin_username='renamed')


def test_status_change(services):
    rep = services.registry.create_representative('shopA')
    services.registry.set_status(rep.id, 'suspended')
    assert rep.status == 'suspended'
    with pytest.raises(BillingError):
        services.registry.set_status(rep.id, 'deleted')


def test_delete_representative_without_history(services):
    rep = services.registry.create_representative('shopA')
    services.registry.delete_representative(rep.id)
    assert Representative.query.count() == 0
    assert RepresentativePrice.query.count() == 0
    with pytest.raises(NotFoundError):
        services.registry.get(rep.id)


def test_delete_representative_with_invoices_conflicts(services, make_activity):
    rep = services.registry.create_representative('shopA')
    services.builder.create_invoice(rep, make_activity(limited={1: 1}))

    with pytest.raises(DeletionConflictError):
        services.registry.delete_representative(rep.id)
    assert Representative.query.count() == 1


def test_link_and_unlink_collaborator(services, introduced_rep):
    rep, collaborator = introduced_rep
    assert rep.sourcing_type == 'collaborator_introduced'
    assert rep.collaborator_id == collaborator.id

    with pytest.raises(BillingError):
        services.registry.link_collaborator(rep.id, collaborator.id, volume_rate='120')

    services.registry.unlink_collaborator(rep.id)
    assert rep.sourcing_type == 'direct'
    assert rep.collaborator_id is None


def test_collaborator_defaults_and_conflicts(services, introduced_rep):
    rep, collaborator = introduced_rep
    plain = services.registry.create_collaborator('C-200', 'همکار دوم')
    assert plain.commission_percentage == Decimal('10')

    services.registry.set_commission_percentage(plain.id, '7.5')
    assert plain.commission_percentage == Decimal('7.5')

    with pytest.raises(BillingError):
        services.registry.create_collaborator('C-200', 'تکراری')
    with pytest.raises(DeletionConflictError):
        services.registry.delete_collaborator(collaborator.id)

    services.registry.delete_collaborator(plain.id)
    with pytest.raises(NotFoundError):
        services.registry.get_collaborator_by_code('C-200')


def test_settings_change_the_default_schedule(app):
    db.session.add(AppSetting(key='DEFAULT_LIMITED_PRICES', value=json.dumps(['1000'] * 6), value_type='json'))
    db.session.add(AppSetting(key='DEFAULT_COMMISSION_PERCENTAGE', value='12.5', value_type='decimal'))
    db.session.add(AppSetting(key='INVOICE_DUE_DAYS', value='14', value_type='int'))
    db.session.commit()

    config = BillingConfig.load()
    assert config.INVOICE_DUE_DAYS == 14
    assert config.DEFAULT_COMMISSION_PERCENTAGE == Decimal('12.5')

    services = build_services(db.session, config=config)
    rep = services.registry.create_representative('shopA')
    assert rep.price_schedule('limited') == [Decimal('1000')] * 6
    assert rep.unit_price('unlimited', 1) == Decimal('40000')
    assert services.registry.create_collaborator('C-1', 'x').commission_percentage == Decimal('12.5')

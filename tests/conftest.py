# tests/conftest.py

from decimal import Decimal

import pytest


@pytest.fixture
def app():
    """
    Creates a new app instance for each test with an empty in-memory database,
    and yields the app within an application context.
    """
    from app import create_app, db
    from config import TestConfig

    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app  # The tests will run here
        db.session.remove()
        db.drop_all()


@pytest.fixture
def services(app):
    """The billing service graph bound to the test database session."""
    from app import db
    from app.billing import build_services
    return build_services(db.session)


@pytest.fixture
def make_row():
    """Factory for a named-layout usage row; every duration field defaults to "0"."""
    from app.billing import schema

    def _make_row(admin_username, **fields):
        row = {schema.IDENTIFIER_FIELD: admin_username}
        for field in schema.LIMITED_FIELDS + schema.UNLIMITED_FIELDS:
            row[field] = '0'
        row.update(fields)
        return row
    return _make_row


@pytest.fixture
def make_activity():
    """Factory for an activity record as the invoice builder receives it."""

    def _make_activity(limited=None, unlimited=None):
        limited = dict(limited or {})
        unlimited = dict(unlimited or {})
        return {
            'limited_volumes': [Decimal(str(limited.get(m, 0))) for m in range(1, 7)],
            'unlimited_counts': [Decimal(str(unlimited.get(m, 0))) for m in range(1, 7)],
        }
    return _make_activity


@pytest.fixture
def introduced_rep(services):
    """A representative introduced by a collaborator earning the default 10%."""
    collaborator = services.registry.create_collaborator('C-100', 'همکار آزمایشی', commission_percentage='10')
    rep = services.registry.create_representative('shopA')
    services.registry.link_collaborator(rep.id, collaborator.id)
    return rep, collaborator

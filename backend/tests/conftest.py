"""
Pytest fixtures for AssetFlow workflow tests.

Provides the test database, two units (Finance, HR), one actor per role and
an asset factory.
"""

import pytest
from assetflow import create_app
from assetflow.extensions import db
from assetflow.models import Asset, AssetStatus, Role, Unit, User


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'TRANSACTION_RETRY_ATTEMPTS': 2,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def finance(db_session):
    """Create the Finance unit."""
    unit = Unit(name="Finance", code="FIN", is_active=True)
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture(scope='function')
def hr(db_session):
    """Create the HR unit."""
    unit = Unit(name="HR", code="HR", is_active=True)
    db_session.add(unit)
    db_session.commit()
    return unit


def _make_user(db_session, username, role, unit=None, is_active=True):
    user = User(
        username=username,
        full_name=username.replace("_", " ").title(),
        role=role,
        unit_id=unit.id if unit is not None else None,
        is_active=is_active,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def super_admin(db_session):
    return _make_user(db_session, "super_admin", Role.SUPER_ADMIN)


@pytest.fixture(scope='function')
def holding_admin(db_session):
    return _make_user(db_session, "holding_admin", Role.ADMIN_HOLDING)


@pytest.fixture(scope='function')
def auditor(db_session):
    return _make_user(db_session, "auditor", Role.AUDITOR)


@pytest.fixture(scope='function')
def finance_admin(db_session, finance):
    return _make_user(db_session, "finance_admin", Role.ADMIN_UNIT, finance)


@pytest.fixture(scope='function')
def hr_admin(db_session, hr):
    return _make_user(db_session, "hr_admin", Role.ADMIN_UNIT, hr)


@pytest.fixture(scope='function')
def finance_user(db_session, finance):
    return _make_user(db_session, "finance_user", Role.USER, finance)


@pytest.fixture(scope='function')
def hr_user(db_session, hr):
    return _make_user(db_session, "hr_user", Role.USER, hr)


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory for one-off actors (inactive users, extra roles)."""
    def _factory(username, role, unit=None, is_active=True):
        return _make_user(db_session, username, role, unit, is_active)
    return _factory


@pytest.fixture(scope='function')
def make_asset(db_session):
    """Factory: make_asset(unit, tag=None, status=AssetStatus.AVAILABLE, name=...)."""
    counter = {"n": 0}

    def _factory(unit, tag=None, status=AssetStatus.AVAILABLE, name="Laptop", category="Electronics"):
        counter["n"] += 1
        asset = Asset(
            asset_tag=tag or f"{unit.code}-{counter['n']:04d}",
            name=name,
            category=category,
            unit_id=unit.id,
            status=status,
        )
        db_session.add(asset)
        db_session.commit()
        return asset

    return _factory

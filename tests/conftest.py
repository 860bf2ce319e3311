from datetime import date
from decimal import Decimal

import pytest

from app import create_app
from models import (db, Customer, BankAccount, GraniteSupplier, GraniteConsignment, GraniteBlock,
                    ExpenseCategory, ExpenseAccount)
from routes.granite_utils import record_production

TEST_CONFIG = {
    'TESTING': True,
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    'SQLALCHEMY_ENGINE_OPTIONS': {},
    'DB_CONFIGURED': True,
    'LOGIN_DISABLED': True,
    'RATELIMIT_ENABLED': False,
    'SECRET_KEY': 'test-secret',
    'TOP_BUYERS_LIMIT': 5,
}


@pytest.fixture
def app_factory():
    """create_app() with the test settings plus keyword overrides."""
    def _create(**overrides):
        return create_app(dict(TEST_CONFIG, **overrides))
    return _create


@pytest.fixture
def app():
    app = create_app(TEST_CONFIG)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def unconfigured_app():
    app = create_app(dict(TEST_CONFIG, DB_CONFIGURED=False))
    with app.app_context():
        yield app


@pytest.fixture
def unconfigured_client(unconfigured_app):
    return unconfigured_app.test_client()


# ── ledger ────────────────────────────────────────────────────

@pytest.fixture
def customer(app):
    c = Customer(name='Sri Balaji Granites')
    db.session.add(c)
    db.session.commit()
    return c


@pytest.fixture
def bank_account(app):
    a = BankAccount(name='HDFC Current')
    db.session.add(a)
    db.session.commit()
    return a


# ── granite ───────────────────────────────────────────────────

@pytest.fixture
def supplier(app):
    s = GraniteSupplier(name='Rising Sun Exports', contact_person='Manager')
    db.session.add(s)
    db.session.commit()
    return s


@pytest.fixture
def granite_consignment(app, supplier):
    c = GraniteConsignment(
        consignment_number='GC-TEST-1',
        supplier_id=supplier.id,
        arrival_date=date(2024, 1, 10),
        rate_per_meter=Decimal('30000'),
        payment_cash_rate=Decimal('19000'),
        payment_upi_rate=Decimal('11000'),
        transport_cost=Decimal('5000'),
        production_cost_per_sqft=Decimal('40'),
    )
    db.session.add(c)
    db.session.commit()
    return c


@pytest.fixture
def cut_block(app, granite_consignment):
    """Block B1 (2 m net, 2.5 m gross) cut into part A (100 sqft) and part B (50 sqft).

    Consignment figures: cash 38000, UPI 22000, expenditure 65000 with
    transport, 150 sqft produced, total cost 433.33 + 40 = 473.33 per sqft.
    """
    block = GraniteBlock(block_no='B1', grade='Premium', gross_measurement='2.5',
                         net_measurement='2', status='RAW')
    granite_consignment.blocks.append(block)
    db.session.flush()
    record_production(block, {'part_name': 'A', 'slabs_count': 10, 'sqft': 100})
    record_production(block, {'part_name': 'B', 'slabs_count': 5, 'sqft': 50})
    db.session.commit()
    return block


# ── expenses ──────────────────────────────────────────────────

@pytest.fixture
def expense_category(app):
    c = ExpenseCategory(name='Diesel', color='#EF4444', budget_limit=Decimal('1000'), is_active=True)
    db.session.add(c)
    db.session.commit()
    return c


@pytest.fixture
def expense_account(app):
    a = ExpenseAccount(name='Petty Cash', account_type='CASH', current_balance=Decimal('0'))
    db.session.add(a)
    db.session.commit()
    return a

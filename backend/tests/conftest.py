"""
Pytest fixtures for POS ledger backend tests.

Provides test database setup, operators, a sample catalog, and test client.
"""

import pytest

from posledger import create_app
from posledger.extensions import db
from posledger.models import Customer, Product, Sale, SaleLine, User
from posledger.models.auth import ROLE_ADMIN, ROLE_CASHIER
from posledger.services.transaction_service import TransactionEngine


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DB_RETRY_ATTEMPTS': 1,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


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
def admin(db_session):
    user = User(name="Admin User", email="admin@test.local", role=ROLE_ADMIN)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def cashier(db_session):
    user = User(name="Cashier User", email="cashier@test.local", role=ROLE_CASHIER)
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def engine(db_session):
    return TransactionEngine(db_session)


def make_product(session, *, name="Widget", price_cents=1000, cost_cents=400, stock=10, **extra):
    """Create a product with opening stock through the engine (INITIAL movement)."""
    product = Product(name=name, price_cents=price_cents, cost_cents=cost_cents, **extra)
    TransactionEngine(session).stock_new_product(product, stock)
    session.commit()
    return product


@pytest.fixture(scope='function')
def products(db_session):
    """Two-item catalog: Laptop (stock 5) and Mouse (stock 3)."""
    laptop = make_product(db_session, name="Laptop", price_cents=99999, cost_cents=70000, stock=5,
                          barcode="1234567890123", category="Electronics")
    mouse = make_product(db_session, name="Mouse", price_cents=2999, cost_cents=1500, stock=3,
                         barcode="1234567890124", category="Electronics")
    return laptop, mouse


@pytest.fixture(scope='function')
def customer(db_session):
    c = Customer(name="Jane Doe", email="jane@example.com")
    db_session.add(c)
    db_session.commit()
    return c


def auth_headers(user) -> dict:
    return {"X-User-Id": str(user.id)}


@pytest.fixture(scope='function')
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture(scope='function')
def cashier_headers(cashier):
    return auth_headers(cashier)


def add_sale(session, *, created_at, lines, status="completed", discount_cents=0):
    """
    Insert a ledger row directly, bypassing the engine, so created_at is exact.

    ``lines`` is [(product, qty, unit_price_cents, unit_cost_cents)].
    """
    add_sale.counter += 1
    sale = Sale(
        invoice_number=f"INV-TEST-{add_sale.counter}",
        subtotal_cents=0,
        discount_cents=discount_cents,
        tax_cents=0,
        total_cents=0,
        payment_method="cash",
        cashier_id=1,
        status=status,
        created_at=created_at,
    )
    subtotal = 0
    for number, (product, qty, price, cost) in enumerate(lines, start=1):
        subtotal += qty * price
        sale.lines.append(SaleLine(
            line_number=number,
            product_id=product.id,
            product_name=product.name,
            quantity=qty,
            unit_price_cents=price,
            unit_cost_cents=cost,
            line_total_cents=qty * price,
        ))
    sale.subtotal_cents = subtotal
    sale.total_cents = subtotal - discount_cents
    session.add(sale)
    session.commit()
    return sale


add_sale.counter = 0

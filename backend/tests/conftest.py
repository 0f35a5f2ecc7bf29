"""
Pytest fixtures for Nexo backend tests.

Provides test database setup, catalog/party factories, and test client.
"""

from decimal import Decimal

import pytest
from nexo import create_app
from nexo.extensions import db
from nexo.models import Customer, Product, User


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_RETRY_ATTEMPTS': 2,
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
def customer(db_session):
    customer = Customer(name="Maria Souza", email="maria@example.com")
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def user(db_session):
    user = User(name="Operador", email="operador@nexo.local")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(name, price, stock, kind="Product", status="Active")."""
    def _make(name, price, stock, kind="Product", status="Active"):
        product = Product(name=name, price=Decimal(price), stock=stock, kind=kind, status=status)
        db_session.add(product)
        db_session.commit()
        return product
    return _make


@pytest.fixture(scope='function')
def product_a(make_product):
    """Product kind, stock 10, price 10.00."""
    return make_product("Produto A", "10.00", 10)


@pytest.fixture(scope='function')
def product_b(make_product):
    """Product kind, stock 10, price 5.00."""
    return make_product("Produto B", "5.00", 10)


@pytest.fixture(scope='function')
def service(make_product):
    """Service kind (no stock), price 50.00."""
    return make_product("Instalacao", "50.00", None, kind="Service")


@pytest.fixture(scope='function')
def stock_of(db_session):
    """stock_of(product_id): fresh stock value from the database."""
    def _stock(product_id):
        db_session.expire_all()
        return db_session.get(Product, product_id).stock
    return _stock

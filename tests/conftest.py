import pytest
import uuid

from config import Config
from inventory import create_app
from inventory.database import Base, get_session, create_tables
from inventory.models import AppUser, Supplier
from inventory.services.product_service import create_product


class TestingConfig(Config):
    """SQLite-backed configuration; the URI is filled in by the app fixture."""
    TESTING = True
    DEBUG = False
    ENV = 'testing'
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = None
    SQLALCHEMY_ECHO = False
    CACHE_ENABLED = False
    MAIL_SUPPRESS_SEND = True
    LOW_STOCK_EMAIL_ENABLED = False
    ORDER_EMAIL_ENABLED = False
    STOCK_LOCK_TIMEOUT = 5.0


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application instance for testing."""
    db_path = tmp_path_factory.mktemp('db') / 'inventory_test.db'
    TestingConfig.SQLALCHEMY_DATABASE_URI = f'sqlite:///{db_path}'

    app = create_app(TestingConfig)
    with app.app_context():
        create_tables()
    return app


@pytest.fixture(autouse=True)
def app_context(app):
    """Every test runs inside an application context."""
    with app.app_context():
        yield


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Database session; all rows are wiped after the test."""
    session = get_session()
    yield session
    session.rollback()
    for table in reversed(Base.metadata.sorted_tables):
        session.execute(table.delete())
    session.commit()
    session.close()


def _make_user(session, role, name):
    suffix = str(uuid.uuid4())[:8]
    user = AppUser(
        email=f'{role}-{suffix}@test.com',
        name=name,
        role=role,
        active=True
    )
    user.set_password('password123')
    session.add(user)
    session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(session):
    return _make_user(session, 'admin', 'Admin User')


@pytest.fixture(scope='function')
def manager_user(session):
    return _make_user(session, 'manager', 'Manager User')


@pytest.fixture(scope='function')
def staff_user(session):
    return _make_user(session, 'staff', 'Staff User')


@pytest.fixture(scope='function')
def supplier(session):
    supplier = Supplier(
        name='Acme Supplies',
        contact_person='Jane Roe',
        email='orders@acme.test',
        lead_time_days=5
    )
    session.add(supplier)
    session.commit()
    return supplier


@pytest.fixture(scope='function')
def make_product(session):
    """Factory: product whose opening stock is booked through the ledger."""
    def _make(current_stock=0, min_stock=10, unit_price='100.00', sku=None, name=None,
              category='Hardware', supplier_id=None):
        suffix = str(uuid.uuid4())[:8]
        return create_product(
            session,
            sku=sku or f'SKU-{suffix}',
            name=name or f'Product {suffix}',
            category=category,
            unit_price=unit_price,
            min_stock=min_stock,
            supplier_id=supplier_id,
            initial_stock=current_stock,
        )
    return _make


@pytest.fixture(scope='function')
def product(make_product):
    """Product with 50 units on hand and a minimum of 10."""
    return make_product(current_stock=50, min_stock=10, name='Cordless Drill')


def login(client, user):
    with client.session_transaction() as sess:
        sess['user_id'] = user.id
    return client


@pytest.fixture(scope='function')
def staff_client(client, staff_user):
    return login(client, staff_user)


@pytest.fixture(scope='function')
def manager_client(client, manager_user):
    return login(client, manager_user)


@pytest.fixture(scope='function')
def admin_client(client, admin_user):
    return login(client, admin_user)

import pytest
from datetime import date, timedelta
from decimal import Decimal
import uuid

from marketplace import create_app
from marketplace import database
from marketplace.models import Supplier, Product, Coupon, DiscountType

BUYER_ID = 'buyer-1'
OTHER_BUYER_ID = 'buyer-2'
SELLER_OWNER_ID = 'seller-owner-1'


@pytest.fixture(scope='session')
def app():
    """Create application instance for testing (in-memory SQLite)."""
    app = create_app('config.TestConfig')
    return app


@pytest.fixture(scope='function', autouse=True)
def tables(app):
    """Fresh schema for every test."""
    database.create_all()
    yield
    database.get_session().remove()
    database.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session():
    """Database session used by the application."""
    session = database.get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def supplier(session):
    """Create test supplier owned by a seller account."""
    supplier = Supplier(
        owner_id=SELLER_OWNER_ID,
        name='Dhaka Textiles Ltd',
        email='sales@dhakatextiles.test',
        verified=True
    )
    session.add(supplier)
    session.commit()
    session.refresh(supplier)
    return supplier


@pytest.fixture(scope='function')
def supplier2(session):
    """Create a second supplier for multi-supplier carts."""
    supplier = Supplier(
        owner_id='seller-owner-2',
        name='Chittagong Steel Co',
        verified=True
    )
    session.add(supplier)
    session.commit()
    session.refresh(supplier)
    return supplier


@pytest.fixture(scope='function')
def product(session, supplier):
    """Create test product: 100 per unit, MOQ 10, 500 in stock."""
    suffix = str(uuid.uuid4())[:8]
    product = Product(
        supplier_id=supplier.id,
        name='Cotton Fabric Roll',
        slug=f'cotton-fabric-roll-{suffix}',
        sku='CFR-001',
        unit_price=Decimal('100.00'),
        moq=10,
        stock=500,
        active=True
    )
    session.add(product)
    session.commit()
    session.refresh(product)
    return product


@pytest.fixture(scope='function')
def product2(session, supplier2):
    """Create test product from the second supplier: 50 per unit, MOQ 5, 40 in stock."""
    suffix = str(uuid.uuid4())[:8]
    product = Product(
        supplier_id=supplier2.id,
        name='Steel Rod 12mm',
        slug=f'steel-rod-12mm-{suffix}',
        sku='SR-012',
        unit_price=Decimal('50.00'),
        moq=5,
        stock=40,
        active=True
    )
    session.add(product)
    session.commit()
    session.refresh(product)
    return product


@pytest.fixture(scope='function')
def coupon(session):
    """10% off orders of 500 or more, valid for 30 days."""
    coupon = Coupon(
        code='SAVE10',
        discount_type=DiscountType.PERCENTAGE.value,
        value=Decimal('10'),
        min_order_value=Decimal('500'),
        expiry_date=date.today() + timedelta(days=30),
        description='10% off wholesale orders'
    )
    session.add(coupon)
    session.commit()
    session.refresh(coupon)
    return coupon


@pytest.fixture(scope='function')
def buyer_client(client):
    """Test client signed in as BUYER_ID."""
    with client.session_transaction() as sess:
        sess['buyer_id'] = BUYER_ID
    return client


@pytest.fixture(scope='function')
def supplier_client(app, supplier):
    """Separate test client signed in as the supplier."""
    client = app.test_client()
    with client.session_transaction() as sess:
        sess['supplier_id'] = supplier.id
    return client


@pytest.fixture(scope='function')
def buyer_id():
    """Buyer signed in on buyer_client."""
    return BUYER_ID


@pytest.fixture(scope='function')
def other_buyer_id():
    return OTHER_BUYER_ID

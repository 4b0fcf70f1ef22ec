"""
conftest.py: shared fixtures for the pytest suite.

Every test gets a fresh app on in-memory SQLite with two seeded users:

    admin@test.local / admin123   (admin)
    staff@test.local / staff123   (staff)
"""
from datetime import date, timedelta
from decimal import Decimal

import pytest

from pharmacy import create_app, db
from pharmacy.auth.models import RoleEnum, User
from pharmacy.inventory.models import InventoryLot, ProductBatch
from pharmacy.products.models import Product


@pytest.fixture(scope='function')
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        admin = User(name='Admin', email='admin@test.local', role=RoleEnum.admin)
        admin.set_password('admin123')
        staff = User(name='Front Desk', email='staff@test.local', role=RoleEnum.staff)
        staff.set_password('staff123')
        db.session.add_all([admin, staff])
        db.session.commit()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, email='admin@test.local', password='admin123'):
    resp = client.post('/auth/login', json={'email': email, 'password': password})
    # Fail loudly if login failed
    assert resp.status_code == 200, resp.get_json()
    return resp


@pytest.fixture
def admin_client(client):
    login(client)
    return client


@pytest.fixture
def staff_client(client):
    login(client, 'staff@test.local', 'staff123')
    return client


@pytest.fixture
def admin_user(app):
    return User.query.filter_by(email='admin@test.local').one()


# ── Factories ──────────────────────────────────────────────────────────────

@pytest.fixture
def make_product(app):
    counter = {'n': 0}

    def _make(**overrides):
        counter['n'] += 1
        fields = {
            'name': f'Paracetamol {counter["n"]}',
            'generic_name': 'Paracetamol',
            'category': 'Analgesic',
            'manufacturer': 'Acme Pharma',
            'sku': f'SKU-{counter["n"]:03d}',
            'price': Decimal('10.00'),
            'cost_price': Decimal('6.00'),
        }
        fields.update(overrides)
        product = Product(**fields)
        db.session.add(product)
        db.session.commit()
        return product

    return _make


@pytest.fixture
def make_lot(app):
    def _make(product, batch='LOT-A', quantity=10, reorder_level=2, expiry_days=365, **overrides):
        lot = InventoryLot(
            product_id=product.id,
            batch=batch,
            quantity=quantity,
            reorder_level=reorder_level,
            location='Shelf A',
            expiry_date=date.today() + timedelta(days=expiry_days) if expiry_days is not None else None,
            **overrides,
        )
        db.session.add(lot)
        db.session.commit()
        return lot

    return _make


@pytest.fixture
def make_batch(app):
    def _make(product, batch_number='LOT-A', quantity=10, expiry_days=365, **overrides):
        today = date.today()
        fields = {
            'product_id': product.id,
            'batch_number': batch_number,
            'quantity': quantity,
            'manufacturing_date': today - timedelta(days=90),
            'expiry_date': today + timedelta(days=expiry_days),
            'purchase_price': Decimal('6.00'),
            'selling_price': Decimal('10.00'),
            'supplier': 'Acme Wholesale',
        }
        fields.update(overrides)
        batch = ProductBatch(**fields)
        db.session.add(batch)
        db.session.commit()
        return batch

    return _make

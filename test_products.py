"""
test_products.py: product catalog endpoints.

Run: pytest test_products.py -v
"""
from decimal import Decimal

import pytest

from pharmacy import db
from pharmacy.products.models import Product


def product_payload(**overrides):
    payload = {
        'name': 'Amoxicillin 500mg',
        'generic_name': 'Amoxicillin',
        'category': 'Antibiotic',
        'manufacturer': 'Acme Pharma',
        'sku': 'AMX-500',
        'price': '12.40',
        'cost_price': '8.00',
        'requires_prescription': True,
    }
    payload.update(overrides)
    return payload


def test_admin_creates_product(admin_client):
    resp = admin_client.post('/products', json=product_payload())

    assert resp.status_code == 201
    body = resp.get_json()
    assert body['sku'] == 'AMX-500'
    assert body['price'] == '12.40'
    assert body['requires_prescription'] is True
    assert body['expiry_date_required'] is True


def test_duplicate_sku_is_conflict(admin_client):
    assert admin_client.post('/products', json=product_payload()).status_code == 201

    resp = admin_client.post('/products', json=product_payload(name='Another'))

    assert resp.status_code == 409
    assert Product.query.count() == 1


@pytest.mark.parametrize('field, value', [
    ('name', ''),
    ('category', None),
    ('sku', '   '),
    ('price', '-1'),
    ('price', '1.999'),
    ('cost_price', 'abc'),
])
def test_invalid_product_is_rejected(admin_client, field, value):
    resp = admin_client.post('/products', json=product_payload(**{field: value}))

    assert resp.status_code == 400
    assert field in resp.get_json()['details']


def test_staff_cannot_create_products(staff_client):
    resp = staff_client.post('/products', json=product_payload())
    assert resp.status_code == 403
    assert Product.query.count() == 0


def test_update_ignores_sku(admin_client, make_product):
    product = make_product()

    resp = admin_client.put(f'/products/{product.id}', json=product_payload(sku='CHANGED', price='15.00'))

    assert resp.status_code == 200
    refreshed = db.session.get(Product, product.id)
    assert refreshed.sku == 'SKU-001'
    assert refreshed.price == Decimal('15.00')
    assert refreshed.name == 'Amoxicillin 500mg'


def test_update_keeps_flags_the_payload_omits(admin_client):
    created = admin_client.post('/products', json=product_payload(
        requires_prescription=True, expiry_date_required=False,
    )).get_json()

    payload = product_payload(price='13.00')
    del payload['requires_prescription']
    resp = admin_client.put(f'/products/{created["id"]}', json=payload)

    assert resp.status_code == 200
    assert resp.get_json()['requires_prescription'] is True
    assert resp.get_json()['expiry_date_required'] is False

    resp = admin_client.put(f'/products/{created["id"]}', json=product_payload(requires_prescription=False))

    assert resp.status_code == 200
    refreshed = db.session.get(Product, created['id'])
    assert refreshed.requires_prescription is False
    assert refreshed.expiry_date_required is False


def test_detail_and_missing(staff_client, make_product):
    product = make_product()
    assert staff_client.get(f'/products/{product.id}').get_json()['name'] == product.name
    assert staff_client.get('/products/9999').status_code == 404


def test_out_of_range_id_and_page(staff_client):
    assert staff_client.get(f'/products/{10**20}').status_code == 404
    assert staff_client.get(f'/products/{2**31 - 1}').status_code == 404
    assert staff_client.get(f'/products?page={10**30}').status_code == 400


def test_search_filter_and_sort(staff_client, make_product):
    make_product(name='Ibuprofen 200mg', generic_name='Ibuprofen', category='NSAID', price=8)
    make_product(name='Cetirizine 10mg', generic_name='Cetirizine', category='Antihistamine', price=4)
    make_product(name='Naproxen 250mg', generic_name='Naproxen', category='NSAID', price=12)

    nsaids = staff_client.get('/products?category=NSAID').get_json()
    assert [p['name'] for p in nsaids['data']] == ['Ibuprofen 200mg', 'Naproxen 250mg']

    found = staff_client.get('/products?query=cetiri').get_json()
    assert [p['name'] for p in found['data']] == ['Cetirizine 10mg']

    by_price = staff_client.get('/products?sort_by=price&sort_order=desc').get_json()
    assert [p['price'] for p in by_price['data']] == ['12.00', '8.00', '4.00']

    page = staff_client.get('/products?limit=2&page=2').get_json()
    assert len(page['data']) == 1
    assert page['pagination']['hasPrev'] is True
    assert page['pagination']['hasNext'] is False


def test_bad_sort_field_is_rejected(staff_client):
    resp = staff_client.get('/products?sort_by=password')
    assert resp.status_code == 400
    assert 'sort_by' in resp.get_json()['details']

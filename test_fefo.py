"""
test_fefo.py: First-Expiry-First-Out batch selection.

Run: pytest test_fefo.py -v
"""
from datetime import date

import pytest

from pharmacy.errors import NotFoundError, ValidationError
from pharmacy.inventory.fefo import add_months, select_batches
from pharmacy.inventory.models import BatchStatus


def test_batches_are_ordered_by_expiry_regardless_of_insertion(app, make_product, make_batch):
    product = make_product()
    make_batch(product, batch_number='LATE', expiry_days=300)
    make_batch(product, batch_number='SOON', expiry_days=120)
    make_batch(product, batch_number='MID', expiry_days=200)

    options = select_batches(product.id, 1)

    assert [o['batch_number'] for o in options] == ['SOON', 'MID', 'LATE']


def test_same_expiry_is_tie_broken_by_batch_number(app, make_product, make_batch):
    product = make_product()
    make_batch(product, batch_number='B-2', expiry_days=200)
    make_batch(product, batch_number='B-1', expiry_days=200)

    assert [o['batch_number'] for o in select_batches(product.id, 1)] == ['B-1', 'B-2']


def test_insufficient_batch_is_flagged_and_disabled(app, make_product, make_batch):
    product = make_product()
    make_batch(product, batch_number='SMALL', quantity=3, expiry_days=150)
    make_batch(product, batch_number='BIG', quantity=50, expiry_days=250)

    small, big = select_batches(product.id, 5)

    assert small['insufficient'] is True
    assert small['selectable'] is False
    assert big['insufficient'] is False
    assert big['selectable'] is True


def test_near_expiry_stays_selectable(app, make_product, make_batch):
    product = make_product()
    make_batch(product, batch_number='NEAR', expiry_days=20)

    [option] = select_batches(product.id, 1)

    assert option['near_expiry'] is True
    assert option['expired'] is False
    assert option['selectable'] is True


def test_expired_batch_is_disabled(app, make_product, make_batch):
    product = make_product()
    make_batch(product, batch_number='OLD', expiry_days=-3)
    make_batch(product, batch_number='TODAY', expiry_days=0)

    old, today = select_batches(product.id, 1)

    assert old['expired'] is True and old['selectable'] is False
    assert today['expired'] is True and today['selectable'] is False
    assert old['near_expiry'] is False


def test_only_active_batches_are_offered(app, make_product, make_batch):
    product = make_product()
    make_batch(product, batch_number='GONE', quantity=0, status=BatchStatus.depleted)
    make_batch(product, batch_number='PULLED', status=BatchStatus.expired)
    make_batch(product, batch_number='LIVE')

    assert [o['batch_number'] for o in select_batches(product.id, 1)] == ['LIVE']


def test_no_active_batches_is_not_found(app, make_product, make_batch):
    product = make_product()
    make_batch(product, batch_number='GONE', quantity=0, status=BatchStatus.depleted)

    with pytest.raises(NotFoundError, match='No active batches'):
        select_batches(product.id, 1)


def test_unknown_product_is_not_found(app):
    with pytest.raises(NotFoundError):
        select_batches(9999, 1)
    with pytest.raises(NotFoundError):
        select_batches(10**30, 1)


@pytest.mark.parametrize('quantity', [0, -1, 1.5, '2', True, 2**31, 10**30])
def test_quantity_must_be_positive_integer(app, make_product, quantity):
    product = make_product()
    with pytest.raises(ValidationError):
        select_batches(product.id, quantity)


@pytest.mark.parametrize('start, months, expected', [
    (date(2026, 1, 31), 3, date(2026, 4, 30)),
    (date(2026, 11, 30), 3, date(2027, 2, 28)),
    (date(2028, 11, 29), 3, date(2029, 2, 28)),
    (date(2027, 11, 29), 3, date(2028, 2, 29)),
    (date(2026, 5, 15), 3, date(2026, 8, 15)),
])
def test_add_months_clamps_to_month_end(start, months, expected):
    assert add_months(start, months) == expected


# ── HTTP surface ───────────────────────────────────────────────────────────

def test_selection_endpoint(staff_client, make_product, make_batch):
    product = make_product()
    make_batch(product, batch_number='A', quantity=2, expiry_days=100)
    make_batch(product, batch_number='B', quantity=20, expiry_days=200)

    resp = staff_client.get(f'/batches/selection?product_id={product.id}&quantity=5')

    assert resp.status_code == 200
    data = resp.get_json()['data']
    assert [(o['batch_number'], o['selectable']) for o in data] == [('A', False), ('B', True)]


def test_selection_endpoint_validates_quantity(staff_client, make_product):
    product = make_product()
    resp = staff_client.get(f'/batches/selection?product_id={product.id}&quantity=0')
    assert resp.status_code == 400
    assert 'quantity' in resp.get_json()['details']


def test_selection_endpoint_rejects_out_of_range_numbers(staff_client, make_product, make_batch):
    product = make_product()
    make_batch(product, quantity=5)

    resp = staff_client.get(f'/batches/selection?product_id={product.id}&quantity={10**30}')
    assert resp.status_code == 400
    assert resp.get_json()['details'] == {'quantity': 'Quantity is too large.'}

    resp = staff_client.get(f'/batches/selection?product_id={10**30}&quantity=1')
    assert resp.status_code == 400
    assert resp.get_json()['details'] == {'product_id': 'Product is too large.'}

    resp = staff_client.get(f'/batches/selection?product_id={product.id}&quantity={2**31 - 1}')
    assert resp.status_code == 200
    assert resp.get_json()['data'][0]['insufficient'] is True

"""
test_batches.py: ProductBatch endpoints.

Run: pytest test_batches.py -v
"""
from datetime import date, timedelta

from pharmacy import db
from pharmacy.inventory.models import BatchStatus, ProductBatch


def batch_payload(product, **overrides):
    today = date.today()
    payload = {
        'product_id': product.id,
        'batch_number': 'BATCH-A',
        'quantity': 10,
        'manufacturing_date': (today - timedelta(days=30)).isoformat(),
        'expiry_date': (today + timedelta(days=180)).isoformat(),
        'purchase_price': '4.20',
        'selling_price': '7.50',
        'supplier': 'MedSupply Ltd',
    }
    payload.update(overrides)
    return payload


# ── 1. Create ───────────────────────────────────────────────────────────────

def test_create_batch(staff_client, make_product):
    product = make_product()

    resp = staff_client.post('/batches', json=batch_payload(product))

    assert resp.status_code == 201
    body = resp.get_json()
    assert body['status'] == 'active'
    assert body['selling_price'] == '7.50'
    assert body['days_to_expiry'] == 180


def test_duplicate_batch_number_is_rejected(staff_client, make_product):
    product = make_product()
    assert staff_client.post('/batches', json=batch_payload(product)).status_code == 201

    resp = staff_client.post('/batches', json=batch_payload(product, quantity=99))

    assert resp.status_code == 409
    assert 'BATCH-A' in resp.get_json()['error']
    assert ProductBatch.query.filter_by(product_id=product.id).count() == 1


def test_expiry_must_be_in_the_future(staff_client, make_product):
    product = make_product()
    for expiry in (date.today(), date.today() - timedelta(days=1)):
        resp = staff_client.post('/batches', json=batch_payload(product, expiry_date=expiry.isoformat()))
        assert resp.status_code == 400
        assert 'expiry_date' in resp.get_json()['details']


def test_invalid_fields_are_reported(staff_client, make_product):
    product = make_product()
    resp = staff_client.post('/batches', json=batch_payload(
        product, quantity=-1, purchase_price='-2', supplier='', manufacturing_date='not-a-date',
    ))

    assert resp.status_code == 400
    assert {'quantity', 'purchase_price', 'supplier', 'manufacturing_date'} <= set(resp.get_json()['details'])


def test_batch_for_unknown_product_is_404(staff_client, make_product):
    payload = batch_payload(make_product(), product_id=4040)
    assert staff_client.post('/batches', json=payload).status_code == 404


# ── 2. List ─────────────────────────────────────────────────────────────────

def test_list_is_fefo_ordered_and_filterable(staff_client, make_product, make_batch):
    product = make_product()
    other = make_product()
    make_batch(product, batch_number='LATER', expiry_days=300)
    make_batch(product, batch_number='SOONER', expiry_days=60)
    make_batch(product, batch_number='EMPTY', quantity=0, expiry_days=30, status=BatchStatus.depleted)
    make_batch(other, batch_number='OTHER', expiry_days=10)

    data = staff_client.get(f'/batches?product_id={product.id}').get_json()['data']
    assert [b['batch_number'] for b in data] == ['EMPTY', 'SOONER', 'LATER']

    active = staff_client.get(f'/batches?product_id={product.id}&status=active').get_json()['data']
    assert [b['batch_number'] for b in active] == ['SOONER', 'LATER']


# ── 3. Update ───────────────────────────────────────────────────────────────

def test_partial_update(staff_client, make_product, make_batch):
    product = make_product()
    batch = make_batch(product)

    resp = staff_client.put(f'/batches/{batch.id}', json={'quantity': 3, 'status': 'expired', 'notes': 'Recall'})

    assert resp.status_code == 200
    refreshed = db.session.get(ProductBatch, batch.id)
    assert refreshed.quantity == 3
    assert refreshed.status == BatchStatus.expired
    assert refreshed.notes == 'Recall'
    assert refreshed.supplier == 'Acme Wholesale'


def test_update_cannot_move_batch_to_another_product(staff_client, make_product, make_batch):
    product = make_product()
    other = make_product()
    batch = make_batch(product)

    resp = staff_client.put(f'/batches/{batch.id}', json={'product_id': other.id})

    assert resp.status_code == 400
    assert db.session.get(ProductBatch, batch.id).product_id == product.id


def test_update_rejects_expiry_before_manufacture(staff_client, make_product, make_batch):
    product = make_product()
    batch = make_batch(product)
    too_early = (batch.manufacturing_date - timedelta(days=1)).isoformat()

    resp = staff_client.put(f'/batches/{batch.id}', json={'expiry_date': too_early})

    assert resp.status_code == 400


def test_update_rename_to_existing_number_is_conflict(staff_client, make_product, make_batch):
    product = make_product()
    make_batch(product, batch_number='ONE')
    two = make_batch(product, batch_number='TWO')

    resp = staff_client.put(f'/batches/{two.id}', json={'batch_number': 'ONE'})

    assert resp.status_code == 409
    assert db.session.get(ProductBatch, two.id).batch_number == 'TWO'


# ── 4. Delete ───────────────────────────────────────────────────────────────

def test_unreferenced_batch_can_be_deleted(staff_client, make_product, make_batch):
    product = make_product()
    batch_id = make_batch(product).id

    assert staff_client.delete(f'/batches/{batch_id}').status_code == 200
    assert db.session.get(ProductBatch, batch_id) is None
    assert staff_client.get(f'/batches/{batch_id}').status_code == 404

import pytest

from pharmacy import db
from pharmacy.customers.models import Customer


@pytest.fixture
def customer(staff_client):
    resp = staff_client.post('/customers', json={
        'name': 'John Doe',
        'phone': '9876543210',
        'email': 'john@example.com',
    })
    assert resp.status_code == 201
    return resp.get_json()


def test_create_and_search_customer(staff_client, customer):
    assert customer['name'] == 'John Doe'
    assert customer['address'] is None

    # Search
    resp = staff_client.get('/customers/search?q=9876')
    data = resp.get_json()
    assert len(data) == 1
    assert data[0]['name'] == 'John Doe'

    assert staff_client.get('/customers/search?q=').get_json() == []


def test_duplicate_phone_is_conflict(staff_client, customer):
    resp = staff_client.post('/customers', json={'name': 'Jane Doe', 'phone': '9876543210'})

    assert resp.status_code == 409
    assert resp.get_json()['details'] == {'phone': '9876543210'}
    assert Customer.query.count() == 1


def test_customer_requires_name_and_phone(staff_client):
    resp = staff_client.post('/customers', json={'email': 'not-an-email'})

    assert resp.status_code == 400
    assert set(resp.get_json()['details']) == {'name', 'phone', 'email'}


def test_update_customer(staff_client, customer):
    resp = staff_client.put(f"/customers/{customer['id']}", json={
        'name': 'John A. Doe',
        'phone': '9876543210',
        'address': '12 High Street',
    })

    assert resp.status_code == 200
    refreshed = db.session.get(Customer, customer['id'])
    assert refreshed.name == 'John A. Doe'
    assert refreshed.address == '12 High Street'
    assert refreshed.email is None


def test_update_to_taken_phone_is_conflict(staff_client, customer):
    other = staff_client.post('/customers', json={'name': 'Jane', 'phone': '5550000'}).get_json()

    resp = staff_client.put(f"/customers/{other['id']}", json={'name': 'Jane', 'phone': '9876543210'})

    assert resp.status_code == 409
    assert db.session.get(Customer, other['id']).phone == '5550000'


def test_list_searches_all_contact_fields(staff_client, customer):
    staff_client.post('/customers', json={'name': 'Mary Major', 'phone': '111', 'address': 'Oak Lane'})

    by_email = staff_client.get('/customers?query=example.com').get_json()
    assert [c['name'] for c in by_email['data']] == ['John Doe']

    by_address = staff_client.get('/customers?query=oak').get_json()
    assert [c['name'] for c in by_address['data']] == ['Mary Major']

    everyone = staff_client.get('/customers').get_json()
    assert everyone['pagination']['total'] == 2


def test_delete_customer_without_sales(staff_client, customer):
    resp = staff_client.delete(f"/customers/{customer['id']}")

    assert resp.status_code == 200
    assert staff_client.get(f"/customers/{customer['id']}").status_code == 404

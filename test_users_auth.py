"""
test_users_auth.py: session login and user management.

Run: pytest test_users_auth.py -v
"""
from pharmacy import db
from pharmacy.auth.models import RoleEnum, User

from conftest import login


# ── AUTH ────────────────────────────────────────────────────────────────────

def test_login_me_logout(client):
    resp = login(client, 'staff@test.local', 'staff123')
    assert resp.get_json()['user']['role'] == 'staff'
    assert 'password_hash' not in resp.get_json()['user']

    me = client.get('/auth/me')
    assert me.status_code == 200
    assert me.get_json()['email'] == 'staff@test.local'

    assert client.post('/auth/logout').status_code == 200
    assert client.get('/auth/me').status_code == 401


def test_login_is_case_insensitive_on_email(client):
    login(client, 'ADMIN@test.local', 'admin123')
    assert client.get('/auth/me').get_json()['role'] == 'admin'


def test_bad_credentials(client):
    resp = client.post('/auth/login', json={'email': 'admin@test.local', 'password': 'wrong'})
    assert resp.status_code == 401
    assert resp.get_json()['error'] == 'Invalid email or password.'

    resp = client.post('/auth/login', json={'email': 'nobody@test.local', 'password': 'admin123'})
    assert resp.status_code == 401


def test_login_requires_both_fields(client):
    assert client.post('/auth/login', json={'email': 'admin@test.local'}).status_code == 400


def test_login_rejects_non_text_password(client):
    resp = client.post('/auth/login', json={'email': 'admin@test.local', 'password': 123456})
    assert resp.status_code == 400
    assert 'password' in resp.get_json()['details']


# ── ADMIN USER MANAGEMENT ───────────────────────────────────────────────────

def test_admin_creates_staff_by_default(admin_client):
    resp = admin_client.post('/users', json={
        'name': 'Night Shift', 'email': 'Night@Test.local', 'password': 'secret1',
    })

    assert resp.status_code == 201
    body = resp.get_json()
    assert body['role'] == 'staff'
    assert body['email'] == 'night@test.local'
    assert User.query.filter_by(email='night@test.local').one().check_password('secret1')


def test_duplicate_email_is_conflict(admin_client):
    resp = admin_client.post('/users', json={
        'name': 'Copy', 'email': 'staff@test.local', 'password': 'secret1',
    })
    assert resp.status_code == 409


def test_user_validation(admin_client):
    resp = admin_client.post('/users', json={
        'name': '', 'email': 'nope', 'password': '123', 'role': 'owner',
    })

    assert resp.status_code == 400
    assert set(resp.get_json()['details']) == {'name', 'email', 'password', 'role'}


def test_non_text_password_is_rejected(admin_client, admin_user):
    resp = admin_client.post('/users', json={
        'name': 'Numbers', 'email': 'numbers@test.local', 'password': 1234567,
    })
    assert resp.status_code == 400
    assert set(resp.get_json()['details']) == {'password'}
    assert User.query.filter_by(email='numbers@test.local').first() is None

    resp = admin_client.put(f'/users/{admin_user.id}', json={
        'name': admin_user.name, 'email': admin_user.email, 'password': ['secret1'],
    })
    assert resp.status_code == 400
    assert 'password' in resp.get_json()['details']


def test_admin_updates_role(admin_client):
    staff = User.query.filter_by(email='staff@test.local').one()

    resp = admin_client.put(f'/users/{staff.id}', json={
        'name': staff.name, 'email': staff.email, 'role': 'admin',
    })

    assert resp.status_code == 200
    assert db.session.get(User, staff.id).role == RoleEnum.admin


def test_admin_cannot_demote_or_delete_self(admin_client, admin_user):
    resp = admin_client.put(f'/users/{admin_user.id}', json={
        'name': admin_user.name, 'email': admin_user.email, 'role': 'staff',
    })
    assert resp.status_code == 400

    assert admin_client.delete(f'/users/{admin_user.id}').status_code == 400
    assert db.session.get(User, admin_user.id).role == RoleEnum.admin


def test_delete_user(admin_client):
    staff = User.query.filter_by(email='staff@test.local').one()
    staff_id = staff.id

    assert admin_client.delete(f'/users/{staff_id}').status_code == 200
    assert db.session.get(User, staff_id) is None


def test_user_with_sales_is_kept(admin_client, make_product, make_lot):
    staff = User.query.filter_by(email='staff@test.local').one()
    product = make_product()
    lot = make_lot(product)

    admin_client.post('/auth/logout')
    login(admin_client, 'staff@test.local', 'staff123')
    sale = admin_client.post('/sales', json={'items': [{
        'product_id': product.id, 'inventory_id': lot.id, 'quantity': 1, 'unit_price': '10.00',
    }]})
    assert sale.status_code == 201

    admin_client.post('/auth/logout')
    login(admin_client)
    resp = admin_client.delete(f'/users/{staff.id}')

    assert resp.status_code == 409
    assert resp.get_json()['restrictions'][0]['type'] == 'sales'


def test_staff_cannot_manage_users(staff_client):
    assert staff_client.get('/users').status_code == 403
    assert staff_client.post('/users', json={}).status_code == 403


def test_demoted_admin_loses_access_without_new_login(app, admin_client):
    resp = admin_client.post('/users', json={
        'name': 'Second Admin', 'email': 'second@test.local', 'password': 'second1', 'role': 'admin',
    })
    assert resp.status_code == 201
    second_id = resp.get_json()['id']

    second = app.test_client()
    login(second, 'second@test.local', 'second1')
    assert second.get('/users').status_code == 200

    resp = admin_client.put(f'/users/{second_id}', json={
        'name': 'Second Admin', 'email': 'second@test.local', 'role': 'staff',
    })
    assert resp.status_code == 200

    assert second.get('/users').status_code == 403
    assert second.get('/auth/me').status_code == 200


def test_deleted_admin_session_is_rejected(app, admin_client):
    resp = admin_client.post('/users', json={
        'name': 'Temp Admin', 'email': 'temp@test.local', 'password': 'temp123', 'role': 'admin',
    })
    temp_id = resp.get_json()['id']
    temp = app.test_client()
    login(temp, 'temp@test.local', 'temp123')

    assert admin_client.delete(f'/users/{temp_id}').status_code == 200
    assert temp.get('/users').status_code == 401


def test_user_list_requires_login(client):
    assert client.get('/users').status_code == 401


# ── PROFILE ─────────────────────────────────────────────────────────────────

def test_profile_update_cannot_change_role(staff_client):
    resp = staff_client.put('/users/profile', json={
        'name': 'Front Desk 2', 'email': 'staff@test.local', 'role': 'admin', 'password': 'newpass1',
    })

    assert resp.status_code == 200
    assert resp.get_json()['role'] == 'staff'
    user = User.query.filter_by(email='staff@test.local').one()
    assert user.name == 'Front Desk 2'
    assert user.check_password('newpass1')


def test_profile_email_clash(staff_client):
    resp = staff_client.put('/users/profile', json={'name': 'X', 'email': 'admin@test.local'})
    assert resp.status_code == 409
    assert staff_client.get('/users/profile').get_json()['email'] == 'staff@test.local'


def test_profile_rejects_non_text_password(staff_client):
    resp = staff_client.put('/users/profile', json={
        'name': 'Front Desk', 'email': 'staff@test.local', 'password': 12345678,
    })
    assert resp.status_code == 400
    assert 'password' in resp.get_json()['details']
    assert User.query.filter_by(email='staff@test.local').one().check_password('staff123')

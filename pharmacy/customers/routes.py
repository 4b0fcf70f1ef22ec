from flask import current_app, jsonify, request
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from pharmacy import db
from pharmacy.auth.decorators import login_required
from pharmacy.customers import customers
from pharmacy.customers.models import Customer
from pharmacy.errors import ConflictError, NotFoundError, raise_if_errors
from pharmacy.guards import blocked_response, customer_delete_blockers
from pharmacy.utils.pagination import paginate
from pharmacy.utils.validation import check_email, check_text, request_data, text


def _validate(data: dict) -> dict:
    errors = {}
    check_text(errors, data, 'name', 'Name', max_len=100)
    check_text(errors, data, 'phone', 'Phone', max_len=20)
    check_email(errors, data, 'email', 'Email', required=False)
    check_text(errors, data, 'address', 'Address', required=False, max_len=500)
    return errors


def _fields(data: dict) -> dict:
    return {
        'name': text(data, 'name'),
        'phone': text(data, 'phone'),
        'email': text(data, 'email') or None,
        'address': text(data, 'address') or None,
    }


def _get_or_404(customer_id) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError(f'Customer {customer_id} not found.')
    return customer


def _duplicate_phone(phone):
    return ConflictError('Customer with this phone already exists.', details={'phone': phone})


@customers.route('')
@login_required
def index():
    """Paginated list, ?query= searches name, phone, email and address."""
    query = Customer.query
    term = text(request.args, 'query')
    if term:
        pattern = f'%{term}%'
        query = query.filter(or_(
            Customer.name.ilike(pattern),
            Customer.phone.ilike(pattern),
            Customer.email.ilike(pattern),
            Customer.address.ilike(pattern),
        ))
    return jsonify(paginate(query.order_by(Customer.name.asc(), Customer.id.asc()), Customer.to_dict))


@customers.route('/search')
@login_required
def search():
    """Quick lookup by phone or name for the checkout screen (max 10)."""
    q = text(request.args, 'q')
    if not q:
        return jsonify([])

    results = Customer.query.filter(
        (Customer.phone.ilike(f'%{q}%')) |
        (Customer.name.ilike(f'%{q}%'))
    ).order_by(Customer.name.asc()).limit(10).all()

    return jsonify([c.to_dict() for c in results])


@customers.route('', methods=['POST'])
@login_required
def create():
    data = request_data()
    raise_if_errors(_validate(data))
    fields = _fields(data)

    if Customer.query.filter_by(phone=fields['phone']).first():
        raise _duplicate_phone(fields['phone'])

    c = Customer(**fields)
    try:
        db.session.add(c)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise _duplicate_phone(fields['phone'])

    current_app.logger.info(f"Customer created: {c.name} ({c.phone})")
    return jsonify(c.to_dict()), 201


@customers.route('/<int:customer_id>')
@login_required
def detail(customer_id):
    return jsonify(_get_or_404(customer_id).to_dict())


@customers.route('/<int:customer_id>', methods=['PUT'])
@login_required
def update(customer_id):
    c = _get_or_404(customer_id)
    data = request_data()
    raise_if_errors(_validate(data))
    fields = _fields(data)

    clash = Customer.query.filter(
        Customer.phone == fields['phone'], Customer.id != c.id
    ).first()
    if clash:
        raise _duplicate_phone(fields['phone'])

    for key, value in fields.items():
        setattr(c, key, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise _duplicate_phone(fields['phone'])

    return jsonify(c.to_dict())


@customers.route('/<int:customer_id>', methods=['DELETE'])
@login_required
def delete(customer_id):
    c = _get_or_404(customer_id)
    blockers = customer_delete_blockers(c.id)
    if blockers:
        return blocked_response('customer', c.id, blockers)

    db.session.delete(c)
    db.session.commit()
    current_app.logger.info(f"Customer deleted: ID {customer_id}")
    return jsonify({'message': 'Customer deleted successfully.'})

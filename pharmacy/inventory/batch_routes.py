"""
pharmacy/inventory/batch_routes.py
──────────────────────────────────
Product batches: FEFO listing, create/update/delete and the point-of-sale
batch selection query.
"""
from flask import current_app, jsonify, request, session
from sqlalchemy.exc import IntegrityError

from pharmacy import db
from pharmacy.auth.decorators import login_required
from pharmacy.errors import ConflictError, NotFoundError, ValidationError, raise_if_errors
from pharmacy.guards import batch_delete_blockers, blocked_response
from pharmacy.inventory import batches
from pharmacy.inventory.fefo import select_batches
from pharmacy.inventory.models import BatchStatus, ProductBatch
from pharmacy.inventory.validators import BATCH_STATUSES, parse_batch, validate_batch
from pharmacy.products.models import Product
from pharmacy.utils.validation import (
    check_choice, check_int, int_value, request_data,
)


def _get_or_404(batch_id) -> ProductBatch:
    batch = db.session.get(ProductBatch, batch_id)
    if batch is None:
        raise NotFoundError(f'Batch {batch_id} not found.')
    return batch


def _duplicate(batch_number):
    return ConflictError(
        f'Batch "{batch_number}" already exists for this product.',
        details={'batch_number': batch_number},
    )


# ── LIST ──────────────────────────────────────────────────────────────────────

@batches.route('')
@login_required
def index():
    """Batches ordered FEFO (earliest expiry first), ?product_id= and ?status= filters."""
    args = request.args.to_dict()
    errors = {}
    check_int(errors, args, 'product_id', 'Product', minimum=1, required=False)
    check_choice(errors, args, 'status', 'Status', BATCH_STATUSES)
    raise_if_errors(errors, 'Invalid filters.')

    query = ProductBatch.query
    product_id = int_value(args, 'product_id')
    if product_id is not None:
        query = query.filter(ProductBatch.product_id == product_id)
    if args.get('status'):
        query = query.filter(ProductBatch.status == BatchStatus(args['status']))

    rows = query.order_by(ProductBatch.expiry_date.asc(), ProductBatch.batch_number.asc()).all()
    return jsonify({'data': [b.to_dict() for b in rows]})


@batches.route('/<int:batch_id>')
@login_required
def detail(batch_id):
    return jsonify(_get_or_404(batch_id).to_dict())


# ── FEFO SELECTION ────────────────────────────────────────────────────────────

@batches.route('/selection')
@login_required
def selection():
    """Selectable batches for ?product_id=&quantity=, FEFO ordered and flagged."""
    args = request.args.to_dict()
    errors = {}
    check_int(errors, args, 'product_id', 'Product', minimum=1)
    check_int(errors, args, 'quantity', 'Quantity', minimum=1)
    raise_if_errors(errors, 'Invalid batch selection request.')

    options = select_batches(int_value(args, 'product_id'), int_value(args, 'quantity'))
    return jsonify({'data': options})


# ── CREATE ────────────────────────────────────────────────────────────────────

@batches.route('', methods=['POST'])
@login_required
def create():
    data = request_data()
    raise_if_errors(validate_batch(data))
    fields = parse_batch(data)

    product = db.session.get(Product, fields['product_id'])
    if product is None:
        raise NotFoundError(f"Product {fields['product_id']} not found.")

    # Fast path; the UNIQUE constraint still catches races below
    if ProductBatch.query.filter_by(product_id=product.id, batch_number=fields['batch_number']).first():
        raise _duplicate(fields['batch_number'])

    batch = ProductBatch(**fields)
    try:
        db.session.add(batch)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise _duplicate(fields['batch_number'])

    current_app.logger.info(
        f"Batch {batch.batch_number!r} added for {product.name}: {batch.quantity} units "
        f"(User ID {session.get('user_id')})"
    )
    return jsonify(batch.to_dict()), 201


# ── UPDATE ────────────────────────────────────────────────────────────────────

@batches.route('/<int:batch_id>', methods=['PUT'])
@login_required
def update(batch_id):
    """Partial update. Status changes (e.g. marking a batch expired) are operator policy."""
    batch = _get_or_404(batch_id)
    data = request_data()
    if not data:
        raise ValidationError('No fields to update.')
    raise_if_errors(validate_batch(data, current=batch))

    fields = parse_batch(data)
    fields.pop('product_id', None)

    new_number = fields.get('batch_number')
    if new_number and new_number != batch.batch_number:
        clash = ProductBatch.query.filter(
            ProductBatch.product_id == batch.product_id,
            ProductBatch.batch_number == new_number,
            ProductBatch.id != batch.id,
        ).first()
        if clash:
            raise _duplicate(new_number)

    for key, value in fields.items():
        setattr(batch, key, value)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise _duplicate(new_number)

    current_app.logger.info(f"Batch {batch.batch_number!r} (ID {batch.id}) updated: {sorted(fields)}")
    return jsonify(batch.to_dict())


# ── DELETE ────────────────────────────────────────────────────────────────────

@batches.route('/<int:batch_id>', methods=['DELETE'])
@login_required
def delete(batch_id):
    batch = _get_or_404(batch_id)
    blockers = batch_delete_blockers(batch.id)
    if blockers:
        return blocked_response('batch', batch.id, blockers)

    number = batch.batch_number
    db.session.delete(batch)
    db.session.commit()
    current_app.logger.info(f"Batch {number!r} (ID {batch_id}) deleted")
    return jsonify({'message': 'Batch deleted successfully.'})

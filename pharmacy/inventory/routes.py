"""
pharmacy/inventory/routes.py
────────────────────────────
Inventory lots: listing, creation, stock receipt, audit trail, alerts.
"""
from datetime import date, timedelta

from flask import current_app, jsonify, request, session
from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError

from pharmacy import db
from pharmacy.auth.decorators import login_required
from pharmacy.errors import ConflictError, NotFoundError, raise_if_errors
from pharmacy.guards import blocked_response, inventory_delete_blockers
from pharmacy.inventory import inventory
from pharmacy.inventory.fefo import add_months
from pharmacy.inventory.models import InventoryLog, InventoryLot
from pharmacy.inventory.validators import parse_lot, validate_lot, validate_receipt
from pharmacy.products.models import Product
from pharmacy.utils.pagination import envelope, page_args, paginate
from pharmacy.utils.validation import (
    check_choice, check_int, int_value, is_true, request_data, text,
)

ALERT_TYPES = ['out-of-stock', 'low-stock', 'expiring']


def _get_or_404(inventory_id) -> InventoryLot:
    lot = db.session.get(InventoryLot, inventory_id)
    if lot is None:
        raise NotFoundError(f'Inventory record {inventory_id} not found.')
    return lot


# ── LIST ──────────────────────────────────────────────────────────────────────

@inventory.route('')
@login_required
def index():
    """Paginated lots with ?product_id=, ?query=, ?low_stock=true, ?expiring_soon=true."""
    args = request.args.to_dict()
    errors = {}
    check_int(errors, args, 'product_id', 'Product', minimum=1, required=False)
    raise_if_errors(errors, 'Invalid filters.')

    query = InventoryLot.query.join(Product, InventoryLot.product_id == Product.id)

    product_id = int_value(args, 'product_id')
    if product_id is not None:
        query = query.filter(InventoryLot.product_id == product_id)

    term = text(args, 'query')
    if term:
        pattern = f'%{term}%'
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.generic_name.ilike(pattern),
            Product.sku.ilike(pattern),
            InventoryLot.batch.ilike(pattern),
        ))

    if is_true(args.get('low_stock', '')):
        query = query.filter(InventoryLot.quantity <= InventoryLot.reorder_level)

    if is_true(args.get('expiring_soon', '')):
        today = date.today()
        horizon = today + timedelta(days=current_app.config['EXPIRING_SOON_DAYS'])
        query = query.filter(
            InventoryLot.expiry_date.isnot(None),
            InventoryLot.expiry_date > today,
            InventoryLot.expiry_date <= horizon,
        )

    query = query.order_by(Product.name.asc(), InventoryLot.expiry_date.asc(), InventoryLot.id.asc())
    return jsonify(paginate(query, InventoryLot.to_dict))


@inventory.route('/<int:inventory_id>')
@login_required
def detail(inventory_id):
    return jsonify(_get_or_404(inventory_id).to_dict())


# ── CREATE ────────────────────────────────────────────────────────────────────

@inventory.route('', methods=['POST'])
@login_required
def create():
    """Register a new lot. (product, batch) must be unique."""
    data = request_data()

    product = None
    errors = {}
    check_int(errors, data, 'product_id', 'Product', minimum=1)
    if not errors:
        product = db.session.get(Product, int_value(data, 'product_id'))
        if product is None:
            raise NotFoundError(f"Product {data['product_id']} not found.")

    raise_if_errors(validate_lot(data, expiry_required=product.expiry_date_required if product else False))
    fields = parse_lot(data)

    # Fast path; the UNIQUE constraint still catches races below
    if InventoryLot.query.filter_by(product_id=product.id, batch=fields['batch']).first():
        raise ConflictError(
            f'Inventory for batch "{fields["batch"]}" of this product already exists. '
            f'Use the receive endpoint to add stock.',
            details={'batch': fields['batch']},
        )

    lot = InventoryLot(**fields)
    try:
        db.session.add(lot)
        db.session.flush()
        db.session.add(InventoryLog(
            inventory_id=lot.id,
            old_quantity=0,
            new_quantity=lot.quantity,
            changed_by=session.get('user_id'),
            reason='Initial Stock (Inventory Created)',
        ))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError(
            f'Inventory for batch "{fields["batch"]}" of this product already exists.',
            details={'batch': fields['batch']},
        )

    current_app.logger.info(
        f"Inventory created: {product.name} batch {lot.batch!r} qty {lot.quantity}"
    )
    return jsonify(lot.to_dict()), 201


# ── RECEIVE STOCK ─────────────────────────────────────────────────────────────

@inventory.route('/<int:inventory_id>/receive', methods=['POST'])
@login_required
def receive(inventory_id):
    """Add a positive quantity to an existing lot, under a row lock."""
    data = request_data()
    raise_if_errors(validate_receipt(data))
    qty = int_value(data, 'quantity')

    lot = (
        db.session.query(InventoryLot)
        .filter(InventoryLot.id == inventory_id)
        .populate_existing()
        .with_for_update()
        .first()
    )
    if lot is None:
        raise NotFoundError(f'Inventory record {inventory_id} not found.')

    old_quantity = lot.quantity
    lot.quantity += qty
    db.session.add(InventoryLog(
        inventory_id=lot.id,
        old_quantity=old_quantity,
        new_quantity=lot.quantity,
        changed_by=session.get('user_id'),
        reason=text(data, 'reason') or f'Stock received (batch {lot.batch})',
    ))
    db.session.commit()

    current_app.logger.info(f"Stock received for lot {lot.id} ({lot.batch!r}): +{qty} units")
    return jsonify(lot.to_dict())


# ── DELETE ────────────────────────────────────────────────────────────────────

@inventory.route('/<int:inventory_id>', methods=['DELETE'])
@login_required
def delete(inventory_id):
    lot = _get_or_404(inventory_id)
    blockers = inventory_delete_blockers(lot.id)
    if blockers:
        return blocked_response('inventory record', lot.id, blockers)

    batch = lot.batch
    db.session.delete(lot)
    db.session.commit()
    current_app.logger.info(f"Inventory deleted: lot {inventory_id} ({batch!r})")
    return jsonify({'message': 'Inventory record deleted successfully.'})


# ── AUDIT TRAIL ───────────────────────────────────────────────────────────────

@inventory.route('/<int:inventory_id>/logs')
@login_required
def logs(inventory_id):
    lot = _get_or_404(inventory_id)
    query = (
        InventoryLog.query
        .filter_by(inventory_id=lot.id)
        .order_by(InventoryLog.timestamp.desc(), InventoryLog.id.desc())
    )
    return jsonify(paginate(query, InventoryLog.to_dict))


# ── ALERTS ────────────────────────────────────────────────────────────────────

def _alert_for(lot: InventoryLot, today: date, horizon: date):
    """Classify a lot. Precedence: out-of-stock, low-stock, expiring."""
    if lot.quantity == 0:
        return 'out-of-stock', 'high', f'{lot.product.name} (batch {lot.batch}) is out of stock'
    if lot.quantity <= lot.reorder_level:
        return ('low-stock', 'medium',
                f'{lot.product.name} (batch {lot.batch}) is low on stock: '
                f'{lot.quantity} left, reorder level {lot.reorder_level}')
    if lot.expiry_date is not None and today < lot.expiry_date <= horizon:
        days = (lot.expiry_date - today).days
        return ('expiring', 'high' if days <= 30 else 'medium',
                f'{lot.product.name} (batch {lot.batch}) expires in {days} days')
    return None


@inventory.route('/alerts')
@login_required
def alerts():
    """Paginated stock alerts, optionally filtered by ?type=."""
    args = request.args.to_dict()
    errors = {}
    check_choice(errors, args, 'type', 'Alert type', ALERT_TYPES)
    raise_if_errors(errors, 'Invalid filters.')

    today = date.today()
    horizon = add_months(today, current_app.config['NEAR_EXPIRY_MONTHS'])

    candidates = (
        InventoryLot.query
        .filter(or_(
            InventoryLot.quantity <= InventoryLot.reorder_level,
            and_(
                InventoryLot.expiry_date.isnot(None),
                InventoryLot.expiry_date > today,
                InventoryLot.expiry_date <= horizon,
            ),
        ))
        .order_by(InventoryLot.quantity.asc(), InventoryLot.expiry_date.asc(), InventoryLot.id.asc())
        .all()
    )

    wanted = args.get('type')
    rows = []
    for lot in candidates:
        classified = _alert_for(lot, today, horizon)
        if classified is None:
            continue
        kind, severity, message = classified
        if wanted and kind != wanted:
            continue
        rows.append({
            'type': kind,
            'severity': severity,
            'message': message,
            'inventory': lot.to_dict(),
        })

    page, limit = page_args()
    start = (page - 1) * limit
    return jsonify(envelope(rows[start:start + limit], page, limit, len(rows)))

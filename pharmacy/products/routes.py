from flask import current_app, jsonify, request
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from pharmacy import db
from pharmacy.auth.decorators import admin_required, login_required
from pharmacy.errors import ConflictError, NotFoundError, raise_if_errors
from pharmacy.guards import blocked_response, product_delete_blockers
from pharmacy.products import products
from pharmacy.products.models import Product
from pharmacy.products.validators import parse_product, validate_product
from pharmacy.utils.pagination import paginate
from pharmacy.utils.validation import check_choice, request_data, text

SORT_FIELDS = {
    'name': Product.name,
    'price': Product.price,
    'category': Product.category,
    'manufacturer': Product.manufacturer,
    'created_at': Product.created_at,
}


def _get_or_404(product_id) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f'Product {product_id} not found.')
    return product


# ── LIST ──────────────────────────────────────────────────────────────────────

@products.route('')
@login_required
def index():
    """Paginated catalog with ?category=, ?query= search and sorting."""
    args = request.args.to_dict()
    errors = {}
    check_choice(errors, args, 'sort_by', 'Sort field', list(SORT_FIELDS))
    check_choice(errors, args, 'sort_order', 'Sort order', ['asc', 'desc'])
    raise_if_errors(errors, 'Invalid filters.')

    query = Product.query
    if text(args, 'category'):
        query = query.filter(Product.category == text(args, 'category'))
    term = text(args, 'query')
    if term:
        pattern = f'%{term}%'
        query = query.filter(or_(
            Product.name.ilike(pattern),
            Product.generic_name.ilike(pattern),
            Product.description.ilike(pattern),
            Product.manufacturer.ilike(pattern),
            Product.sku.ilike(pattern),
        ))

    column = SORT_FIELDS[args.get('sort_by') or 'name']
    ordering = column.desc() if args.get('sort_order') == 'desc' else column.asc()
    return jsonify(paginate(query.order_by(ordering, Product.id.asc()), Product.to_dict))


@products.route('/<int:product_id>')
@login_required
def detail(product_id):
    return jsonify(_get_or_404(product_id).to_dict())


# ── CREATE ────────────────────────────────────────────────────────────────────

@products.route('', methods=['POST'])
@admin_required
def create():
    data = request_data()
    raise_if_errors(validate_product(data, creating=True))

    sku = text(data, 'sku')
    # Fast path; the UNIQUE constraint still catches races below
    if Product.query.filter_by(sku=sku).first():
        raise ConflictError('A product with this SKU already exists.', details={'sku': sku})

    product = Product(sku=sku, **parse_product(data))
    try:
        db.session.add(product)
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError('A product with this SKU already exists.', details={'sku': sku})

    current_app.logger.info(f"Product created: {product.name} (SKU: {product.sku})")
    return jsonify(product.to_dict()), 201


# ── UPDATE ────────────────────────────────────────────────────────────────────

@products.route('/<int:product_id>', methods=['PUT'])
@admin_required
def update(product_id):
    """Update catalog fields. The SKU is immutable and ignored if sent."""
    product = _get_or_404(product_id)
    data = request_data()
    raise_if_errors(validate_product(data, creating=False))

    for key, value in parse_product(data, creating=False).items():
        setattr(product, key, value)
    db.session.commit()

    current_app.logger.info(f"Product updated: {product.name} (ID: {product.id})")
    return jsonify(product.to_dict())


# ── DELETE ────────────────────────────────────────────────────────────────────

@products.route('/<int:product_id>/can-delete')
@login_required
def can_delete(product_id):
    product = _get_or_404(product_id)
    blockers = product_delete_blockers(product.id)
    return jsonify({
        'can_delete': not blockers,
        'restrictions': blockers,
    })


@products.route('/<int:product_id>', methods=['DELETE'])
@admin_required
def delete(product_id):
    product = _get_or_404(product_id)
    blockers = product_delete_blockers(product.id)
    if blockers:
        return blocked_response('product', product.id, blockers)

    name = product.name
    db.session.delete(product)
    db.session.commit()
    current_app.logger.info(f"Product deleted: {name} (ID: {product_id})")
    return jsonify({'message': 'Product deleted successfully.'})

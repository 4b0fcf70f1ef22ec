from datetime import date, datetime, time, timedelta

from flask import jsonify, request, session

from pharmacy import db
from pharmacy.auth.decorators import login_required
from pharmacy.errors import NotFoundError, raise_if_errors
from pharmacy.sales import sales
from pharmacy.sales.models import Sale, SaleStatus
from pharmacy.sales.schemas import parse_sale
from pharmacy.sales.settlement import reverse_sale, settle_sale
from pharmacy.utils.pagination import paginate
from pharmacy.utils.validation import (
    check_choice, check_date, check_int, date_value, int_value, request_data,
)

SORT_FIELDS = {
    'created_at': Sale.created_at,
    'total_amount': Sale.total_amount,
    'status': Sale.status,
}


# ── LIST ──────────────────────────────────────────────────────────────────────

@sales.route('')
@login_required
def index():
    """
    Paginated sales ledger.

    ?start_date=&end_date= are inclusive calendar days. Without a customer
    filter the window defaults to the last 30 days; with ?customer_id= the
    customer's full history is returned.
    """
    args = request.args.to_dict()
    errors = {}
    check_date(errors, args, 'start_date', 'Start date', required=False)
    check_date(errors, args, 'end_date', 'End date', required=False)
    check_int(errors, args, 'customer_id', 'Customer', minimum=1, required=False)
    check_choice(errors, args, 'status', 'Status', [s.value for s in SaleStatus])
    check_choice(errors, args, 'sort_by', 'Sort field', list(SORT_FIELDS))
    check_choice(errors, args, 'sort_order', 'Sort order', ['asc', 'desc'])
    raise_if_errors(errors, 'Invalid filters.')

    query = Sale.query
    customer_id = int_value(args, 'customer_id')
    start = date_value(args, 'start_date')
    end = date_value(args, 'end_date')

    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    elif start is None and end is None:
        start = date.today() - timedelta(days=30)

    if start is not None:
        query = query.filter(Sale.created_at >= datetime.combine(start, time.min))
    if end is not None:
        query = query.filter(Sale.created_at < datetime.combine(end + timedelta(days=1), time.min))
    if args.get('status'):
        query = query.filter(Sale.status == SaleStatus(args['status']))

    column = SORT_FIELDS[args.get('sort_by') or 'created_at']
    ordering = column.asc() if args.get('sort_order') == 'asc' else column.desc()
    query = query.order_by(ordering, Sale.id.desc())

    return jsonify(paginate(query, lambda s: s.to_dict(include_items=False)))


@sales.route('/<int:sale_id>')
@login_required
def detail(sale_id):
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f'Sale {sale_id} not found.')
    return jsonify(sale.to_dict())


# ── SETTLE ────────────────────────────────────────────────────────────────────

@sales.route('', methods=['POST'])
@login_required
def create():
    """Settle a sale: validate, lock, decrement stock, persist."""
    sale_request = parse_sale(request_data())
    sale = settle_sale(sale_request, session.get('user_id'))
    return jsonify(sale.to_dict()), 201


# ── REVERSE ───────────────────────────────────────────────────────────────────

@sales.route('/<int:sale_id>', methods=['DELETE'])
@login_required
def delete(sale_id):
    """Reverse a sale: restore its stock and remove it from the ledger."""
    summary = reverse_sale(sale_id, session.get('user_id'))
    return jsonify({
        'message': f'Sale #{sale_id} deleted and inventory restored.',
        **summary,
    })

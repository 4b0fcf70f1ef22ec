"""
pharmacy/main/reports.py
────────────────────────
Read-only reporting over the sale ledger and current stock.

Routes:
  GET  /reports     → sales summary for a date window + inventory summary
  GET  /analytics   → six-month revenue trend, margins, stock value, turnover

Only completed sales count. Line revenue is (unit_price - discount) × quantity,
the same rule settlement uses for Sale.total_amount.
"""
import calendar
from collections import defaultdict
from datetime import date, datetime, time, timedelta
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app, jsonify, request
from sqlalchemy import extract, func, or_

from pharmacy import db
from pharmacy.auth.decorators import login_required
from pharmacy.errors import ValidationError, raise_if_errors
from pharmacy.inventory.fefo import add_months
from pharmacy.inventory.models import InventoryLot, ProductBatch
from pharmacy.main import main
from pharmacy.products.models import Product
from pharmacy.sales.models import Sale, SaleItem, SaleStatus
from pharmacy.utils.formatting import CENT, iso, money, to_decimal
from pharmacy.utils.validation import check_date, date_value

# ── Constants ─────────────────────────────────────────────────────
REPORT_WINDOW_DAYS     = 30
REPORT_TOP_PRODUCTS    = 5
ANALYTICS_MONTHS       = 6
ANALYTICS_TOP_PRODUCTS = 4

LINE_REVENUE = (SaleItem.unit_price - SaleItem.discount) * SaleItem.quantity
# Batch purchase price when the line names a batch, catalog cost otherwise
LINE_COST    = func.coalesce(ProductBatch.purchase_price, Product.cost_price) * SaleItem.quantity


# ── Shared helpers ────────────────────────────────────────────────

def _completed_between(query, start: datetime, end: datetime = None):
    """Restrict a query that already involves Sale to completed sales in [start, end)."""
    query = query.filter(Sale.status == SaleStatus.completed, Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at < end)
    return query


def _lines_query(*columns):
    """SaleItem rows joined to their Sale, Product and (optional) batch."""
    return (
        db.session.query(*columns)
        .select_from(SaleItem)
        .join(Sale, SaleItem.sale_id == Sale.id)
        .join(Product, SaleItem.product_id == Product.id)
        .outerjoin(ProductBatch, SaleItem.batch_id == ProductBatch.id)
    )


def _two_places(value) -> str:
    return str(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def _percent(part, whole) -> str:
    whole = to_decimal(whole)
    if not whole:
        return '0.00'
    return _two_places(to_decimal(part) / whole * 100)


def _report_window(args: dict):
    """Inclusive (start, end) calendar days; the last 30 days by default."""
    errors = {}
    check_date(errors, args, 'start_date', 'Start date', required=False)
    check_date(errors, args, 'end_date', 'End date', required=False)
    raise_if_errors(errors, 'Invalid report window.')

    today = date.today()
    start = date_value(args, 'start_date') or today - timedelta(days=REPORT_WINDOW_DAYS)
    end = date_value(args, 'end_date') or today
    if start > end:
        raise ValidationError(
            'Invalid report window.',
            details={'start_date': 'Start date must not be after the end date.'},
        )
    return start, end


# ═══════════════════════════════════════════════════════════════════
# 1. REPORTS: GET /reports
# ═══════════════════════════════════════════════════════════════════

@main.route('/reports')
@login_required
def reports():
    """
    Sales summary for ?start_date=&end_date= (inclusive days) with the top
    products by revenue and their per-batch breakdown, plus a snapshot of
    current inventory.
    """
    start, end = _report_window(request.args.to_dict())
    start_at = datetime.combine(start, time.min)
    end_at = datetime.combine(end + timedelta(days=1), time.min)

    # ── Sales ─────────────────────────────────────────────────────
    total_sales, total_revenue = _completed_between(
        db.session.query(func.count(Sale.id), func.coalesce(func.sum(Sale.total_amount), 0)),
        start_at, end_at,
    ).one()
    total_revenue = to_decimal(total_revenue)
    average = total_revenue / total_sales if total_sales else Decimal('0')

    top_rows = (
        _completed_between(_lines_query(
            Product.id,
            Product.name,
            func.sum(SaleItem.quantity),
            func.coalesce(func.sum(LINE_REVENUE), 0),
        ), start_at, end_at)
        .group_by(Product.id, Product.name)
        .order_by(func.sum(LINE_REVENUE).desc(), Product.id.asc())
        .limit(REPORT_TOP_PRODUCTS)
        .all()
    )

    batch_sales = defaultdict(list)
    if top_rows:
        batch_rows = (
            _completed_between(_lines_query(
                SaleItem.product_id,
                SaleItem.batch_number,
                SaleItem.batch_expiry_date,
                func.sum(SaleItem.quantity),
                func.coalesce(func.sum(LINE_REVENUE), 0),
            ), start_at, end_at)
            .filter(
                SaleItem.product_id.in_([row[0] for row in top_rows]),
                SaleItem.batch_number.isnot(None),
            )
            .group_by(SaleItem.product_id, SaleItem.batch_number, SaleItem.batch_expiry_date)
            .order_by(SaleItem.batch_expiry_date.asc(), SaleItem.batch_number.asc())
            .all()
        )
        for product_id, batch_number, expiry, quantity, revenue in batch_rows:
            batch_sales[product_id].append({
                'batch_number': batch_number,
                'expiry_date': iso(expiry),
                'quantity': int(quantity),
                'revenue': money(revenue),
            })

    top_products = [
        {
            'product_id': product_id,
            'name': name,
            'quantity': int(quantity),
            'revenue': money(revenue),
            'batch_sales': batch_sales.get(product_id, []),
        }
        for product_id, name, quantity, revenue in top_rows
    ]

    # ── Inventory ─────────────────────────────────────────────────
    today = date.today()
    horizon = today + timedelta(days=current_app.config['EXPIRING_SOON_DAYS'])
    stock_value = (
        db.session.query(func.coalesce(func.sum(InventoryLot.quantity * Product.price), 0))
        .select_from(InventoryLot)
        .join(Product, InventoryLot.product_id == Product.id)
        .scalar()
    )

    return jsonify({
        'period': {'start_date': start.isoformat(), 'end_date': end.isoformat()},
        'sales_summary': {
            'total_sales': total_sales,
            'total_revenue': money(total_revenue),
            'average_order_value': money(average),
            'top_selling_products': top_products,
        },
        'inventory_summary': {
            'total_products': Product.query.count(),
            'total_stock_value': money(stock_value),
            'low_stock_items': InventoryLot.query.filter(
                InventoryLot.quantity <= InventoryLot.reorder_level
            ).count(),
            'expiring_soon_items': InventoryLot.query.filter(
                InventoryLot.expiry_date.isnot(None),
                InventoryLot.expiry_date > today,
                InventoryLot.expiry_date <= horizon,
            ).count(),
        },
        'currency': current_app.config['CURRENCY'],
    })


# ═══════════════════════════════════════════════════════════════════
# 2. ANALYTICS: GET /analytics
# ═══════════════════════════════════════════════════════════════════

@main.route('/analytics')
@login_required
def analytics():
    """Revenue per month for the last six calendar months and where it came from."""
    today = date.today()
    first_month = add_months(today.replace(day=1), -(ANALYTICS_MONTHS - 1))
    since = datetime.combine(first_month, time.min)

    # ── Monthly revenue ───────────────────────────────────────────
    year_col = extract('year', Sale.created_at)
    month_col = extract('month', Sale.created_at)
    monthly_rows = _completed_between(
        db.session.query(year_col, month_col, func.sum(Sale.total_amount), func.count(Sale.id)),
        since,
    ).group_by(year_col, month_col).all()
    by_month = {(int(y), int(m)): (to_decimal(total), count) for y, m, total, count in monthly_rows}

    monthly = []
    for n in range(ANALYTICS_MONTHS):
        month = add_months(first_month, n)
        total, count = by_month.get((month.year, month.month), (Decimal('0'), 0))
        monthly.append({
            'month': month.strftime('%Y-%m'),
            'label': calendar.month_abbr[month.month],
            'revenue': money(total),
            'count': count,
        })

    # ── Margin over the same window ───────────────────────────────
    revenue, cost = _completed_between(
        _lines_query(
            func.coalesce(func.sum(LINE_REVENUE), 0),
            func.coalesce(func.sum(LINE_COST), 0),
        ),
        since,
    ).one()

    top_rows = (
        _completed_between(_lines_query(
            Product.id,
            Product.name,
            func.sum(SaleItem.quantity),
            func.coalesce(func.sum(LINE_REVENUE), 0),
            func.coalesce(func.sum(LINE_COST), 0),
        ), since)
        .group_by(Product.id, Product.name)
        .order_by(func.sum(LINE_REVENUE).desc(), Product.id.asc())
        .limit(ANALYTICS_TOP_PRODUCTS)
        .all()
    )

    # ── Stock on hand (expired lots excluded) ─────────────────────
    cost_value, market_value = (
        db.session.query(
            func.coalesce(func.sum(InventoryLot.quantity * Product.cost_price), 0),
            func.coalesce(func.sum(InventoryLot.quantity * Product.price), 0),
        )
        .select_from(InventoryLot)
        .join(Product, InventoryLot.product_id == Product.id)
        .filter(or_(InventoryLot.expiry_date.is_(None), InventoryLot.expiry_date > today))
        .one()
    )

    # ── Quarterly turnover (annualized units sold / units on hand) ─
    on_hand = db.session.query(func.coalesce(func.sum(InventoryLot.quantity), 0)).scalar()
    quarterly = []
    for q in range(4):
        q_start = date(today.year, 3 * q + 1, 1)
        sold = _completed_between(
            _lines_query(func.coalesce(func.sum(SaleItem.quantity), 0)),
            datetime.combine(q_start, time.min),
            datetime.combine(add_months(q_start, 3), time.min),
        ).scalar()
        turnover = Decimal(sold) / Decimal(on_hand) * 4 if sold and on_hand else Decimal('0')
        quarterly.append({'label': f'Q{q + 1}', 'turnover': _two_places(turnover)})

    return jsonify({
        'period': {'start_date': first_month.isoformat(), 'end_date': today.isoformat()},
        'monthly_revenue': monthly,
        'total_revenue': money(sum((total for total, _ in by_month.values()), Decimal('0'))),
        'total_sales': sum(count for _, count in by_month.values()),
        'profit_margin': _percent(to_decimal(revenue) - to_decimal(cost), revenue),
        'inventory_value': {
            'cost': money(cost_value),
            'market': money(market_value),
        },
        'quarterly_turnover': quarterly,
        'top_products': [
            {
                'product_id': product_id,
                'name': name,
                'quantity': int(quantity),
                'revenue': money(line_revenue),
                'margin': _percent(to_decimal(line_revenue) - to_decimal(line_cost), line_revenue),
            }
            for product_id, name, quantity, line_revenue, line_cost in top_rows
        ],
        'currency': current_app.config['CURRENCY'],
    })

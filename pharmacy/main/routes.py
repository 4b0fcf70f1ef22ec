"""
pharmacy/main/routes.py
───────────────────────
Dashboard KPIs (sales and stock health) and the health check.
"""
from datetime import date, datetime, time, timedelta
from decimal import Decimal

from flask import current_app, jsonify
from sqlalchemy import func, text

from pharmacy import db
from pharmacy.auth.decorators import login_required
from pharmacy.inventory.fefo import add_months
from pharmacy.inventory.models import InventoryLot
from pharmacy.main import main
from pharmacy.sales.models import Sale, SaleStatus
from pharmacy.utils.formatting import display_date, format_money, money, to_decimal

TREND_DAYS = 7
RECENT_SALES = 5


def _start_of(day: date) -> datetime:
    return datetime.combine(day, time.min)


def _sales_between(start: datetime, end: datetime):
    """(sum, count) of completed sales in [start, end)."""
    total, count = (
        db.session.query(
            func.coalesce(func.sum(Sale.total_amount), 0),
            func.count(Sale.id),
        )
        .filter(
            Sale.status == SaleStatus.completed,
            Sale.created_at >= start,
            Sale.created_at < end,
        )
        .one()
    )
    return to_decimal(total), count


@main.route('/dashboard')
@login_required
def dashboard():
    """Today's takings, month revenue, 7-day trend and stock health counts."""
    # Sale timestamps are stored in UTC, so sales are bucketed by UTC day
    today = datetime.utcnow().date()
    tomorrow = _start_of(today + timedelta(days=1))
    currency = current_app.config['CURRENCY']
    date_format = current_app.config['DATE_FORMAT']

    # ── Sales ─────────────────────────────────────────────────────
    today_total, today_count = _sales_between(_start_of(today), tomorrow)
    month_total, month_count = _sales_between(_start_of(today.replace(day=1)), tomorrow)

    trend_start = today - timedelta(days=TREND_DAYS - 1)
    buckets = {trend_start + timedelta(days=n): [Decimal('0'), 0] for n in range(TREND_DAYS)}
    recent_rows = (
        db.session.query(Sale.created_at, Sale.total_amount)
        .filter(
            Sale.status == SaleStatus.completed,
            Sale.created_at >= _start_of(trend_start),
            Sale.created_at < tomorrow,
        )
        .all()
    )
    for created_at, amount in recent_rows:
        bucket = buckets.get(created_at.date())
        if bucket is not None:
            bucket[0] += to_decimal(amount)
            bucket[1] += 1

    trend = [
        {
            'date': day.isoformat(),
            'label': display_date(day, date_format),
            'total': money(total),
            'count': count,
        }
        for day, (total, count) in sorted(buckets.items())
    ]

    recent_sales = (
        Sale.query
        .filter(Sale.status == SaleStatus.completed)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .limit(RECENT_SALES)
        .all()
    )

    # ── Stock health ──────────────────────────────────────────────
    today = date.today()
    horizon = add_months(today, current_app.config['NEAR_EXPIRY_MONTHS'])
    low_stock = InventoryLot.query.filter(InventoryLot.quantity <= InventoryLot.reorder_level).count()
    expiring_soon = InventoryLot.query.filter(
        InventoryLot.expiry_date.isnot(None),
        InventoryLot.expiry_date > today,
        InventoryLot.expiry_date <= horizon,
    ).count()
    expired = InventoryLot.query.filter(
        InventoryLot.expiry_date.isnot(None),
        InventoryLot.expiry_date <= today,
    ).count()

    return jsonify({
        'currency': currency,
        'today': {
            'total': money(today_total),
            'display': format_money(today_total, currency),
            'count': today_count,
        },
        'month': {
            'total': money(month_total),
            'display': format_money(month_total, currency),
            'count': month_count,
        },
        'trend': trend,
        'stock': {
            'low_stock': low_stock,
            'expiring_soon': expiring_soon,
            'expired': expired,
        },
        'recent_sales': [s.to_dict(include_items=False) for s in recent_sales],
    })


@main.route('/health')
def health():
    """Health check for load balancers and monitoring."""
    try:
        db.session.execute(text("SELECT 1"))
    except Exception as e:
        current_app.logger.error(f"Health check failed (DB): {e}")
        db.session.rollback()
        return jsonify({'status': 'error', 'timestamp': datetime.utcnow().isoformat()}), 500
    return jsonify({'status': 'ok', 'timestamp': datetime.utcnow().isoformat()})

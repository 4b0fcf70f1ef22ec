"""
pharmacy/inventory/fefo.py
──────────────────────────
First-Expiry-First-Out batch selection for the point of sale.

The cashier picks exactly one batch per line item. This module only lists
the candidates in FEFO order and flags which of them can be picked; it never
splits a quantity across batches and never writes.
"""
import calendar
from datetime import date

from flask import current_app

from pharmacy import db
from pharmacy.errors import NotFoundError, ValidationError
from pharmacy.inventory.models import BatchStatus, ProductBatch
from pharmacy.products.models import Product
from pharmacy.utils.validation import MAX_DB_INT


def add_months(day: date, months: int) -> date:
    """Same day-of-month `months` later, clamped to the month's last day."""
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def batch_option(batch: ProductBatch, quantity: int, today: date, horizon: date) -> dict:
    """Describe one batch as a selectable (or disabled) option."""
    expired      = batch.expiry_date <= today
    near_expiry  = not expired and batch.expiry_date <= horizon
    insufficient = batch.quantity < quantity

    option = batch.to_dict()
    option.update({
        'expired': expired,
        'near_expiry': near_expiry,
        'insufficient': insufficient,
        'selectable': not expired and not insufficient,
    })
    return option


def select_batches(product_id, quantity, today: date = None) -> list:
    """
    List the product's active batches for a sale line of `quantity` units.

    Ordered by expiry date ascending, ties broken by batch number. Each
    option carries expired / near_expiry / insufficient flags and a
    `selectable` verdict.

    Raises:
        ValidationError: quantity is not a positive integer.
        NotFoundError:   unknown product, or it has no active batches.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or not 0 < quantity <= MAX_DB_INT:
        raise ValidationError(
            'Quantity must be a positive integer.',
            details={'quantity': 'Quantity must be a positive integer.'},
        )

    product = db.session.get(Product, product_id) if 0 < product_id <= MAX_DB_INT else None
    if product is None:
        raise NotFoundError(f'Product {product_id} not found.')

    batches = (
        ProductBatch.query
        .filter_by(product_id=product.id, status=BatchStatus.active)
        .order_by(ProductBatch.expiry_date.asc(), ProductBatch.batch_number.asc())
        .all()
    )
    if not batches:
        raise NotFoundError(f'No active batches available for "{product.name}".')

    today = today or date.today()
    horizon = add_months(today, current_app.config['NEAR_EXPIRY_MONTHS'])
    return [batch_option(b, quantity, today, horizon) for b in batches]

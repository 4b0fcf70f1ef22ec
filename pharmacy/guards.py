"""
pharmacy/guards.py
──────────────────
Read-before-delete checks for records the sale ledger depends on.

Each *_delete_blockers() returns a list of restrictions:

    [{"type": "sales", "count": 3, "message": "Product is used in 3 sales"}]

An empty list means the record may be deleted. These are plain count
queries, not locks: a race can only turn an allowed delete into a rejected
one on retry, never lose ledger data.

Models are imported inside each check: blueprint routes import this module
while their own package is still initialising.
"""
from flask import current_app, jsonify
from sqlalchemy import func

from pharmacy import db


def _restriction(kind: str, count: int, message: str) -> dict:
    return {'type': kind, 'count': count, 'message': message}


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" + ("" if count == 1 else "s")


def product_delete_blockers(product_id: int) -> list:
    from pharmacy.inventory.models import InventoryLot
    from pharmacy.sales.models import SaleItem

    blockers = []

    sales_count = (
        db.session.query(func.count(func.distinct(SaleItem.sale_id)))
        .filter(SaleItem.product_id == product_id)
        .scalar()
    )
    if sales_count:
        blockers.append(_restriction(
            'sales', sales_count, f"Product is used in {_plural(sales_count, 'sale')}"
        ))

    lot_count = InventoryLot.query.filter_by(product_id=product_id).count()
    if lot_count:
        blockers.append(_restriction(
            'inventory', lot_count, f"Product has {_plural(lot_count, 'inventory record')}"
        ))

    return blockers


def customer_delete_blockers(customer_id: int) -> list:
    from pharmacy.sales.models import Sale

    sales_count = Sale.query.filter_by(customer_id=customer_id).count()
    if not sales_count:
        return []
    return [_restriction(
        'sales', sales_count, f"Customer has {_plural(sales_count, 'sale')} on record"
    )]


def inventory_delete_blockers(inventory_id: int) -> list:
    from pharmacy.sales.models import SaleItem

    item_count = SaleItem.query.filter_by(inventory_id=inventory_id).count()
    if not item_count:
        return []
    return [_restriction(
        'sale_items', item_count, f"Inventory record is referenced by {_plural(item_count, 'sale line')}"
    )]


def batch_delete_blockers(batch_id: int) -> list:
    from pharmacy.sales.models import SaleItem

    item_count = SaleItem.query.filter_by(batch_id=batch_id).count()
    if not item_count:
        return []
    return [_restriction(
        'sale_items', item_count, f"Batch is referenced by {_plural(item_count, 'sale line')}"
    )]


def user_delete_blockers(user_id: int) -> list:
    from pharmacy.sales.models import Sale

    sales_count = Sale.query.filter_by(processed_by=user_id).count()
    if not sales_count:
        return []
    return [_restriction(
        'sales', sales_count, f"User processed {_plural(sales_count, 'sale')}"
    )]


def blocked_response(label: str, record_id: int, blockers: list):
    """409 body for a delete that the guard refused. The row is left in place."""
    current_app.logger.warning(
        f"Delete blocked: {label} {record_id} | "
        + ", ".join(f"{b['type']}={b['count']}" for b in blockers)
    )
    return jsonify({
        'error': f'Cannot delete {label}',
        'message': f'This {label} cannot be deleted because it is still referenced.',
        'restrictions': blockers,
    }), 409

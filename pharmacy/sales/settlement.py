"""
pharmacy/sales/settlement.py
────────────────────────────
Atomic sale settlement and reversal.

settle_sale()
  1. Lock every referenced inventory lot, then every batch, with
     SELECT … FOR UPDATE in ascending id order
  2. Re-check existence, ownership, prescription and stock on the locked rows
  3. Insert Sale + SaleItems (total computed here, batch snapshot copied
     from the locked batch row)
  4. Decrement lots and batches; a batch that hits zero becomes depleted
  5. Write InventoryLog rows and commit

reverse_sale()
  Lock the sale, its lots and its batches; restore every line's quantity
  (re-activating batches), flush, then delete the sale. Restore and delete
  commit together.

Both run through run_in_transaction(): one commit, full rollback on any
error, and exactly one retry when the database reports a transient conflict
(deadlock, serialization failure, statement timeout).
"""
from collections import defaultdict
from datetime import date

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError

from pharmacy import db
from pharmacy.auth.models import User
from pharmacy.customers.models import Customer
from pharmacy.errors import (
    AuthenticationError, ConflictError, NotFoundError, ValidationError,
)
from pharmacy.inventory.models import BatchStatus, InventoryLog, InventoryLot, ProductBatch
from pharmacy.products.models import Product
from pharmacy.sales.models import Sale, SaleItem
from pharmacy.sales.schemas import SaleRequest

MAX_ATTEMPTS = 2


# ── Transaction boundary ──────────────────────────────────────────

def _bound_transaction():
    """Cap statement time for this transaction (PostgreSQL only)."""
    if db.engine.dialect.name == 'postgresql':
        timeout_ms = int(current_app.config['SETTLEMENT_TIMEOUT_MS'])
        db.session.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))


def run_in_transaction(work, description: str):
    """
    Run `work()` and commit. Roll back on any error.
    An OperationalError is retried once with a fresh transaction.
    """
    for attempt in range(1, MAX_ATTEMPTS + 1):
        try:
            _bound_transaction()
            result = work()
            db.session.commit()
            return result

        except OperationalError as exc:
            db.session.rollback()
            if attempt == MAX_ATTEMPTS:
                current_app.logger.error(f"{description} failed after retry: {exc}")
                raise ConflictError(
                    f'{description} could not be completed due to a concurrent update. Please try again.'
                ) from exc
            current_app.logger.warning(f"{description} hit a transient conflict, retrying: {exc}")

        except IntegrityError as exc:
            db.session.rollback()
            current_app.logger.error(f"{description} rollback (IntegrityError): {exc}")
            raise ConflictError(
                f'{description} conflicts with the current state of the database.'
            ) from exc

        except Exception:
            db.session.rollback()
            raise


def _lock_rows(model, ids) -> dict:
    """SELECT … FOR UPDATE each row, ascending id order. Missing ids are omitted."""
    locked = {}
    for row_id in sorted(set(ids)):
        row = (
            db.session.query(model)
            .filter(model.id == row_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if row is not None:
            locked[row_id] = row
    return locked


def _log_change(lot: InventoryLot, old_quantity: int, user_id, reason: str) -> None:
    db.session.add(InventoryLog(
        inventory_id=lot.id,
        old_quantity=old_quantity,
        new_quantity=lot.quantity,
        changed_by=user_id,
        reason=reason,
    ))


# ── Settlement ────────────────────────────────────────────────────

def _resolve_customer(sale_request: SaleRequest):
    if sale_request.customer_id is not None:
        customer = db.session.get(Customer, sale_request.customer_id)
        if customer is None:
            raise NotFoundError(f'Customer {sale_request.customer_id} not found.')
        return customer

    inline = sale_request.customer
    if inline is None:
        return None

    customer = Customer.query.filter_by(phone=inline.phone).first()
    if customer is None:
        customer = Customer(name=inline.name, phone=inline.phone, email=inline.email)
        db.session.add(customer)
        db.session.flush()
        current_app.logger.info(f"Customer created at checkout: {customer.phone}")
    return customer


def _check_lines(sale_request: SaleRequest, lots: dict, batches: dict) -> dict:
    """
    Validate every line against the locked rows.
    Returns {product_id: Product}. Raises on the first class of failure found,
    but reports every offending line within that class.
    """
    products = {}
    for line in sale_request.items:
        if line.product_id not in products:
            product = db.session.get(Product, line.product_id)
            if product is None:
                raise NotFoundError(f'Product {line.product_id} not found.')
            products[line.product_id] = product
        if line.inventory_id not in lots:
            raise NotFoundError(f'Inventory record {line.inventory_id} not found.')
        if line.batch_id is not None and line.batch_id not in batches:
            raise NotFoundError(f'Batch {line.batch_id} not found.')

    mismatches = {}
    for index, line in enumerate(sale_request.items):
        if lots[line.inventory_id].product_id != line.product_id:
            mismatches[f'items[{index}].inventory_id'] = 'Inventory record belongs to a different product.'
        if line.batch_id is not None and batches[line.batch_id].product_id != line.product_id:
            mismatches[f'items[{index}].batch_id'] = 'Batch belongs to a different product.'
    if mismatches:
        raise ValidationError('Sale items reference stock of another product.', details=mismatches)

    if not sale_request.has_prescription:
        missing_rx = {
            f'items[{index}].product_id': f'"{products[line.product_id].name}" requires a prescription.'
            for index, line in enumerate(sale_request.items)
            if products[line.product_id].requires_prescription
        }
        if missing_rx:
            raise ValidationError('Prescription required.', details=missing_rx)

    lot_demand   = defaultdict(int)
    batch_demand = defaultdict(int)
    for line in sale_request.items:
        lot_demand[line.inventory_id] += line.quantity
        if line.batch_id is not None:
            batch_demand[line.batch_id] += line.quantity

    today = date.today()
    conflicts = []
    for index, line in enumerate(sale_request.items):
        name = products[line.product_id].name
        lot = lots[line.inventory_id]
        if lot.quantity < lot_demand[lot.id]:
            conflicts.append({
                'line': index,
                'product_id': line.product_id,
                'inventory_id': lot.id,
                'available': lot.quantity,
                'requested': lot_demand[lot.id],
                'message': f'Insufficient stock for "{name}" (batch {lot.batch}). '
                           f'Available: {lot.quantity}, requested: {lot_demand[lot.id]}.',
            })
        if line.batch_id is None:
            continue
        batch = batches[line.batch_id]
        if batch.status != BatchStatus.active or batch.expiry_date <= today:
            conflicts.append({
                'line': index,
                'product_id': line.product_id,
                'batch_id': batch.id,
                'message': f'Batch {batch.batch_number} of "{name}" is '
                           f'{"expired" if batch.expiry_date <= today else batch.status.value} '
                           f'and cannot be sold.',
            })
        elif batch.quantity < batch_demand[batch.id]:
            conflicts.append({
                'line': index,
                'product_id': line.product_id,
                'batch_id': batch.id,
                'available': batch.quantity,
                'requested': batch_demand[batch.id],
                'message': f'Insufficient stock in batch {batch.batch_number} of "{name}". '
                           f'Available: {batch.quantity}, requested: {batch_demand[batch.id]}.',
            })
    if conflicts:
        raise ConflictError('Insufficient stock.', details=conflicts)

    return products


def settle_sale(sale_request: SaleRequest, processed_by) -> Sale:
    """Persist a sale and consume its stock in one transaction."""

    def work():
        user = db.session.get(User, processed_by) if processed_by is not None else None
        if user is None:
            raise AuthenticationError('Unauthorized: processing user not found.')

        customer = _resolve_customer(sale_request)

        # Lots before batches, each in ascending id order, to avoid deadlocks
        lots = _lock_rows(InventoryLot, [line.inventory_id for line in sale_request.items])
        batches = _lock_rows(
            ProductBatch,
            [line.batch_id for line in sale_request.items if line.batch_id is not None],
        )
        _check_lines(sale_request, lots, batches)

        sale = Sale(
            customer_id=customer.id if customer else None,
            processed_by=user.id,
            total_amount=sale_request.total_amount,
            payment_method=sale_request.payment_method,
            has_prescription=sale_request.has_prescription,
            doctor_name=sale_request.doctor_name,
            prescription_date=sale_request.prescription_date,
            prescription_details=sale_request.prescription_details,
        )

        changes = []
        for line in sale_request.items:
            lot   = lots[line.inventory_id]
            batch = batches.get(line.batch_id) if line.batch_id is not None else None

            sale.items.append(SaleItem(
                product_id=line.product_id,
                inventory_id=lot.id,
                batch_id=batch.id if batch else None,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount=line.discount,
                batch_number=batch.batch_number if batch else None,
                batch_expiry_date=batch.expiry_date if batch else None,
            ))

            old_quantity = lot.quantity
            lot.quantity -= line.quantity
            changes.append((lot, old_quantity))

            if batch is not None:
                batch.quantity -= line.quantity
                if batch.quantity == 0:
                    batch.status = BatchStatus.depleted

        db.session.add(sale)
        db.session.flush()   # assigns sale.id without committing

        for lot, old_quantity in changes:
            _log_change(lot, old_quantity, user.id, f'Sale #{sale.id}')

        return sale

    sale = run_in_transaction(work, 'Sale settlement')
    current_app.logger.info(
        f"Sale #{sale.id} settled by User ID {processed_by} | "
        f"{len(sale.items)} item(s) | Total: {sale.total_amount}"
    )
    return sale


# ── Reversal ──────────────────────────────────────────────────────

def reverse_sale(sale_id, acting_user) -> dict:
    """Restore the stock a sale consumed, then delete it, atomically."""

    def work():
        sale = (
            db.session.query(Sale)
            .filter(Sale.id == sale_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if sale is None:
            raise NotFoundError(f'Sale {sale_id} not found.')

        items   = list(sale.items)
        lots    = _lock_rows(InventoryLot, [item.inventory_id for item in items])
        batches = _lock_rows(ProductBatch, [item.batch_id for item in items if item.batch_id is not None])

        for item in items:
            lot = lots.get(item.inventory_id)
            if lot is None:
                raise ConflictError(
                    f'Inventory record {item.inventory_id} no longer exists; sale cannot be reversed.'
                )
            old_quantity = lot.quantity
            lot.quantity += item.quantity
            _log_change(lot, old_quantity, acting_user, f'Sale #{sale.id} reversed')

            if item.batch_id is not None:
                batch = batches.get(item.batch_id)
                if batch is None:
                    raise ConflictError(
                        f'Batch {item.batch_id} no longer exists; sale cannot be reversed.'
                    )
                batch.quantity += item.quantity
                batch.status = BatchStatus.active

        # Restoration is written before the ledger row goes away
        db.session.flush()
        db.session.delete(sale)
        db.session.flush()

        return {
            'sale_id': sale_id,
            'restored_items': len(items),
            'restored_quantity': sum(item.quantity for item in items),
        }

    summary = run_in_transaction(work, 'Sale reversal')
    current_app.logger.info(
        f"Sale #{sale_id} reversed by User ID {acting_user} | "
        f"{summary['restored_quantity']} unit(s) restored"
    )
    return summary

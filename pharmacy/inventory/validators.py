"""
pharmacy/inventory/validators.py
--------------------------------
Validation for inventory lot and product batch payloads.
Returns a dict of field -> error_message; an empty dict means valid.
"""
from datetime import date

from pharmacy.inventory.models import BatchStatus
from pharmacy.utils.validation import (
    check_choice, check_date, check_int, check_money, check_text,
    date_value, decimal_value, int_value, text,
)

BATCH_STATUSES = [s.value for s in BatchStatus]


# ── Inventory lots ────────────────────────────────────────────────

def validate_lot(data: dict, expiry_required: bool = False) -> dict:
    """
    Validate a new inventory lot.

    Args:
        data:            raw JSON / form values
        expiry_required: the product has expiry_date_required set
    """
    errors = {}

    check_int(errors, data, 'product_id', 'Product', minimum=1)
    check_text(errors, data, 'batch', 'Batch', max_len=60)
    check_int(errors, data, 'quantity', 'Quantity', minimum=0)
    check_text(errors, data, 'location', 'Location', max_len=120)
    check_int(errors, data, 'reorder_level', 'Reorder level', minimum=0)
    check_date(errors, data, 'expiry_date', 'Expiry date', required=expiry_required)

    return errors


def parse_lot(data: dict) -> dict:
    return {
        'product_id':    int_value(data, 'product_id'),
        'batch':         text(data, 'batch'),
        'quantity':      int_value(data, 'quantity'),
        'location':      text(data, 'location'),
        'reorder_level': int_value(data, 'reorder_level'),
        'expiry_date':   date_value(data, 'expiry_date'),
    }


def validate_receipt(data: dict) -> dict:
    errors = {}
    check_int(errors, data, 'quantity', 'Quantity', minimum=1)
    check_text(errors, data, 'reason', 'Reason', required=False, max_len=200)
    return errors


# ── Product batches ───────────────────────────────────────────────

def validate_batch(data: dict, current=None, today: date = None) -> dict:
    """
    Validate a batch payload.

    Without `current` (create) every field is required and the expiry must
    be strictly in the future. With `current` (the ProductBatch being
    updated) only the keys present are checked, dates are cross-checked
    against the stored values, and product_id cannot change.
    """
    errors = {}
    today = today or date.today()
    partial = current is not None

    def present(key):
        return not partial or key in data

    if not partial:
        check_int(errors, data, 'product_id', 'Product', minimum=1)
    elif 'product_id' in data and text(data, 'product_id') != str(current.product_id):
        errors['product_id'] = 'The product of a batch cannot be changed.'

    if present('batch_number'):
        check_text(errors, data, 'batch_number', 'Batch number', max_len=60)
    if present('quantity'):
        check_int(errors, data, 'quantity', 'Quantity', minimum=0)
    if present('manufacturing_date'):
        check_date(errors, data, 'manufacturing_date', 'Manufacturing date')
    if present('expiry_date'):
        check_date(errors, data, 'expiry_date', 'Expiry date')
    if present('purchase_price'):
        check_money(errors, data, 'purchase_price', 'Purchase price')
    if present('selling_price'):
        check_money(errors, data, 'selling_price', 'Selling price')
    if present('supplier'):
        check_text(errors, data, 'supplier', 'Supplier')
    check_text(errors, data, 'location', 'Location', required=False, max_len=120)
    check_text(errors, data, 'notes', 'Notes', required=False, max_len=2000)
    check_choice(errors, data, 'status', 'Status', BATCH_STATUSES)

    if 'expiry_date' in errors or 'manufacturing_date' in errors:
        return errors

    expiry = date_value(data, 'expiry_date') if 'expiry_date' in data else None
    if not partial and expiry <= today:
        errors['expiry_date'] = 'Expiry date must be in the future.'
        return errors

    made = date_value(data, 'manufacturing_date') if 'manufacturing_date' in data else None
    if partial:
        expiry = expiry or current.expiry_date
        made = made or current.manufacturing_date
    if made >= expiry:
        errors['expiry_date'] = 'Expiry date must be after the manufacturing date.'

    return errors


def parse_batch(data: dict) -> dict:
    """
    Convert the keys present in a validated payload to column values.
    Call only after validate_batch returns no errors.
    """
    fields = {}
    if 'product_id' in data:
        fields['product_id'] = int_value(data, 'product_id')
    if 'batch_number' in data:
        fields['batch_number'] = text(data, 'batch_number')
    if 'quantity' in data:
        fields['quantity'] = int_value(data, 'quantity')
    if 'manufacturing_date' in data:
        fields['manufacturing_date'] = date_value(data, 'manufacturing_date')
    if 'expiry_date' in data:
        fields['expiry_date'] = date_value(data, 'expiry_date')
    if 'purchase_price' in data:
        fields['purchase_price'] = decimal_value(data, 'purchase_price')
    if 'selling_price' in data:
        fields['selling_price'] = decimal_value(data, 'selling_price')
    if 'supplier' in data:
        fields['supplier'] = text(data, 'supplier')
    if 'location' in data:
        fields['location'] = text(data, 'location') or None
    if 'notes' in data:
        fields['notes'] = text(data, 'notes') or None
    if text(data, 'status'):
        fields['status'] = BatchStatus(text(data, 'status'))
    return fields

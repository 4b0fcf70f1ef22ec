"""
pharmacy/products/validators.py
-------------------------------
Validation for product payloads.
Returns a dict of field -> error_message; an empty dict means valid.
"""
from pharmacy.utils.validation import (
    check_money, check_text, decimal_value, is_true, text,
)


def validate_product(data: dict, creating: bool = True) -> dict:
    """
    Validate a create / update payload.

    The SKU is only checked on create; it is immutable afterwards and
    ignored on update.
    """
    errors = {}

    check_text(errors, data, 'name', 'Product name')
    check_text(errors, data, 'generic_name', 'Generic name', required=False)
    check_text(errors, data, 'description', 'Description', required=False, max_len=2000)
    check_text(errors, data, 'category', 'Category', max_len=100)
    check_text(errors, data, 'manufacturer', 'Manufacturer')
    if creating:
        check_text(errors, data, 'sku', 'SKU', max_len=100)
    check_money(errors, data, 'price', 'Price')
    check_money(errors, data, 'cost_price', 'Cost price')

    return errors


def parse_product(data: dict, creating: bool = True) -> dict:
    """
    Convert a validated payload to column values.
    Call only after validate_product returns no errors. On update the two
    flags keep their stored value unless the payload names them.
    """
    fields = {
        'name':                  text(data, 'name'),
        'generic_name':          text(data, 'generic_name') or None,
        'description':           text(data, 'description') or None,
        'category':              text(data, 'category'),
        'manufacturer':          text(data, 'manufacturer'),
        'price':                 decimal_value(data, 'price'),
        'cost_price':            decimal_value(data, 'cost_price'),
    }
    for flag, default in (('requires_prescription', False), ('expiry_date_required', True)):
        if creating or flag in data:
            fields[flag] = is_true(data.get(flag, default))
    return fields

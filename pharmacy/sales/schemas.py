"""
pharmacy/sales/schemas.py
-------------------------
Boundary validation for sale creation.

The raw JSON body is checked once, every problem collected into one
{field: message} dict, and then converted into a typed SaleRequest. The
settlement workflow only ever sees the typed form.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import List, Optional

from pharmacy.errors import raise_if_errors
from pharmacy.sales.models import PaymentMethod
from pharmacy.utils.validation import (
    check_choice, check_date, check_email, check_int, check_money, check_text,
    date_value, decimal_value, int_value, is_true, text,
)

PAYMENT_METHODS = [m.value for m in PaymentMethod]


@dataclass(frozen=True)
class SaleLineRequest:
    product_id: int
    inventory_id: int
    quantity: int
    unit_price: Decimal
    discount: Decimal = Decimal('0')
    batch_id: Optional[int] = None

    @property
    def line_total(self) -> Decimal:
        return (self.unit_price - self.discount) * self.quantity


@dataclass(frozen=True)
class CustomerRequest:
    """Inline customer details; matched or created by phone."""
    name: str
    phone: str
    email: Optional[str] = None


@dataclass(frozen=True)
class SaleRequest:
    items: List[SaleLineRequest]
    payment_method: PaymentMethod = PaymentMethod.cash
    customer_id: Optional[int] = None
    customer: Optional[CustomerRequest] = None
    has_prescription: bool = False
    doctor_name: Optional[str] = None
    prescription_date: Optional[date] = None
    prescription_details: Optional[str] = None

    @property
    def total_amount(self) -> Decimal:
        return sum((line.line_total for line in self.items), Decimal('0'))


def _validate_item(raw, index: int, errors: dict) -> None:
    prefix = f'items[{index}]'
    if not isinstance(raw, dict):
        errors[prefix] = 'Each item must be an object.'
        return

    item_errors = {}
    check_int(item_errors, raw, 'product_id', 'Product', minimum=1)
    check_int(item_errors, raw, 'inventory_id', 'Inventory record', minimum=1)
    check_int(item_errors, raw, 'batch_id', 'Batch', minimum=1, required=False)
    check_int(item_errors, raw, 'quantity', 'Quantity', minimum=1)
    check_money(item_errors, raw, 'unit_price', 'Unit price')
    check_money(item_errors, raw, 'discount', 'Discount', required=False)

    if 'unit_price' not in item_errors and 'discount' not in item_errors:
        discount = decimal_value(raw, 'discount', Decimal('0'))
        if discount > decimal_value(raw, 'unit_price'):
            item_errors['discount'] = 'Discount cannot exceed the unit price.'

    for key, message in item_errors.items():
        errors[f'{prefix}.{key}'] = message


def validate_sale(data: dict) -> dict:
    """Return {field: message} for every problem in a sale payload."""
    errors = {}

    items = data.get('items')
    if not isinstance(items, list) or not items:
        errors['items'] = 'At least one item is required.'
    else:
        for index, raw in enumerate(items):
            _validate_item(raw, index, errors)

    check_choice(errors, data, 'payment_method', 'Payment method', PAYMENT_METHODS)
    check_int(errors, data, 'customer_id', 'Customer', minimum=1, required=False)

    customer = data.get('customer')
    if customer is not None:
        if not isinstance(customer, dict):
            errors['customer'] = 'Customer must be an object.'
        else:
            customer_errors = {}
            check_text(customer_errors, customer, 'name', 'Customer name', max_len=100)
            check_text(customer_errors, customer, 'phone', 'Customer phone', max_len=20)
            check_email(customer_errors, customer, 'email', 'Customer email', required=False)
            for key, message in customer_errors.items():
                errors[f'customer.{key}'] = message

    if is_true(data.get('has_prescription', False)):
        check_text(errors, data, 'doctor_name', 'Doctor name', required=False, max_len=120)
        check_date(errors, data, 'prescription_date', 'Prescription date', required=False)

    return errors


def parse_sale(data: dict) -> SaleRequest:
    """Validate and convert a raw sale payload. Raises ValidationError."""
    raise_if_errors(validate_sale(data), 'Invalid sale request.')

    items = [
        SaleLineRequest(
            product_id=int_value(raw, 'product_id'),
            inventory_id=int_value(raw, 'inventory_id'),
            quantity=int_value(raw, 'quantity'),
            unit_price=decimal_value(raw, 'unit_price'),
            discount=decimal_value(raw, 'discount', Decimal('0')),
            batch_id=int_value(raw, 'batch_id'),
        )
        for raw in data['items']
    ]

    customer = None
    raw_customer = data.get('customer')
    if isinstance(raw_customer, dict):
        customer = CustomerRequest(
            name=text(raw_customer, 'name'),
            phone=text(raw_customer, 'phone'),
            email=text(raw_customer, 'email') or None,
        )

    has_prescription = is_true(data.get('has_prescription', False))
    return SaleRequest(
        items=items,
        payment_method=PaymentMethod(text(data, 'payment_method') or 'cash'),
        customer_id=int_value(data, 'customer_id'),
        customer=customer,
        has_prescription=has_prescription,
        doctor_name=(text(data, 'doctor_name') or None) if has_prescription else None,
        prescription_date=date_value(data, 'prescription_date') if has_prescription else None,
        prescription_details=(text(data, 'prescription_details') or None) if has_prescription else None,
    )

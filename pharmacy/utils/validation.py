"""
pharmacy/utils/validation.py
----------------------------
Field checks shared by the per-package validators.

Each check_* helper inspects one key of a raw JSON/form payload and, when the
value is unusable, records a message under that key in `errors`. Validators
collect every problem first and raise once, so a client sees all bad fields
in a single 400 response.
"""
from datetime import date
from decimal import Decimal, InvalidOperation

from flask import request

from pharmacy.errors import ValidationError

TRUE_VALUES = ('1', 'true', 'on', 'yes')

# Largest value an INTEGER column holds on every supported database
MAX_DB_INT = 2**31 - 1


def request_data() -> dict:
    """JSON body if present, otherwise the submitted form."""
    data = request.get_json(silent=True)
    if data is None:
        data = request.form.to_dict()
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object.')
    return data


def text(data: dict, key: str) -> str:
    value = data.get(key)
    return '' if value is None else str(value).strip()


def is_true(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in TRUE_VALUES


def to_date(value) -> date:
    """Accept 'YYYY-MM-DD' or a full ISO timestamp; keep the calendar day."""
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip()[:10])


# ── Checks ────────────────────────────────────────────────────────

def check_text(errors, data, key, label, required=True, max_len=200):
    value = text(data, key)
    if not value:
        if required:
            errors[key] = f'{label} is required.'
    elif len(value) > max_len:
        errors[key] = f'{label} must be {max_len} characters or fewer.'


def check_money(errors, data, key, label, required=True):
    """Non-negative decimal amount."""
    raw = data.get(key)
    if raw is None or text(data, key) == '':
        if required:
            errors[key] = f'{label} is required.'
        return
    if isinstance(raw, bool):
        errors[key] = f'{label} must be a valid number.'
        return
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation:
        errors[key] = f'{label} must be a valid number.'
        return
    if not value.is_finite():
        errors[key] = f'{label} must be a valid number.'
    elif value < 0:
        errors[key] = f'{label} cannot be negative.'
    elif value.as_tuple().exponent < -2:
        errors[key] = f'{label} can have at most 2 decimal places.'


def check_int(errors, data, key, label, minimum=0, required=True, maximum=MAX_DB_INT):
    raw = data.get(key)
    if raw is None or text(data, key) == '':
        if required:
            errors[key] = f'{label} is required.'
        return
    if isinstance(raw, bool) or (isinstance(raw, float) and not raw.is_integer()):
        errors[key] = f'{label} must be a whole number.'
        return
    try:
        value = int(str(raw).strip()) if not isinstance(raw, (int, float)) else int(raw)
    except ValueError:
        errors[key] = f'{label} must be a whole number.'
        return
    if value < minimum:
        errors[key] = f'{label} must be at least {minimum}.'
    elif value > maximum:
        errors[key] = f'{label} is too large.'


def check_date(errors, data, key, label, required=True):
    if not text(data, key):
        if required:
            errors[key] = f'{label} is required.'
        return
    try:
        to_date(data[key])
    except ValueError:
        errors[key] = f'{label} must be a date (YYYY-MM-DD).'


def check_email(errors, data, key, label, required=True):
    value = text(data, key)
    if not value:
        if required:
            errors[key] = f'{label} is required.'
    elif '@' not in value or value.startswith('@') or value.endswith('@') or len(value) > 254:
        errors[key] = f'{label} must be a valid email address.'


def check_choice(errors, data, key, label, choices):
    value = text(data, key)
    if value and value not in choices:
        errors[key] = f'{label} must be one of: {", ".join(choices)}.'


# ── Conversions (call only after the matching check passed) ───────

def decimal_value(data, key, default=None):
    if text(data, key) == '':
        return default
    return Decimal(str(data[key]).strip())


def int_value(data, key, default=None):
    if text(data, key) == '':
        return default
    raw = data[key]
    return int(raw) if isinstance(raw, (int, float)) else int(str(raw).strip())


def date_value(data, key):
    if not text(data, key):
        return None
    return to_date(data[key])

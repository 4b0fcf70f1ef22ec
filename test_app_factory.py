"""
test_app_factory.py: the app builds whichever package is imported first.

Each case runs in a fresh interpreter so module caching from the rest of
the suite cannot hide an import cycle.

Run: pytest test_app_factory.py -v
"""
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent


@pytest.mark.parametrize('first_import', [
    'pharmacy',
    'pharmacy.guards',
    'pharmacy.customers',
    'pharmacy.customers.routes',
    'pharmacy.sales',
    'pharmacy.sales.settlement',
    'pharmacy.inventory',
    'pharmacy.products',
    'pharmacy.users',
    'pharmacy.main.reports',
])
def test_create_app_after_any_first_import(first_import):
    code = (
        f'import {first_import}\n'
        'from pharmacy import create_app\n'
        "app = create_app('testing')\n"
        "assert 'main.reports' in app.view_functions\n"
    )
    result = subprocess.run(
        [sys.executable, '-c', code],
        cwd=ROOT, capture_output=True, text=True, timeout=60,
    )
    assert result.returncode == 0, result.stderr


def test_every_blueprint_is_registered(app):
    assert {'main', 'auth', 'users', 'products', 'inventory', 'batches', 'customers', 'sales'} <= set(app.blueprints)
    assert app.url_map.converters['int'].__name__ == 'RowIdConverter'

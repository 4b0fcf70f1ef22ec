import click
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from werkzeug.routing import IntegerConverter
from config import config

db = SQLAlchemy()


class RowIdConverter(IntegerConverter):
    """`<int:...>` capped at the INTEGER column range; larger ids are a 404."""

    def __init__(self, map, fixed_digits=0, min=None, max=2**31 - 1, signed=False):
        super().__init__(map, fixed_digits=fixed_digits, min=min, max=max, signed=signed)


def create_app(config_name='default'):
    """Application factory: creates and configures the Flask app."""
    app = Flask(__name__)
    app.config.from_object(config[config_name])
    app.url_map.converters['int'] = RowIdConverter

    # ── Logging ───────────────────────────────────────────────────
    from pharmacy.utils.logging import setup_logging
    setup_logging(app)

    # ── Extensions ────────────────────────────────────────────────
    db.init_app(app)

    # ── Blueprints ────────────────────────────────────────────────
    from pharmacy.main import main as main_blueprint
    app.register_blueprint(main_blueprint)

    from pharmacy.auth import auth as auth_blueprint
    app.register_blueprint(auth_blueprint, url_prefix='/auth')

    from pharmacy.users import users as users_blueprint
    app.register_blueprint(users_blueprint, url_prefix='/users')

    from pharmacy.products import products as products_blueprint
    app.register_blueprint(products_blueprint, url_prefix='/products')

    from pharmacy.inventory import inventory as inventory_blueprint
    from pharmacy.inventory import batches as batches_blueprint
    app.register_blueprint(inventory_blueprint, url_prefix='/inventory')
    app.register_blueprint(batches_blueprint, url_prefix='/batches')

    from pharmacy.customers import customers as customers_blueprint
    app.register_blueprint(customers_blueprint, url_prefix='/customers')

    from pharmacy.sales import sales as sales_blueprint
    app.register_blueprint(sales_blueprint, url_prefix='/sales')

    # ── Error Handlers ────────────────────────────────────────────
    from pharmacy.errors import register_error_handlers
    register_error_handlers(app)

    # ── CLI Commands ──────────────────────────────────────────────
    register_commands(app)

    # ── ProxyFix (HTTPS termination at the load balancer) ─────────
    if not app.config.get('TESTING'):
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app


def register_commands(app):
    """Register custom Flask CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables."""
        db.create_all()
        click.echo('✅  Database tables created.')

    @app.cli.command('seed-admin')
    @click.option('--name',     prompt='Full name', help='Admin full name')
    @click.option('--email',    prompt='Email',     help='Admin login email')
    @click.option('--password', prompt=True, hide_input=True,
                  confirmation_prompt=True, help='Admin password')
    def seed_admin(name, email, password):
        """Create the initial admin user."""
        from pharmacy.auth.models import User, RoleEnum

        email = email.strip().lower()
        if User.query.filter_by(email=email).first():
            click.echo(f'⚠️  User "{email}" already exists.')
            return

        admin = User(name=name, email=email, role=RoleEnum.admin)
        admin.set_password(password)
        db.session.add(admin)
        db.session.commit()
        click.echo(f'✅  Admin user "{email}" created successfully.')

    @app.cli.command('seed-demo')
    def seed_demo():
        """Populate the database with a demo catalog, lots and batches."""
        from datetime import date, timedelta
        from decimal import Decimal
        from pharmacy.auth.models import User, RoleEnum
        from pharmacy.products.models import Product
        from pharmacy.inventory.models import InventoryLot, InventoryLog, ProductBatch

        click.echo("🌱 Seeding demo data...")
        db.create_all()

        if not User.query.filter_by(email='admin@pharmacy.local').first():
            u = User(name='Admin User', email='admin@pharmacy.local', role=RoleEnum.admin)
            u.set_password('demo123')
            db.session.add(u)
        if not User.query.filter_by(email='staff@pharmacy.local').first():
            u = User(name='Front Desk', email='staff@pharmacy.local', role=RoleEnum.staff)
            u.set_password('demo123')
            db.session.add(u)
        db.session.commit()
        click.echo("✅ Users created (admin@pharmacy.local / staff@pharmacy.local, password demo123).")

        if Product.query.count() > 0:
            click.echo("ℹ️   Catalog already populated, skipping products.")
            return

        catalog = [
            ('Panadol 500mg',   'Paracetamol',   'Analgesic',     'GSK',     'PAN-500', '4.50',  '2.80', False),
            ('Amoxil 250mg',    'Amoxicillin',   'Antibiotic',    'GSK',     'AMX-250', '12.00', '7.10', True),
            ('Brufen 400mg',    'Ibuprofen',     'Analgesic',     'Abbott',  'BRU-400', '6.25',  '3.90', False),
            ('Zyrtec 10mg',     'Cetirizine',    'Antihistamine', 'UCB',     'ZYR-010', '8.75',  '5.00', False),
            ('Glucophage 500',  'Metformin',     'Antidiabetic',  'Merck',   'GLU-500', '9.40',  '5.60', True),
        ]
        today = date.today()
        for idx, (name, generic, category, maker, sku, price, cost, rx) in enumerate(catalog):
            p = Product(
                name=name, generic_name=generic, category=category,
                manufacturer=maker, sku=sku, price=Decimal(price),
                cost_price=Decimal(cost), requires_prescription=rx,
            )
            db.session.add(p)
            db.session.flush()

            for n, months in enumerate((2, 9)):
                label  = f'{sku}-B{n + 1}'
                expiry = today + timedelta(days=30 * months + idx)
                lot = InventoryLot(
                    product_id=p.id, batch=label, quantity=50,
                    expiry_date=expiry, location=f'Shelf {chr(65 + idx)}',
                    reorder_level=10,
                )
                db.session.add(lot)
                db.session.flush()
                db.session.add(InventoryLog(
                    inventory_id=lot.id, old_quantity=0, new_quantity=50,
                    reason='Initial Demo Stock',
                ))
                db.session.add(ProductBatch(
                    product_id=p.id, batch_number=label, quantity=50,
                    manufacturing_date=today - timedelta(days=180),
                    expiry_date=expiry, purchase_price=Decimal(cost),
                    selling_price=Decimal(price), supplier='Demo Wholesale',
                ))

        db.session.commit()
        click.echo("✅ Demo catalog, inventory lots and batches seeded.")

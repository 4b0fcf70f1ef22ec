import enum
from datetime import datetime
from decimal import Decimal
from pharmacy import db
from pharmacy.utils.formatting import iso, money, to_decimal


class PaymentMethod(enum.Enum):
    cash   = "cash"
    card   = "card"
    mobile = "mobile"
    other  = "other"


class SaleStatus(enum.Enum):
    completed = "completed"
    returned  = "returned"
    cancelled = "cancelled"


class Sale(db.Model):
    """
    One settled point-of-sale transaction.
    A Sale has many SaleItems; its total is fixed when it is created.
    """
    __tablename__ = 'sales'

    id                   = db.Column(db.Integer, primary_key=True)
    customer_id          = db.Column(db.Integer, db.ForeignKey('customers.id'), nullable=True, index=True)
    processed_by         = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    total_amount         = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method       = db.Column(db.Enum(PaymentMethod), nullable=False, default=PaymentMethod.cash)
    status               = db.Column(db.Enum(SaleStatus), nullable=False, default=SaleStatus.completed, index=True)
    has_prescription     = db.Column(db.Boolean, nullable=False, default=False)
    doctor_name          = db.Column(db.String(120), nullable=True)
    prescription_date    = db.Column(db.Date, nullable=True)
    prescription_details = db.Column(db.Text, nullable=True)
    created_at           = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at           = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint('total_amount >= 0', name='check_sale_total_non_negative'),
    )

    # ── Relationships ─────────────────────────────────────────────
    customer  = db.relationship('Customer', backref=db.backref('sales', lazy='dynamic'), lazy='select')
    processor = db.relationship('User', backref=db.backref('sales', lazy='dynamic'), lazy='select')
    items     = db.relationship('SaleItem', backref='sale', lazy='select',
                                cascade='all, delete-orphan', order_by='SaleItem.id')

    # ── Computed helpers ──────────────────────────────────────────
    @property
    def computed_total(self) -> Decimal:
        """Σ (unit_price − discount) × quantity over the current items."""
        return sum((item.line_total for item in self.items), Decimal('0'))

    def to_dict(self, include_items: bool = True) -> dict:
        body = {
            'id': self.id,
            'customer_id': self.customer_id,
            'customer_name': self.customer.name if self.customer else None,
            'processed_by': self.processed_by,
            'processed_by_name': self.processor.name if self.processor else None,
            'total_amount': money(self.total_amount),
            'payment_method': self.payment_method.value,
            'status': self.status.value,
            'has_prescription': self.has_prescription,
            'doctor_name': self.doctor_name,
            'prescription_date': iso(self.prescription_date),
            'prescription_details': self.prescription_details,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }
        if include_items:
            body['items'] = [item.to_dict() for item in self.items]
        return body

    def __repr__(self):
        return f"<Sale #{self.id} total={self.total_amount} status={self.status.value!r}>"


class SaleItem(db.Model):
    """
    One line item inside a Sale.
    Price, discount and batch details are snapshots taken at sale time,
    so later catalog or batch edits don't alter the ledger.
    """
    __tablename__ = 'sale_items'

    id                = db.Column(db.Integer, primary_key=True)
    sale_id           = db.Column(db.Integer, db.ForeignKey('sales.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id        = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False, index=True)
    inventory_id      = db.Column(db.Integer, db.ForeignKey('inventory.id'), nullable=False, index=True)
    batch_id          = db.Column(db.Integer, db.ForeignKey('product_batches.id'), nullable=True, index=True)
    quantity          = db.Column(db.Integer, nullable=False)
    unit_price        = db.Column(db.Numeric(10, 2), nullable=False)
    discount          = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    batch_number      = db.Column(db.String(60), nullable=True)
    batch_expiry_date = db.Column(db.Date, nullable=True)

    __table_args__ = (
        db.CheckConstraint('quantity > 0', name='check_item_qty_positive'),
        db.CheckConstraint('unit_price >= 0', name='check_item_price_non_negative'),
        db.CheckConstraint('discount >= 0 AND discount <= unit_price', name='check_item_discount_valid'),
    )

    # ── Relationships ─────────────────────────────────────────────
    product = db.relationship('Product', lazy='select')

    # ── Computed helpers ──────────────────────────────────────────
    @property
    def line_total(self) -> Decimal:
        return (to_decimal(self.unit_price) - to_decimal(self.discount)) * self.quantity

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'inventory_id': self.inventory_id,
            'batch_id': self.batch_id,
            'quantity': self.quantity,
            'unit_price': money(self.unit_price),
            'discount': money(self.discount),
            'line_total': money(self.line_total),
            'batch_number': self.batch_number,
            'batch_expiry_date': iso(self.batch_expiry_date),
        }

    def __repr__(self):
        return f"<SaleItem sale={self.sale_id} lot={self.inventory_id} qty={self.quantity}>"

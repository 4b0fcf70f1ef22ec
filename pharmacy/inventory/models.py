import enum
from datetime import datetime, date
from pharmacy import db
from pharmacy.utils.formatting import iso, money


class BatchStatus(enum.Enum):
    active   = "active"
    expired  = "expired"
    depleted = "depleted"


class InventoryLot(db.Model):
    """
    Stock on hand for one product under one batch label.
    Decremented by sales, restored by reversals, topped up by receipts.
    A lot that reaches zero stays in place (it is an out-of-stock alert).
    """
    __tablename__ = 'inventory'

    id            = db.Column(db.Integer, primary_key=True)
    product_id    = db.Column(db.Integer, db.ForeignKey('products.id'), nullable=False, index=True)
    batch         = db.Column(db.String(60), nullable=False)
    quantity      = db.Column(db.Integer, nullable=False, default=0)
    expiry_date   = db.Column(db.Date, nullable=True, index=True)   # NULL = no expiry tracked
    location      = db.Column(db.String(120), nullable=False)
    reorder_level = db.Column(db.Integer, nullable=False, default=10)
    created_at    = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at    = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        db.UniqueConstraint('product_id', 'batch', name='uq_inventory_product_batch'),
        db.CheckConstraint('quantity >= 0', name='check_inventory_qty_non_negative'),
        db.CheckConstraint('reorder_level >= 0', name='check_inventory_reorder_non_negative'),
    )

    product = db.relationship('Product', lazy='select')

    # ── Computed helpers ──────────────────────────────────────────
    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.reorder_level

    @property
    def is_expired(self) -> bool:
        return self.expiry_date is not None and self.expiry_date <= date.today()

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'product_id': self.product_id,
            'product_name': self.product.name if self.product else None,
            'batch': self.batch,
            'quantity': self.quantity,
            'expiry_date': iso(self.expiry_date),
            'location': self.location,
            'reorder_level': self.reorder_level,
            'is_low_stock': self.is_low_stock,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Lot {self.batch!r} P:{self.product_id} qty:{self.quantity}>"


class InventoryLog(db.Model):
    """
    Audit trail for lot quantity changes.
    Tracks old vs new quantity, who changed it, and why.
    """
    __tablename__ = 'inventory_logs'

    id           = db.Column(db.Integer, primary_key=True)
    inventory_id = db.Column(db.Integer, db.ForeignKey('inventory.id', ondelete='CASCADE'), nullable=False, index=True)
    old_quantity = db.Column(db.Integer, nullable=False)
    new_quantity = db.Column(db.Integer, nullable=False)
    changed_by   = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)
    reason       = db.Column(db.String(255), nullable=False)
    timestamp    = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    # ── Relationships ─────────────────────────────────────────────
    lot  = db.relationship(
        'InventoryLot',
        backref=db.backref('logs', lazy='select', cascade='all, delete-orphan'),
    )
    user = db.relationship('User', lazy='select')

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'inventory_id': self.inventory_id,
            'old_quantity': self.old_quantity,
            'new_quantity': self.new_quantity,
            'changed_by': self.changed_by,
            'changed_by_name': self.user.name if self.user else None,
            'reason': self.reason,
            'timestamp': iso(self.timestamp),
        }

    def __repr__(self):
        return f"<Log Lot:{self.inventory_id} {self.old_quantity}->{self.new_quantity} ({self.reason})>"


class ProductBatch(db.Model):
    """
    Batch metadata for a product: dates, pricing, supplier and the
    quantity available for FEFO selection at the point of sale.
    """
    __tablename__ = 'product_batches'

    id                 = db.Column(db.Integer, primary_key=True)
    product_id         = db.Column(db.Integer, db.ForeignKey('products.id', ondelete='CASCADE'), nullable=False, index=True)
    batch_number       = db.Column(db.String(60), nullable=False)
    quantity           = db.Column(db.Integer, nullable=False, default=0)
    manufacturing_date = db.Column(db.Date, nullable=False)
    expiry_date        = db.Column(db.Date, nullable=False, index=True)
    purchase_price     = db.Column(db.Numeric(10, 2), nullable=False)
    selling_price      = db.Column(db.Numeric(10, 2), nullable=False)
    supplier           = db.Column(db.String(200), nullable=False)
    location           = db.Column(db.String(120), nullable=True)
    status             = db.Column(db.Enum(BatchStatus), nullable=False, default=BatchStatus.active, index=True)
    notes              = db.Column(db.Text, nullable=True)
    created_at         = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at         = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # The 'product' relationship is defined via backref from Product.batches

    __table_args__ = (
        db.UniqueConstraint('product_id', 'batch_number', name='uq_batch_product_number'),
        db.CheckConstraint('quantity >= 0', name='check_batch_qty_non_negative'),
        db.CheckConstraint('purchase_price >= 0', name='check_batch_purchase_non_negative'),
        db.CheckConstraint('selling_price >= 0', name='check_batch_selling_non_negative'),
    )

    # ── Computed helpers ──────────────────────────────────────────
    @property
    def is_expired(self) -> bool:
        return self.expiry_date <= date.today()

    @property
    def days_to_expiry(self) -> int:
        return (self.expiry_date - date.today()).days

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'product_id': self.product_id,
            'batch_number': self.batch_number,
            'quantity': self.quantity,
            'manufacturing_date': iso(self.manufacturing_date),
            'expiry_date': iso(self.expiry_date),
            'days_to_expiry': self.days_to_expiry,
            'purchase_price': money(self.purchase_price),
            'selling_price': money(self.selling_price),
            'supplier': self.supplier,
            'location': self.location,
            'status': self.status.value,
            'notes': self.notes,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Batch {self.batch_number!r} P:{self.product_id} qty:{self.quantity} exp:{self.expiry_date}>"

from datetime import datetime
from pharmacy import db
from pharmacy.utils.formatting import iso, money


class Product(db.Model):
    """A catalog entry. Stock lives in InventoryLot / ProductBatch rows."""
    __tablename__ = 'products'

    id                    = db.Column(db.Integer, primary_key=True)
    name                  = db.Column(db.String(200), nullable=False, index=True)
    generic_name          = db.Column(db.String(200), nullable=True)
    description           = db.Column(db.Text, nullable=True)
    category              = db.Column(db.String(100), nullable=False, index=True)
    manufacturer          = db.Column(db.String(200), nullable=False)
    sku                   = db.Column(db.String(100), unique=True, nullable=False, index=True)
    price                 = db.Column(db.Numeric(10, 2), nullable=False)
    cost_price            = db.Column(db.Numeric(10, 2), nullable=False)
    requires_prescription = db.Column(db.Boolean, nullable=False, default=False)
    expiry_date_required  = db.Column(db.Boolean, nullable=False, default=True)
    created_at            = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at            = db.Column(
        db.DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    __table_args__ = (
        db.CheckConstraint('price >= 0', name='check_product_price_non_negative'),
        db.CheckConstraint('cost_price >= 0', name='check_product_cost_non_negative'),
    )

    # Batches are metadata owned by the product; lots are guarded separately
    batches = db.relationship(
        'ProductBatch',
        backref='product',
        lazy='select',
        cascade='all, delete-orphan',
    )

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'name': self.name,
            'generic_name': self.generic_name,
            'description': self.description,
            'category': self.category,
            'manufacturer': self.manufacturer,
            'sku': self.sku,
            'price': money(self.price),
            'cost_price': money(self.cost_price),
            'requires_prescription': self.requires_prescription,
            'expiry_date_required': self.expiry_date_required,
            'created_at': iso(self.created_at),
            'updated_at': iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Product {self.sku!r} {self.name!r}>"

from __future__ import annotations

from datetime import date

from ..extensions import db
from inventra.time_utils import to_iso_date, to_utc_z, utc_today

IN_STOCK = "In Stock"
LOW_STOCK = "Low Stock"
OUT_OF_STOCK = "Out of Stock"
EXPIRED = "Expired"

AVAILABILITY_STATUSES = (IN_STOCK, LOW_STOCK, OUT_OF_STOCK, EXPIRED)


def compute_availability(
    quantity: int,
    threshold_value: int,
    expiry_date: date | None,
    today: date | None = None,
) -> str:
    """
    Derive a product's availability from stock level and expiry.

    Precedence: Expired > Out of Stock > Low Stock > In Stock. An item whose
    expiry date is before today is Expired no matter how much is on hand.
    """
    if today is None:
        today = utc_today()
    if expiry_date is not None and expiry_date < today:
        return EXPIRED
    if quantity == 0:
        return OUT_OF_STOCK
    if quantity <= threshold_value:
        return LOW_STOCK
    return IN_STOCK


class Product(db.Model):
    """
    Inventory item owned by a single user.

    product_code is the caller-supplied identifier ("Product ID" in imports).
    It is unique per owner, not globally.

    availability_status is a persisted hint written on every save and by the
    expiry sweep. Readers must go through current_availability() so an item
    that expired since its last write is still reported as Expired.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("owner_id", "product_code", name="uq_products_owner_code"),
        db.Index("ix_products_owner_name", "owner_id", "name"),
        db.Index("ix_products_owner_created", "owner_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    product_code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=False)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    quantity = db.Column(db.Integer, nullable=False, default=0)
    unit = db.Column(db.String(32), nullable=True)
    threshold_value = db.Column(db.Integer, nullable=False, default=0)
    expiry_date = db.Column(db.Date, nullable=True)

    image_url = db.Column(db.String(512), nullable=True)
    image_public_id = db.Column(db.String(255), nullable=True)
    supplier = db.Column(db.String(255), nullable=True)
    description = db.Column(db.Text, nullable=True)

    availability_status = db.Column(db.String(16), nullable=False, default=OUT_OF_STOCK, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    owner = db.relationship("User", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.product_code!r} name={self.name!r} owner_id={self.owner_id}>"

    def current_availability(self, today: date | None = None) -> str:
        return compute_availability(self.quantity or 0, self.threshold_value or 0, self.expiry_date, today)

    def refresh_availability(self, today: date | None = None) -> str:
        self.availability_status = self.current_availability(today)
        return self.availability_status

    def to_dict(self, today: date | None = None) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "product_code": self.product_code,
            "name": self.name,
            "category": self.category,
            "price_cents": self.price_cents,
            "quantity": self.quantity,
            "unit": self.unit,
            "threshold_value": self.threshold_value,
            "expiry_date": to_iso_date(self.expiry_date),
            "image_url": self.image_url,
            "image_public_id": self.image_public_id,
            "supplier": self.supplier,
            "description": self.description,
            "availability_status": self.current_availability(today),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }

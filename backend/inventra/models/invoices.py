from __future__ import annotations

from ..extensions import db
from inventra.time_utils import to_utc_z

UNPAID = "Unpaid"
PAID = "Paid"
OVERDUE = "Overdue"
CANCELLED = "Cancelled"

INVOICE_STATUSES = (UNPAID, PAID, OVERDUE, CANCELLED)

# Statuses that count towards sales and revenue reporting
ACTIVE_STATUSES = (PAID, UNPAID, OVERDUE)


class Invoice(db.Model):
    """
    Invoice document with derived financial fields.

    sub_total_cents, tax_cents, total_cents, balance_due_cents, status and
    reference_number are owned by invoice_service.recalculate_invoice() and
    are rewritten on every save. Never assign them directly from client input.
    """
    __tablename__ = "invoices"
    __table_args__ = (
        db.Index("ix_invoices_owner_status", "owner_id", "status"),
        db.Index("ix_invoices_owner_date", "owner_id", "invoice_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Human-readable, globally sequential (e.g., "INV-0042"). Immutable.
    invoice_number = db.Column(db.String(32), nullable=False, unique=True)
    # Present only while the invoice is Paid (e.g., "REF-007")
    reference_number = db.Column(db.String(32), nullable=True, unique=True)

    invoice_date = db.Column(db.DateTime(timezone=True), nullable=False)
    due_date = db.Column(db.DateTime(timezone=True), nullable=False)

    customer_name = db.Column(db.String(255), nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    payment_method = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=UNPAID, index=True)

    # Money (all amounts in cents)
    sub_total_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    balance_due_cents = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    owner = db.relationship("User", backref=db.backref("invoices", lazy=True))
    lines = db.relationship(
        "InvoiceLine",
        back_populates="invoice",
        order_by="InvoiceLine.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Invoice id={self.id} number={self.invoice_number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "invoice_number": self.invoice_number,
            "reference_number": self.reference_number,
            "invoice_date": to_utc_z(self.invoice_date),
            "due_date": to_utc_z(self.due_date),
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "payment_method": self.payment_method,
            "notes": self.notes,
            "status": self.status,
            "sub_total_cents": self.sub_total_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "paid_cents": self.paid_cents,
            "balance_due_cents": self.balance_due_cents,
            "lines": [line.to_dict() for line in self.lines],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InvoiceLine(db.Model):
    """
    Line item snapshot: code, name and unit price are copied from the product
    at invoicing time and do not follow later product edits.
    """
    __tablename__ = "invoice_lines"
    __table_args__ = (
        db.Index("ix_invoice_lines_product_code", "product_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    product_code = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False, default=0)

    invoice = db.relationship("Invoice", back_populates="lines")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "position": self.position,
            "product_code": self.product_code,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
        }

# Overview: Invoice Financial Engine; derived money fields, status lifecycle and owner-scoped invoice CRUD.

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import Invoice, InvoiceLine, Product
from ..models.invoices import CANCELLED, INVOICE_STATUSES, OVERDUE, PAID, UNPAID
from ..validation import (
    InvalidStateError,
    InventraError,
    ModelValidationPolicy,
    NotFoundError,
    ValidationError,
    enforce_rules_invoice,
    parse_search_number,
    validate_payload,
)
from inventra.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_invoice_number, next_reference_number
from .products_service import commit_session

# Flat 10% sales tax, in basis points
TAX_RATE_BPS = 1000
DEFAULT_DUE_DAYS = 15

INVOICE_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "status",
        "customer_name",
        "customer_email",
        "due_date",
        "discount_cents",
        "payment_method",
        "notes",
        "paid_cents",
    },
    # Server-owned; silently ignored if a client echoes them back
    stripped_fields={"invoice_number", "reference_number", "tax_cents"},
)

SEARCH_COLUMNS = (
    Invoice.invoice_number,
    Invoice.reference_number,
    Invoice.customer_name,
    Invoice.customer_email,
    Invoice.payment_method,
    Invoice.notes,
    Invoice.status,
)


def compute_tax(sub_total_cents: int, rate_bps: int = TAX_RATE_BPS) -> int:
    """Tax on a subtotal, rounded half-up to the cent."""
    return (sub_total_cents * rate_bps + 5000) // 10000


def derive_status(
    balance_due_cents: int,
    due_date: datetime | None,
    current_status: str,
    now: datetime | None = None,
) -> str:
    """
    Status implied by the money and the calendar.

    Cancelled is sticky. Otherwise a settled (or overpaid) balance is Paid,
    an open balance past its due date is Overdue, and anything else Unpaid.
    """
    if current_status == CANCELLED:
        return CANCELLED
    if balance_due_cents <= 0:
        return PAID
    if now is None:
        now = utcnow()
    if due_date is not None and due_date < now:
        return OVERDUE
    return UNPAID


def recalculate_invoice(
    invoice: Invoice,
    *,
    status_changed: bool = False,
    paid_supplied: bool = False,
    now: datetime | None = None,
) -> Invoice:
    """
    Rewrite every derived field of an invoice. Runs before each save.

    Steps, in order:
      1. line totals and subtotal
      2. tax (half-up)
      3. total = subtotal + tax - discount (must not go negative)
      4. explicit switch to Paid with no positive payment -> paid in full
      5. balance = total - paid (negative means overpaid)
      6. reference number follows explicit status changes
      7. unless Cancelled, status is re-derived and the reference re-synced

    Reference numbers are allocated from the global sequence, so this must
    run inside the transaction that saves the invoice.

    Raises ValidationError when the discount exceeds subtotal plus tax.
    """
    if now is None:
        now = utcnow()

    sub_total = 0
    for line in invoice.lines:
        line.line_total_cents = line.quantity * line.unit_price_cents
        sub_total += line.line_total_cents
    invoice.sub_total_cents = sub_total

    invoice.tax_cents = compute_tax(sub_total)

    discount = invoice.discount_cents or 0
    total = sub_total + invoice.tax_cents - discount
    if total < 0:
        raise ValidationError(
            "Discount cannot exceed subtotal plus tax",
            details={"sub_total_cents": sub_total, "tax_cents": invoice.tax_cents, "discount_cents": discount},
        )
    invoice.total_cents = total

    paid = invoice.paid_cents or 0
    if status_changed and invoice.status == PAID and not (paid_supplied and paid > 0):
        paid = total
    invoice.paid_cents = paid

    invoice.balance_due_cents = total - paid

    if status_changed:
        if invoice.status == PAID and not invoice.reference_number:
            invoice.reference_number = next_reference_number()
        elif invoice.status != PAID:
            invoice.reference_number = None
    if invoice.status == CANCELLED:
        invoice.reference_number = None
        return invoice

    invoice.status = derive_status(invoice.balance_due_cents, invoice.due_date, invoice.status, now)
    if invoice.status == PAID:
        if not invoice.reference_number:
            invoice.reference_number = next_reference_number()
    else:
        invoice.reference_number = None

    return invoice


def build_invoice(
    *,
    owner_id: int,
    items: list[tuple[Product, int]],
    customer_name: str | None = None,
    customer_email: str | None = None,
    payment_method: str | None = None,
    notes: str | None = None,
    due_date: datetime | None = None,
    discount_cents: int = 0,
    now: datetime | None = None,
) -> Invoice:
    """
    Assemble a new invoice from (product, quantity) pairs and add it to the session.

    Lines snapshot the product's code, name and current price. The invoice
    number is allocated and derived fields computed before the invoice joins
    the session. Does not commit.
    """
    if not items:
        raise ValidationError("An invoice needs at least one line")
    if now is None:
        now = utcnow()
    if due_date is None:
        due_days = int(current_app.config.get("INVOICE_DUE_DAYS", DEFAULT_DUE_DAYS))
        due_date = now + timedelta(days=due_days)

    invoice = Invoice(
        owner_id=owner_id,
        invoice_date=now,
        due_date=due_date,
        customer_name=customer_name,
        customer_email=customer_email,
        payment_method=payment_method,
        notes=notes,
        status=UNPAID,
        discount_cents=discount_cents or 0,
        paid_cents=0,
    )
    for position, (product, quantity) in enumerate(items, start=1):
        invoice.lines.append(
            InvoiceLine(
                position=position,
                product_code=product.product_code,
                name=product.name,
                quantity=quantity,
                unit_price_cents=product.price_cents,
            )
        )

    invoice.invoice_number = next_invoice_number()
    recalculate_invoice(
        invoice,
        status_changed=True,
        paid_supplied=False,
        now=now,
    )

    db.session.add(invoice)
    return invoice


def _get_owned_invoice(invoice_id: int, owner_id: int, *, for_update: bool = False) -> Invoice:
    query = db.session.query(Invoice).filter(Invoice.id == invoice_id, Invoice.owner_id == owner_id)
    if for_update:
        query = lock_for_update(query)
    invoice = query.first()
    if not invoice:
        raise NotFoundError("Invoice not found")
    return invoice


def _search_filter(search: str):
    pattern = f"%{search}%"
    clauses = [column.ilike(pattern) for column in SEARCH_COLUMNS]
    clauses.append(Invoice.lines.any(InvoiceLine.name.ilike(pattern)))

    amount = parse_search_number(search)
    if amount is not None:
        clauses.append(Invoice.total_cents == int(amount * 100))

    return or_(*clauses)


def get_invoice(invoice_id: int, owner_id: int) -> Invoice:
    return _get_owned_invoice(invoice_id, owner_id)


def list_invoices(
    owner_id: int,
    page: int | None = None,
    per_page: int | None = None,
    search: str | None = None,
    status: str | None = None,
) -> dict:
    """Owner-scoped invoice listing, newest first."""
    per_page = min(per_page or 10, 100)
    page = max(page or 1, 1)

    query = db.session.query(Invoice).filter(Invoice.owner_id == owner_id)
    if status:
        if status not in INVOICE_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(INVOICE_STATUSES)}")
        query = query.filter(Invoice.status == status)
    search = (search or "").strip()
    if search:
        query = query.filter(_search_filter(search))

    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    invoices = (
        query.order_by(Invoice.created_at.desc(), Invoice.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return {
        "items": [inv.to_dict() for inv in invoices],
        "count": len(invoices),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def update_invoice(*, invoice_id: int, owner_id: int, updates: dict, now: datetime | None = None) -> Invoice:
    """
    Apply client edits and re-derive all money fields, status and reference.

    Cancelled is terminal: other fields stay editable, the status does not.

    Raises:
        ValidationError: disallowed field, bad value, or discount too large
        NotFoundError: absent or owned by someone else
        InvalidStateError: attempt to move a Cancelled invoice to another status
    """
    patch = validate_payload(model=Invoice, payload=updates, policy=INVOICE_UPDATE_POLICY, partial=True)
    enforce_rules_invoice(patch, allowed_statuses=INVOICE_STATUSES)

    def _op():
        invoice = _get_owned_invoice(invoice_id, owner_id, for_update=True)

        status_changed = "status" in patch and patch["status"] != invoice.status
        if status_changed and invoice.status == CANCELLED:
            raise InvalidStateError("Cancelled invoices cannot change status")

        try:
            for key, value in patch.items():
                setattr(invoice, key, value)
            recalculate_invoice(
                invoice,
                status_changed=status_changed,
                paid_supplied="paid_cents" in patch,
                now=now,
            )
        except InventraError:
            db.session.rollback()
            raise

        commit_session()
        return invoice

    return run_with_retry(_op)


def delete_invoice(*, invoice_id: int, owner_id: int) -> None:
    """
    Hard-delete an invoice and its lines.

    Stock taken by the originating order is not returned.
    """
    invoice = _get_owned_invoice(invoice_id, owner_id)
    db.session.delete(invoice)
    commit_session()

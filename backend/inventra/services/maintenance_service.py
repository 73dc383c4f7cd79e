# Overview: Scheduled sweeps; tighten persisted product and invoice state as time passes.

from __future__ import annotations

from datetime import date, datetime

from flask import current_app

from ..extensions import db
from ..models import Invoice, Product
from ..models.inventory import EXPIRED
from ..models.invoices import OVERDUE, UNPAID
from inventra.time_utils import start_of_day, utc_today, utcnow
from .products_service import commit_session


def expire_products(*, today: date | None = None) -> int:
    """
    Mark products whose expiry date is before today as Expired.

    Reads already compute availability fresh; this only brings the persisted
    column in line. Never un-expires anything.
    """
    if today is None:
        today = utc_today()

    products = (
        db.session.query(Product)
        .filter(
            Product.expiry_date.isnot(None),
            Product.expiry_date < today,
            Product.availability_status != EXPIRED,
        )
        .all()
    )
    for product in products:
        product.availability_status = EXPIRED
    commit_session()

    current_app.logger.info("Expiry sweep: %s products marked %s", len(products), EXPIRED)
    return len(products)


def mark_overdue_invoices(*, now: datetime | None = None) -> int:
    """
    Flip Unpaid invoices with an open balance and a due date before today to Overdue.

    Paid and Cancelled invoices are never touched.
    """
    if now is None:
        now = utcnow()
    cutoff = start_of_day(now)

    invoices = (
        db.session.query(Invoice)
        .filter(
            Invoice.status == UNPAID,
            Invoice.balance_due_cents > 0,
            Invoice.due_date < cutoff,
        )
        .all()
    )
    for invoice in invoices:
        invoice.status = OVERDUE
        invoice.reference_number = None
    commit_session()

    current_app.logger.info("Overdue sweep: %s invoices marked %s", len(invoices), OVERDUE)
    return len(invoices)

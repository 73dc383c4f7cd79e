# Overview: Order Transaction Coordinator; couples stock decrements with invoice creation in one transaction.

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Invoice, Product
from ..models.invoices import INVOICE_STATUSES
from ..validation import (
    InventraError,
    NotFoundError,
    PartialFailureError,
    StorageError,
    ValidationError,
    enforce_rules_invoice,
)
from inventra.time_utils import parse_iso_datetime, utcnow
from .concurrency import run_with_retry
from .invoice_service import build_invoice
from .products_service import (
    check_orderable,
    decrement_stock,
    find_owned_product_by_code,
    order_decrement,
    validate_order_quantity,
)


def _rollback_after_failure(exc: Exception) -> None:
    """
    Undo a half-applied order. If even the rollback fails the stock and
    invoice tables may disagree, which must be reconciled by hand.
    """
    try:
        db.session.rollback()
    except SQLAlchemyError as rollback_exc:
        current_app.logger.exception("Rollback failed after order error: %s", exc)
        raise PartialFailureError(
            "Order failed and could not be rolled back; stock may need manual reconciliation",
            details={"cause": str(exc)},
        ) from rollback_exc


def _run_order(op):
    """
    Run op in a single transaction and commit.

    Business errors and storage errors roll everything back. Concurrency
    errors are left to run_with_retry.
    """
    try:
        result = op()
        db.session.commit()
        return result
    except (OperationalError, StaleDataError):
        raise
    except InventraError as exc:
        _rollback_after_failure(exc)
        raise
    except SQLAlchemyError as exc:
        _rollback_after_failure(exc)
        raise StorageError("Failed to save order") from exc


def place_order(
    *,
    product_id: int,
    owner_id: int,
    quantity,
    now: datetime | None = None,
) -> tuple[Product, Invoice]:
    """
    Order quantity units of one product and invoice them.

    The decrement and the single-line Unpaid invoice commit together; if the
    invoice cannot be created the stock is left untouched.

    Raises:
        ValidationError: quantity is not a positive integer
        NotFoundError: product absent or owned by someone else
        InsufficientStockError: quantity exceeds stock on hand
        InvalidStateError: product is expired
    """
    quantity = validate_order_quantity(quantity)
    if now is None:
        now = utcnow()

    def _op():
        product = order_decrement(
            product_id=product_id,
            owner_id=owner_id,
            quantity=quantity,
            today=now.date(),
        )
        invoice = build_invoice(owner_id=owner_id, items=[(product, quantity)], now=now)
        return product, invoice

    product, invoice = run_with_retry(lambda: _run_order(_op))
    current_app.logger.info(
        "Order placed: product=%s qty=%s invoice=%s owner=%s",
        product.product_code, quantity, invoice.invoice_number, owner_id,
    )
    return product, invoice


def _normalize_lines(lines) -> list[tuple[str, int]]:
    if not isinstance(lines, list) or not lines:
        raise ValidationError("Invoice must contain at least one product.")

    normalized = []
    for index, item in enumerate(lines, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"Line {index} must be an object")
        code = item.get("product_code")
        code = str(code).strip() if code is not None else ""
        if not code:
            raise ValidationError("Each product in invoice must have a valid product_code and quantity.")
        try:
            quantity = validate_order_quantity(item.get("quantity"))
        except ValidationError:
            raise ValidationError("Each product in invoice must have a valid product_code and quantity.")
        normalized.append((code, quantity))
    return normalized


def _normalize_header(fields: dict) -> dict:
    header = {
        "customer_name": fields.get("customer_name"),
        "customer_email": fields.get("customer_email"),
        "payment_method": fields.get("payment_method"),
        "notes": fields.get("notes"),
        "discount_cents": fields.get("discount_cents") or 0,
    }
    for key in ("customer_name", "customer_email", "payment_method", "notes"):
        if header[key] is not None:
            header[key] = str(header[key]).strip() or None

    due_date = fields.get("due_date")
    if isinstance(due_date, str):
        try:
            due_date = parse_iso_datetime(due_date)
        except ValueError:
            raise ValidationError("due_date must be an ISO-8601 datetime")
    elif due_date is not None and not isinstance(due_date, datetime):
        raise ValidationError("due_date must be an ISO-8601 datetime")
    header["due_date"] = due_date

    enforce_rules_invoice(header, allowed_statuses=INVOICE_STATUSES)
    return header


def create_invoice(*, owner_id: int, lines, now: datetime | None = None, **fields) -> Invoice:
    """
    Manual multi-line invoice creation.

    lines is a list of {"product_code", "quantity"}. Every line is checked
    (owned product exists, enough stock for the combined quantity of all lines
    naming it, not expired) before any stock moves. Then each product is
    decremented and the invoice built, all in one transaction.
    """
    items = _normalize_lines(lines)
    header = _normalize_header(fields)
    if now is None:
        now = utcnow()
    today = now.date()

    requested: dict[str, int] = {}
    for code, quantity in items:
        requested[code] = requested.get(code, 0) + quantity

    def _op():
        products: dict[str, Product] = {}
        for code, total_quantity in requested.items():
            product = find_owned_product_by_code(code, owner_id, for_update=True)
            if not product:
                raise NotFoundError(f"Product with ID {code} not found.")
            check_orderable(product, total_quantity, today)
            products[code] = product

        for code, total_quantity in requested.items():
            decrement_stock(products[code], total_quantity, today)

        return build_invoice(
            owner_id=owner_id,
            items=[(products[code], quantity) for code, quantity in items],
            now=now,
            **header,
        )

    invoice = run_with_retry(lambda: _run_order(_op))
    current_app.logger.info(
        "Invoice created: %s lines=%s owner=%s",
        invoice.invoice_number, len(items), owner_id,
    )
    return invoice

# Overview: Service-layer operations for products; owner-scoped CRUD, bulk import and stock decrement.

"""
Product Record Manager

OWNERSHIP: Every operation is scoped to owner_id. A product owned by someone
else is reported exactly like a missing one (NotFoundError).

AVAILABILITY: availability_status is recomputed from quantity, threshold and
expiry on every write (persisted hint) and again on every read (to_dict), see
models.inventory.compute_availability.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Product
from ..models.inventory import EXPIRED
from ..validation import (
    ConflictError,
    InsufficientStockError,
    InvalidStateError,
    NotFoundError,
    StorageError,
    ValidationError,
    MAX_NUMERIC_AMOUNT,
    MAX_PRICE_CENTS,
    parse_search_number,
)
from .concurrency import lock_for_update
from .image_service import delete_hosted_image
from inventra.time_utils import parse_date, utc_today

PRODUCT_MUTABLE_FIELDS = {
    "product_code", "name", "category", "price_cents", "quantity", "unit",
    "threshold_value", "expiry_date", "image_url", "image_public_id",
    "supplier", "description",
}
REQUIRED_ON_CREATE = ("product_code", "name", "category")
NUMERIC_FIELDS = ("price_cents", "quantity", "threshold_value")
TEXT_FIELDS = ("product_code", "name", "category", "unit", "supplier", "description", "image_url", "image_public_id")

SEARCH_COLUMNS = (
    Product.name,
    Product.product_code,
    Product.category,
    Product.supplier,
    Product.description,
    Product.unit,
    Product.availability_status,
)


def commit_session(conflict_message: str | None = None) -> None:
    """
    Commit, translating persistence failures into service errors.

    Concurrency failures pass through untouched so run_with_retry can see them.
    """
    try:
        db.session.commit()
    except (OperationalError, StaleDataError):
        db.session.rollback()
        raise
    except IntegrityError as exc:
        db.session.rollback()
        if conflict_message:
            raise ConflictError(conflict_message) from exc
        raise StorageError("Failed to save changes") from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StorageError("Failed to save changes") from exc


def _lenient_int(value, key: str) -> int:
    """
    Whole number from loose input: blank or unparseable -> 0, "12.7" -> 12.
    Negative values are rejected.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        number = value
    else:
        try:
            parsed = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return 0
        if not parsed.is_finite():
            return 0
        if parsed.copy_abs() > MAX_NUMERIC_AMOUNT:
            raise ValidationError(f"{key} is out of range")
        number = int(parsed)
    if abs(number) > MAX_NUMERIC_AMOUNT:
        raise ValidationError(f"{key} is out of range")
    if number < 0:
        raise ValidationError(f"{key} must be >= 0")
    return number


def normalize_product_data(data: dict, *, partial: bool = False) -> dict:
    """
    Clean a raw product payload.

    - price_cents, quantity, threshold_value -> int >= 0 (missing/garbage -> 0)
    - expiry_date -> date or None (unparseable -> None)
    - text fields are stripped; blank optional text becomes None

    partial=True only touches keys present in data (update semantics).
    """
    cleaned: dict = {}

    for key in NUMERIC_FIELDS:
        if partial and key not in data:
            continue
        cleaned[key] = _lenient_int(data.get(key), key)

    if cleaned.get("price_cents", 0) > MAX_PRICE_CENTS:
        raise ValidationError(f"price_cents cannot exceed {MAX_PRICE_CENTS}")

    if not partial or "expiry_date" in data:
        try:
            cleaned["expiry_date"] = parse_date(data.get("expiry_date"))
        except ValueError:
            cleaned["expiry_date"] = None

    for key in TEXT_FIELDS:
        if key not in data:
            continue
        value = data[key]
        value = str(value).strip() if value is not None else None
        cleaned[key] = value or None

    return cleaned


def _get_owned_product(product_id: int, owner_id: int, *, for_update: bool = False) -> Product:
    query = db.session.query(Product).filter(Product.id == product_id, Product.owner_id == owner_id)
    if for_update:
        query = lock_for_update(query)
    product = query.first()
    if not product:
        raise NotFoundError("Product not found")
    return product


def get_product(product_id: int, owner_id: int) -> Product:
    return _get_owned_product(product_id, owner_id)


def find_owned_product_by_code(product_code: str, owner_id: int, *, for_update: bool = False) -> Product | None:
    query = db.session.query(Product).filter(
        Product.owner_id == owner_id,
        Product.product_code == product_code,
    )
    if for_update:
        query = lock_for_update(query)
    return query.first()


def _search_filter(search: str):
    pattern = f"%{search}%"
    clauses = [column.ilike(pattern) for column in SEARCH_COLUMNS]

    number = parse_search_number(search)
    if number is not None:
        clauses.append(Product.price_cents == int(number * 100))
        if number == number.to_integral_value():
            clauses.append(Product.quantity == int(number))
            clauses.append(Product.threshold_value == int(number))

    return or_(*clauses)


def list_products(
    owner_id: int,
    page: int | None = None,
    per_page: int | None = None,
    search: str | None = None,
    today: date | None = None,
) -> dict:
    """
    Owner-scoped product listing, newest first, with optional search.

    Every returned item carries an availability_status computed at read time.
    """
    per_page = min(per_page or 10, 100)
    page = max(page or 1, 1)

    base_query = db.session.query(Product).filter(Product.owner_id == owner_id)
    search = (search or "").strip()
    if search:
        base_query = base_query.filter(_search_filter(search))

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    products = (
        base_query.order_by(Product.created_at.desc(), Product.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return {
        "items": [p.to_dict(today) for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def create_product(*, owner_id: int, data: dict, today: date | None = None) -> Product:
    """
    Add a single product.

    A past expiry date is accepted here; the product is simply Expired.

    Raises:
        ValidationError: missing required fields or negative numbers
        ConflictError: product_code already used by this owner
    """
    cleaned = normalize_product_data(data)

    missing = [key for key in REQUIRED_ON_CREATE if not cleaned.get(key)]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    if find_owned_product_by_code(cleaned["product_code"], owner_id):
        raise ConflictError("Product with this ID already exists for your account.")

    product = Product(owner_id=owner_id, **cleaned)
    product.refresh_availability(today)

    db.session.add(product)
    commit_session(conflict_message="Product with this ID already exists for your account.")
    return product


@dataclass
class RowOutcome:
    row_number: int
    product_code: str | None
    name: str | None
    expiry_date: str | None = None
    error: str | None = None
    product: Product | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def error_dict(self) -> dict:
        return {
            "row_number": self.row_number,
            "row": {
                "product_code": self.product_code,
                "name": self.name,
                "expiry_date": self.expiry_date,
            },
            "error": self.error,
        }


@dataclass
class BulkImportResult:
    """Per-row outcomes of a bulk import, in input order."""
    outcomes: list[RowOutcome] = field(default_factory=list)

    @property
    def added(self) -> list[Product]:
        return [o.product for o in self.outcomes if o.ok and o.product is not None]

    @property
    def added_count(self) -> int:
        return len(self.added)

    @property
    def errors(self) -> list[dict]:
        return [o.error_dict() for o in self.outcomes if not o.ok]

    def to_dict(self) -> dict:
        errors = self.errors
        return {
            "message": f"{self.added_count} products added successfully.",
            "added_count": self.added_count,
            "errors_count": len(errors),
            "errors": errors,
        }


def _validate_bulk_row(outcome: RowOutcome, row: dict, today: date) -> dict | None:
    raw_expiry = row.get("expiry_date")
    if raw_expiry is not None and str(raw_expiry).strip():
        try:
            expiry = parse_date(raw_expiry)
        except ValueError:
            outcome.error = f"Invalid expiry date format: {raw_expiry}"
            return None
        if expiry < today:
            outcome.error = f"Product expired on {raw_expiry}. Cannot add expired products."
            return None

    try:
        cleaned = normalize_product_data(row)
    except ValidationError as exc:
        outcome.error = str(exc)
        return None

    missing = [key for key in REQUIRED_ON_CREATE if not cleaned.get(key)]
    if missing:
        outcome.error = f"Missing required fields: {', '.join(missing)}"
        return None
    return cleaned


def bulk_add_products(*, owner_id: int, rows: list[dict], today: date | None = None) -> BulkImportResult:
    """
    Import many products, collecting per-row failures instead of aborting.

    Bulk import is stricter than create_product: rows with an unparseable or
    already-past expiry date are refused. Rows whose product_code repeats an
    earlier row or an existing product of this owner are refused too.

    Raises ValidationError only when no row survives validation.
    """
    if today is None:
        today = utc_today()
    if not rows:
        raise ValidationError("Empty or invalid CSV file.")

    result = BulkImportResult()
    candidates: list[tuple[RowOutcome, dict]] = []

    for index, row in enumerate(rows, start=1):
        outcome = RowOutcome(
            row_number=index,
            product_code=(str(row.get("product_code")).strip() or None) if row.get("product_code") is not None else None,
            name=(str(row.get("name")).strip() or None) if row.get("name") is not None else None,
            expiry_date=row.get("expiry_date") or None,
        )
        result.outcomes.append(outcome)
        cleaned = _validate_bulk_row(outcome, row, today)
        if cleaned is not None:
            candidates.append((outcome, cleaned))

    codes = {cleaned["product_code"] for _, cleaned in candidates}
    existing = set()
    if codes:
        existing = {
            code for (code,) in db.session.query(Product.product_code).filter(
                Product.owner_id == owner_id,
                Product.product_code.in_(codes),
            )
        }

    seen: set[str] = set()
    for outcome, cleaned in candidates:
        code = cleaned["product_code"]
        if code in existing:
            outcome.error = f"Product ID {code} already exists for your account."
            continue
        if code in seen:
            outcome.error = f"Duplicate Product ID {code} in CSV."
            continue
        seen.add(code)

        product = Product(owner_id=owner_id, **cleaned)
        product.refresh_availability(today)
        outcome.product = product

    if not result.added:
        raise ValidationError("No new products added due to errors.", details={"errors": result.errors})

    db.session.add_all(result.added)
    commit_session(conflict_message="Product ID already exists for your account.")
    return result


def _replaced_image(product: Product, updates: dict) -> str | None:
    """Public id of the hosted image this update drops, if any."""
    if "image_public_id" not in updates:
        return None
    old = product.image_public_id
    if old and old != updates["image_public_id"]:
        return old
    return None


def update_product(*, product_id: int, owner_id: int, updates: dict, today: date | None = None) -> Product:
    """
    Patch a product and recompute its availability.

    Raises:
        NotFoundError: absent or owned by someone else
        ValidationError: attempt to change product_code, or negative numbers
    """
    product = _get_owned_product(product_id, owner_id)

    cleaned = normalize_product_data(updates, partial=True)
    unknown = set(updates) - PRODUCT_MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    if "product_code" in cleaned and cleaned["product_code"] != product.product_code:
        raise ValidationError("Product ID cannot be changed.")
    for key in ("name", "category"):
        if key in cleaned and not cleaned[key]:
            raise ValidationError(f"{key} cannot be blank")

    replaced_image = _replaced_image(product, cleaned)

    for key, value in cleaned.items():
        setattr(product, key, value)
    product.refresh_availability(today)

    commit_session()

    # Only once the row no longer points at it
    if replaced_image:
        delete_hosted_image(replaced_image)
    return product


def delete_product(*, product_id: int, owner_id: int) -> None:
    """
    Hard-delete a product. Invoices that reference it keep their line snapshots.

    The hosted image is removed best-effort after the row is gone.
    """
    product = _get_owned_product(product_id, owner_id)
    public_id = product.image_public_id

    db.session.delete(product)
    commit_session()

    if public_id:
        delete_hosted_image(public_id)


def validate_order_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Please provide a valid quantity to order.")
    return quantity


def check_orderable(product: Product, quantity: int, today: date | None = None) -> None:
    if quantity > product.quantity:
        raise InsufficientStockError(
            f"Not enough stock for {product.name}. Only {product.quantity} available.",
            details={
                "product_code": product.product_code,
                "requested_quantity": quantity,
                "available": product.quantity,
            },
        )
    if product.current_availability(today) == EXPIRED:
        raise InvalidStateError(f"Cannot order an expired product: {product.name}")


def decrement_stock(product: Product, quantity: int, today: date | None = None) -> Product:
    """
    Conditionally take quantity units off the shelf.

    The UPDATE only matches while enough stock remains, so two concurrent
    orders can never drive quantity below zero. Does not commit.
    """
    stmt = (
        update(Product)
        .where(
            Product.id == product.id,
            Product.quantity >= quantity,
        )
        .values(
            quantity=Product.quantity - quantity,
            version_id=Product.version_id + 1,
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        db.session.refresh(product)
        raise InsufficientStockError(
            f"Not enough stock for {product.name}. Only {product.quantity} available.",
            details={
                "product_code": product.product_code,
                "requested_quantity": quantity,
                "available": product.quantity,
            },
        )

    db.session.refresh(product)
    product.refresh_availability(today)
    return product


def order_decrement(*, product_id: int, owner_id: int, quantity, today: date | None = None) -> Product:
    """
    Validate and apply an order's stock decrement inside the current transaction.

    Check order: quantity shape, ownership, stock level, expiry. Nothing is
    changed when any check fails. The caller commits together with the invoice.
    """
    quantity = validate_order_quantity(quantity)
    product = _get_owned_product(product_id, owner_id, for_update=True)
    check_orderable(product, quantity, today)
    return decrement_stock(product, quantity, today)


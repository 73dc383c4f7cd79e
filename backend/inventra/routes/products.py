# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product management routes.

All operations are scoped to the caller (g.owner_id, set by @require_auth).
Errors raised by the service layer are rendered by the app-level handler.
"""
from flask import Blueprint, request, g, current_app

from ..models import Product
from ..services import products_service, reporting_service
from ..services.import_service import read_product_csv
from ..services.order_service import place_order
from ..services.products_service import PRODUCT_MUTABLE_FIELDS
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
)
from ..decorators import require_auth

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=PRODUCT_MUTABLE_FIELDS,
    required_on_create={"product_code", "name", "category"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("")
@require_auth
def create_product_route():
    """Create a single product. A past expiry date is allowed (product is Expired)."""
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    product = products_service.create_product(owner_id=g.owner_id, data=patch)
    return {"success": True, "message": "Product added successfully.", "product": product.to_dict()}, 201


@products_bp.post("/bulk")
@require_auth
def bulk_create_route():
    """
    Import products from an uploaded CSV (multipart field "file").

    Answers 201 with per-row errors when at least one row was added.
    """
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise ValidationError("No CSV file uploaded.")
    if not upload.filename.lower().endswith(".csv"):
        raise ValidationError("Only CSV files are allowed.")

    rows = read_product_csv(upload.stream)
    result = products_service.bulk_add_products(owner_id=g.owner_id, rows=rows)

    current_app.logger.info(
        "Bulk import for owner %s: %s added, %s rejected",
        g.owner_id, result.added_count, len(result.errors),
    )
    return {"success": True, **result.to_dict()}, 201


@products_bp.get("")
@require_auth
def list_products_route():
    """
    List products, newest first.

    Query params:
    - page: int (optional, default 1)
    - per_page: int (optional, default 10, max 100)
    - search: str (optional)
    """
    result = products_service.list_products(
        owner_id=g.owner_id,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        search=request.args.get("search"),
    )
    return {"success": True, **result}


@products_bp.get("/metrics")
@require_auth
def product_metrics_route():
    metrics = reporting_service.product_metrics(owner_id=g.owner_id)
    return {"success": True, "metrics": metrics}


@products_bp.get("/<int:product_id>")
@require_auth
def get_product_route(product_id: int):
    product = products_service.get_product(product_id, g.owner_id)
    return {"success": True, "product": product.to_dict()}


@products_bp.put("/<int:product_id>")
@require_auth
def update_product_route(product_id: int):
    """Patch a product. product_code is immutable."""
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    product = products_service.update_product(product_id=product_id, owner_id=g.owner_id, updates=patch)
    return {"success": True, "message": "Product updated successfully.", "product": product.to_dict()}


@products_bp.delete("/<int:product_id>")
@require_auth
def delete_product_route(product_id: int):
    products_service.delete_product(product_id=product_id, owner_id=g.owner_id)
    return {"success": True, "message": "Product deleted successfully."}


@products_bp.put("/<int:product_id>/order")
@require_auth
def order_product_route(product_id: int):
    """
    Order a quantity of a product; creates an Unpaid invoice for it.

    Body: {"quantity": int}
    """
    payload = request.get_json(silent=True) or {}

    product, invoice = place_order(
        product_id=product_id,
        owner_id=g.owner_id,
        quantity=payload.get("quantity"),
    )
    return {
        "success": True,
        "message": "Product ordered and invoice created successfully.",
        "product": product.to_dict(),
        "invoice": invoice.to_dict(),
    }

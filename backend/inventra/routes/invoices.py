# Overview: Flask API routes for invoice operations; parses input and returns JSON responses.

from flask import Blueprint, request, g

from ..services import invoice_service, reporting_service
from ..services.order_service import create_invoice
from ..decorators import require_auth

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")

CREATE_FIELDS = ("customer_name", "customer_email", "payment_method", "notes", "due_date", "discount_cents")


@invoices_bp.post("")
@require_auth
def create_invoice_route():
    """
    Create an invoice from product lines, taking the stock off each product.

    Body: {"lines": [{"product_code": str, "quantity": int}, ...],
           "customer_name", "customer_email", "due_date", "discount_cents",
           "payment_method", "notes"}
    """
    payload = request.get_json(silent=True) or {}
    fields = {key: payload[key] for key in CREATE_FIELDS if key in payload}

    invoice = create_invoice(owner_id=g.owner_id, lines=payload.get("lines"), **fields)
    return {"success": True, "message": "Invoice created successfully.", "invoice": invoice.to_dict()}, 201


@invoices_bp.get("")
@require_auth
def list_invoices_route():
    """
    Query params: page, per_page, search, status
    """
    result = invoice_service.list_invoices(
        owner_id=g.owner_id,
        page=request.args.get("page", type=int),
        per_page=request.args.get("per_page", type=int),
        search=request.args.get("search"),
        status=request.args.get("status"),
    )
    return {"success": True, **result}


@invoices_bp.get("/metrics")
@require_auth
def invoice_metrics_route():
    metrics = reporting_service.invoice_metrics(owner_id=g.owner_id)
    return {"success": True, "metrics": metrics}


@invoices_bp.get("/<int:invoice_id>")
@require_auth
def get_invoice_route(invoice_id: int):
    invoice = invoice_service.get_invoice(invoice_id, g.owner_id)
    return {"success": True, "invoice": invoice.to_dict()}


@invoices_bp.put("/<int:invoice_id>")
@require_auth
def update_invoice_route(invoice_id: int):
    """
    Edit status, customer details, due date, discount, payment method,
    notes or paid amount. Money fields are always re-derived.
    """
    payload = request.get_json(silent=True) or {}
    invoice = invoice_service.update_invoice(invoice_id=invoice_id, owner_id=g.owner_id, updates=payload)
    return {"success": True, "message": "Invoice updated successfully.", "invoice": invoice.to_dict()}


@invoices_bp.delete("/<int:invoice_id>")
@require_auth
def delete_invoice_route(invoice_id: int):
    invoice_service.delete_invoice(invoice_id=invoice_id, owner_id=g.owner_id)
    return {"success": True, "message": "Invoice deleted successfully."}

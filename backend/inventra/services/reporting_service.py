# Overview: Metrics/Reporting Aggregator; read-only owner-scoped summaries over products and invoices.

from __future__ import annotations

from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy import case, func

from ..extensions import db
from ..models import Invoice, InvoiceLine, Product
from ..models.inventory import EXPIRED, LOW_STOCK, OUT_OF_STOCK
from ..models.invoices import ACTIVE_STATUSES, CANCELLED, OVERDUE, PAID, UNPAID
from ..validation import ValidationError
from inventra.time_utils import start_of_day, utcnow

PERIODS = ("daily", "weekly", "yearly")


def _average_cents(total: int, count: int) -> int:
    if not count:
        return 0
    return int((Decimal(total) / count).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def top_selling_products(
    *,
    owner_id: int,
    limit: int = 5,
    days: int = 30,
    now: datetime | None = None,
) -> dict:
    """
    Best sellers by revenue over the trailing window.

    Only Paid, Unpaid and Overdue invoices count. Groups are keyed on the
    line's product code; a group whose product has since been deleted is
    left out of the result.
    """
    if limit <= 0 or days <= 0:
        raise ValidationError("limit and days must be positive integers")
    if now is None:
        now = utcnow()
    window_start = start_of_day(now) - timedelta(days=days)

    total_quantity = func.sum(InvoiceLine.quantity)
    total_revenue = func.sum(InvoiceLine.line_total_cents)
    groups = (
        db.session.query(
            InvoiceLine.product_code,
            total_quantity.label("total_quantity_sold"),
            total_revenue.label("total_revenue_cents"),
        )
        .join(Invoice, InvoiceLine.invoice_id == Invoice.id)
        .filter(
            Invoice.owner_id == owner_id,
            Invoice.invoice_date >= window_start,
            Invoice.status.in_(ACTIVE_STATUSES),
        )
        .group_by(InvoiceLine.product_code)
        .order_by(total_revenue.desc(), InvoiceLine.product_code)
        .limit(limit)
        .all()
    )

    codes = [g.product_code for g in groups]
    products = {}
    if codes:
        products = {
            p.product_code: p
            for p in db.session.query(Product).filter(
                Product.owner_id == owner_id,
                Product.product_code.in_(codes),
            )
        }

    today = now.date()
    items = []
    for group in groups:
        product = products.get(group.product_code)
        if product is None:
            continue
        items.append({
            "product": product.to_dict(today),
            "total_quantity_sold": int(group.total_quantity_sold or 0),
            "total_revenue_cents": int(group.total_revenue_cents or 0),
        })

    revenue = sum(i["total_revenue_cents"] for i in items)
    return {
        "items": items,
        "summary": {
            "count": len(items),
            "total_revenue_cents": revenue,
            "total_quantity_sold": sum(i["total_quantity_sold"] for i in items),
            "average_revenue_per_product_cents": _average_cents(revenue, len(items)),
            "days": days,
            "requested_limit": limit,
        },
    }


def _window_start(period: str, num_periods: int, now: datetime) -> datetime:
    midnight = start_of_day(now)
    if period == "daily":
        return midnight - timedelta(days=num_periods)
    if period == "weekly":
        return midnight - timedelta(days=num_periods * 7)
    return datetime(now.year - num_periods, 1, 1)


def period_label(period: str, value: datetime | date) -> str:
    """Bucket key: YYYY-MM-DD, ISO week YYYY-Www, or YYYY. Sorts chronologically."""
    if period == "daily":
        return value.strftime("%Y-%m-%d")
    if period == "weekly":
        iso_year, iso_week, _ = value.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    return f"{value.year:04d}"


def _empty_bucket(label: str) -> dict:
    return {
        "period_label": label,
        "total_sales_cents": 0,
        "total_invoices": 0,
        "total_purchases_cents": 0,
        "total_products": 0,
        "total_quantity_purchased": 0,
    }


def sales_over_time(
    *,
    owner_id: int,
    period: str = "daily",
    num_periods: int = 30,
    now: datetime | None = None,
) -> dict:
    """
    Sales (invoices) and purchases (newly added stock) per calendar bucket.

    Purchases are price x quantity of products by creation time. A bucket
    present in only one series is zero-filled on the other side.
    """
    if period not in PERIODS:
        raise ValidationError(f"period must be one of: {', '.join(PERIODS)}")
    if num_periods <= 0:
        raise ValidationError("numPeriods must be a positive integer")
    if now is None:
        now = utcnow()
    window_start = _window_start(period, num_periods, now)

    buckets: dict[str, dict] = {}

    def bucket(moment) -> dict:
        label = period_label(period, moment)
        if label not in buckets:
            buckets[label] = _empty_bucket(label)
        return buckets[label]

    invoices = db.session.query(Invoice.invoice_date, Invoice.total_cents).filter(
        Invoice.owner_id == owner_id,
        Invoice.invoice_date >= window_start,
        Invoice.status.in_(ACTIVE_STATUSES),
    )
    for invoice_date, total_cents in invoices:
        entry = bucket(invoice_date)
        entry["total_sales_cents"] += total_cents or 0
        entry["total_invoices"] += 1

    products = db.session.query(Product.created_at, Product.price_cents, Product.quantity).filter(
        Product.owner_id == owner_id,
        Product.created_at >= window_start,
    )
    for created_at, price_cents, quantity in products:
        entry = bucket(created_at)
        entry["total_purchases_cents"] += (price_cents or 0) * (quantity or 0)
        entry["total_products"] += 1
        entry["total_quantity_purchased"] += quantity or 0

    series = [buckets[label] for label in sorted(buckets)]
    return {
        "items": series,
        "summary": {
            "total_sales_cents": sum(b["total_sales_cents"] for b in series),
            "total_purchases_cents": sum(b["total_purchases_cents"] for b in series),
            "total_invoices": sum(b["total_invoices"] for b in series),
            "total_products_purchased": sum(b["total_products"] for b in series),
            "period": period,
            "num_periods": num_periods,
            "data_points": len(series),
        },
    }


def product_metrics(*, owner_id: int, today: date | None = None) -> dict:
    """
    Inventory indicators for the products page.

    Each product is classified once by its availability as of today, so an
    item that expired since its last save counts as Expired only.
    Restock cost covers non-expired products at or below threshold:
    price x (threshold - quantity + 1).
    """
    categories = set()
    metrics = {
        "total_categories": 0,
        "total_products": 0,
        "low_stock_count": 0,
        "out_of_stock_count": 0,
        "expired_count": 0,
        "total_stock_quantity": 0,
        "total_inventory_cost_cents": 0,
        "restock_cost_cents": 0,
    }

    for product in db.session.query(Product).filter(Product.owner_id == owner_id):
        status = product.current_availability(today)
        quantity = product.quantity or 0
        price = product.price_cents or 0
        threshold = product.threshold_value or 0

        categories.add(product.category)
        metrics["total_products"] += 1
        metrics["total_stock_quantity"] += quantity
        metrics["total_inventory_cost_cents"] += price * quantity

        if status == EXPIRED:
            metrics["expired_count"] += 1
            continue
        if status == OUT_OF_STOCK:
            metrics["out_of_stock_count"] += 1
        elif status == LOW_STOCK:
            metrics["low_stock_count"] += 1
        if quantity <= threshold:
            metrics["restock_cost_cents"] += price * (threshold - quantity + 1)

    metrics["total_categories"] = len(categories)
    return metrics


def _sum_where(condition, column):
    return func.coalesce(func.sum(case((condition, column), else_=0)), 0)


def invoice_metrics(*, owner_id: int) -> dict:
    """
    Invoice counts per status plus money totals.

    Subtotal, sales and units sold ignore Cancelled invoices. The paid sum
    covers Paid only; the unpaid sum is the open balance of Unpaid and Overdue.
    """
    active = Invoice.status.in_(ACTIVE_STATUSES)
    row = db.session.query(
        func.count(Invoice.id),
        _sum_where(Invoice.status == UNPAID, 1),
        _sum_where(Invoice.status == PAID, 1),
        _sum_where(Invoice.status == OVERDUE, 1),
        _sum_where(Invoice.status == CANCELLED, 1),
        _sum_where(active, Invoice.sub_total_cents),
        _sum_where(active, Invoice.total_cents),
        _sum_where(Invoice.status == PAID, Invoice.paid_cents),
        _sum_where(Invoice.status.in_((UNPAID, OVERDUE)), Invoice.balance_due_cents),
    ).filter(Invoice.owner_id == owner_id).one()

    units_sold = (
        db.session.query(func.coalesce(func.sum(InvoiceLine.quantity), 0))
        .join(Invoice, InvoiceLine.invoice_id == Invoice.id)
        .filter(Invoice.owner_id == owner_id, active)
        .scalar()
    )

    return {
        "total_invoices": int(row[0] or 0),
        "unpaid_invoices": int(row[1]),
        "paid_invoices": int(row[2]),
        "overdue_invoices": int(row[3]),
        "cancelled_invoices": int(row[4]),
        "total_sub_total_cents": int(row[5]),
        "total_sales_cents": int(row[6]),
        "total_paid_cents": int(row[7]),
        "total_unpaid_cents": int(row[8]),
        "total_units_sold": int(units_sold or 0),
    }

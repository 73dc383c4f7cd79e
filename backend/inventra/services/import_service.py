# Overview: CSV adapter for bulk product import; turns uploaded rows into product payloads.

from __future__ import annotations

import csv
import io
from typing import Any, IO

from ..validation import ValidationError, parse_money_to_cents

# CSV header -> product field
CSV_COLUMNS = {
    "Product Name": "name",
    "Product ID": "product_code",
    "Category": "category",
    "Price": "price_cents",
    "Quantity": "quantity",
    "Unit": "unit",
    "Expiry Date": "expiry_date",
    "Threshold Value": "threshold_value",
}

REQUIRED_HEADERS = ("Product Name", "Product ID", "Category")


def _price_to_cents(raw: str) -> int | str:
    """
    Price column holds currency units ("12.50"). Unparseable values are passed
    through unchanged and end up as 0 after normalization.
    """
    try:
        return parse_money_to_cents(raw, "Price")
    except ValidationError:
        return raw


def read_product_csv(stream: IO[bytes] | IO[str]) -> list[dict[str, Any]]:
    """
    Parse an uploaded product CSV into raw product dicts for bulk_add_products.

    Header names are matched after stripping whitespace; unknown columns are
    ignored. Fully blank lines are skipped.

    Raises ValidationError when the file is not UTF-8 text or lacks a
    required header.
    """
    raw = stream.read()
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise ValidationError("CSV file must be UTF-8 encoded") from exc

    reader = csv.DictReader(io.StringIO(raw))
    headers = [h.strip() for h in (reader.fieldnames or []) if h is not None]
    missing = [h for h in REQUIRED_HEADERS if h not in headers]
    if missing:
        raise ValidationError(f"CSV is missing required columns: {', '.join(missing)}")

    rows: list[dict[str, Any]] = []
    for record in reader:
        row: dict[str, Any] = {}
        for header, value in record.items():
            if header is None:
                continue
            key = CSV_COLUMNS.get(header.strip())
            if not key:
                continue
            value = (value or "").strip()
            if key == "price_cents" and value:
                row[key] = _price_to_cents(value)
            else:
                row[key] = value or None
        if any(v not in (None, "") for v in row.values()):
            rows.append(row)
    return rows

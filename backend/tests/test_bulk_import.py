# Overview: Pytest coverage for CSV parsing and per-row bulk product import.

import io
from datetime import timedelta

import pytest

from inventra.models import Product
from inventra.services.import_service import read_product_csv
from inventra.services.products_service import bulk_add_products
from inventra.time_utils import utc_today
from inventra.validation import ValidationError


def _row(code, name="Item", expiry=None, **extra):
    row = {"product_code": code, "name": name, "category": "General", "quantity": "10", "expiry_date": expiry}
    row.update(extra)
    return row


class TestReadProductCsv:
    def test_maps_headers_and_price(self):
        data = (
            "Product Name,Product ID,Category,Price,Quantity,Unit,Expiry Date,Threshold Value\n"
            "Green Tea,T-1,Drinks,12.50,40,box,2030-01-01,5\n"
        ).encode("utf-8")

        rows = read_product_csv(io.BytesIO(data))

        assert rows == [{
            "name": "Green Tea",
            "product_code": "T-1",
            "category": "Drinks",
            "price_cents": 1250,
            "quantity": "40",
            "unit": "box",
            "expiry_date": "2030-01-01",
            "threshold_value": "5",
        }]

    def test_skips_blank_lines_and_unknown_columns(self):
        data = (
            "Product Name,Product ID,Category,Colour\n"
            "Tea,T-1,Drinks,green\n"
            ",,,\n"
        ).encode("utf-8")

        rows = read_product_csv(io.BytesIO(data))

        assert len(rows) == 1
        assert set(rows[0]) == {"name", "product_code", "category"}

    def test_missing_required_header(self):
        with pytest.raises(ValidationError):
            read_product_csv(io.BytesIO(b"Name,Category\nTea,Drinks\n"))

    def test_non_utf8_rejected(self):
        with pytest.raises(ValidationError):
            read_product_csv(io.BytesIO("Product Name,Product ID,Category\n\xe9,1,2\n".encode("latin-1")))


class TestBulkAddProducts:
    def test_past_expiry_row_reported_others_inserted(self, db_session, owner_a):
        """Three rows, the middle one already expired: two inserted, one error."""
        today = utc_today()
        rows = [
            _row("B-1", "First", (today + timedelta(days=30)).isoformat()),
            _row("B-2", "Second", (today - timedelta(days=3)).isoformat()),
            _row("B-3", "Third"),
        ]

        result = bulk_add_products(owner_id=owner_a.id, rows=rows)

        assert result.added_count == 2
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error["row"]["product_code"] == "B-2"
        assert error["row"]["name"] == "Second"
        assert "expired" in error["error"]

        codes = {p.product_code for p in db_session.query(Product).filter_by(owner_id=owner_a.id)}
        assert codes == {"B-1", "B-3"}

    def test_expiry_today_is_accepted(self, db_session, owner_a):
        """Only dates strictly before today count as already expired."""
        today = utc_today()
        rows = [
            _row("B-1", "Today", today.isoformat()),
            _row("B-2", "Yesterday", (today - timedelta(days=1)).isoformat()),
        ]

        result = bulk_add_products(owner_id=owner_a.id, rows=rows, today=today)

        assert [p.product_code for p in result.added] == ["B-1"]
        assert [e["row"]["product_code"] for e in result.errors] == ["B-2"]

    def test_unparseable_expiry_is_row_error(self, db_session, owner_a):
        result = bulk_add_products(owner_id=owner_a.id, rows=[_row("B-1", expiry="someday"), _row("B-2")])

        assert result.added_count == 1
        assert "Invalid expiry date" in result.errors[0]["error"]

    def test_duplicates_in_batch_and_existing(self, db_session, owner_a, make_product):
        make_product(owner_a, "EXIST")

        result = bulk_add_products(
            owner_id=owner_a.id,
            rows=[_row("EXIST"), _row("NEW"), _row("NEW")],
        )

        assert result.added_count == 1
        messages = [e["error"] for e in result.errors]
        assert any("already exists" in m for m in messages)
        assert any("Duplicate" in m for m in messages)

    def test_other_owners_codes_do_not_collide(self, db_session, owner_a, owner_b, make_product):
        make_product(owner_b, "SHARED")
        result = bulk_add_products(owner_id=owner_a.id, rows=[_row("SHARED")])
        assert result.added_count == 1

    def test_zero_survivors_raises_with_row_errors(self, db_session, owner_a):
        past = (utc_today() - timedelta(days=1)).isoformat()

        with pytest.raises(ValidationError) as exc_info:
            bulk_add_products(owner_id=owner_a.id, rows=[_row("B-1", expiry=past)])

        assert len(exc_info.value.details["errors"]) == 1
        assert db_session.query(Product).count() == 0

    def test_empty_input(self, db_session, owner_a):
        with pytest.raises(ValidationError):
            bulk_add_products(owner_id=owner_a.id, rows=[])

    def test_result_dict_shape(self, db_session, owner_a):
        result = bulk_add_products(owner_id=owner_a.id, rows=[_row("B-1"), _row("B-1")])
        payload = result.to_dict()
        assert payload["added_count"] == 1
        assert payload["errors_count"] == 1
        assert payload["errors"][0]["row_number"] == 2

# Overview: Pytest coverage for owner-scoped product operations.

from datetime import date, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import SQLAlchemyError

from inventra.models import Product
from inventra.models.inventory import EXPIRED, IN_STOCK, LOW_STOCK
from inventra.services import products_service
from inventra.services.products_service import normalize_product_data
from inventra.validation import ConflictError, NotFoundError, StorageError, ValidationError
from inventra.time_utils import utc_today


class TestNormalizeProductData:
    def test_missing_numbers_default_to_zero(self):
        cleaned = normalize_product_data({"product_code": "A", "name": "A", "category": "C"})
        assert cleaned["price_cents"] == 0
        assert cleaned["quantity"] == 0
        assert cleaned["threshold_value"] == 0
        assert cleaned["expiry_date"] is None

    def test_unparseable_numbers_become_zero(self):
        cleaned = normalize_product_data({"quantity": "lots", "price_cents": "abc"})
        assert cleaned["quantity"] == 0
        assert cleaned["price_cents"] == 0

    def test_decimal_strings_truncate(self):
        assert normalize_product_data({"quantity": "12.7"})["quantity"] == 12

    def test_negative_rejected(self):
        with pytest.raises(ValidationError):
            normalize_product_data({"quantity": -1})

    def test_out_of_range_numbers_rejected(self):
        with pytest.raises(ValidationError):
            normalize_product_data({"quantity": "1e30"})

    def test_unparseable_expiry_becomes_none(self):
        assert normalize_product_data({"expiry_date": "not a date"})["expiry_date"] is None

    def test_expiry_formats(self):
        assert normalize_product_data({"expiry_date": "2027-01-31"})["expiry_date"] == date(2027, 1, 31)
        assert normalize_product_data({"expiry_date": "01/31/2027"})["expiry_date"] == date(2027, 1, 31)

    def test_partial_only_touches_given_keys(self):
        cleaned = normalize_product_data({"quantity": "3"}, partial=True)
        assert cleaned == {"quantity": 3}


class TestCreateProduct:
    def test_create_computes_status(self, db_session, owner_a):
        product = products_service.create_product(
            owner_id=owner_a.id,
            data={"product_code": "P-1", "name": "Milk", "category": "Dairy", "quantity": 3, "threshold_value": 5},
        )
        assert product.id is not None
        assert product.availability_status == LOW_STOCK

    def test_past_expiry_allowed_and_expired(self, db_session, owner_a):
        product = products_service.create_product(
            owner_id=owner_a.id,
            data={
                "product_code": "P-1", "name": "Milk", "category": "Dairy",
                "quantity": 30, "expiry_date": utc_today() - timedelta(days=2),
            },
        )
        assert product.availability_status == EXPIRED

    def test_duplicate_code_same_owner_conflicts(self, db_session, owner_a, make_product):
        make_product(owner_a, "P-1")
        with pytest.raises(ConflictError):
            products_service.create_product(
                owner_id=owner_a.id,
                data={"product_code": "P-1", "name": "Other", "category": "C"},
            )

    def test_same_code_different_owner_allowed(self, db_session, owner_a, owner_b, make_product):
        make_product(owner_a, "P-1")
        product = products_service.create_product(
            owner_id=owner_b.id,
            data={"product_code": "P-1", "name": "Other", "category": "C"},
        )
        assert product.owner_id == owner_b.id

    def test_missing_required_fields(self, db_session, owner_a):
        with pytest.raises(ValidationError):
            products_service.create_product(owner_id=owner_a.id, data={"name": "No code"})


class TestGetAndList:
    def test_other_owner_is_not_found(self, db_session, owner_a, owner_b, make_product):
        product = make_product(owner_a, "P-1")
        with pytest.raises(NotFoundError):
            products_service.get_product(product.id, owner_b.id)

    def test_list_scoped_and_paginated(self, db_session, owner_a, owner_b, make_product):
        for i in range(3):
            make_product(owner_a, f"A-{i}")
        make_product(owner_b, "B-0")

        result = products_service.list_products(owner_a.id, page=1, per_page=2)
        assert result["pagination"]["total"] == 3
        assert result["pagination"]["total_pages"] == 2
        assert result["count"] == 2
        assert all(item["owner_id"] == owner_a.id for item in result["items"])

    def test_search_text_and_number(self, db_session, owner_a, make_product):
        make_product(owner_a, "A-1", name="Green Tea", price_cents=1250)
        make_product(owner_a, "A-2", name="Coffee", price_cents=999)

        assert [p["product_code"] for p in products_service.list_products(owner_a.id, search="tea")["items"]] == ["A-1"]
        assert [p["product_code"] for p in products_service.list_products(owner_a.id, search="12.5")["items"]] == ["A-1"]


class TestUpdateProduct:
    def test_update_recomputes_status(self, db_session, owner_a, make_product):
        product = make_product(owner_a, "P-1", quantity=10, threshold_value=5)
        updated = products_service.update_product(
            product_id=product.id, owner_id=owner_a.id, updates={"quantity": 2}
        )
        assert updated.quantity == 2
        assert updated.availability_status == LOW_STOCK

    def test_changing_product_code_rejected(self, db_session, owner_a, make_product):
        product = make_product(owner_a, "P-1")
        with pytest.raises(ValidationError):
            products_service.update_product(
                product_id=product.id, owner_id=owner_a.id, updates={"product_code": "P-2"}
            )

    def test_same_product_code_is_accepted(self, db_session, owner_a, make_product):
        product = make_product(owner_a, "P-1")
        updated = products_service.update_product(
            product_id=product.id, owner_id=owner_a.id, updates={"product_code": "P-1", "name": "Renamed"}
        )
        assert updated.name == "Renamed"

    def test_update_other_owner_not_found(self, db_session, owner_a, owner_b, make_product):
        product = make_product(owner_a, "P-1")
        with pytest.raises(NotFoundError):
            products_service.update_product(product_id=product.id, owner_id=owner_b.id, updates={"quantity": 1})

    def test_replacing_image_releases_old_one(self, db_session, owner_a, make_product):
        product = make_product(owner_a, "P-1", image_public_id="old-img")
        with patch("inventra.services.products_service.delete_hosted_image") as delete_image:
            products_service.update_product(
                product_id=product.id, owner_id=owner_a.id, updates={"image_public_id": "new-img"}
            )
        delete_image.assert_called_once_with("old-img")

    def test_failed_commit_keeps_old_image(self, db_session, owner_a, make_product):
        product = make_product(owner_a, "P-1", image_public_id="old-img")
        product_id = product.id

        with patch("inventra.services.products_service.delete_hosted_image") as delete_image, \
                patch.object(db_session, "commit", side_effect=SQLAlchemyError("disk full")):
            with pytest.raises(StorageError):
                products_service.update_product(
                    product_id=product_id, owner_id=owner_a.id, updates={"image_public_id": "new-img"}
                )

        delete_image.assert_not_called()
        assert db_session.get(Product, product_id).image_public_id == "old-img"


class TestDeleteProduct:
    def test_delete_removes_row_and_image(self, db_session, owner_a, make_product):
        product = make_product(owner_a, "P-1", image_public_id="img-1")
        product_id = product.id

        with patch("inventra.services.products_service.delete_hosted_image") as delete_image:
            products_service.delete_product(product_id=product_id, owner_id=owner_a.id)

        delete_image.assert_called_once_with("img-1")
        assert db_session.get(Product, product_id) is None

    def test_image_host_failure_does_not_block_delete(self, db_session, app, owner_a, make_product):
        """Image host errors are logged, the product is still gone."""
        import httpx

        product = make_product(owner_a, "P-1", image_public_id="img-1")
        product_id = product.id
        app.config["IMAGE_HOST_DELETE_URL"] = "https://images.example.test/delete"
        try:
            with patch("inventra.services.image_service.httpx.post", side_effect=httpx.ConnectError("down")):
                products_service.delete_product(product_id=product_id, owner_id=owner_a.id)
        finally:
            app.config["IMAGE_HOST_DELETE_URL"] = None

        assert db_session.get(Product, product_id) is None

    def test_delete_not_owned(self, db_session, owner_a, owner_b, make_product):
        product = make_product(owner_a, "P-1")
        with pytest.raises(NotFoundError):
            products_service.delete_product(product_id=product.id, owner_id=owner_b.id)
        assert db_session.get(Product, product.id) is not None

# Overview: Pytest coverage for invoice updates, listing and deletion.

from datetime import timedelta

import pytest

from inventra.models import Invoice, Product
from inventra.models.invoices import CANCELLED, OVERDUE, PAID, UNPAID
from inventra.services import invoice_service
from inventra.services.order_service import place_order
from inventra.validation import InvalidStateError, NotFoundError, ValidationError


@pytest.fixture
def ordered_invoice(db_session, owner_a, make_product):
    """Unpaid invoice for 6 x 100.00 (total 660.00)."""
    product = make_product(owner_a, "P-1", quantity=10, threshold_value=5, price_cents=10000)
    _, invoice = place_order(product_id=product.id, owner_id=owner_a.id, quantity=6)
    return invoice


class TestUpdateInvoice:
    def test_mark_paid_without_amount(self, db_session, owner_a, ordered_invoice):
        invoice = invoice_service.update_invoice(
            invoice_id=ordered_invoice.id, owner_id=owner_a.id, updates={"status": "Paid"}
        )

        assert invoice.paid_cents == 66000
        assert invoice.balance_due_cents == 0
        assert invoice.status == PAID
        assert invoice.reference_number == "REF-001"

    def test_resaving_paid_invoice_keeps_reference(self, db_session, owner_a, ordered_invoice):
        invoice_service.update_invoice(invoice_id=ordered_invoice.id, owner_id=owner_a.id, updates={"status": "Paid"})
        invoice = invoice_service.update_invoice(
            invoice_id=ordered_invoice.id, owner_id=owner_a.id, updates={"notes": "thanks"}
        )

        assert invoice.reference_number == "REF-001"
        assert invoice.status == PAID

    def test_explicit_unpaid_past_due_becomes_overdue(self, db_session, owner_a, ordered_invoice):
        invoice = invoice_service.update_invoice(
            invoice_id=ordered_invoice.id,
            owner_id=owner_a.id,
            updates={"status": "Unpaid", "due_date": "2020-01-01T00:00:00Z"},
        )

        assert invoice.status == OVERDUE
        assert invoice.reference_number is None

    def test_reopening_paid_invoice_clears_reference(self, db_session, owner_a, ordered_invoice):
        invoice_service.update_invoice(invoice_id=ordered_invoice.id, owner_id=owner_a.id, updates={"status": "Paid"})
        invoice = invoice_service.update_invoice(
            invoice_id=ordered_invoice.id,
            owner_id=owner_a.id,
            updates={"status": "Unpaid", "paid_cents": 0},
        )

        assert invoice.status == UNPAID
        assert invoice.balance_due_cents == 66000
        assert invoice.reference_number is None

    def test_server_owned_fields_are_stripped(self, db_session, owner_a, ordered_invoice):
        invoice = invoice_service.update_invoice(
            invoice_id=ordered_invoice.id,
            owner_id=owner_a.id,
            updates={"invoice_number": "INV-9999", "reference_number": "REF-999", "tax_cents": 1, "notes": "n"},
        )

        assert invoice.invoice_number == "INV-0001"
        assert invoice.reference_number is None
        assert invoice.tax_cents == 6000
        assert invoice.notes == "n"

    @pytest.mark.parametrize("updates", [
        {"total_cents": 1},
        {"owner_id": 99},
        {"status": "Refunded"},
        {"discount_cents": -5},
        {"customer_email": "nope"},
    ])
    def test_rejected_updates(self, db_session, owner_a, ordered_invoice, updates):
        with pytest.raises(ValidationError):
            invoice_service.update_invoice(invoice_id=ordered_invoice.id, owner_id=owner_a.id, updates=updates)

    def test_discount_larger_than_total_leaves_invoice_untouched(self, db_session, owner_a, ordered_invoice):
        with pytest.raises(ValidationError):
            invoice_service.update_invoice(
                invoice_id=ordered_invoice.id, owner_id=owner_a.id, updates={"discount_cents": 70000}
            )

        invoice = invoice_service.get_invoice(ordered_invoice.id, owner_a.id)
        assert invoice.discount_cents == 0
        assert invoice.total_cents == 66000

    def test_cancel_then_status_change_refused(self, db_session, owner_a, ordered_invoice):
        invoice = invoice_service.update_invoice(
            invoice_id=ordered_invoice.id, owner_id=owner_a.id, updates={"status": "Cancelled"}
        )
        assert invoice.status == CANCELLED
        assert invoice.reference_number is None

        with pytest.raises(InvalidStateError):
            invoice_service.update_invoice(
                invoice_id=ordered_invoice.id, owner_id=owner_a.id, updates={"status": "Paid"}
            )

    def test_cancelled_invoice_notes_still_editable(self, db_session, owner_a, ordered_invoice):
        invoice_service.update_invoice(invoice_id=ordered_invoice.id, owner_id=owner_a.id, updates={"status": "Cancelled"})
        invoice = invoice_service.update_invoice(
            invoice_id=ordered_invoice.id, owner_id=owner_a.id, updates={"notes": "void", "paid_cents": 66000}
        )

        assert invoice.status == CANCELLED
        assert invoice.reference_number is None
        assert invoice.notes == "void"

    def test_other_owner_not_found(self, db_session, owner_b, ordered_invoice):
        with pytest.raises(NotFoundError):
            invoice_service.update_invoice(invoice_id=ordered_invoice.id, owner_id=owner_b.id, updates={"notes": "x"})


class TestListAndDelete:
    def test_list_filters(self, db_session, owner_a, owner_b, make_product):
        a = make_product(owner_a, "P-1", name="Green Tea")
        b = make_product(owner_b, "P-1")
        place_order(product_id=a.id, owner_id=owner_a.id, quantity=1)
        _, paid = place_order(product_id=a.id, owner_id=owner_a.id, quantity=2)
        place_order(product_id=b.id, owner_id=owner_b.id, quantity=1)
        invoice_service.update_invoice(invoice_id=paid.id, owner_id=owner_a.id, updates={"status": "Paid"})

        everything = invoice_service.list_invoices(owner_a.id)
        assert everything["pagination"]["total"] == 2

        only_paid = invoice_service.list_invoices(owner_a.id, status=PAID)
        assert [i["invoice_number"] for i in only_paid["items"]] == [paid.invoice_number]

        by_line_name = invoice_service.list_invoices(owner_a.id, search="green")
        assert by_line_name["pagination"]["total"] == 2

        by_reference = invoice_service.list_invoices(owner_a.id, search="REF-001")
        assert by_reference["count"] == 1

    def test_list_rejects_unknown_status(self, db_session, owner_a):
        with pytest.raises(ValidationError):
            invoice_service.list_invoices(owner_a.id, status="Lost")

    def test_delete_does_not_restock(self, db_session, owner_a, make_product):
        product = make_product(owner_a, "P-1", quantity=10)
        _, invoice = place_order(product_id=product.id, owner_id=owner_a.id, quantity=4)
        invoice_id = invoice.id

        invoice_service.delete_invoice(invoice_id=invoice_id, owner_id=owner_a.id)

        assert db_session.get(Invoice, invoice_id) is None
        assert db_session.get(Product, product.id).quantity == 6

    def test_delete_other_owner_not_found(self, db_session, owner_b, ordered_invoice):
        with pytest.raises(NotFoundError):
            invoice_service.delete_invoice(invoice_id=ordered_invoice.id, owner_id=owner_b.id)

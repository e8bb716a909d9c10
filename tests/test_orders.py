"""
Tests for order ingestion and order/invoice record operations.
"""

import re
from unittest.mock import patch

import pytest

from storefront import orders
from storefront.errors import NotFoundError, StorageError, ValidationError
from storefront.kv_store import KVStore, invoice_key, order_key


class InvoiceWriteFailingStore(KVStore):
    def set(self, key, value):
        if key.startswith("invoice:"):
            raise StorageError("Storage failure during set", {"key": key})
        super().set(key, value)


class TestCreateOrder:
    def test_creates_one_order_and_one_linked_invoice(self, store, order_payload):
        order, invoice = orders.create_order(store, order_payload)

        assert invoice["orderId"] == order["id"]
        assert store.get_by_prefix("order:") == [order]
        assert store.get_by_prefix("invoice:") == [invoice]
        assert store.get(order_key(order["id"])) == order
        assert store.get(invoice_key(invoice["id"])) == invoice

    def test_identifier_formats(self, store, order_payload):
        order, invoice = orders.create_order(store, order_payload)
        assert re.fullmatch(r"ORD-\d{13}-[0-9a-f]{8}", order["id"])
        assert re.fullmatch(r"INV-\d{13}-[0-9a-f]{8}", invoice["id"])

    def test_order_starts_pending_with_defaults(self, store, order_payload):
        order, _ = orders.create_order(store, order_payload)
        assert order["status"] == "pending"
        assert order["trackingNumber"] is None
        assert order["userId"] is None
        assert order["phone"] == ""
        assert order["city"] == ""
        assert order["orderDate"].endswith("Z")

    def test_invoice_snapshots_customer_and_amounts(self, store, order_payload):
        order_payload.update({"street": "Hauptstraße", "houseNumber": "1", "postalCode": "48231", "city": "Warendorf"})
        order, invoice = orders.create_order(store, order_payload)
        for field in ("customerName", "email", "street", "houseNumber", "postalCode", "city",
                      "items", "subtotal", "shippingFee", "total", "paymentMethod", "userId"):
            assert invoice[field] == order[field]

    def test_distinct_identifiers_across_orders(self, store, order_payload):
        ids = {orders.create_order(store, order_payload)[0]["id"] for _ in range(10)}
        assert len(ids) == 10
        assert len(store.get_by_prefix("order:")) == 10
        assert len(store.get_by_prefix("invoice:")) == 10

    def test_total_is_trusted_not_recomputed(self, store):
        payload = {
            "customerName": "B",
            "email": "b@x.com",
            "items": [{"id": 7, "name": "Hat", "price": 10.00, "quantity": 2}],
            "subtotal": 20.00,
            "shippingFee": 6.00,
            "total": 99.00,
        }
        order, invoice = orders.create_order(store, payload)
        assert order["total"] == 99.00
        assert invoice["total"] == 99.00

    def test_matching_total_is_kept(self, store):
        payload = {
            "customerName": "B",
            "email": "b@x.com",
            "items": [{"price": 10.00, "quantity": 2}],
            "subtotal": 20.00,
            "shippingFee": 6.00,
            "total": 26.00,
        }
        order, invoice = orders.create_order(store, payload)
        assert (order["subtotal"], order["shippingFee"], order["total"]) == (20.0, 6.0, 26.0)
        assert order["items"] == invoice["items"] == [{"price": 10.00, "quantity": 2}]

    def test_bad_numerics_default_to_zero(self, store, order_payload):
        order_payload.update({"subtotal": "abc", "total": None, "shippingFee": -3})
        del order_payload["paymentMethod"]
        order, _ = orders.create_order(store, order_payload)
        assert order["subtotal"] == 0.0
        assert order["shippingFee"] == 0.0
        assert order["total"] == 0.0
        assert order["paymentMethod"] == "bankTransfer"

    def test_numeric_strings_are_parsed(self, store, order_payload):
        order_payload["total"] = "21.50"
        order, _ = orders.create_order(store, order_payload)
        assert order["total"] == 21.5

    def test_unknown_payment_method_falls_back(self, store, order_payload):
        order_payload["paymentMethod"] = "cash"
        order, _ = orders.create_order(store, order_payload)
        assert order["paymentMethod"] == "bankTransfer"

    def test_paypal_is_kept(self, store, order_payload):
        order_payload["paymentMethod"] = "paypal"
        order, invoice = orders.create_order(store, order_payload)
        assert order["paymentMethod"] == invoice["paymentMethod"] == "paypal"

    def test_item_snapshot_keeps_variant_fields(self, store, order_payload):
        order_payload["items"] = [
            {"id": "p-9", "name": "Coat", "price": 80, "quantity": 2, "image": "https://img/coat.png",
             "selectedSize": "M", "selectedColor": "Red"}
        ]
        order, _ = orders.create_order(store, order_payload)
        item = order["items"][0]
        assert item["selectedSize"] == "M"
        assert item["selectedColor"] == "Red"
        assert item["quantity"] == 2

    @pytest.mark.parametrize("item", [
        {"price": "n/a", "quantity": 2},
        {"name": "Scarf", "price": -5, "quantity": 0},
        {"id": None, "quantity": "two"},
        {},
    ])
    def test_item_fields_are_stored_as_submitted(self, store, order_payload, item):
        order_payload["items"] = [item]
        order, invoice = orders.create_order(store, order_payload)
        assert order["items"] == invoice["items"] == [item]
        assert store.get(f"order:{order['id']}")["items"] == [item]

    def test_user_id_is_recorded(self, store, order_payload):
        order_payload["userId"] = "user-1"
        order, invoice = orders.create_order(store, order_payload)
        assert order["userId"] == invoice["userId"] == "user-1"


class TestCreateOrderValidation:
    @pytest.mark.parametrize("missing", ["customerName", "email", "items"])
    def test_missing_required_field_writes_nothing(self, store, order_payload, missing):
        del order_payload[missing]
        with patch.object(store, "set", wraps=store.set) as spy:
            with pytest.raises(ValidationError) as exc_info:
                orders.create_order(store, order_payload)
        assert spy.call_count == 0
        assert missing in exc_info.value.details["missing"]
        assert store.get_by_prefix("order:") == []
        assert store.get_by_prefix("invoice:") == []

    @pytest.mark.parametrize("field, value", [("customerName", "   "), ("email", ""), ("items", [])])
    def test_blank_required_field_is_rejected(self, store, order_payload, field, value):
        order_payload[field] = value
        with pytest.raises(ValidationError):
            orders.create_order(store, order_payload)
        assert store.get_by_prefix("order:") == []

    @pytest.mark.parametrize("item", ["Scarf", 7, None, ["Scarf", 15]])
    def test_non_object_item_is_rejected_before_writes(self, store, order_payload, item):
        order_payload["items"] = [order_payload["items"][0], item]
        with pytest.raises(ValidationError) as exc_info:
            orders.create_order(store, order_payload)
        assert exc_info.value.details["index"] == 1
        assert store.get_by_prefix("order:") == []


class TestInvoiceWriteFailure:
    def test_order_is_removed_and_error_raised(self, mongo_db, order_payload):
        failing = InvoiceWriteFailingStore(mongo_db["kv_store"])
        with pytest.raises(StorageError):
            orders.create_order(failing, order_payload)
        assert failing.get_by_prefix("order:") == []
        assert failing.get_by_prefix("invoice:") == []


class TestCoerceAmount:
    @pytest.mark.parametrize("raw, expected", [
        (12, 12.0), ("12.5", 12.5), (None, 0.0), ("", 0.0), ("x", 0.0),
        (-1, 0.0), (float("nan"), 0.0), (float("inf"), 0.0), (True, 0.0), ([1], 0.0),
        ("21.50 EUR", 0.0), (" 7.5 ", 7.5),
    ])
    def test_values(self, raw, expected):
        assert orders.coerce_amount(raw) == expected


class TestStatusUpdates:
    def test_any_transition_is_allowed(self, store, order_payload):
        order, _ = orders.create_order(store, order_payload)
        for status in ("completed", "pending", "cancelled", "in_transit"):
            updated = orders.update_order_status(store, order["id"], {"status": status})
            assert updated["status"] == status
        assert store.get(order_key(order["id"]))["status"] == "in_transit"

    def test_tracking_number_update(self, store, order_payload):
        order, _ = orders.create_order(store, order_payload)
        updated = orders.update_order_status(
            store, order["id"], {"status": "shipped", "trackingNumber": " DHL123 "}
        )
        assert updated["trackingNumber"] == "DHL123"
        assert updated["status"] == "shipped"
        assert "updatedAt" in updated
        assert updated["id"] == order["id"]

    def test_unknown_status_is_rejected(self, store, order_payload):
        order, _ = orders.create_order(store, order_payload)
        with pytest.raises(ValidationError):
            orders.update_order_status(store, order["id"], {"status": "lost"})
        assert store.get(order_key(order["id"]))["status"] == "pending"

    def test_empty_update_is_rejected(self, store, order_payload):
        order, _ = orders.create_order(store, order_payload)
        with pytest.raises(ValidationError):
            orders.update_order_status(store, order["id"], {})

    def test_absent_order(self, store):
        with pytest.raises(NotFoundError):
            orders.update_order_status(store, "ORD-0-deadbeef", {"status": "shipped"})


class TestListingAndDeletion:
    def test_orders_listed_newest_first(self, store):
        for i, date in enumerate(["2024-01-02T00:00:00.000Z", "2024-03-01T00:00:00.000Z", "2024-02-01T00:00:00.000Z"]):
            store.set(order_key(str(i)), {"id": str(i), "orderDate": date})
        assert [o["id"] for o in orders.list_orders(store)] == ["1", "2", "0"]

    def test_delete_keeps_invoice(self, store, order_payload):
        order, invoice = orders.create_order(store, order_payload)
        orders.delete_order(store, order["id"])
        with pytest.raises(NotFoundError):
            orders.get_order(store, order["id"])
        assert orders.get_invoice(store, invoice["id"]) == invoice

    def test_delete_absent_order(self, store):
        with pytest.raises(NotFoundError):
            orders.delete_order(store, "nope")

    def test_user_scoped_lists(self, store, order_payload):
        orders.create_order(store, {**order_payload, "userId": "u1"})
        orders.create_order(store, {**order_payload, "userId": "u2"})
        orders.create_order(store, order_payload)
        assert [o["userId"] for o in orders.list_orders_for_user(store, "u1")] == ["u1"]
        assert [i["userId"] for i in orders.list_invoices_for_user(store, "u2")] == ["u2"]
        assert orders.list_orders_for_user(store, None) == []

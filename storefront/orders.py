"""
Order ingestion and order/invoice record operations.

``create_order`` is the checkout write path: validate, persist the order,
derive and persist its invoice, and hand the order back so the caller can
schedule the admin notification. The order write always completes before the
invoice write starts. Totals are taken from the caller as submitted.
"""

import math
import uuid
from typing import Any, Dict, List, Optional, Tuple

from .errors import NotFoundError, StorageError, ValidationError
from .kv_store import INVOICE_PREFIX, ORDER_PREFIX, KVStore, invoice_key, order_key
from .logging_config import get_logger
from .schemas import Invoice, Order, OrderStatus, PaymentMethod
from .timeutil import epoch_millis, utc_now_iso

logger = get_logger(__name__)

CONTACT_FIELDS = ("phone", "street", "houseNumber", "addressExtra", "postalCode", "city")


def generate_record_id(prefix: str) -> str:
    """``<prefix>-<epoch millis>-<8 hex>``, e.g. ``ORD-1718000000000-1a2b3c4d``."""
    return f"{prefix}-{epoch_millis()}-{uuid.uuid4().hex[:8]}"


def coerce_amount(value: Any) -> float:
    """Parse a monetary amount; anything missing, invalid or negative is 0.0."""
    if isinstance(value, bool):
        return 0.0
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(amount) or amount < 0:
        return 0.0
    return amount


def _is_blank(value: Any) -> bool:
    return not isinstance(value, str) or not value.strip()


def _payment_method(value: Any) -> PaymentMethod:
    if value in (None, ""):
        return PaymentMethod.BANK_TRANSFER
    try:
        return PaymentMethod(value)
    except ValueError:
        logger.warning("Unknown payment method, using bank transfer", payment_method=str(value))
        return PaymentMethod.BANK_TRANSFER


def _snapshot_items(raw_items: List[Any]) -> List[Dict[str, Any]]:
    # Items are stored as submitted; only their shape is checked.
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError("Invalid order item", {"index": index, "reason": "item must be an object"})
    return [dict(raw) for raw in raw_items]


def validate_order_payload(payload: Dict[str, Any]) -> List[Dict[str, Any]]:
    missing = [f for f in ("customerName", "email") if _is_blank(payload.get(f))]
    raw_items = payload.get("items")
    if not isinstance(raw_items, list) or not raw_items:
        missing.append("items")
    if missing:
        raise ValidationError("Missing required fields", {"missing": missing})
    return _snapshot_items(raw_items)


def create_order(store: KVStore, payload: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Persist an order and its invoice; return both records.

    Raises:
        ValidationError: required fields missing or an item is not an object (nothing written)
        StorageError: the order or invoice write failed
    """
    items = validate_order_payload(payload)

    contact = {field: str(payload.get(field) or "") for field in CONTACT_FIELDS}
    amounts = {
        "subtotal": coerce_amount(payload.get("subtotal")),
        "shippingFee": coerce_amount(payload.get("shippingFee")),
        "total": coerce_amount(payload.get("total")),
    }
    payment_method = _payment_method(payload.get("paymentMethod"))
    user_id = payload.get("userId") or None

    order_id = generate_record_id("ORD")
    logger.info("Creating order", order_id=order_id, items=len(items))

    order = Order.model_validate({
        "id": order_id,
        "customerName": payload["customerName"].strip(),
        "email": payload["email"].strip(),
        **contact,
        "items": items,
        **amounts,
        "paymentMethod": payment_method,
        "status": OrderStatus.PENDING,
        "trackingNumber": None,
        "orderDate": utc_now_iso(),
        "userId": str(user_id) if user_id is not None else None,
    }).to_record()
    store.set(order_key(order_id), order)
    logger.info("Order saved", order_id=order_id)

    invoice = Invoice.model_validate({
        "id": generate_record_id("INV"),
        "orderId": order_id,
        "customerName": order["customerName"],
        "email": order["email"],
        **contact,
        "items": items,
        **amounts,
        "paymentMethod": payment_method,
        "createdAt": utc_now_iso(),
        "userId": order["userId"],
    }).to_record()
    try:
        store.set(invoice_key(invoice["id"]), invoice)
    except StorageError:
        _discard_order(store, order_id)
        raise
    logger.info("Invoice saved", order_id=order_id, invoice_id=invoice["id"])

    return order, invoice


def _discard_order(store: KVStore, order_id: str) -> None:
    # An order must not outlive a failed invoice write.
    try:
        store.mdel([order_key(order_id)])
    except StorageError:
        logger.error("Could not remove order after invoice failure", order_id=order_id)
    else:
        logger.warning("Order removed after invoice failure", order_id=order_id)


def _newest_first(records: List[Dict[str, Any]], field: str) -> List[Dict[str, Any]]:
    return sorted(records, key=lambda r: r.get(field) or "", reverse=True)


def list_orders(store: KVStore) -> List[Dict[str, Any]]:
    return _newest_first(store.get_by_prefix(ORDER_PREFIX), "orderDate")


def get_order(store: KVStore, order_id: str) -> Dict[str, Any]:
    order = store.get(order_key(order_id))
    if order is None:
        raise NotFoundError("Order", order_id)
    return order


def update_order_status(store: KVStore, order_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Set ``status`` and/or ``trackingNumber``. Any status may follow any other."""
    if "status" not in payload and "trackingNumber" not in payload:
        raise ValidationError("Missing required fields", {"missing": ["status"]})

    changes: Dict[str, Any] = {}
    if "status" in payload:
        try:
            changes["status"] = OrderStatus(payload["status"]).value
        except ValueError:
            raise ValidationError(
                "Invalid order status",
                {"status": payload["status"], "allowed": [s.value for s in OrderStatus]},
            )
    if "trackingNumber" in payload:
        tracking = payload["trackingNumber"]
        if tracking is not None and not isinstance(tracking, str):
            raise ValidationError("Tracking number must be a string", {"trackingNumber": tracking})
        changes["trackingNumber"] = tracking.strip() if tracking else None

    order = get_order(store, order_id)
    updated = {**order, **changes, "updatedAt": utc_now_iso()}
    store.set(order_key(order_id), updated)
    logger.info("Order updated", order_id=order_id, **changes)
    return updated


def delete_order(store: KVStore, order_id: str) -> None:
    """Hard delete. The invoice created with the order is kept."""
    get_order(store, order_id)
    store.delete(order_key(order_id))
    logger.info("Order deleted", order_id=order_id)


def list_invoices(store: KVStore) -> List[Dict[str, Any]]:
    return _newest_first(store.get_by_prefix(INVOICE_PREFIX), "createdAt")


def get_invoice(store: KVStore, invoice_id: str) -> Dict[str, Any]:
    invoice = store.get(invoice_key(invoice_id))
    if invoice is None:
        raise NotFoundError("Invoice", invoice_id)
    return invoice


def list_orders_for_user(store: KVStore, user_id: Optional[str]) -> List[Dict[str, Any]]:
    return [o for o in list_orders(store) if user_id and o.get("userId") == user_id]


def list_invoices_for_user(store: KVStore, user_id: Optional[str]) -> List[Dict[str, Any]]:
    return [i for i in list_invoices(store) if user_id and i.get("userId") == user_id]

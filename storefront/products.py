"""Product catalog operations over the key-value store."""

import math
import uuid
from typing import Any, Dict, List

from .errors import NotFoundError, ValidationError
from .kv_store import PRODUCT_PREFIX, KVStore, product_key
from .logging_config import get_logger
from .schemas import Product
from .timeutil import utc_now_iso

logger = get_logger(__name__)

REQUIRED_PRODUCT_FIELDS = ("name", "price", "image", "category")


def parse_price(value: Any) -> float:
    try:
        price = float(value)
    except (TypeError, ValueError):
        raise ValidationError("Price must be a number", {"price": value})
    if not math.isfinite(price) or price < 0:
        raise ValidationError("Price must be a non-negative number", {"price": value})
    return price


def check_image_size(image: Any, max_bytes: int) -> None:
    """Reject embedded ``data:image`` payloads above ``max_bytes`` (decoded estimate)."""
    if isinstance(image, str) and image.startswith("data:image"):
        size = len(image) * 0.75
        if size > max_bytes:
            raise ValidationError(
                "Image too large",
                {
                    "message": f"Image size must be less than {max_bytes / (1024 * 1024):g}MB",
                    "currentSize": f"{size / (1024 * 1024):.2f}MB",
                },
            )


def list_products(store: KVStore) -> List[Dict[str, Any]]:
    products = store.get_by_prefix(PRODUCT_PREFIX)
    products.sort(key=lambda p: p.get("createdAt") or "", reverse=True)
    return products


def get_product(store: KVStore, product_id: str) -> Dict[str, Any]:
    product = store.get(product_key(product_id))
    if product is None:
        raise NotFoundError("Product", product_id)
    return product


def create_product(store: KVStore, payload: Dict[str, Any], max_image_bytes: int) -> Dict[str, Any]:
    missing = [f for f in REQUIRED_PRODUCT_FIELDS if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(
            "Missing required fields: name, price, image, category", {"missing": missing}
        )
    check_image_size(payload["image"], max_image_bytes)

    product = Product(
        id=str(uuid.uuid4()),
        name=str(payload["name"]),
        price=parse_price(payload["price"]),
        image=str(payload["image"]),
        category=str(payload["category"]),
        description=str(payload.get("description") or ""),
        colors=str(payload.get("colors") or ""),
        sizes=str(payload.get("sizes") or ""),
        created_at=utc_now_iso(),
    ).to_record()
    store.set(product_key(product["id"]), product)
    logger.info("Product created", product_id=product["id"])
    return product


def update_product(
    store: KVStore, product_id: str, payload: Dict[str, Any], max_image_bytes: int
) -> Dict[str, Any]:
    """Merge ``payload`` over the stored product. The id never changes."""
    existing = get_product(store, product_id)
    if "image" in payload:
        check_image_size(payload["image"], max_image_bytes)

    updated = {**existing, **payload, "id": existing.get("id", product_id)}
    if "price" in payload:
        updated["price"] = parse_price(payload["price"])
    updated["updatedAt"] = utc_now_iso()

    store.set(product_key(product_id), updated)
    logger.info("Product updated", product_id=product_id)
    return updated


def delete_product(store: KVStore, product_id: str) -> None:
    get_product(store, product_id)
    store.delete(product_key(product_id))
    logger.info("Product deleted", product_id=product_id)

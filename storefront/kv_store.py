"""
Generic key-value persistence over a single MongoDB collection.

Each record is stored as ``{"_id": key, "value": value}``. Products, orders
and invoices share the collection and are namespaced by key prefix
(``product:``, ``order:``, ``invoice:``). There are no secondary indices and
no transactions across keys; every write is a full-record overwrite.
"""

import re
from typing import Any, Dict, Iterable, List, Optional

from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from .errors import StorageError
from .logging_config import get_logger

logger = get_logger(__name__)

PRODUCT_PREFIX = "product:"
ORDER_PREFIX = "order:"
INVOICE_PREFIX = "invoice:"


def product_key(product_id: str) -> str:
    return f"{PRODUCT_PREFIX}{product_id}"


def order_key(order_id: str) -> str:
    return f"{ORDER_PREFIX}{order_id}"


def invoice_key(invoice_id: str) -> str:
    return f"{INVOICE_PREFIX}{invoice_id}"


class KVStore:
    """String keys to JSON-like values, with prefix scans.

    Any driver error surfaces as ``StorageError``; nothing is retried here.
    """

    def __init__(self, collection: Collection):
        self._collection = collection

    def _fail(self, op: str, key: str, exc: PyMongoError) -> StorageError:
        logger.error("Store operation failed", op=op, key=key, error=str(exc))
        return StorageError(f"Storage failure during {op}", {"key": key})

    def get(self, key: str) -> Optional[Any]:
        try:
            doc = self._collection.find_one({"_id": key})
        except PyMongoError as exc:
            raise self._fail("get", key, exc) from exc
        if doc is None:
            return None
        return doc.get("value")

    def set(self, key: str, value: Any) -> None:
        try:
            self._collection.replace_one({"_id": key}, {"_id": key, "value": value}, upsert=True)
        except PyMongoError as exc:
            raise self._fail("set", key, exc) from exc

    def delete(self, key: str) -> None:
        # deleting an absent key is a no-op
        try:
            self._collection.delete_one({"_id": key})
        except PyMongoError as exc:
            raise self._fail("delete", key, exc) from exc

    def get_by_prefix(self, prefix: str) -> List[Any]:
        """All values whose key starts with ``prefix``, in no particular order."""
        try:
            cursor = self._collection.find({"_id": {"$regex": f"^{re.escape(prefix)}"}})
            return [doc.get("value") for doc in cursor]
        except PyMongoError as exc:
            raise self._fail("get_by_prefix", prefix, exc) from exc

    def mget(self, keys: Iterable[str]) -> List[Optional[Any]]:
        """Values for ``keys`` in the same order; absent keys give ``None``."""
        keys = list(keys)
        try:
            found = {doc["_id"]: doc.get("value") for doc in self._collection.find({"_id": {"$in": keys}})}
        except PyMongoError as exc:
            raise self._fail("mget", ",".join(keys), exc) from exc
        return [found.get(k) for k in keys]

    def mset(self, items: Dict[str, Any]) -> None:
        for key, value in items.items():
            self.set(key, value)

    def mdel(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        try:
            self._collection.delete_many({"_id": {"$in": keys}})
        except PyMongoError as exc:
            raise self._fail("mdel", ",".join(keys), exc) from exc

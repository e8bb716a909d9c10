"""
Customer accounts: signup, password login, profile metadata and the admin
customer listing. Accounts live in the ``user`` collection, outside the
key-value store.
"""

import uuid
from typing import Any, Dict, List, Optional, Tuple

from pymongo.collection import Collection
from pymongo.errors import ExecutionTimeout, NetworkTimeout, PyMongoError, ServerSelectionTimeoutError

from .auth import hash_password, verify_password
from .customer_number import generate_customer_number
from .errors import StorageError, UpstreamTimeoutError, ValidationError
from .logging_config import get_logger
from .schemas import Customer, ProfileUpdate, SignupRequest
from .timeutil import utc_now_iso

logger = get_logger(__name__)

_TIMEOUTS = (ExecutionTimeout, NetworkTimeout, ServerSelectionTimeoutError)


def public_user(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": doc["_id"],
        "email": doc.get("email"),
        "userMetadata": doc.get("userMetadata", {}),
        "createdAt": doc.get("createdAt"),
    }


class AccountService:
    def __init__(self, collection: Collection):
        self._users = collection

    def _call(self, op: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except _TIMEOUTS as exc:
            logger.error("Account store timed out", op=op, error=str(exc))
            raise UpstreamTimeoutError("Account service timed out") from exc
        except PyMongoError as exc:
            logger.error("Account store failed", op=op, error=str(exc))
            raise StorageError("Account service failure") from exc

    def signup(self, req: SignupRequest) -> Tuple[Dict[str, Any], str]:
        email = req.email.lower()
        if self._call("find", self._users.find_one, {"email": email}):
            raise ValidationError("A user with this email address has already been registered")

        address = req.city or " ".join(
            part for part in (req.street, req.house_number, req.postal_code) if part
        )
        customer_number = generate_customer_number(address)
        metadata = req.model_dump(by_alias=True, exclude={"email", "password"})
        metadata["customerNumber"] = customer_number

        doc = {
            "_id": str(uuid.uuid4()),
            "email": email,
            "hashed_password": hash_password(req.password),
            "userMetadata": metadata,
            "createdAt": utc_now_iso(),
        }
        self._call("insert", self._users.insert_one, doc)
        logger.info("User created", user_id=doc["_id"], customer_number=customer_number)
        return public_user(doc), customer_number

    def authenticate(self, email: str, password: str) -> Dict[str, Any]:
        doc = self._call("find", self._users.find_one, {"email": email.lower()})
        if not doc or not verify_password(password, doc.get("hashed_password", "")):
            raise ValidationError("Invalid login credentials")
        return public_user(doc)

    def get_user(self, user_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not user_id:
            return None
        doc = self._call("find", self._users.find_one, {"_id": user_id})
        return public_user(doc) if doc else None

    def update_metadata(self, user_id: str, update: ProfileUpdate) -> Dict[str, Any]:
        """Merge profile fields into the metadata; ``customerNumber`` is kept."""
        changes = update.model_dump(by_alias=True, exclude_none=True)
        fields = {f"userMetadata.{key}": value for key, value in changes.items()}
        if fields:
            self._call("update", self._users.update_one, {"_id": user_id}, {"$set": fields})
        user = self.get_user(user_id)
        if user is None:
            raise ValidationError("User not found")
        return user

    def list_customers(self) -> List[Dict[str, Any]]:
        docs = self._call("list", lambda: list(self._users.find({})))
        customers = []
        for doc in docs:
            meta = doc.get("userMetadata") or {}
            customers.append(Customer(
                id=doc["_id"],
                email=doc.get("email") or "N/A",
                name=meta.get("name") or "N/A",
                city=meta.get("city") or "N/A",
                customer_number=meta.get("customerNumber") or "N/A",
                phone=meta.get("phone") or "",
                street=meta.get("street") or "",
                house_number=meta.get("houseNumber") or "",
                postal_code=meta.get("postalCode") or "",
                created_at=doc.get("createdAt"),
            ).to_record())
        customers.sort(key=lambda c: c.get("createdAt") or "", reverse=True)
        return customers

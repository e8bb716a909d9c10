"""
Shared pytest fixtures for the storefront test suite.

MongoDB is replaced by mongomock and the email provider by an
``httpx.MockTransport``, so the suite runs without any external service.
"""

from typing import Any, Dict

import httpx
import mongomock
import pytest
from fastapi.testclient import TestClient

from storefront.auth import ROLE_ADMIN, create_token, hash_password
from storefront.config import Settings
from storefront.database import KV_COLLECTION
from storefront.kv_store import KVStore
from storefront.main import create_app
from storefront.notifications import NotificationDispatcher
from tests.helpers import ADMIN_PASSWORD, API, FakeEmailProvider


@pytest.fixture(scope="session")
def admin_password_hash() -> str:
    return hash_password(ADMIN_PASSWORD)


@pytest.fixture
def settings(admin_password_hash) -> Settings:
    return Settings(
        api_prefix=API,
        jwt_secret="test-secret",
        admin_password_hash=admin_password_hash,
        resend_api_key="re_test_key",
        admin_email="owner@autumn-store.de",
        notification_timeout=1.0,
        notification_backoff=0.0,
    )


@pytest.fixture
def mongo_db():
    return mongomock.MongoClient()["storefront_test"]


@pytest.fixture
def store(mongo_db) -> KVStore:
    return KVStore(mongo_db[KV_COLLECTION])


@pytest.fixture
def email_provider() -> FakeEmailProvider:
    return FakeEmailProvider()


@pytest.fixture
def dispatcher(settings, email_provider) -> NotificationDispatcher:
    return NotificationDispatcher.from_settings(settings, transport=httpx.MockTransport(email_provider))


@pytest.fixture
def app(settings, mongo_db, dispatcher):
    return create_app(settings=settings, db=mongo_db, dispatcher=dispatcher)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_headers(settings) -> Dict[str, str]:
    return {"Authorization": f"Bearer {create_token('admin', ROLE_ADMIN, settings)}"}


@pytest.fixture
def order_payload() -> Dict[str, Any]:
    return {
        "customerName": "A",
        "email": "a@x.com",
        "items": [{"id": 1, "name": "Scarf", "price": 15, "quantity": 1}],
        "subtotal": 15,
        "shippingFee": 6,
        "total": 21,
        "paymentMethod": "bankTransfer",
    }

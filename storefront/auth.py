"""
Password hashing, signed session tokens and the FastAPI auth dependencies.

Customers and the back-office admin both authenticate with
``Authorization: Bearer <jwt>``. The token's ``role`` claim decides which
routes it opens; admin tokens are only issued by ``/admin/login`` after the
password is checked against the configured hash.
"""

import hmac
from datetime import timedelta
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from passlib.context import CryptContext

from .config import Settings
from .errors import ForbiddenError, UnauthorizedError
from .logging_config import get_logger
from .timeutil import utc_now

logger = get_logger(__name__)

ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"

security = HTTPBearer(auto_error=False)
password_ctx = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return password_ctx.hash(password)


def verify_password(password: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return password_ctx.verify(password, hashed)
    except ValueError:
        # malformed or unknown hash format
        return False


def create_token(subject: str, role: str, settings: Settings, **claims: Any) -> str:
    now = utc_now()
    payload = {
        "sub": subject,
        "role": role,
        "iat": now,
        "exp": now + timedelta(minutes=settings.jwt_expires_min),
        **claims,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm="HS256")


def decode_token(token: str, settings: Settings) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")


def check_admin_credentials(username: str, password: str, settings: Settings) -> bool:
    if not settings.admin_password_hash:
        logger.warning("Admin login attempted but no admin password hash is configured")
        return False
    username_ok = hmac.compare_digest(username.encode(), settings.admin_username.encode())
    password_ok = verify_password(password, settings.admin_password_hash)
    return username_ok and password_ok


def _token_payload(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Dict[str, Any]:
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError()
    return decode_token(credentials.credentials, request.app.state.settings)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Dict[str, Any]:
    """Resolve the customer behind the bearer token."""
    payload = _token_payload(request, credentials)
    if payload.get("role") != ROLE_CUSTOMER:
        raise UnauthorizedError()
    user = request.app.state.accounts.get_user(payload.get("sub"))
    if not user:
        raise UnauthorizedError("User not found")
    return user


async def require_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Dict[str, Any]:
    payload = _token_payload(request, credentials)
    if payload.get("role") != ROLE_ADMIN:
        raise ForbiddenError()
    return payload

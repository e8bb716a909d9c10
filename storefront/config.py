"""
Environment-driven settings for the storefront service.

Settings are read once by the application factory; tests build their own
``Settings`` and pass it to ``create_app``.
"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "storefront"
    api_prefix: str = "/api"

    jwt_secret: str = "dev-secret-change-me"
    jwt_expires_min: int = 60
    admin_username: str = "admin"
    admin_password_hash: str = ""

    resend_api_key: str = ""
    admin_email: str = ""
    notification_sender: str = "Autumn Store <onboarding@resend.dev>"
    notification_timeout: float = 8.0
    notification_max_attempts: int = 3
    notification_backoff: float = 0.5

    max_request_mb: float = 10.0
    max_image_mb: float = 5.0

    debug: bool = False
    log_level: str = "INFO"
    log_format: str = "text"

    @property
    def max_request_bytes(self) -> int:
        return int(self.max_request_mb * 1024 * 1024)

    @property
    def max_image_bytes(self) -> int:
        return int(self.max_image_mb * 1024 * 1024)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            database_url=os.getenv("DATABASE_URL", cls.database_url),
            database_name=os.getenv("DATABASE_NAME", cls.database_name),
            api_prefix=os.getenv("API_PREFIX", cls.api_prefix).rstrip("/"),
            jwt_secret=os.getenv("JWT_SECRET", cls.jwt_secret),
            jwt_expires_min=int(os.getenv("JWT_EXPIRES_MIN", str(cls.jwt_expires_min))),
            admin_username=os.getenv("ADMIN_USERNAME", cls.admin_username),
            admin_password_hash=os.getenv("ADMIN_PASSWORD_HASH", ""),
            resend_api_key=os.getenv("RESEND_API_KEY", "").strip(),
            admin_email=os.getenv("ADMIN_EMAIL", "").strip(),
            notification_sender=os.getenv("NOTIFICATION_SENDER", cls.notification_sender),
            notification_timeout=float(os.getenv("NOTIFICATION_TIMEOUT", str(cls.notification_timeout))),
            notification_max_attempts=int(
                os.getenv("NOTIFICATION_MAX_ATTEMPTS", str(cls.notification_max_attempts))
            ),
            notification_backoff=float(os.getenv("NOTIFICATION_BACKOFF", str(cls.notification_backoff))),
            max_request_mb=float(os.getenv("MAX_REQUEST_MB", str(cls.max_request_mb))),
            max_image_mb=float(os.getenv("MAX_IMAGE_MB", str(cls.max_image_mb))),
            debug=_env_bool("DEBUG"),
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            log_format=os.getenv("LOG_FORMAT", cls.log_format).lower(),
        )

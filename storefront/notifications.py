"""
Best-effort order notification emails.

The dispatcher is handed a freshly created order after the HTTP response has
been produced. Delivery goes through the Resend HTTP API with a per-attempt
timeout and a bounded exponential backoff. ``dispatch`` never raises: the
order and invoice are already durable, so a lost email is only logged.
"""

import asyncio
from datetime import datetime
from html import escape
from typing import Any, Dict, Optional, Tuple, Union

import httpx

from .config import Settings
from .errors import NotificationError, UpstreamTimeoutError
from .logging_config import get_logger

logger = get_logger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"

PAYMENT_LABELS = {
    "bankTransfer": "Bank transfer",
    "paypal": "PayPal",
}


def _money(value: Any) -> str:
    try:
        return f"{float(value):.2f}"
    except (TypeError, ValueError):
        return "0.00"


def _format_date(value: Optional[str]) -> str:
    if not value:
        return ""
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%d.%m.%Y %H:%M UTC")
    except ValueError:
        return value


def render_order_email(order: Dict[str, Any]) -> Tuple[str, str]:
    """Return ``(subject, html)`` for the admin notification of ``order``."""
    rows = []
    for item in order.get("items", []):
        variant = ""
        if item.get("selectedColor"):
            variant += f"<br><span>Color: {escape(str(item['selectedColor']))}</span>"
        if item.get("selectedSize"):
            variant += f"<br><span>Size: {escape(str(item['selectedSize']))}</span>"
        quantity = item.get("quantity", 1)
        try:
            line_total = float(item.get("price", 0)) * int(quantity)
        except (TypeError, ValueError):
            line_total = 0.0
        rows.append(
            "<tr>"
            f"<td><strong>{escape(str(item.get('name', '')))}</strong>{variant}"
            f"<br><span>Quantity: {escape(str(quantity))}</span></td>"
            f"<td style=\"text-align: right;\">&euro;{_money(item.get('price'))}</td>"
            f"<td style=\"text-align: right;\"><strong>&euro;{_money(line_total)}</strong></td>"
            "</tr>"
        )

    address = f"{order.get('street', '')} {order.get('houseNumber', '')}".strip()
    if order.get("addressExtra"):
        address += f", {order['addressExtra']}"
    address += f", {order.get('postalCode', '')} {order.get('city', '')}".rstrip()
    payment = PAYMENT_LABELS.get(order.get("paymentMethod"), str(order.get("paymentMethod", "")))

    html = f"""<!DOCTYPE html>
<html>
  <head><meta charset="utf-8"></head>
  <body style="font-family: Arial, sans-serif; color: #333;">
    <h1 style="color: #be185d;">New order</h1>
    <p><strong>Order:</strong> {escape(str(order.get('id', '')))}</p>
    <p><strong>Date:</strong> {escape(_format_date(order.get('orderDate')))}</p>
    <p><strong>Payment method:</strong> {escape(payment)}</p>
    <h2>Customer</h2>
    <p><strong>Name:</strong> {escape(str(order.get('customerName', '')))}</p>
    <p><strong>Email:</strong> {escape(str(order.get('email', '')))}</p>
    <p><strong>Phone:</strong> {escape(str(order.get('phone', '')))}</p>
    <p><strong>Address:</strong> {escape(address)}</p>
    <h2>Items</h2>
    <table style="width: 100%; border-collapse: collapse;">
      <thead><tr><th>Item</th><th>Unit price</th><th>Line total</th></tr></thead>
      <tbody>
        {''.join(rows)}
        <tr><td>Subtotal</td><td></td><td style="text-align: right;">&euro;{_money(order.get('subtotal'))}</td></tr>
        <tr><td>Shipping</td><td></td><td style="text-align: right;">&euro;{_money(order.get('shippingFee'))}</td></tr>
        <tr><td><strong>Total</strong></td><td></td><td style="text-align: right;"><strong>&euro;{_money(order.get('total'))}</strong></td></tr>
      </tbody>
    </table>
  </body>
</html>
"""
    subject = f"New order #{order.get('id', '')} - EUR {_money(order.get('total'))}"
    return subject, html


def _retryable(status: int) -> bool:
    return status == 429 or status >= 500


class NotificationDispatcher:
    """Sends the admin notification for new orders."""

    def __init__(
        self,
        api_key: str = "",
        admin_email: str = "",
        sender: str = Settings.notification_sender,
        timeout: float = 8.0,
        max_attempts: int = 3,
        backoff: float = 0.5,
        api_url: str = RESEND_API_URL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.admin_email = admin_email
        self.sender = sender
        self.timeout = timeout
        self.max_attempts = max(1, max_attempts)
        self.backoff = backoff
        self.api_url = api_url
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "NotificationDispatcher":
        return cls(
            api_key=settings.resend_api_key,
            admin_email=settings.admin_email,
            sender=settings.notification_sender,
            timeout=settings.notification_timeout,
            max_attempts=settings.notification_max_attempts,
            backoff=settings.notification_backoff,
            **kwargs,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.admin_email) and self.api_key.startswith("re_")

    async def send_order_notification(self, order: Dict[str, Any]) -> None:
        """Deliver the notification or raise once all attempts are spent.

        Raises:
            UpstreamTimeoutError: the last attempt timed out
            NotificationError: the provider rejected the message or was unreachable
        """
        subject, html = render_order_email(order)
        payload = {"from": self.sender, "to": self.admin_email, "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        last_error: Union[NotificationError, UpstreamTimeoutError, None] = None

        async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
            for attempt in range(1, self.max_attempts + 1):
                try:
                    response = await asyncio.wait_for(
                        client.post(self.api_url, json=payload, headers=headers),
                        timeout=self.timeout,
                    )
                except (asyncio.TimeoutError, httpx.TimeoutException):
                    last_error = UpstreamTimeoutError(
                        f"Email provider did not answer within {self.timeout}s",
                        {"attempts": attempt},
                    )
                except httpx.TransportError as exc:
                    last_error = NotificationError(f"Email provider unreachable: {exc}", attempt)
                else:
                    if response.is_success:
                        logger.info("Order notification sent", order_id=order.get("id"), attempt=attempt)
                        return
                    error = NotificationError(
                        f"Email provider returned {response.status_code}: {response.text[:200]}",
                        attempt,
                        response.status_code,
                    )
                    if not _retryable(response.status_code):
                        raise error
                    last_error = error

                logger.warning(
                    "Order notification attempt failed",
                    order_id=order.get("id"),
                    attempt=attempt,
                    error=str(last_error),
                )
                if attempt < self.max_attempts:
                    await asyncio.sleep(self.backoff * 2 ** (attempt - 1))

        if last_error is None:
            raise NotificationError("No delivery attempt was made", 0)
        raise last_error

    async def dispatch(self, order: Dict[str, Any]) -> bool:
        """Fire-and-forget entry point. Returns whether the email went out."""
        if not self.enabled:
            logger.warning("Order notification skipped: email configuration missing", order_id=order.get("id"))
            return False
        try:
            await self.send_order_notification(order)
        except (NotificationError, UpstreamTimeoutError) as exc:
            logger.warning("Order notification failed (non-blocking)", order_id=order.get("id"), error=str(exc))
            return False
        except Exception:
            logger.exception("Unexpected error in order notification (non-blocking)", order_id=order.get("id"))
            return False
        return True

"""Email service using Resend for transactional emails.

Every send is best-effort: failures are logged and reported in the returned
dict, never raised, so a mail outage cannot undo a committed order change.
"""

import asyncio
import logging
from html import escape
from typing import Any

import resend
from tenacity import retry, stop_after_attempt, wait_exponential

from storefront.core.config import get_settings
from storefront.models.order import Order

logger = logging.getLogger(__name__)

MAX_SEND_ATTEMPTS = 3


def format_money(amount_cents: int, currency: str) -> str:
    """Render minor units as e.g. ``$12.34 USD``."""
    return f"${amount_cents // 100:,}.{amount_cents % 100:02d} {currency}"


def _item_rows_html(order: Order) -> str:
    rows = []
    for item in order["items"]:
        variant = item["size"] + (f" / {item['color']}" if item["color"] else "")
        rows.append(
            f"<tr><td style=\"padding: 6px 0;\">{escape(item['product_name'])} ({escape(variant)}) x {item['quantity']}</td>"
            f"<td style=\"padding: 6px 0; text-align: right;\">"
            f"{format_money(item['unit_price_cents'] * item['quantity'], order['currency'])}</td></tr>"
        )
    return "\n".join(rows)


def _wrap_html(title: str, body: str) -> str:
    return f"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, 'Helvetica Neue', Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background: #111827; padding: 24px; border-radius: 10px 10px 0 0; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 22px;">{title}</h1>
    </div>
    <div style="background: #f9fafb; padding: 30px; border: 1px solid #e5e7eb; border-top: none; border-radius: 0 0 10px 10px;">
{body}
    </div>
</body>
</html>
"""


class EmailService:
    """Service for sending transactional emails via Resend."""

    def __init__(self) -> None:
        """Initialize email service with Resend API key."""
        settings = get_settings()
        resend.api_key = settings.resend_api_key
        self.from_email = settings.email_from_address
        self.frontend_url = settings.frontend_url
        self.admin_email = settings.admin_alert_email

    @retry(
        stop=stop_after_attempt(MAX_SEND_ATTEMPTS),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        reraise=True,
    )
    async def _send(self, params: dict[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(resend.Emails.send, params)

    async def _deliver(self, kind: str, to_email: str, subject: str, html: str, text: str) -> dict[str, Any]:
        try:
            response = await self._send({
                "from": self.from_email,
                "to": [to_email],
                "subject": subject,
                "html": html,
                "text": text,
            })
            logger.info("%s email sent to %s, id: %s", kind, to_email, response.get("id"))
            return {"success": True, "email_id": response.get("id")}

        except Exception as e:
            logger.error("Failed to send %s email to %s: %s", kind, to_email, str(e))
            return {"success": False, "error": str(e)}

    async def send_order_confirmation(self, order: Order) -> dict[str, Any]:
        """Send the order confirmation with line items and totals.

        Args:
            order: The persisted order.

        Returns:
            dict: ``success`` plus ``email_id`` or ``error``.
        """
        currency = order["currency"]
        customer = order["customer"]
        address = order["shipping_address"]
        tax_label = order.get("tax_descriptor") or "Tax"

        html_body = f"""
        <p style="font-size: 16px;">Hi {escape(customer['name'])}, thank you for your order.</p>
        <p style="font-size: 14px; color: #6b7280;">Order number: <strong>{order['order_number']}</strong></p>
        <table style="width: 100%; border-collapse: collapse; font-size: 14px;">
{_item_rows_html(order)}
            <tr><td style="padding-top: 12px;">Subtotal</td><td style="text-align: right; padding-top: 12px;">{format_money(order['subtotal_cents'], currency)}</td></tr>
            <tr><td>Shipping ({escape(order['shipping_carrier'])} {escape(order['shipping_service'])})</td><td style="text-align: right;">{format_money(order['shipping_cents'], currency)}</td></tr>
            <tr><td>{escape(tax_label)}</td><td style="text-align: right;">{format_money(order['tax_cents'], currency)}</td></tr>
            <tr><td><strong>Total</strong></td><td style="text-align: right;"><strong>{format_money(order['total_cents'], currency)}</strong></td></tr>
        </table>
        <p style="font-size: 14px; margin-top: 20px;">Shipping to:<br>
            {escape(address['street'])}<br>{escape(address['city'])}, {escape(address['state'])} {escape(address['zip'])}<br>{escape(address['country'])}
        </p>
"""

        text_lines = [
            f"Hi {customer['name']}, thank you for your order.",
            f"Order number: {order['order_number']}",
            "",
        ]
        for item in order["items"]:
            text_lines.append(
                f"{item['product_name']} ({item['size']}{' / ' + item['color'] if item['color'] else ''}) "
                f"x {item['quantity']}: {format_money(item['unit_price_cents'] * item['quantity'], currency)}"
            )
        text_lines += [
            "",
            f"Subtotal: {format_money(order['subtotal_cents'], currency)}",
            f"Shipping: {format_money(order['shipping_cents'], currency)}",
            f"{tax_label}: {format_money(order['tax_cents'], currency)}",
            f"Total: {format_money(order['total_cents'], currency)}",
        ]

        return await self._deliver(
            "confirmation",
            customer["email"],
            f"Order confirmation {order['order_number']}",
            _wrap_html("Thank you for your order", html_body),
            "\n".join(text_lines),
        )

    async def send_cancellation_notice(
        self,
        order: Order,
        reason: str | None = None,
        refund_issued: bool = False,
    ) -> dict[str, Any]:
        """Tell the customer their order was cancelled and whether money is on its way back."""
        customer = order["customer"]
        refund_line = (
            f"A refund of {format_money(order['total_cents'], order['currency'])} has been issued to your original payment method."
            if refund_issued
            else "Any payment taken for this order will be refunded to your original payment method."
        )
        reason_line = f"Reason: {reason}" if reason else ""

        html_body = f"""
        <p style="font-size: 16px;">Hi {escape(customer['name'])}, your order <strong>{order['order_number']}</strong> has been cancelled.</p>
        <p style="font-size: 14px; color: #6b7280;">{escape(reason_line)}</p>
        <p style="font-size: 14px;">{refund_line}</p>
"""
        text_content = "\n".join(
            line
            for line in (
                f"Hi {customer['name']}, your order {order['order_number']} has been cancelled.",
                reason_line,
                refund_line,
            )
            if line
        )

        return await self._deliver(
            "cancellation",
            customer["email"],
            f"Your order {order['order_number']} has been cancelled",
            _wrap_html("Order cancelled", html_body),
            text_content,
        )

    async def send_shipping_notification(self, order: Order) -> dict[str, Any]:
        """Send the tracking number once the order has shipped."""
        customer = order["customer"]
        tracking = order.get("tracking_number") or ""
        track_url = f"{self.frontend_url}/orders/track"

        html_body = f"""
        <p style="font-size: 16px;">Hi {escape(customer['name'])}, your order <strong>{order['order_number']}</strong> is on its way.</p>
        <p style="font-size: 14px;">Carrier: {escape(order['shipping_carrier'])}<br>Tracking number: <strong>{escape(tracking)}</strong></p>
        <div style="text-align: center; margin: 30px 0;">
            <a href="{track_url}" style="background: #111827; color: white; padding: 12px 28px; text-decoration: none; border-radius: 6px; font-weight: 600;">
                Track your order
            </a>
        </div>
"""
        text_content = (
            f"Hi {customer['name']}, your order {order['order_number']} is on its way.\n"
            f"Carrier: {order['shipping_carrier']}\n"
            f"Tracking number: {tracking}\n"
            f"Track your order: {track_url}\n"
        )

        return await self._deliver(
            "shipping",
            customer["email"],
            f"Your order {order['order_number']} has shipped",
            _wrap_html("Your order has shipped", html_body),
            text_content,
        )

    async def send_admin_alert(self, subject: str, details: dict[str, Any]) -> dict[str, Any]:
        """Report an incident that needs manual attention."""
        if not self.admin_email:
            logger.warning("ADMIN_ALERT_EMAIL not configured; alert not sent: %s", subject)
            return {"success": False, "error": "admin alert email not configured"}

        text_content = "\n".join(f"{key}: {value}" for key, value in details.items())
        html_rows = "\n".join(
            f"<tr><td style=\"padding: 4px 12px 4px 0; color: #6b7280;\">{escape(str(key))}</td>"
            f"<td>{escape(str(value))}</td></tr>"
            for key, value in details.items()
        )
        html_body = f"""
        <table style="font-size: 14px;">
{html_rows}
        </table>
"""
        return await self._deliver(
            "admin alert",
            self.admin_email,
            f"[storefront] {subject}",
            _wrap_html(escape(subject), html_body),
            text_content,
        )

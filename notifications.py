"""
Outbound email.

Senders take a recipient, a subject, a template name and the data to fill it
with. Dispatches from the services go through send_quietly: a failed email
is logged and never changes the outcome of the request that triggered it.
"""
import html
import logging
import smtplib
from email.message import EmailMessage
from string import Template
from typing import Any, Dict, Optional

from config import Settings

logger = logging.getLogger(__name__)

BRAND = "Rythu Dipo"

OTP_SUBJECT = "Rythu Dipo - Email Verification OTP"


class NotificationSender:
    def send(self, to: str, subject: str, template: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError


class SmtpSender(NotificationSender):
    def __init__(self, settings: Settings):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.use_ssl = settings.smtp_use_ssl
        self.user = settings.smtp_user
        self.password = settings.smtp_password
        self.timeout = settings.smtp_timeout
        self.sender = settings.mail_from or settings.smtp_user

    def send(self, to, subject, template, data):
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(f"{subject}\n\nThis message is best viewed in an HTML capable client.")
        message.add_alternative(render(template, data), subtype="html")

        if self.use_ssl:
            smtp = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        else:
            smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        with smtp:
            if not self.use_ssl:
                smtp.starttls()
            if self.user and self.password:
                smtp.login(self.user, self.password)
            smtp.send_message(message)
        logger.info("Sent %r to %s", subject, to)


class LogSender(NotificationSender):
    """Used when no SMTP host is configured; writes the message to the log."""

    def send(self, to, subject, template, data):
        logger.info("Mail not configured; would send %r to %s using %s: %s",
                    subject, to, template, data)


def build_sender(settings: Settings) -> NotificationSender:
    if settings.mail_configured:
        return SmtpSender(settings)
    logger.warning("SMTP_HOST not set; outgoing email will only be logged")
    return LogSender()


def send_quietly(sender: NotificationSender, to: Optional[str], subject: str,
                 template: str, data: Dict[str, Any]) -> bool:
    if not to:
        logger.warning("No recipient for %r, skipping", subject)
        return False
    try:
        sender.send(to, subject, template, data)
        return True
    except Exception:
        logger.exception("Failed to send %r to %s", subject, to)
        return False


# ----------------------- Templates -----------------------

OTP_TEMPLATE = Template("""\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #2d5a27;">Welcome to $brand!</h2>
  <p>Hello $name,</p>
  <p>Your One-Time Password (OTP) for email verification is:</p>
  <div style="background-color: #f8f9fa; padding: 20px; text-align: center;">
    <h1 style="color: #2d5a27; letter-spacing: 5px;">$otp</h1>
  </div>
  <p>This OTP is valid for $ttl minutes only.</p>
  <p>If you didn't request this verification, please ignore this email.</p>
  <p style="color: #666; font-size: 12px;">$brand Team<br>Supporting Farmers, Growing Together</p>
</div>
""")

CONFIRMATION_TEMPLATE = Template("""\
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h1 style="color: #2d5a27;">$brand</h1>
  <h2>Thank you for your order!</h2>
  <p>Hello $name,</p>
  <p>Your order has been placed and will be delivered via <strong>Cash on Delivery (COD)</strong>.</p>
  <p><strong>Order Number:</strong> $order_number<br><strong>Order Date:</strong> $created_at</p>
  <h3>Delivery Address</h3>
  <p>$address</p>
  <h3>Order Items</h3>
  <table style="width: 100%; border-collapse: collapse;">
    <tr><th align="left">Product</th><th>Qty</th><th align="right">Price</th><th align="right">Total</th></tr>
    $rows
  </table>
  <p style="font-size: 18px; font-weight: bold; color: #2d5a27;">Total: &#8377;$total</p>
  <p>Pay cash upon delivery. We'll process your order within 24 hours.</p>
</div>
""")

ALERT_TEMPLATE = Template("""\
<div style="font-family: Arial, sans-serif; max-width: 800px; margin: 0 auto;">
  <h1 style="color: #2d5a27;">New Order Received!</h1>
  <p><strong>Order Number:</strong> $order_number<br>
     <strong>Date:</strong> $created_at<br>
     <strong>Payment Method:</strong> Cash on Delivery (COD)<br>
     <strong>Status:</strong> $status</p>
  <h2>Customer Information</h2>
  <p>Name: $name<br>Email: $email<br>Phone: $phone</p>
  <h2>Shipping Address</h2>
  <p>$address</p>
  <h2>Order Items</h2>
  <table style="width: 100%; border-collapse: collapse;">
    <tr><th align="left">Product</th><th>Qty</th><th align="right">Price</th><th align="right">Total</th></tr>
    $rows
  </table>
  <p>Subtotal: &#8377;$subtotal<br>Shipping Cost: &#8377;$shipping_cost<br>
     <strong>Total Amount: &#8377;$total</strong></p>
  $notes
</div>
""")

ROW_TEMPLATE = Template(
    '<tr><td>$name</td><td align="center">$quantity</td>'
    '<td align="right">&#8377;$price</td><td align="right">&#8377;$line_total</td></tr>'
)


def _money(value) -> str:
    return f"{float(value):,.2f}"


def _rows(items) -> str:
    return "\n".join(
        ROW_TEMPLATE.substitute(
            name=html.escape(str(item["name"])),
            quantity=int(item["quantity"]),
            price=_money(item["price"]),
            line_total=_money(item["price"] * item["quantity"]),
        )
        for item in items
    )


def _address(addr: Dict[str, Any]) -> str:
    parts = [
        addr.get("fullName", ""),
        addr.get("address", ""),
        f"{addr.get('city', '')}, {addr.get('state', '')} - {addr.get('pincode', '')}",
        f"Phone: {addr.get('phone', '')}",
    ]
    return "<br>".join(html.escape(p) for p in parts)


def render(template: str, data: Dict[str, Any]) -> str:
    if template == "otp":
        return OTP_TEMPLATE.substitute(
            brand=BRAND,
            name=html.escape(data.get("name", "")),
            otp=html.escape(str(data["otp"])),
            ttl=int(data.get("ttlMinutes", 10)),
        )

    order = data["order"]
    user = data["user"]
    common = dict(
        brand=BRAND,
        name=html.escape(user.get("name", "")),
        order_number=html.escape(order["orderNumber"]),
        created_at=html.escape(order.get("createdAt") or ""),
        address=_address(order["shippingAddress"]),
        rows=_rows(order["items"]),
        total=_money(order["total"]),
    )
    if template == "order_confirmation":
        return CONFIRMATION_TEMPLATE.substitute(common)
    if template == "order_alert":
        notes = order.get("notes")
        return ALERT_TEMPLATE.substitute(
            common,
            email=html.escape(user.get("email", "")),
            phone=html.escape(user.get("phone", "")),
            status=html.escape(order["status"].upper()),
            subtotal=_money(order["subtotal"]),
            shipping_cost=_money(order["shippingCost"]),
            notes=f"<h3>Customer Notes:</h3><p>{html.escape(notes)}</p>" if notes else "",
        )
    raise ValueError(f"Unknown email template: {template}")

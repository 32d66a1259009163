import logging
import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional

from .models import Order

logger = logging.getLogger(__name__)


def _money(value: float) -> str:
    return f"{value:,.2f}"


def _lines_table(order: Order) -> str:
    rows = []
    for d in order.order_details:
        name = d.product.name if d.product is not None else f"#{d.product_id}"
        rows.append(f"  - {name} x{d.number_of_products} @ {_money(d.price)} = {_money(d.total_money)}")
    return "\n".join(rows)


def admin_subject(order: Order) -> str:
    return f"New order #{order.id} | Please confirm it"


def admin_content(order: Order) -> str:
    return (
        f"A new order was placed.\n\n"
        f"Order: #{order.id}\n"
        f"User id: {order.user_id}\n"
        f"Customer: {order.fullname} <{order.email}>\n"
        f"Phone: {order.phone_number}\n"
        f"Address: {order.address}\n"
        f"Shipping: {order.shipping_method} to {order.shipping_address or order.address}"
        f" on {order.shipping_date.isoformat() if order.shipping_date else '-'}\n"
        f"Payment: {order.payment_method}\n"
        f"Note: {order.note}\n\n"
        f"Items:\n{_lines_table(order)}\n\n"
        f"Total: {_money(order.total_money)}\n"
    )


def customer_subject(order: Order, shop_name: str) -> str:
    return f"{shop_name} | Your order #{order.id} was placed and is being processed"


def customer_content(order: Order, shop_name: str) -> str:
    greeting = order.fullname or "customer"
    return (
        f"Hello {greeting},\n\n"
        f"Thank you for shopping at {shop_name}. We received your order #{order.id}.\n\n"
        f"Items:\n{_lines_table(order)}\n\n"
        f"Total: {_money(order.total_money)}\n"
        f"Estimated shipping date: {order.shipping_date.isoformat() if order.shipping_date else '-'}\n\n"
        f"We will let you know when it ships.\n"
    )


class SmtpEmailSender:
    def __init__(self, host: str, port: int, from_email: str,
                 user: Optional[str] = None, password: Optional[str] = None,
                 starttls: bool = False, timeout: float = 10):
        self.host = host
        self.port = port
        self.from_email = from_email
        self.user = user
        self.password = password
        self.starttls = starttls
        self.timeout = timeout

    def send(self, to_email: str, subject: str, body: str) -> None:
        # Lanza smtplib.SMTPException / OSError si el servidor falla; el outbox decide
        msg = MIMEMultipart()
        msg["From"] = self.from_email
        msg["To"] = to_email
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain", "utf-8"))

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.starttls:
                server.starttls()
            if self.user:
                server.login(self.user, self.password or "")
            server.send_message(msg)

        logger.info("Email sent to %s with subject %r", to_email, subject)

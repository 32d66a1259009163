from datetime import date

from pedidos import emails
from pedidos.models import Order, OrderDetail, Product


def sample_order() -> Order:
    order = Order(id=7, user_id=1, fullname="Alice", email="alice@mail.test", phone_number="123",
                  address="Main St 1", shipping_method="express", payment_method="cod",
                  shipping_date=date(2030, 1, 13), total_money=25.0)
    OrderDetail(order=order, product=Product(id=1, name="Bracelet", price=10.0),
                product_id=1, number_of_products=2, price=10.0, total_money=20.0)
    return order


def test_admin_content_lists_customer_and_items():
    body = emails.admin_content(sample_order())
    assert "Order: #7" in body
    assert "Alice <alice@mail.test>" in body
    assert "Bracelet x2 @ 10.00 = 20.00" in body
    assert "2030-01-13" in body
    assert "Total: 25.00" in body


def test_customer_subject_and_content():
    order = sample_order()
    assert emails.customer_subject(order, "Lava Shop").startswith("Lava Shop | Your order #7")
    assert "Hello Alice" in emails.customer_content(order, "Lava Shop")


class FakeSMTP:
    instances = []

    def __init__(self, host, port, timeout=None):
        self.host, self.port = host, port
        self.calls = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append(("login", user, password))

    def send_message(self, msg):
        self.calls.append(("send", msg["To"], msg["Subject"]))


def test_smtp_sender(monkeypatch):
    monkeypatch.setattr(emails.smtplib, "SMTP", FakeSMTP)
    sender = emails.SmtpEmailSender("mail.test", 587, "shop@mail.test",
                                    user="shop", password="pw", starttls=True)

    sender.send("alice@mail.test", "Hi", "body")

    smtp = FakeSMTP.instances[-1]
    assert (smtp.host, smtp.port) == ("mail.test", 587)
    assert smtp.calls == ["starttls", ("login", "shop", "pw"), ("send", "alice@mail.test", "Hi")]

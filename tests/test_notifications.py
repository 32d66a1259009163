from datetime import datetime, timezone

from pedidos.models import Order, OutboxEmail
from pedidos.notifications import dispatch_pending, dispatch_in_background
from pedidos.schemas import OrderIn
from pedidos.services import OrderService


def create_order(db) -> Order:
    service = OrderService(db, admin_email="admin@shop.test", shop_name="Test Shop",
                           now=lambda: datetime(2030, 1, 10, 12, 0, tzinfo=timezone.utc))
    return service.create_order(OrderIn(
        user_id=1, fullname="Alice", email="alice@mail.test", total_money=20.0,
        cart_items=[{"product_id": 1, "quantity": 2}],
    ))


def test_dispatch_sends_pending_emails(db, seed, sender):
    create_order(db)

    result = dispatch_pending(db, sender, max_attempts=3)

    assert result == {"sent": 2, "failed": 0, "retrying": 0}
    assert [m["to"] for m in sender.sent] == ["admin@shop.test", "alice@mail.test"]
    assert sender.sent[1]["subject"].startswith("Test Shop |")
    rows = db.query(OutboxEmail).all()
    assert all(r.status == "SENT" and r.sent_at is not None and r.attempts == 1 for r in rows)

    # ya enviados: no se repiten
    assert dispatch_pending(db, sender)["sent"] == 0
    assert len(sender.sent) == 2


def test_transport_failure_keeps_order_and_retries(db, seed, sender, session_factory):
    order = create_order(db)
    sender.fail = True

    assert dispatch_pending(db, sender, max_attempts=2) == {"sent": 0, "failed": 0, "retrying": 2}
    rows = db.query(OutboxEmail).all()
    assert all(r.status == "PENDING" and r.attempts == 1 and "smtp down" in r.last_error for r in rows)

    assert dispatch_pending(db, sender, max_attempts=2) == {"sent": 0, "failed": 2, "retrying": 0}
    assert all(r.status == "FAILED" for r in db.query(OutboxEmail).all())

    with session_factory() as s:
        assert s.query(Order).filter(Order.id == order.id).count() == 1


def test_dispatch_in_background_uses_its_own_session(db, seed, sender, session_factory):
    create_order(db)

    dispatch_in_background(session_factory, sender, 3)

    assert len(sender.sent) == 2
    with session_factory() as s:
        assert s.query(OutboxEmail).filter(OutboxEmail.status == "SENT").count() == 2


class OverlappingSender:
    """Mientras manda el primer email arranca otro dispatcher con su propia sesión."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self.sent = []
        self.overlapped = False

    def send(self, to_email, subject, body):
        self.sent.append(to_email)
        if not self.overlapped:
            self.overlapped = True
            with self.session_factory() as other:
                dispatch_pending(other, self)


def test_concurrent_dispatchers_do_not_send_twice(db, seed, session_factory):
    create_order(db)
    sender = OverlappingSender(session_factory)

    dispatch_pending(db, sender)

    assert sorted(sender.sent) == ["admin@shop.test", "alice@mail.test"]
    with session_factory() as s:
        assert [r.status for r in s.query(OutboxEmail).all()] == ["SENT", "SENT"]


def test_dispatch_is_scoped_to_an_order(db, seed, sender):
    first = create_order(db)
    second = create_order(db)

    assert dispatch_pending(db, sender, order_id=second.id)["sent"] == 2
    assert db.query(OutboxEmail).filter(OutboxEmail.order_id == first.id,
                                        OutboxEmail.status == "PENDING").count() == 2


class BrokenSender:
    def __init__(self):
        self.calls = 0

    def send(self, to_email, subject, body):
        self.calls += 1
        raise RuntimeError("template engine exploded")


def test_unexpected_sender_error_is_counted_per_row(db, seed):
    create_order(db)
    sender = BrokenSender()

    assert dispatch_pending(db, sender, max_attempts=1) == {"sent": 0, "failed": 2, "retrying": 0}
    assert sender.calls == 2
    rows = db.query(OutboxEmail).all()
    assert all(r.status == "FAILED" and r.attempts == 1 and "exploded" in r.last_error for r in rows)

"""Outbox de emails.

Los emails de un pedido se guardan en ``outbox_emails`` dentro de la misma
transacción que el pedido y se envían después del commit. Si el servidor SMTP
falla, el pedido ya quedó confirmado: la fila vuelve a PENDING hasta agotar
``max_attempts`` y luego pasa a FAILED. Mientras se envía está en SENDING.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from . import emails
from .models import Order, OutboxEmail

logger = logging.getLogger(__name__)

PENDING = "PENDING"
SENDING = "SENDING"
SENT = "SENT"
FAILED = "FAILED"


class EmailOutbox:
    def __init__(self, db: Session, admin_email: str, shop_name: str):
        self.db = db
        self.admin_email = admin_email
        self.shop_name = shop_name

    def enqueue(self, order_id, recipient: str, subject: str, body: str) -> OutboxEmail:
        msg = OutboxEmail(order_id=order_id, recipient=recipient, subject=subject,
                          body=body, status=PENDING, attempts=0)
        self.db.add(msg)
        return msg

    def enqueue_order_created(self, order: Order) -> List[OutboxEmail]:
        # 1) aviso al administrador, 2) confirmación al cliente
        return [
            self.enqueue(order.id, self.admin_email,
                         emails.admin_subject(order), emails.admin_content(order)),
            self.enqueue(order.id, order.email,
                         emails.customer_subject(order, self.shop_name),
                         emails.customer_content(order, self.shop_name)),
        ]


def _claim(db: Session, msg_id: int) -> bool:
    # PENDING -> SENDING en un solo UPDATE: si otro dispatcher la tomó antes, rowcount es 0
    claimed = (
        db.query(OutboxEmail)
        .filter(OutboxEmail.id == msg_id, OutboxEmail.status == PENDING)
        .update({OutboxEmail.status: SENDING}, synchronize_session=False)
    )
    db.commit()
    return claimed == 1


def dispatch_pending(db: Session, sender, max_attempts: int = 3, limit: int = 100,
                     order_id: Optional[int] = None) -> dict:
    """Envía los emails PENDING (solo los de ``order_id`` si se indica).

    Cada fila se reclama antes de enviarla y se confirma por separado, así dos
    dispatchers en paralelo no mandan el mismo email.
    """
    q = db.query(OutboxEmail.id).filter(OutboxEmail.status == PENDING)
    if order_id is not None:
        q = q.filter(OutboxEmail.order_id == order_id)
    ids = [row.id for row in q.order_by(OutboxEmail.id).limit(limit).all()]

    result = {"sent": 0, "failed": 0, "retrying": 0}
    for msg_id in ids:
        if not _claim(db, msg_id):
            continue
        msg = db.get(OutboxEmail, msg_id)
        msg.attempts += 1
        try:
            sender.send(msg.recipient, msg.subject, msg.body)
        except Exception as e:
            msg.last_error = str(e) or e.__class__.__name__
            if msg.attempts >= max_attempts:
                msg.status = FAILED
                result["failed"] += 1
                logger.error("Email %s to %s failed after %s attempts: %s",
                             msg.id, msg.recipient, msg.attempts, e)
            else:
                msg.status = PENDING
                result["retrying"] += 1
                logger.warning("Email %s to %s failed (attempt %s/%s): %s",
                               msg.id, msg.recipient, msg.attempts, max_attempts, e)
        else:
            msg.status = SENT
            msg.last_error = None
            msg.sent_at = datetime.now(timezone.utc)
            result["sent"] += 1
        db.commit()
    return result


def dispatch_in_background(session_factory: Callable[[], Session], sender, max_attempts: int,
                           order_id: Optional[int] = None) -> None:
    with session_factory() as db:
        dispatch_pending(db, sender, max_attempts=max_attempts, order_id=order_id)

import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from sqlalchemy.orm import Session

from . import config
from .exceptions import InvalidInputError, InvalidStatusTransitionError, NotFoundError
from .models import Order, OrderDetail, OrderStatus
from .notifications import EmailOutbox
from .repositories import OrderDetailRepository, OrderRepository, ProductRepository, UserRepository
from .schemas import OrderIn

logger = logging.getLogger(__name__)

# Solo se aplica con STRICT_STATUS_TRANSITIONS; CANCELLED es final
STATUS_TRANSITIONS = {
    OrderStatus.PENDING.value: {OrderStatus.SHIPPING.value, OrderStatus.CANCELLED.value},
    OrderStatus.SHIPPING.value: {OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value},
    OrderStatus.DELIVERED.value: {OrderStatus.CANCELLED.value},
    OrderStatus.CANCELLED.value: set(),
}

TOTAL_TOLERANCE = 0.01


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderService:
    def __init__(
        self,
        db: Session,
        *,
        admin_email: Optional[str] = None,
        shop_name: Optional[str] = None,
        total_policy: Optional[str] = None,
        strict_transitions: Optional[bool] = None,
        shipping_days: Optional[int] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.users = UserRepository(db)
        self.orders = OrderRepository(db)
        self.products = ProductRepository(db)
        self.order_details = OrderDetailRepository(db)
        self.outbox = EmailOutbox(
            db,
            admin_email=admin_email or config.ADMIN_EMAIL,
            shop_name=shop_name or config.SHOP_NAME,
        )
        self.total_policy = total_policy or config.ORDER_TOTAL_POLICY
        self.strict_transitions = config.STRICT_STATUS_TRANSITIONS if strict_transitions is None else strict_transitions
        self.shipping_days = config.DEFAULT_SHIPPING_DAYS if shipping_days is None else shipping_days
        self.now = now

    @contextmanager
    def _transaction(self):
        # todo o nada: cualquier error deshace lo que se agregó a la sesión
        try:
            yield
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    # ---------- Pedidos ----------
    def create_order(self, draft: OrderIn) -> Order:
        with self._transaction():
            user = self.users.find_by_id(draft.user_id)
            if user is None:
                raise NotFoundError(f"User {draft.user_id} not found")
            # Un solo reloj: order_date y la validación de shipping_date usan el mismo día
            order_date = self.now()
            today = order_date.date()
            # Si el cliente no manda fecha de envío, hoy + DEFAULT_SHIPPING_DAYS
            shipping_date = draft.shipping_date or today + timedelta(days=self.shipping_days)
            if shipping_date < today:
                raise InvalidInputError("Shipping date must be today or later")

            # Copia directa de los campos del borrador (nunca el id)
            order = Order(**draft.model_dump(exclude={"user_id", "cart_items", "shipping_date"}))
            order.user = user
            order.order_date = order_date
            order.status = OrderStatus.PENDING.value
            order.active = True
            order.shipping_date = shipping_date
            order.total_money = draft.total_money

            details = []
            for item in draft.cart_items:
                if item.quantity <= 0:
                    raise InvalidInputError(f"Quantity for product {item.product_id} must be > 0")
                product = self.products.find_by_id(item.product_id)
                if product is None:
                    raise NotFoundError(f"Product {item.product_id} not found")
                details.append(OrderDetail(
                    order=order,
                    product=product,
                    number_of_products=item.quantity,
                    price=product.price,
                    total_money=product.price * item.quantity,
                ))

            lines_total = sum(d.total_money for d in details)
            if self.total_policy == "reject" and abs(lines_total - draft.total_money) > TOTAL_TOLERANCE:
                raise InvalidInputError(
                    f"Order total {draft.total_money:.2f} does not match items total {lines_total:.2f}"
                )

            self.order_details.save_all(details)
            self.orders.save(order)
            self.outbox.enqueue_order_created(order)

        logger.info("Order %s created for user %s with %s items (total %.2f)",
                    order.id, order.user_id, len(details), order.total_money)
        return order

    def get_order(self, order_id: int) -> Order:
        order = self.orders.find_by_id(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        return order

    def update_order(self, order_id: int, status) -> Order:
        status = status.value if isinstance(status, OrderStatus) else str(status)
        with self._transaction():
            order = self.get_order(order_id)
            previous = order.status
            if self.strict_transitions:
                self._check_transition(previous, status)
            order.status = status
            self.orders.save(order)

        logger.info("Order %s status %s -> %s", order_id, previous, status)
        return order

    def _check_transition(self, current: str, requested: str) -> None:
        if requested not in STATUS_TRANSITIONS:
            raise InvalidInputError(f"Unknown order status {requested!r}")
        if requested == current:
            return
        # etiquetas viejas fuera del enum pueden pasar a cualquier estado conocido
        allowed = STATUS_TRANSITIONS.get(current, set(STATUS_TRANSITIONS))
        if requested not in allowed:
            raise InvalidStatusTransitionError(current, requested)

    def delete_order(self, ids: Iterable[int]) -> List[int]:
        deleted = []
        with self._transaction():
            for order_id in dict.fromkeys(ids):
                order = self.orders.find_by_id(order_id)
                # solo se borra si existe; los ids inexistentes se ignoran
                if order is not None:
                    self.orders.delete(order)
                    deleted.append(order_id)

        if deleted:
            logger.info("Deleted orders %s", deleted)
        return deleted

    # ---------- Consultas ----------
    def find_by_user_id(self, user_id: int) -> List[Order]:
        return self.orders.find_by_user_id(user_id)

    def get_pending_orders(self) -> List[Order]:
        return self.orders.find_all_by_status(OrderStatus.PENDING.value)

    def get_shipping_orders(self) -> List[Order]:
        return self.orders.find_all_by_status(OrderStatus.SHIPPING.value)

    def get_delivered_orders(self) -> List[Order]:
        return self.orders.find_all_by_status(OrderStatus.DELIVERED.value)

    def get_cancelled_orders(self) -> List[Order]:
        return self.orders.find_all_by_status(OrderStatus.CANCELLED.value)

from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from .models import Order, OrderDetail, Product, User

# Los repositorios solo agregan/consultan; el commit lo decide el servicio


class UserRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()


class ProductRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, product_id: int) -> Optional[Product]:
        return self.db.query(Product).filter(Product.id == product_id).first()


class OrderRepository:
    def __init__(self, db: Session):
        self.db = db

    def find_by_id(self, order_id: int) -> Optional[Order]:
        return self.db.query(Order).filter(Order.id == order_id).first()

    def find_by_user_id(self, user_id: int) -> List[Order]:
        return self.db.query(Order).filter(Order.user_id == user_id).order_by(Order.id).all()

    def find_all_by_status(self, status: str) -> List[Order]:
        return self.db.query(Order).filter(Order.status == status).order_by(Order.id).all()

    def save(self, order: Order) -> Order:
        self.db.add(order)
        self.db.flush()  # obtiene order.id sin cerrar la transacción
        return order

    def delete(self, order: Order) -> None:
        self.db.delete(order)
        self.db.flush()


class OrderDetailRepository:
    def __init__(self, db: Session):
        self.db = db

    def save_all(self, details: Iterable[OrderDetail]) -> List[OrderDetail]:
        details = list(details)
        self.db.add_all(details)
        return details

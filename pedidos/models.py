import enum

from sqlalchemy import Column, Integer, Float, String, Boolean, Date, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .db import Base


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    SHIPPING = "SHIPPING"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


# Usuarios y productos los administran otros servicios; aca solo se leen por id

class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False)
    fullname = Column(String, default="")
    role = Column(String, default="user")

    orders = relationship("Order", back_populates="user")


class Product(Base):
    __tablename__ = "products"
    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    price = Column(Float, nullable=False)
    is_active = Column(Boolean, default=True)


class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    fullname = Column(String, default="")
    email = Column(String, default="")
    phone_number = Column(String, default="")
    address = Column(String, default="")
    note = Column(String, default="")
    order_date = Column(DateTime(timezone=True), server_default=func.now())
    # String y no Enum: el estado admite etiquetas libres ademas de OrderStatus
    status = Column(String, index=True, default=OrderStatus.PENDING.value)
    total_money = Column(Float, default=0)
    shipping_method = Column(String, default="")
    shipping_address = Column(String, default="")
    shipping_date = Column(Date)
    payment_method = Column(String, default="")
    # no se usa para filtrar: el borrado es fisico
    active = Column(Boolean, default=True)

    user = relationship("User", back_populates="orders")
    # Relación 1 a N con OrderDetail, elimina las líneas huérfanas al borrar el pedido
    order_details = relationship("OrderDetail", back_populates="order", cascade="all, delete-orphan")


class OrderDetail(Base):
    __tablename__ = "order_details"
    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    number_of_products = Column(Integer, nullable=False)
    # precio del producto al momento de crear el pedido, no se vuelve a leer
    price = Column(Float, nullable=False)
    total_money = Column(Float, nullable=False)

    order = relationship("Order", back_populates="order_details")
    product = relationship("Product")


class OutboxEmail(Base):
    __tablename__ = "outbox_emails"
    id = Column(Integer, primary_key=True, index=True)
    # sin FK: borrar el pedido no borra el historial de emails
    order_id = Column(Integer, index=True, nullable=True)
    recipient = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    status = Column(String, index=True, default="PENDING")   # PENDING | SENDING | SENT | FAILED
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    sent_at = Column(DateTime(timezone=True), nullable=True)

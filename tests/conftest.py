import os
import smtplib

# La config se lee al importar pedidos: el entorno tiene que estar listo antes
os.environ.setdefault("SECRET_KEY", "test-secret")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["ADMIN_EMAIL"] = "admin@shop.test"
os.environ["SHOP_NAME"] = "Test Shop"
os.environ["EMAIL_MAX_ATTEMPTS"] = "3"
os.environ["ORDER_TOTAL_POLICY"] = "trust"
os.environ["STRICT_STATUS_TRANSITIONS"] = "false"

from datetime import datetime, timezone

import pytest
from fastapi import Depends
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import Session, sessionmaker

from pedidos import config
from pedidos.app import app, get_email_sender, get_order_service
from pedidos.db import Base, make_engine, get_db, get_session_factory
from pedidos.models import Product, User
from pedidos.services import OrderService

# reloj fijo para la app: las fechas esperadas no dependen del dia en que corren los tests
FIXED_NOW = datetime(2030, 1, 10, 12, 0, tzinfo=timezone.utc)


class FakeSender:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to_email, subject, body):
        if self.fail:
            raise smtplib.SMTPException("smtp down")
        self.sent.append({"to": to_email, "subject": subject, "body": body})


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{(tmp_path / 'pedidos_test.db').as_posix()}")
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def seed(session_factory):
    with session_factory() as s:
        s.add_all([
            User(id=1, email="alice@mail.test", fullname="Alice", role="user"),
            User(id=2, email="bob@mail.test", fullname="Bob", role="user"),
            User(id=9, email="admin@shop.test", fullname="Admin", role="admin"),
            Product(id=1, name="Lava stone bracelet", price=10.0),
            Product(id=2, name="Lava stone ring", price=5.0),
        ])
        s.commit()


@pytest.fixture
def sender():
    return FakeSender()


@pytest.fixture
def client(session_factory, sender, seed):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def override_order_service(db: Session = Depends(get_db)):
        return OrderService(db, now=lambda: FIXED_NOW)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_order_service] = override_order_service
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_email_sender] = lambda: sender
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    def _headers(user_id: int, role: str = "user") -> dict:
        token = jwt.encode({"sub": str(user_id), "role": role}, config.SECRET_KEY, algorithm=config.ALGORITHM)
        return {"Authorization": f"Bearer {token}"}
    return _headers

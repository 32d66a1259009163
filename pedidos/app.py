import logging
from typing import List

from fastapi import FastAPI, Depends, HTTPException, BackgroundTasks, Query
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError, ExpiredSignatureError
from sqlalchemy.orm import Session

from . import config
from .db import Base, engine, get_db, get_session_factory
from .emails import SmtpEmailSender
from .exceptions import InvalidInputError, InvalidStatusTransitionError, NotFoundError
from .models import Order
from .notifications import dispatch_in_background, dispatch_pending
from .schemas import OrderIn, OrderStatusIn
from .services import OrderService

logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

oauth2_scheme = HTTPBearer()
app = FastAPI(title="Pedidos Service")

# ---------- DB init ----------
Base.metadata.create_all(bind=engine)


def get_order_service(db: Session = Depends(get_db)) -> OrderService:
    return OrderService(db)


def get_email_sender():
    return SmtpEmailSender(
        host=config.SMTP_HOST,
        port=config.SMTP_PORT,
        from_email=config.MAIL_FROM,
        user=config.SMTP_USER,
        password=config.SMTP_PASSWORD,
        starttls=config.SMTP_STARTTLS,
        timeout=config.SMTP_TIMEOUT,
    )


# ---------- Errores de negocio -> HTTP ----------
@app.exception_handler(NotFoundError)
def not_found_handler(request, exc: NotFoundError):
    return JSONResponse(status_code=404, content={"detail": exc.message})


@app.exception_handler(InvalidInputError)
def invalid_input_handler(request, exc: InvalidInputError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(InvalidStatusTransitionError)
def invalid_transition_handler(request, exc: InvalidStatusTransitionError):
    return JSONResponse(status_code=409, content={"detail": exc.message})


# ---------- Auth ----------
class CurrentUser:
    def __init__(self, user_id: int, role: str):
        self.id = user_id
        self.role = role

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(oauth2_scheme)) -> CurrentUser:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=401, detail="Invalid auth scheme")
    token = credentials.credentials
    try:
        payload = jwt.decode(token, config.SECRET_KEY, algorithms=[config.ALGORITHM])
        sub  = payload.get("sub")
        role = payload.get("role", "user")
        if sub is None:
            raise HTTPException(status_code=401, detail="Invalid token")
        return CurrentUser(user_id=int(sub), role=role)
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token expired")
    except (JWTError, ValueError) as e:
        logger.info("JWT decode error: %s", e)
        raise HTTPException(status_code=401, detail="Invalid token")


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin only")
    return user


def _require_owner_or_admin(user: CurrentUser, owner_id: int):
    if not user.is_admin and user.id != owner_id:
        raise HTTPException(status_code=403, detail="Forbidden")


# ---------- Utils ----------
def order_to_dict(o: Order):
    return {
        "id": o.id,
        "user_id": o.user_id,
        "fullname": o.fullname,
        "email": o.email,
        "phone_number": o.phone_number,
        "address": o.address,
        "note": o.note,
        "status": o.status,
        "active": o.active,
        "total_money": round(o.total_money, 2),
        "order_date": o.order_date.isoformat() if o.order_date else None,
        "shipping_method": o.shipping_method,
        "shipping_address": o.shipping_address,
        "shipping_date": o.shipping_date.isoformat() if o.shipping_date else None,
        "payment_method": o.payment_method,
        "order_details": [
            {
                "id": d.id,
                "product_id": d.product_id,
                "number_of_products": d.number_of_products,
                "price": d.price,
                "total_money": round(d.total_money, 2),
            }
            for d in o.order_details
        ],
    }


# ---------- Endpoints utilitarios ----------
@app.get("/health")
def health(): return {"ok": True}


# ---------- Endpoints de negocio ----------
@app.post("/orders", status_code=201)
def create_order(
    payload: OrderIn,
    background_tasks: BackgroundTasks,
    service: OrderService = Depends(get_order_service),
    user: CurrentUser = Depends(get_current_user),
    session_factory=Depends(get_session_factory),
    sender=Depends(get_email_sender),
):
    _require_owner_or_admin(user, payload.user_id)
    order = service.create_order(payload)
    # los emails salen despues del commit; un fallo SMTP no afecta al pedido
    background_tasks.add_task(dispatch_in_background, session_factory, sender,
                              config.EMAIL_MAX_ATTEMPTS, order.id)
    return order_to_dict(order)


@app.get("/orders/user/{user_id}")
def list_user_orders(user_id: int, service: OrderService = Depends(get_order_service),
                     user: CurrentUser = Depends(get_current_user)):
    _require_owner_or_admin(user, user_id)
    return [order_to_dict(o) for o in service.find_by_user_id(user_id)]


@app.get("/orders/status/pending")
def list_pending(service: OrderService = Depends(get_order_service), admin: CurrentUser = Depends(require_admin)):
    return [order_to_dict(o) for o in service.get_pending_orders()]


@app.get("/orders/status/shipping")
def list_shipping(service: OrderService = Depends(get_order_service), admin: CurrentUser = Depends(require_admin)):
    return [order_to_dict(o) for o in service.get_shipping_orders()]


@app.get("/orders/status/delivered")
def list_delivered(service: OrderService = Depends(get_order_service), admin: CurrentUser = Depends(require_admin)):
    return [order_to_dict(o) for o in service.get_delivered_orders()]


@app.get("/orders/status/cancelled")
def list_cancelled(service: OrderService = Depends(get_order_service), admin: CurrentUser = Depends(require_admin)):
    return [order_to_dict(o) for o in service.get_cancelled_orders()]


@app.get("/orders/{order_id}")
def get_order(order_id: int, service: OrderService = Depends(get_order_service),
              user: CurrentUser = Depends(get_current_user)):
    o = service.get_order(order_id)
    # a un no-dueño se le responde igual que si el pedido no existiera
    if not user.is_admin and o.user_id != user.id:
        raise NotFoundError(f"Order {order_id} not found")
    return order_to_dict(o)


@app.put("/orders/{order_id}")
def update_order(order_id: int, payload: OrderStatusIn, service: OrderService = Depends(get_order_service),
                 admin: CurrentUser = Depends(require_admin)):
    return order_to_dict(service.update_order(order_id, payload.status))


@app.delete("/orders")
def delete_orders(ids: List[int] = Query(...), service: OrderService = Depends(get_order_service),
                  admin: CurrentUser = Depends(require_admin)):
    return {"deleted": service.delete_order(ids)}


# -------- Admin: reintentar emails pendientes --------
@app.post("/outbox/dispatch")
def dispatch_outbox(db: Session = Depends(get_db), sender=Depends(get_email_sender),
                    admin: CurrentUser = Depends(require_admin)):
    return dispatch_pending(db, sender, max_attempts=config.EMAIL_MAX_ATTEMPTS)

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import DATABASE_URL


def make_engine(url: str):
    # sqlite necesita check_same_thread=False porque FastAPI atiende en varios hilos
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args)


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        # entrega la sesion de la db al endpoint que lo necesite
        yield db
    finally:
        db.close()


def get_session_factory():
    # las tareas en background abren su propia sesion
    return SessionLocal

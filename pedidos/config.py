import os
from pathlib import Path

from dotenv import load_dotenv

# Cargar SIEMPRE el .env local (no el de la raíz)
ENV_PATH = Path(__file__).resolve().parent / ".env"

load_dotenv(dotenv_path=ENV_PATH, override=True)   # variables al entorno


def _get_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


# ---------- Auth ----------
SECRET_KEY = os.getenv("SECRET_KEY")
ALGORITHM  = os.getenv("ALGORITHM", "HS256")

if not SECRET_KEY:
    raise RuntimeError("SECRET_KEY no está definida en pedidos/.env ni en el entorno")

# ---------- DB ----------
# DATABASE_URL tiene prioridad; si no, un archivo sqlite dentro del microservicio
DB_FILE = os.getenv("DB_FILE", "pedidos.db")
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"sqlite:///{(Path(__file__).resolve().parent / DB_FILE).as_posix()}",
)

# ---------- Emails ----------
ADMIN_EMAIL   = os.getenv("ADMIN_EMAIL", "admin@example.com")
MAIL_FROM     = os.getenv("MAIL_FROM", "noreply@example.com")
SHOP_NAME     = os.getenv("SHOP_NAME", "Shop")
SMTP_HOST     = os.getenv("SMTP_HOST", "localhost")
SMTP_PORT     = int(os.getenv("SMTP_PORT", "1025"))
SMTP_USER     = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_STARTTLS = _get_bool("SMTP_STARTTLS")
SMTP_TIMEOUT  = float(os.getenv("SMTP_TIMEOUT", "10"))
# intentos antes de marcar un email del outbox como FAILED
EMAIL_MAX_ATTEMPTS = int(os.getenv("EMAIL_MAX_ATTEMPTS", "3"))

# ---------- Reglas de pedidos ----------
DEFAULT_SHIPPING_DAYS = int(os.getenv("DEFAULT_SHIPPING_DAYS", "3"))
# trust: se guarda el total que manda el cliente | reject: debe coincidir con la suma de las líneas
ORDER_TOTAL_POLICY = os.getenv("ORDER_TOTAL_POLICY", "trust").strip().lower()
STRICT_STATUS_TRANSITIONS = _get_bool("STRICT_STATUS_TRANSITIONS")

if ORDER_TOTAL_POLICY not in {"trust", "reject"}:
    raise RuntimeError(f"ORDER_TOTAL_POLICY inválida: {ORDER_TOTAL_POLICY!r} (trust | reject)")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

import os
from decimal import Decimal

from dotenv import load_dotenv

# Carrega o .env da raiz do projeto
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./order_engine.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

# Pedidos
# Tolerância relativa entre o preço enviado pelo cliente e o preço do catálogo.
PRICE_TOLERANCE = Decimal(os.getenv("PRICE_TOLERANCE", "0.01"))
ORDER_NUMBER_PREFIX = os.getenv("ORDER_NUMBER_PREFIX", "CMD").strip().upper() or "CMD"
MAX_ORDER_LINES = int(os.getenv("MAX_ORDER_LINES", "50"))
MAX_LINE_QUANTITY = int(os.getenv("MAX_LINE_QUANTITY", "100"))

# Estoque
MAX_STOCK_MOVEMENTS = int(os.getenv("MAX_STOCK_MOVEMENTS", "200"))

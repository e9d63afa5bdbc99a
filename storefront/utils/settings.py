# storefront/utils/settings.py
import os
from decimal import Decimal
from dotenv import load_dotenv

load_dotenv()


def _get_bool(key: str, default: str = "0") -> bool:
    return os.getenv(key, default).strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./storefront.db")
REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")

STOREFRONT_API_URL = os.getenv("STOREFRONT_API_URL", "http://localhost:5000/api")
STOREFRONT_API_TOKEN = os.getenv("STOREFRONT_API_TOKEN", "")
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", 10))
# 1 attempt + 2 retries dla bledow sieciowych
HTTP_RETRY_ATTEMPTS = int(os.getenv("HTTP_RETRY_ATTEMPTS", 3))
HTTP_RETRY_WAIT_SECONDS = float(os.getenv("HTTP_RETRY_WAIT_SECONDS", 0.5))

CHECKOUT_LOCK_BACKEND = os.getenv("CHECKOUT_LOCK_BACKEND", "memory")
CHECKOUT_LOCK_TTL_SECONDS = int(os.getenv("CHECKOUT_LOCK_TTL_SECONDS", 120))

CART_STORAGE_KEY = os.getenv("CART_STORAGE_KEY", "pawsCart")
# ile sesji koszyka (X-Cart-Key) trzymamy w pamieci procesu
CART_SESSION_LIMIT = int(os.getenv("CART_SESSION_LIMIT", 1000))
GLOBAL_MAX_PER_PRODUCT = int(os.getenv("GLOBAL_MAX_PER_PRODUCT", 5))
VAT_RATE = Decimal(os.getenv("VAT_RATE", "0.05"))
CURRENCY = os.getenv("CURRENCY", "AED")
DECIMALS = int(os.getenv("DECIMALS", 2))

CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://redis:6379/2")
CELERY_TASK_ALWAYS_EAGER = _get_bool("CELERY_TASK_ALWAYS_EAGER")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

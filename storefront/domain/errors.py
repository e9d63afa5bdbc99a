# storefront/domain/errors.py
from typing import Any


def extract_error_message(payload: Any, default: str = "Something went wrong!") -> str:
    """Wyciaga czytelny komunikat z koperty bledu backendu."""
    if not isinstance(payload, dict):
        return default

    if payload.get("message"):
        return str(payload["message"])

    errors = payload.get("errors")
    if isinstance(errors, list) and errors:
        parts = []
        for err in errors:
            if isinstance(err, dict):
                msg = err.get("message") or err.get("msg")
                field = err.get("field") or err.get("param")
                parts.append(msg if msg else f"{field}: invalid")
            else:
                parts.append(str(err))
        return ", ".join(parts)

    if isinstance(payload.get("error"), str):
        return payload["error"]

    if payload.get("detail"):
        return str(payload["detail"])

    return default


class ApiError(Exception):
    """Blad zwrocony przez backend REST (lub brak odpowiedzi)."""

    def __init__(self, message: str, status_code: int = 500, payload: Any = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    @property
    def status(self) -> str:
        return "fail" if 400 <= self.status_code < 500 else "error"


class TransientApiError(ApiError):
    """Siec, timeout albo 502/503/504 - mozna ponowic."""


class CheckoutError(Exception):
    def __init__(self, message: str, reason: str = "checkout_failed", order_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.reason = reason
        self.order_id = order_id


class CheckoutInProgressError(CheckoutError):
    def __init__(self, message: str = "Checkout is already in progress"):
        super().__init__(message, reason="in_progress")


class CheckoutValidationError(CheckoutError):
    def __init__(self, errors: dict[str, str]):
        super().__init__("Please correct the highlighted fields", reason="validation_error")
        self.errors = errors


class CartLockedError(Exception):
    """Koszyk jest zamrozony przez trwajacy checkout."""

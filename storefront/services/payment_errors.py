# storefront/services/payment_errors.py
from enum import Enum

PROCESSOR_ERROR_MESSAGES = {
    "card_declined": "Your card was declined. Please try a different payment method.",
    "insufficient_funds": "Insufficient funds. Please try a different card or add funds.",
    "expired_card": "Your card has expired. Please try a different card.",
    "incorrect_cvc": "The security code (CVC) is incorrect. Please check and try again.",
    "processing_error": "An error occurred while processing your payment. Please try again.",
    "invalid_request_error": "Payment information is invalid. Please check your details.",
    "api_connection_error": "Connection error. Please check your internet and try again.",
    "api_error": "Payment service temporarily unavailable. Please try again later.",
    "authentication_error": "Payment authentication failed. Please try again.",
    "rate_limit_error": "Too many requests. Please wait a moment and try again.",
    "validation_error": "Please check your payment information and try again.",
}
DEFAULT_PROCESSOR_MESSAGE = "An unexpected error occurred. Please try again or contact support."


class ConfirmationFailure(str, Enum):
    ALREADY_CONFIRMED = "already_confirmed"
    PAYMENT_FAILED = "payment_failed"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    GENERIC = "confirmation_failed"


CONFIRMATION_MESSAGES = {
    ConfirmationFailure.ALREADY_CONFIRMED: "Payment was already confirmed! Order is being processed.",
    ConfirmationFailure.PAYMENT_FAILED: "Payment confirmation failed. Please try again or contact support.",
    ConfirmationFailure.INSUFFICIENT_FUNDS: "Insufficient funds. Please try a different payment method.",
    ConfirmationFailure.GENERIC: "Payment confirmation failed. Please try again.",
}


def processor_error_message(code: str | None = None, error_type: str | None = None) -> str:
    return PROCESSOR_ERROR_MESSAGES.get(code or error_type or "", DEFAULT_PROCESSOR_MESSAGE)


def tokenization_error_message(code: str | None, error_type: str | None, message: str) -> str:
    if error_type == "card_error":
        return f"Card Error: {message}"
    if error_type == "validation_error":
        return f"Validation Error: {message}"
    if code or error_type:
        return processor_error_message(code, error_type)
    return "Card validation failed. Please check your card details."


def classify_confirmation_error(message: str) -> ConfirmationFailure:
    #backend sygnalizuje rodzaj bledu tylko w tresci komunikatu
    text = (message or "").lower()
    if "already_confirmed" in text:
        return ConfirmationFailure.ALREADY_CONFIRMED
    if "payment_failed" in text:
        return ConfirmationFailure.PAYMENT_FAILED
    if "insufficient_funds" in text:
        return ConfirmationFailure.INSUFFICIENT_FUNDS
    return ConfirmationFailure.GENERIC

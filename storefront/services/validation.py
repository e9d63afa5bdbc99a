# storefront/services/validation.py
"""Walidacja danych klienta i adresu przed jakimkolwiek wywolaniem sieci."""
import re
from typing import Iterable

from storefront.domain.schemas import BillingAddress, CustomerInfo

UAE_PHONE_REGEX = re.compile(r"^(?:\+971|971|00971|0)?(?:50|51|52|54|55|56|58)\d{7}$")
EMIRATES_ID_REGEX = re.compile(r"^784-\d{4}-\d{7}-\d$")
EMAIL_REGEX = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

UAE_EMIRATES = (
    "Abu Dhabi",
    "Dubai",
    "Sharjah",
    "Ajman",
    "Umm Al Quwain",
    "Ras Al Khaimah",
    "Fujairah",
)

UAE_CITIES = (
    "Dubai", "Abu Dhabi", "Sharjah", "Ajman", "Al Ain", "Fujairah",
    "Ras Al Khaimah", "Umm Al Quwain", "Khor Fakkan", "Dibba",
    "Kalba", "Madinat Zayed", "Liwa", "Ghayathi", "Ruwais",
    "Masafi", "Hatta", "Jebel Ali", "Dubai Marina", "Downtown Dubai",
)


def validate_phone(phone: str | None) -> str | None:
    if not phone:
        return "Phone number is required"
    if not UAE_PHONE_REGEX.match(re.sub(r"\s+", "", phone)):
        return "Please enter a valid UAE phone number (e.g., +971 50 123 4567)"
    return None


def validate_email(email: str | None) -> str | None:
    if not email:
        return "Email is required"
    if not EMAIL_REGEX.match(email):
        return "Please enter a valid email address"
    return None


def validate_emirates_id(emirates_id: str | None) -> str | None:
    if emirates_id and not EMIRATES_ID_REGEX.match(emirates_id):
        return "Please enter a valid Emirates ID (format: 784-YYYY-XXXXXXX-X)"
    return None


def validate_customer_info(customer: CustomerInfo) -> dict[str, str]:
    errors = {}

    if not customer.name or len(customer.name.strip()) < 2:
        errors["name"] = "Name must be at least 2 characters long"

    for field, error in (
        ("email", validate_email(customer.email)),
        ("phone", validate_phone(customer.phone)),
        ("emiratesId", validate_emirates_id(customer.emirates_id)),
    ):
        if error:
            errors[field] = error

    return errors


def validate_billing_address(
    address: BillingAddress,
    supported_cities: Iterable[str] = UAE_CITIES,
    supported_emirates: Iterable[str] = UAE_EMIRATES,
) -> dict[str, str]:
    errors = {}

    if not address.street or len(address.street.strip()) < 5:
        errors["street"] = "Street address must be at least 5 characters long"

    if not address.city or address.city not in tuple(supported_cities):
        errors["city"] = "Please select a valid city"

    if not address.emirate or address.emirate not in tuple(supported_emirates):
        errors["emirate"] = "Please select a valid emirate"

    if address.country != "UAE":
        errors["country"] = "Country must be UAE"

    return errors


def validate_checkout_input(
    customer: CustomerInfo,
    address: BillingAddress,
    supported_cities: Iterable[str] = UAE_CITIES,
    supported_emirates: Iterable[str] = UAE_EMIRATES,
) -> dict[str, str]:
    return {
        **validate_customer_info(customer),
        **validate_billing_address(address, supported_cities, supported_emirates),
    }

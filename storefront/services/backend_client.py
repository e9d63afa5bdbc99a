# storefront/services/backend_client.py
from typing import Any, List

import requests

from storefront.domain.errors import ApiError, TransientApiError, extract_error_message
from storefront.domain.schemas import (
    BillingAddress,
    CatalogRecord,
    CustomerInfo,
    OrderRef,
    PaymentConfirmation,
    PaymentIntent,
    PaymentStatus,
)
from storefront.utils.retry import transient_retry
from storefront.utils.settings import HTTP_TIMEOUT_SECONDS, STOREFRONT_API_TOKEN, STOREFRONT_API_URL
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

TRANSIENT_STATUS_CODES = {502, 503, 504}


def format_customer_for_payment(customer: CustomerInfo) -> dict:
    data = {"name": customer.name, "email": customer.email, "phone": customer.phone}
    if customer.emirates_id:
        data["emiratesId"] = customer.emirates_id
    return data


def format_billing_for_payment(address: BillingAddress) -> dict:
    data = {
        "street": address.street,
        "city": address.city,
        "emirate": address.emirate,
        "country": "UAE",
    }
    if address.postal_code:
        data["postalCode"] = address.postal_code
    return data


class StorefrontApiClient:
    """
    Klient REST backendu sklepu. Odpowiedzi sa tu sprowadzane do jednego
    kanonicznego ksztaltu, logika checkoutu nie zgaduje struktury jsona.

    Retry (tenacity) tylko dla tworzenia zamowienia i payment intent.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        token: str | None = None,
        session: requests.Session | None = None,
    ):
        self.base_url = (base_url or STOREFRONT_API_URL).rstrip("/")
        self.timeout = timeout or HTTP_TIMEOUT_SECONDS
        self.token = STOREFRONT_API_TOKEN if token is None else token
        self.session = session or requests.Session()

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _request(self, method: str, path: str, body: dict | None = None) -> Any:
        url = f"{self.base_url}{path}"
        logger.info(f"StorefrontApiClient {method} {url}")

        try:
            resp = self.session.request(
                method,
                url,
                json=body,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except (requests.ConnectionError, requests.Timeout) as e:
            logger.warning(f"Network error on {method} {url}: {e}")
            raise TransientApiError(
                "Network error - please check your internet connection", 0
            ) from e
        except requests.RequestException as e:
            raise ApiError(str(e) or "An unexpected error occurred", 500) from e

        if not resp.ok:
            try:
                payload = resp.json()
            except ValueError:
                payload = {"message": f"HTTP {resp.status_code}: {resp.reason}"}

            message = extract_error_message(
                payload, f"Request failed with status {resp.status_code}"
            )
            logger.warning(f"{method} {url} -> {resp.status_code}: {message}")

            if resp.status_code in TRANSIENT_STATUS_CODES:
                raise TransientApiError(message, resp.status_code, payload)
            raise ApiError(message, resp.status_code, payload)

        if not resp.content:
            return {"success": True, "status": resp.status_code}

        try:
            return resp.json()
        except ValueError:
            return {"success": True, "status": resp.status_code, "text": resp.text}

    # =====================================================
    # ORDERS
    # =====================================================
    @transient_retry()
    def create_order(self, order_data: dict) -> OrderRef:
        payload = self._request("POST", "/orders", order_data)

        data = payload.get("data") if isinstance(payload, dict) else None
        order_id = data.get("_id") if isinstance(data, dict) else None
        if not order_id:
            logger.error(f"Order creation response without data._id: {payload}")
            raise ApiError("Failed to get order ID from order creation response", 502, payload)

        return OrderRef(order_id=str(order_id), status=data.get("status"))

    def update_order_status(self, order_id: str, status: str, remarks: str = "") -> dict:
        return self._request("PUT", f"/orders/{order_id}/status", {"status": status, "remarks": remarks})

    # =====================================================
    # PAYMENTS
    # =====================================================
    @transient_retry()
    def create_payment_intent(
        self,
        order_id: str,
        customer: CustomerInfo,
        billing: BillingAddress,
    ) -> PaymentIntent:
        payload = self._request(
            "POST",
            "/payments/create-payment-intent",
            {
                "orderId": order_id,
                "customerInfo": format_customer_for_payment(customer),
                "billingAddress": format_billing_for_payment(billing),
            },
        )

        if not isinstance(payload, dict) or not payload.get("clientSecret"):
            logger.error(f"Payment intent response without clientSecret: {payload}")
            raise ApiError("Failed to get client secret from payment intent response", 502, payload)

        return PaymentIntent(
            payment_intent_id=str(payload.get("paymentIntentId") or ""),
            client_secret=payload["clientSecret"],
        )

    def confirm_payment(self, payment_intent_id: str, payment_method_id: str) -> PaymentConfirmation:
        # bez retry - potwierdzenie wymaga decyzji uzytkownika
        payload = self._request(
            "POST",
            "/payments/confirm-payment",
            {"paymentIntentId": payment_intent_id, "paymentMethodId": payment_method_id},
        )
        data = payload.get("data") if isinstance(payload, dict) and isinstance(payload.get("data"), dict) else {}

        return PaymentConfirmation(
            payment_intent_id=data.get("paymentIntentId") or payment_intent_id,
            order_id=data.get("orderId"),
            status=data.get("status") or "succeeded",
        )

    def get_payment_status(self, payment_intent_id: str) -> PaymentStatus:
        payload = self._request("GET", f"/payments/status/{payment_intent_id}")
        data = payload.get("data") if isinstance(payload, dict) and isinstance(payload.get("data"), dict) else {}

        return PaymentStatus(
            payment_intent_id=payment_intent_id,
            status=str(data.get("status") or "unknown"),
            order_id=data.get("orderId"),
        )

    # =====================================================
    # CATALOG
    # =====================================================
    def list_products(self) -> List[CatalogRecord]:
        return self._records(self._request("GET", "/products"))

    def list_services(self) -> List[CatalogRecord]:
        return self._records(self._request("GET", "/services"))

    def get_product(self, product_id: str) -> CatalogRecord:
        payload = self._request("GET", f"/products/{product_id}")
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise ApiError(f"Product {product_id} not found", 404, payload)
        return CatalogRecord.from_backend(data)

    @staticmethod
    def _records(payload: Any) -> List[CatalogRecord]:
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            return []
        return [CatalogRecord.from_backend(raw) for raw in data if isinstance(raw, dict)]

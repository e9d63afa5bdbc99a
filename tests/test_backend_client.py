from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from storefront.domain.errors import ApiError, TransientApiError, extract_error_message
from storefront.services.backend_client import StorefrontApiClient


def _response(status: int = 200, payload=None):
    resp = MagicMock()
    resp.ok = status < 400
    resp.status_code = status
    resp.reason = "Error" if status >= 400 else "OK"
    resp.content = b"{}" if payload is not None else b""
    resp.json.return_value = payload
    resp.text = ""
    return resp


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


@pytest.fixture
def client(session) -> StorefrontApiClient:
    return StorefrontApiClient(base_url="http://backend.test/api/", timeout=2, token="", session=session)


class TestRequest:
    def test_url_and_headers(self, session):
        session.request.return_value = _response(200, {"data": []})
        client = StorefrontApiClient(base_url="http://backend.test/api", token="t0k", session=session)

        client.list_products()

        method, url = session.request.call_args.args
        assert method == "GET"
        assert url == "http://backend.test/api/products"
        assert session.request.call_args.kwargs["headers"]["Authorization"] == "Bearer t0k"

    def test_error_envelope_message(self, client, session):
        session.request.return_value = _response(400, {"status": "fail", "message": "Invalid order"})

        with pytest.raises(ApiError) as exc:
            client.update_order_status("o1", "cancelled")

        assert exc.value.message == "Invalid order"
        assert exc.value.status_code == 400
        assert exc.value.status == "fail"
        assert not isinstance(exc.value, TransientApiError)

    def test_non_json_error_body(self, client, session):
        resp = _response(500, None)
        resp.content = b"<html>"
        resp.json.side_effect = ValueError("no json")
        session.request.return_value = resp

        with pytest.raises(ApiError) as exc:
            client.get_payment_status("pi_1")

        assert exc.value.message == "HTTP 500: Error"
        assert exc.value.status == "error"

    def test_empty_success_body(self, client, session):
        session.request.return_value = _response(204, None)
        assert client.update_order_status("o1", "cancelled") == {"success": True, "status": 204}


class TestCreateOrder:
    def test_returns_order_id(self, client, session):
        session.request.return_value = _response(201, {"status": "success", "data": {"_id": "o1", "status": "pending"}})

        order = client.create_order({"products": []})

        assert order.order_id == "o1"
        assert order.status == "pending"
        assert session.request.call_args.kwargs["json"] == {"products": []}

    def test_missing_order_id_is_error(self, client, session):
        session.request.return_value = _response(201, {"status": "success", "data": {}})

        with pytest.raises(ApiError) as exc:
            client.create_order({})

        assert "order ID" in exc.value.message
        assert session.request.call_count == 1

    def test_transient_failures_are_retried(self, client, session):
        session.request.side_effect = [
            _response(503, {"message": "unavailable"}),
            requests.ConnectionError("reset"),
            _response(201, {"data": {"_id": "o2"}}),
        ]

        assert client.create_order({}).order_id == "o2"
        assert session.request.call_count == 3

    def test_gives_up_after_three_attempts(self, client, session):
        session.request.side_effect = requests.Timeout("slow")

        with pytest.raises(TransientApiError) as exc:
            client.create_order({})

        assert exc.value.status_code == 0
        assert session.request.call_count == 3

    def test_client_errors_are_not_retried(self, client, session):
        session.request.return_value = _response(422, {"errors": [{"field": "email", "message": "Email is invalid"}]})

        with pytest.raises(ApiError) as exc:
            client.create_order({})

        assert exc.value.message == "Email is invalid"
        assert session.request.call_count == 1


class TestPayments:
    def test_payment_intent_shape(self, client, session, customer, billing):
        session.request.return_value = _response(200, {"paymentIntentId": "pi_1", "clientSecret": "sec"})

        intent = client.create_payment_intent("o1", customer, billing)

        assert intent.payment_intent_id == "pi_1"
        assert intent.client_secret == "sec"
        body = session.request.call_args.kwargs["json"]
        assert body["orderId"] == "o1"
        assert body["customerInfo"] == {"name": "Layla Hassan", "email": "layla@example.com", "phone": "+971501234567"}
        assert body["billingAddress"]["country"] == "UAE"

    def test_payment_intent_without_secret(self, client, session, customer, billing):
        session.request.return_value = _response(200, {"paymentIntentId": "pi_1"})

        with pytest.raises(ApiError):
            client.create_payment_intent("o1", customer, billing)

    def test_confirm_is_not_retried(self, client, session):
        session.request.return_value = _response(503, {"message": "unavailable"})

        with pytest.raises(TransientApiError):
            client.confirm_payment("pi_1", "pm_1")

        assert session.request.call_count == 1

    def test_confirm_payment(self, client, session):
        session.request.return_value = _response(200, {"data": {"orderId": "o1", "status": "succeeded"}})

        confirmation = client.confirm_payment("pi_1", "pm_1")

        assert confirmation.payment_intent_id == "pi_1"
        assert confirmation.order_id == "o1"
        assert session.request.call_args.kwargs["json"] == {"paymentIntentId": "pi_1", "paymentMethodId": "pm_1"}

    def test_payment_status(self, client, session):
        session.request.return_value = _response(200, {"data": {"status": "requires_payment_method"}})

        status = client.get_payment_status("pi_1")

        assert status.status == "requires_payment_method"
        assert session.request.call_args.args[1].endswith("/payments/status/pi_1")


class TestCatalog:
    def test_product_normalization(self, client, session):
        session.request.return_value = _response(
            200,
            {
                "data": {
                    "_id": "p9",
                    "productDetail": "Salmon Kibble",
                    "salePrice": 120,
                    "promotion": {"price": 99.5},
                    "stockQuantity": 4,
                    "productCode": "SK-1",
                    "images": ["a.jpg", "b.jpg"],
                }
            },
        )

        record = client.get_product("p9")

        assert record.id == "p9"
        assert record.name == "Salmon Kibble"
        assert record.price == Decimal("120")
        assert record.promotion_price == Decimal("99.5")
        assert record.has_promotion is True
        assert record.stock_quantity == 4
        assert record.image == "a.jpg"

    def test_service_normalization(self, client, session):
        session.request.return_value = _response(
            200,
            {"data": [{"_id": "s1", "serviceName": "Grooming", "servicePrice": 150, "serviceCode": "GR"}]},
        )

        [record] = client.list_services()

        assert record.name == "Grooming"
        assert record.price == Decimal("150")
        assert record.type == "service"
        assert record.product_code == "GR"
        assert record.stock_quantity is None

    def test_missing_product(self, client, session):
        session.request.return_value = _response(200, {"data": None})

        with pytest.raises(ApiError) as exc:
            client.get_product("zzz")

        assert exc.value.status_code == 404


class TestExtractErrorMessage:
    def test_priority(self):
        assert extract_error_message({"message": "m", "error": "e"}) == "m"
        assert extract_error_message({"error": "e"}) == "e"
        assert extract_error_message({"errors": [{"param": "phone"}]}) == "phone: invalid"
        assert extract_error_message("boom") == "Something went wrong!"

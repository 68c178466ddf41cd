"""
Тесты HTTP-клиента платежного шлюза (запросы перехватываются httpx.MockTransport).
"""

import base64

import httpx
import pytest
from pydantic import SecretStr

from reservations.booking.infrastructure import HttpPaymentGateway, map_gateway_status
from reservations.booking.interfaces import GatewayPaymentStatus, PaymentGatewayException

BASE_URL = "https://gateway.test/v1"


def make_gateway(handler) -> HttpPaymentGateway:
    client = httpx.Client(base_url=BASE_URL, transport=httpx.MockTransport(handler))
    return HttpPaymentGateway(base_url=BASE_URL, client=client)


def intent(status: str) -> dict:
    return {"data": {"id": "pi_123", "attributes": {"status": status}}}


class TestHttpPaymentGateway:
    """Тесты для HttpPaymentGateway."""

    @pytest.mark.parametrize(
        "status, expected",
        [
            ("succeeded", GatewayPaymentStatus.PAID),
            ("canceled", GatewayPaymentStatus.FAILED),
            ("cancelled", GatewayPaymentStatus.FAILED),
            ("processing", GatewayPaymentStatus.PROCESSING),
            ("awaiting_payment_method", GatewayPaymentStatus.PROCESSING),
            ("requires_action", GatewayPaymentStatus.PROCESSING),
        ],
    )
    def test_status_mapping(self, status, expected):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=intent(status))

        gateway = make_gateway(handler)

        assert gateway.query_status("pi_123") == expected
        assert requests[0].method == "GET"
        assert requests[0].url.path == "/v1/payment_intents/pi_123"

    def test_http_error_is_wrapped(self):
        gateway = make_gateway(lambda request: httpx.Response(500, json={}))

        with pytest.raises(PaymentGatewayException):
            gateway.query_status("pi_123")

    def test_malformed_payload(self):
        gateway = make_gateway(lambda request: httpx.Response(200, json={"data": {}}))

        with pytest.raises(PaymentGatewayException):
            gateway.query_status("pi_123")

    def test_secret_key_is_sent_as_basic_auth(self):
        captured = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return httpx.Response(200, json=intent("succeeded"))

        gateway = HttpPaymentGateway(
            base_url=BASE_URL,
            secret_key=SecretStr("sk_test_123"),
            transport=httpx.MockTransport(handler),
        )

        gateway.query_status("pi_123")

        token = base64.b64encode(b"sk_test_123:").decode()
        assert captured[0].headers["Authorization"] == f"Basic {token}"


def test_map_gateway_status_is_case_insensitive():
    assert map_gateway_status("SUCCEEDED") == GatewayPaymentStatus.PAID
    assert map_gateway_status("") == GatewayPaymentStatus.PROCESSING

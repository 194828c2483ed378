"""
Unit tests for the Paynow client.

HTTP traffic goes through httpx.MockTransport; nothing leaves the process.
"""

from decimal import Decimal
from urllib.parse import parse_qs

import httpx
import pytest

from eacz_registry.modules.payments.paynow import (
    CALLBACK_HASH_FIELDS,
    PaymentGatewayError,
    PaynowClient,
    generate_hash,
    is_payment_failed,
    is_payment_successful,
    parse_response,
)

INTEGRATION_ID = "1201"
INTEGRATION_KEY = "3e9fed89-60e1-4ce5-ab6e-6b1eb2d4f977"


def _client(handler) -> PaynowClient:
    return PaynowClient(
        INTEGRATION_ID,
        INTEGRATION_KEY,
        return_url="https://registry.example/return",
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def _signed_callback(**fields) -> dict[str, str]:
    payload = {key: fields.get(key, "") for key in CALLBACK_HASH_FIELDS}
    payload["hash"] = generate_hash(payload, INTEGRATION_KEY)
    return payload


class TestHelpers:
    def test_hash_is_uppercase_sha512_over_sorted_values(self):
        digest = generate_hash({"b": "2", "a": "1"}, "key")
        assert digest == generate_hash({"a": "1", "b": "2"}, "key")
        assert len(digest) == 128
        assert digest == digest.upper()

    def test_parse_line_response(self):
        assert parse_response("Status=Ok\nBrowserUrl=https%3a%2f%2fpay.example%2f1\n") == {
            "status": "Ok",
            "browserurl": "https://pay.example/1",
        }

    def test_parse_urlencoded_response(self):
        parsed = parse_response("status=Error&error=Invalid+amount")
        assert parsed == {"status": "Error", "error": "Invalid amount"}

    def test_status_classification(self):
        assert is_payment_successful("Paid")
        assert not is_payment_successful("Sent")
        assert is_payment_failed("Cancelled")
        assert not is_payment_failed(None)


class TestInitiatePayment:
    """Tests for PaynowClient.initiate_payment."""

    @pytest.mark.asyncio
    async def test_signed_request_and_parsed_urls(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["form"] = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
            return httpx.Response(
                200,
                text=(
                    "status=Ok&browserurl=https%3a%2f%2fpay.example%2f1"
                    "&pollurl=https%3a%2f%2fpay.example%2fpoll%2f1&paynowreference=9001"
                ),
            )

        client = _client(handler)
        result = await client.initiate_payment(
            reference="EACZ-FEE-APP-MBR-2025-0001",
            amount=Decimal("75"),
            email="tendai@example.com",
            result_url="https://api.example/callback",
        )

        assert captured["url"].endswith("/interface/initiatetransaction")
        form = captured["form"]
        assert form["amount"] == "75.00"
        assert form["resulturl"] == "https://api.example/callback"
        unsigned = {k: v for k, v in form.items() if k != "hash"}
        assert form["hash"] == generate_hash(unsigned, INTEGRATION_KEY)

        assert result.redirect_url == "https://pay.example/1"
        assert result.poll_url == "https://pay.example/poll/1"
        assert result.paynow_reference == "9001"

    @pytest.mark.asyncio
    async def test_gateway_error_is_raised(self):
        client = _client(lambda request: httpx.Response(200, text="status=Error&error=Invalid+id"))

        with pytest.raises(PaymentGatewayError, match="Invalid id"):
            await client.initiate_payment(
                reference="EACZ-FEE-X", amount=Decimal("50"), email="a@example.com"
            )

    @pytest.mark.asyncio
    async def test_http_failure_is_raised(self):
        client = _client(lambda request: httpx.Response(503))

        with pytest.raises(PaymentGatewayError):
            await client.initiate_payment(
                reference="EACZ-FEE-X", amount=Decimal("50"), email="a@example.com"
            )

    @pytest.mark.asyncio
    async def test_unconfigured_client(self):
        client = PaynowClient(None, None)

        with pytest.raises(PaymentGatewayError):
            await client.initiate_payment(
                reference="EACZ-FEE-X", amount=Decimal("50"), email="a@example.com"
            )


class TestVerifyCallback:
    """Tests for PaynowClient.verify_callback."""

    def test_valid_hash(self):
        client = _client(lambda request: httpx.Response(200))
        payload = _signed_callback(
            reference="EACZ-FEE-APP-MBR-2025-0001",
            paynowreference="9001",
            amount="75.00",
            status="Paid",
            pollurl="https://pay.example/poll/1",
        )

        status = client.verify_callback(payload)

        assert status is not None
        assert status.paid
        assert status.reference == "EACZ-FEE-APP-MBR-2025-0001"

    def test_tampered_amount(self):
        client = _client(lambda request: httpx.Response(200))
        payload = _signed_callback(reference="EACZ-FEE-X", amount="75.00", status="Paid")
        payload["amount"] = "0.01"

        assert client.verify_callback(payload) is None

    def test_missing_hash(self):
        client = _client(lambda request: httpx.Response(200))
        assert client.verify_callback({"reference": "EACZ-FEE-X", "status": "Paid"}) is None


class TestPollStatus:
    @pytest.mark.asyncio
    async def test_poll_returns_status(self):
        client = _client(
            lambda request: httpx.Response(
                200, text="reference=EACZ-FEE-X&status=Cancelled&paynowreference=9001"
            )
        )

        status = await client.poll_status("https://pay.example/poll/1")

        assert status.status == "Cancelled"
        assert status.poll_url == "https://pay.example/poll/1"

"""
Paynow Payment Gateway Client

Initiates application-fee transactions, verifies result notifications and
polls transaction status. Paynow speaks ``application/x-www-form-urlencoded``
requests and ``key=value`` line responses, each signed with an uppercase
SHA-512 hash over the field values (sorted by key) followed by the
integration key.

One client is constructed at startup and shared through ``app.state``.
"""

import hashlib
import hmac
import logging
from dataclasses import dataclass
from decimal import Decimal
from urllib.parse import unquote_plus

import httpx
from fastapi import Request

from eacz_registry.core.config import settings

logger = logging.getLogger(__name__)


class PaynowStatus:
    PAID = "Paid"
    AWAITING_DELIVERY = "Awaiting Delivery"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"
    FAILED = "Failed"
    PENDING = "Pending"
    SENT = "Sent"
    CREATED = "Created"


SUCCESSFUL_STATUSES = frozenset(
    {PaynowStatus.PAID, PaynowStatus.AWAITING_DELIVERY, PaynowStatus.DELIVERED}
)
FAILED_STATUSES = frozenset({PaynowStatus.CANCELLED, PaynowStatus.FAILED})

# Fields covered by the hash of a result notification
CALLBACK_HASH_FIELDS = ("reference", "paynowreference", "amount", "status", "pollurl")


def is_payment_successful(status: str | None) -> bool:
    return status in SUCCESSFUL_STATUSES


def is_payment_failed(status: str | None) -> bool:
    return status in FAILED_STATUSES


class PaymentGatewayError(Exception):
    """The gateway is not configured, unreachable or refused the request."""


@dataclass
class PaymentInitiation:
    reference: str
    redirect_url: str | None
    poll_url: str | None
    paynow_reference: str | None = None


@dataclass
class PaymentStatus:
    reference: str | None
    status: str | None
    amount: str | None = None
    paynow_reference: str | None = None
    poll_url: str | None = None

    @property
    def paid(self) -> bool:
        return is_payment_successful(self.status)


def generate_hash(values: dict[str, str], integration_key: str) -> str:
    """Uppercase hex SHA-512 of the values sorted by key, then the integration key."""
    joined = "".join(str(values[key]) for key in sorted(values))
    return hashlib.sha512(f"{joined}{integration_key}".encode()).hexdigest().upper()


def parse_response(text: str) -> dict[str, str]:
    """Parse a Paynow response body into a dict with lowercase keys."""
    result: dict[str, str] = {}
    # Paynow answers either one key=value per line or a urlencoded string
    separator = "&" if "&" in text and "\n" not in text.strip() else "\n"
    for part in text.strip().split(separator):
        key, sep, value = part.partition("=")
        if key and sep:
            result[key.strip().lower()] = unquote_plus(value.strip())
    return result


class PaynowClient:
    def __init__(
        self,
        integration_id: str | None,
        integration_key: str | None,
        *,
        base_url: str = "https://www.paynow.co.zw",
        return_url: str = "",
        result_url: str = "",
        timeout_seconds: float = 15.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.integration_id = integration_id
        self.integration_key = integration_key
        self.base_url = base_url.rstrip("/")
        self.return_url = return_url
        self.result_url = result_url
        self._client = http_client or httpx.AsyncClient(timeout=timeout_seconds)

    @property
    def configured(self) -> bool:
        return bool(self.integration_id and self.integration_key)

    def _require_configured(self) -> None:
        if not self.configured:
            raise PaymentGatewayError("Paynow integration is not configured")

    async def initiate_payment(
        self,
        *,
        reference: str,
        amount: Decimal,
        email: str,
        result_url: str | None = None,
        return_url: str | None = None,
    ) -> PaymentInitiation:
        """
        Create a web transaction and return the redirect and poll URLs.

        Raises:
            PaymentGatewayError: Not configured, unreachable, or the gateway
                reported an error
        """
        self._require_configured()

        fields = {
            "id": self.integration_id,
            "reference": reference,
            "amount": f"{Decimal(amount):.2f}",
            "additionalinfo": f"EACZ application fee {reference}",
            "returnurl": return_url or self.return_url,
            "resulturl": result_url or self.result_url,
            "authemail": email,
            "status": "Message",
        }
        fields["hash"] = generate_hash(fields, self.integration_key)

        try:
            response = await self._client.post(
                f"{self.base_url}/interface/initiatetransaction", data=fields
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Paynow initiation failed for {reference}: {e}")
            raise PaymentGatewayError("Payment service unavailable") from e

        data = parse_response(response.text)
        if data.get("status", "").lower() != "ok":
            error = data.get("error") or "Payment initiation failed"
            logger.warning(f"Paynow rejected initiation for {reference}: {error}")
            raise PaymentGatewayError(error)

        logger.info(f"Paynow transaction initiated for {reference}")
        return PaymentInitiation(
            reference=reference,
            redirect_url=data.get("browserurl"),
            poll_url=data.get("pollurl"),
            paynow_reference=data.get("paynowreference"),
        )

    def verify_callback(self, payload: dict[str, str]) -> PaymentStatus | None:
        """
        Verify the hash of a result notification.

        Returns the reported status, or None when the hash does not match.
        """
        if not self.configured:
            logger.error("Paynow callback received but integration is not configured")
            return None

        received = {key.lower(): str(value) for key, value in payload.items()}
        expected = generate_hash(
            {key: received.get(key, "") for key in CALLBACK_HASH_FIELDS},
            self.integration_key,
        )
        if not hmac.compare_digest(expected, received.get("hash", "").upper()):
            logger.warning(f"Paynow callback hash mismatch for {received.get('reference')}")
            return None

        return PaymentStatus(
            reference=received.get("reference"),
            status=received.get("status"),
            amount=received.get("amount"),
            paynow_reference=received.get("paynowreference"),
            poll_url=received.get("pollurl"),
        )

    async def poll_status(self, poll_url: str) -> PaymentStatus:
        """
        Query the current status of a transaction.

        Raises:
            PaymentGatewayError: If the poll request fails
        """
        try:
            response = await self._client.post(poll_url)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Paynow poll failed: {e}")
            raise PaymentGatewayError("Unable to check payment status") from e

        data = parse_response(response.text)
        return PaymentStatus(
            reference=data.get("reference"),
            status=data.get("status"),
            amount=data.get("amount"),
            paynow_reference=data.get("paynowreference"),
            poll_url=data.get("pollurl") or poll_url,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def build_paynow_client() -> PaynowClient:
    """Construct the client from settings."""
    if not settings.paynow_integration_id or not settings.paynow_integration_key:
        logger.warning("Paynow credentials not configured - online fee payment disabled")

    return PaynowClient(
        settings.paynow_integration_id,
        settings.paynow_integration_key,
        base_url=settings.paynow_base_url,
        return_url=f"{settings.frontend_url}/applications/payment-return",
        timeout_seconds=settings.payment_timeout_seconds,
    )


def get_paynow_client(request: Request) -> PaynowClient:
    """FastAPI dependency returning the client built at startup."""
    return request.app.state.paynow

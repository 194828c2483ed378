"""Payment gateway integration (Paynow)."""

from eacz_registry.modules.payments.paynow import (
    PaymentGatewayError,
    PaynowClient,
    is_payment_successful,
)

__all__ = ["PaymentGatewayError", "PaynowClient", "is_payment_successful"]

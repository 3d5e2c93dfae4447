"""Thin wrapper around the Razorpay client.

The backend never moves money itself: it asks the gateway for an order id,
stores that reference, and later checks the signature the gateway hands the
client after checkout.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Mapping, Optional
import logging

import razorpay
from razorpay.errors import (BadRequestError, GatewayError, ServerError,
                             SignatureVerificationError)
import requests

from errors import PaymentGatewayError

logger = logging.getLogger(__name__)

# Razorpay caps receipts at 40 characters
MAX_RECEIPT_LENGTH = 40


def to_minor_units(amount) -> int:
    """Convert rupees (or any two-decimal currency) into paise."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class RazorpayGateway:
    def __init__(self, key_id: str, key_secret: str, currency: str = "INR", client=None):
        self.key_id = key_id
        self.currency = currency
        self.client = client or razorpay.Client(auth=(key_id, key_secret))

    def create_order(self, amount, receipt: str,
                     notes: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
        """Create a remote order and return the gateway's order object."""
        payload = {
            "amount": to_minor_units(amount),
            "currency": self.currency,
            "receipt": receipt[:MAX_RECEIPT_LENGTH],
            "notes": dict(notes or {}),
        }
        try:
            order = self.client.order.create(payload)
        except (BadRequestError, GatewayError, ServerError) as e:
            logger.warning(f"Razorpay rejected order {payload['receipt']}: {e}")
            raise PaymentGatewayError("payment gateway rejected the order") from e
        except requests.RequestException as e:
            logger.error(f"Razorpay unreachable for order {payload['receipt']}: {e}")
            raise PaymentGatewayError("payment gateway unreachable") from e

        logger.info(f"Razorpay order {order.get('id')} created for receipt {payload['receipt']}")
        return order

    def verify_payment(self, order_id: str, payment_id: str, signature: str) -> bool:
        try:
            self.client.utility.verify_payment_signature({
                "razorpay_order_id": order_id,
                "razorpay_payment_id": payment_id,
                "razorpay_signature": signature,
            })
        except SignatureVerificationError:
            logger.warning(f"Signature mismatch for Razorpay order {order_id}")
            return False
        return True


def create_gateway(config: Mapping[str, Any]) -> Optional[RazorpayGateway]:
    """Build the gateway from config, or None when credentials are missing."""
    key_id = config.get("RAZORPAY_KEY_ID")
    key_secret = config.get("RAZORPAY_KEY_SECRET")
    if not key_id or not key_secret:
        logger.warning("Razorpay credentials not configured; payment gateway disabled")
        return None

    return RazorpayGateway(key_id, key_secret, currency=config.get("PAYMENT_CURRENCY", "INR"))

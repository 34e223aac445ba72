'''
Payment gateway port and its Razorpay implementation.
The booking core never computes amounts; it forwards what it is given.
'''
import hashlib
import hmac
import time
from decimal import Decimal
from typing import Any, Optional, Protocol

import httpx # Using httpx for async requests

from ..common.config import settings
from ..common.exceptions import InfrastructureError, ValidationError
from ..common.logger import log


class PaymentGateway(Protocol):
    async def create_order(self, amount: Decimal, currency: str, receipt: str, notes: dict[str, Any]) -> dict[str, Any]: ...

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool: ...


class RazorpayGateway:
    """
    Creates orders over the Razorpay REST API and verifies checkout signatures
    (HMAC-SHA256 of "order_id|payment_id" keyed with the account secret).
    """
    ORDERS_URL = "https://api.razorpay.com/v1/orders"

    def __init__(self, key_id: Optional[str] = None, key_secret: Optional[str] = None, timeout: float = 10.0):
        self.key_id = key_id if key_id is not None else settings.RAZORPAY_KEY_ID
        self.key_secret = key_secret if key_secret is not None else settings.RAZORPAY_KEY_SECRET
        self.timeout = timeout

    async def create_order(self, amount: Decimal, currency: str, receipt: str, notes: dict[str, Any]) -> dict[str, Any]:
        payload = {
            # Razorpay expects the smallest currency unit
            "amount": int((amount * 100).to_integral_value()),
            "currency": currency,
            "receipt": receipt,
            "notes": notes,
            "payment_capture": 1
        }
        log.info(f"Creating payment order {receipt} for {amount} {currency}")
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.ORDERS_URL, json=payload, auth=(self.key_id, self.key_secret))
                response.raise_for_status()
                return response.json()
        except httpx.RequestError as e:
            log.error(f"Payment gateway request failed for receipt {receipt}: {e}", exc_info=True)
            raise InfrastructureError("Payment gateway is currently unavailable. Please try again.")
        except httpx.HTTPStatusError as e:
            log.error(f"Payment gateway rejected order {receipt}: {e.response.status_code} - {e.response.text}")
            raise ValidationError("Payment gateway rejected the order.", details={"status_code": e.response.status_code})

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        message = f"{order_id}|{payment_id}".encode()
        expected = hmac.new(self.key_secret.encode(), message, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)


def build_receipt(student_id: Any) -> str:
    return f"receipt_stud_{str(student_id)[:8]}_{int(time.time() * 1000)}"


def get_payment_gateway() -> PaymentGateway:
    """FastAPI dependency."""
    return RazorpayGateway()

import hashlib
import hmac
import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Dict, Optional

import requests

from errors import PaymentGatewayError

logger = logging.getLogger(__name__)


@dataclass
class RazorpayConfig:
    key_id: str
    key_secret: str
    api_base: str
    currency: str
    timeout: float


def _load_config() -> RazorpayConfig:
    return RazorpayConfig(
        key_id=os.environ.get("RAZORPAY_KEY_ID", ""),
        key_secret=os.environ.get("RAZORPAY_KEY_SECRET", ""),
        api_base=os.environ.get("RAZORPAY_API_BASE", "https://api.razorpay.com/v1").rstrip("/"),
        currency=os.environ.get("PAYMENT_CURRENCY", "INR"),
        timeout=float(os.environ.get("PAYMENT_TIMEOUT_SECONDS", 15)),
    )


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    body = f"{order_id}|{payment_id}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


class RazorpayGateway:
    """Thin client for the Razorpay Orders API and checkout signature check."""

    def __init__(self, config: RazorpayConfig, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    @property
    def key_id(self) -> str:
        return self.config.key_id

    @property
    def currency(self) -> str:
        return self.config.currency

    def create_order(self, amount_minor_units: int, currency: str, receipt: str, notes: Dict[str, str]) -> str:
        if not self.config.key_id or not self.config.key_secret:
            raise PaymentGatewayError("Payment gateway is not configured")
        try:
            response = self.session.post(
                f"{self.config.api_base}/orders",
                auth=(self.config.key_id, self.config.key_secret),
                json={
                    "amount": int(amount_minor_units),
                    "currency": currency,
                    "receipt": receipt,
                    "notes": notes,
                },
                timeout=self.config.timeout,
            )
            response.raise_for_status()
            order_id = response.json().get("id")
        except (requests.RequestException, ValueError) as exc:
            logger.error("Razorpay order creation failed for %s: %s", receipt, exc)
            raise PaymentGatewayError("Failed to initiate payment") from exc
        if not order_id:
            raise PaymentGatewayError("Failed to initiate payment")
        return str(order_id)

    def verify_signature(self, order_id: str, payment_id: str, signature: str) -> bool:
        if not self.config.key_secret:
            return False
        expected = compute_signature(self.config.key_secret, order_id, payment_id)
        return hmac.compare_digest(expected, str(signature or ""))


@lru_cache
def get_payment_gateway() -> RazorpayGateway:
    return RazorpayGateway(_load_config())

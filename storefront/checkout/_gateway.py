"""
Payment gateway collaborator.

The core only opens intents; results arrive later as PaymentCallback
values whose success payloads are signed with the shared secret:

    signature = HMAC_SHA256(secret, f"{intent_id}|{payment_id}")
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import logging
import secrets
from typing import Any, Protocol

import requests

from storefront.config import Settings
from storefront.checkout._types import PaymentCallback, PaymentIntent, PaymentOutcome

logger = logging.getLogger(__name__)


def sign_payment(secret: str, intent_id: str, payment_id: str) -> str:
    body = f"{intent_id}|{payment_id}".encode()
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, intent_id: str, payment_id: str, signature: str) -> bool:
    return hmac.compare_digest(sign_payment(secret, intent_id, payment_id), signature)


class PaymentGateway(Protocol):
    async def open_intent(self, amount: int, currency: str) -> PaymentIntent:
        """Open a payment for `amount` minor units. May raise on transport failure."""
        ...


class SandboxGateway:
    """
    In-process gateway for development and tests.

        gateway = SandboxGateway(secret)
        intent = await gateway.open_intent(201100, "INR")
        callback = gateway.succeed(intent.intent_id)

    fail_next() / timeout_next() make the next open_intent raise.
    """

    def __init__(self, key_secret: str, *, key_id: str = "rzp_test_key") -> None:
        self._secret = key_secret
        self._key_id = key_id
        self._next_error: BaseException | None = None
        self.opened: list[PaymentIntent] = []

    def fail_next(self, message: str = "gateway unavailable") -> None:
        self._next_error = ConnectionError(message)

    def timeout_next(self) -> None:
        self._next_error = asyncio.TimeoutError()

    async def open_intent(self, amount: int, currency: str) -> PaymentIntent:
        if self._next_error is not None:
            error, self._next_error = self._next_error, None
            raise error
        intent = PaymentIntent(
            intent_id=f"order_{secrets.token_hex(8)}",
            client_handle=self._key_id,
            amount=amount,
            currency=currency,
        )
        self.opened.append(intent)
        return intent

    # ═══════════════════════════════════════════════════════════════════════════
    # Callbacks
    # ═══════════════════════════════════════════════════════════════════════════

    def succeed(self, intent_id: str, payment_id: str | None = None) -> PaymentCallback:
        payment_id = payment_id or f"pay_{secrets.token_hex(8)}"
        return PaymentCallback(
            intent_id=intent_id,
            outcome=PaymentOutcome.SUCCESS,
            payment_id=payment_id,
            signature=sign_payment(self._secret, intent_id, payment_id),
        )

    def decline(self, intent_id: str, reason: str = "Payment declined by bank") -> PaymentCallback:
        return PaymentCallback(intent_id=intent_id, outcome=PaymentOutcome.FAILURE, reason=reason)

    def cancel(self, intent_id: str) -> PaymentCallback:
        return PaymentCallback(intent_id=intent_id, outcome=PaymentOutcome.CANCELLED)



class RazorpayGateway:
    """
    Razorpay Orders API. Each intent is a gateway order; the shopper pays it
    in the client widget and the signed result comes back as a callback.

        gateway = RazorpayGateway(key_id, key_secret)
        intent = await gateway.open_intent(201100, "INR")  # amount in paise

    requests is blocking, so calls run in a worker thread.
    """

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        *,
        base_url: str = "https://api.razorpay.com",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self._key_id = key_id
        self._auth = (key_id, key_secret)
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http = session if session is not None else requests.Session()

    async def open_intent(self, amount: int, currency: str) -> PaymentIntent:
        data = await asyncio.to_thread(self._create_order, amount, currency)
        return PaymentIntent(
            intent_id=data["id"],
            client_handle=self._key_id,
            amount=int(data["amount"]),
            currency=data["currency"],
        )

    def _create_order(self, amount: int, currency: str) -> dict[str, Any]:
        try:
            response = self._http.post(
                f"{self._base_url}/v1/orders",
                json={
                    "amount": amount,
                    "currency": currency,
                    "receipt": f"rcpt_{secrets.token_hex(8)}",
                },
                auth=self._auth,
                timeout=self._timeout,
            )
        except requests.Timeout as e:
            raise TimeoutError(f"Razorpay did not answer in {self._timeout}s") from e

        if response.status_code != 200:
            logger.error("Razorpay order create failed (%d): %s", response.status_code, response.text)
        response.raise_for_status()
        return response.json()


def gateway_from_settings(settings: Settings) -> PaymentGateway:
    """PAYMENT_GATEWAY=razorpay talks to the real API; sandbox stays in-process."""
    match settings.payment_gateway.lower():
        case "razorpay":
            return RazorpayGateway(
                settings.payment_key_id,
                settings.payment_key_secret,
                base_url=settings.payment_api_url,
                timeout=settings.payment_timeout_seconds,
            )
        case "sandbox":
            return SandboxGateway(settings.payment_key_secret, key_id=settings.payment_key_id)
        case other:
            raise ValueError(f"Unknown payment gateway: {other}")


__all__ = (
    "PaymentGateway",
    "SandboxGateway",
    "RazorpayGateway",
    "gateway_from_settings",
    "sign_payment",
    "verify_signature",
)

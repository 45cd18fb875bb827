"""
Domain error → HTTP status + `{message, code, ...}` body.
"""

from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from storefront.errors import (
    AccountError,
    AddressInvalid,
    ConversionPartialFailure,
    EmptyCart,
    InvalidQuantity,
    InvalidTransition,
    LineNotFound,
    PaymentCancelled,
    PaymentFailed,
    PaymentFailureKind,
    PromoInvalid,
    SessionExpired,
    StorageFailed,
    Unauthenticated,
    VariantUnavailable,
)

_PAYMENT_STATUS = {
    PaymentFailureKind.DECLINED: 402,
    PaymentFailureKind.SIGNATURE: 400,
    PaymentFailureKind.TIMEOUT: 504,
    PaymentFailureKind.GATEWAY: 502,
    PaymentFailureKind.UNKNOWN_INTENT: 404,
}


class ApiError(Exception):
    """Raised by handlers; rendered by `handle_api_error`."""

    def __init__(self, status: int, body: dict[str, Any]) -> None:
        super().__init__(body.get("message"))
        self.status = status
        self.body = body

    @classmethod
    def of(cls, error: object) -> ApiError:
        status, extra = _describe(error)
        body = {"message": getattr(error, "message", str(error)), "code": type(error).__name__}
        body.update(extra)
        return cls(status, body)

    @classmethod
    def not_found(cls, message: str) -> ApiError:
        return cls(404, {"message": message, "code": "NotFound"})


def _describe(error: object) -> tuple[int, dict[str, Any]]:
    match error:
        case Unauthenticated():
            return 401, {}
        case SessionExpired(guest_id=guest_id):
            return 404, {"guestId": guest_id}
        case VariantUnavailable() | InvalidQuantity() | EmptyCart() | PaymentCancelled():
            return 400, {}
        case LineNotFound():
            return 404, {}
        case PromoInvalid(reason=reason, min_order_amount=minimum):
            extra: dict[str, Any] = {"reason": reason.value}
            if minimum is not None:
                extra["minOrderAmount"] = minimum
            return 400, extra
        case AddressInvalid(field=field):
            return 400, {"field": field}
        case PaymentFailed(kind=kind):
            return _PAYMENT_STATUS[kind], {"kind": kind.value}
        case InvalidTransition():
            return 409, {}
        case AccountError(status=status):
            return status, {}
        case StorageFailed() | ConversionPartialFailure():
            return 503, {}
        case _:
            return 500, {}


async def handle_api_error(request: Request, exc: Exception) -> JSONResponse:
    assert isinstance(exc, ApiError)
    return JSONResponse(status_code=exc.status, content=exc.body)


__all__ = ("ApiError", "handle_api_error")

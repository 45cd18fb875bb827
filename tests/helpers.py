"""Shared test helpers."""

from typing import Any

import pytest
from kungfu import Ok, Error, Result

from storefront.checkout import ShippingAddress


def ok(result: Result[Any, Any]) -> Any:
    match result:
        case Ok(value):
            return value
        case Error(e):
            pytest.fail(f"expected Ok, got Error({e!r})")


def err(result: Result[Any, Any]) -> Any:
    match result:
        case Ok(value):
            pytest.fail(f"expected Error, got Ok({value!r})")
        case Error(e):
            return e


def kochi_address(**overrides: str) -> ShippingAddress:
    fields = {
        "name": "Asha Menon",
        "phone": "9876543210",
        "line1": "12 MG Road",
        "city": "Kochi",
        "state": "Kerala",
        "postal_code": "682001",
        "country": "India",
    }
    fields.update(overrides)
    return ShippingAddress(**fields)

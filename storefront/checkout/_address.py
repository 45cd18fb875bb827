"""
Address validation — required fields, then the delivery area.
"""

from __future__ import annotations

import re

from kungfu import Result, Ok, Error

from storefront.errors import AddressInvalid
from storefront.checkout._types import DeliveryArea, ShippingAddress

_REQUIRED = ("name", "phone", "line1", "city", "state", "postal_code", "country")
_PIN = re.compile(r"^\d{6}$")


def _phone_digits(phone: str) -> str:
    digits = re.sub(r"\D", "", phone)
    if len(digits) == 12 and digits.startswith("91"):
        return digits[2:]
    return digits


def validate_address(
    address: ShippingAddress, area: DeliveryArea
) -> Result[ShippingAddress, AddressInvalid]:
    """Returns the address normalized (trimmed, canonical state/country)."""
    for field in _REQUIRED:
        if not str(getattr(address, field)).strip():
            return Error(AddressInvalid(field, f"{field.replace('_', ' ').capitalize()} is required"))

    phone = _phone_digits(address.phone)
    if len(phone) != 10:
        return Error(AddressInvalid("phone", "Please provide a valid 10-digit phone number"))

    if address.country.strip().lower() != area.country.lower():
        return Error(AddressInvalid("country", f"We currently only deliver within {area.country}."))
    if address.state.strip().lower() != area.state.lower():
        return Error(AddressInvalid(
            "state",
            f"We currently only deliver within {area.state} state. "
            f"Please provide a {area.state} address.",
        ))

    pin = address.postal_code.strip()
    if not _PIN.match(pin):
        return Error(AddressInvalid("postal_code", "PIN code must be 6 digits"))
    if not area.pin_min <= int(pin) <= area.pin_max:
        return Error(AddressInvalid("postal_code", f"We do not deliver to PIN code {pin} yet"))

    return Ok(ShippingAddress(
        name=address.name.strip(),
        phone=phone,
        line1=address.line1.strip(),
        line2=address.line2.strip(),
        city=address.city.strip(),
        state=area.state,
        postal_code=pin,
        country=area.country,
    ))


__all__ = ("validate_address",)

"""
Conversion — hand a guest's orders and cart over to a registered user.

    match await conversions.convert(guest_id, user.id):
        case Ok(report): report.orders_linked, report.dropped_lines
        case Error(e): logger.warning(...)  # retried on next login
"""

from storefront.conversion._types import ConversionStep, ConversionReport, NOTHING
from storefront.conversion._service import ConversionService

__all__ = ("ConversionStep", "ConversionReport", "NOTHING", "ConversionService")

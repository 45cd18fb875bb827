"""
HTTP — the JSON API under /api.
"""

from storefront.http._app import create_app, main
from storefront.http._errors import ApiError

__all__ = ("create_app", "main", "ApiError")

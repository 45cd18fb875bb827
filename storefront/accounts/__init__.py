"""
Accounts — registered users.

    match await accounts.register("a@b.in", "secret1", "Asha", guest_id=guest.id):
        case Ok(auth): auth.token, auth.conversion
        case Error(e): e.message
"""

from storefront.accounts._service import (
    Account,
    AuthResult,
    AccountService,
    normalize_email,
    MIN_PASSWORD_LENGTH,
)

__all__ = ("Account", "AuthResult", "AccountService", "normalize_email", "MIN_PASSWORD_LENGTH")

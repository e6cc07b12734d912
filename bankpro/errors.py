"""
Domain Errors

Every error raised by the managers carries the HTTP status it maps to;
the API layer renders them as ``{"success": false, "error": ...}``.
"""

from typing import Any, Dict, List, Optional


class BankProError(Exception):
    """Base class for all domain errors"""
    status_code = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"success": False, "error": self.message}
        body.update(self.details)
        return body


class ValidationError(BankProError):
    status_code = 400


class AuthenticationError(BankProError):
    status_code = 401


class PermissionDenied(BankProError):
    status_code = 403


class NotFoundError(BankProError):
    status_code = 404


class ConflictError(BankProError):
    status_code = 409


class AccountLockedError(BankProError):
    status_code = 423


class RateLimitExceeded(BankProError):
    status_code = 429


class MultipleAccountsError(BankProError):
    """Phone number matches more than one user; caller must pick an account"""
    status_code = 300

    def __init__(self, message: str, accounts: List[Dict[str, Any]]):
        super().__init__(
            "Multiple accounts found",
            details={
                "message": message,
                "accounts": accounts,
                "needs_account_selection": True,
            },
        )
        self.accounts = accounts

"""Typed error hierarchy for the gateway.

Every error carries a machine-readable ``code``, an internal ``message``
and a ``display_message`` that is safe to show in the app. The HTTP layer
renders them uniformly (see routers/errors.py).
"""
from typing import List, Optional


class GatewayError(Exception):
    code = "INTERNAL_SERVER_ERROR"
    status_code = 500
    default_display_message = "Something went wrong. Please try again."

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        display_message: Optional[str] = None,
    ):
        self.message = message
        if code:
            self.code = code
        self.display_message = display_message or self.default_display_message
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "error": self.code,
            "message": self.message,
            "display_message": self.display_message,
        }


class ValidationError(GatewayError):
    """Malformed or missing input. Never retried."""

    code = "VALIDATION_ERROR"
    status_code = 400
    default_display_message = "Some of the information provided is invalid."


class AuthenticationError(GatewayError):
    code = "AUTHENTICATION_REQUIRED"
    status_code = 401
    default_display_message = "Please sign in again."


class NoConnectedAccountsError(GatewayError):
    """The user has not linked any institution yet (setup gap, not a fault)."""

    code = "NO_CONNECTED_ACCOUNTS"
    status_code = 404
    default_display_message = "Please connect an account first."


class ProviderError(GatewayError):
    """A single Plaid call failed. Absorbed by the aggregation engine."""

    code = "PLAID_API_ERROR"
    status_code = 502
    default_display_message = "Unable to connect to Plaid. Please try again."


class AllAccountsFailedError(GatewayError):
    code = "ALL_ACCOUNTS_FAILED"
    status_code = 502
    default_display_message = "Unable to fetch your investment data. Please try again."

    def __init__(
        self,
        message: str,
        failures: Optional[List[ProviderError]] = None,
        display_message: Optional[str] = None,
    ):
        self.failures = list(failures or [])
        super().__init__(message, display_message=display_message)


class StorageError(GatewayError):
    code = "STORAGE_ERROR"
    status_code = 500
    default_display_message = "We couldn't reach our database. Please try again."


class ConnectionNotFoundError(GatewayError):
    code = "CONNECTION_NOT_FOUND"
    status_code = 404
    default_display_message = "That account is no longer connected."

"""
Error Taxonomy

Typed failures raised by the session and ledger components. Every error
carries a stable ``code`` and a ``message`` that is safe to show callers;
the HTTP layer and the assistant toolbox turn them into result payloads.
"""

from enum import Enum
from typing import Optional


class AuthFailureReason(Enum):
    """Why a presented credential was not accepted"""
    MISSING = "missing"      # No credential presented
    INVALID = "invalid"      # Malformed token or bad signature
    EXPIRED = "expired"      # Embedded or stored expiry has passed
    REVOKED = "revoked"      # No live session row (unknown or revoked)


AUTH_FAILURE_MESSAGES = {
    AuthFailureReason.MISSING: "Authentication required. Please login.",
    AuthFailureReason.INVALID: "Invalid token. Please login again.",
    AuthFailureReason.EXPIRED: "Session expired. Please login again.",
    AuthFailureReason.REVOKED: "Invalid session. Please login again.",
}


class KodbankError(Exception):
    """Base class for all domain errors"""
    code = "ERROR"
    default_message = "Request failed."
    
    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)
    
    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class Unauthenticated(KodbankError):
    """Credential missing, invalid, expired or revoked"""
    code = "UNAUTHENTICATED"
    
    def __init__(self, reason: AuthFailureReason, message: Optional[str] = None):
        self.reason = reason
        super().__init__(message or AUTH_FAILURE_MESSAGES[reason])
    
    def to_dict(self) -> dict:
        result = super().to_dict()
        result["reason"] = self.reason.value
        return result


class InvalidCredentials(KodbankError):
    """Unknown username or wrong password (deliberately indistinguishable)"""
    code = "INVALID_CREDENTIALS"
    default_message = "Invalid username or password"


class ValidationError(KodbankError, ValueError):
    """Caller-correctable input problem"""
    code = "INVALID_INPUT"
    default_message = "Invalid input."


class InvalidAmount(ValidationError):
    code = "INVALID_AMOUNT"
    default_message = "Invalid amount. Must be between 1 and 10,00,000."


class MissingRecipient(ValidationError):
    code = "MISSING_RECIPIENT"
    default_message = "Recipient username is required."


class SelfTransferDenied(ValidationError):
    code = "SELF_TRANSFER_DENIED"
    default_message = "Cannot transfer to yourself."


class NotFound(KodbankError):
    code = "NOT_FOUND"
    default_message = "User not found."


class RecipientNotFound(NotFound):
    code = "RECIPIENT_NOT_FOUND"
    
    def __init__(self, recipient: str):
        self.recipient = recipient
        super().__init__(f"Recipient '{recipient}' not found.")


class Conflict(KodbankError):
    code = "CONFLICT"
    default_message = "Conflicting update."


class AlreadyExists(Conflict):
    code = "ALREADY_EXISTS"
    default_message = "Username or email already exists"


class InsufficientFunds(KodbankError):
    """Business-rule denial, not a system fault"""
    code = "INSUFFICIENT_FUNDS"
    default_message = "Insufficient balance."


class TransientStoreFailure(KodbankError):
    """Store busy or locked; the whole operation rolled back and may be retried"""
    code = "TRANSIENT_STORE_FAILURE"
    default_message = "Service busy. Please try again."


class ServiceError(KodbankError):
    """Fatal failure; details stay in the logs"""
    code = "SERVICE_ERROR"
    default_message = "Request failed. Please try again."

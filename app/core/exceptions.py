# =====================================================
# FILE: app/core/exceptions.py
# Signing Workflow Error Taxonomy
# =====================================================

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    VALIDATION = "validation_error"
    AUTHORIZATION = "authorization_error"
    NOT_FOUND = "not_found"
    PACKAGE_FINALIZED = "package_finalized"
    OTP_EXPIRED = "otp_expired"
    OTP_MISMATCH = "otp_mismatch"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"
    AUTH_CONFIG = "auth_config_error"


class SigningWorkflowError(Exception):
    """
    Base error for every participant-facing failure.

    `message` is the user-facing summary, `error` the developer diagnostic.
    Handlers branch on `kind`, never on the message text.
    """

    kind: ErrorKind = ErrorKind.VALIDATION
    status_code: int = 400
    retryable: bool = False
    default_message: str = "The request could not be processed."

    def __init__(self, error: str, message: Optional[str] = None):
        super().__init__(error)
        self.error = error
        self.message = message or self.default_message

    def to_dict(self) -> dict:
        return {
            "success": False,
            "message": self.message,
            "error": self.error,
            "kind": self.kind.value,
            "retryable": self.retryable,
        }


class ValidationError(SigningWorkflowError):
    kind = ErrorKind.VALIDATION
    status_code = 400
    default_message = "Some of the submitted information is invalid."


class AuthorizationError(SigningWorkflowError):
    kind = ErrorKind.AUTHORIZATION
    status_code = 403
    default_message = "You are not allowed to perform this action."


class NotFoundError(SigningWorkflowError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404
    default_message = "The requested item could not be found."


class PackageFinalizedError(SigningWorkflowError):
    kind = ErrorKind.PACKAGE_FINALIZED
    status_code = 409
    default_message = "This document can no longer be changed. Please reload it."


class OtpExpiredError(SigningWorkflowError):
    kind = ErrorKind.OTP_EXPIRED
    status_code = 410
    default_message = "Your verification code has expired. Please request a new one."


class OtpMismatchError(SigningWorkflowError):
    kind = ErrorKind.OTP_MISMATCH
    status_code = 400
    default_message = "The verification code is incorrect. Please try again."

    def __init__(self, error: str, attempts_remaining: int = 0, message: Optional[str] = None):
        super().__init__(error, message)
        self.attempts_remaining = attempts_remaining

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["attemptsRemaining"] = self.attempts_remaining
        return data


class RateLimitedError(SigningWorkflowError):
    kind = ErrorKind.RATE_LIMITED
    status_code = 429
    retryable = True
    default_message = "Too many requests were sent. Please wait a moment and try again."


class ServiceUnavailableError(SigningWorkflowError):
    kind = ErrorKind.SERVICE_UNAVAILABLE
    status_code = 503
    retryable = True
    default_message = "The verification service is temporarily unavailable. Please try again later."


class AuthConfigError(SigningWorkflowError):
    kind = ErrorKind.AUTH_CONFIG
    status_code = 503
    default_message = "The verification service is misconfigured. Please contact the sender."

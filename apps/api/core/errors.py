"""Typed failures raised by the consent authoring and lifecycle services.

Every error carries the API error code and HTTP status it maps to, so the
transport layer can render it without inspecting messages.
"""

from __future__ import annotations

from core.contracts import ErrorCode


class ConsentError(Exception):
    code: ErrorCode = ErrorCode.INTERNAL_ERROR
    http_status: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(ConsentError):
    """Malformed or missing input; raised before any side effect."""

    code = ErrorCode.VALIDATION_ERROR
    http_status = 422


class NoIdentityError(ConsentError):
    """No wallet identity is connected to sign with."""

    code = ErrorCode.NO_IDENTITY
    http_status = 401


class SigningError(ConsentError):
    """The signer rejected or could not complete the request."""

    code = ErrorCode.SIGNING_FAILED
    http_status = 422


class SignatureRejectedError(ConsentError):
    """The boundary verifier could not bind a signature to its wallet."""

    code = ErrorCode.SIGNATURE_INVALID
    http_status = 422


class NotFoundError(ConsentError):
    code = ErrorCode.NOT_FOUND
    http_status = 404


class InvalidTransitionError(ConsentError):
    """Terminal-state violation or a lost transition race.

    Callers must re-fetch the record before retrying.
    """

    code = ErrorCode.INVALID_TRANSITION
    http_status = 409

    def __init__(self, message: str, current_status: str | None = None) -> None:
        super().__init__(message)
        self.current_status = current_status

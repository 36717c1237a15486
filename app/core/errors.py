"""
Error taxonomy. Raised anywhere below the HTTP layer, rendered by the
handlers registered in the app factory as {"error": ..., "details": ...}.
"""

from typing import Optional


class ProgressAPIError(Exception):
    status_code: int = 500

    def __init__(self, message: str, details: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_body(self) -> dict:
        body = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(ProgressAPIError):
    status_code = 400


class AuthenticationError(ProgressAPIError):
    status_code = 401


class AuthorizationError(ProgressAPIError):
    status_code = 403


class NotFoundError(ProgressAPIError):
    status_code = 404


class ConflictError(ProgressAPIError):
    status_code = 409


class UpstreamError(ProgressAPIError):
    """Persistence or query failure. Details are surfaced to the caller."""

    status_code = 500

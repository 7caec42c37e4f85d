"""Error taxonomy surfaced to HTTP callers as ``{"error": message}``."""

from typing import Optional


class ClaBotError(Exception):
    """Base error with the HTTP status it maps to."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict:
        body = {"error": self.message}
        body.update(self.details)
        return body


class ValidationError(ClaBotError):
    """Malformed payload or request."""

    status_code = 400


class AuthenticationError(ClaBotError):
    """Bad webhook signature or missing credentials."""

    status_code = 401


class ForbiddenError(ClaBotError):
    status_code = 403


class NotFoundError(ClaBotError):
    status_code = 404


class ConflictError(ClaBotError):
    status_code = 409


class MissingInstallationError(ClaBotError):
    """No GitHub App installation id is known for the organization."""

    status_code = 424


class ConfigurationError(ClaBotError):
    """Required secrets or credentials are absent."""

    status_code = 500


class UpstreamError(ClaBotError):
    """GitHub (or another dependency) failed."""

    status_code = 502

from __future__ import annotations

import math


class CertificateServiceError(Exception):
    """Base class for errors that map onto a JSON error response."""

    status_code = 500

    def __init__(self, message: str, *, retry_after: float | None = None):
        super().__init__(message)
        self.message = message
        self.retry_after = None
        if retry_after is not None:
            self.retry_after = max(1, int(math.ceil(retry_after)))

    def to_dict(self) -> dict:
        payload = {"message": self.message}
        if self.retry_after is not None:
            payload["retryAfter"] = self.retry_after
        return payload


class InvalidInputError(CertificateServiceError, ValueError):
    status_code = 400


class NotFoundError(CertificateServiceError, LookupError):
    status_code = 404


class IneligibleError(CertificateServiceError):
    """Raised when a team may not receive certificates yet."""

    status_code = 400


class RateLimitedError(CertificateServiceError):
    status_code = 429


class ServiceUnavailableError(CertificateServiceError):
    """Raised while the certificate circuit breaker is open."""

    status_code = 503


class RenderError(CertificateServiceError, RuntimeError):
    """Raised when a single certificate cannot be rendered."""

    status_code = 500

    def __init__(self, message: str, *, last_error: BaseException | None = None):
        super().__init__(message)
        self.last_error = last_error


class BatchRenderError(RenderError):
    """Raised when no member of a roster could be rendered.

    ``invalid_input`` is set when every member was rejected for bad input
    rather than a rendering fault.
    """

    def __init__(
        self,
        message: str,
        *,
        last_error: BaseException | None = None,
        invalid_input: bool = False,
    ):
        super().__init__(message, last_error=last_error)
        self.invalid_input = invalid_input


class StoreMissError(NotFoundError):
    """Raised when a download token is unknown or has expired."""

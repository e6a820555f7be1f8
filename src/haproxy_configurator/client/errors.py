"""Custom exceptions for the HAProxy Data Plane API client."""

from __future__ import annotations

from haproxy_configurator.errors import HAProxyConfiguratorError


class DataPlaneError(HAProxyConfiguratorError):
    """Base exception for all Data Plane API client errors."""


class DataPlaneRequestError(DataPlaneError):
    """Raised when a network-level error occurs (connection refused, timeout, etc.)."""

    def __init__(self, url: str, cause: Exception) -> None:
        self.url = url
        self.cause = cause
        super().__init__(f"Request to {url!r} failed: {cause}")


class DataPlaneResponseError(DataPlaneError):
    """Raised when the API returns a non-2xx HTTP status code.

    Subclasses narrow the status codes the service layer maps to distinct
    outcomes; anything else surfaces as this base type.

    Attributes:
        status_code: HTTP status code returned by the API.
        url: Request URL.
        message: Error message extracted from the API's JSON body, or the
            raw body text when it is not JSON.
    """

    def __init__(self, status_code: int, url: str, message: str = "") -> None:
        self.status_code = status_code
        self.url = url
        self.message = message
        detail = f": {message}" if message else ""
        super().__init__(f"HTTP {status_code} for {url!r}{detail}")


class NotFoundError(DataPlaneResponseError):
    """Raised on HTTP 404."""


class UnauthorizedError(DataPlaneResponseError):
    """Raised on HTTP 401 or 403."""


class BadRequestError(DataPlaneResponseError):
    """Raised on HTTP 400 or 422."""


class ConflictError(DataPlaneResponseError):
    """Raised on HTTP 409 (resource exists or transaction version mismatch)."""


class DataPlaneParseError(DataPlaneError):
    """Raised when a response body cannot be decoded as the expected JSON."""


_STATUS_ERRORS: dict[int, type[DataPlaneResponseError]] = {
    400: BadRequestError,
    401: UnauthorizedError,
    403: UnauthorizedError,
    404: NotFoundError,
    409: ConflictError,
    422: BadRequestError,
}


def error_for_status(status_code: int, url: str, message: str = "") -> DataPlaneResponseError:
    """Build the most specific :class:`DataPlaneResponseError` for *status_code*."""
    cls = _STATUS_ERRORS.get(status_code, DataPlaneResponseError)
    return cls(status_code, url, message)

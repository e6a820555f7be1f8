"""Service-boundary status codes and error translation.

Codes use the gRPC numbering so a gRPC front end can pass them straight to
``context.abort``; nothing here depends on gRPC itself.
"""

from __future__ import annotations

import enum
import logging

from haproxy_configurator.client.errors import (
    BadRequestError,
    ConflictError,
    DataPlaneError,
    NotFoundError,
    UnauthorizedError,
)
from haproxy_configurator.errors import HAProxyConfiguratorError

logger = logging.getLogger(__name__)


class StatusCode(enum.IntEnum):
    """Subset of the gRPC status codes this service produces."""

    OK = 0
    INVALID_ARGUMENT = 3
    NOT_FOUND = 5
    ALREADY_EXISTS = 6
    FAILED_PRECONDITION = 9
    INTERNAL = 13
    UNAUTHENTICATED = 16


class ServiceError(HAProxyConfiguratorError):
    """A failed service call, carrying the status code to report.

    Attributes:
        code: :class:`StatusCode` for the caller.
        message: Human-readable detail.
    """

    def __init__(self, code: StatusCode, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code.name}: {message}")


def invalid_argument(message: str) -> ServiceError:
    return ServiceError(StatusCode.INVALID_ARGUMENT, message)


def handle_dataplane_error(err: DataPlaneError) -> ServiceError:
    """Translate a Data Plane client error into a :class:`ServiceError`.

    The mapping keeps the meaning of the upstream failure: not-found,
    unauthenticated, bad-request and conflict each get their own code and
    everything else is reported as internal.
    """
    if isinstance(err, NotFoundError):
        return ServiceError(StatusCode.NOT_FOUND, f"resource not found: {err.message}")
    if isinstance(err, UnauthorizedError):
        return ServiceError(StatusCode.UNAUTHENTICATED, f"authentication failed: {err.message}")
    if isinstance(err, BadRequestError):
        return ServiceError(StatusCode.INVALID_ARGUMENT, f"bad request: {err.message}")
    if isinstance(err, ConflictError):
        return ServiceError(StatusCode.ALREADY_EXISTS, f"conflict: {err.message}")
    logger.debug("Unmapped Data Plane error", exc_info=err)
    return ServiceError(StatusCode.INTERNAL, f"internal error: {err}")

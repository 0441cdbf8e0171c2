"""Gateway error taxonomy and upstream error classification."""

import logging
import socket
from typing import Optional

from google.api_core import exceptions as gexc

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """An error surfaced to the caller as a fixed-status JSON body."""

    status_code = 500
    default_message = "An unexpected error occurred. Please try again."

    def __init__(
        self,
        message: Optional[str] = None,
        title: str = "Request processing failed",
        cause: Optional[BaseException] = None,
    ):
        self.user_message = message or self.default_message
        self.title = title
        self.cause = cause
        super().__init__(self.user_message)

    def to_body(self, include_detail: bool = False) -> dict:
        body = {"error": self.title, "message": self.user_message}
        if include_detail and self.cause is not None:
            body["detail"] = f"{type(self.cause).__name__}: {self.cause}"
        return body


class InvalidInput(GatewayError):
    status_code = 400
    default_message = "Please check your input and try again."


class InvalidArgument(GatewayError):
    status_code = 400
    default_message = "Invalid request. Please check your input."


class Unauthenticated(GatewayError):
    status_code = 401
    default_message = "Authentication failed. Please check your credentials."


class QuotaExceeded(GatewayError):
    status_code = 429
    default_message = "Service quota exceeded. Please try again later."


class ServiceUnavailable(GatewayError):
    status_code = 503
    default_message = "Service temporarily unavailable. Please try again later."


class Internal(GatewayError):
    status_code = 500


class StorageUnavailable(Exception):
    """Object storage is not configured or the upload failed."""


_UNAVAILABLE = (
    gexc.ServiceUnavailable,
    gexc.DeadlineExceeded,
    ConnectionError,
    socket.gaierror,
    TimeoutError,
)
_UNAUTHENTICATED = (gexc.Unauthenticated, gexc.PermissionDenied, gexc.Unauthorized, gexc.Forbidden)
_QUOTA = (gexc.ResourceExhausted, gexc.TooManyRequests)
_INVALID = (gexc.InvalidArgument, gexc.BadRequest)


def classify_upstream(exc: BaseException, title: str, context: str = "") -> GatewayError:
    """Map an upstream client-library error onto the gateway taxonomy.

    The full error is logged here; only the fixed user message travels on.
    """
    if isinstance(exc, GatewayError):
        return exc

    logger.error("%s error: %r", context or title, exc, exc_info=exc)

    if isinstance(exc, _UNAVAILABLE):
        return ServiceUnavailable(title=title, cause=exc)
    if isinstance(exc, _UNAUTHENTICATED):
        return Unauthenticated(title=title, cause=exc)
    if isinstance(exc, _QUOTA) or "quota" in str(exc).lower():
        return QuotaExceeded(title=title, cause=exc)
    if isinstance(exc, _INVALID):
        return InvalidArgument(title=title, cause=exc)
    return Internal(title=title, cause=exc)

"""Client-side error categories and user-facing messages."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import httpx

logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]


class ErrorType(str, Enum):
    NETWORK = "NETWORK_ERROR"
    AUTH = "AUTH_ERROR"
    MICROPHONE = "MICROPHONE_ERROR"
    AUDIO = "AUDIO_ERROR"
    API = "API_ERROR"
    FIREBASE = "FIREBASE_ERROR"
    UNKNOWN = "UNKNOWN_ERROR"


@dataclass(frozen=True)
class ErrorInfo:
    title: str
    message: str
    user_message: str


ERROR_MESSAGES = {
    ErrorType.NETWORK: ErrorInfo(
        "Connection Error",
        "Please check your internet connection and try again.",
        "Network connection issue. Please try again.",
    ),
    ErrorType.AUTH: ErrorInfo(
        "Authentication Error",
        "There was an issue with authentication.",
        "Please sign in again.",
    ),
    ErrorType.MICROPHONE: ErrorInfo(
        "Microphone Access Denied",
        "Microphone permission was denied or not available.",
        "Please allow microphone access to use voice features.",
    ),
    ErrorType.AUDIO: ErrorInfo(
        "Audio Error",
        "There was an issue with audio playback.",
        "Audio playback failed. Please try again.",
    ),
    ErrorType.API: ErrorInfo(
        "Service Error",
        "The AI service is temporarily unavailable.",
        "VIBE is having trouble responding. Please try again.",
    ),
    ErrorType.FIREBASE: ErrorInfo(
        "Data Error",
        "There was an issue saving your data.",
        "Unable to save your conversation. Please try again.",
    ),
    ErrorType.UNKNOWN: ErrorInfo(
        "Unexpected Error",
        "An unexpected error occurred.",
        "Something went wrong. Please try again.",
    ),
}

RATE_LIMIT_MESSAGES = ErrorInfo(
    "Rate Limit Exceeded",
    "Too many requests. Please wait a moment before trying again.",
    "Please wait a moment before sending another message.",
)

QUOTA_MESSAGES = ErrorInfo(
    "Service Limit Reached",
    "The AI service has reached its daily limit.",
    "VIBE is temporarily unavailable due to high usage.",
)


class OfflineError(ConnectionError):
    """The connectivity check reported no network."""

    def __init__(self, message: str = "No internet connection"):
        super().__init__(message)


class MicrophoneError(RuntimeError):
    """The capture device could not be opened or failed mid-recording."""


class ApiError(Exception):
    """A non-2xx response from the gateway."""

    def __init__(self, message: str, status: int, data: Optional[dict] = None):
        super().__init__(message)
        self.status = status
        self.data = data or {}


def error_from_response(response: httpx.Response) -> ApiError:
    try:
        data = response.json()
    except ValueError:
        data = {"message": f"HTTP {response.status_code}"}
    if not isinstance(data, dict):
        data = {"message": str(data)}
    return ApiError(data.get("message") or f"HTTP {response.status_code}", response.status_code, data)


def _status(error: BaseException) -> Optional[int]:
    status = getattr(error, "status", None)
    return status if isinstance(status, int) else None


def get_error_type(error: Optional[BaseException]) -> ErrorType:
    if error is None:
        return ErrorType.UNKNOWN

    message = str(error).lower()
    code = str(getattr(error, "code", "") or "").lower()
    status = _status(error)

    if isinstance(error, (httpx.TransportError, ConnectionError)) or any(
        word in message for word in ("network", "fetch", "connection")
    ):
        return ErrorType.NETWORK
    if isinstance(error, MicrophoneError):
        return ErrorType.MICROPHONE
    if "auth" in message or "permission" in message or "auth" in code:
        return ErrorType.AUTH
    if "microphone" in message or "permission denied" in message:
        return ErrorType.MICROPHONE
    if "audio" in message or "playback" in message:
        return ErrorType.AUDIO
    if "firebase" in message or "firestore" in message or "firestore" in code:
        return ErrorType.FIREBASE
    if "api" in message or "service" in message or (status is not None and status >= 400):
        return ErrorType.API
    return ErrorType.UNKNOWN


def get_error_message(error: BaseException) -> ErrorInfo:
    status = _status(error)
    if status == 429:
        return RATE_LIMIT_MESSAGES
    if status == 503 or "quota" in str(error).lower():
        return QUOTA_MESSAGES
    return ERROR_MESSAGES[get_error_type(error)]


def log_error(error: BaseException, context: str = "") -> None:
    logger.error(
        "VIBE error [%s] type=%s status=%s: %s",
        context,
        get_error_type(error).value,
        _status(error),
        error,
        exc_info=error,
    )


def handle_error(error: BaseException, context: str = "", notify: Optional[Notifier] = None) -> ErrorInfo:
    """Log `error` and, when a notifier is given, surface the user message."""
    info = get_error_message(error)
    log_error(error, context)
    if notify is not None:
        notify("error", info.user_message)
    return info

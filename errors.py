"""
Caller-facing error taxonomy for voice turns.

Every failure of a turn ends up as exactly one TurnError, which carries the
HTTP status, the stable ``code`` the client switches on, and the session id
the client should keep using.
"""

import traceback
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Stable ``code`` values returned in error payloads."""

    NO_AUDIO_FILE = "NO_AUDIO_FILE"
    INVALID_FILE_TYPE = "INVALID_FILE_TYPE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    UNEXPECTED_FILE = "UNEXPECTED_FILE"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    SERVICE_STARTING = "SERVICE_STARTING"
    STT_ERROR = "STT_ERROR"
    EMPTY_TRANSCRIPTION = "EMPTY_TRANSCRIPTION"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    AUTH_ERROR = "AUTH_ERROR"
    RATE_LIMITED = "RATE_LIMITED"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    UNHANDLED_ERROR = "UNHANDLED_ERROR"
    NOT_FOUND = "NOT_FOUND"


class ProviderError(Exception):
    """Raised by a capability provider adapter (STT, LLM, TTS)."""
    pass


class TurnError(Exception):
    """A turn outcome that maps directly onto an HTTP error response."""

    def __init__(
        self,
        code: ErrorCode,
        status_code: int,
        message: str,
        session_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.message = message
        self.session_id = session_id
        self.cause = cause

    @property
    def retriable(self) -> bool:
        return self.status_code in (429, 503)

    def to_payload(self, include_details: bool = False) -> Dict[str, Any]:
        """Build the JSON body; internals only when ``include_details`` is set."""
        payload: Dict[str, Any] = {
            "error": self.message,
            "code": self.code.value,
        }
        if self.session_id:
            payload["sessionId"] = self.session_id

        if include_details:
            source = self.cause or self
            payload["details"] = str(source)
            payload["stack"] = "".join(
                traceback.format_exception(type(source), source, source.__traceback__)
            )

        return payload


# Ordered: the first matching rule wins.
_CLASSIFICATION_RULES = [
    (("quota", "limit"), ErrorCode.QUOTA_EXCEEDED, 429,
     "Service temporarily unavailable due to high demand"),
    (("network", "timeout"), ErrorCode.SERVICE_UNAVAILABLE, 503,
     "Service temporarily unavailable"),
    (("authentication", "unauthorized"), ErrorCode.AUTH_ERROR, 401,
     "Authentication failed"),
    (("not initialized",), ErrorCode.SERVICE_STARTING, 503,
     "Service starting up. Please try again in a moment."),
]


def classify_failure(error: BaseException, session_id: Optional[str] = None) -> TurnError:
    """
    Map an arbitrary provider or pipeline failure onto the error taxonomy.

    The exception type name is inspected together with its message so that
    transport errors with terse messages (e.g. ``ReadTimeout``) still classify.
    """
    if isinstance(error, TurnError):
        if error.session_id is None:
            error.session_id = session_id
        return error

    haystack = f"{type(error).__name__} {error}".lower()

    for keywords, code, status_code, message in _CLASSIFICATION_RULES:
        if any(keyword in haystack for keyword in keywords):
            return TurnError(code, status_code, message, session_id=session_id, cause=error)

    return TurnError(
        ErrorCode.INTERNAL_ERROR,
        500,
        "An internal server error occurred",
        session_id=session_id,
        cause=error,
    )

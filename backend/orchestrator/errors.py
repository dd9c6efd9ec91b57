"""
Error taxonomy and session policy.

Purpose:
- Centralize the mapping from collaborator failures to user-facing
  messages and to the recoverable/fatal session policy
- Keep reducer pure
- Keep collaborators free of policy: they report *what* failed,
  the orchestrator decides *what happens next*

This module contains NO timers, NO async, NO side effects.
"""
from __future__ import annotations

from enum import Enum


# =============================================================================
# Error Kinds
# =============================================================================

class ErrorKind(str, Enum):
    """
    Classified failure kinds reported by collaborators.

    Lookup kinds:
        LOOKUP_NOT_FOUND       word has no dictionary entry
        LOOKUP_NETWORK         transport failure or unexpected HTTP status
        LOOKUP_INVALID_INPUT   word could not be turned into a request
        LOOKUP_UNAVAILABLE     service answered without usable data
        LOOKUP_DECODE          payload did not have the expected shape

    Capture kinds:
        CAPTURE_NOT_AUTHORIZED          microphone permission denied
        CAPTURE_MICROPHONE_UNAVAILABLE  no usable input device
        CAPTURE_ENGINE_UNAVAILABLE      recognizer/engine could not run
        CAPTURE_SESSION_CONFIG          audio session could not be configured
        CAPTURE_RECOGNITION_FAILED      mid-stream recognition failure

    UNKNOWN:
        Anything unclassified. Treated as recoverable.
    """

    LOOKUP_NOT_FOUND = "lookup_not_found"
    LOOKUP_NETWORK = "lookup_network"
    LOOKUP_INVALID_INPUT = "lookup_invalid_input"
    LOOKUP_UNAVAILABLE = "lookup_unavailable"
    LOOKUP_DECODE = "lookup_decode"

    CAPTURE_NOT_AUTHORIZED = "capture_not_authorized"
    CAPTURE_MICROPHONE_UNAVAILABLE = "capture_microphone_unavailable"
    CAPTURE_ENGINE_UNAVAILABLE = "capture_engine_unavailable"
    CAPTURE_SESSION_CONFIG = "capture_session_config"
    CAPTURE_RECOGNITION_FAILED = "capture_recognition_failed"

    UNKNOWN = "unknown"


# =============================================================================
# Policy
# =============================================================================

_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.LOOKUP_NOT_FOUND: "Word not found in dictionary",
    ErrorKind.LOOKUP_NETWORK: "Check internet connection",
    ErrorKind.LOOKUP_INVALID_INPUT: "Dictionary service unavailable",
    ErrorKind.LOOKUP_UNAVAILABLE: "Dictionary service unavailable",
    ErrorKind.LOOKUP_DECODE: "Dictionary service unavailable",
    ErrorKind.CAPTURE_NOT_AUTHORIZED: "Microphone access required. Please enable in Settings.",
    ErrorKind.CAPTURE_MICROPHONE_UNAVAILABLE: "Microphone not accessible",
    ErrorKind.CAPTURE_ENGINE_UNAVAILABLE: "Speech recognition unavailable",
    ErrorKind.CAPTURE_SESSION_CONFIG: "Audio system error",
    ErrorKind.CAPTURE_RECOGNITION_FAILED: "Speech recognition failed",
    ErrorKind.UNKNOWN: "An unexpected error occurred",
}

_FATAL: frozenset[ErrorKind] = frozenset({
    ErrorKind.CAPTURE_NOT_AUTHORIZED,
    ErrorKind.CAPTURE_MICROPHONE_UNAVAILABLE,
    ErrorKind.CAPTURE_ENGINE_UNAVAILABLE,
    ErrorKind.CAPTURE_SESSION_CONFIG,
})


def user_message(kind: ErrorKind) -> str:
    """User-facing message shown in the Error state."""
    return _MESSAGES.get(kind, _MESSAGES[ErrorKind.UNKNOWN])


def is_fatal(kind: ErrorKind) -> bool:
    """
    True if the session must stop outright.

    Fatal:
    - capture not authorized / microphone / engine / audio session

    Everything else (every lookup failure, mid-stream recognition
    failure, unclassified errors) auto-recovers to listening.
    """
    return kind in _FATAL


def classify_exception(exc: BaseException) -> ErrorKind:
    """
    Map an exception raised by a collaborator to an ErrorKind.

    Collaborators raise exceptions carrying an explicit `kind`
    (see adapters.errors). Anything else is UNKNOWN.
    """
    kind = getattr(exc, "kind", None)
    if isinstance(kind, ErrorKind):
        return kind
    return ErrorKind.UNKNOWN

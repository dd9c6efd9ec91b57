"""
Unified event definitions for the orchestrator reducer.

Rules:
- Events describe facts that have occurred.
- Events carry data only (no behavior).
- All reducer decisions are based on these events.
- No clocks, no timers, no async, no side effects.

Events produced by an asynchronous operation carry the token of the
operation that produced them (run_id or generation) for stale gating.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from dictionary.models import Definition
from orchestrator.enums.service import Service
from orchestrator.errors import ErrorKind


# =============================================================================
# Event Type Enumeration
# =============================================================================

class EventType(str, Enum):
    """
    Canonical event types understood by the reducer.

    Every (state, event_type) pair must be explicitly handled
    or explicitly ignored by the reducer.
    """

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------
    SESSION_STARTED = "SESSION_STARTED"
    SESSION_ENDED = "SESSION_ENDED"

    # ------------------------------------------------------------------
    # Caller control
    # ------------------------------------------------------------------
    START = "START"
    STOP = "STOP"

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------
    CAPTURE_STARTED = "CAPTURE_STARTED"
    CAPTURE_FAILED = "CAPTURE_FAILED"
    CAPTURE_ERROR = "CAPTURE_ERROR"
    TRANSCRIPT_UPDATE = "TRANSCRIPT_UPDATE"
    WORD_DETECTED = "WORD_DETECTED"

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    LOOKUP_SUCCEEDED = "LOOKUP_SUCCEEDED"
    LOOKUP_FAILED = "LOOKUP_FAILED"

    # ------------------------------------------------------------------
    # Speech output
    # ------------------------------------------------------------------
    SPEECH_FINISHED = "SPEECH_FINISHED"

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------
    PLAYBACK_CHECK = "PLAYBACK_CHECK"
    READING_GRACE_ELAPSED = "READING_GRACE_ELAPSED"
    ERROR_RECOVERY_ELAPSED = "ERROR_RECOVERY_ELAPSED"
    INTERRUPTION_RESUME_ELAPSED = "INTERRUPTION_RESUME_ELAPSED"

    # ------------------------------------------------------------------
    # Interruptions (app lifecycle / audio environment)
    # ------------------------------------------------------------------
    APP_WILL_SUSPEND = "APP_WILL_SUSPEND"
    APP_DID_RESUME = "APP_DID_RESUME"
    APP_DID_ENTER_BACKGROUND = "APP_DID_ENTER_BACKGROUND"
    AUDIO_FOCUS_LOST = "AUDIO_FOCUS_LOST"
    AUDIO_FOCUS_REGAINED = "AUDIO_FOCUS_REGAINED"
    OUTPUT_DEVICE_REMOVED = "OUTPUT_DEVICE_REMOVED"


# =============================================================================
# Base Event
# =============================================================================

@dataclass(frozen=True)
class Event:
    """
    Base event type.

    All events must specify:
    - event_type: discriminant
    - ts_ms: timestamp provided by the source (or fake in tests)
    """

    event_type: EventType
    ts_ms: int


# =============================================================================
# Service-Scoped Events
# =============================================================================

@dataclass(frozen=True)
class ServiceEvent(Event):
    """
    Base class for events scoped to a versioned external service.

    The reducer MUST ignore events whose run_id does not match the
    currently active run for that service.
    """

    service: Service
    run_id: int


# =============================================================================
# Session Events
# =============================================================================

@dataclass(frozen=True)
class SessionStarted(Event):
    """Transport session opened (observability only)."""
    session_id: str


@dataclass(frozen=True)
class SessionEnded(Event):
    """Transport session closed (observability only)."""
    session_id: str


# =============================================================================
# Caller Control Events
# =============================================================================

@dataclass(frozen=True)
class Start(Event):
    """Caller requested a study session."""


@dataclass(frozen=True)
class Stop(Event):
    """Caller requested the study session to end."""


# =============================================================================
# Capture Events
# =============================================================================

@dataclass(frozen=True)
class CaptureStarted(ServiceEvent):
    """Capture start() completed; transcripts will follow."""


@dataclass(frozen=True)
class CaptureFailed(ServiceEvent):
    """Capture start() failed."""
    kind: ErrorKind
    detail: str | None = None


@dataclass(frozen=True)
class CaptureError(ServiceEvent):
    """
    Capture failed after it was running.

    Covers mid-stream recognition failures and the terminal
    "engine became unavailable" signal.
    """
    kind: ErrorKind
    detail: str | None = None


@dataclass(frozen=True)
class TranscriptUpdate(ServiceEvent):
    """
    Running, amendable transcript for the current utterance.

    The runtime feeds it to the word extractor; the reducer only
    logs it.
    """
    text: str
    is_final: bool = False


@dataclass(frozen=True)
class WordDetected(ServiceEvent):
    """A new word was extracted from the transcript of capture run_id."""
    word: str


# =============================================================================
# Lookup Events
# =============================================================================

@dataclass(frozen=True)
class LookupSucceeded(ServiceEvent):
    """Lookup for the active run returned a definition."""
    word: str
    definition: Definition


@dataclass(frozen=True)
class LookupFailed(ServiceEvent):
    """Lookup for the active run failed."""
    word: str
    kind: ErrorKind
    detail: str | None = None


# =============================================================================
# Speech Events
# =============================================================================

@dataclass(frozen=True)
class SpeechFinished(ServiceEvent):
    """
    Playback for run_id completed (push notification).

    Optional: the playback poll covers collaborators that never send it.
    """


# =============================================================================
# Timer Events
# =============================================================================

@dataclass(frozen=True)
class PlaybackCheck(Event):
    """
    Return-to-listening poll fired.

    is_speaking is sampled by the runtime at fire time.
    """
    run_id: int
    is_speaking: bool


@dataclass(frozen=True)
class ReadingGraceElapsed(Event):
    """Reading grace period after playback of speech run_id elapsed."""
    run_id: int


@dataclass(frozen=True)
class ErrorRecoveryElapsed(Event):
    """Recoverable-error delay elapsed for session generation."""
    generation: int


@dataclass(frozen=True)
class InterruptionResumeElapsed(Event):
    """Post-interruption settle delay elapsed for session generation."""
    generation: int


# =============================================================================
# Interruption Events
# =============================================================================

@dataclass(frozen=True)
class AppWillSuspend(Event):
    """App is about to become inactive (call overlay, control center)."""


@dataclass(frozen=True)
class AppDidResume(Event):
    """App became active again."""


@dataclass(frozen=True)
class AppDidEnterBackground(Event):
    """App moved to the background."""


@dataclass(frozen=True)
class AudioFocusLost(Event):
    """Another audio client took the device (e.g., a phone call)."""


@dataclass(frozen=True)
class AudioFocusRegained(Event):
    """Audio focus returned."""
    should_resume: bool = False


@dataclass(frozen=True)
class OutputDeviceRemoved(Event):
    """The previous output route became unavailable (headphones unplugged)."""

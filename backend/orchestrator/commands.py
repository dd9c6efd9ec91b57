"""
Side-effect command definitions for the orchestrator.

Rules:
- Commands are declarative requests for side effects.
- Commands are emitted by the reducer and executed by the runtime.
- No behavior, no async, no I/O, no clocks.
- Reducer logic remains pure and deterministic.
Invariant:
    - All concrete Command subclasses MUST be frozen dataclasses.
    - Commands are immutable value objects emitted by the reducer.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from orchestrator.enums.timer import TimerKind
from orchestrator.events import EventType

# =============================================================================
# Command Type Enumeration
# =============================================================================

class CommandType(str, Enum):
    """
    Canonical command types emitted by the reducer.

    These are stable discriminants used for logging, replay,
    and runtime dispatch.
    """

    # Capture
    START_CAPTURE = "START_CAPTURE"
    STOP_CAPTURE = "STOP_CAPTURE"
    RESET_WORD_EXTRACTOR = "RESET_WORD_EXTRACTOR"

    # Lookup
    START_LOOKUP = "START_LOOKUP"

    # Speech
    SPEAK = "SPEAK"
    STOP_SPEECH = "STOP_SPEECH"

    # Timers
    START_TIMER = "START_TIMER"
    CANCEL_TIMER = "CANCEL_TIMER"
    CANCEL_ALL_TIMERS = "CANCEL_ALL_TIMERS"

    # Observable state
    PUBLISH_STATE = "PUBLISH_STATE"

    # Observability
    LOG_EVENT = "LOG_EVENT"


# =============================================================================
# Base Command
# =============================================================================

class Command:
    """
    Base command type.

    command_type is an explicit discriminant and must never be inferred
    from Python type identity.
    """

    command_type: CommandType


# =============================================================================
# Capture Commands
# =============================================================================

@dataclass(frozen=True)
class StartCapture(Command):
    """
    Request to start audio capture + recognition.

    The runtime must emit CaptureStarted or CaptureFailed for run_id.
    Permission is requested lazily by the capture collaborator.
    """
    run_id: int
    command_type: CommandType = CommandType.START_CAPTURE


@dataclass(frozen=True)
class StopCapture(Command):
    """Request to stop capture. Idempotent."""
    run_id: int
    command_type: CommandType = CommandType.STOP_CAPTURE


@dataclass(frozen=True)
class ResetWordExtractor(Command):
    """Clear the pending-words set of the word extractor."""
    command_type: CommandType = CommandType.RESET_WORD_EXTRACTOR


# =============================================================================
# Lookup Commands
# =============================================================================

@dataclass(frozen=True)
class StartLookup(Command):
    """
    Request a dictionary lookup.

    The runtime must emit exactly one LookupSucceeded or LookupFailed
    for run_id.
    """
    run_id: int
    word: str
    command_type: CommandType = CommandType.START_LOOKUP


# =============================================================================
# Speech Commands
# =============================================================================

@dataclass(frozen=True)
class Speak(Command):
    """
    Request to read a definition aloud.

    Speaking replaces any in-progress speech.
    """
    run_id: int
    text: str
    command_type: CommandType = CommandType.SPEAK


@dataclass(frozen=True)
class StopSpeech(Command):
    """Request to halt playback immediately. Idempotent."""
    run_id: int
    command_type: CommandType = CommandType.STOP_SPEECH


# =============================================================================
# Timer Commands
# =============================================================================

@dataclass(frozen=True)
class StartTimer(Command):
    """
    Request to arm a keyed timer.

    Arming a kind replaces any timer already armed for that kind.
    On expiration, the runtime must inject the specified timeout event
    carrying `token` (a run_id or a session generation).
    """
    kind: TimerKind
    duration_ms: int
    timeout_event_type: EventType
    token: int
    command_type: CommandType = CommandType.START_TIMER


@dataclass(frozen=True)
class CancelTimer(Command):
    """Request to cancel a previously armed timer. No-op if not armed."""
    kind: TimerKind
    command_type: CommandType = CommandType.CANCEL_TIMER


@dataclass(frozen=True)
class CancelAllTimers(Command):
    """Cancel every armed timer."""
    command_type: CommandType = CommandType.CANCEL_ALL_TIMERS


# =============================================================================
# Observable State Commands
# =============================================================================

@dataclass(frozen=True)
class PublishState(Command):
    """Request that the runtime publish the current StudyState to observers."""
    command_type: CommandType = CommandType.PUBLISH_STATE


# =============================================================================
# Observability Commands
# =============================================================================

@dataclass(frozen=True)
class LogEvent(Command):
    """Request to emit a structured observability event."""
    event: dict[str, Any]
    command_type: CommandType = CommandType.LOG_EVENT

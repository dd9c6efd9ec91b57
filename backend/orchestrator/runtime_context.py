"""
Runtime execution context.

Provides Runtime with live access to session-owned imperative resources
needed for command execution and side effects (collaborators, queues).

This module contains:
- Narrow Protocols (capabilities, not implementations)
- Zero orchestration logic
- Zero state mutation
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from dictionary.models import Definition
from session.connection_status import ConnectionStatus

if TYPE_CHECKING:
    from session.voice_session import VoiceSession


# ---------------------------------------------------------------------
# Collaborator Protocols
# ---------------------------------------------------------------------

@runtime_checkable
class CaptureProtocol(Protocol):
    """
    Microphone capture + recognition.

    start() raises adapters.errors.CaptureError on failure. Transcript
    updates and mid-stream failures are emitted as events for run_id.
    """

    async def start(self, run_id: int) -> None: ...
    async def stop(self) -> None: ...
    async def send_audio(self, pcm_bytes: bytes) -> None: ...


@runtime_checkable
class PermissionProtocol(Protocol):
    async def request_permissions(self) -> bool: ...


@runtime_checkable
class LookupProtocol(Protocol):
    """fetch() returns a Definition or raises adapters.errors.LookupFailure."""

    async def fetch(self, word: str) -> Definition: ...


@runtime_checkable
class SpeechProtocol(Protocol):
    """
    Speech output.

    speak() replaces any in-progress speech and returns once playback
    is scheduled; stop() is idempotent.
    """

    async def speak(self, run_id: int, text: str) -> None: ...
    async def stop(self) -> None: ...
    def is_speaking(self) -> bool: ...


# ---------------------------------------------------------------------
# Audio Queue Protocols
# ---------------------------------------------------------------------

class AudioFrameProtocol(Protocol):
    sequence_num: int
    pcm_bytes: bytes


class AudioInQueueProtocol(Protocol):
    def dequeue(self) -> AudioFrameProtocol | None: ...
    def depth_seconds(self) -> float: ...
    def clear(self) -> None: ...


# ---------------------------------------------------------------------
# Runtime Execution Context
# ---------------------------------------------------------------------

class RuntimeExecutionContext:
    """
    Imperative execution context for Runtime.

    This object provides *live views* into session-owned resources
    so Runtime does not need to synchronize or cache anything.

    Runtime is allowed to:
    - Call collaborators
    - Read queues
    - Observe connection state

    Runtime is NOT allowed to:
    - Mutate session state directly
    - Perform orchestration decisions
    """

    def __init__(self, session: VoiceSession) -> None:
        self.session = session

    # ----------------------------
    # Session metadata
    # ----------------------------

    @property
    def session_id(self) -> str:
        return self.session.session_id

    @property
    def connection_status(self) -> ConnectionStatus:
        return self.session.connection_status

    # ----------------------------
    # Collaborators
    # ----------------------------

    @property
    def capture(self) -> CaptureProtocol | None:
        return self.session.capture_adapter

    @property
    def lookup(self) -> LookupProtocol | None:
        return self.session.lookup_adapter

    @property
    def speech(self) -> SpeechProtocol | None:
        return self.session.speech_adapter

    # ----------------------------
    # Audio ingress
    # ----------------------------

    @property
    def audio_in_queue(self) -> AudioInQueueProtocol | None:
        # AudioFrameQueue already conforms structurally.
        q: Any = self.session.audio_in_queue
        return q

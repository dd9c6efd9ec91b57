"""
Speech output adapter contract.

Key invariants:
- Run IDs are owned by the orchestrator; the adapter tags every audio
  frame and completion event with the run_id passed to speak().
- speak() replaces any in-progress speech and returns once synthesis is
  scheduled (it never waits for playback).
- Completion is reported as a SpeechFinished(run_id) event; the
  orchestrator also polls is_speaking().
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class SpeechAdapter(ABC):
    """
    Abstract interface for text-to-speech playback.

    Note: emit_event callback is synchronous (Runtime.submit).

    Non-responsibilities:
    - No timers owned by the reducer (reading grace, playback checks)
    - No state machine logic
    - No retries
    """

    @abstractmethod
    async def speak(self, run_id: int, text: str) -> None:
        """Start speaking text for run_id, cutting any in-progress speech."""
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> None:
        """
        Cut speech immediately.

        MUST be idempotent. No SpeechFinished is emitted for a stopped run.
        """
        raise NotImplementedError

    @abstractmethod
    def is_speaking(self) -> bool:
        """True while audio is being produced or is still playing."""
        raise NotImplementedError

    def on_playback_done(self, run_id: int) -> None:
        """Client finished playing the audio of run_id. Optional."""
        return None

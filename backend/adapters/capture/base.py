"""
Capture adapter contract.

This module defines the *interface only*: no word extraction, timers,
retries, or orchestration decisions live here.

Key invariants:
- Run IDs are owned by the orchestrator. Adapters never generate or
  mutate run IDs; every emitted event carries the run_id passed to start().
- The adapter emits events (TranscriptUpdate, CaptureError); it does not
  call the reducer or make state transitions.
- start() failures are raised as adapters.errors.CaptureError with a
  classified kind; failures after start() are emitted as events.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


class CaptureAdapter(ABC):
    """
    Abstract interface for microphone capture + speech recognition.

    Note: emit_event callback is synchronous (Runtime.submit).

    Implementations are responsible for:
    - Requesting microphone permission lazily on start()
    - Producing a running, amendable transcript per utterance with a
      final/non-final flag
    - Reporting mid-stream recognition failures and loss of the engine

    Non-responsibilities:
    - No state machine logic (IDLE/LISTENING/etc.)
    - No word detection (the orchestrator's word extractor owns it)
    - No direct interaction with the client UI beyond microphone control
    """

    @abstractmethod
    async def start(self, run_id: int) -> None:
        """
        Start capture for run_id.

        Raises:
            CaptureError: CAPTURE_NOT_AUTHORIZED, CAPTURE_MICROPHONE_UNAVAILABLE,
                CAPTURE_ENGINE_UNAVAILABLE or CAPTURE_SESSION_CONFIG.
        """
        raise NotImplementedError

    @abstractmethod
    async def stop(self) -> None:
        """
        Stop capture.

        Contract:
        - MUST be idempotent; stopping an inactive adapter is a no-op.
        - After stop() returns no further events are emitted for the
          stopped run.
        """
        raise NotImplementedError

    @abstractmethod
    async def send_audio(self, pcm_bytes: bytes) -> None:
        """
        Provide one PCM16 20ms frame of microphone audio.

        Frames arriving while capture is stopped are dropped.
        """
        raise NotImplementedError

"""
Study session container.

- Owns connection status (mutable, gateway-controlled)
- Holds the session's collaborators, audio queues and runtime
- Buffers outbound control messages for the gateway flush task
- Owned and mutated by SessionGateway
- NOT a state machine
- Contains no orchestration logic
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any

from collections import deque

from audio.queues import AudioFrameQueue
from constants import INGEST_AUDIO_Q_MAX_S, SPEECH_AUDIO_Q_MAX_S
from session.connection_status import ConnectionStatus


# ---------------------------------------------------------------------
# VoiceSession
# ---------------------------------------------------------------------


@dataclass
class VoiceSession:
    """Mutable runtime container for a single study session."""

    # ------------------------------------------------------------------
    # Identity / lifecycle
    # ------------------------------------------------------------------

    session_id: str
    created_at: float = field(default_factory=time.time)

    # ------------------------------------------------------------------
    # Connection / gateway-controlled state
    # ------------------------------------------------------------------

    connection_status: ConnectionStatus = ConnectionStatus.DOWN
    websocket: Any = None  # Type: fastapi.WebSocket in practice

    # ------------------------------------------------------------------
    # Runtime (executes commands + owns authoritative state)
    # ------------------------------------------------------------------

    runtime: Any = None  # Type: orchestrator.runtime.Runtime

    # ------------------------------------------------------------------
    # Audio queues
    # ------------------------------------------------------------------

    audio_in_queue: AudioFrameQueue = field(
        default_factory=lambda: AudioFrameQueue(max_depth_s=INGEST_AUDIO_Q_MAX_S)
    )
    audio_out_queue: AudioFrameQueue = field(
        default_factory=lambda: AudioFrameQueue(max_depth_s=SPEECH_AUDIO_Q_MAX_S)
    )

    # ------------------------------------------------------------------
    # Collaborators (concrete, side-effectful)
    # ------------------------------------------------------------------

    capture_adapter: Any = None
    lookup_adapter: Any = None
    speech_adapter: Any = None
    permissions: Any = None  # Type: session.permissions.PermissionBroker
    interruptions: Any = None  # Type: orchestrator.interruptions.InterruptionCoordinator

    # ------------------------------------------------------------------
    # Initialization
    # ------------------------------------------------------------------

    def __post_init__(self) -> None:
        self._control_out: deque[dict[str, Any]] = deque()
        self._outbound_ready = asyncio.Event()

    # ------------------------------------------------------------------
    # Wiring helpers (called by SessionGateway)
    # ------------------------------------------------------------------

    def attach_capture_adapter(self, adapter: Any) -> None:
        self.capture_adapter = adapter

    def attach_lookup_adapter(self, adapter: Any) -> None:
        self.lookup_adapter = adapter

    def attach_speech_adapter(self, adapter: Any) -> None:
        self.speech_adapter = adapter

    def attach_runtime(self, runtime: Any) -> None:
        """
        Attach the runtime executor.

        Must be called after collaborators are attached.
        """
        self.runtime = runtime

    # ------------------------------------------------------------------
    # Observability helpers (read-only)
    # ------------------------------------------------------------------

    def log_context(self) -> dict[str, Any]:
        """Standard logging context for this session."""
        return {
            "session_id": self.session_id,
            "connection_status": self.connection_status.value,
        }

    # ------------------------------------------------------------------
    # Outbound buffering
    # ------------------------------------------------------------------

    def enqueue_control(self, msg: dict[str, Any]) -> None:
        """
        Enqueue a control message for gateway delivery to the client.

        Messages are buffered in FIFO order and later retrieved via
        drain_control().
        """
        self._control_out.append(msg)
        self._outbound_ready.set()

    def notify_outbound(self) -> None:
        """Wake the flush task (speech audio was enqueued)."""
        self._outbound_ready.set()

    async def wait_outbound(self) -> None:
        """Block until something was enqueued since the last wait."""
        await self._outbound_ready.wait()
        self._outbound_ready.clear()

    def drain_control(self) -> tuple[dict[str, Any], ...]:
        """
        Atomically drain all pending control messages.

        Returns:
            A FIFO-ordered tuple of control messages. Returns an empty
            tuple if no messages are pending.

        After this call, the control queue is empty.
        """
        if not self._control_out:
            return ()
        out = tuple(self._control_out)
        self._control_out.clear()
        return out

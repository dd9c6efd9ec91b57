"""
Session gateway.

Responsibilities:
- Owns VoiceSession lifecycle (one WebSocket connection == one session)
- Tracks connection_status independently of orchestrator state
- Wires collaborators (capture, lookup, speech, permissions,
  interruptions) to the session runtime
- Routes inbound JSON control messages -> runtime / collaborators
- Routes inbound binary mic frames -> ingest queue
- Detects sequence gaps and logs them
- Forwards published study states to the client (STATE messages)
- Drains outbound control messages and speech audio for the flush task

NOT responsible for:
- Any state machine logic
- Executing orchestrator commands (Runtime does)
- Error policy (orchestrator/errors.py)
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any, Callable, TYPE_CHECKING

from uuid import uuid4

from adapters.capture.deepgram import DeepgramCaptureAdapter
from adapters.lookup.dictionary_api import DictionaryAPILookupAdapter
from adapters.speech.speechmatics import SpeechmaticsSpeechAdapter
from constants import (
    AUDIO_CHANNELS,
    AUDIO_FRAME_MS,
    AUDIO_SAMPLE_RATE_HZ,
    AUDIO_SAMPLE_WIDTH_BYTES,
)
from observability.logger import log_event
from orchestrator.enums.service import Service
from orchestrator.errors import ErrorKind
from orchestrator.events import (
    CaptureError,
    EventType,
    SessionEnded,
    SessionStarted,
)
from orchestrator.interruptions import InterruptionCoordinator
from orchestrator.runtime import Runtime
from orchestrator.runtime_context import RuntimeExecutionContext
from orchestrator.state_dataclass import OrchestratorState
from orchestrator.study_state import StudyState, to_client_message
from protocol.binary import (
    BinaryProtocolError,
    SequenceTracker,
    decode_c2s_frame,
    encode_s2c_frame,
)
from session.connection_status import ConnectionStatus
from session.permissions import PermissionBroker
from session.voice_session import VoiceSession

if TYPE_CHECKING:
    from config import AppConfig


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _now_ms() -> int:
    return time.time_ns() // 1_000_000


def _new_session_id() -> str:
    return f"sess_{uuid4().hex[:12]}"


# Client-reported microphone problems (CAPTURE_ERROR.kind)
_CLIENT_CAPTURE_ERRORS: dict[str, ErrorKind] = {
    "not_authorized": ErrorKind.CAPTURE_NOT_AUTHORIZED,
    "microphone_unavailable": ErrorKind.CAPTURE_MICROPHONE_UNAVAILABLE,
    "session_config": ErrorKind.CAPTURE_SESSION_CONFIG,
    "engine_unavailable": ErrorKind.CAPTURE_ENGINE_UNAVAILABLE,
}


# ------------------------------------------------------------------
# Collaborator factories
# ------------------------------------------------------------------

AdapterFactory = Callable[["AppConfig", VoiceSession, Runtime], Any]


def build_capture_adapter(config: AppConfig, session: VoiceSession, runtime: Runtime) -> Any:
    return DeepgramCaptureAdapter(
        emit_event=runtime.submit,
        permissions=session.permissions,
        send_control=session.enqueue_control,
        api_key=config.deepgram_api_key or "",
        session_id=session.session_id,
        model=config.deepgram_model,
    )


def build_lookup_adapter(config: AppConfig, session: VoiceSession, runtime: Runtime) -> Any:  # pylint: disable=unused-argument
    return DictionaryAPILookupAdapter(
        base_url=config.dictionary_base_url,
        session_id=session.session_id,
    )


def build_speech_adapter(config: AppConfig, session: VoiceSession, runtime: Runtime) -> Any:
    return SpeechmaticsSpeechAdapter(
        emit_event=runtime.submit,
        audio_out_queue=session.audio_out_queue,
        send_control=session.enqueue_control,
        on_audio=session.notify_outbound,
        api_key=config.speechmatics_api_key or "",
        voice=config.speechmatics_voice,
        session_id=session.session_id,
    )


# ------------------------------------------------------------------
# Gateway result
# ------------------------------------------------------------------

@dataclass(frozen=True)
class GatewayResult:
    """
    Outbound batch for the connection's flush task.

    outbound_json:
        JSON messages to send to client

    outbound_binary:
        Binary frames to send to client (speech audio)
    """
    outbound_json: tuple[dict[str, Any], ...] = ()
    outbound_binary: tuple[bytes, ...] = ()

    def __bool__(self) -> bool:
        return bool(self.outbound_json or self.outbound_binary)


# ------------------------------------------------------------------
# SessionGateway
# ------------------------------------------------------------------

class SessionGateway:
    """
    One gateway == one study session.

    Collaborator factories are injectable so tests can run the full
    message routing against fakes.
    """

    def __init__(
        self,
        *,
        config: AppConfig,
        capture_factory: AdapterFactory = build_capture_adapter,
        lookup_factory: AdapterFactory = build_lookup_adapter,
        speech_factory: AdapterFactory = build_speech_adapter,
    ) -> None:
        self._config = config
        self._capture_factory = capture_factory
        self._lookup_factory = lookup_factory
        self._speech_factory = speech_factory

        self.session: VoiceSession | None = None
        self._ingest_seq = SequenceTracker()
        self._unsubscribe: Callable[[], None] | None = None

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def on_ws_connect(self) -> GatewayResult:
        """Called when a WebSocket connection is established."""
        session_id = _new_session_id()

        session = VoiceSession(session_id=session_id)
        session.connection_status = ConnectionStatus.UP
        self.session = session

        runtime = Runtime(
            initial_state=OrchestratorState(
                resume_after_background=self._config.resume_after_background,
            ),
            context=RuntimeExecutionContext(session=session),
        )

        session.permissions = PermissionBroker(
            send_control=session.enqueue_control,
            session_id=session_id,
        )
        session.interruptions = InterruptionCoordinator(
            runtime.submit,
            session_id=session_id,
        )

        session.attach_capture_adapter(self._capture_factory(self._config, session, runtime))
        session.attach_lookup_adapter(self._lookup_factory(self._config, session, runtime))
        session.attach_speech_adapter(self._speech_factory(self._config, session, runtime))

        # Attach runtime (must be AFTER collaborators)
        session.attach_runtime(runtime)
        self._unsubscribe = runtime.subscribe(self._on_state)
        self._ingest_seq.reset()

        runtime.open()
        runtime.submit(
            SessionStarted(
                event_type=EventType.SESSION_STARTED,
                ts_ms=_now_ms(),
                session_id=session_id,
            )
        )

        init_msg: dict[str, Any] = {
            "type": "SESSION_INIT",
            "session_id": session_id,
            "audio_format": {
                "sample_rate": AUDIO_SAMPLE_RATE_HZ,
                "sample_width": AUDIO_SAMPLE_WIDTH_BYTES,
                "channels": AUDIO_CHANNELS,
                "frame_duration_ms": AUDIO_FRAME_MS,
            },
            "state": to_client_message(runtime.study_state, is_studying=runtime.is_studying),
        }

        return GatewayResult(outbound_json=(init_msg,))

    async def on_ws_disconnect(self, reason: str | None = None) -> None:
        """Called when the WebSocket disconnects."""
        session = self.session
        if session is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "WS_DISCONNECT_WITHOUT_SESSION",
                "reason": reason,
            })
            return

        session.connection_status = ConnectionStatus.DOWN

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        runtime = session.runtime
        if runtime is not None:
            await runtime.shutdown()
            await runtime.handle_event(
                SessionEnded(
                    event_type=EventType.SESSION_ENDED,
                    ts_ms=_now_ms(),
                    session_id=session.session_id,
                )
            )

        lookup = session.lookup_adapter
        if lookup is not None and hasattr(lookup, "close"):
            await lookup.close()

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "WS_DISCONNECTED",
            "session_id": session.session_id,
            "reason": reason,
        })

    # ------------------------------------------------------------------
    # Inbound: JSON control
    # ------------------------------------------------------------------

    async def on_json_message(self, payload: str) -> None:
        """Route one inbound JSON message."""
        session = self.session
        if session is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "MESSAGE_WITHOUT_SESSION",
                "payload_preview": payload[:100],
            })
            return

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "JSON_DECODE_ERROR",
                "session_id": session.session_id,
                "error": str(e),
                "payload_preview": payload[:100],
            })
            return

        if not isinstance(data, dict):
            self._unknown(session, None)
            return

        runtime = session.runtime
        assert runtime is not None, "Runtime must exist before dispatch"

        msg_type = data.get("type")

        if msg_type == "START":
            runtime.start()
        elif msg_type == "STOP":
            runtime.stop()
        elif msg_type == "MIC_PERMISSION":
            session.permissions.resolve(bool(data.get("granted", False)))
        elif msg_type == "PLAYBACK_DONE":
            self._on_playback_done(session, data.get("run_id"))
        elif msg_type == "CAPTURE_ERROR":
            self._on_capture_error(session, runtime, data)
        elif not session.interruptions.handle_client_message(data):
            self._unknown(session, msg_type)

    def _on_playback_done(self, session: VoiceSession, raw_run_id: Any) -> None:
        if not isinstance(raw_run_id, int):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "PLAYBACK_DONE_INVALID",
                "session_id": session.session_id,
                "run_id": raw_run_id,
            })
            return

        speech = session.speech_adapter
        if speech is not None and hasattr(speech, "on_playback_done"):
            speech.on_playback_done(raw_run_id)

    def _on_capture_error(
        self,
        session: VoiceSession,
        runtime: Runtime,
        data: dict[str, Any],
    ) -> None:
        raw_kind = str(data.get("kind", "")).lower()
        kind = _CLIENT_CAPTURE_ERRORS.get(raw_kind, ErrorKind.UNKNOWN)

        if kind is ErrorKind.CAPTURE_NOT_AUTHORIZED and session.permissions is not None:
            session.permissions.revoke()

        runtime.submit(
            CaptureError(
                event_type=EventType.CAPTURE_ERROR,
                ts_ms=_now_ms(),
                service=Service.CAPTURE,
                run_id=runtime.state.active_runs.capture,
                kind=kind,
                detail=f"client: {raw_kind or 'unspecified'}",
            )
        )

    def _unknown(self, session: VoiceSession, msg_type: Any) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "UNKNOWN_MESSAGE_TYPE",
            "msg_type": msg_type,
            "session_id": session.session_id,
        })

    # ------------------------------------------------------------------
    # Inbound: binary mic audio
    # ------------------------------------------------------------------

    async def on_binary_message(self, payload: bytes) -> None:
        """
        Handle one inbound binary mic frame.

        - Decode + validate
        - Detect sequence gaps
        - Enqueue into ingest queue
        - Let the runtime drain it into capture (or drop it)
        """
        session = self.session
        if session is None:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "BINARY_WITHOUT_SESSION",
                "payload_len": len(payload),
            })
            return

        try:
            frame = decode_c2s_frame(payload, ts_ms=_now_ms())
        except BinaryProtocolError as e:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "BINARY_DECODE_ERROR",
                "session_id": session.session_id,
                "error": str(e),
                "payload_len": len(payload),
            })
            return

        gap = self._ingest_seq.observe(frame.sequence_num)
        if gap.gap:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SEQ_GAP_DETECTED",
                "level": "DEBUG",
                "session_id": session.session_id,
                "expected": gap.expected,
                "actual": gap.actual,
                "gap_size": gap.gap_size,
            })

        if not session.audio_in_queue.enqueue(frame):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "AUDIO_FRAME_DROPPED",
                "level": "WARNING",
                "session_id": session.session_id,
                "seq_num": frame.sequence_num,
                "queue": session.audio_in_queue.snapshot(),
            })
            return

        runtime = session.runtime
        assert runtime is not None, "Runtime must exist before audio enqueue"
        await runtime.notify_audio_enqueued()

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------

    def _on_state(self, state: StudyState, is_studying: bool) -> None:
        if self.session is None:
            return
        self.session.enqueue_control(to_client_message(state, is_studying=is_studying))

    def drain_outbound(self) -> GatewayResult:
        """Drain pending control messages, then queued speech frames."""
        session = self.session
        if session is None:
            return GatewayResult()

        return GatewayResult(
            outbound_json=session.drain_control(),
            outbound_binary=self._drain_audio_out(session),
        )

    def _drain_audio_out(self, session: VoiceSession) -> tuple[bytes, ...]:
        return tuple(
            encode_s2c_frame(
                sequence_num=frame.sequence_num,
                run_id=frame.run_id,
                pcm_bytes=frame.pcm_bytes,
            )
            for frame in session.audio_out_queue.drain()
        )

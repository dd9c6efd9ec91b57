"""
Deepgram streaming capture adapter (client microphone -> Deepgram Flux).

Core model:
- The browser owns the microphone. start() asks the client to open it
  (CAPTURE_START) and stop() asks it to close it (CAPTURE_STOP).
- The Deepgram WebSocket is RUN-scoped: opened by start(), closed by
  stop(). Nothing is recognized between runs, so speech output can
  never be transcribed.
- Mic frames arrive through send_audio() (drained by the runtime from
  the ingest queue) and are forwarded as-is.

Event behavior:
- TurnInfo Update    => TranscriptUpdate(is_final=False)
- TurnInfo EndOfTurn => TranscriptUpdate(is_final=True)
- Error message      => CaptureError(CAPTURE_RECOGNITION_FAILED)
- Socket lost while running => CaptureError(CAPTURE_ENGINE_UNAVAILABLE)

Design constraints:
- Adapter must not call reducer directly.
- Adapter must not own orchestrator state transitions.
- Every event carries the run_id passed to start().
"""

from __future__ import annotations

import asyncio
import json
import time
import urllib.parse
from typing import Any, Awaitable, Callable

from websockets.legacy.client import (
    connect as ws_connect,
    WebSocketClientProtocol,
)

from adapters.capture.base import CaptureAdapter
from adapters.errors import CaptureError as CaptureStartError
from constants import (
    AUDIO_BYTES_PER_FRAME_PCM,
    AUDIO_SAMPLE_RATE_HZ,
    SILENCE_DETECTION_MS,
)
from observability.logger import log_event
from orchestrator.enums.service import Service
from orchestrator.errors import ErrorKind
from orchestrator.events import (
    CaptureError,
    Event,
    EventType,
    TranscriptUpdate,
)
from orchestrator.runtime_context import PermissionProtocol


def _now_ms() -> int:
    return int(time.time() * 1000)


Connector = Callable[..., Awaitable[WebSocketClientProtocol]]


class DeepgramCaptureAdapter(CaptureAdapter):
    """
    Deepgram Flux WebSocket capture adapter.

    Connection lifecycle:
    - start(run_id): permission check, connect, start receiver loop
    - stop(): close socket, cancel receiver (idempotent)
    - A socket that dies while running is reported once, then dropped
    """

    def __init__(
        self,
        *,
        emit_event: Callable[[Event], None],
        permissions: PermissionProtocol,
        send_control: Callable[[dict[str, Any]], None],
        api_key: str,
        session_id: str = "",
        model: str = "flux-general-en",
        eot_timeout_ms: int = SILENCE_DETECTION_MS,
        connect: Connector = ws_connect,
    ) -> None:
        self._emit = emit_event
        self._permissions = permissions
        self._send_control = send_control
        self._api_key = api_key
        self._session_id = session_id
        self._model = model
        self._eot_timeout_ms = eot_timeout_ms
        self._connect = connect

        self._ws: WebSocketClientProtocol | None = None
        self._recv_task: asyncio.Task[None] | None = None
        self._lock = asyncio.Lock()

        # run_id of the running capture; None while stopped
        self._run_id: int | None = None
        self._last_transcript: str = ""

    @property
    def run_id(self) -> int | None:
        return self._run_id

    # -------------------------------------------------------------------------
    # CaptureAdapter contract
    # -------------------------------------------------------------------------

    async def start(self, run_id: int) -> None:
        granted = await self._permissions.request_permissions()
        if not granted:
            raise CaptureStartError(ErrorKind.CAPTURE_NOT_AUTHORIZED, "microphone permission denied")

        if not self._api_key:
            raise CaptureStartError(ErrorKind.CAPTURE_ENGINE_UNAVAILABLE, "DEEPGRAM_API_KEY not set")

        async with self._lock:
            await self._drop_connection_locked()
            try:
                self._ws = await self._connect(
                    self._build_url(),
                    extra_headers={"Authorization": f"Token {self._api_key}"},
                    max_size=2**22,
                    ping_interval=None,
                )
            except Exception as e:  # pylint: disable=broad-exception-caught
                self._ws = None
                raise CaptureStartError(
                    ErrorKind.CAPTURE_ENGINE_UNAVAILABLE,
                    f"deepgram_connect_failed: {e!r}",
                ) from e

            self._run_id = run_id
            self._last_transcript = ""
            self._recv_task = asyncio.create_task(self._recv_loop(self._ws, run_id))

        self._send_control({"type": "CAPTURE_START", "run_id": run_id, "ts_ms": _now_ms()})
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "capture_started",
            "session_id": self._session_id,
            "run_id": run_id,
        })

    async def stop(self) -> None:
        async with self._lock:
            run_id = self._run_id
            if run_id is None and self._ws is None:
                return
            self._run_id = None
            await self._drop_connection_locked()

        self._send_control({"type": "CAPTURE_STOP", "run_id": run_id, "ts_ms": _now_ms()})
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "capture_stopped",
            "session_id": self._session_id,
            "run_id": run_id,
        })

    async def send_audio(self, pcm_bytes: bytes) -> None:
        if len(pcm_bytes) != AUDIO_BYTES_PER_FRAME_PCM:
            raise ValueError(
                f"Deepgram expected {AUDIO_BYTES_PER_FRAME_PCM} PCM bytes, "
                f"got {len(pcm_bytes)} (header not stripped?)"
            )

        ws = self._ws
        run_id = self._run_id
        if ws is None or run_id is None:
            return

        try:
            await ws.send(pcm_bytes)
        except Exception as e:  # pylint: disable=broad-exception-caught
            self._lose_connection(run_id, f"deepgram_send_failed: {e!r}")

    # -------------------------------------------------------------------------
    # Connection management
    # -------------------------------------------------------------------------

    def _build_url(self) -> str:
        params: dict[str, str] = {
            "model": self._model,
            "encoding": "linear16",
            "sample_rate": str(AUDIO_SAMPLE_RATE_HZ),
            "eot_timeout_ms": str(int(self._eot_timeout_ms)),
        }

        qs = urllib.parse.urlencode(params)
        return f"wss://api.deepgram.com/v2/listen?{qs}"

    async def _drop_connection_locked(self) -> None:
        ws = self._ws
        self._ws = None

        task = self._recv_task
        self._recv_task = None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

        if ws is not None:
            try:
                await ws.close()
            except Exception:  # pylint: disable=broad-exception-caught
                pass

    def _lose_connection(self, run_id: int, reason: str) -> None:
        """
        Report a dead socket once for the run and forget it.

        The socket is not closed here; stop() (issued by the orchestrator
        on the resulting error) does that.
        """
        if self._run_id != run_id:
            return
        self._run_id = None

        log_event({
            "ts_ms": _now_ms(),
            "event_type": "capture_connection_lost",
            "level": "WARNING",
            "session_id": self._session_id,
            "run_id": run_id,
            "reason": reason,
        })
        self._emit(
            CaptureError(
                event_type=EventType.CAPTURE_ERROR,
                ts_ms=_now_ms(),
                service=Service.CAPTURE,
                run_id=run_id,
                kind=ErrorKind.CAPTURE_ENGINE_UNAVAILABLE,
                detail=reason,
            )
        )

    # -------------------------------------------------------------------------
    # Background loop
    # -------------------------------------------------------------------------

    async def _recv_loop(self, ws: WebSocketClientProtocol, run_id: int) -> None:
        reason = "deepgram_socket_closed"
        try:
            async for raw in ws:
                try:
                    data = json.loads(raw)
                except ValueError:
                    log_event({
                        "ts_ms": _now_ms(),
                        "event_type": "capture_bad_message",
                        "level": "WARNING",
                        "session_id": self._session_id,
                        "run_id": run_id,
                    })
                    continue

                if isinstance(data, dict):
                    self._handle_message(run_id, data)
        except asyncio.CancelledError:
            return
        except Exception as e:  # pylint: disable=broad-exception-caught
            reason = f"deepgram_recv_failed: {e!r}"

        self._lose_connection(run_id, reason)

    def _handle_message(self, run_id: int, data: dict[str, Any]) -> None:
        if self._run_id != run_id:
            return

        msg_type = data.get("type")

        if msg_type == "Error":
            self._emit(
                CaptureError(
                    event_type=EventType.CAPTURE_ERROR,
                    ts_ms=_now_ms(),
                    service=Service.CAPTURE,
                    run_id=run_id,
                    kind=ErrorKind.CAPTURE_RECOGNITION_FAILED,
                    detail=f"deepgram_flux_error: {data.get('code')} {data.get('description')}",
                )
            )
            return

        if msg_type != "TurnInfo":
            return

        event = data.get("event")
        raw_transcript = data.get("transcript")
        transcript = raw_transcript.strip() if isinstance(raw_transcript, str) else ""

        if event == "Update":
            # Deepgram repeats identical interim transcripts
            if not transcript or transcript == self._last_transcript:
                return
            self._last_transcript = transcript
            is_final = False
        elif event == "EndOfTurn":
            self._last_transcript = ""
            if not transcript:
                return
            is_final = True
        else:
            return

        self._emit(
            TranscriptUpdate(
                event_type=EventType.TRANSCRIPT_UPDATE,
                ts_ms=_now_ms(),
                service=Service.CAPTURE,
                run_id=run_id,
                text=transcript,
                is_final=is_final,
            )
        )

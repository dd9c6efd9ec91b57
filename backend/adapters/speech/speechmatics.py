"""
Speechmatics speech adapter.

Synthesizes one utterance per speak() call with the Speechmatics Async
TTS API and streams it to the client as 20ms PCM frames.

Role in the system:
- Receives the full utterance text from the orchestrator (Speak command).
- Re-frames provider PCM (RAW_PCM_16000) into AUDIO_BYTES_PER_FRAME_PCM
  frames and pushes them to the session's speech egress queue.
- Tracks estimated client playback so is_speaking() stays true until
  the audio has actually been heard.
- Emits SpeechFinished(run_id) when the client reports PLAYBACK_DONE,
  and when synthesis fails (a failed utterance counts as finished).

Concurrency & cancellation:
- One asyncio task per utterance; speak() cancels the previous one.
- stop() is idempotent: cancels synthesis, clears queued audio and tells
  the client to stop playback (AUDIO_STOP).
"""
from __future__ import annotations

import asyncio
import time
from typing import Any, AsyncIterator, Callable

from speechmatics.tts import AsyncClient, OutputFormat, Voice # pyright: ignore[reportMissingTypeStubs] # pylint: disable=no-name-in-module, import-error

from adapters.speech.base import SpeechAdapter
from audio.frames import AudioFrame, PcmFramer
from audio.queues import AudioFrameQueue
from constants import AUDIO_FRAME_DURATION_S, PROVIDER_CHUNK_SIZE, SEQ_NUM_START
from observability.logger import log_event
from observability.metrics import timed
from orchestrator.enums.service import Service
from orchestrator.events import Event, EventType, SpeechFinished


Synthesizer = Callable[[str], AsyncIterator[bytes]]


class SpeechmaticsSpeechAdapter(SpeechAdapter):
    """
    Speechmatics (non-streaming) TTS adapter with client playback tracking.

    synthesize may be injected (text -> async iterator of PCM chunks);
    it defaults to the Speechmatics client.
    """

    _VOICE_MAP: dict[str, Voice] = {
        "sarah": Voice.SARAH,
        "theo": Voice.THEO,
        "megan": Voice.MEGAN,
    }

    def __init__(
        self,
        *,
        emit_event: Callable[[Event], None],
        audio_out_queue: AudioFrameQueue,
        send_control: Callable[[dict[str, Any]], None],
        on_audio: Callable[[], None] = lambda: None,
        api_key: str = "",
        voice: str = "sarah",
        session_id: str = "",
        synthesize: Synthesizer | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._emit = emit_event
        self._out_q = audio_out_queue
        self._send_control = send_control
        self._on_audio = on_audio
        self._api_key = api_key
        self._voice = self._resolve_voice(voice)
        self._session_id = session_id
        self._synthesize = synthesize or self._speechmatics_stream
        self._clock = clock

        self._task: asyncio.Task[None] | None = None
        self._run_id: int | None = None
        self._sequence = SEQ_NUM_START

        # Monotonic time at which the client should have played every
        # frame enqueued so far.
        self._playback_deadline: float = 0.0

    # ------------------------------------------------------------------
    # Public API (SpeechAdapter contract)
    # ------------------------------------------------------------------

    async def speak(self, run_id: int, text: str) -> None:
        await self.stop()

        self._run_id = run_id
        self._playback_deadline = 0.0
        self._send_control({"type": "SPEECH_START", "run_id": run_id, "ts_ms": self._now_ms()})

        task = asyncio.create_task(self._run_synthesis(run_id, text))
        self._task = task

        def _cleanup(done: asyncio.Task[None]) -> None:
            if self._task is done:
                self._task = None

        task.add_done_callback(_cleanup)

    async def stop(self) -> None:
        task = self._task
        self._task = None
        run_id = self._run_id
        self._run_id = None
        self._playback_deadline = 0.0

        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        if run_id is None:
            return

        self._out_q.clear()
        self._send_control({"type": "AUDIO_STOP", "run_id": run_id, "ts_ms": self._now_ms()})

    def is_speaking(self) -> bool:
        if self._run_id is None:
            return False
        if self._task is not None and not self._task.done():
            return True
        return self._clock() < self._playback_deadline

    def on_playback_done(self, run_id: int) -> None:
        if run_id != self._run_id:
            return
        self._finish(run_id)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _run_synthesis(self, run_id: int, text: str) -> None:
        framer = PcmFramer()
        frames = 0

        try:
            with timed(
                "speech_synthesis",
                session_id=self._session_id,
                run_id=run_id,
                details={"chars": len(text)},
            ):
                async for chunk in self._synthesize(text):
                    for pcm in framer.push(chunk):
                        self._enqueue_frame(run_id, pcm)
                        frames += 1

            framer.flush()
            log_event({
                "ts_ms": self._now_ms(),
                "event_type": "speech_synthesized",
                "session_id": self._session_id,
                "run_id": run_id,
                "frames": frames,
                "queue": self._out_q.snapshot(),
            })

            if frames == 0:
                self._finish(run_id)

        except asyncio.CancelledError:
            raise

        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": self._now_ms(),
                "event_type": "SPEECH_SYNTHESIS_FAILED",
                "level": "ERROR",
                "session_id": self._session_id,
                "run_id": run_id,
                "error": f"{type(exc).__name__}: {exc}",
            })
            self._finish(run_id)

    def _enqueue_frame(self, run_id: int, pcm: bytes) -> None:
        frame = AudioFrame(
            sequence_num=self._sequence,
            pcm_bytes=pcm,
            ts_ms=self._now_ms(),
            run_id=run_id,
        )
        self._sequence += 1

        if not self._out_q.enqueue(frame):
            return

        now = self._clock()
        self._playback_deadline = max(self._playback_deadline, now) + AUDIO_FRAME_DURATION_S
        self._on_audio()

    def _finish(self, run_id: int) -> None:
        self._run_id = None
        self._playback_deadline = 0.0
        self._emit(
            SpeechFinished(
                event_type=EventType.SPEECH_FINISHED,
                ts_ms=self._now_ms(),
                service=Service.SPEECH,
                run_id=run_id,
            )
        )

    async def _speechmatics_stream(self, text: str) -> AsyncIterator[bytes]:
        async with AsyncClient(api_key=self._api_key) as client:
            async with await client.generate(
                text=text,
                voice=self._voice,
                output_format=OutputFormat.RAW_PCM_16000,
            ) as response:
                async for chunk in response.content.iter_chunked(PROVIDER_CHUNK_SIZE):
                    yield chunk

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @classmethod
    def _resolve_voice(cls, voice: str) -> Voice:
        """
        Convert user-facing voice string to Speechmatics Voice enum.

        Defaults to SARAH if unknown.
        """
        return cls._VOICE_MAP.get(voice.lower(), Voice.SARAH)

    @staticmethod
    def _now_ms() -> int:
        """Wall-clock timestamp in milliseconds (coarse)."""
        return int(time.time() * 1000)

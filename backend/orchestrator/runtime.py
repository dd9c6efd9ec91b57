"""
Runtime execution shell for a single study session.

Responsibilities:
- Own orchestrator state
- Serialize every event through one inbox (the single control path)
- Call pure reducer
- Execute commands with side effects (capture, lookup, speech, timers)
- Feed transcripts through the word extractor
- Drain inbound mic audio into capture while capture runs
- Publish the observable StudyState
"""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any, Callable, Protocol

from observability.logger import log_event
from orchestrator.commands import (
    CancelAllTimers,
    CancelTimer,
    Command,
    LogEvent,
    PublishState,
    ResetWordExtractor,
    Speak,
    StartCapture,
    StartLookup,
    StartTimer,
    StopCapture,
    StopSpeech,
)
from orchestrator.enums.service import Service
from orchestrator.enums.state import State
from orchestrator.enums.timer import TimerKind
from orchestrator.errors import classify_exception
from orchestrator.events import (
    CaptureFailed,
    CaptureStarted,
    ErrorRecoveryElapsed,
    Event,
    EventType,
    InterruptionResumeElapsed,
    LookupFailed,
    LookupSucceeded,
    PlaybackCheck,
    ReadingGraceElapsed,
    SpeechFinished,
    Start,
    Stop,
    TranscriptUpdate,
    WordDetected,
)
from orchestrator.reducer import reduce
from orchestrator.scheduler import RecoveryScheduler, TimerAction
from orchestrator.state_dataclass import OrchestratorState
from orchestrator.study_state import StudyState, project
from orchestrator.word_extractor import WordExtractor

if TYPE_CHECKING:
    from orchestrator.runtime_context import RuntimeExecutionContext


StateListener = Callable[[StudyState, bool], None]


class SchedulerProtocol(Protocol):
    def arm(self, kind: TimerKind, delay_ms: int, action: TimerAction) -> None: ...
    def cancel(self, kind: TimerKind) -> None: ...
    def cancel_all(self) -> None: ...
    def is_armed(self, kind: TimerKind) -> bool: ...
    def armed_kinds(self) -> frozenset[TimerKind]: ...
    async def shutdown(self) -> None: ...


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class Runtime:
    """
    Runtime execution boundary for a single study session.

    Responsibilities:
    - Own the authoritative orchestrator state
    - Act as the universal event sink for the session
      (gateway events, collaborator events, timer events)
    - Invoke the pure reducer deterministically
    - Execute emitted commands with side effects
    - Convert timer expiry into events

    Architectural role:
    Runtime is the bridge between the pure orchestration layer
    (reducer + immutable state) and the imperative world
    (collaborators, logging, IO, time).

    Guarantees:
    - Events are reduced one at a time, in arrival order
    - Reducer is always called exactly once per incoming event
    - All side effects occur *after* state has been updated
    - Runtime never performs orchestration logic itself
    - Collaborator work runs in tasks that report back via submit();
      the control path never waits on a lookup or on playback
    """

    def __init__(
        self,
        *,
        initial_state: OrchestratorState,
        context: RuntimeExecutionContext,
        scheduler: SchedulerProtocol | None = None,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._state = initial_state
        self._ctx = context
        self._scheduler: SchedulerProtocol = scheduler or RecoveryScheduler()
        self._clock = clock
        self._extractor = WordExtractor(self._scheduler)

        self._inbox: asyncio.Queue[Event | None] = asyncio.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._pump_task: asyncio.Task[None] | None = None

        # Collaborator work in flight (capture start, lookups)
        self._tasks: set[asyncio.Task[None]] = set()
        self._capture_start_task: asyncio.Task[None] | None = None

        # run_id of the capture run whose start() completed and was not stopped
        self._capture_running_run: int | None = None

        self._listeners: list[StateListener] = []
        self._published: tuple[StudyState, bool] | None = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> OrchestratorState:
        """
        Return the current immutable orchestrator state.

        Consumers must never modify this state directly.
        """
        return self._state

    @property
    def study_state(self) -> StudyState:
        return project(self._state)

    @property
    def is_studying(self) -> bool:
        return self._state.is_studying

    @property
    def word_extractor(self) -> WordExtractor:
        return self._extractor

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """
        Register an observer of (StudyState, is_studying).

        The listener is called on every published change. Returns an
        unsubscribe callable.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    # ------------------------------------------------------------------
    # Event channel
    # ------------------------------------------------------------------

    def open(self) -> None:
        """Bind to the running loop and start draining the inbox."""
        if self._pump_task is not None:
            return
        self._loop = asyncio.get_running_loop()
        self._pump_task = asyncio.create_task(self._pump(), name="runtime-pump")

    def submit(self, event: Event) -> None:
        """
        Enqueue an event for the control path.

        Thread-safe: callers off the loop thread are marshalled with
        call_soon_threadsafe. Never blocks, never reduces inline.
        """
        loop = self._loop
        if loop is None:
            self._inbox.put_nowait(event)
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._inbox.put_nowait(event)
        else:
            loop.call_soon_threadsafe(self._inbox.put_nowait, event)

    def start(self) -> None:
        """Caller request: begin a study session."""
        self.submit(Start(event_type=EventType.START, ts_ms=self._clock()))

    def stop(self) -> None:
        """Caller request: end the study session."""
        self.submit(Stop(event_type=EventType.STOP, ts_ms=self._clock()))

    async def settle(self) -> None:
        """Wait until the inbox is empty and no collaborator task is pending."""
        while True:
            await self._inbox.join()
            pending = [t for t in self._tasks if not t.done()]
            if not pending:
                if self._inbox.empty():
                    return
                continue
            await asyncio.gather(*pending, return_exceptions=True)

    async def _pump(self) -> None:
        while True:
            event = await self._inbox.get()
            try:
                if event is None:
                    return
                await self.handle_event(event)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": self._clock(),
                    "event_type": "RUNTIME_EVENT_FAILED",
                    "level": "ERROR",
                    "session_id": self._ctx.session_id,
                    "failed_event_type": event.event_type.value if event else None,
                    "error": repr(exc),
                })
            finally:
                self._inbox.task_done()

    # ------------------------------------------------------------------
    # Reduction
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        """
        Process a single event through the orchestration pipeline.

        Processing steps:
        1. Pass the current state and event to the pure reducer
        2. Swap in the new orchestrator state
        3. Execute all emitted commands sequentially
        4. For transcript updates of the running capture, extract new
           words and reduce one WordDetected per word in the same step

        Called only from the pump (or directly by tests); never
        concurrently with itself.
        """
        await self._apply(event)

        if isinstance(event, TranscriptUpdate) and self._accepts_transcript(event):
            words = self._extractor.extract(event.text, event.is_final)
            for word in words:
                await self._apply(
                    WordDetected(
                        event_type=EventType.WORD_DETECTED,
                        ts_ms=event.ts_ms,
                        service=Service.CAPTURE,
                        run_id=event.run_id,
                        word=word,
                    )
                )

    async def _apply(self, event: Event) -> None:
        new_state, commands = reduce(self._state, event)
        self._state = new_state

        for cmd in commands:
            await self._execute_command(cmd)

    def _accepts_transcript(self, event: TranscriptUpdate) -> bool:
        s = self._state
        return (
            s.is_studying
            and s.capture_active
            and s.state is State.LISTENING
            and event.run_id == s.active_runs.capture
        )

    # ------------------------------------------------------------------
    # Command execution (side effects)
    # ------------------------------------------------------------------

    async def _execute_command(self, cmd: Command) -> None:
        """Execute a single command with side effects."""

        if isinstance(cmd, LogEvent):
            log_event({
                **cmd.event,
                "session_id": self._ctx.session_id,
            })

        elif isinstance(cmd, StartCapture):
            self._cancel_capture_start()
            self._capture_start_task = self._spawn(
                self._run_capture_start(cmd.run_id),
                name=f"capture-start:{cmd.run_id}",
            )

        elif isinstance(cmd, StopCapture):
            self._cancel_capture_start()
            self._capture_running_run = None
            capture = self._ctx.capture
            if capture is not None:
                await self._call_safely("capture_stop", capture.stop())
            q = self._ctx.audio_in_queue
            if q is not None:
                q.clear()

        elif isinstance(cmd, ResetWordExtractor):
            self._extractor.reset()

        elif isinstance(cmd, StartLookup):
            self._spawn(
                self._run_lookup(cmd.run_id, cmd.word),
                name=f"lookup:{cmd.run_id}",
            )

        elif isinstance(cmd, Speak):
            speech = self._ctx.speech
            assert speech is not None, "Speech adapter missing"
            try:
                await speech.speak(cmd.run_id, cmd.text)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                # A failed utterance must not stall the loop
                log_event({
                    "ts_ms": self._clock(),
                    "event_type": "SPEAK_FAILED",
                    "level": "WARNING",
                    "session_id": self._ctx.session_id,
                    "speech_run_id": cmd.run_id,
                    "error": repr(exc),
                })
                self.submit(
                    SpeechFinished(
                        event_type=EventType.SPEECH_FINISHED,
                        ts_ms=self._clock(),
                        service=Service.SPEECH,
                        run_id=cmd.run_id,
                    )
                )

        elif isinstance(cmd, StopSpeech):
            speech = self._ctx.speech
            if speech is not None:
                await self._call_safely("speech_stop", speech.stop())

        elif isinstance(cmd, StartTimer):
            self._scheduler.arm(
                cmd.kind,
                cmd.duration_ms,
                self._timer_action(cmd.timeout_event_type, cmd.token),
            )

        elif isinstance(cmd, CancelTimer):
            self._scheduler.cancel(cmd.kind)

        elif isinstance(cmd, CancelAllTimers):
            self._scheduler.cancel_all()

        elif isinstance(cmd, PublishState):
            self._publish()

        else:
            log_event({
                "ts_ms": self._clock(),
                "event_type": "COMMAND_NOT_IMPLEMENTED",
                "session_id": self._ctx.session_id,
                "command_type": type(cmd).__name__,
            })

    async def _call_safely(self, what: str, awaitable: Any) -> None:
        """Await an idempotent stop; failures are logged, never raised."""
        try:
            await awaitable
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "ts_ms": self._clock(),
                "event_type": "COLLABORATOR_CALL_FAILED",
                "level": "WARNING",
                "session_id": self._ctx.session_id,
                "call": what,
                "error": repr(exc),
            })

    # ------------------------------------------------------------------
    # Collaborator tasks
    # ------------------------------------------------------------------

    def _spawn(self, coro: Any, *, name: str) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_capture_start(self) -> None:
        task = self._capture_start_task
        self._capture_start_task = None
        if task is not None and not task.done():
            task.cancel()

    async def _run_capture_start(self, run_id: int) -> None:
        capture = self._ctx.capture
        if capture is None:
            self.submit(self._capture_failed(run_id, RuntimeError("capture adapter missing")))
            return

        try:
            await capture.start(run_id)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self.submit(self._capture_failed(run_id, exc))
            return

        if not (self._state.capture_active and self._state.active_runs.capture == run_id):
            # Lost the race with StopCapture
            await self._call_safely("capture_stop", capture.stop())
            return

        self._capture_running_run = run_id
        self.submit(
            CaptureStarted(
                event_type=EventType.CAPTURE_STARTED,
                ts_ms=self._clock(),
                service=Service.CAPTURE,
                run_id=run_id,
            )
        )

    def _capture_failed(self, run_id: int, exc: BaseException) -> CaptureFailed:
        return CaptureFailed(
            event_type=EventType.CAPTURE_FAILED,
            ts_ms=self._clock(),
            service=Service.CAPTURE,
            run_id=run_id,
            kind=classify_exception(exc),
            detail=str(exc) or type(exc).__name__,
        )

    async def _run_lookup(self, run_id: int, word: str) -> None:
        lookup = self._ctx.lookup
        try:
            if lookup is None:
                raise RuntimeError("lookup adapter missing")
            definition = await lookup.fetch(word)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            self.submit(
                LookupFailed(
                    event_type=EventType.LOOKUP_FAILED,
                    ts_ms=self._clock(),
                    service=Service.LOOKUP,
                    run_id=run_id,
                    word=word,
                    kind=classify_exception(exc),
                    detail=str(exc) or type(exc).__name__,
                )
            )
            return

        self.submit(
            LookupSucceeded(
                event_type=EventType.LOOKUP_SUCCEEDED,
                ts_ms=self._clock(),
                service=Service.LOOKUP,
                run_id=run_id,
                word=word,
                definition=definition,
            )
        )

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    def _timer_action(self, timeout_event_type: EventType, token: int) -> TimerAction:
        """
        Build the scheduler action for a reducer timer.

        The action only submits the timeout event, so expiry re-enters
        the single control path. PLAYBACK_CHECK samples is_speaking at
        fire time.
        """

        def _fire() -> None:
            self.submit(self._construct_timeout_event(timeout_event_type, token))

        return _fire

    def _construct_timeout_event(self, timeout_event_type: EventType, token: int) -> Event:
        ts = self._clock()

        if timeout_event_type is EventType.PLAYBACK_CHECK:
            speech = self._ctx.speech
            return PlaybackCheck(
                event_type=EventType.PLAYBACK_CHECK,
                ts_ms=ts,
                run_id=token,
                is_speaking=bool(speech is not None and speech.is_speaking()),
            )

        if timeout_event_type is EventType.READING_GRACE_ELAPSED:
            return ReadingGraceElapsed(
                event_type=EventType.READING_GRACE_ELAPSED,
                ts_ms=ts,
                run_id=token,
            )

        if timeout_event_type is EventType.ERROR_RECOVERY_ELAPSED:
            return ErrorRecoveryElapsed(
                event_type=EventType.ERROR_RECOVERY_ELAPSED,
                ts_ms=ts,
                generation=token,
            )

        if timeout_event_type is EventType.INTERRUPTION_RESUME_ELAPSED:
            return InterruptionResumeElapsed(
                event_type=EventType.INTERRUPTION_RESUME_ELAPSED,
                ts_ms=ts,
                generation=token,
            )

        # This should never happen if reducer is correct
        raise ValueError(f"Unknown timeout event type: {timeout_event_type}")

    # ------------------------------------------------------------------
    # Observable state
    # ------------------------------------------------------------------

    def _publish(self) -> None:
        value = (project(self._state), self._state.is_studying)
        if value == self._published:
            return
        self._published = value

        for listener in list(self._listeners):
            try:
                listener(*value)
            except Exception as exc:  # pylint: disable=broad-exception-caught
                log_event({
                    "ts_ms": self._clock(),
                    "event_type": "STATE_LISTENER_FAILED",
                    "level": "ERROR",
                    "session_id": self._ctx.session_id,
                    "error": repr(exc),
                })

    # ------------------------------------------------------------------
    # Audio draining
    # ------------------------------------------------------------------

    async def notify_audio_enqueued(self) -> None:
        """
        Notification from gateway that mic audio has been enqueued.

        Frames reach capture only while its current run is running;
        otherwise they are dropped so nothing captured during playback
        is ever recognized.
        """
        q = self._ctx.audio_in_queue
        capture = self._ctx.capture
        if q is None or capture is None:
            return

        running = (
            self._capture_running_run is not None
            and self._capture_running_run == self._state.active_runs.capture
            and self._state.capture_active
        )
        if not running:
            q.clear()
            return

        while True:
            frame = q.dequeue()
            if frame is None:
                break
            await capture.send_audio(frame.pcm_bytes)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def shutdown(self) -> None:
        """
        Clean shutdown of runtime.

        Cancels timers and collaborator tasks, stops capture and
        playback, and stops the pump. Called by gateway on disconnect.
        """
        await self._scheduler.shutdown()
        self._extractor.reset()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._capture_start_task = None
        self._capture_running_run = None

        if self._ctx.capture is not None:
            await self._call_safely("capture_stop", self._ctx.capture.stop())
        if self._ctx.speech is not None:
            await self._call_safely("speech_stop", self._ctx.speech.stop())

        if self._pump_task is not None:
            self._inbox.put_nowait(None)
            await asyncio.gather(self._pump_task, return_exceptions=True)
            self._pump_task = None

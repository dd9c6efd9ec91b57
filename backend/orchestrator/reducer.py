"""
Pure orchestrator reducer.

(state, event) -> (new_state, commands)

Rules:
- Pure: no side effects, no IO, no clocks.
- Deterministic: output depends only on inputs.
- Total: every (state, event) pair is handled or explicitly ignored (logged).
"""

# Reducer owns timer semantics; runtime must not arm or cancel timers
# implicitly. Every transition out of DISPLAYING cancels RETURN_TO_LISTENING.

from __future__ import annotations

from dataclasses import replace
from typing import Any

from constants import (
    ERROR_RECOVERY_DELAY_MS,
    INTERRUPTION_RESUME_DELAY_MS,
    PLAYBACK_CHECK_INTERVAL_MS,
    READING_GRACE_MS,
)
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
from orchestrator.errors import ErrorKind, is_fatal, user_message
from orchestrator.events import (
    AppDidEnterBackground,
    AppDidResume,
    AppWillSuspend,
    AudioFocusLost,
    AudioFocusRegained,
    CaptureError,
    CaptureFailed,
    CaptureStarted,
    ErrorRecoveryElapsed,
    Event,
    EventType,
    InterruptionResumeElapsed,
    LookupFailed,
    LookupSucceeded,
    OutputDeviceRemoved,
    PlaybackCheck,
    ReadingGraceElapsed,
    ServiceEvent,
    SessionEnded,
    SessionStarted,
    SpeechFinished,
    Start,
    Stop,
    TranscriptUpdate,
    WordDetected,
)
from orchestrator.interruptions import (
    InterruptionAction,
    can_resume_capture,
    decide_interruption,
    ends_interruption_only,
)
from orchestrator.run_ids import RunIds
from orchestrator.state_dataclass import OrchestratorState
from orchestrator.utterance import format_for_speech


# =============================================================================
# Invariants
# =============================================================================
# - Run IDs are bumped ONLY on a new start of that service
# - generation is bumped on every session start and every stop
# - Service events are dropped unless their run_id is the active one
# - Capture is never running outside LISTENING (feedback-loop prevention)
# - At most one lookup is in flight: a lookup starts only on
#   LISTENING -> PROCESSING, and PROCESSING admits no second word

_INTERRUPTION_EVENTS = (
    AppWillSuspend,
    AppDidResume,
    AppDidEnterBackground,
    AudioFocusLost,
    AudioFocusRegained,
    OutputDeviceRemoved,
)


# =============================================================================
# Small helpers
# =============================================================================

def _bump_run_id(active_runs: RunIds, service: Service) -> RunIds:
    if service is Service.CAPTURE:
        return replace(active_runs, capture=active_runs.capture + 1)
    if service is Service.LOOKUP:
        return replace(active_runs, lookup=active_runs.lookup + 1)
    if service is Service.SPEECH:
        return replace(active_runs, speech=active_runs.speech + 1)
    raise ValueError(service)


def _active_run_for(active_runs: RunIds, service: Service) -> int:
    if service is Service.CAPTURE:
        return active_runs.capture
    if service is Service.LOOKUP:
        return active_runs.lookup
    if service is Service.SPEECH:
        return active_runs.speech
    raise ValueError(service)


def _is_stale(state: OrchestratorState, event: ServiceEvent) -> bool:
    return event.run_id != _active_run_for(state.active_runs, event.service)


def _log(
    state: OrchestratorState,
    event: Event,
    decision: str,
    details: dict[str, Any] | None = None,
) -> LogEvent:
    return LogEvent(
        event={
            "ts_ms": event.ts_ms,
            "state": state.state.value,
            "event_type": event.event_type.value,
            "decision": decision,
            "run_ids": {
                "capture": state.active_runs.capture,
                "lookup": state.active_runs.lookup,
                "speech": state.active_runs.speech,
            },
            "generation": state.generation,
            "is_studying": state.is_studying,
            "details": details or {},
        }
    )


def _logs_last(commands: tuple[Command, ...]) -> tuple[Command, ...]:
    non_logs: list[Command] = []
    logs: list[Command] = []
    state_change_logs: list[Command] = []

    for command in commands:
        if isinstance(command, LogEvent):
            if command.event.get("decision") == "state_changed":
                state_change_logs.append(command)
            else:
                logs.append(command)
        else:
            non_logs.append(command)

    return tuple(non_logs + logs + state_change_logs)


def _ignore(
    state: OrchestratorState, event: Event, reason: str
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    return state, (_log(state, event, "ignore", {"reason": reason}),)


def _state_changed(
    prev: OrchestratorState,
    new: OrchestratorState,
    event: Event,
    source: str,
) -> LogEvent:
    return _log(
        new,
        event,
        "state_changed",
        {
            "from_state": prev.state.value,
            "to_state": new.state.value,
            "source": source,
        },
    )


def _clear_display(state: OrchestratorState) -> OrchestratorState:
    return replace(
        state,
        current_word=None,
        definition=None,
        last_error=None,
        error_kind=None,
    )


def _stop_capture(state: OrchestratorState) -> tuple[OrchestratorState, list[Command]]:
    """
    Stop capture and forget the pending word set.

    StopCapture is idempotent, so it is emitted even when capture is
    already inactive.
    """
    return (
        replace(state, capture_active=False),
        [StopCapture(run_id=state.active_runs.capture), ResetWordExtractor()],
    )


def _start_capture(state: OrchestratorState) -> tuple[OrchestratorState, list[Command]]:
    new_runs = _bump_run_id(state.active_runs, Service.CAPTURE)
    new_state = replace(
        state,
        active_runs=new_runs,
        capture_active=True,
        interrupted=False,
    )
    return new_state, [ResetWordExtractor(), StartCapture(run_id=new_runs.capture)]


# =============================================================================
# Session start / stop
# =============================================================================

def _start_session(
    state: OrchestratorState, event: Event, source: str
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """IDLE (or inactive ERROR) -> LISTENING, starting capture."""
    new_state = _clear_display(state)
    new_state = replace(
        new_state,
        state=State.LISTENING,
        is_studying=True,
        generation=state.generation + 1,
        was_studying_before_background=False,
    )
    new_state, capture_cmds = _start_capture(new_state)

    return new_state, _logs_last((
        CancelAllTimers(),
        *capture_cmds,
        PublishState(),
        _state_changed(state, new_state, event, source),
    ))


def _stop_session(
    state: OrchestratorState,
    event: Event,
    source: str,
    *,
    was_studying_before_background: bool = False,
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """Any state -> IDLE. Stops collaborators, cancels every timer."""
    new_state, capture_cmds = _stop_capture(state)
    new_state = _clear_display(new_state)
    new_state = replace(
        new_state,
        state=State.IDLE,
        is_studying=False,
        generation=state.generation + 1,
        interrupted=False,
        was_studying_before_background=was_studying_before_background,
    )

    return new_state, _logs_last((
        *capture_cmds,
        StopSpeech(run_id=state.active_runs.speech),
        CancelAllTimers(),
        PublishState(),
        _state_changed(state, new_state, event, source),
    ))


# =============================================================================
# Errors
# =============================================================================

def _enter_error(
    state: OrchestratorState,
    event: Event,
    kind: ErrorKind,
    detail: str | None,
    source: str,
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """
    Classify and apply the error policy.

    Recoverable: ERROR(message), stop collaborators, arm ERROR_RECOVERY.
    Fatal:       ERROR(message), session inactive, every timer cancelled.
    """
    message = user_message(kind)
    fatal = is_fatal(kind)

    new_state, capture_cmds = _stop_capture(state)
    new_state = replace(
        new_state,
        state=State.ERROR,
        current_word=None,
        definition=None,
        last_error=message,
        error_kind=kind,
    )

    cmds: list[Command] = [
        *capture_cmds,
        StopSpeech(run_id=state.active_runs.speech),
    ]

    if fatal:
        new_state = replace(
            new_state,
            is_studying=False,
            generation=state.generation + 1,
            interrupted=False,
        )
        cmds.append(CancelAllTimers())
    else:
        cmds.extend([
            CancelTimer(kind=TimerKind.RETURN_TO_LISTENING),
            CancelTimer(kind=TimerKind.INTERRUPTION_RESUME),
            StartTimer(
                kind=TimerKind.ERROR_RECOVERY,
                duration_ms=ERROR_RECOVERY_DELAY_MS,
                timeout_event_type=EventType.ERROR_RECOVERY_ELAPSED,
                token=new_state.generation,
            ),
        ])

    cmds.append(PublishState())
    cmds.append(
        _log(
            new_state,
            event,
            "enter_error",
            {
                "kind": kind.value,
                "fatal": fatal,
                "message": message,
                "detail": detail,
            },
        )
    )
    cmds.append(_state_changed(state, new_state, event, source))
    return new_state, _logs_last(tuple(cmds))


# =============================================================================
# Interruptions
# =============================================================================

def _pause(
    state: OrchestratorState, event: Event
) -> tuple[OrchestratorState, list[Command]]:
    """Soft pause: capture and playback stop, state is unchanged."""
    new_state, capture_cmds = _stop_capture(state)
    new_state = replace(new_state, interrupted=True)

    return new_state, [
        *capture_cmds,
        StopSpeech(run_id=state.active_runs.speech),
        CancelTimer(kind=TimerKind.RETURN_TO_LISTENING),
        CancelTimer(kind=TimerKind.ERROR_RECOVERY),
        CancelTimer(kind=TimerKind.INTERRUPTION_RESUME),
        _log(new_state, event, "pause", {"state": state.state.value}),
    ]


def _resume_later(state: OrchestratorState, event: Event) -> list[Command]:
    return [
        StartTimer(
            kind=TimerKind.INTERRUPTION_RESUME,
            duration_ms=INTERRUPTION_RESUME_DELAY_MS,
            timeout_event_type=EventType.INTERRUPTION_RESUME_ELAPSED,
            token=state.generation,
        ),
        _log(state, event, "resume_scheduled", {"delay_ms": INTERRUPTION_RESUME_DELAY_MS}),
    ]


def _resume_capture(
    state: OrchestratorState, event: Event, source: str
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """
    Restart capture after an interruption.

    ERROR and DISPLAYING (playback was cut) become LISTENING.
    """
    cmds: list[Command] = [
        CancelTimer(kind=TimerKind.ERROR_RECOVERY),
        CancelTimer(kind=TimerKind.RETURN_TO_LISTENING),
        CancelTimer(kind=TimerKind.INTERRUPTION_RESUME),
    ]

    new_state = state
    if state.state is State.DISPLAYING:
        cmds.append(StopSpeech(run_id=state.active_runs.speech))

    if state.state in (State.ERROR, State.DISPLAYING):
        new_state = replace(_clear_display(state), state=State.LISTENING)

    new_state, capture_cmds = _start_capture(new_state)
    cmds.extend(capture_cmds)
    cmds.append(PublishState())
    cmds.append(_log(new_state, event, "resume_capture", {"source": source}))

    if new_state.state is not state.state:
        cmds.append(_state_changed(state, new_state, event, source))

    return new_state, _logs_last(tuple(cmds))


def _end_interruption(
    state: OrchestratorState, event: Event, source: str
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """
    Lift a pause while a lookup is outstanding.

    Capture stays stopped; the lookup result drives the next transition.
    """
    new_state = replace(state, interrupted=False)
    return new_state, (
        CancelTimer(kind=TimerKind.INTERRUPTION_RESUME),
        _log(new_state, event, "interruption_ended", {"source": source}),
    )


def _reduce_interruption(
    state: OrchestratorState, event: Event
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    action = decide_interruption(state, event)

    if action is InterruptionAction.NONE:
        if isinstance(event, AppDidEnterBackground) and not state.is_studying:
            new_state = replace(state, was_studying_before_background=False)
            return _ignore(new_state, event, "not_studying")
        if not state.is_studying:
            return _ignore(state, event, "not_studying")
        return _ignore(state, event, "no_interruption_action")

    if action is InterruptionAction.PAUSE:
        new_state, cmds = _pause(state, event)
        return new_state, _logs_last(tuple(cmds))

    if action is InterruptionAction.PAUSE_THEN_RESUME:
        new_state, cmds = _pause(state, event)
        cmds.extend(_resume_later(new_state, event))
        return new_state, _logs_last(tuple(cmds))

    if action is InterruptionAction.RESUME_LATER:
        return state, _logs_last(tuple(_resume_later(state, event)))

    if action is InterruptionAction.RESUME_NOW:
        return _resume_capture(state, event, "app_did_resume")

    if action is InterruptionAction.END_INTERRUPTION:
        return _end_interruption(state, event, "app_did_resume")

    if action is InterruptionAction.STOP_SESSION:
        return _stop_session(
            state,
            event,
            "background",
            was_studying_before_background=True,
        )

    if action is InterruptionAction.RESTART_SESSION:
        return _start_session(state, event, "resume_after_background")

    raise ValueError(f"Unhandled interruption action: {action}")


# =============================================================================
# Reducer entrypoint
# =============================================================================

def reduce(
    state: OrchestratorState, event: Event
) -> tuple[OrchestratorState, tuple[Command, ...]]:
    """
    Pure reducer for the study session state machine.

    Given the current orchestrator state and a single event, returns:
    - the next state
    - a tuple of commands describing required side effects

    Properties:
    - Deterministic: no IO, clocks, or randomness
    - Total: every (state, event) pair is handled or explicitly ignored
    - Version-safe: ignores events with stale run IDs or generations
    """

    # ------------------------------------------------------------------
    # Observability-only events
    # ------------------------------------------------------------------
    if isinstance(event, SessionStarted):
        return state, (
            _log(state, event, "session_started", {"session_id": event.session_id}),
        )

    if isinstance(event, SessionEnded):
        return state, (
            _log(state, event, "session_ended", {"session_id": event.session_id}),
        )

    # ------------------------------------------------------------------
    # Caller control
    # ------------------------------------------------------------------
    if isinstance(event, Start):
        if state.is_studying:
            return _ignore(state, event, "already_studying")
        return _start_session(state, event, "start")

    if isinstance(event, Stop):
        if state.state is State.IDLE and not state.is_studying:
            return _ignore(state, event, "already_idle")
        return _stop_session(state, event, "stop")

    # ------------------------------------------------------------------
    # Interruptions
    # ------------------------------------------------------------------
    if isinstance(event, _INTERRUPTION_EVENTS):
        return _reduce_interruption(state, event)

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------
    if isinstance(event, (CaptureStarted, CaptureFailed, CaptureError, TranscriptUpdate, WordDetected)):
        if _is_stale(state, event):
            return _ignore(state, event, "stale_run")
        if not state.is_studying:
            return _ignore(state, event, "not_studying")
        if not state.capture_active:
            return _ignore(state, event, "capture_inactive")

        if isinstance(event, CaptureStarted):
            return state, (
                _log(state, event, "capture_started", {"capture_run_id": event.run_id}),
            )

        if isinstance(event, CaptureFailed):
            return _enter_error(state, event, event.kind, event.detail, "capture_failed")

        if isinstance(event, CaptureError):
            return _enter_error(state, event, event.kind, event.detail, "capture_error")

        if isinstance(event, TranscriptUpdate):
            return state, (
                _log(
                    state,
                    event,
                    "transcript_update",
                    {"chars": len(event.text), "is_final": event.is_final},
                ),
            )

        # WordDetected
        if state.state is not State.LISTENING:
            return _ignore(state, event, "not_listening")

        new_state, capture_cmds = _stop_capture(state)
        new_runs = _bump_run_id(new_state.active_runs, Service.LOOKUP)
        new_state = replace(
            new_state,
            state=State.PROCESSING,
            active_runs=new_runs,
            current_word=event.word,
            definition=None,
        )
        return new_state, _logs_last((
            *capture_cmds,
            StartLookup(run_id=new_runs.lookup, word=event.word),
            PublishState(),
            _log(new_state, event, "start_lookup", {"word": event.word}),
            _state_changed(state, new_state, event, "word_detected"),
        ))

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    if isinstance(event, (LookupSucceeded, LookupFailed)):
        if _is_stale(state, event):
            return _ignore(state, event, "stale_run")
        if not state.is_studying:
            return _ignore(state, event, "not_studying")
        if state.state is not State.PROCESSING:
            return _ignore(state, event, "not_processing")

        if isinstance(event, LookupFailed):
            return _enter_error(state, event, event.kind, event.detail, "lookup_failed")

        new_runs = _bump_run_id(state.active_runs, Service.SPEECH)
        new_state = replace(
            state,
            state=State.DISPLAYING,
            active_runs=new_runs,
            definition=event.definition,
        )

        if state.interrupted:
            # Playback stays paused; the resume path moves on to LISTENING
            return new_state, _logs_last((
                PublishState(),
                _log(new_state, event, "speech_deferred", {"reason": "interrupted"}),
                _state_changed(state, new_state, event, "lookup_succeeded"),
            ))

        return new_state, _logs_last((
            Speak(run_id=new_runs.speech, text=format_for_speech(event.definition)),
            StartTimer(
                kind=TimerKind.RETURN_TO_LISTENING,
                duration_ms=PLAYBACK_CHECK_INTERVAL_MS,
                timeout_event_type=EventType.PLAYBACK_CHECK,
                token=new_runs.speech,
            ),
            PublishState(),
            _state_changed(state, new_state, event, "lookup_succeeded"),
        ))

    # ------------------------------------------------------------------
    # Return to listening (speech completion, poll, grace)
    # ------------------------------------------------------------------
    if isinstance(event, (SpeechFinished, PlaybackCheck, ReadingGraceElapsed)):
        if event.run_id != state.active_runs.speech:
            return _ignore(state, event, "stale_run")
        if not state.is_studying:
            return _ignore(state, event, "not_studying")
        if state.state is not State.DISPLAYING:
            return _ignore(state, event, "not_displaying")
        if state.interrupted:
            return _ignore(state, event, "interrupted")

        if isinstance(event, PlaybackCheck) and event.is_speaking:
            return state, (
                StartTimer(
                    kind=TimerKind.RETURN_TO_LISTENING,
                    duration_ms=PLAYBACK_CHECK_INTERVAL_MS,
                    timeout_event_type=EventType.PLAYBACK_CHECK,
                    token=event.run_id,
                ),
                _log(state, event, "playback_in_progress"),
            )

        if isinstance(event, (SpeechFinished, PlaybackCheck)):
            return state, (
                StartTimer(
                    kind=TimerKind.RETURN_TO_LISTENING,
                    duration_ms=READING_GRACE_MS,
                    timeout_event_type=EventType.READING_GRACE_ELAPSED,
                    token=event.run_id,
                ),
                _log(state, event, "reading_grace", {"delay_ms": READING_GRACE_MS}),
            )

        # ReadingGraceElapsed
        new_state = replace(_clear_display(state), state=State.LISTENING)
        new_state, capture_cmds = _start_capture(new_state)
        return new_state, _logs_last((
            *capture_cmds,
            PublishState(),
            _state_changed(state, new_state, event, "return_to_listening"),
        ))

    # ------------------------------------------------------------------
    # Error recovery
    # ------------------------------------------------------------------
    if isinstance(event, ErrorRecoveryElapsed):
        if event.generation != state.generation:
            return _ignore(state, event, "stale_generation")
        if not state.is_studying:
            return _ignore(state, event, "not_studying")
        if state.state is not State.ERROR:
            return _ignore(state, event, "not_in_error")
        if state.interrupted:
            return _ignore(state, event, "interrupted")

        new_state = replace(_clear_display(state), state=State.LISTENING)
        new_state, capture_cmds = _start_capture(new_state)
        return new_state, _logs_last((
            *capture_cmds,
            PublishState(),
            _state_changed(state, new_state, event, "error_recovered"),
        ))

    # ------------------------------------------------------------------
    # Delayed resume after audio focus / route change
    # ------------------------------------------------------------------
    if isinstance(event, InterruptionResumeElapsed):
        if event.generation != state.generation:
            return _ignore(state, event, "stale_generation")
        if not state.is_studying:
            return _ignore(state, event, "not_studying")
        if ends_interruption_only(state):
            return _end_interruption(state, event, "interruption_resume")
        if not can_resume_capture(state):
            return _ignore(state, event, "resume_not_applicable")
        return _resume_capture(state, event, "interruption_resume")

    return _ignore(state, event, "unhandled_event")

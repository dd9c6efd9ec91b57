"""
Interruption coordination.

Two halves:

1. Policy (pure): decide_interruption(state, event) maps an interruption
   event onto an InterruptionAction for the reducer to apply. No side
   effects, no clocks.

2. Coordinator (imperative edge): InterruptionCoordinator translates raw
   platform / client signals into interruption events and submits them to
   the runtime's single event channel. It never touches collaborators or
   orchestrator state directly.

Signal -> action table (only while the session is active):

    WILL_SUSPEND                      PAUSE
    DID_RESUME                        RESUME_NOW (END_INTERRUPTION while PROCESSING)
    DID_ENTER_BACKGROUND              STOP_SESSION
    WILL_ENTER_FOREGROUND             (no event; preparation only)
    audio focus lost                  PAUSE
    audio focus regained + resume     RESUME_LATER
    output device removed             PAUSE_THEN_RESUME
    other route changes               (no event)
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Callable, Mapping

from observability.logger import log_event
from orchestrator.enums.state import State
from orchestrator.events import (
    AppDidEnterBackground,
    AppDidResume,
    AppWillSuspend,
    AudioFocusLost,
    AudioFocusRegained,
    Event,
    EventType,
    OutputDeviceRemoved,
)
from orchestrator.state_dataclass import OrchestratorState


# =============================================================================
# Signal vocabulary
# =============================================================================

class LifecycleSignal(str, Enum):
    WILL_SUSPEND = "WILL_SUSPEND"
    DID_RESUME = "DID_RESUME"
    DID_ENTER_BACKGROUND = "DID_ENTER_BACKGROUND"
    WILL_ENTER_FOREGROUND = "WILL_ENTER_FOREGROUND"


class AudioInterruptionPhase(str, Enum):
    BEGAN = "BEGAN"
    ENDED = "ENDED"


class RouteChangeReason(str, Enum):
    OLD_DEVICE_UNAVAILABLE = "OLD_DEVICE_UNAVAILABLE"
    NEW_DEVICE_AVAILABLE = "NEW_DEVICE_AVAILABLE"
    CATEGORY_CHANGE = "CATEGORY_CHANGE"
    OVERRIDE = "OVERRIDE"
    UNKNOWN = "UNKNOWN"


# =============================================================================
# Policy
# =============================================================================

class InterruptionAction(str, Enum):
    """
    NONE:
        Nothing to do (inactive session, or not applicable in this state).
    PAUSE:
        Stop capture + playback, state unchanged.
    RESUME_NOW:
        Restart capture now; Error/Displaying become Listening.
    RESUME_LATER:
        Arm the interruption-resume delay, then RESUME_NOW.
    PAUSE_THEN_RESUME:
        PAUSE followed by RESUME_LATER.
    STOP_SESSION:
        Full stop, remembering the session was active.
    RESTART_SESSION:
        Start a fresh session (resume after background, when enabled).
    END_INTERRUPTION:
        Clear the pause without touching capture; the pending lookup
        result then runs the normal display or error path.
    """

    NONE = "NONE"
    PAUSE = "PAUSE"
    RESUME_NOW = "RESUME_NOW"
    RESUME_LATER = "RESUME_LATER"
    PAUSE_THEN_RESUME = "PAUSE_THEN_RESUME"
    STOP_SESSION = "STOP_SESSION"
    RESTART_SESSION = "RESTART_SESSION"
    END_INTERRUPTION = "END_INTERRUPTION"


def can_resume_capture(state: OrchestratorState) -> bool:
    """
    Capture may be restarted by an interruption handler.

    Never while PROCESSING (a lookup owns the cycle). Otherwise only when
    something actually interrupted the loop or the session sits in Error;
    a resume signal on its own must not restart capture over playback.
    """
    if not state.is_studying:
        return False
    if state.state is State.PROCESSING:
        return False
    return state.interrupted or state.state is State.ERROR


def ends_interruption_only(state: OrchestratorState) -> bool:
    """A resume that lands while a lookup is outstanding only lifts the pause."""
    return (
        state.is_studying
        and state.interrupted
        and state.state is State.PROCESSING
    )


def decide_interruption(
    state: OrchestratorState, event: Event
) -> InterruptionAction:
    et = event.event_type

    if not state.is_studying:
        if (
            et is EventType.APP_DID_RESUME
            and state.was_studying_before_background
            and state.resume_after_background
        ):
            return InterruptionAction.RESTART_SESSION
        return InterruptionAction.NONE

    if et is EventType.APP_WILL_SUSPEND:
        return InterruptionAction.PAUSE

    if et is EventType.AUDIO_FOCUS_LOST:
        return InterruptionAction.PAUSE

    if et is EventType.APP_DID_RESUME:
        if can_resume_capture(state):
            return InterruptionAction.RESUME_NOW
        if ends_interruption_only(state):
            return InterruptionAction.END_INTERRUPTION
        return InterruptionAction.NONE

    if et is EventType.APP_DID_ENTER_BACKGROUND:
        return InterruptionAction.STOP_SESSION

    if et is EventType.AUDIO_FOCUS_REGAINED:
        if isinstance(event, AudioFocusRegained) and event.should_resume:
            return InterruptionAction.RESUME_LATER
        return InterruptionAction.NONE

    if et is EventType.OUTPUT_DEVICE_REMOVED:
        return InterruptionAction.PAUSE_THEN_RESUME

    return InterruptionAction.NONE


# =============================================================================
# Coordinator (signal -> event translation)
# =============================================================================

EventSink = Callable[[Event], None]


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class InterruptionCoordinator:
    """
    Translates platform signals into events on the runtime's channel.

    The sink is Runtime.submit (thread-safe), so platform callbacks may
    arrive from any thread.
    """

    def __init__(
        self,
        submit: EventSink,
        *,
        session_id: str = "",
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._submit = submit
        self._session_id = session_id
        self._clock = clock

    # ------------------------------------------------------------------
    # Typed signals
    # ------------------------------------------------------------------

    def on_lifecycle(self, signal: LifecycleSignal) -> None:
        ts = self._clock()

        if signal is LifecycleSignal.WILL_SUSPEND:
            self._submit(AppWillSuspend(event_type=EventType.APP_WILL_SUSPEND, ts_ms=ts))
        elif signal is LifecycleSignal.DID_RESUME:
            self._submit(AppDidResume(event_type=EventType.APP_DID_RESUME, ts_ms=ts))
        elif signal is LifecycleSignal.DID_ENTER_BACKGROUND:
            self._submit(
                AppDidEnterBackground(
                    event_type=EventType.APP_DID_ENTER_BACKGROUND, ts_ms=ts
                )
            )
        else:
            # WILL_ENTER_FOREGROUND: resumption is handled on DID_RESUME
            self._trace("lifecycle_no_action", signal=signal.value)

    def on_audio_interruption(
        self,
        phase: AudioInterruptionPhase,
        *,
        should_resume: bool = False,
    ) -> None:
        ts = self._clock()

        if phase is AudioInterruptionPhase.BEGAN:
            self._submit(AudioFocusLost(event_type=EventType.AUDIO_FOCUS_LOST, ts_ms=ts))
        else:
            self._submit(
                AudioFocusRegained(
                    event_type=EventType.AUDIO_FOCUS_REGAINED,
                    ts_ms=ts,
                    should_resume=should_resume,
                )
            )

    def on_route_change(self, reason: RouteChangeReason) -> None:
        if reason is RouteChangeReason.OLD_DEVICE_UNAVAILABLE:
            self._submit(
                OutputDeviceRemoved(
                    event_type=EventType.OUTPUT_DEVICE_REMOVED,
                    ts_ms=self._clock(),
                )
            )
        else:
            self._trace("route_change_ignored", reason=reason.value)

    # ------------------------------------------------------------------
    # Loosely-typed client payloads
    # ------------------------------------------------------------------

    def handle_client_message(self, msg: Mapping[str, Any]) -> bool:
        """
        Dispatch a client JSON message describing an interruption.

        Returns True if the message was an interruption message (whether
        or not it produced an event). Malformed payloads are logged and
        dropped.
        """
        msg_type = msg.get("type")

        if msg_type == "LIFECYCLE":
            signal = _parse_enum(LifecycleSignal, msg.get("signal"))
            if signal is None:
                self._trace("interruption_payload_invalid", payload=dict(msg))
            else:
                self.on_lifecycle(signal)
            return True

        if msg_type == "AUDIO_INTERRUPTION":
            phase = _parse_enum(AudioInterruptionPhase, msg.get("phase"))
            if phase is None:
                self._trace("interruption_payload_invalid", payload=dict(msg))
            else:
                self.on_audio_interruption(
                    phase, should_resume=bool(msg.get("should_resume", False))
                )
            return True

        if msg_type == "ROUTE_CHANGE":
            reason = _parse_enum(RouteChangeReason, msg.get("reason"))
            self.on_route_change(reason or RouteChangeReason.UNKNOWN)
            return True

        return False

    def _trace(self, event_type: str, **fields: Any) -> None:
        log_event({
            "ts_ms": self._clock(),
            "event_type": event_type,
            "session_id": self._session_id,
            **fields,
        })


def _parse_enum(enum_cls: type[Enum], raw: Any) -> Any:
    if not isinstance(raw, str):
        return None
    try:
        return enum_cls(raw.upper())
    except ValueError:
        return None

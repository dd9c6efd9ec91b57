# pylint: disable=missing-module-docstring,missing-function-docstring
from dataclasses import replace

from constants import PLAYBACK_CHECK_INTERVAL_MS, READING_GRACE_MS
from dictionary.models import Definition, Entry, Meaning
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import OrchestratorState
from orchestrator.run_ids import RunIds
from orchestrator.enums.state import State
from orchestrator.enums.service import Service
from orchestrator.enums.timer import TimerKind

from orchestrator.events import (
    AppDidResume,
    EventType,
    LookupSucceeded,
    PlaybackCheck,
    ReadingGraceElapsed,
    SpeechFinished,
    Stop,
)

from orchestrator.commands import (
    Command,
    LogEvent,
    PublishState,
    ResetWordExtractor,
    Speak,
    StartCapture,
    StartTimer,
)


HELLO = Definition(
    word="hello",
    phonetic="/həˈləʊ/",
    meanings=(
        Meaning(
            part_of_speech="exclamation",
            entries=(Entry(definition="used as a greeting"),),
        ),
    ),
)


def processing() -> OrchestratorState:
    return OrchestratorState(
        state=State.PROCESSING,
        is_studying=True,
        generation=1,
        active_runs=RunIds(capture=1, lookup=1),
        current_word="hello",
    )


def succeeded(run_id: int = 1) -> LookupSucceeded:
    return LookupSucceeded(
        ts_ms=0,
        event_type=EventType.LOOKUP_SUCCEEDED,
        service=Service.LOOKUP,
        run_id=run_id,
        word="hello",
        definition=HELLO,
    )


def check(run_id: int, is_speaking: bool) -> PlaybackCheck:
    return PlaybackCheck(
        ts_ms=0,
        event_type=EventType.PLAYBACK_CHECK,
        run_id=run_id,
        is_speaking=is_speaking,
    )


def grace(run_id: int) -> ReadingGraceElapsed:
    return ReadingGraceElapsed(
        ts_ms=0,
        event_type=EventType.READING_GRACE_ELAPSED,
        run_id=run_id,
    )


def finished(run_id: int) -> SpeechFinished:
    return SpeechFinished(
        ts_ms=0,
        event_type=EventType.SPEECH_FINISHED,
        service=Service.SPEECH,
        run_id=run_id,
    )


def non_log(commands: tuple[Command, ...]) -> list[Command]:
    return [c for c in commands if not isinstance(c, LogEvent)]


def ignore_reasons(commands: tuple[Command, ...]) -> list[str]:
    return [
        c.event["details"]["reason"]
        for c in commands
        if isinstance(c, LogEvent) and c.event["decision"] == "ignore"
    ]


def playback_timer(run_id: int) -> StartTimer:
    return StartTimer(
        kind=TimerKind.RETURN_TO_LISTENING,
        duration_ms=PLAYBACK_CHECK_INTERVAL_MS,
        timeout_event_type=EventType.PLAYBACK_CHECK,
        token=run_id,
    )


def grace_timer(run_id: int) -> StartTimer:
    return StartTimer(
        kind=TimerKind.RETURN_TO_LISTENING,
        duration_ms=READING_GRACE_MS,
        timeout_event_type=EventType.READING_GRACE_ELAPSED,
        token=run_id,
    )


# ---------------------------------------------------------------------
# Lookup success
# ---------------------------------------------------------------------

def test_lookup_success_displays_speaks_and_arms_playback_check():
    new_state, commands = reduce(processing(), succeeded(1))

    assert new_state.state == State.DISPLAYING
    assert new_state.definition == HELLO
    assert new_state.active_runs.speech == 1
    assert new_state.capture_active is False

    assert non_log(commands) == [
        Speak(run_id=1, text="hello, exclamation. used as a greeting"),
        playback_timer(1),
        PublishState(),
    ]


def test_lookup_success_while_still_paused_displays_then_resume_listens():
    state = replace(processing(), interrupted=True)

    new_state, commands = reduce(state, succeeded(1))

    assert new_state.state == State.DISPLAYING
    assert non_log(commands) == [PublishState()]

    resumed, commands = reduce(
        new_state, AppDidResume(ts_ms=0, event_type=EventType.APP_DID_RESUME)
    )

    assert resumed.state == State.LISTENING
    assert resumed.interrupted is False
    assert StartCapture(run_id=2) in non_log(commands)


def test_lookup_success_after_pause_has_ended_speaks():
    paused = replace(processing(), interrupted=True)
    unpaused, _ = reduce(
        paused, AppDidResume(ts_ms=0, event_type=EventType.APP_DID_RESUME)
    )

    new_state, commands = reduce(unpaused, succeeded(1))

    assert new_state.state == State.DISPLAYING
    assert new_state.interrupted is False
    cmds = non_log(commands)
    assert any(isinstance(c, Speak) and c.run_id == 1 for c in cmds)
    assert playback_timer(1) in cmds


# ---------------------------------------------------------------------
# Playback poll
# ---------------------------------------------------------------------

def test_still_speaking_rearms_one_second_check():
    displaying, _ = reduce(processing(), succeeded(1))

    new_state, commands = reduce(displaying, check(1, is_speaking=True))

    assert new_state == displaying
    assert non_log(commands) == [playback_timer(1)]


def test_not_speaking_arms_reading_grace():
    displaying, _ = reduce(processing(), succeeded(1))

    new_state, commands = reduce(displaying, check(1, is_speaking=False))

    assert new_state == displaying
    assert non_log(commands) == [grace_timer(1)]


def test_speech_finished_short_circuits_to_reading_grace():
    displaying, _ = reduce(processing(), succeeded(1))

    new_state, commands = reduce(displaying, finished(1))

    assert new_state == displaying
    assert non_log(commands) == [grace_timer(1)]


def test_reading_grace_elapsed_returns_to_listening():
    displaying, _ = reduce(processing(), succeeded(1))

    new_state, commands = reduce(displaying, grace(1))

    assert new_state.state == State.LISTENING
    assert new_state.definition is None
    assert new_state.current_word is None
    assert new_state.capture_active is True
    assert new_state.active_runs.capture == 2

    assert non_log(commands) == [
        ResetWordExtractor(),
        StartCapture(run_id=2),
        PublishState(),
    ]


# ---------------------------------------------------------------------
# Staleness
# ---------------------------------------------------------------------

def test_playback_events_for_old_speech_run_are_ignored():
    displaying, _ = reduce(processing(), succeeded(1))
    newer = replace(displaying, active_runs=replace(displaying.active_runs, speech=2))

    for event in (check(1, False), finished(1), grace(1)):
        new_state, commands = reduce(newer, event)
        assert new_state == newer
        assert ignore_reasons(commands) == ["stale_run"]


def test_reading_grace_after_stop_does_not_restart_capture():
    displaying, _ = reduce(processing(), succeeded(1))
    stopped, _ = reduce(displaying, Stop(ts_ms=0, event_type=EventType.STOP))

    new_state, commands = reduce(stopped, grace(1))

    assert new_state == stopped
    assert not any(isinstance(c, StartCapture) for c in commands)
    assert ignore_reasons(commands) == ["not_studying"]


def test_playback_check_while_interrupted_is_ignored():
    displaying, _ = reduce(processing(), succeeded(1))
    paused = replace(displaying, interrupted=True)

    new_state, commands = reduce(paused, check(1, is_speaking=False))

    assert new_state == paused
    assert ignore_reasons(commands) == ["interrupted"]

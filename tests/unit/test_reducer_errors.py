# pylint: disable=missing-module-docstring,missing-function-docstring
from dataclasses import replace

import pytest

from constants import ERROR_RECOVERY_DELAY_MS
from dictionary.models import Definition
from orchestrator.reducer import reduce
from orchestrator.state_dataclass import OrchestratorState
from orchestrator.run_ids import RunIds
from orchestrator.enums.state import State
from orchestrator.enums.service import Service
from orchestrator.enums.timer import TimerKind
from orchestrator.errors import ErrorKind, is_fatal, user_message

from orchestrator.events import (
    CaptureError,
    CaptureFailed,
    ErrorRecoveryElapsed,
    EventType,
    LookupFailed,
    LookupSucceeded,
)

from orchestrator.commands import (
    CancelAllTimers,
    CancelTimer,
    Command,
    LogEvent,
    StartCapture,
    StartTimer,
    StopCapture,
    StopSpeech,
)


def processing(lookup_run: int = 1, generation: int = 1) -> OrchestratorState:
    return OrchestratorState(
        state=State.PROCESSING,
        is_studying=True,
        generation=generation,
        active_runs=RunIds(capture=1, lookup=lookup_run),
        current_word="hello",
    )


def listening(capture_run: int = 1, generation: int = 1) -> OrchestratorState:
    return OrchestratorState(
        state=State.LISTENING,
        is_studying=True,
        generation=generation,
        active_runs=RunIds(capture=capture_run),
        capture_active=True,
    )


def lookup_failed(run_id: int, kind: ErrorKind) -> LookupFailed:
    return LookupFailed(
        ts_ms=0,
        event_type=EventType.LOOKUP_FAILED,
        service=Service.LOOKUP,
        run_id=run_id,
        word="hello",
        kind=kind,
    )


def capture_failed(run_id: int, kind: ErrorKind) -> CaptureFailed:
    return CaptureFailed(
        ts_ms=0,
        event_type=EventType.CAPTURE_FAILED,
        service=Service.CAPTURE,
        run_id=run_id,
        kind=kind,
    )


def capture_error(run_id: int, kind: ErrorKind) -> CaptureError:
    return CaptureError(
        ts_ms=0,
        event_type=EventType.CAPTURE_ERROR,
        service=Service.CAPTURE,
        run_id=run_id,
        kind=kind,
    )


def recovery(generation: int) -> ErrorRecoveryElapsed:
    return ErrorRecoveryElapsed(
        ts_ms=0,
        event_type=EventType.ERROR_RECOVERY_ELAPSED,
        generation=generation,
    )


def non_log(commands: tuple[Command, ...]) -> list[Command]:
    return [c for c in commands if not isinstance(c, LogEvent)]


def ignore_reasons(commands: tuple[Command, ...]) -> list[str]:
    return [
        c.event["details"]["reason"]
        for c in commands
        if isinstance(c, LogEvent) and c.event["decision"] == "ignore"
    ]


# ---------------------------------------------------------------------
# Policy table
# ---------------------------------------------------------------------

@pytest.mark.parametrize(
    "kind,message",
    [
        (ErrorKind.LOOKUP_NOT_FOUND, "Word not found in dictionary"),
        (ErrorKind.LOOKUP_NETWORK, "Check internet connection"),
        (ErrorKind.LOOKUP_INVALID_INPUT, "Dictionary service unavailable"),
        (ErrorKind.LOOKUP_UNAVAILABLE, "Dictionary service unavailable"),
        (ErrorKind.LOOKUP_DECODE, "Dictionary service unavailable"),
        (ErrorKind.CAPTURE_NOT_AUTHORIZED, "Microphone access required. Please enable in Settings."),
        (ErrorKind.CAPTURE_MICROPHONE_UNAVAILABLE, "Microphone not accessible"),
        (ErrorKind.CAPTURE_ENGINE_UNAVAILABLE, "Speech recognition unavailable"),
        (ErrorKind.CAPTURE_SESSION_CONFIG, "Audio system error"),
        (ErrorKind.CAPTURE_RECOGNITION_FAILED, "Speech recognition failed"),
    ],
)
def test_user_messages(kind: ErrorKind, message: str):
    assert user_message(kind) == message


def test_fatal_kinds():
    assert is_fatal(ErrorKind.CAPTURE_NOT_AUTHORIZED)
    assert is_fatal(ErrorKind.CAPTURE_MICROPHONE_UNAVAILABLE)
    assert is_fatal(ErrorKind.CAPTURE_ENGINE_UNAVAILABLE)
    assert is_fatal(ErrorKind.CAPTURE_SESSION_CONFIG)

    assert not is_fatal(ErrorKind.CAPTURE_RECOGNITION_FAILED)
    assert not is_fatal(ErrorKind.LOOKUP_NOT_FOUND)
    assert not is_fatal(ErrorKind.LOOKUP_NETWORK)
    assert not is_fatal(ErrorKind.UNKNOWN)


# ---------------------------------------------------------------------
# Recoverable errors
# ---------------------------------------------------------------------

def test_lookup_not_found_enters_error_and_arms_recovery():
    state = processing(lookup_run=1, generation=1)

    new_state, commands = reduce(state, lookup_failed(1, ErrorKind.LOOKUP_NOT_FOUND))

    assert new_state.state == State.ERROR
    assert new_state.last_error == "Word not found in dictionary"
    assert new_state.is_studying is True

    cmds = non_log(commands)
    assert StopSpeech(run_id=0) in cmds
    assert CancelTimer(kind=TimerKind.RETURN_TO_LISTENING) in cmds
    assert StartTimer(
        kind=TimerKind.ERROR_RECOVERY,
        duration_ms=ERROR_RECOVERY_DELAY_MS,
        timeout_event_type=EventType.ERROR_RECOVERY_ELAPSED,
        token=1,
    ) in cmds


def test_recovery_elapsed_returns_to_listening_with_capture():
    errored, _ = reduce(processing(), lookup_failed(1, ErrorKind.LOOKUP_NETWORK))

    new_state, commands = reduce(errored, recovery(errored.generation))

    assert new_state.state == State.LISTENING
    assert new_state.last_error is None
    assert new_state.capture_active is True
    assert StartCapture(run_id=errored.active_runs.capture + 1) in non_log(commands)


def test_recovery_with_stale_generation_is_ignored():
    errored, _ = reduce(processing(generation=1), lookup_failed(1, ErrorKind.LOOKUP_NETWORK))
    # stop/start happened since the timer was armed
    newer = replace(errored, generation=3)

    new_state, commands = reduce(newer, recovery(1))

    assert new_state == newer
    assert ignore_reasons(commands) == ["stale_generation"]


def test_recovery_when_no_longer_in_error_is_ignored():
    state = listening(generation=1)

    new_state, commands = reduce(state, recovery(1))

    assert new_state == state
    assert ignore_reasons(commands) == ["not_in_error"]


def test_mid_stream_recognition_failure_is_recoverable():
    state = listening(capture_run=2)

    new_state, commands = reduce(state, capture_error(2, ErrorKind.CAPTURE_RECOGNITION_FAILED))

    assert new_state.state == State.ERROR
    assert new_state.is_studying is True
    assert new_state.capture_active is False
    assert StopCapture(run_id=2) in non_log(commands)
    assert any(
        isinstance(c, StartTimer) and c.kind is TimerKind.ERROR_RECOVERY
        for c in commands
    )


def test_unknown_error_is_recoverable():
    new_state, _ = reduce(processing(), lookup_failed(1, ErrorKind.UNKNOWN))

    assert new_state.state == State.ERROR
    assert new_state.is_studying is True
    assert new_state.last_error == "An unexpected error occurred"


# ---------------------------------------------------------------------
# Fatal errors
# ---------------------------------------------------------------------

def test_permission_denied_is_fatal():
    state = listening(capture_run=1, generation=1)

    new_state, commands = reduce(state, capture_failed(1, ErrorKind.CAPTURE_NOT_AUTHORIZED))

    assert new_state.state == State.ERROR
    assert new_state.last_error == "Microphone access required. Please enable in Settings."
    assert new_state.is_studying is False
    assert new_state.generation == 2

    cmds = non_log(commands)
    assert CancelAllTimers() in cmds
    assert not any(isinstance(c, StartTimer) for c in cmds)


def test_recovery_after_fatal_error_is_ignored():
    fatal, _ = reduce(listening(), capture_failed(1, ErrorKind.CAPTURE_ENGINE_UNAVAILABLE))

    new_state, commands = reduce(fatal, recovery(fatal.generation))

    assert new_state == fatal
    assert ignore_reasons(commands) == ["not_studying"]


# ---------------------------------------------------------------------
# Errors for stale / inactive contexts
# ---------------------------------------------------------------------

def test_lookup_failure_from_stale_run_is_ignored():
    state = processing(lookup_run=2)

    new_state, commands = reduce(state, lookup_failed(1, ErrorKind.LOOKUP_NETWORK))

    assert new_state == state
    assert ignore_reasons(commands) == ["stale_run"]


def test_lookup_result_after_stop_is_ignored():
    state = replace(processing(lookup_run=1), state=State.IDLE, is_studying=False, current_word=None)
    event = LookupSucceeded(
        ts_ms=0,
        event_type=EventType.LOOKUP_SUCCEEDED,
        service=Service.LOOKUP,
        run_id=1,
        word="hello",
        definition=Definition(word="hello"),
    )

    new_state, commands = reduce(state, event)

    assert new_state == state
    assert non_log(commands) == []
    assert ignore_reasons(commands) == ["not_studying"]


def test_capture_failure_after_capture_stopped_is_ignored():
    state = replace(listening(capture_run=1), capture_active=False)

    new_state, commands = reduce(state, capture_failed(1, ErrorKind.CAPTURE_ENGINE_UNAVAILABLE))

    assert new_state == state
    assert ignore_reasons(commands) == ["capture_inactive"]

"""
Observable session state.

The orchestrator snapshot carries bookkeeping (run ids, generation,
flags) that observers must not depend on. This module projects it onto
the closed tagged union the presentation layer renders:

    Idle | Listening | Processing(word) | Displaying(definition) | Error(message)

Exactly one value is active at any time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from dictionary.models import Definition
from dictionary.serialization import serialize_definition
from orchestrator.enums.state import State
from orchestrator.state_dataclass import OrchestratorState


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Listening:
    pass


@dataclass(frozen=True)
class Processing:
    word: str


@dataclass(frozen=True)
class Displaying:
    definition: Definition


@dataclass(frozen=True)
class Error:
    message: str


StudyState = Union[Idle, Listening, Processing, Displaying, Error]


def project(snapshot: OrchestratorState) -> StudyState:
    """Derive the observable state from an orchestrator snapshot."""
    s = snapshot.state

    if s is State.IDLE:
        return Idle()
    if s is State.LISTENING:
        return Listening()
    if s is State.PROCESSING:
        return Processing(word=snapshot.current_word or "")
    if s is State.DISPLAYING:
        # Reducer guarantees a definition while DISPLAYING
        assert snapshot.definition is not None
        return Displaying(definition=snapshot.definition)
    if s is State.ERROR:
        return Error(message=snapshot.last_error or "")

    raise ValueError(f"Unhandled state: {s}")


def state_name(value: StudyState) -> str:
    return type(value).__name__.upper()


def to_client_message(value: StudyState, *, is_studying: bool) -> dict[str, Any]:
    """
    JSON-friendly STATE message for the client UI.

    {"type": "STATE", "state": "PROCESSING", "word": "hello",
     "definition": null, "message": null, "is_studying": true}
    """
    return {
        "type": "STATE",
        "state": state_name(value),
        "word": value.word if isinstance(value, Processing) else (
            value.definition.word if isinstance(value, Displaying) else None
        ),
        "definition": (
            serialize_definition(value.definition)
            if isinstance(value, Displaying) else None
        ),
        "message": value.message if isinstance(value, Error) else None,
        "is_studying": is_studying,
    }

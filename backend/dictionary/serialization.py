"""
Definition serialization.

Responsibilities:
- Parse dictionary API payloads into Definition objects
- Serialize Definition objects for the client UI

Non-responsibilities:
- No HTTP
- No error classification (callers map DefinitionDecodeError)
- No orchestration decisions
"""

from __future__ import annotations

from typing import Any

from dictionary.models import Definition, Entry, Meaning


class DefinitionDecodeError(ValueError):
    """Raised when a payload does not have the dictionary entry shape."""


def parse_definition(payload: Any) -> Definition:
    """
    Parse one dictionary entry object.

    Expected shape (dictionaryapi.dev):
    {
        "word": "hello",
        "phonetic": "/həˈləʊ/",          # optional
        "meanings": [
            {
                "partOfSpeech": "noun",
                "definitions": [
                    {"definition": "...", "example": "..."},
                ],
            },
        ],
    }

    Unknown keys are ignored. Missing optional fields become None.
    """
    if not isinstance(payload, dict):
        raise DefinitionDecodeError(f"entry must be an object, got {type(payload).__name__}")

    word = payload.get("word")
    if not isinstance(word, str) or not word:
        raise DefinitionDecodeError("entry.word missing")

    phonetic = payload.get("phonetic")
    if phonetic is not None and not isinstance(phonetic, str):
        raise DefinitionDecodeError("entry.phonetic must be a string")

    raw_meanings = payload.get("meanings", [])
    if not isinstance(raw_meanings, list):
        raise DefinitionDecodeError("entry.meanings must be a list")

    return Definition(
        word=word,
        phonetic=phonetic or None,
        meanings=tuple(_parse_meaning(m) for m in raw_meanings),
    )


def parse_first_definition(payload: Any) -> Definition | None:
    """
    Parse the top-level array returned by the API.

    Returns None for an empty array (no entries for the word).
    """
    if not isinstance(payload, list):
        raise DefinitionDecodeError(f"payload must be a list, got {type(payload).__name__}")
    if not payload:
        return None
    return parse_definition(payload[0])


def _parse_meaning(raw: Any) -> Meaning:
    if not isinstance(raw, dict):
        raise DefinitionDecodeError("meaning must be an object")

    part_of_speech = raw.get("partOfSpeech")
    if not isinstance(part_of_speech, str):
        raise DefinitionDecodeError("meaning.partOfSpeech missing")

    raw_entries = raw.get("definitions", [])
    if not isinstance(raw_entries, list):
        raise DefinitionDecodeError("meaning.definitions must be a list")

    return Meaning(
        part_of_speech=part_of_speech,
        entries=tuple(_parse_entry(e) for e in raw_entries),
    )


def _parse_entry(raw: Any) -> Entry:
    if not isinstance(raw, dict):
        raise DefinitionDecodeError("definition must be an object")

    text = raw.get("definition")
    if not isinstance(text, str):
        raise DefinitionDecodeError("definition.definition missing")

    example = raw.get("example")
    if example is not None and not isinstance(example, str):
        raise DefinitionDecodeError("definition.example must be a string")

    return Entry(definition=text, example=example)


def serialize_definition(definition: Definition) -> dict[str, Any]:
    """Serialize for the client, mirroring the API field names."""
    return {
        "word": definition.word,
        "phonetic": definition.phonetic,
        "meanings": [
            {
                "partOfSpeech": meaning.part_of_speech,
                "definitions": [
                    {"definition": entry.definition, "example": entry.example}
                    for entry in meaning.entries
                ],
            }
            for meaning in definition.meanings
        ],
    }

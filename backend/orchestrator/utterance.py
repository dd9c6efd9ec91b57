"""
Spoken rendering of a Definition.

Pure text formatting; the speech collaborator decides how it sounds.
"""

from __future__ import annotations

from constants import NO_DEFINITION_TEXT
from dictionary.models import Definition


def format_for_speech(definition: Definition) -> str:
    """
    "<word>, <part of speech>. <first definition>"

    Only the first meaning and its first entry are spoken. A definition
    without meanings still produces an utterance.
    """
    first_meaning = definition.meanings[0] if definition.meanings else None

    part_of_speech = first_meaning.part_of_speech if first_meaning else ""
    if first_meaning is not None and first_meaning.entries:
        text = first_meaning.entries[0].definition
    else:
        text = NO_DEFINITION_TEXT

    return f"{definition.word}, {part_of_speech}. {text}"

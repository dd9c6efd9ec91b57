"""
Dictionary data model.

Pure data containers only.
Immutable once constructed; ordering of meanings and entries is the
source order and is significant ("first meaning wins").
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class Entry:
    """A single sense of a word within one part of speech."""
    definition: str
    example: str | None = None


@dataclass(frozen=True)
class Meaning:
    """All senses of a word for one part-of-speech tag."""
    part_of_speech: str
    entries: tuple[Entry, ...] = ()


@dataclass(frozen=True)
class Definition:
    """
    Structured lookup result for one word.

    meanings:
        Ordered as returned by the lookup source. The first meaning,
        and its first entry, is what gets spoken.
    """
    word: str
    phonetic: str | None = None
    meanings: tuple[Meaning, ...] = ()

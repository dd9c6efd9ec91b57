"""
Incremental word extraction from a revisable transcript.

Capture engines re-emit the whole, growing transcript of the current
utterance on every update. The extractor turns that stream into
at-most-once word detections per utterance window:

    tokens    = normalize(split(transcript))
    new_words = tokens - pending
    pending  |= new_words

After a final transcript the pending set is cleared on a debounce
timer, so a word spoken again in a later utterance is detected again.

Monotonic: a word removed by a later revision of the transcript is not
retracted once emitted.
"""

from __future__ import annotations

import string
from typing import Protocol

from constants import EXTRA_PUNCTUATION_CHARS, MIN_WORD_LENGTH, WORD_DEBOUNCE_MS
from orchestrator.enums.timer import TimerKind
from orchestrator.scheduler import TimerAction


_STRIP_CHARS = string.punctuation + EXTRA_PUNCTUATION_CHARS


class DebounceScheduler(Protocol):
    def arm(self, kind: TimerKind, delay_ms: int, action: TimerAction) -> None: ...
    def cancel(self, kind: TimerKind) -> None: ...


def normalize_token(raw: str) -> str | None:
    """
    Strip surrounding punctuation and lower-case.

    Returns None for tokens that are empty or shorter than
    MIN_WORD_LENGTH after stripping.
    """
    token = raw.strip(_STRIP_CHARS)
    if len(token) < MIN_WORD_LENGTH:
        return None
    return token.lower()


def tokenize(transcript: str) -> list[str]:
    """Normalized tokens in transcript order (duplicates kept)."""
    tokens = []
    for raw in transcript.split():
        token = normalize_token(raw)
        if token is not None:
            tokens.append(token)
    return tokens


class WordExtractor:
    """
    Owns the pending word set for one listening span.

    Order of emitted words is first occurrence in the transcript;
    consumers must not depend on it.
    """

    def __init__(self, scheduler: DebounceScheduler) -> None:
        self._scheduler = scheduler
        self._pending: set[str] = set()

    @property
    def pending(self) -> frozenset[str]:
        return frozenset(self._pending)

    def extract(self, transcript: str, is_final: bool) -> tuple[str, ...]:
        """Return words not yet emitted in this utterance window."""
        new_words: list[str] = []
        for token in tokenize(transcript):
            if token in self._pending:
                continue
            self._pending.add(token)
            new_words.append(token)

        if is_final:
            # Re-arming replaces the previous debounce timer
            self._scheduler.arm(TimerKind.WORD_DEBOUNCE, WORD_DEBOUNCE_MS, self.clear)

        return tuple(new_words)

    def clear(self) -> None:
        """Forget every pending word (debounce expiry)."""
        self._pending.clear()

    def reset(self) -> None:
        """Clear pending words and drop any armed debounce."""
        self._scheduler.cancel(TimerKind.WORD_DEBOUNCE)
        self._pending.clear()

"""
Timer kinds owned by the recovery scheduler.

Rules:
- At most one timer of each kind is armed at any time.
- Arming a kind that is already armed replaces the previous timer.
"""

from __future__ import annotations

from enum import Enum


class TimerKind(str, Enum):
    """
    RETURN_TO_LISTENING:
        Playback-completion polling and the reading grace period that
        follows it.

    ERROR_RECOVERY:
        Delay before a recoverable error returns the session to listening.

    INTERRUPTION_RESUME:
        Delay before capture restarts after audio focus returns or the
        output device changes.

    WORD_DEBOUNCE:
        Clears the word extractor's pending set after a final transcript.
    """

    RETURN_TO_LISTENING = "RETURN_TO_LISTENING"
    ERROR_RECOVERY = "ERROR_RECOVERY"
    INTERRUPTION_RESUME = "INTERRUPTION_RESUME"
    WORD_DEBOUNCE = "WORD_DEBOUNCE"

# pylint: disable=missing-module-docstring,missing-function-docstring

from constants import WORD_DEBOUNCE_MS
from orchestrator.enums.timer import TimerKind
from orchestrator.word_extractor import WordExtractor, normalize_token, tokenize


class ManualScheduler:
    """Records armed actions; tests fire them by hand."""

    def __init__(self) -> None:
        self.armed: dict[TimerKind, tuple[int, object]] = {}
        self.cancelled: list[TimerKind] = []

    def arm(self, kind, delay_ms, action) -> None:
        self.armed[kind] = (delay_ms, action)

    def cancel(self, kind) -> None:
        self.cancelled.append(kind)
        self.armed.pop(kind, None)

    def fire(self, kind) -> None:
        _, action = self.armed.pop(kind)
        action()


# ---------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------

def test_normalize_strips_punctuation_and_lowercases():
    assert normalize_token("Hello,") == "hello"
    assert normalize_token("“Serendipity”") == "serendipity"
    assert normalize_token("...world!") == "world"


def test_normalize_drops_short_tokens():
    assert normalize_token("a") is None
    assert normalize_token("I.") is None
    assert normalize_token("!!") is None
    assert normalize_token("to") == "to"


def test_normalize_keeps_inner_punctuation():
    assert normalize_token("don't") == "don't"
    assert normalize_token("well-known.") == "well-known"


def test_tokenize_keeps_order_and_duplicates():
    assert tokenize("Hello, hello WORLD a") == ["hello", "hello", "world"]


# ---------------------------------------------------------------------
# Incremental extraction
# ---------------------------------------------------------------------

def test_growing_transcript_emits_each_word_once():
    extractor = WordExtractor(ManualScheduler())

    assert extractor.extract("hello", is_final=False) == ("hello",)
    assert extractor.extract("hello there", is_final=False) == ("there",)
    assert extractor.extract("Hello there, friend.", is_final=False) == ("friend",)
    assert extractor.pending == frozenset({"hello", "there", "friend"})


def test_revised_transcript_does_not_retract_words():
    extractor = WordExtractor(ManualScheduler())

    extractor.extract("hello word", is_final=False)
    assert extractor.extract("hello world", is_final=False) == ("world",)
    assert "word" in extractor.pending


def test_short_tokens_are_not_remembered():
    extractor = WordExtractor(ManualScheduler())

    assert extractor.extract("a b c", is_final=False) == ()
    assert extractor.pending == frozenset()


def test_final_transcript_arms_debounce_that_clears_pending():
    scheduler = ManualScheduler()
    extractor = WordExtractor(scheduler)

    extractor.extract("hello", is_final=True)
    assert scheduler.armed[TimerKind.WORD_DEBOUNCE][0] == WORD_DEBOUNCE_MS

    # Same word inside the debounce window is suppressed
    assert extractor.extract("hello", is_final=False) == ()

    scheduler.fire(TimerKind.WORD_DEBOUNCE)
    assert extractor.pending == frozenset()
    assert extractor.extract("hello", is_final=False) == ("hello",)


def test_non_final_transcript_does_not_arm_debounce():
    scheduler = ManualScheduler()
    extractor = WordExtractor(scheduler)

    extractor.extract("hello", is_final=False)

    assert TimerKind.WORD_DEBOUNCE not in scheduler.armed


def test_reset_cancels_debounce_and_clears():
    scheduler = ManualScheduler()
    extractor = WordExtractor(scheduler)
    extractor.extract("hello", is_final=True)

    extractor.reset()

    assert extractor.pending == frozenset()
    assert TimerKind.WORD_DEBOUNCE in scheduler.cancelled
    assert TimerKind.WORD_DEBOUNCE not in scheduler.armed

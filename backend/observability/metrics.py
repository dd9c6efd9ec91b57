"""
Latency metrics for the study loop.

Two durations matter to a learner waiting on an answer:
- lookup_latency: word detected -> dictionary response
- speech_synthesis: Speak command -> last PCM frame queued

Each measurement is one METRIC_TIMER log line; nothing is aggregated
in-process. Durations use the monotonic clock, ts_ms the wall clock.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

from observability.logger import log_event


@dataclass
class Stopwatch:
    """One running measurement. stop() is idempotent and returns duration_ms."""

    name: str
    started_ns: int = field(default_factory=time.monotonic_ns)
    duration_ms: int | None = None

    def stop(self) -> int:
        if self.duration_ms is None:
            self.duration_ms = (time.monotonic_ns() - self.started_ns) // 1_000_000
        return self.duration_ms


def emit_metric(
    watch: Stopwatch,
    *,
    outcome: str,
    session_id: str | None = None,
    run_id: int | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    log_event({
        "ts_ms": int(time.time() * 1000),
        "event_type": "METRIC_TIMER",
        "metric": watch.name,
        "value_ms": watch.stop(),
        "outcome": outcome,
        "session_id": session_id,
        "run_id": run_id,
        "details": details or {},
    })


@contextmanager
def timed(
    name: str,
    *,
    session_id: str | None = None,
    run_id: int | None = None,
    details: dict[str, Any] | None = None,
) -> Iterator[Stopwatch]:
    """
    Time the enclosed block and emit exactly one metric.

    outcome is "ok" or the exception class name (CancelledError for a
    cut utterance); the exception itself always propagates.

    Usage:
        with timed("lookup_latency", session_id=sid, details={"word": word}):
            definition = await adapter.fetch(word)
    """
    watch = Stopwatch(name)
    outcome = "ok"
    try:
        yield watch
    except BaseException as exc:
        outcome = type(exc).__name__
        raise
    finally:
        emit_metric(
            watch,
            outcome=outcome,
            session_id=session_id,
            run_id=run_id,
            details=details,
        )

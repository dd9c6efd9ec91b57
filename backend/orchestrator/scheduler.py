"""
Recovery scheduler.

Responsibilities:
- Own keyed, delayed, cancellable timers
- Guarantee at most one armed timer per kind (arming replaces)
- Run the armed action when the delay elapses

Non-responsibilities:
- NO state machine decisions
- NO knowledge of which event a timer produces
  (callers pass an action; the runtime's actions only submit events)

This module is infrastructure only.
"""

from __future__ import annotations

import asyncio
from asyncio import Task
from typing import Callable

from observability.logger import log_event
from orchestrator.enums.timer import TimerKind


# ---------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------

TimerAction = Callable[[], None]


# ---------------------------------------------------------------------
# Recovery Scheduler
# ---------------------------------------------------------------------

class RecoveryScheduler:
    """
    asyncio-backed keyed timers.

    Lifecycle:
    1. arm(kind, delay_ms, action) cancels any timer of that kind
    2. A sleeping task is created for the kind
    3a. Delay elapses -> the kind is disarmed, then action() runs
    3b. cancel(kind) / cancel_all() / re-arm -> task cancelled, action never runs

    Must be used from within a running event loop.
    """

    def __init__(self) -> None:
        self._timers: dict[TimerKind, Task[None]] = {}
        self._cancelled: list[Task[None]] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def arm(self, kind: TimerKind, delay_ms: int, action: TimerAction) -> None:
        """Schedule action after delay_ms, replacing any timer of this kind."""
        self.cancel(kind)
        self._timers[kind] = asyncio.create_task(
            self._timer_task(kind, delay_ms, action),
            name=f"timer:{kind.value}",
        )

    def cancel(self, kind: TimerKind) -> None:
        """
        Cancel the timer of this kind if armed.

        Idempotent: safe to call even if nothing is armed.
        """
        task = self._timers.pop(kind, None)
        if task is not None and not task.done():
            task.cancel()
            self._cancelled = [t for t in self._cancelled if not t.done()]
            self._cancelled.append(task)

    def cancel_all(self) -> None:
        for kind in list(self._timers):
            self.cancel(kind)

    def is_armed(self, kind: TimerKind) -> bool:
        return kind in self._timers

    def armed_kinds(self) -> frozenset[TimerKind]:
        return frozenset(self._timers)

    async def shutdown(self) -> None:
        """Cancel everything and wait for the cancelled tasks to unwind."""
        self.cancel_all()
        pending, self._cancelled = self._cancelled, []
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _timer_task(
        self,
        kind: TimerKind,
        delay_ms: int,
        action: TimerAction,
    ) -> None:
        try:
            await asyncio.sleep(delay_ms / 1000.0)
        except asyncio.CancelledError:
            # Timer was cancelled - this is normal
            return

        # Disarm before running so the action may re-arm the same kind
        if self._timers.get(kind) is asyncio.current_task():
            del self._timers[kind]

        try:
            action()
        except Exception as exc:  # pylint: disable=broad-exception-caught
            log_event({
                "event_type": "TIMER_ACTION_FAILED",
                "level": "ERROR",
                "timer_kind": kind.value,
                "error": repr(exc),
            })

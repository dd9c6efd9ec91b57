"""
Authoritative orchestrator state container.

Rules:
- This dataclass is a pure data model.
- It contains ALL state the reducer may ever need.
- No behavior, no helpers, no derived logic.
"""
from __future__ import annotations

from dataclasses import dataclass, field

from dictionary.models import Definition
from orchestrator.enums.state import State
from orchestrator.errors import ErrorKind
from orchestrator.run_ids import RunIds


# =============================================================================
# Orchestrator State
# =============================================================================

@dataclass(frozen=True)
class OrchestratorState:
    """Immutable snapshot of all orchestrator-owned state."""

    # ------------------------------------------------------------------
    # Control state
    # ------------------------------------------------------------------
    state: State = State.IDLE

    # True between an accepted start() and stop() / fatal error.
    is_studying: bool = False

    # Bumped on every start and stop. Generation-scoped timers
    # (error recovery, interruption resume) carry it as their token.
    generation: int = 0

    # ------------------------------------------------------------------
    # Run/version tracking
    # ------------------------------------------------------------------
    active_runs: RunIds = field(default_factory=RunIds)

    # True while a capture run is started (or starting) and not stopped.
    capture_active: bool = False

    # ------------------------------------------------------------------
    # Lookup / display
    # ------------------------------------------------------------------
    current_word: str | None = None
    definition: Definition | None = None

    # ------------------------------------------------------------------
    # Error handling
    # ------------------------------------------------------------------
    last_error: str | None = None
    error_kind: ErrorKind | None = None

    # ------------------------------------------------------------------
    # Interruptions
    # ------------------------------------------------------------------
    # True between a pause (suspend, focus lost, device removed) and the
    # resume that restarts capture.
    interrupted: bool = False

    was_studying_before_background: bool = False

    # Restart automatically on DID_RESUME after a background stop.
    resume_after_background: bool = False

"""
Authoritative session state enumeration.

Rules:
- This enum defines ONLY the control-plane states.
- No behavior, no helper methods, no side effects.
- Transitions are defined exclusively in the reducer.
"""

from __future__ import annotations

from enum import Enum


class State(str, Enum):
    """
    High-level deterministic control states for a single study session.

    Payloads (current word, definition, error message) live on
    OrchestratorState; see orchestrator.study_state for the tagged view.
    """

    IDLE = "IDLE"
    LISTENING = "LISTENING"
    PROCESSING = "PROCESSING"
    DISPLAYING = "DISPLAYING"
    ERROR = "ERROR"

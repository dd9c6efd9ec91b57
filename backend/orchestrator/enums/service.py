"""
Service enumeration for run-id–versioned external collaborators.

Rules:
- This enum identifies versioned external services only.
- It must NOT encode behavior or lifecycle rules.
- Reducer logic decides how services are started, stopped, and reset.
"""

from __future__ import annotations

from enum import Enum


class Service(str, Enum):
    """
    External, versioned collaborators driven by the orchestrator.

    Each service:
    - Has at most one active run at a time
    - Is identified by a monotonically increasing run_id
    """

    CAPTURE = "CAPTURE"
    LOOKUP = "LOOKUP"
    SPEECH = "SPEECH"

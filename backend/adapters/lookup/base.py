"""
Lookup adapter contract.

This module defines the *interface only*: no retries, timers, or
orchestration decisions live here.

Key invariants:
- fetch() returns a Definition or raises adapters.errors.LookupFailure
  carrying a classified ErrorKind.
- The adapter never decides what a failure means for the session;
  the orchestrator does.
- Any HTTP timeout is the adapter's own; the orchestrator applies none.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from dictionary.models import Definition


class LookupAdapter(ABC):
    """
    Abstract interface for a dictionary lookup.

    Implementations are responsible for:
    - Turning a word into a request
    - Classifying failures (not found, network, invalid input,
      unavailable, decode)
    - Parsing the response into a Definition

    Non-responsibilities:
    - No state machine logic
    - No single-flight enforcement (the orchestrator never overlaps lookups)
    """

    @abstractmethod
    async def fetch(self, word: str) -> Definition:
        """
        Look up a single word.

        Raises:
            LookupFailure: with kind LOOKUP_NOT_FOUND, LOOKUP_NETWORK,
                LOOKUP_INVALID_INPUT, LOOKUP_UNAVAILABLE or LOOKUP_DECODE.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release pooled resources. Default: nothing to release."""
        return None

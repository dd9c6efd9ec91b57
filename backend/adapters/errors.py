"""Exceptions raised by collaborator adapters."""

from __future__ import annotations

from orchestrator.errors import ErrorKind


class AdapterError(Exception):
    """Base exception for collaborator failures. Carries a classified kind."""

    def __init__(self, kind: ErrorKind, detail: str | None = None) -> None:
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail


class CaptureError(AdapterError):
    """Raised when audio capture cannot start or fails mid-stream."""


class LookupFailure(AdapterError):
    """Raised when a dictionary lookup fails."""

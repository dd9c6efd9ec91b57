"""
Event logger.

- Write one event per line (JSON by default, key=value text optionally)
- Output to stdout
- No buffering, no batching
- No side effects beyond logging
- Events carrying a "level" below the configured threshold are dropped
"""

from __future__ import annotations

import json
import sys
from typing import Any, Mapping, Callable


_LEVELS: dict[str, int] = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}

_json_logs: bool = True
_min_level: int = _LEVELS["INFO"]


# ------------------------------------------------------------------
# Explicit output sink (patchable in tests)
# ------------------------------------------------------------------

def _stdout_print(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()

_print: Callable[[str], None] = _stdout_print


def configure(*, json_logs: bool = True, level: str = "INFO") -> None:
    """Select the output rendering and minimum level. Unknown levels mean INFO."""
    global _json_logs, _min_level  # pylint: disable=global-statement
    _json_logs = json_logs
    _min_level = _LEVELS.get(level.upper(), _LEVELS["INFO"])


def _enabled(event: Mapping[str, Any]) -> bool:
    level = event.get("level")
    if not isinstance(level, str):
        return True
    return _LEVELS.get(level.upper(), _LEVELS["INFO"]) >= _min_level


def _render_text(event: Mapping[str, Any]) -> str:
    parts = []
    for key, value in event.items():
        if isinstance(value, str):
            rendered = value if value and " " not in value else json.dumps(value, ensure_ascii=False)
        else:
            rendered = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
        parts.append(f"{key}={rendered}")
    return " ".join(parts)


def log_event(event: Mapping[str, Any]) -> None:
    """
    Write a single event line to stdout.

    The caller is responsible for:
    - Supplying a fully-formed event dict
    - Including ts_ms, session_id, state, etc.

    This function:
    - Serializes to JSON (or key=value text)
    - Writes exactly one line
    - Flushes immediately (no buffering)
    - Never raises
    """
    if not _enabled(event):
        return

    try:
        if _json_logs:
            line = json.dumps(event, ensure_ascii=False, separators=(",", ":"))
        else:
            line = _render_text(event)
    except (TypeError, ValueError) as e:
        # Last-resort fallback: logging must never crash the runtime
        fallback: dict[str, Any] = {
            "ts_ms": event.get("ts_ms"),
            "event_type": "LOGGER_SERIALIZATION_ERROR",
            "error": str(e),
            "original_event_repr": repr(event),
        }
        line = json.dumps(fallback, ensure_ascii=False, separators=(",", ":"))

    _print(line)

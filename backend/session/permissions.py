"""
Microphone permission broker.

The browser owns the permission prompt. The broker asks the client
(REQUEST_MIC_PERMISSION) and waits for its MIC_PERMISSION answer.

- Queried lazily by capture start, not at connect time
- A granted answer is remembered for the session
- A denial or an unanswered prompt (timeout) reads as "not granted";
  the next start asks again
- Concurrent requests share one outstanding prompt
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable

from constants import PERMISSION_REQUEST_TIMEOUT_S
from observability.logger import log_event


def _now_ms() -> int:
    return int(time.time() * 1000)


class PermissionBroker:
    def __init__(
        self,
        *,
        send_control: Callable[[dict[str, Any]], None],
        session_id: str = "",
        timeout_s: float = PERMISSION_REQUEST_TIMEOUT_S,
    ) -> None:
        self._send_control = send_control
        self._session_id = session_id
        self._timeout_s = timeout_s
        self._granted = False
        self._pending: asyncio.Future[bool] | None = None

    @property
    def has_permission(self) -> bool:
        return self._granted

    async def request_permissions(self) -> bool:
        if self._granted:
            return True

        if self._pending is None or self._pending.done():
            self._pending = asyncio.get_running_loop().create_future()
            self._send_control({"type": "REQUEST_MIC_PERMISSION", "ts_ms": _now_ms()})

        try:
            granted = await asyncio.wait_for(
                asyncio.shield(self._pending), timeout=self._timeout_s
            )
        except asyncio.TimeoutError:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "mic_permission_timeout",
                "level": "WARNING",
                "session_id": self._session_id,
                "timeout_s": self._timeout_s,
            })
            self._pending = None
            return False

        self._granted = granted
        return granted

    def resolve(self, granted: bool) -> None:
        """Client answered the prompt (MIC_PERMISSION message)."""
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "mic_permission_answer",
            "session_id": self._session_id,
            "granted": granted,
        })

        if granted:
            self._granted = True
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(granted)

    def revoke(self) -> None:
        """Client reported the permission was withdrawn."""
        self._granted = False

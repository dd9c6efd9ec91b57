# backend/audio/queues.py
"""
Bounded audio frame queues with canonical depth measurement.

- Depth measured in seconds (not frame count)
- Explicit drop behavior: a NEW frame is dropped when it would exceed
  the configured depth
- Deterministic, synchronous behavior

Two instances exist per session: mic ingest (client -> capture) and
speech egress (speech adapter -> client).
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

from audio.frames import AudioFrame
from constants import AUDIO_FRAME_DURATION_S


@dataclass
class DropCounters:
    """
    Drop counters for observability.
    """
    overflow: int = 0
    cleared: int = 0


class AudioFrameQueue:
    """
    Bounded FIFO queue for AudioFrame objects.
    """

    def __init__(self, *, max_depth_s: float) -> None:
        if max_depth_s <= 0:
            raise ValueError("max_depth_s must be > 0")

        self._max_depth_s: float = max_depth_s
        self._frames: Deque[AudioFrame] = deque()
        self.drops: DropCounters = DropCounters()

    # -------------------------
    # Core queue operations
    # -------------------------

    def enqueue(self, frame: AudioFrame) -> bool:
        """
        Enqueue an AudioFrame.

        Returns:
            True if enqueued
            False if dropped (overflow)
        """
        if self.depth_seconds() + AUDIO_FRAME_DURATION_S > self._max_depth_s:
            self.drops.overflow += 1
            return False

        self._frames.append(frame)
        return True

    def dequeue(self) -> Optional[AudioFrame]:
        """
        Dequeue the oldest AudioFrame.

        Returns None if queue is empty.
        """
        if not self._frames:
            return None
        return self._frames.popleft()

    def drain(self) -> list[AudioFrame]:
        """Remove and return every queued frame, oldest first."""
        frames = list(self._frames)
        self._frames.clear()
        return frames

    def peek(self) -> Optional[AudioFrame]:
        """View the oldest frame without removing it."""
        return self._frames[0] if self._frames else None

    def clear(self) -> None:
        """
        Drop all queued frames.

        Used when capture stops (mic audio must not leak into the next
        run) and when speech is cut.
        """
        self.drops.cleared += len(self._frames)
        self._frames.clear()

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self._frames)

    def is_empty(self) -> bool:
        """Check if the queue is empty."""
        return not self._frames

    def depth_seconds(self) -> float:
        """
        Canonical queue depth in seconds.

        depth_s = num_frames × AUDIO_FRAME_DURATION_S
        """
        return len(self._frames) * AUDIO_FRAME_DURATION_S

    def snapshot(self) -> dict[str, float | int]:
        """
        Lightweight snapshot for logging / metrics.
        """
        return {
            "frames": len(self._frames),
            "depth_s": self.depth_seconds(),
            "dropped_overflow": self.drops.overflow,
            "dropped_cleared": self.drops.cleared,
        }

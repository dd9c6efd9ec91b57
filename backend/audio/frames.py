"""
Audio frame primitives.

- AudioFrame: pure data container
- PcmFramer: incremental re-framing of a provider PCM stream into
  fixed-size 20ms frames (no queues, no timing, no IO)

Invariants:
- PCM16 signed, little-endian
- Mono, 16 kHz
- 20 ms frames (AUDIO_BYTES_PER_FRAME_PCM bytes)
"""

from __future__ import annotations

from dataclasses import dataclass

from constants import AUDIO_BYTES_PER_FRAME_PCM


@dataclass(frozen=True)
class AudioFrame:
    """
    Canonical audio frame used throughout the backend audio pipeline.

    sequence_num:
        Monotonic sequence number provided by the sender (client or speech).
        Used for gap detection and debugging only.

    pcm_bytes:
        Raw PCM16 audio bytes.
        Length MUST equal AUDIO_BYTES_PER_FRAME_PCM.

    ts_ms:
        Wall-clock timestamp (milliseconds) when the frame was received
        or produced. Used for observability only (not control logic).
    """
    sequence_num: int
    pcm_bytes: bytes
    ts_ms: int
    run_id: int = 0  # 0 = client→server (mic), >0 = server→client (speech)


class PcmFramer:
    """
    Accumulates arbitrarily-sized PCM chunks and yields whole frames.

    Provider chunks may split a sample (odd length) or a frame; the
    remainder is carried into the next push(). flush() drops any
    incomplete trailing frame (no padding).
    """

    def __init__(self, frame_bytes: int = AUDIO_BYTES_PER_FRAME_PCM) -> None:
        if frame_bytes <= 0 or frame_bytes % 2:
            raise ValueError("frame_bytes must be a positive, even byte count")
        self._frame_bytes = frame_bytes
        self._buffer = b""

    def push(self, chunk: bytes) -> list[bytes]:
        self._buffer += chunk
        whole = len(self._buffer) // self._frame_bytes
        if whole == 0:
            return []

        end = whole * self._frame_bytes
        frames = [
            self._buffer[offset : offset + self._frame_bytes]
            for offset in range(0, end, self._frame_bytes)
        ]
        self._buffer = self._buffer[end:]
        return frames

    def flush(self) -> int:
        """Discard the incomplete remainder; returns the dropped byte count."""
        dropped = len(self._buffer)
        self._buffer = b""
        return dropped

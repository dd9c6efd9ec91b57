# backend/protocol/binary.py
"""
Binary framing for audio over the study WebSocket.

- Client → Server (microphone):
    4 bytes  seq_num (u32, little-endian)
    640 bytes PCM16 audio

- Server → Client (speech):
    4 bytes  seq_num (u32, little-endian)
    4 bytes  run_id  (u32, little-endian, speech run the audio belongs to)
    640 bytes PCM16 audio

The client discards speech frames whose run_id is older than the last
SPEECH_START it saw, so audio of a cut utterance never plays.

Usage example:

    frame = decode_c2s_frame(payload, ts_ms=now_ms)
    gap = tracker.observe(frame.sequence_num)
    if gap.gap:
        log_event({"event_type": "SEQ_GAP_DETECTED", "gap_size": gap.gap_size})

    payload = encode_s2c_frame(
        sequence_num=frame.sequence_num,
        run_id=frame.run_id,
        pcm_bytes=frame.pcm_bytes,
    )
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Optional

from audio.frames import AudioFrame
from constants import (
    AUDIO_BYTES_PER_FRAME_PCM,
    C2S_FRAME_BYTES_TOTAL,
    C2S_SEQ_NUM_BYTES,
    S2C_FRAME_BYTES_TOTAL,
    SEQ_NUM_MAX,
    SEQ_NUM_START,
)


# -------------------------
# Exceptions
# -------------------------

class BinaryProtocolError(Exception):
    """Base class for binary protocol errors. The frame must be dropped."""


class InvalidFrameLength(BinaryProtocolError):
    """Frame is truncated, oversized or otherwise malformed."""


class InvalidSequenceNumber(BinaryProtocolError):
    """Sequence number or run_id outside the valid u32 range."""


# -------------------------
# Headers
# -------------------------

_C2S_HEADER = struct.Struct("<I")
_S2C_HEADER = struct.Struct("<II")


def _check_seq(seq: int) -> None:
    if seq < SEQ_NUM_START or seq > SEQ_NUM_MAX:
        raise InvalidSequenceNumber(f"Invalid seq_num: {seq}")


def _check_pcm(pcm_bytes: bytes) -> None:
    if len(pcm_bytes) != AUDIO_BYTES_PER_FRAME_PCM:
        raise InvalidFrameLength(
            f"PCM length {len(pcm_bytes)} != {AUDIO_BYTES_PER_FRAME_PCM}"
        )


# -------------------------
# Client → Server (microphone)
# -------------------------

def decode_c2s_frame(payload: bytes, *, ts_ms: int) -> AudioFrame:
    """Decode one microphone frame."""
    if len(payload) != C2S_FRAME_BYTES_TOTAL:
        raise InvalidFrameLength(
            f"C2S frame length {len(payload)} != {C2S_FRAME_BYTES_TOTAL}"
        )

    (seq,) = _C2S_HEADER.unpack_from(payload, 0)
    _check_seq(seq)

    return AudioFrame(
        sequence_num=seq,
        pcm_bytes=bytes(payload[C2S_SEQ_NUM_BYTES:]),
        ts_ms=ts_ms,
    )


def encode_c2s_frame(*, sequence_num: int, pcm_bytes: bytes) -> bytes:
    """Encode one microphone frame (client side; used by tools and tests)."""
    _check_seq(sequence_num)
    _check_pcm(pcm_bytes)
    return _C2S_HEADER.pack(sequence_num) + pcm_bytes


# -------------------------
# Server → Client (speech)
# -------------------------

def encode_s2c_frame(
    *,
    sequence_num: int,
    run_id: int,
    pcm_bytes: bytes,
) -> bytes:
    """Encode one speech frame tagged with its speech run."""
    _check_seq(sequence_num)

    # run_ids start at 1; 0 marks microphone frames
    if run_id < 1 or run_id > SEQ_NUM_MAX:
        raise InvalidSequenceNumber(f"Invalid run_id: {run_id}")

    _check_pcm(pcm_bytes)

    payload = _S2C_HEADER.pack(sequence_num, run_id) + pcm_bytes
    assert len(payload) == S2C_FRAME_BYTES_TOTAL
    return payload


# -------------------------
# Sequence gap detection
# -------------------------

@dataclass(frozen=True)
class SeqCheckResult:
    """Result of a sequence continuity check."""
    gap: bool
    expected: int
    actual: int

    @property
    def gap_size(self) -> int:
        """Number of frames skipped (0 if no gap), wraparound aware."""
        if not self.gap:
            return 0
        if self.actual > self.expected:
            return self.actual - self.expected
        return (SEQ_NUM_MAX - self.expected + 1) + (self.actual - SEQ_NUM_START)


def next_seq(seq: int) -> int:
    return SEQ_NUM_START if seq == SEQ_NUM_MAX else seq + 1


def check_sequence_gap(
    *,
    last_seq: Optional[int],
    current_seq: int,
) -> SeqCheckResult:
    """
    Check whether `current_seq` follows `last_seq`.

    Pure function; never raises.
    """
    if last_seq is None or current_seq == next_seq(last_seq):
        return SeqCheckResult(gap=False, expected=current_seq, actual=current_seq)

    return SeqCheckResult(gap=True, expected=next_seq(last_seq), actual=current_seq)


class SequenceTracker:
    """Remembers the last inbound seq_num of one connection."""

    def __init__(self) -> None:
        self.last_seq: Optional[int] = None

    def observe(self, seq: int) -> SeqCheckResult:
        result = check_sequence_gap(last_seq=self.last_seq, current_seq=seq)
        self.last_seq = seq
        return result

    def reset(self) -> None:
        self.last_seq = None

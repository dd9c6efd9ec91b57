# pylint: disable=missing-module-docstring,missing-function-docstring

import time

import pytest

from audio.frames import AudioFrame, PcmFramer
from audio.queues import AudioFrameQueue
from constants import AUDIO_BYTES_PER_FRAME_PCM, AUDIO_FRAME_DURATION_S


def make_frame(seq: int) -> AudioFrame:
    return AudioFrame(
        sequence_num=seq,
        pcm_bytes=b"\x00\x00" * 320,
        ts_ms=int(time.time() * 1000),
    )


# ---------------------------------------------------------------------
# depth_seconds math
# ---------------------------------------------------------------------

def test_depth_seconds_exact():
    q = AudioFrameQueue(max_depth_s=1.0)

    q.enqueue(make_frame(1))
    q.enqueue(make_frame(2))
    q.enqueue(make_frame(3))

    expected = 3 * AUDIO_FRAME_DURATION_S
    assert q.depth_seconds() == expected


def test_rejects_non_positive_depth():
    with pytest.raises(ValueError):
        AudioFrameQueue(max_depth_s=0)


# ---------------------------------------------------------------------
# Overflow behavior
# ---------------------------------------------------------------------

def test_overflow_drops_newest():
    max_depth = 2 * AUDIO_FRAME_DURATION_S
    q = AudioFrameQueue(max_depth_s=max_depth)

    assert q.enqueue(make_frame(1)) is True
    assert q.enqueue(make_frame(2)) is True

    # Would exceed max_depth_s
    assert q.enqueue(make_frame(3)) is False

    assert q.drops.overflow == 1
    assert q.depth_seconds() == max_depth

    head = q.peek()
    assert head is not None
    assert head.sequence_num == 1


# ---------------------------------------------------------------------
# Clearing
# ---------------------------------------------------------------------

def test_clear_counts_dropped_frames_separately():
    max_depth = 2 * AUDIO_FRAME_DURATION_S
    q = AudioFrameQueue(max_depth_s=max_depth)

    q.enqueue(make_frame(1))
    q.enqueue(make_frame(2))
    q.enqueue(make_frame(3))  # overflow

    q.clear()

    assert q.is_empty()
    assert q.dequeue() is None
    assert q.snapshot() == {
        "frames": 0,
        "depth_s": 0.0,
        "dropped_overflow": 1,
        "dropped_cleared": 2,
    }


def test_fifo_order():
    q = AudioFrameQueue(max_depth_s=1.0)
    for seq in (1, 2, 3):
        q.enqueue(make_frame(seq))

    assert q.dequeue().sequence_num == 1
    assert [f.sequence_num for f in q.drain()] == [2, 3]
    assert q.is_empty()
    # drain is not a drop
    assert q.drops.cleared == 0


# ---------------------------------------------------------------------
# Re-framing provider audio
# ---------------------------------------------------------------------

def test_framer_carries_partial_chunks():
    framer = PcmFramer()

    assert framer.push(b"\x01" * 101) == []
    frames = framer.push(b"\x02" * (2 * AUDIO_BYTES_PER_FRAME_PCM))

    assert len(frames) == 2
    assert all(len(f) == AUDIO_BYTES_PER_FRAME_PCM for f in frames)
    assert frames[0][:101] == b"\x01" * 101
    assert framer.flush() == 101


def test_framer_rejects_odd_frame_size():
    with pytest.raises(ValueError):
        PcmFramer(frame_bytes=3)

# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from protocol.binary import (
    SequenceTracker,
    decode_c2s_frame,
    encode_c2s_frame,
    encode_s2c_frame,
    check_sequence_gap,
    InvalidFrameLength,
    InvalidSequenceNumber,
)
from constants import (
    AUDIO_BYTES_PER_FRAME_PCM,
    S2C_FRAME_BYTES_TOTAL,
    SEQ_NUM_MAX,
    SEQ_NUM_START,
)


def make_valid_pcm() -> bytes:
    return b"\x00\x00" * (AUDIO_BYTES_PER_FRAME_PCM // 2)


# ---------------------------------------------------------------------
# Client -> server frames
# ---------------------------------------------------------------------

def test_decode_reads_little_endian_seq_and_pcm():
    pcm = bytes(range(256)) * 2 + bytes(AUDIO_BYTES_PER_FRAME_PCM - 512)
    payload = encode_c2s_frame(sequence_num=258, pcm_bytes=pcm)

    assert payload[:4] == b"\x02\x01\x00\x00"

    frame = decode_c2s_frame(payload, ts_ms=123)
    assert frame.sequence_num == 258
    assert frame.pcm_bytes == pcm
    assert frame.ts_ms == 123
    assert frame.run_id == 0


def test_decode_rejects_short_frame():
    payload = b"\x01\x00\x00\x00" + make_valid_pcm()[:-2]

    with pytest.raises(InvalidFrameLength):
        decode_c2s_frame(payload, ts_ms=123)


def test_decode_rejects_long_frame():
    payload = b"\x01\x00\x00\x00" + make_valid_pcm() + b"\x00\x00"

    with pytest.raises(InvalidFrameLength):
        decode_c2s_frame(payload, ts_ms=123)


def test_decode_rejects_seq_zero():
    payload = (0).to_bytes(4, "little") + make_valid_pcm()

    with pytest.raises(InvalidSequenceNumber):
        decode_c2s_frame(payload, ts_ms=123)


# ---------------------------------------------------------------------
# Server -> client frames
# ---------------------------------------------------------------------

def test_encode_s2c_layout():
    payload = encode_s2c_frame(sequence_num=7, run_id=3, pcm_bytes=make_valid_pcm())

    assert len(payload) == S2C_FRAME_BYTES_TOTAL
    assert payload[:4] == (7).to_bytes(4, "little")
    assert payload[4:8] == (3).to_bytes(4, "little")
    assert payload[8:] == make_valid_pcm()


def test_encode_rejects_invalid_seq():
    with pytest.raises(InvalidSequenceNumber):
        encode_s2c_frame(
            sequence_num=0,
            run_id=1,
            pcm_bytes=make_valid_pcm(),
        )


def test_encode_rejects_invalid_run_id():
    with pytest.raises(InvalidSequenceNumber):
        encode_s2c_frame(
            sequence_num=1,
            run_id=0,
            pcm_bytes=make_valid_pcm(),
        )


def test_encode_rejects_wrong_pcm_length():
    with pytest.raises(InvalidFrameLength):
        encode_s2c_frame(sequence_num=1, run_id=1, pcm_bytes=b"\x00\x00")


# ---------------------------------------------------------------------
# Sequence gap detection
# ---------------------------------------------------------------------

def test_sequence_gap_detected():
    result = check_sequence_gap(last_seq=5, current_seq=8)

    assert result.gap is True
    assert result.expected == 6
    assert result.actual == 8
    assert result.gap_size == 2


def test_sequence_no_gap():
    result = check_sequence_gap(last_seq=5, current_seq=6)

    assert result.gap is False
    assert result.gap_size == 0


def test_first_frame_is_never_a_gap():
    assert check_sequence_gap(last_seq=None, current_seq=42).gap is False


def test_sequence_wraparound_no_gap():
    result = check_sequence_gap(last_seq=SEQ_NUM_MAX, current_seq=SEQ_NUM_START)

    assert result.gap is False


def test_sequence_wraparound_gap():
    result = check_sequence_gap(last_seq=SEQ_NUM_MAX - 2, current_seq=1)

    assert result.gap is True
    assert result.gap_size == 2


def test_tracker_remembers_last_seq_until_reset():
    tracker = SequenceTracker()

    assert tracker.observe(1).gap is False
    assert tracker.observe(2).gap is False
    assert tracker.observe(5).gap_size == 2

    tracker.reset()
    assert tracker.observe(100).gap is False

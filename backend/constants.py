"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for all behavioral constants in the system.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Other modules MUST import from this file.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# Audio Format (PCM16 mono @ 16kHz, 20ms frames)
# =============================================================================

AUDIO_SAMPLE_RATE_HZ: Final[int] = 16_000
AUDIO_CHANNELS: Final[int] = 1
AUDIO_SAMPLE_WIDTH_BYTES: Final[int] = 2  # PCM16 (signed 16-bit)
AUDIO_FRAME_MS: Final[int] = 20

AUDIO_SAMPLES_PER_FRAME: Final[int] = (AUDIO_SAMPLE_RATE_HZ * AUDIO_FRAME_MS) // 1000
AUDIO_BYTES_PER_FRAME_PCM: Final[int] = AUDIO_SAMPLES_PER_FRAME * AUDIO_SAMPLE_WIDTH_BYTES
AUDIO_FRAME_DURATION_S: Final[float] = AUDIO_FRAME_MS / 1000.0

# =============================================================================
# Binary WebSocket Frame Formats
# =============================================================================
# Client → Server (mic audio): 4B seq_num + PCM frame
C2S_SEQ_NUM_BYTES: Final[int] = 4
C2S_FRAME_BYTES_TOTAL: Final[int] = C2S_SEQ_NUM_BYTES + AUDIO_BYTES_PER_FRAME_PCM

# Server → Client (speech audio): 4B seq_num + 4B run_id + PCM frame
S2C_SEQ_NUM_BYTES: Final[int] = 4
S2C_RUN_ID_BYTES: Final[int] = 4
S2C_FRAME_BYTES_TOTAL: Final[int] = (
    S2C_SEQ_NUM_BYTES + S2C_RUN_ID_BYTES + AUDIO_BYTES_PER_FRAME_PCM
)

SEQ_NUM_START: Final[int] = 1
SEQ_NUM_MAX: Final[int] = 2**32 - 1  # u32 wraparound

# =============================================================================
# Word Extraction
# =============================================================================

# Tokens shorter than this (after punctuation stripping) are never emitted.
MIN_WORD_LENGTH: Final[int] = 2

# After a final transcript, the pending word set is cleared once this
# window elapses without another final transcript.
WORD_DEBOUNCE_MS: Final[int] = 2_000

# Stripped from both ends of every token, in addition to string.punctuation.
EXTRA_PUNCTUATION_CHARS: Final[str] = "‘’“”–—…¿¡"

# =============================================================================
# Return-to-listening protocol
# =============================================================================

# First "is speech output still in progress" check after playback starts,
# and the re-poll cadence while it is.
PLAYBACK_CHECK_INTERVAL_MS: Final[int] = 1_000

# Reading time after playback ends before capture restarts.
READING_GRACE_MS: Final[int] = 3_000

# =============================================================================
# Error recovery
# =============================================================================

ERROR_RECOVERY_DELAY_MS: Final[int] = 2_000

# =============================================================================
# Interruptions
# =============================================================================

# Delay before restarting capture after audio focus returns or the output
# route changes (lets the platform audio route settle).
INTERRUPTION_RESUME_DELAY_MS: Final[int] = 1_000

# =============================================================================
# Capture / permissions
# =============================================================================

# How long to wait for the client to answer a microphone permission prompt.
PERMISSION_REQUEST_TIMEOUT_S: Final[float] = 30.0

# Deepgram end-of-turn silence window.
SILENCE_DETECTION_MS: Final[int] = 500

# =============================================================================
# Lookup
# =============================================================================

DICTIONARY_BASE_URL_DEFAULT: Final[str] = "https://api.dictionaryapi.dev/api/v2/entries/en"

# HTTP-level timeout owned by the lookup subsystem (the orchestrator applies none).
LOOKUP_HTTP_TIMEOUT_S: Final[float] = 10.0

# =============================================================================
# Speech output
# =============================================================================

PROVIDER_CHUNK_SIZE: Final[int] = 4096

# Spoken when the first meaning carries no definition text.
NO_DEFINITION_TEXT: Final[str] = "No definition available"

# =============================================================================
# Queues
# =============================================================================

INGEST_AUDIO_Q_MAX_S: Final[float] = 2.0
SPEECH_AUDIO_Q_MAX_S: Final[float] = 60.0

"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No orchestration logic
- No behavioral constants (those live in constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from constants import DICTIONARY_BASE_URL_DEFAULT


def _flag(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the gateway, which wires each session.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool = True

    # ------------------------------------------------------------------
    # Capture (speech recognition)
    # ------------------------------------------------------------------

    deepgram_api_key: str | None = None
    deepgram_model: str = "flux-general-en"

    # ------------------------------------------------------------------
    # Speech output
    # ------------------------------------------------------------------

    speechmatics_api_key: str | None = None
    speechmatics_voice: str = "sarah"

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    dictionary_base_url: str = DICTIONARY_BASE_URL_DEFAULT

    # ------------------------------------------------------------------
    # Interruptions
    # ------------------------------------------------------------------

    # Restart a session that was stopped by backgrounding on the next resume.
    resume_after_background: bool = False

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Missing API keys are not an error here; capture or speech fails
        when first used.
        """
        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),

            enable_json_logs=_flag("ENABLE_JSON_LOGS", "1"),

            deepgram_api_key=os.environ.get("DEEPGRAM_API_KEY"),
            deepgram_model=os.environ.get("DEEPGRAM_MODEL", "flux-general-en"),

            speechmatics_api_key=os.environ.get("SPEECHMATICS_API_KEY"),
            speechmatics_voice=os.environ.get("SPEECHMATICS_VOICE", "sarah"),

            dictionary_base_url=os.environ.get("DICTIONARY_BASE_URL", DICTIONARY_BASE_URL_DEFAULT),

            resume_after_background=_flag("RESUME_AFTER_BACKGROUND", "0"),
        )

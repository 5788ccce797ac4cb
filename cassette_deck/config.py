"""Configuration constants, placeholder texts, and .env loading.

WHY: Centralizes all configurable values so they are easy to find,
update, and override. Endpoint defaults, retry bounds, and the fixed
strings the orchestrator returns in place of real results are plain
data, not buried in logic.

HOW: python-dotenv loads the .env file on import. Constants are defined
as module-level values. The load_api_key() function provides a clear
error when the key is missing.

RULES:
- API key is loaded from .env via python-dotenv, never hardcoded
- All defaults can be overridden via environment variables
- Placeholder texts for "pending" and "unavailable" must stay distinct
"""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (where the script is run from)
load_dotenv()

# ---------------------------------------------------------------------------
# Remote transcription / summarization capability
# ---------------------------------------------------------------------------

TRANSCRIPTION_BASE_URL = os.getenv("TRANSCRIPTION_BASE_URL", "https://api.openai.com/v1")
TRANSCRIPTION_MODEL = os.getenv("TRANSCRIPTION_MODEL", "whisper-1")
SUMMARY_MODEL = os.getenv("SUMMARY_MODEL", "gpt-4o-mini")

SUPPORTED_AUDIO_FORMATS: set[str] = {
    ".m4a", ".mp3", ".mp4", ".wav", ".webm", ".ogg", ".flac",
}
"""Audio file extensions accepted for transcription (lowercase, with dot)."""

# ---------------------------------------------------------------------------
# Storage locations
# ---------------------------------------------------------------------------

CASSETTE_LIBRARY_DIR = Path(
    os.getenv("CASSETTE_LIBRARY_DIR", str(Path.home() / "TapeRecordings"))
).expanduser()
QUEUE_STATE_DIR = Path(
    os.getenv("QUEUE_STATE_DIR", str(Path.home() / ".cassette_deck"))
).expanduser()

CASSETTE_EXTENSION = ".cass"
METADATA_FILENAME = "metadata.json"
TRANSCRIPT_FILENAME = "transcript.json"
AUDIO_DIRNAME = "audio"

# ---------------------------------------------------------------------------
# Offline queue
# ---------------------------------------------------------------------------

QUEUE_STORAGE_KEY = "offline_queue"
QUEUE_MAX_RETRIES = int(os.getenv("QUEUE_MAX_RETRIES", "3"))

CONNECTIVITY_PROBE_URL = os.getenv("CONNECTIVITY_PROBE_URL", "https://api.openai.com")

# ---------------------------------------------------------------------------
# Placeholder and fallback texts
# ---------------------------------------------------------------------------

PLACEHOLDER_DURATION_MS = 1000
"""Nominal length of a placeholder segment standing in for a real transcript."""

PENDING_TRANSCRIPTION_TEXT = "[Transcription pending]"
UNAVAILABLE_TRANSCRIPTION_TEXT = "[Transcription unavailable]"

EMPTY_RECORDING_SUMMARY = "Empty recording - nothing to summarize."
PENDING_SUMMARY_TEXT = "Summary pending - it will be generated when back online."


def load_api_key() -> str:
    """Load the transcription API key from the environment.

    WHY: The key is required for every remote call. Loading it from the
    environment (via .env) keeps it out of source code.

    RULES:
    - Raises ValueError if the key is missing or empty
    - Never returns a default/placeholder value
    """
    key = os.getenv("TRANSCRIPTION_API_KEY", "").strip()
    if not key:
        raise ValueError(
            "Transcription API key not configured. "
            "Add TRANSCRIPTION_API_KEY to the .env file in the app folder."
        )
    return key

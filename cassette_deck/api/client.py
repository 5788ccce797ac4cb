"""Async HTTP client for the remote transcription and summarization API.

WHY: Each recorded take is sent to a speech-to-text service for word
timestamps, and a finished cassette to a language model for a short
summary. This module encapsulates both calls behind a single client
class so the orchestrator and tests don't need to know HTTP details.

HOW: Uses httpx.AsyncClient for non-blocking HTTP against an
OpenAI-compatible API. SpeechClient is an async context manager; enter
it to get an authenticated client, exit to close the connection pool.

RULES:
- Always use the async context manager (async with SpeechClient(...) as client:)
- Transcription asks for verbose_json with word-level timestamps
- Non-2xx responses raise TranscriptionAPIError
- Transport failures (connect errors, timeouts) propagate as httpx
  exceptions so callers can classify them as network-related
"""

from __future__ import annotations

from pathlib import Path

import httpx

from cassette_deck.api.models import RemoteTranscription
from cassette_deck.config import (
    SUMMARY_MODEL,
    SUPPORTED_AUDIO_FORMATS,
    TRANSCRIPTION_BASE_URL,
    TRANSCRIPTION_MODEL,
    load_api_key,
)

_SUMMARY_PROMPT = (
    "You summarize voice recordings. Reply with two or three plain sentences "
    "describing what the speaker talks about."
)

_SUMMARY_MAX_TOKENS = 200


class TranscriptionAPIError(Exception):
    """Raised when the remote API returns an error response.

    WHY: Callers need a typed exception to distinguish service errors
    (bad audio, quota, auth) from network errors.

    RULES:
    - Always include status_code and message
    - message is the response body text or a summary
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Transcription API error {status_code}: {message}")


class SpeechClient:
    """Async client for remote transcription and summarization.

    WHY: Provides a clean, typed interface to the two remote capabilities
    the recorder depends on. Handles auth and error wrapping.

    HOW: Wraps httpx.AsyncClient with Bearer token auth. An optional
    transport can be injected (httpx.MockTransport in tests).

    RULES:
    - Use as: async with SpeechClient() as client: ...
    - api_key defaults to load_api_key() from .env
    - base_url and models default to config values
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        model: str | None = None,
        summary_model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key or load_api_key()
        self._base_url = (base_url or TRANSCRIPTION_BASE_URL).rstrip("/")
        self._model = model or TRANSCRIPTION_MODEL
        self._summary_model = summary_model or SUMMARY_MODEL
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> SpeechClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={"Authorization": f"Bearer {self._api_key}"},
            timeout=httpx.Timeout(300.0, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        """Return the active httpx client, raising if not in context manager."""
        if self._client is None:
            raise RuntimeError(
                "SpeechClient must be used as an async context manager: "
                "async with SpeechClient() as client: ..."
            )
        return self._client

    async def transcribe(self, audio_path: str | Path) -> RemoteTranscription:
        """Transcribe one audio file and return snippet-relative word timings.

        HOW: Sends a multipart POST to /audio/transcriptions requesting
        verbose_json with word granularity and parses the response.

        RULES:
        - audio_path must point to an existing file
        - Extensions outside SUPPORTED_AUDIO_FORMATS raise ValueError
          before any request is made
        - Raises TranscriptionAPIError on non-2xx responses

        Args:
            audio_path: Path to the recorded snippet.

        Returns:
            RemoteTranscription with text and words (seconds, snippet-relative).
        """
        client = self._ensure_client()
        audio_path = Path(audio_path)
        if audio_path.suffix.lower() not in SUPPORTED_AUDIO_FORMATS:
            raise ValueError(f"Unsupported audio format: {audio_path.suffix or audio_path.name}")

        with open(audio_path, "rb") as f:
            resp = await client.post(
                "/audio/transcriptions",
                files={"file": (audio_path.name, f)},
                data={
                    "model": self._model,
                    "response_format": "verbose_json",
                    "timestamp_granularities[]": "word",
                },
            )

        if resp.status_code != 200:
            raise TranscriptionAPIError(resp.status_code, resp.text)

        return RemoteTranscription.from_dict(resp.json())

    async def summarize(self, text: str) -> str:
        """Return a short natural-language summary of a transcript.

        RULES:
        - Raises TranscriptionAPIError on non-2xx responses or when the
          response carries no choices
        """
        client = self._ensure_client()

        body = {
            "model": self._summary_model,
            "max_tokens": _SUMMARY_MAX_TOKENS,
            "messages": [
                {"role": "system", "content": _SUMMARY_PROMPT},
                {"role": "user", "content": text},
            ],
        }
        resp = await client.post("/chat/completions", json=body)

        if resp.status_code != 200:
            raise TranscriptionAPIError(resp.status_code, resp.text)

        choices = resp.json().get("choices") or []
        if not choices:
            raise TranscriptionAPIError(resp.status_code, "Response contained no choices")

        return (choices[0]["message"]["content"] or "").strip()

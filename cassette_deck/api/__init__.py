"""Remote capability client package: async HTTP interface to the
speech-to-text and summarization service.

WHY: Transcribing a take and summarizing a cassette are remote calls
that may fail or be unreachable. This package keeps the HTTP details in
one client class so the orchestrator only sees typed results and typed
errors.

HOW: Uses httpx.AsyncClient for non-blocking HTTP. SpeechClient provides
one method per capability. Response data is parsed into dataclasses
defined in models.py.

RULES:
- All HTTP calls to the remote capability go through SpeechClient
- Authentication is via Bearer token from config
"""

from cassette_deck.api.client import SpeechClient, TranscriptionAPIError
from cassette_deck.api.models import RemoteTranscription, RemoteWord

__all__ = ["SpeechClient", "TranscriptionAPIError", "RemoteTranscription", "RemoteWord"]

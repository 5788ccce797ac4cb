"""Cassette Deck: take-based voice recording with a synchronized transcript.

WHY: A recording session is a stack of discrete takes ("snippets") that
the user cuts, copies, pastes, and reorders through an editable
transcript. Audio time, global timeline time, and transcript character
offsets must stay consistent through every edit, even when the
transcription service is unreachable.

HOW: Four layers, each independently testable: core (time-range algebra
and cursor/timestamp mapping over the transcript IR), api (async client
for the remote transcription/summarization capability), services
(offline queue, connectivity signal, orchestrator), and storage (the
.cass container codec).

RULES:
- The core is pure: no I/O, no logging, no exceptions for well-formed input
- Services are constructed explicitly and passed by reference (no singletons)
- The .cass archive layout is the one bit-exact external contract
"""

__version__ = "0.1.0"

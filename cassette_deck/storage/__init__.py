"""Cassette persistence: the .cass container format.

WHY: A cassette (metadata + transcript + one audio blob per take) is
saved on eject and loaded on select as a single portable archive.

HOW: archive.py wraps zip compression, schemas.py holds the JSON Schemas
for the archive's JSON members, container.py implements save/load/list/
delete on top of both.

RULES:
- The archive layout is exact: metadata.json, transcript.json, audio/<file>
- Single-cassette operations fail loudly; listing skips bad archives
"""

from cassette_deck.storage.container import CassetteFormatError, CassetteStore, LoadedCassette

__all__ = ["CassetteFormatError", "CassetteStore", "LoadedCassette"]

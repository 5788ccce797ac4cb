"""The .cass cassette container: save, load, list, and delete.

WHY: A cassette is the unit the user saves ("eject") and opens
("select"). Its metadata, transcript, and raw takes must travel as one
portable file and come back intact, or fail loudly.

HOW: Each cassette is a zip archive named <cassette-id>.cass in the
library directory, laid out as:

    metadata.json      CassetteMetadata, pretty-printed
    transcript.json    list of TranscriptSegment
    audio/<filename>   one raw audio blob per AudioSnippet

Saving stages that layout in a fresh temp directory, compresses it into
a hidden temp file next to the target, and moves it into place with
os.replace(). Loading unpacks into a fresh temp directory, validates the
JSON members with jsonschema, and rebuilds snippets from audio filenames.
Blocking work runs in the default executor.

RULES:
- Save is atomic: on any failure the staging directory and temp archive
  are removed and no partial <id>.cass is left behind
- Snippet order is recovered from the numeric part of "snippet_<n>";
  start_time and duration are NOT stored in the archive and load as 0
- list_cassettes() reads only metadata.json from each archive, skips
  unreadable ones with a warning, and sorts newest updatedAt first
- delete_cassette() is idempotent
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import shutil
import tempfile
import zipfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Mapping, Optional

import jsonschema

from cassette_deck.config import (
    AUDIO_DIRNAME,
    CASSETTE_EXTENSION,
    CASSETTE_LIBRARY_DIR,
    METADATA_FILENAME,
    TRANSCRIPT_FILENAME,
)
from cassette_deck.core.ir import AudioSnippet, CassetteData, CassetteMetadata, TranscriptSegment
from cassette_deck.storage.archive import ZipArchiver
from cassette_deck.storage.schemas import METADATA_SCHEMA, TRANSCRIPT_SCHEMA

logger = logging.getLogger(__name__)

_SNIPPET_FILENAME_RE = re.compile(r"snippet_(\d+)")


class CassetteFormatError(ValueError):
    """Raised when an archive is not a readable cassette.

    WHY: Corrupt or foreign archives must be distinguishable from a
    missing file so the caller can tell the user what went wrong.

    RULES:
    - Covers: not a zip, missing metadata.json/transcript.json, invalid
      JSON, JSON Schema violations
    - Message names the archive path
    """


@dataclass
class LoadedCassette:
    """Result of load_cassette().

    RULES:
    - audio_files maps snippet id -> path of the extracted blob
    - The blobs live in workdir, which stays on disk until cleanup()
    """

    cassette: CassetteData
    audio_files: Dict[str, str] = field(default_factory=dict)
    workdir: Optional[Path] = None

    def cleanup(self) -> None:
        """Remove the extracted working directory."""
        if self.workdir is not None and self.workdir.exists():
            shutil.rmtree(self.workdir, ignore_errors=True)
        self.workdir = None


class CassetteStore:
    """Library of .cass archives in one directory.

    HOW: The archiver is injectable; it defaults to ZipArchiver. The
    library directory is created on first write.
    """

    def __init__(
        self,
        library_dir: str | Path | None = None,
        archiver: ZipArchiver | None = None,
    ) -> None:
        self.library_dir = Path(library_dir) if library_dir is not None else CASSETTE_LIBRARY_DIR
        self._archiver = archiver or ZipArchiver()

    def cassette_path(self, cassette_id: str) -> Path:
        return self.library_dir / f"{cassette_id}{CASSETTE_EXTENSION}"

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    async def save_cassette(
        self,
        cassette: CassetteData,
        audio_files: Mapping[str, str],
    ) -> Path:
        """Write the cassette to <library>/<id>.cass and return the path.

        RULES:
        - Snippets without an entry in audio_files are saved without audio
        - A referenced blob that does not exist raises FileNotFoundError
        - Replaces an existing archive for the same id atomically

        Args:
            cassette: The aggregate to persist.
            audio_files: Snippet id -> path of the recorded blob.

        Returns:
            Path of the written archive.
        """
        loop = asyncio.get_running_loop()
        path = await loop.run_in_executor(None, self._save_sync, cassette, dict(audio_files))
        logger.info("Saved cassette %s to %s", cassette.metadata.id, path)
        return path

    def _save_sync(self, cassette: CassetteData, audio_files: Dict[str, str]) -> Path:
        self.library_dir.mkdir(parents=True, exist_ok=True)
        target = self.cassette_path(cassette.metadata.id)
        staging = Path(tempfile.mkdtemp(prefix="cassette_save_"))
        tmp_archive: Optional[Path] = None

        try:
            audio_dir = staging / AUDIO_DIRNAME
            audio_dir.mkdir()

            (staging / METADATA_FILENAME).write_text(
                json.dumps(cassette.metadata.to_dict(), indent=2), encoding="utf-8"
            )
            (staging / TRANSCRIPT_FILENAME).write_text(
                json.dumps([s.to_dict() for s in cassette.transcript], indent=2), encoding="utf-8"
            )

            for snippet in cassette.audio_snippets:
                source = audio_files.get(snippet.id)
                if source:
                    shutil.copyfile(source, audio_dir / snippet.filename)

            fd, tmp_name = tempfile.mkstemp(
                dir=self.library_dir, prefix=f".{cassette.metadata.id}_", suffix=".tmp"
            )
            os.close(fd)
            tmp_archive = Path(tmp_name)

            self._archiver.compress(staging, tmp_archive)
            os.replace(tmp_archive, target)
            tmp_archive = None
            return target
        finally:
            shutil.rmtree(staging, ignore_errors=True)
            if tmp_archive is not None and tmp_archive.exists():
                tmp_archive.unlink()

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    async def load_cassette(self, archive_path: str | Path) -> LoadedCassette:
        """Open a .cass archive.

        RULES:
        - Missing archive raises FileNotFoundError
        - Unreadable content raises CassetteFormatError
        - Snippets are sorted by the number parsed from their filename and
          carry start_time=0, duration=0; reconciling timing is the
          caller's job
        - Files in audio/ without a "snippet_<n>" name are ignored
        """
        loop = asyncio.get_running_loop()
        loaded = await loop.run_in_executor(None, self._load_sync, Path(archive_path))
        logger.info(
            "Loaded cassette %s (%d snippets, %d segments)",
            loaded.cassette.metadata.id,
            len(loaded.cassette.audio_snippets),
            len(loaded.cassette.transcript),
        )
        return loaded

    def _load_sync(self, archive_path: Path) -> LoadedCassette:
        if not archive_path.is_file():
            raise FileNotFoundError(f"Cassette archive not found: {archive_path}")

        workdir = Path(tempfile.mkdtemp(prefix="cassette_load_"))
        try:
            try:
                self._archiver.decompress(archive_path, workdir)
                metadata_raw = _read_json(workdir / METADATA_FILENAME)
                transcript_raw = _read_json(workdir / TRANSCRIPT_FILENAME)
                jsonschema.validate(metadata_raw, METADATA_SCHEMA)
                jsonschema.validate(transcript_raw, TRANSCRIPT_SCHEMA)
            except (zipfile.BadZipFile, FileNotFoundError, ValueError, jsonschema.ValidationError) as exc:
                raise CassetteFormatError(f"Invalid cassette archive {archive_path}: {exc}") from exc

            metadata = CassetteMetadata.from_dict(metadata_raw)
            transcript = [TranscriptSegment.from_dict(s) for s in transcript_raw]
            snippets, audio_files = _snippets_from_audio_dir(workdir / AUDIO_DIRNAME)
        except BaseException:
            shutil.rmtree(workdir, ignore_errors=True)
            raise

        return LoadedCassette(
            cassette=CassetteData(metadata=metadata, audio_snippets=snippets, transcript=transcript),
            audio_files=audio_files,
            workdir=workdir,
        )

    # ------------------------------------------------------------------
    # List / delete
    # ------------------------------------------------------------------

    async def list_cassettes(self) -> List[CassetteMetadata]:
        """Return metadata of every readable cassette, newest first."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._list_sync)

    def _list_sync(self) -> List[CassetteMetadata]:
        if not self.library_dir.is_dir():
            return []

        metadata_list: List[CassetteMetadata] = []
        for path in sorted(self.library_dir.glob(f"*{CASSETTE_EXTENSION}")):
            if not path.is_file():
                continue
            try:
                raw = json.loads(self._archiver.read_text(path, METADATA_FILENAME))
                jsonschema.validate(raw, METADATA_SCHEMA)
                metadata_list.append(CassetteMetadata.from_dict(raw))
            except (zipfile.BadZipFile, KeyError, OSError, ValueError, jsonschema.ValidationError) as exc:
                logger.warning("Skipping unreadable cassette %s: %s", path.name, exc)

        metadata_list.sort(key=lambda m: _parse_timestamp(m.updated_at), reverse=True)
        return metadata_list

    async def delete_cassette(self, cassette_id: str) -> bool:
        """Remove <id>.cass; returns False when there was nothing to remove."""
        path = self.cassette_path(cassette_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted cassette %s", cassette_id)
        return True


# ---------------------------------------------------------------------------
# Helpers (module-private)
# ---------------------------------------------------------------------------


def _read_json(path: Path):
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _snippets_from_audio_dir(audio_dir: Path):
    snippets: List[AudioSnippet] = []
    audio_files: Dict[str, str] = {}

    if not audio_dir.is_dir():
        return snippets, audio_files

    for item in audio_dir.iterdir():
        if not item.is_file():
            continue
        match = _SNIPPET_FILENAME_RE.search(item.name)
        if not match:
            continue

        snippet_id = f"snippet_{match.group(1)}"
        snippets.append(AudioSnippet(
            id=snippet_id,
            filename=item.name,
            start_time=0,
            duration=0,
            order=int(match.group(1)),
        ))
        audio_files[snippet_id] = str(item)

    snippets.sort(key=lambda s: s.order)
    return snippets, audio_files


def _parse_timestamp(value: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return datetime.min.replace(tzinfo=timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed

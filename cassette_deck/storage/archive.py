"""Zip archive collaborator for the cassette container.

WHY: The container codec only needs three things from an archive
library: pack a directory, unpack an archive, and read a single member
without unpacking the rest (for listing). Keeping them behind one small
class lets tests substitute a failing archiver.

HOW: Uses the standard zipfile module with DEFLATE compression. Archive
member names are POSIX paths relative to the packed directory;
directories get explicit entries so an empty audio/ folder survives a
round trip.

RULES:
- compress() overwrites dest_path
- decompress() refuses members that would escape dest_dir
- Errors from zipfile (BadZipFile, KeyError for missing members) propagate
"""

from __future__ import annotations

import os
import zipfile
from pathlib import Path


class ZipArchiver:
    """compress / decompress / read_text over zip files."""

    def compress(self, source_dir: str | Path, dest_path: str | Path) -> None:
        source_dir = Path(source_dir)
        with zipfile.ZipFile(dest_path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for root, dirs, files in os.walk(source_dir):
                dirs.sort()
                root_path = Path(root)
                for name in dirs:
                    zf.write(root_path / name, (root_path / name).relative_to(source_dir).as_posix() + "/")
                for name in sorted(files):
                    zf.write(root_path / name, (root_path / name).relative_to(source_dir).as_posix())

    def decompress(self, src_path: str | Path, dest_dir: str | Path) -> None:
        dest_dir = Path(dest_dir).resolve()
        with zipfile.ZipFile(src_path) as zf:
            for member in zf.namelist():
                target = (dest_dir / member).resolve()
                if target != dest_dir and dest_dir not in target.parents:
                    raise zipfile.BadZipFile(f"Unsafe member path in archive: {member}")
            zf.extractall(dest_dir)

    def read_text(self, src_path: str | Path, member: str) -> str:
        with zipfile.ZipFile(src_path) as zf:
            return zf.read(member).decode("utf-8")

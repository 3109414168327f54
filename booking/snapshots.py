"""Checkpoint screenshot storage with a fixed, validated naming pattern."""

from __future__ import annotations

import logging
import re
import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

log = logging.getLogger(__name__)

SNAPSHOT_PATTERN = re.compile(r"^screenshot-[a-z0-9][a-z0-9-]*-\d+\.png$")


class InvalidSnapshotName(ValueError):
    pass


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (name or "").lower()).strip("-")
    return slug or "checkpoint"


class SnapshotStore:
    def __init__(self, directory: Union[str, Path]) -> None:
        self.directory = Path(directory)

    def filename_for(self, name: str, timestamp_ms: Optional[int] = None) -> str:
        stamp = int(time.time() * 1000) if timestamp_ms is None else timestamp_ms
        return f"screenshot-{slugify(name)}-{stamp}.png"

    def save(self, name: str, data: bytes) -> Optional[str]:
        """Persist ``data``; returns the filename, or ``None`` if the write failed."""

        filename = self.filename_for(name)
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            (self.directory / filename).write_bytes(data)
        except OSError as exc:
            log.warning("Could not store snapshot %s: %s", filename, exc)
            return None
        log.info("Screenshot saved: %s", filename)
        return filename

    def list(self) -> List[Dict[str, Any]]:
        if not self.directory.is_dir():
            return []
        entries = []
        for path in self.directory.iterdir():
            if not path.is_file() or not SNAPSHOT_PATTERN.match(path.name):
                continue
            stat = path.stat()
            entries.append({"filename": path.name, "size": stat.st_size, "modified": stat.st_mtime})
        entries.sort(key=lambda entry: entry["modified"], reverse=True)
        return entries

    def path_for(self, filename: str) -> Path:
        """Validated path of an existing snapshot.

        Raises :class:`InvalidSnapshotName` for names outside the pattern and
        ``FileNotFoundError`` for unknown ones.
        """

        if not SNAPSHOT_PATTERN.match(filename or ""):
            raise InvalidSnapshotName(f"invalid snapshot name: {filename!r}")
        path = self.directory / filename
        if not path.is_file():
            raise FileNotFoundError(filename)
        return path

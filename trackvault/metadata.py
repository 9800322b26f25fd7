from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol

import mutagen
from mutagen import MutagenError

logger = logging.getLogger(__name__)

TAG_FIELDS = ("title", "artist", "album")


def normalize_string(s: Optional[str]) -> str:
    """Very small normalizer used for title comparison.
    Keep minimal to avoid changing scoring behavior elsewhere.
    """
    if s is None:
        return ""
    return " ".join(s.strip().lower().split())


class MetadataReader(Protocol):
    """Protocol for reading title/artist/album from an audio file."""

    def read(self, path: Path) -> Dict[str, str]:
        ...


class Importer(Protocol):
    """Protocol for placing an accepted file into the content store."""

    def place(self, source: Path, destination: Path, tags: Mapping[str, str]) -> None:
        ...


class MutagenMetadataReader:
    """Reads the easy (format independent) tags through mutagen.

    Missing tags are left out of the result; an unreadable file yields an
    empty mapping.
    """

    def read(self, path: Path) -> Dict[str, str]:
        try:
            audio = mutagen.File(str(path), easy=True)
        except MutagenError as e:
            logger.warning(f"Cannot read tags from {path}: {e}")
            return {}
        if audio is None or audio.tags is None:
            return {}
        out: Dict[str, str] = {}
        for field in TAG_FIELDS:
            values = audio.tags.get(field)
            if values:
                out[field] = str(values[0])
        return out


def write_tags(path: Path, tags: Mapping[str, str]) -> bool:
    """Write title/artist/album into ``path``. Returns False for unknown formats."""
    try:
        audio = mutagen.File(str(path), easy=True)
        if audio is None:
            return False
        for field in TAG_FIELDS:
            value = tags.get(field)
            if value:
                audio[field] = value
        audio.save()
    except MutagenError as e:
        logger.warning(f"Cannot write tags to {path}: {e}")
        return False
    return True


class CopyImporter:
    """Copies the source bytes into the store, then applies the accepted tags."""

    def __init__(self, tag: bool = True):
        self.tag = tag

    def place(self, source: Path, destination: Path, tags: Mapping[str, str]) -> None:
        destination.parent.mkdir(parents=True, exist_ok=True)
        tmp = destination.with_name(destination.name + ".tmp")
        shutil.copyfile(source, tmp)
        if self.tag:
            write_tags(tmp, tags)
        tmp.replace(destination)
        logger.debug(f"Placed {source} at {destination}")

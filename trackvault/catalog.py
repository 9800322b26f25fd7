"""
Manages the persistent fingerprint -> Record catalog.

Records live in a single SQLite table of (key, value) blobs. The key is the
16-byte big-endian fingerprint; the value is the binary encoding produced by
:func:`encode_record`. Iteration yields one result per stored row, either a
:class:`CatalogEntry` or a :class:`CorruptEntry`, so callers decide whether a
damaged row is skipped or fatal.

The :class:`Library` context bundles the open store, the content root and the
collaborators, and is what every catalog operation receives. Use
:func:`open_library` to obtain one; it flushes and closes the store on every
exit path.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import struct
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Generator, Iterator, Optional, Union

from .analysis import FEATURES, AnalysisVector, AudioAnalyzer, SidecarAnalyzer
from .digest import DIGEST_SIZE, FileDigest, file_digest
from .fingerprint import (
    KEY_SIZE,
    fingerprint_from_key,
    fingerprint_path,
    fingerprint_stem,
    fingerprint_to_key,
)
from .metadata import CopyImporter, Importer, MetadataReader, MutagenMetadataReader

logger = logging.getLogger(__name__)

_HEAD = struct.Struct(f">{DIGEST_SIZE}s{KEY_SIZE}s")
_LENGTH = struct.Struct(">I")
_ANALYSIS = struct.Struct(f">{len(FEATURES)}f")


class CorruptRecordError(ValueError):
    """A stored value could not be decoded into a Record."""


class CatalogOpenError(OSError):
    """The catalog store or the content root could not be opened."""


@dataclass(frozen=True)
class Record:
    content_hash: bytes
    fingerprint: int
    title: str
    artist: str
    album: str
    analysis: AnalysisVector

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content_hash": self.content_hash.hex(),
            "fingerprint": fingerprint_stem(self.fingerprint),
            "title": self.title,
            "artist": self.artist,
            "album": self.album,
            "analysis": self.analysis.to_dict(),
        }


@dataclass(frozen=True)
class CatalogEntry:
    fingerprint: int
    record: Record


@dataclass(frozen=True)
class CorruptEntry:
    key: bytes
    reason: str


################################################################################
# RECORD ENCODING
################################################################################


def _encode_text(value: str) -> bytes:
    raw = value.encode("utf-8")
    return _LENGTH.pack(len(raw)) + raw


def encode_record(record: Record) -> bytes:
    if len(record.content_hash) != DIGEST_SIZE:
        raise ValueError(
            f"content_hash must be {DIGEST_SIZE} bytes, got {len(record.content_hash)}"
        )
    parts = [
        _HEAD.pack(record.content_hash, fingerprint_to_key(record.fingerprint)),
        _encode_text(record.title),
        _encode_text(record.artist),
        _encode_text(record.album),
        _ANALYSIS.pack(*record.analysis.values),
    ]
    return b"".join(parts)


def decode_record(data: bytes) -> Record:
    """Inverse of encode_record. Raises CorruptRecordError on any malformed input."""
    try:
        content_hash, key = _HEAD.unpack_from(data, 0)
        offset = _HEAD.size
        texts = []
        for _ in range(3):
            (length,) = _LENGTH.unpack_from(data, offset)
            offset += _LENGTH.size
            if offset + length > len(data):
                raise CorruptRecordError("text field runs past end of value")
            texts.append(bytes(data[offset : offset + length]).decode("utf-8"))
            offset += length
        values = _ANALYSIS.unpack_from(data, offset)
        offset += _ANALYSIS.size
    except (struct.error, UnicodeDecodeError) as e:
        raise CorruptRecordError(str(e)) from e
    if offset != len(data):
        raise CorruptRecordError(f"{len(data) - offset} trailing bytes")
    title, artist, album = texts
    return Record(
        content_hash=bytes(content_hash),
        fingerprint=fingerprint_from_key(key),
        title=title,
        artist=artist,
        album=album,
        analysis=AnalysisVector(tuple(values)),
    )


################################################################################
# STORE
################################################################################


class CatalogStore:
    """Blocking key-value store of Records over one SQLite connection."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS catalog (
                key BLOB PRIMARY KEY,
                value BLOB NOT NULL
            )
            """
        )
        self._conn.commit()

    @classmethod
    def open(cls, db_path: Union[str, Path]) -> "CatalogStore":
        path = Path(db_path).expanduser()
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(path))
            conn.execute("PRAGMA journal_mode = WAL")
            return cls(conn)
        except (OSError, sqlite3.Error) as e:
            raise CatalogOpenError(f"Cannot open catalog {path}: {e}") from e

    def put(self, fp: int, record: Record) -> None:
        if record.fingerprint != fp:
            raise ValueError(
                f"Record fingerprint {fingerprint_stem(record.fingerprint)} "
                f"does not match key {fingerprint_stem(fp)}"
            )
        self._conn.execute(
            "REPLACE INTO catalog (key, value) VALUES (?, ?)",
            (fingerprint_to_key(fp), encode_record(record)),
        )

    def get(self, fp: int) -> Optional[Record]:
        row = self._conn.execute(
            "SELECT value FROM catalog WHERE key = ?", (fingerprint_to_key(fp),)
        ).fetchone()
        if row is None:
            return None
        record = decode_record(row[0])
        if record.fingerprint != fp:
            raise CorruptRecordError(
                f"value holds fingerprint {fingerprint_stem(record.fingerprint)}"
            )
        return record

    def remove(self, fp: int) -> None:
        self.remove_key(fingerprint_to_key(fp))

    def remove_key(self, key: bytes) -> None:
        self._conn.execute("DELETE FROM catalog WHERE key = ?", (bytes(key),))

    def iterate(self) -> Iterator[Union[CatalogEntry, CorruptEntry]]:
        """One result per stored row, from a snapshot taken when iteration starts."""
        rows = self._conn.execute("SELECT key, value FROM catalog ORDER BY key").fetchall()
        for key, value in rows:
            key = bytes(key)
            try:
                fp = fingerprint_from_key(key)
                record = decode_record(value)
            except ValueError as e:
                yield CorruptEntry(key, str(e))
                continue
            if record.fingerprint != fp:
                yield CorruptEntry(
                    key, f"value holds fingerprint {fingerprint_stem(record.fingerprint)}"
                )
                continue
            yield CatalogEntry(fp, record)

    def records(self) -> Iterator[CatalogEntry]:
        """Skip policy over iterate(): corrupt rows are logged and dropped."""
        for entry in self.iterate():
            if isinstance(entry, CorruptEntry):
                logger.warning(f"Skipping corrupt catalog entry {entry.key.hex()}: {entry.reason}")
                continue
            yield entry

    def flush(self) -> None:
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()

    def __len__(self) -> int:
        (count,) = self._conn.execute("SELECT COUNT(*) FROM catalog").fetchone()
        return count

    def __contains__(self, fp: int) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM catalog WHERE key = ?", (fingerprint_to_key(fp),)
        ).fetchone()
        return row is not None


################################################################################
# LIBRARY CONTEXT
################################################################################


@dataclass
class Library:
    """Everything a catalog operation needs, passed explicitly."""

    store: CatalogStore
    root: Path
    extension: str = "opus"
    analyzer: AudioAnalyzer = field(default_factory=SidecarAnalyzer)
    metadata: MetadataReader = field(default_factory=MutagenMetadataReader)
    importer: Importer = field(default_factory=CopyImporter)
    digest: FileDigest = file_digest

    def path_for(self, fp: int) -> Path:
        return fingerprint_path(self.root, fp, self.extension)


def format_compact(record: Record) -> str:
    return f"{fingerprint_stem(record.fingerprint)} | {record.artist} - {record.title} | {record.album}"


def format_detailed(record: Record) -> str:
    return json.dumps(record.to_dict(), ensure_ascii=False)


@contextmanager
def open_library(
    db_path: Union[str, Path],
    root: Union[str, Path],
    **options: Any,
) -> Generator[Library, None, None]:
    """
    Context manager owning the store handle for one command invocation.

    Creates the content root, opens the store, and always flushes and closes
    it on exit, including aborts and errors.

    Raises:
        CatalogOpenError: If the content root or the store cannot be opened
    """
    root_path = Path(root).expanduser()
    try:
        root_path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise CatalogOpenError(f"Cannot create content root {root_path}: {e}") from e
    if not root_path.is_dir():
        raise CatalogOpenError(f"Content root is not a directory: {root_path}")

    store = CatalogStore.open(db_path)
    try:
        yield Library(store=store, root=root_path, **options)
    finally:
        try:
            store.flush()
        finally:
            store.close()

"""
Audits the catalog against the content store and repairs drift.

For every record the expected file is ``library.path_for(fingerprint)``:

- missing file: the record is removed;
- digest differs from the stored content hash: title/artist/album are
  re-read from the file and the record is rewritten with the new digest,
  keeping its fingerprint and analysis vector;
- digest matches: nothing is written.

A second run without filesystem changes therefore performs no writes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import List

from .catalog import CorruptEntry, Library, Record

logger = logging.getLogger(__name__)


@dataclass
class ReconcileReport:
    removed: List[Record] = field(default_factory=list)
    updated: List[Record] = field(default_factory=list)
    unchanged: int = 0
    skipped: List[CorruptEntry] = field(default_factory=list)

    @property
    def mutations(self) -> int:
        return len(self.removed) + len(self.updated)


def reconcile(library: Library, dry_run: bool = False) -> ReconcileReport:
    """
    Bring the catalog in line with the files under ``library.root``.

    Args:
        library: Open library context
        dry_run: Report what would change without writing to the store

    Returns:
        ReconcileReport: Records removed and updated (updated holds the new
        records), the unchanged count, and corrupt entries that were skipped.
    """
    report = ReconcileReport()
    for entry in library.store.iterate():
        if isinstance(entry, CorruptEntry):
            logger.warning(f"Skipping corrupt catalog entry {entry.key.hex()}: {entry.reason}")
            report.skipped.append(entry)
            continue

        record = entry.record
        path = library.path_for(entry.fingerprint)
        if not path.is_file():
            logger.info(f"{path.name} no longer exists, removing '{record.title}'")
            if not dry_run:
                library.store.remove(entry.fingerprint)
            report.removed.append(record)
            continue

        digest = library.digest(path)
        if digest == record.content_hash:
            report.unchanged += 1
            continue

        tags = library.metadata.read(path)
        updated = replace(
            record,
            content_hash=digest,
            title=tags.get("title", ""),
            artist=tags.get("artist", ""),
            album=tags.get("album", ""),
        )
        logger.info(f"{path.name} differs from catalog, updating '{updated.title}'")
        if not dry_run:
            library.store.put(entry.fingerprint, updated)
        report.updated.append(updated)

    if not dry_run and report.mutations:
        library.store.flush()
    return report

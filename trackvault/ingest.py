"""
Headless ingestion of audio files into the catalog.

Ingesting is split in two so that the operator decision stays outside the
core:

1. :func:`examine` analyses a file and returns either a :class:`Duplicate`
   (its fingerprint is already catalogued) or :class:`Candidates` (the
   closest existing records by audio and by title).
2. :func:`apply` carries out a :class:`Resolution` for that outcome and
   returns :class:`Accepted` when a record was written.

:func:`ingest_directory` drives both over a directory tree, asking a
``decide`` callback for every outcome.
"""
from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, Union

from .analysis import AnalysisError, AnalysisVector
from .catalog import CorruptRecordError, Library, Record
from .fingerprint import fingerprint, fingerprint_stem
from .similarity import ClosestMatch, find_closest

logger = logging.getLogger(__name__)


class Decision(enum.Enum):
    NEW = "n"
    REPLACE_CLOSEST = "r"
    REPLACE_TITLE = "t"
    SKIP = "s"
    ABORT = "x"


@dataclass(frozen=True)
class Candidate:
    source: Path
    fingerprint: int
    analysis: AnalysisVector
    title: str = ""
    artist: str = ""
    album: str = ""

    @property
    def stem(self) -> str:
        return fingerprint_stem(self.fingerprint)


@dataclass(frozen=True)
class Duplicate:
    """The candidate's fingerprint is already catalogued.

    ``existing`` is None when the stored value under that key is corrupt.
    """

    candidate: Candidate
    existing: Optional[Record]


@dataclass(frozen=True)
class Candidates:
    candidate: Candidate
    closest: ClosestMatch


@dataclass(frozen=True)
class Accepted:
    record: Record
    path: Path
    replaced: Optional[int] = None


@dataclass(frozen=True)
class Resolution:
    """Operator answer for one outcome; ``candidate`` carries edited tags."""

    decision: Decision
    candidate: Optional[Candidate] = None


Outcome = Union[Duplicate, Candidates]


@dataclass
class IngestReport:
    accepted: List[Accepted] = field(default_factory=list)
    duplicates: List[Duplicate] = field(default_factory=list)
    skipped: List[Path] = field(default_factory=list)
    failed: List[tuple[Path, str]] = field(default_factory=list)
    aborted: bool = False


def examine(library: Library, path: Path) -> Outcome:
    """
    Analyse ``path`` and check it against the catalog. Never writes.

    Raises:
        AnalysisError: If the file cannot be analysed
    """
    path = Path(path)
    analysis = library.analyzer.analyze(path)
    tags = library.metadata.read(path)
    candidate = Candidate(
        source=path,
        fingerprint=fingerprint(analysis),
        analysis=analysis,
        title=tags.get("title", ""),
        artist=tags.get("artist", ""),
        album=tags.get("album", ""),
    )

    try:
        existing = library.store.get(candidate.fingerprint)
    except CorruptRecordError as e:
        logger.warning(f"Catalog entry {candidate.stem} is corrupt: {e}")
        return Duplicate(candidate, None)
    if existing is not None:
        return Duplicate(candidate, existing)

    closest = find_closest(candidate.title, candidate.analysis, library.store)
    return Candidates(candidate, closest)


def accept(library: Library, candidate: Candidate, replaced: Optional[int] = None) -> Accepted:
    """Place the file in the content store and write its record."""
    dest = library.path_for(candidate.fingerprint)
    tags = {"title": candidate.title, "artist": candidate.artist, "album": candidate.album}
    library.importer.place(candidate.source, dest, tags)
    record = Record(
        content_hash=library.digest(dest),
        fingerprint=candidate.fingerprint,
        title=candidate.title,
        artist=candidate.artist,
        album=candidate.album,
        analysis=candidate.analysis,
    )
    library.store.put(candidate.fingerprint, record)
    logger.info(f"Catalogued {candidate.stem}: {record.artist} - {record.title}")
    return Accepted(record, dest, replaced)


def _discard(library: Library, fp: int) -> None:
    path = library.path_for(fp)
    library.store.remove(fp)
    if path.exists():
        path.unlink()
    logger.info(f"Removed {fingerprint_stem(fp)} for replacement")


def _replace_target(outcome: Outcome, decision: Decision) -> Optional[int]:
    if isinstance(outcome, Duplicate):
        return outcome.candidate.fingerprint
    if decision is Decision.REPLACE_CLOSEST:
        return outcome.closest.audio_best
    return outcome.closest.title_best


def apply(library: Library, outcome: Outcome, resolution: Resolution) -> Optional[Accepted]:
    """
    Carry out ``resolution`` for ``outcome``.

    NEW is refused for a Duplicate so a catalogued key is never overwritten
    silently. REPLACE_* stores the candidate first and only then removes the
    targeted record and its file, so a failed import leaves the target intact.
    SKIP and ABORT write nothing.
    """
    decision = resolution.decision
    candidate = resolution.candidate or outcome.candidate
    if candidate.fingerprint != outcome.candidate.fingerprint:
        raise ValueError("An edited candidate must keep its fingerprint")

    if decision in (Decision.SKIP, Decision.ABORT):
        return None
    if decision is Decision.NEW:
        if isinstance(outcome, Duplicate):
            raise ValueError(
                f"{candidate.stem} is already catalogued; choose a replace decision"
            )
        return accept(library, candidate)

    target = _replace_target(outcome, decision)
    if target is None:
        raise ValueError(f"Nothing to replace for {candidate.stem}")
    accepted = accept(library, candidate, replaced=target)
    if target != candidate.fingerprint:
        _discard(library, target)
    return accepted


def iter_audio_files(root: Path, extensions: Optional[Iterable[str]] = None) -> Iterator[Path]:
    """
    Walks ``root`` for files to ingest, in a stable (sorted) order.

    Raises:
        OSError: If root is not an accessible directory
    """
    root = Path(root)
    if not root.is_dir():
        raise OSError(f"Not a directory: {root}")
    exts = {e.lower() for e in extensions} if extensions is not None else None
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for name in sorted(filenames):
            file_path = Path(dirpath) / name
            if exts is not None and file_path.suffix.lower() not in exts:
                continue
            yield file_path


def ingest_directory(
    library: Library,
    root: Path,
    decide: Callable[[Outcome], Resolution],
    extensions: Optional[Iterable[str]] = None,
) -> IngestReport:
    """
    Ingest every audio file under ``root``.

    Analysis failures are recorded and skipped. Duplicates are passed to
    ``decide`` like any other outcome. ABORT stops the batch; records written
    before it are kept.
    """
    report = IngestReport()
    for path in iter_audio_files(root, extensions):
        try:
            outcome = examine(library, path)
        except AnalysisError as e:
            logger.warning(f"Skipping {path}: {e}")
            report.failed.append((path, str(e)))
            continue

        if isinstance(outcome, Duplicate):
            report.duplicates.append(outcome)

        resolution = decide(outcome)
        if resolution.decision is Decision.ABORT:
            logger.info("Ingest aborted by operator")
            report.aborted = True
            break
        if resolution.decision is Decision.SKIP:
            report.skipped.append(path)
            continue

        accepted = apply(library, outcome, resolution)
        if accepted is not None:
            report.accepted.append(accepted)
    return report

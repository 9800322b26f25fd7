"""
Nearest-match search over the catalog.

A linear scan finds the record whose analysis vector is closest to a
candidate's (cosine distance, lower is closer) and the record whose title is
most similar (rapidfuzz ratio scaled to 0..1, higher is closer). There is no
index; one query costs O(N) in the catalog size, which is fine for a
personal library of a few thousand tracks and is the scaling limit of the
design.

Tie-break: on an exact tie the lower fingerprint wins, on both sides, so the
result does not depend on the order the store yields rows in. NaN distances
and scores never replace the current best.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional, Union

import numpy as np
from rapidfuzz import fuzz as rf_fuzz

from .analysis import AnalysisVector
from .catalog import CatalogEntry, CatalogStore, CorruptEntry
from .metadata import normalize_string

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClosestMatch:
    audio_best: Optional[int] = None
    audio_distance: float = math.inf
    title_best: Optional[int] = None
    title_score: float = 0.0


def cosine_distance(a: AnalysisVector, b: AnalysisVector) -> float:
    """1 - cosine similarity. NaN when either vector has zero norm or NaN values."""
    va, vb = a.as_array(), b.as_array()
    with np.errstate(all="ignore"):
        norm = np.float32(np.linalg.norm(va) * np.linalg.norm(vb))
        similarity = np.float32(np.dot(va, vb)) / norm
        return float(np.float32(1.0) - similarity)


def title_score(a: str, b: str) -> float:
    """Fuzzy title similarity in [0, 1]; 1.0 for identical strings.

    Case and runs of whitespace are ignored. An empty title matches nothing.
    """
    a, b = normalize_string(a), normalize_string(b)
    if not a or not b:
        return 0.0
    return rf_fuzz.ratio(a, b) / 100.0


def _better(value: float, best: float, fp: int, best_fp: Optional[int], lower: bool) -> bool:
    if math.isnan(value):
        return False
    if value == best:
        return best_fp is not None and fp < best_fp
    return value < best if lower else value > best


def find_closest(
    title: str,
    analysis: AnalysisVector,
    entries: Union[CatalogStore, Iterable[Union[CatalogEntry, CorruptEntry]]],
) -> ClosestMatch:
    """Scan ``entries`` for the audio-nearest and title-nearest records."""
    if isinstance(entries, CatalogStore):
        entries = entries.iterate()

    audio_best: Optional[int] = None
    audio_distance = math.inf
    title_best: Optional[int] = None
    best_title_score = 0.0
    scanned = 0

    for entry in entries:
        if isinstance(entry, CorruptEntry):
            logger.warning(f"Skipping corrupt catalog entry {entry.key.hex()}: {entry.reason}")
            continue
        scanned += 1
        record = entry.record

        dist = cosine_distance(analysis, record.analysis)
        if _better(dist, audio_distance, entry.fingerprint, audio_best, lower=True):
            audio_distance = dist
            audio_best = entry.fingerprint

        score = title_score(title, record.title)
        if _better(score, best_title_score, entry.fingerprint, title_best, lower=False):
            best_title_score = score
            title_best = entry.fingerprint

    logger.debug(f"Scanned {scanned} records for closest match")
    return ClosestMatch(audio_best, audio_distance, title_best, best_title_score)

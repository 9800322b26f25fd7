"""Tests for nearest-match search."""

from __future__ import annotations

import math

import pytest

from trackvault.analysis import FEATURES, AnalysisVector
from trackvault.catalog import CatalogEntry, CorruptEntry, Record
from trackvault.similarity import ClosestMatch, cosine_distance, find_closest, title_score


def entry(fp: int, vector: AnalysisVector, title: str = "") -> CatalogEntry:
    record = Record(
        content_hash=b"\x00" * 32,
        fingerprint=fp,
        title=title,
        artist="",
        album="",
        analysis=vector,
    )
    return CatalogEntry(fp, record)


ZERO = AnalysisVector((0.0,) * len(FEATURES))


def test_empty_catalog() -> None:
    closest = find_closest("Anything", ZERO, [])
    assert closest == ClosestMatch(None, math.inf, None, 0.0)


def test_cosine_distance_basics(make_vector) -> None:
    v = make_vector()
    assert cosine_distance(v, v) == pytest.approx(0.0, abs=1e-6)
    scaled = AnalysisVector(tuple(x * 2 for x in v.values))
    assert cosine_distance(v, scaled) == pytest.approx(0.0, abs=1e-6)
    assert math.isnan(cosine_distance(v, ZERO))


def test_title_score_range() -> None:
    assert title_score("Blue Monday", "Blue Monday") == 1.0
    assert 0.0 < title_score("Blue Monday", "Blue Mondays") < 1.0
    assert title_score("abc", "xyz") == 0.0
    assert title_score("blue  MONDAY", "Blue Monday") == 1.0
    assert title_score("", "") == 0.0


def test_nearest_audio_is_exact_match(make_vector) -> None:
    target = make_vector()
    entries = [
        entry(1, make_vector(tempo=60.0, chroma_1=5.0)),
        entry(2, target),
        entry(3, make_vector(mean_loudness=9.0, chroma_9=0.0)),
    ]
    closest = find_closest("", target, entries)
    assert closest.audio_best == 2
    assert closest.audio_distance == pytest.approx(0.0, abs=1e-6)


def test_nearest_title_is_exact_match(make_vector) -> None:
    entries = [
        entry(1, make_vector(), "Blue Mondays"),
        entry(2, make_vector(), "Blue Monday"),
        entry(3, make_vector(), "Bizarre Love Triangle"),
    ]
    closest = find_closest("Blue Monday", make_vector(), entries)
    assert closest.title_best == 2
    assert closest.title_score == 1.0


def test_ties_go_to_lowest_fingerprint(make_vector) -> None:
    v = make_vector()
    for order in ([9, 4, 7], [4, 7, 9], [7, 9, 4]):
        closest = find_closest("Same", v, [entry(fp, v, "Same") for fp in order])
        assert closest.audio_best == 4
        assert closest.title_best == 4


def test_nan_never_wins(make_vector) -> None:
    v = make_vector()
    closest = find_closest("", v, [entry(1, ZERO), entry(2, v)])
    assert closest.audio_best == 2

    closest = find_closest("", ZERO, [entry(1, v), entry(2, v)])
    assert closest.audio_best is None
    assert closest.audio_distance == math.inf


def test_unrelated_titles_leave_no_title_best(make_vector) -> None:
    closest = find_closest("abc", make_vector(), [entry(1, make_vector(), "xyz")])
    assert closest.title_best is None
    assert closest.title_score == 0.0
    assert closest.audio_best == 1


def test_corrupt_entries_are_skipped(make_vector) -> None:
    v = make_vector()
    closest = find_closest("T", v, [CorruptEntry(b"\x00" * 16, "bad"), entry(5, v, "T")])
    assert closest.audio_best == 5
    assert closest.title_best == 5


def test_scans_a_store(library, make_vector) -> None:
    v = make_vector()
    record = Record(
        content_hash=b"\x01" * 32,
        fingerprint=123,
        title="Stored",
        artist="",
        album="",
        analysis=v,
    )
    library.store.put(123, record)
    closest = find_closest("Stored", v, library.store)
    assert closest.audio_best == 123
    assert closest.title_best == 123

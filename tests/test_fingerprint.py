"""Tests for fingerprint derivation and the key/path encodings."""

from __future__ import annotations

from pathlib import Path

import numpy as np
import pytest

from trackvault import fingerprint as fp_module
from trackvault.analysis import FEATURES, AnalysisVector
from trackvault.fingerprint import (
    fingerprint,
    fingerprint_filename,
    fingerprint_from_key,
    fingerprint_path,
    fingerprint_stem,
    fingerprint_to_key,
    fingerprint_words,
    parse_fingerprint_stem,
)

KNOWN = 0x42F00000_40200000_40200000_34004000


def known_vector(**overrides: float) -> AnalysisVector:
    values = {name: 0.5 for name in FEATURES}
    for feature in ("loudness", "spectral_centroid", "spectral_flatness", "spectral_rolloff"):
        values[f"mean_{feature}"] = 1.0
        values[f"std_{feature}"] = 2.0
    values["tempo"] = 120.0
    values["zero_crossing_rate"] = 0.0
    values.update(overrides)
    return AnalysisVector.from_mapping(values)


def test_known_vector_layout() -> None:
    """Each word carries the documented quantity."""
    fp = fingerprint(known_vector())
    assert fp == KNOWN
    word0, word1, word2, word3 = fingerprint_words(fp)
    assert word0 >> 16 == 0x3400  # half(0.25): (1*1*1*1)/(1+1+1+1)
    assert word0 & 0xFFFF == 0x4000  # half(2.0): 16/8
    assert word1 == word2 == 0x40200000  # 2.5f
    assert word3 == 0x42F00000  # 120.0f


def test_deterministic_across_calls(make_vector) -> None:
    vector = make_vector()
    assert fingerprint(vector) == fingerprint(vector)
    assert fingerprint(vector) == fingerprint(AnalysisVector(vector.values))


def test_odd_and_even_chroma_land_in_separate_words() -> None:
    base = fingerprint(known_vector())
    bumped = fingerprint(known_vector(chroma_2=1.5))
    assert fingerprint_words(bumped)[1] == fingerprint_words(base)[1]
    assert fingerprint_words(bumped)[2] != fingerprint_words(base)[2]


def test_zero_denominator_encodes_nan() -> None:
    """All-zero means divide 0 by 0; the NaN is encoded, not trapped."""
    zeros = {
        f"mean_{f}": 0.0
        for f in ("loudness", "spectral_centroid", "spectral_flatness", "spectral_rolloff")
    }
    vector = known_vector(**zeros)
    fp = fingerprint(vector)
    high_half = fingerprint_words(fp)[0] >> 16
    assert high_half & 0x7C00 == 0x7C00
    assert high_half & 0x03FF != 0
    assert fingerprint(vector) == fp
    # Other words are unaffected
    assert fingerprint_words(fp)[1:] == fingerprint_words(KNOWN)[1:]


def test_half_overflow_is_infinity() -> None:
    big = {
        f"mean_{f}": 1.0e4
        for f in ("loudness", "spectral_centroid", "spectral_flatness", "spectral_rolloff")
    }
    fp = fingerprint(known_vector(**big))
    assert fingerprint_words(fp)[0] >> 16 == 0x7C00


def test_half_rounds_to_nearest_even() -> None:
    assert fp_module._half_bits(np.float32(1 + 2**-11)) == 0x3C00
    assert fp_module._half_bits(np.float32(1 + 3 * 2**-11)) == 0x3C02


def test_key_is_big_endian_and_round_trips() -> None:
    key = fingerprint_to_key(KNOWN)
    assert len(key) == 16
    assert key[:4] == bytes.fromhex("42f00000")
    assert fingerprint_from_key(key) == KNOWN


def test_key_rejects_bad_input() -> None:
    with pytest.raises(ValueError):
        fingerprint_to_key(-1)
    with pytest.raises(ValueError):
        fingerprint_to_key(1 << 128)
    with pytest.raises(ValueError):
        fingerprint_from_key(b"\x00" * 15)


def test_stem_and_path() -> None:
    assert fingerprint_stem(KNOWN) == "42f000004020000040200000_34004000"
    assert fingerprint_stem(0x1_00000002) == "1_2"
    assert parse_fingerprint_stem(fingerprint_stem(KNOWN)) == KNOWN
    assert fingerprint_filename(KNOWN, ".opus") == "42f000004020000040200000_34004000.opus"
    assert fingerprint_path(Path("/music"), 5, "flac") == Path("/music/0_5.flac")

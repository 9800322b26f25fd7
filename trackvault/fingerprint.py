"""
Derives the 128-bit catalog key from an analysis vector.

The fingerprint is a lossy summary, not a content hash: similar audio tends
to produce equal or nearby keys. Layout, most significant word first::

    word3 = float32 bits of (tempo + zero_crossing_rate)
    word2 = float32 bits of (chroma_2 + chroma_4 + ... + chroma_10)
    word1 = float32 bits of (chroma_1 + chroma_3 + ... + chroma_9)
    word0 = half(mean ratio) << 16 | half(std ratio)

where ratio(l, c, f, r) = (l*c*f*r) / (l+c+f+r) over loudness, spectral
centroid, spectral flatness and spectral rolloff. All arithmetic is float32.
A zero denominator yields NaN, which is encoded bit-for-bit like any other
value.
"""
from __future__ import annotations

from pathlib import Path

import numpy as np

from .analysis import AnalysisVector

KEY_SIZE = 16
_MASK32 = (1 << 32) - 1
_MASK96 = (1 << 96) - 1
_MASK128 = (1 << 128) - 1


def _f32(value: float) -> np.float32:
    return np.float32(value)


def _half_bits(value: np.float32) -> int:
    # numpy converts float32 -> float16 with round-to-nearest-even
    return int(np.array(value, dtype=np.float32).astype(np.float16).view(np.uint16))


def _float_bits(value: np.float32) -> int:
    return int(np.array(value, dtype=np.float32).view(np.uint32))


def _ratio(analysis: AnalysisVector, prefix: str) -> np.float32:
    loudness = _f32(analysis[f"{prefix}_loudness"])
    centroid = _f32(analysis[f"{prefix}_spectral_centroid"])
    flatness = _f32(analysis[f"{prefix}_spectral_flatness"])
    rolloff = _f32(analysis[f"{prefix}_spectral_rolloff"])
    return (loudness * centroid * flatness * rolloff) / (
        loudness + centroid + flatness + rolloff
    )


def _chroma_sum(analysis: AnalysisVector, bins) -> np.float32:
    total = _f32(analysis[f"chroma_{bins[0]}"])
    for b in bins[1:]:
        total = total + _f32(analysis[f"chroma_{b}"])
    return total


def fingerprint(analysis: AnalysisVector) -> int:
    """Return the 128-bit fingerprint of ``analysis``."""
    with np.errstate(all="ignore"):
        mean_half = _half_bits(_ratio(analysis, "mean"))
        std_half = _half_bits(_ratio(analysis, "std"))
        word0 = (mean_half << 16) | std_half
        word1 = _float_bits(_chroma_sum(analysis, (1, 3, 5, 7, 9)))
        word2 = _float_bits(_chroma_sum(analysis, (2, 4, 6, 8, 10)))
        word3 = _float_bits(
            _f32(analysis["tempo"]) + _f32(analysis["zero_crossing_rate"])
        )
    return (word3 << 96) | (word2 << 64) | (word1 << 32) | word0


def fingerprint_words(fp: int) -> tuple[int, int, int, int]:
    """Split a fingerprint into (word0, word1, word2, word3)."""
    return tuple((fp >> shift) & _MASK32 for shift in (0, 32, 64, 96))


def fingerprint_to_key(fp: int) -> bytes:
    """16-byte big-endian store key."""
    if not 0 <= fp <= _MASK128:
        raise ValueError(f"Fingerprint out of range: {fp!r}")
    return fp.to_bytes(KEY_SIZE, "big")


def fingerprint_from_key(key: bytes) -> int:
    if len(key) != KEY_SIZE:
        raise ValueError(f"Store keys are {KEY_SIZE} bytes, got {len(key)}")
    return int.from_bytes(key, "big")


def fingerprint_stem(fp: int) -> str:
    """Human and file-name form: ``<high 96 bits hex>_<low 32 bits hex>``."""
    return f"{(fp >> 32) & _MASK96:x}_{fp & _MASK32:x}"


def parse_fingerprint_stem(stem: str) -> int:
    high, sep, low = stem.partition("_")
    if not sep:
        raise ValueError(f"Not a fingerprint stem: {stem!r}")
    high_val, low_val = int(high, 16), int(low, 16)
    if high_val > _MASK96 or low_val > _MASK32:
        raise ValueError(f"Not a fingerprint stem: {stem!r}")
    return (high_val << 32) | low_val


def fingerprint_filename(fp: int, extension: str = "opus") -> str:
    return f"{fingerprint_stem(fp)}.{extension.lstrip('.')}"


def fingerprint_path(root: Path, fp: int, extension: str = "opus") -> Path:
    return Path(root) / fingerprint_filename(fp, extension)

"""
Audio analysis vectors and the analyzer collaborators that produce them.

Feature extraction itself happens outside trackvault. An analyzer only has to
turn a file path into an :class:`AnalysisVector`; the default
:class:`SidecarAnalyzer` loads vectors that an external tool wrote next to
each audio file.
"""
from __future__ import annotations

import importlib
import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Mapping, Protocol, Tuple, Union

import numpy as np

logger = logging.getLogger(__name__)

FEATURES: Tuple[str, ...] = (
    "mean_loudness",
    "std_loudness",
    "mean_spectral_centroid",
    "std_spectral_centroid",
    "mean_spectral_flatness",
    "std_spectral_flatness",
    "mean_spectral_rolloff",
    "std_spectral_rolloff",
    "chroma_1",
    "chroma_2",
    "chroma_3",
    "chroma_4",
    "chroma_5",
    "chroma_6",
    "chroma_7",
    "chroma_8",
    "chroma_9",
    "chroma_10",
    "tempo",
    "zero_crossing_rate",
)

FEATURE_INDEX: Dict[str, int] = {name: i for i, name in enumerate(FEATURES)}


class AnalysisError(Exception):
    """Raised when a file cannot be analysed or its vector is malformed."""


@dataclass(frozen=True)
class AnalysisVector:
    """Immutable, ordered set of float32 audio features (see ``FEATURES``)."""

    values: Tuple[float, ...]

    def __post_init__(self) -> None:
        if len(self.values) != len(FEATURES):
            raise AnalysisError(
                f"Expected {len(FEATURES)} features, got {len(self.values)}"
            )
        # Round every value through float32 so stored vectors compare equal
        rounded = tuple(float(v) for v in np.asarray(self.values, dtype=np.float32))
        object.__setattr__(self, "values", rounded)

    @classmethod
    def from_sequence(cls, values: Iterable[Any]) -> "AnalysisVector":
        try:
            return cls(tuple(float(v) for v in values))
        except (TypeError, ValueError) as e:
            raise AnalysisError(f"Invalid feature value: {e}") from e

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AnalysisVector":
        unknown = set(data) - set(FEATURES)
        if unknown:
            raise AnalysisError(f"Unknown features: {', '.join(sorted(unknown))}")
        missing = [name for name in FEATURES if name not in data]
        if missing:
            raise AnalysisError(f"Missing features: {', '.join(missing)}")
        return cls.from_sequence(data[name] for name in FEATURES)

    def __getitem__(self, key: Union[str, int]) -> float:
        if isinstance(key, str):
            return self.values[FEATURE_INDEX[key]]
        return self.values[key]

    def __iter__(self) -> Iterator[float]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    # Equality is over float32 bit patterns so NaN features compare equal
    def _bits(self) -> bytes:
        return self.as_array().view(np.uint32).tobytes()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AnalysisVector):
            return NotImplemented
        return self._bits() == other._bits()

    def __hash__(self) -> int:
        return hash(self._bits())

    def as_array(self) -> np.ndarray:
        return np.asarray(self.values, dtype=np.float32)

    def to_dict(self) -> Dict[str, float]:
        return {name: value for name, value in zip(FEATURES, self.values)}

    def has_nan(self) -> bool:
        return any(math.isnan(v) for v in self.values)


class AudioAnalyzer(Protocol):
    """Protocol for the external feature extractor."""

    def analyze(self, path: Path) -> AnalysisVector:
        """Return the analysis vector for ``path`` or raise AnalysisError."""
        ...


class SidecarAnalyzer:
    """Loads precomputed vectors from ``<audio file><suffix>`` JSON files.

    The sidecar holds either an object keyed by feature name or a list of
    the twenty values in ``FEATURES`` order.
    """

    def __init__(self, suffix: str = ".analysis.json"):
        self.suffix = suffix

    def sidecar_for(self, path: Path) -> Path:
        path = Path(path)
        return path.with_name(path.name + self.suffix)

    def analyze(self, path: Path) -> AnalysisVector:
        sidecar = self.sidecar_for(path)
        try:
            with open(sidecar, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise AnalysisError(f"No analysis found for {path}") from e
        except (OSError, ValueError) as e:
            raise AnalysisError(f"Unreadable analysis {sidecar}: {e}") from e

        if isinstance(data, dict):
            # Tolerate a wrapper object such as {"analysis": {...}}
            if "analysis" in data and isinstance(data["analysis"], (dict, list)):
                data = data["analysis"]
        if isinstance(data, dict):
            return AnalysisVector.from_mapping(data)
        if isinstance(data, list):
            return AnalysisVector.from_sequence(data)
        raise AnalysisError(f"Unsupported analysis format in {sidecar}")


def load_analyzer(target: str = "", suffix: str = ".analysis.json") -> AudioAnalyzer:
    """Build the configured analyzer.

    ``target`` is empty for the sidecar analyzer, or ``"module:attribute"``
    naming a class or factory that is called with no arguments.
    """
    if not target:
        return SidecarAnalyzer(suffix=suffix)
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Analyzer must be given as 'module:attribute', got {target!r}")
    module = importlib.import_module(module_name)
    factory = getattr(module, attr)
    analyzer = factory()
    logger.debug(f"Loaded analyzer {target}")
    return analyzer

"""Shared fixtures: a temporary library with sidecar analyses and JSON 'audio' files."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Dict

import pytest

from trackvault.analysis import FEATURES, AnalysisVector
from trackvault.catalog import Library, open_library
from trackvault.metadata import CopyImporter

TAG_FIELDS = ("title", "artist", "album")


class JsonTagReader:
    """Test metadata reader: the fake audio files are JSON objects of tags."""

    def read(self, path: Path) -> Dict[str, str]:
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        return {k: v for k, v in data.items() if k in TAG_FIELDS}


def base_values() -> Dict[str, float]:
    values = {name: (i + 1) / 10 for i, name in enumerate(FEATURES)}
    values["tempo"] = 120.0
    values["zero_crossing_rate"] = 0.05
    return values


@pytest.fixture
def make_vector() -> Callable[..., AnalysisVector]:
    def _make(**overrides: float) -> AnalysisVector:
        values = base_values()
        values.update(overrides)
        return AnalysisVector.from_mapping(values)

    return _make


@pytest.fixture
def write_track() -> Callable[..., Path]:
    """Write ``<dir>/<name>`` holding JSON tags plus its ``.analysis.json`` sidecar."""

    def _write(directory: Path, name: str, vector: AnalysisVector | None, **tags: str) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / name
        path.write_text(json.dumps(tags), encoding="utf-8")
        if vector is not None:
            sidecar = path.with_name(path.name + ".analysis.json")
            sidecar.write_text(json.dumps(vector.to_dict()), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "catalog.db"


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    return tmp_path / "store"


@pytest.fixture
def tag_reader() -> JsonTagReader:
    return JsonTagReader()


@pytest.fixture
def library(db_path: Path, store_root: Path, tag_reader: JsonTagReader) -> Library:
    with open_library(
        db_path,
        store_root,
        metadata=tag_reader,
        importer=CopyImporter(tag=False),
    ) as lib:
        yield lib

"""Tests for analysis vectors and analyzers."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from trackvault.analysis import (
    FEATURES,
    AnalysisError,
    AnalysisVector,
    SidecarAnalyzer,
    load_analyzer,
)


def test_values_are_rounded_to_float32() -> None:
    vector = AnalysisVector.from_sequence([0.1] * len(FEATURES))
    assert vector["tempo"] != 0.1
    assert vector["tempo"] == pytest.approx(0.1)
    assert AnalysisVector(vector.values) == vector


def test_lookup_by_name_and_index(make_vector) -> None:
    vector = make_vector(tempo=98.0)
    assert vector["tempo"] == 98.0
    assert vector[FEATURES.index("tempo")] == 98.0
    assert len(vector) == 20
    assert list(vector.to_dict()) == list(FEATURES)


def test_mapping_must_be_complete(make_vector) -> None:
    data = make_vector().to_dict()
    del data["chroma_4"]
    with pytest.raises(AnalysisError, match="chroma_4"):
        AnalysisVector.from_mapping(data)


def test_mapping_rejects_unknown_feature(make_vector) -> None:
    data = make_vector().to_dict()
    data["bpm"] = 1.0
    with pytest.raises(AnalysisError, match="bpm"):
        AnalysisVector.from_mapping(data)


def test_sequence_length_and_type_checked() -> None:
    with pytest.raises(AnalysisError):
        AnalysisVector.from_sequence([1.0] * 19)
    with pytest.raises(AnalysisError):
        AnalysisVector.from_sequence(["x"] * 20)


def test_sidecar_accepts_object_list_and_wrapper(tmp_path: Path, make_vector) -> None:
    vector = make_vector()
    analyzer = SidecarAnalyzer()
    audio = tmp_path / "song.opus"
    audio.write_bytes(b"")
    sidecar = analyzer.sidecar_for(audio)
    assert sidecar.name == "song.opus.analysis.json"

    for payload in (vector.to_dict(), list(vector.values), {"analysis": vector.to_dict()}):
        sidecar.write_text(json.dumps(payload), encoding="utf-8")
        assert analyzer.analyze(audio) == vector


def test_sidecar_errors(tmp_path: Path) -> None:
    analyzer = SidecarAnalyzer(suffix=".json")
    audio = tmp_path / "song.opus"
    with pytest.raises(AnalysisError, match="No analysis"):
        analyzer.analyze(audio)
    (tmp_path / "song.opus.json").write_text("not json", encoding="utf-8")
    with pytest.raises(AnalysisError):
        analyzer.analyze(audio)
    (tmp_path / "song.opus.json").write_text('"text"', encoding="utf-8")
    with pytest.raises(AnalysisError, match="Unsupported"):
        analyzer.analyze(audio)


def test_load_analyzer() -> None:
    assert isinstance(load_analyzer(""), SidecarAnalyzer)
    assert load_analyzer("", suffix=".x").suffix == ".x"
    assert isinstance(load_analyzer("trackvault.analysis:SidecarAnalyzer"), SidecarAnalyzer)
    with pytest.raises(ValueError):
        load_analyzer("trackvault.analysis")

"""
HTTP service tests (FastAPI TestClient). Assets come from a temp dir via dependency overrides.
Run from project root: python -m pytest tests/test_api.py -v
"""
import sys
import os
import struct

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import pytest
from fastapi.testclient import TestClient

from heartbeat_engine.core.io import AssetStore
from heartbeat_engine.core.wav import decode, encode, read_header
from heartbeat_engine.instruments.heartbeat import synthesize_heartbeat
from heartbeat_engine.main import app, get_assets, get_context
from heartbeat_engine.pipeline import ProcessingContext

SR = 44100


@pytest.fixture
def assets(tmp_path):
    baseline = tmp_path / "baseline-heartbeat.wav"
    baseline.write_bytes(encode(synthesize_heartbeat(140, 8.0, SR, seed=1)))
    return AssetStore(baseline, tmp_path / "whisper.wav")


@pytest.fixture
def client(assets):
    app.dependency_overrides[get_assets] = lambda: assets
    app.dependency_overrides[get_context] = lambda: ProcessingContext.create()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def missing_client(tmp_path):
    store = AssetStore(tmp_path / "missing.wav")
    app.dependency_overrides[get_assets] = lambda: store
    app.dependency_overrides[get_context] = lambda: ProcessingContext.create()
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_process_audio(client):
    response = client.post("/process-audio", json={"bpm": 182})
    assert response.status_code == 200
    assert response.headers["content-type"] == "audio/wav"
    assert 'filename="processed-audio.wav"' in response.headers["content-disposition"]
    assert response.headers["x-target-bpm"] == "182"
    assert response.headers["x-original-bpm"] == "140"
    assert response.headers["x-audio-source"] == "baseline"
    assert float(response.headers["x-speed-factor"]) == pytest.approx(182 / 140 * 1.3, abs=1e-4)
    assert decode(response.content).length == 8 * SR


def test_create_sample(client):
    response = client.post("/create-sample", json={"bpm": 90})
    assert response.status_code == 200
    assert 'filename="sample-audio.wav"' in response.headers["content-disposition"]
    assert decode(response.content).length == 3 * SR


@pytest.mark.parametrize("body", [{}, {"bpm": 59}, {"bpm": 201}, {"bpm": "120"}, {"bpm": None}, {"bpm": True}])
@pytest.mark.parametrize("route", ["/process-audio", "/create-sample"])
def test_invalid_bpm_is_400(client, route, body):
    response = client.post(route, json=body)
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid BPM value. Must be between 60 and 200."}


def test_missing_baseline_still_plays(missing_client):
    response = missing_client.post("/process-audio", json={"bpm": 100})
    assert response.status_code == 200
    assert response.headers["x-audio-source"] == "synthetic"
    assert read_header(response.content).sample_rate == SR


def test_baseline_audio(client, assets):
    response = client.get("/baseline-audio")
    assert response.status_code == 200
    assert response.content == assets.baseline_path.read_bytes()


def test_baseline_audio_missing(missing_client):
    response = missing_client.get("/baseline-audio")
    assert response.status_code == 500
    assert "error" in response.json()


def test_analyze_baseline(client):
    response = client.get("/analyze-baseline")
    assert response.status_code == 200
    metadata = response.json()["metadata"]
    assert metadata["filename"] == "baseline-heartbeat.wav"
    assert metadata["baseline_bpm"] == 140.0
    assert metadata["header"]["sample_rate"] == SR
    assert metadata["analysis"]["samples"] == 8 * SR
    assert metadata["analysis"]["estimated_bpm"] == pytest.approx(140, rel=0.05)


def test_analyze_baseline_missing(missing_client):
    assert missing_client.get("/analyze-baseline").status_code == 500


# -----------------------------------------------------------------------------
# Asset edge cases
# -----------------------------------------------------------------------------

def _serve(store, context=None):
    app.dependency_overrides[get_assets] = lambda: store
    app.dependency_overrides[get_context] = lambda: context or ProcessingContext.create()
    return TestClient(app)


def test_streamed_size_baseline_is_used(tmp_path):
    data = bytearray(encode(synthesize_heartbeat(140, 1.0, SR, seed=1)))
    data[40:44] = struct.pack("<I", 0xFFFFFFFF)
    path = tmp_path / "baseline-heartbeat.wav"
    path.write_bytes(bytes(data))
    try:
        client = _serve(AssetStore(path))
        response = client.post("/process-audio", json={"bpm": 120})
        assert response.status_code == 200
        assert response.headers["x-audio-source"] == "baseline"
        assert client.get("/analyze-baseline").json()["metadata"]["analysis"]["samples"] == SR
    finally:
        app.dependency_overrides.clear()


def test_oversized_baseline_falls_back(tmp_path):
    path = tmp_path / "baseline-heartbeat.wav"
    path.write_bytes(encode(synthesize_heartbeat(140, 1.0, SR, seed=1)))
    try:
        client = _serve(AssetStore(path, max_decode_bytes=1000))
        response = client.post("/process-audio", json={"bpm": 120})
        assert response.status_code == 200
        assert response.headers["x-audio-source"] == "synthetic"
        assert decode(response.content).length == 8 * SR
        assert client.post("/create-sample", json={"bpm": 120}).headers["x-audio-source"] == "synthetic"
        analysis = client.get("/analyze-baseline")
        assert analysis.status_code == 500
        assert analysis.json() == {"error": "Failed to analyze baseline audio"}
    finally:
        app.dependency_overrides.clear()


def test_core_argument_error_is_generic_500(assets):
    broken = ProcessingContext(dict(ProcessingContext.create().params, interpolation="sinc"))
    try:
        response = _serve(assets, broken).post("/process-audio", json={"bpm": 120})
        assert response.status_code == 500
        assert response.json() == {"error": "Failed to process audio"}
    finally:
        app.dependency_overrides.clear()

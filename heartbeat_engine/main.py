import functools
import logging
import math
import os
from dataclasses import asdict
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from heartbeat_engine.core.errors import HeartbeatEngineError, MalformedWavError
from heartbeat_engine.core.io import AssetStore
from heartbeat_engine.core.types import ProcessingOptions, ProcessingResult
from heartbeat_engine.core.wav import read_header
from heartbeat_engine.params.defaults import BASELINE_BPM, BPM_MAX, BPM_MIN
from heartbeat_engine.pipeline import ProcessingContext, render_full_clip, render_sample
from heartbeat_engine.qc import analyze

# Configure Logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("heartbeat-engine")

app = FastAPI(
    title="Heartbeat Tempo Engine",
    version="1.0.0",
    description="Heartbeat audio rendered at a target BPM"
)

# CORS (Allow Frontend)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Original-BPM", "X-Target-BPM", "X-Speed-Factor", "X-Duration", "X-Audio-Source"],
)

BPM_ERROR = f"Invalid BPM value. Must be between {BPM_MIN} and {BPM_MAX}."


# --- Dependencies (overridable in tests) ---

@functools.lru_cache(maxsize=1)
def get_context() -> ProcessingContext:
    baseline_bpm = float(os.environ.get("HEARTBEAT_BASELINE_BPM", BASELINE_BPM))
    return ProcessingContext.create({"baseline_bpm": baseline_bpm})


@functools.lru_cache(maxsize=1)
def get_assets() -> AssetStore:
    return AssetStore.from_env()


def _parse_bpm(payload: dict) -> Optional[float]:
    """bpm from the request body, or None if missing / not a number / out of range."""
    bpm = payload.get("bpm") if isinstance(payload, dict) else None
    if isinstance(bpm, bool) or not isinstance(bpm, (int, float)):
        return None
    if not math.isfinite(bpm) or bpm < BPM_MIN or bpm > BPM_MAX:
        return None
    return bpm


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _wav_response(result: ProcessingResult, filename: str) -> Response:
    headers = result.headers()
    headers["Content-Disposition"] = f'attachment; filename="{filename}"'
    return Response(content=result.wav_bytes, media_type="audio/wav", headers=headers)


@app.get("/health")
def health_check():
    return {"status": "ok", "service": "heartbeat-engine"}


@app.post("/process-audio")
def process_audio(
    payload: dict,
    context: ProcessingContext = Depends(get_context),
    assets: AssetStore = Depends(get_assets),
):
    """
    Full-length clip at the requested BPM.
    Returns audio/wav with advisory X-* headers (original/target BPM, speed factor, duration).
    """
    bpm = _parse_bpm(payload)
    if bpm is None:
        return _error(BPM_ERROR, 400)

    try:
        result = render_full_clip(assets.baseline(), context.full_clip_options(bpm), context)
    except HeartbeatEngineError:
        logger.exception("Error processing audio")
        return _error("Failed to process audio", 500)

    logger.info("Rendered %s clip: bpm=%g ratio=%.3f duration=%.2fs",
                result.source, result.bpm, result.speed_factor, result.duration_s)
    return _wav_response(result, "processed-audio.wav")


@app.post("/create-sample")
def create_sample(
    payload: dict,
    context: ProcessingContext = Depends(get_context),
    assets: AssetStore = Depends(get_assets),
):
    """
    Short preview clip with the whisper overlay.
    """
    bpm = _parse_bpm(payload)
    if bpm is None:
        return _error(BPM_ERROR, 400)

    try:
        result = render_sample(
            assets.baseline(),
            ProcessingOptions(target_bpm=bpm),
            whisper=assets.whisper(),
            context=context,
        )
    except HeartbeatEngineError:
        logger.exception("Error creating sample audio")
        return _error("Failed to create sample audio", 500)

    logger.info("Rendered %s sample: bpm=%g duration=%.2fs", result.source, result.bpm, result.duration_s)
    return _wav_response(result, "sample-audio.wav")


@app.get("/baseline-audio")
def baseline_audio(assets: AssetStore = Depends(get_assets)):
    data = assets.baseline_bytes()
    if data is None:
        return _error("Baseline audio file not found", 500)
    return Response(content=data, media_type="audio/wav")


@app.get("/analyze-baseline")
def analyze_baseline(
    context: ProcessingContext = Depends(get_context),
    assets: AssetStore = Depends(get_assets),
):
    data = assets.baseline_bytes()
    if data is None:
        return _error("Baseline audio file not found", 500)

    try:
        header = asdict(read_header(data))
    except MalformedWavError:
        # Not a canonical 44-byte header; the asset may still load through soundfile
        header = None

    waveform = assets.baseline()
    if waveform is None:
        return _error("Failed to analyze baseline audio", 500)

    return {
        "success": True,
        "metadata": {
            "filename": assets.baseline_path.name,
            "size": len(data),
            "baseline_bpm": context.baseline_bpm,
            "header": header,
            "analysis": analyze(waveform),
        },
        "message": "Baseline audio file found successfully",
    }


if __name__ == "__main__":
    uvicorn.run("heartbeat_engine.main:app", host="0.0.0.0", port=8000, reload=True)

"""
Core rendering utilities with debug outputs, fingerprinting, and config tracing.
Used by canonical render.py tool.
"""
import sys
import os
import json
import random
import hashlib
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional, Tuple

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

import torch

from heartbeat_engine.core.io import AssetStore
from heartbeat_engine.core.types import ProcessingOptions, ProcessingResult, Waveform
from heartbeat_engine.core.wav import decode
from heartbeat_engine.pipeline import ProcessingContext, generate_fallback_clip, render_full_clip, render_sample
from heartbeat_engine.qc import analyze

KINDS = ("full", "sample", "fallback")


def _get_git_hash() -> str:
    """Get short git commit hash."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            capture_output=True,
            text=True,
            cwd=os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except (OSError, subprocess.SubprocessError):
        pass
    return "unknown"


def _compute_audio_fingerprint(wav_bytes: bytes, waveform: Waveform) -> Dict:
    """Compute fingerprint: SHA256 of the WAV file, peak, RMS, band energies."""
    sha256 = hashlib.sha256(wav_bytes).hexdigest()
    mono = waveform.samples.mean(dim=0)

    peak = float(torch.max(torch.abs(mono))) if waveform.length else 0.0
    rms = float(torch.sqrt(torch.mean(mono ** 2) + 1e-12)) if waveform.length else 0.0

    n = waveform.length
    if n < 2:
        return {"sha256": sha256, "peak": peak, "rms": rms,
                "sub_energy": 0.0, "low_energy": 0.0, "high_energy": 0.0}

    # Sub: < 20 Hz (synthesized beat tones), Low: 20-500 Hz, High: 500 Hz-Nyquist
    sample_rate = waveform.sample_rate
    magnitude = torch.abs(torch.fft.rfft(mono.double()))
    freqs = torch.fft.rfftfreq(n, 1.0 / sample_rate)
    sub_mask = freqs < 20.0
    low_mask = (freqs >= 20.0) & (freqs < 500.0)
    high_mask = freqs >= 500.0

    return {
        "sha256": sha256,
        "peak": peak,
        "rms": rms,
        "sub_energy": float(torch.sum(magnitude[sub_mask] ** 2)),
        "low_energy": float(torch.sum(magnitude[low_mask] ** 2)),
        "high_energy": float(torch.sum(magnitude[high_mask] ** 2)),
    }


def render_clip(
    kind: str,
    bpm: float,
    output_dir: Path,
    filename: str,
    params: Optional[dict] = None,
    baseline_path: Optional[str] = None,
    whisper_path: Optional[str] = None,
    duration_s: Optional[float] = None,
    seed: Optional[int] = None,
    debug: bool = False,
    qc: bool = False,
    script_name: str = "unknown",
) -> Tuple[ProcessingResult, Dict]:
    """
    Render one clip with config tracing and fingerprinting.

    Args:
        kind: "full", "sample", or "fallback"
        bpm: Target BPM (60..200)
        output_dir: Directory to save WAV and debug JSON
        filename: Base filename (without extension)
        params: Config overrides (deep-merged onto ENGINE_DEFAULTS)
        baseline_path: Baseline recording; None renders the synthetic fallback
        whisper_path: Whisper overlay for "sample"; None synthesizes it
        duration_s: Clip length for "full"/"fallback" (default: configured)
        seed: Random seed for synthesized noise (None = random)
        debug: Enable debug outputs (saves resolved.json)
        qc: Run clip analysis
        script_name: Name of calling script (for debug JSON)

    Returns:
        Tuple of (ProcessingResult, debug_info_dict)
    """
    if kind not in KINDS:
        raise ValueError(f"Unknown kind: {kind}")

    if seed is None:
        seed = random.randint(0, 2**31 - 1)

    input_params = params.copy() if params else {}
    context = ProcessingContext.create(params)

    baseline = whisper = None
    if baseline_path:
        assets = AssetStore(baseline_path, whisper_path)
        baseline = assets.baseline()
        whisper = assets.whisper()

    if kind == "full":
        request = {"target_bpm": bpm}
        if duration_s is not None:
            request["target_duration_s"] = duration_s
        options = ProcessingOptions.from_params(request, context.params, section="full_clip")
        result = render_full_clip(baseline, options, context, seed=seed)
    elif kind == "sample":
        options = ProcessingOptions.from_params({"target_bpm": bpm}, context.params, section="sample")
        result = render_sample(baseline, options, whisper=whisper, context=context, seed=seed)
    else:
        result = generate_fallback_clip(bpm, duration_s, context, seed=seed)

    waveform = decode(result.wav_bytes)
    fingerprint = _compute_audio_fingerprint(result.wav_bytes, waveform)

    qc_result = analyze(waveform) if qc else None

    output_dir.mkdir(parents=True, exist_ok=True)
    wav_path = output_dir / f"{filename}.wav"
    wav_path.write_bytes(result.wav_bytes)

    debug_info = {
        "kind": kind,
        "script_name": script_name,
        "timestamp": datetime.now().isoformat(),
        "git_hash": _get_git_hash(),
        "seed": seed,
        "bpm": bpm,
        "baseline_path": baseline_path,
        "whisper_path": whisper_path,
        "input_params": input_params,
        "resolved_params": context.params,
        "headers": result.headers(),
        "fingerprint": fingerprint,
        "qc_result": qc_result,
        "wav_path": str(wav_path),
    }

    if debug:
        json_path = output_dir / f"{filename}.resolved.json"
        with open(json_path, "w") as f:
            json.dump(debug_info, f, indent=2, default=str)

    return result, debug_info


def get_unique_output_dir(base_name: str) -> Path:
    """
    Generate unique output directory: renders/{base_name}/YYYYMMDD_HHMMSS_{gitshort}/
    """
    now = datetime.now()
    date_str = now.strftime("%Y%m%d")
    time_str = now.strftime("%H%M%S")
    git_hash = _get_git_hash()
    short_hash = git_hash[:8] if git_hash != "unknown" else "unknown"

    unique_dir = Path("renders") / base_name / f"{date_str}_{time_str}_{short_hash}"
    return unique_dir

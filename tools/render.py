#!/usr/bin/env python3
"""
Canonical renderer tool with debug outputs, fingerprinting, and config tracing.

Usage:
    python tools/render.py <subcommand> [options]

Subcommands:
    full --bpm <bpm>          Full clip from the baseline (synthetic if no baseline given)
    sample --bpm <bpm>        Short sample with whisper overlay
    fallback --bpm <bpm>      Synthesized heartbeat, no baseline involved
    analyze <wav>             Print header and clip metrics for a WAV file
    bpm-sweep --baseline <wav>  Render full clips across the BPM range and check tempo ordering

Options:
    --seed <int>          Fixed seed (default: random)
    --debug               Save resolved.json with config trace
    --qc                  Run clip analysis
    --params <json>       Config overrides file (deep-merged onto defaults)
    --output-dir <path>   Output directory (default: unique timestamped dir)
"""
import sys
import os
import json
import argparse
from dataclasses import asdict
from pathlib import Path

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from tools.render_core import render_clip, get_unique_output_dir
from heartbeat_engine.core.errors import HeartbeatEngineError, MalformedWavError
from heartbeat_engine.core.io import AudioIO
from heartbeat_engine.core.params import set_param
from heartbeat_engine.core.wav import decode, read_header
from heartbeat_engine.params.defaults import BPM_MIN, BPM_MAX
from heartbeat_engine.qc import analyze, zero_crossing_rate


def _build_params(args) -> dict:
    """Config overrides from --params JSON, then individual flags on top."""
    if getattr(args, "params", None):
        with open(args.params, "r") as f:
            params = json.load(f)
    else:
        params = {}

    flags = {
        "interpolation": "interpolation",
        "boost": "tempo.boost",
        "attenuation": "tempo.attenuation",
        "baseline_bpm": "baseline_bpm",
    }
    for attr, name in flags.items():
        value = getattr(args, attr, None)
        if value is not None:
            params = set_param(params, name, value)
    return params


def _print_summary(result, debug_info, show_qc: bool):
    headers = debug_info["headers"]
    print(f"Wrote {debug_info['wav_path']}")
    print(f"  Source:       {result.source}")
    print(f"  Target BPM:   {headers['X-Target-BPM']}")
    if "X-Original-BPM" in headers:
        print(f"  Baseline BPM: {headers['X-Original-BPM']}")
    print(f"  Speed factor: {headers['X-Speed-Factor']}")
    print(f"  Duration:     {result.duration_s:.3f}s ({result.sample_rate} Hz, {result.channel_count} ch)")
    print(f"  SHA256:       {debug_info['fingerprint']['sha256'][:16]}")
    if show_qc and debug_info.get("qc_result"):
        qc = debug_info["qc_result"]
        print("QC:")
        print(f"  peak={qc['peak']:.3f} rms={qc['rms']:.3f} clipped={qc['clipped_fraction']:.4f}")
        print(f"  zero crossings/s={qc['zero_crossing_rate']:.1f}")
        if qc["estimated_bpm"] is not None:
            print(f"  estimated BPM={qc['estimated_bpm']:.1f}")


def cmd_render(args):
    """Render one full / sample / fallback clip."""
    output_dir = Path(args.output_dir) if args.output_dir else get_unique_output_dir(args.command)
    filename = args.filename or f"{args.command}_{args.bpm:g}bpm"

    try:
        result, debug_info = render_clip(
            kind=args.command,
            bpm=args.bpm,
            output_dir=output_dir,
            filename=filename,
            params=_build_params(args),
            baseline_path=getattr(args, "baseline", None),
            whisper_path=getattr(args, "whisper", None),
            duration_s=getattr(args, "duration", None),
            seed=args.seed,
            debug=args.debug,
            qc=args.qc,
            script_name=f"render.py {args.command}",
        )
    except HeartbeatEngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    _print_summary(result, debug_info, args.qc)
    return 0


def cmd_analyze(args):
    """Print WAV header (when canonical) and clip metrics."""
    data = AudioIO.read_bytes(args.wav)
    if data is None:
        print(f"Error: {args.wav} not found", file=sys.stderr)
        return 1

    try:
        header = asdict(read_header(data))
    except MalformedWavError:
        header = None
    try:
        waveform = AudioIO.from_bytes(data, name=args.wav)
    except MalformedWavError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps({"file": args.wav, "size": len(data), "header": header, "analysis": analyze(waveform)}, indent=2))
    return 0


def cmd_bpm_sweep(args):
    """
    Render full clips across the BPM range; zero-crossing rate over the first second
    must not decrease as BPM rises.
    """
    output_dir = Path(args.output_dir) if args.output_dir else get_unique_output_dir("bpm_sweep")
    bpms = [float(b) for b in args.bpms] if args.bpms else [float(b) for b in range(BPM_MIN, BPM_MAX + 1, 20)]

    print(f"Rendering {len(bpms)} clips to {output_dir}")
    rates = []
    for bpm in bpms:
        try:
            result, debug_info = render_clip(
                kind="full",
                bpm=bpm,
                output_dir=output_dir,
                filename=f"full_{bpm:g}bpm",
                params=_build_params(args),
                baseline_path=args.baseline,
                duration_s=args.duration,
                seed=args.seed,
                debug=args.debug,
                script_name="render.py bpm-sweep",
            )
        except HeartbeatEngineError as e:
            print(f"Error at {bpm:g} BPM: {e}", file=sys.stderr)
            return 1
        zcr = zero_crossing_rate(decode(result.wav_bytes), 0.0, 1.0)
        rates.append(zcr)
        print(f"  {bpm:6.1f} BPM  source={result.source:<9} speed={result.speed_factor:.3f}  zcr={zcr:.1f}/s")

    inversions = [
        (bpms[i], bpms[i + 1]) for i in range(len(rates) - 1) if rates[i + 1] < rates[i]
    ]
    if inversions:
        print("\n❌ Zero-crossing rate fell as BPM rose:")
        for lo, hi in inversions:
            print(f"  - {lo:g} -> {hi:g}")
        return 1
    print("\n✅ Tempo ordering holds across the sweep!")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Canonical heartbeat renderer with debug outputs and fingerprinting"
    )

    subparsers = parser.add_subparsers(dest="command", help="Subcommand")

    # Common arguments
    def add_common_args(p):
        p.add_argument("--seed", type=int, default=None, help="Fixed seed (default: random)")
        p.add_argument("--debug", action="store_true", help="Save resolved.json with config trace")
        p.add_argument("--qc", action="store_true", help="Run clip analysis")
        p.add_argument("--params", type=str, help="JSON file with config overrides")
        p.add_argument("--interpolation", choices=["linear", "cubic"], default=None)
        p.add_argument("--boost", type=float, default=None, help="Tempo boost for faster targets (>= 1)")
        p.add_argument("--attenuation", type=float, default=None, help="Tempo attenuation for slower targets (0..1]")
        p.add_argument("--baseline-bpm", dest="baseline_bpm", type=float, default=None,
                       help="Tempo of the baseline recording")
        p.add_argument("--output-dir", type=str, help="Output directory (default: unique timestamped)")

    def add_bpm_arg(p):
        p.add_argument("--bpm", type=float, required=True, help=f"Target BPM ({BPM_MIN}..{BPM_MAX})")
        p.add_argument("--filename", type=str, help="Output filename (without extension)")

    # full subcommand
    p_full = subparsers.add_parser("full", help="Render a full-length clip")
    add_bpm_arg(p_full)
    p_full.add_argument("--baseline", type=str, help="Baseline heartbeat WAV (default: synthesize)")
    p_full.add_argument("--duration", type=float, default=None, help="Clip length in seconds")
    add_common_args(p_full)

    # sample subcommand
    p_sample = subparsers.add_parser("sample", help="Render a short sample with whisper overlay")
    add_bpm_arg(p_sample)
    p_sample.add_argument("--baseline", type=str, help="Baseline heartbeat WAV (default: synthesize)")
    p_sample.add_argument("--whisper", type=str, help="Whisper overlay WAV (default: synthesize)")
    add_common_args(p_sample)

    # fallback subcommand
    p_fallback = subparsers.add_parser("fallback", help="Render a synthesized heartbeat")
    add_bpm_arg(p_fallback)
    p_fallback.add_argument("--duration", type=float, default=None, help="Clip length in seconds")
    add_common_args(p_fallback)

    # analyze subcommand
    p_analyze = subparsers.add_parser("analyze", help="Analyze a WAV file")
    p_analyze.add_argument("wav", help="WAV file to analyze")

    # bpm-sweep subcommand
    p_sweep = subparsers.add_parser("bpm-sweep", help="Render across the BPM range")
    p_sweep.add_argument("--bpms", nargs="+", help="BPM values (default: 60..200 step 20)")
    p_sweep.add_argument("--baseline", type=str, required=True, help="Baseline heartbeat WAV")
    p_sweep.add_argument("--duration", type=float, default=None, help="Clip length in seconds")
    add_common_args(p_sweep)

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    if args.command in ("full", "sample", "fallback"):
        return cmd_render(args)
    elif args.command == "analyze":
        return cmd_analyze(args)
    elif args.command == "bpm-sweep":
        return cmd_bpm_sweep(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())

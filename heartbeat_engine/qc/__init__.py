"""
Quality analysis for rendered clips and baseline assets.
"""
from heartbeat_engine.qc.qc import analyze, estimate_bpm, zero_crossing_rate

__all__ = ["analyze", "estimate_bpm", "zero_crossing_rate"]

"""
Signal processing for the EEG and ECG channels.
"""

from biostream.signal_processing.buffer import WindowBuffer
from biostream.signal_processing.heart_rate import (
    BeatRequest,
    BpmSmoother,
    HeartRateResult,
    compute_bpm_stats,
    detect_peaks,
)
from biostream.signal_processing.hrv import HrvMetrics, classify_state, compute_hrv
from biostream.signal_processing.preprocessing import (
    ChannelFilter,
    FilterChain,
    FilteredSample,
)
from biostream.signal_processing.spectral import (
    BandPowerSmoother,
    MovingAverage,
    SpectralRequest,
    compute_band_fractions,
)

__all__ = [
    "WindowBuffer",
    "ChannelFilter",
    "FilterChain",
    "FilteredSample",
    "SpectralRequest",
    "BandPowerSmoother",
    "MovingAverage",
    "compute_band_fractions",
    "BeatRequest",
    "BpmSmoother",
    "HeartRateResult",
    "compute_bpm_stats",
    "detect_peaks",
    "HrvMetrics",
    "classify_state",
    "compute_hrv",
]

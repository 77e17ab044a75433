"""
Beat detection and BPM statistics for the ECG channel.
"""

import math
from collections import deque
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from biostream.core.logging import get_logger

logger = get_logger(__name__)

REFRACTORY_SECONDS = 0.2
THRESHOLD_RATIO = 0.5
MIN_BPM = 40.0
MAX_BPM = 200.0


@dataclass(frozen=True)
class BeatRequest:
    """
    Snapshot handed to the beat worker.

    Attributes:
        ecg: ECG window (copied), oldest first
        sample_rate: Sampling rate in Hz
        sample_index: Index of the newest sample in the window
    """
    ecg: NDArray[np.float64]
    sample_rate: int
    sample_index: int = 0


@dataclass
class HeartRateResult:
    """
    Heart-rate statistics for one window.

    All rate fields are None when no rate can be computed; peaks are
    returned regardless.
    """
    bpm: Optional[int] = None
    high: Optional[int] = None
    low: Optional[int] = None
    avg: Optional[int] = None
    peaks: List[int] = field(default_factory=list)

    @property
    def has_rate(self) -> bool:
        return self.bpm is not None

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'bpm': self.bpm,
            'high': self.high,
            'low': self.low,
            'avg': self.avg,
            'peaks': list(self.peaks),
        }


def round_half_up(value: float) -> int:
    """Round to nearest integer, halves toward +infinity."""
    return int(math.floor(value + 0.5))


def detect_peaks(signal: Sequence[float], sample_rate: float) -> List[int]:
    """
    Adaptive-threshold R-peak detection.

    A sample is a beat when it exceeds half the window maximum, is a local
    maximum (strictly above its left neighbour, at least its right one) and
    lies at least 200 ms after the previously accepted beat.

    Args:
        signal: ECG window
        sample_rate: Sampling rate in Hz

    Returns:
        Window-relative indices of accepted beats
    """
    x = np.asarray(signal, dtype=np.float64)
    n = x.shape[0]
    if n < 3:
        return []

    threshold = THRESHOLD_RATIO * float(np.max(x))
    refractory = int(math.floor(REFRACTORY_SECONDS * sample_rate))

    # Candidate local maxima above threshold, then enforce spacing in order
    center = x[1:-1]
    candidates = np.nonzero(
        (center > threshold) & (center > x[:-2]) & (center >= x[2:])
    )[0] + 1

    peaks: List[int] = []
    last_peak = -refractory
    for i in candidates.tolist():
        if i - last_peak >= refractory:
            peaks.append(i)
            last_peak = i
    return peaks


def compute_bpm_stats(signal: Sequence[float], sample_rate: float) -> HeartRateResult:
    """
    Heart-rate statistics from an ECG window.

    Args:
        signal: ECG window
        sample_rate: Sampling rate in Hz

    Returns:
        HeartRateResult; rate fields None if fewer than two beats or no
        physiologically plausible interval
    """
    peaks = detect_peaks(signal, sample_rate)
    if len(peaks) < 2:
        return HeartRateResult(peaks=peaks)

    gaps = np.diff(np.asarray(peaks, dtype=np.float64))
    rates = 60.0 / (gaps / sample_rate)
    rates = rates[(rates >= MIN_BPM) & (rates <= MAX_BPM)]

    if rates.size == 0:
        return HeartRateResult(peaks=peaks)

    mean = float(np.mean(rates))
    return HeartRateResult(
        bpm=round_half_up(mean),
        high=round_half_up(float(np.max(rates))),
        low=round_half_up(float(np.min(rates))),
        avg=round_half_up(mean),
        peaks=peaks,
    )


class BpmSmoother:
    """
    Display smoothing for successive BPM results.

    Averages the last few accepted BPM values, then moves the displayed
    value toward that average by at most `max_step` per update. A window
    without a rate clears everything.
    """

    def __init__(self, window: int = 5, max_step: int = 2) -> None:
        """
        Initialize smoother.

        Args:
            window: Number of recent BPM values averaged
            max_step: Largest change of the displayed value per update
        """
        self.window = window
        self.max_step = max_step
        self.history: deque[int] = deque(maxlen=window)
        self.smoothed: Optional[int] = None
        self.displayed: Optional[int] = None

    def update(self, bpm: Optional[int]) -> Optional[int]:
        """
        Feed the latest BPM (or None).

        Args:
            bpm: BPM of the newest window, None when it had no rate

        Returns:
            Displayed BPM, None when unknown
        """
        if bpm is None:
            self.reset()
            return None

        self.history.append(bpm)
        self.smoothed = round_half_up(sum(self.history) / len(self.history))

        if self.displayed is None:
            self.displayed = self.smoothed
        else:
            delta = self.smoothed - self.displayed
            step = max(-self.max_step, min(self.max_step, delta))
            self.displayed += step

        return self.displayed

    def reset(self) -> None:
        self.history.clear()
        self.smoothed = None
        self.displayed = None

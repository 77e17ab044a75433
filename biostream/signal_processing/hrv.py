"""
Heart-rate variability from detected beat positions.
"""

from dataclasses import dataclass
from typing import Dict, Literal, Optional, Sequence

import numpy as np

HeartState = Literal["stressed", "happy", "relaxed", "focused"]


@dataclass(frozen=True)
class HrvMetrics:
    """
    Time-domain HRV.

    Attributes:
        sdnn: Standard deviation of R-R intervals (ms)
        rmssd: Root mean square of successive R-R differences (ms)
        pnn50: Fraction of successive differences above 50 ms
    """
    sdnn: Optional[float] = None
    rmssd: Optional[float] = None
    pnn50: Optional[float] = None

    @property
    def is_valid(self) -> bool:
        return self.sdnn is not None

    def to_dict(self) -> Dict:
        return {'sdnn': self.sdnn, 'rmssd': self.rmssd, 'pnn50': self.pnn50}


def compute_hrv(peaks: Sequence[int], sample_rate: float) -> HrvMetrics:
    """
    HRV from beat indices of one window.

    Args:
        peaks: Beat sample indices, ascending
        sample_rate: Sampling rate in Hz

    Returns:
        HrvMetrics; all None with fewer than three beats
    """
    if len(peaks) < 3:
        return HrvMetrics()

    rr_ms = np.diff(np.asarray(peaks, dtype=np.float64)) * 1000.0 / sample_rate
    successive = np.diff(rr_ms)

    return HrvMetrics(
        sdnn=float(np.std(rr_ms, ddof=1)),
        rmssd=float(np.sqrt(np.mean(successive ** 2))),
        pnn50=float(np.mean(np.abs(successive) > 50.0)),
    )


def classify_state(metrics: HrvMetrics) -> Optional[HeartState]:
    """
    Coarse affective state from HRV.

    Returns:
        State label, None if metrics are unavailable
    """
    if not metrics.is_valid:
        return None

    sdnn, rmssd, pnn50 = metrics.sdnn, metrics.rmssd, metrics.pnn50

    if rmssd < 20 and sdnn < 30:
        return "stressed"
    if rmssd > 50 and sdnn > 50 and pnn50 > 0.5:
        return "happy"
    if rmssd > 50 and sdnn > 50 and pnn50 > 0.4:
        return "relaxed"
    if 20 <= rmssd <= 50 and sdnn >= 30 and pnn50 < 0.3:
        return "focused"
    return "relaxed"

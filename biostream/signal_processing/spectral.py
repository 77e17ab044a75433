"""
Spectral power engine for the EEG channels.

Computes:
- Magnitude spectrum of a full analysis window
- Band power (sum of squared magnitudes over the band's bins)
- Relative band power per channel
- Moving-average smoothing of relative power
"""

import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Dict, Mapping, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from biostream.core.config import DEFAULT_BANDS
from biostream.core.logging import get_logger

logger = get_logger(__name__)

BandPowers = Dict[str, float]
ChannelBandPowers = Dict[str, BandPowers]


@dataclass(frozen=True)
class SpectralRequest:
    """
    Snapshot handed to the spectral worker.

    Attributes:
        eeg0: Window for EEG channel 0 (copied)
        eeg1: Window for EEG channel 1 (copied)
        sample_rate: Sampling rate in Hz
        fft_size: FFT length (window length)
        sample_index: Index of the newest sample in the window
    """
    eeg0: NDArray[np.float64]
    eeg1: NDArray[np.float64]
    sample_rate: int
    fft_size: int
    sample_index: int = 0


def magnitude_spectrum(window: NDArray[np.float64], fft_size: int) -> NDArray[np.float64]:
    """
    Magnitude of the real FFT.

    Args:
        window: Time-domain samples
        fft_size: FFT length; shorter windows are zero-padded

    Returns:
        Magnitudes indexed by frequency bin, length fft_size // 2 + 1
    """
    return np.abs(np.fft.rfft(np.asarray(window, dtype=np.float64), n=fft_size))


def band_bins(
    band: Tuple[float, float],
    sample_rate: float,
    fft_size: int
) -> Tuple[int, int]:
    """
    Inclusive bin range covered by a band.

    The DC bin is never included and the range is capped below Nyquist.
    """
    resolution = sample_rate / fft_size
    low, high = band
    start = max(1, int(math.floor(low / resolution)))
    end = min(fft_size // 2 - 1, int(math.floor(high / resolution)))
    return start, end


def band_power(
    mags: NDArray[np.float64],
    band: Tuple[float, float],
    sample_rate: float,
    fft_size: int
) -> float:
    """
    Calculate power in a frequency band.

    Args:
        mags: Magnitude spectrum
        band: (low, high) in Hz
        sample_rate: Sampling rate in Hz
        fft_size: FFT length the spectrum was computed with

    Returns:
        Band power (0.0 for an empty bin range)
    """
    start, end = band_bins(band, sample_rate, fft_size)
    if end < start:
        return 0.0
    segment = mags[start:end + 1]
    return float(np.sum(segment * segment))


def band_powers(
    mags: NDArray[np.float64],
    bands: Mapping[str, Tuple[float, float]],
    sample_rate: float,
    fft_size: int
) -> BandPowers:
    """Absolute power for every configured band."""
    return {
        name: band_power(mags, rng, sample_rate, fft_size)
        for name, rng in bands.items()
    }


def relative_band_powers(powers: Mapping[str, float]) -> BandPowers:
    """
    Normalize band powers by their total.

    Args:
        powers: Absolute power per band

    Returns:
        Fraction per band; all zeros when the total is zero
    """
    total = sum(powers.values())
    if total <= 0.0:
        return {name: 0.0 for name in powers}
    return {name: value / total for name, value in powers.items()}


def compute_band_fractions(
    request: SpectralRequest,
    bands: Optional[Mapping[str, Tuple[float, float]]] = None
) -> ChannelBandPowers:
    """
    Relative band power for both EEG channels.

    Pure function of the request; safe to run off the event loop.

    Args:
        request: Window snapshot
        bands: Band definitions (default: delta..gamma)

    Returns:
        {'ch0': {band: fraction}, 'ch1': {band: fraction}}
    """
    bands = bands or DEFAULT_BANDS
    result: ChannelBandPowers = {}

    for name, window in (('ch0', request.eeg0), ('ch1', request.eeg1)):
        mags = magnitude_spectrum(window, request.fft_size)
        powers = band_powers(mags, bands, request.sample_rate, request.fft_size)
        result[name] = relative_band_powers(powers)

    return result


class MovingAverage:
    """
    Boxcar average over the last N values with O(1) updates.

    Keeps a circular history and an exact rational running sum, so the
    mean is the correctly rounded average of the stored values: N pushes of
    a constant return that constant, and no error accumulates over a long
    session.
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self.history = [0.0] * capacity
        self.count = 0
        self.write_idx = 0
        self.total = Fraction(0)

    def push(self, value: float) -> float:
        """
        Add a value and return the current average.

        Args:
            value: New value

        Returns:
            Mean of the stored values
        """
        value = float(value)
        if self.count == self.capacity:
            self.total -= Fraction(self.history[self.write_idx])
        else:
            self.count += 1

        self.history[self.write_idx] = value
        self.total += Fraction(value)
        self.write_idx = (self.write_idx + 1) % self.capacity

        return float(self.total / self.count)

    @property
    def value(self) -> float:
        """Current average (0.0 when empty)."""
        return float(self.total / self.count) if self.count else 0.0

    def reset(self) -> None:
        self.history = [0.0] * self.capacity
        self.count = 0
        self.write_idx = 0
        self.total = Fraction(0)


class BandPowerSmoother:
    """
    Per-channel, per-band moving averages of relative power.
    """

    def __init__(
        self,
        bands: Optional[Mapping[str, Tuple[float, float]]] = None,
        channels: Tuple[str, ...] = ('ch0', 'ch1'),
        history: int = 10
    ) -> None:
        """
        Initialize smoother.

        Args:
            bands: Band definitions
            channels: Channel names
            history: Number of updates averaged
        """
        self.bands = tuple((bands or DEFAULT_BANDS).keys())
        self.channels = channels
        self.history = history
        self.averages: Dict[str, Dict[str, MovingAverage]] = {
            ch: {band: MovingAverage(history) for band in self.bands}
            for ch in channels
        }

    def update(self, fractions: Mapping[str, Mapping[str, float]]) -> ChannelBandPowers:
        """
        Feed one set of fractions.

        Args:
            fractions: {channel: {band: fraction}}

        Returns:
            Smoothed {channel: {band: relative power}}
        """
        return {
            ch: {
                band: self.averages[ch][band].push(fractions[ch][band])
                for band in self.bands
            }
            for ch in self.channels
        }

    def reset(self) -> None:
        for per_band in self.averages.values():
            for avg in per_band.values():
                avg.reset()

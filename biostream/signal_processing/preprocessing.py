"""
Signal preprocessing: mains notch, ADC normalization and band-pass.

Every filter here is causal and stateful. Samples must reach a ChannelFilter
in acquisition order, exactly once; the ingestion path owns one filter per
channel and nothing else touches it.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy import signal

from biostream.acquisition.packet_decoder import RawSample
from biostream.core.config import Settings, settings as default_settings
from biostream.core.exceptions import ProcessingError
from biostream.core.logging import get_logger

logger = get_logger(__name__)

EEG_CHANNELS: Tuple[int, int] = (0, 1)
ECG_CHANNEL = 2


@dataclass(frozen=True)
class FilteredSample:
    """
    One filtered sample across all channels.

    Attributes:
        index: Monotonic sample index assigned by the pipeline
        eeg: Filtered EEG values (channel 0, channel 1)
        ecg: Filtered ECG value
    """
    index: int
    eeg: Tuple[float, float]
    ecg: float


def design_notch(
    sampling_rate: float,
    notch_freq: float = 50.0,
    quality: float = 30.0
) -> NDArray[np.float64]:
    """
    Second-order IIR notch as SOS.

    Args:
        sampling_rate: Sampling rate in Hz
        notch_freq: Frequency to reject in Hz
        quality: Quality factor

    Returns:
        SOS array of shape (1, 6)
    """
    nyquist = sampling_rate / 2.0
    if not 0 < notch_freq < nyquist:
        raise ProcessingError(
            f"Notch frequency {notch_freq} Hz outside (0, {nyquist}) Hz"
        )
    b, a = signal.iirnotch(notch_freq, quality, sampling_rate)
    return signal.tf2sos(b, a)


def design_bandpass(
    sampling_rate: float,
    low: float = 0.5,
    high: float = 45.0,
    order: int = 4
) -> NDArray[np.float64]:
    """
    Butterworth band-pass as SOS.

    Args:
        sampling_rate: Sampling rate in Hz
        low: Lower cutoff in Hz
        high: Upper cutoff in Hz
        order: Filter order

    Returns:
        SOS array
    """
    nyquist = sampling_rate / 2.0
    if not 0 < low < high < nyquist:
        raise ProcessingError(
            f"Band-pass {low}-{high} Hz invalid for Nyquist {nyquist} Hz"
        )
    return signal.butter(order, [low / nyquist, high / nyquist], btype='band', output='sos')


class ChannelFilter:
    """
    Filter chain and delay-line state for one channel.

    Applies:
    - Notch on raw ADC counts
    - Normalization (raw - midpoint) * (2 / full_scale)
    - Optional band-pass
    """

    def __init__(
        self,
        notch_sos: NDArray[np.float64],
        bandpass_sos: Optional[NDArray[np.float64]] = None,
        adc_midpoint: float = 2048.0,
        adc_full_scale: float = 4096.0
    ) -> None:
        self.notch_sos = notch_sos
        self.bandpass_sos = bandpass_sos
        self.adc_midpoint = adc_midpoint
        self.scale = 2.0 / adc_full_scale

        self.notch_zi = np.zeros((notch_sos.shape[0], 2))
        self.bp_zi: Optional[NDArray[np.float64]] = (
            np.zeros((bandpass_sos.shape[0], 2)) if bandpass_sos is not None else None
        )

    def process(self, raw: Sequence[float]) -> NDArray[np.float64]:
        """
        Filter consecutive samples.

        Processing a sequence in one call or split over several calls gives
        identical output, provided the order is preserved.

        Args:
            raw: Raw ADC values, oldest first

        Returns:
            Filtered, normalized values
        """
        x = np.asarray(raw, dtype=np.float64)
        if x.size == 0:
            return x

        y, self.notch_zi = signal.sosfilt(self.notch_sos, x, zi=self.notch_zi)
        y = (y - self.adc_midpoint) * self.scale

        if self.bandpass_sos is not None:
            y, self.bp_zi = signal.sosfilt(self.bandpass_sos, y, zi=self.bp_zi)

        return y

    def reset(self) -> None:
        """Zero the delay lines."""
        self.notch_zi = np.zeros_like(self.notch_zi)
        if self.bp_zi is not None:
            self.bp_zi = np.zeros_like(self.bp_zi)


class FilterChain:
    """
    Per-channel filters for the two EEG channels and the ECG channel.

    Assigns each output a monotonic sample index, independent of the
    transport's wrapping counter.
    """

    def __init__(self, config: Optional[Settings] = None) -> None:
        """
        Initialize filter chain.

        Args:
            config: Settings to derive coefficients from (default: global settings)
        """
        config = config or default_settings
        self.sampling_rate = config.sample_rate

        notch = design_notch(config.sample_rate, config.notch_freq, config.notch_quality)
        bandpass = design_bandpass(
            config.sample_rate,
            config.bandpass_low,
            config.bandpass_high,
            config.bandpass_order
        )

        self.eeg_filters = [
            ChannelFilter(notch, bandpass, config.adc_midpoint, config.adc_full_scale)
            for _ in EEG_CHANNELS
        ]
        self.ecg_filter = ChannelFilter(notch, None, config.adc_midpoint, config.adc_full_scale)
        self.next_index = 0

        logger.info(
            "filter_chain_initialized",
            sampling_rate=config.sample_rate,
            notch=f"{config.notch_freq} Hz",
            bandpass=f"{config.bandpass_low}-{config.bandpass_high} Hz"
        )

    def process_array(
        self,
        raw: NDArray[np.float64]
    ) -> Tuple[NDArray[np.int64], NDArray[np.float64], NDArray[np.float64]]:
        """
        Filter a block of raw samples.

        Args:
            raw: Array of shape (n_samples, >=3) in acquisition order

        Returns:
            indices: Sample indices, shape (n_samples,)
            eeg: Filtered EEG, shape (n_samples, 2)
            ecg: Filtered ECG, shape (n_samples,)
        """
        if raw.ndim != 2 or raw.shape[1] <= ECG_CHANNEL:
            raise ProcessingError(
                f"Expected (n_samples, >={ECG_CHANNEL + 1}) raw block, got {raw.shape}"
            )

        n_samples = raw.shape[0]
        eeg = np.column_stack([
            flt.process(raw[:, ch]) for flt, ch in zip(self.eeg_filters, EEG_CHANNELS)
        ])
        ecg = self.ecg_filter.process(raw[:, ECG_CHANNEL])

        indices = np.arange(self.next_index, self.next_index + n_samples)
        self.next_index += n_samples
        return indices, eeg, ecg

    def process(self, samples: List[RawSample]) -> List[FilteredSample]:
        """
        Filter decoded samples.

        Args:
            samples: RawSamples in arrival order

        Returns:
            One FilteredSample per input, same order
        """
        if not samples:
            return []

        raw = np.array([s.channels for s in samples], dtype=np.float64)
        indices, eeg, ecg = self.process_array(raw)

        return [
            FilteredSample(index=int(i), eeg=(float(e[0]), float(e[1])), ecg=float(c))
            for i, e, c in zip(indices, eeg, ecg)
        ]

    def reset(self) -> None:
        """Reset filter states and the sample index (for new sessions)."""
        for flt in self.eeg_filters:
            flt.reset()
        self.ecg_filter.reset()
        self.next_index = 0
        logger.debug("filter_state_reset")

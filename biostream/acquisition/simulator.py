"""
Packet simulator for testing and development without physical hardware.

Produces encoded sensor payloads with:
- Two EEG channels built from band oscillations around the ADC midpoint
- One ECG channel with an R-wave impulse train at a controllable heart rate
- Optional sequence-counter gaps to exercise loss accounting
"""

from typing import Dict, Optional

import numpy as np
from numpy.typing import NDArray

from biostream.acquisition.packet_decoder import COUNTER_MODULO, encode_records
from biostream.core.logging import get_logger

logger = get_logger(__name__)

# Oscillator frequency (Hz) and amplitude (ADC counts) per band
DEFAULT_BAND_PROFILE: Dict[str, tuple[float, float]] = {
    'delta': (2.0, 40.0),
    'theta': (6.0, 30.0),
    'alpha': (10.0, 60.0),
    'beta': (20.0, 20.0),
    'gamma': (38.0, 8.0),
}


class PacketSimulator:
    """
    Simulates the sensor's notification stream.

    Sample generation is a pure function of the running sample index, so two
    simulators with the same seed emit identical payloads.
    """

    def __init__(
        self,
        sample_rate: int = 500,
        heart_rate_bpm: float = 60.0,
        band_profile: Optional[Dict[str, tuple[float, float]]] = None,
        adc_midpoint: int = 2048,
        ecg_amplitude: float = 800.0,
        noise_level: float = 2.0,
        seed: Optional[int] = None
    ) -> None:
        """
        Initialize packet simulator.

        Args:
            sample_rate: Sampling rate in Hz
            heart_rate_bpm: ECG impulse rate in beats per minute
            band_profile: Band name -> (frequency Hz, amplitude ADC counts)
            adc_midpoint: Baseline ADC value
            ecg_amplitude: R-wave height in ADC counts
            noise_level: Standard deviation of additive noise in ADC counts
            seed: Random seed for reproducibility
        """
        self.sample_rate = sample_rate
        self.heart_rate_bpm = heart_rate_bpm
        self.band_profile = dict(band_profile or DEFAULT_BAND_PROFILE)
        self.adc_midpoint = adc_midpoint
        self.ecg_amplitude = ecg_amplitude
        self.noise_level = noise_level

        self.rng = np.random.RandomState(seed)
        self.sample_index = 0
        self.counter = 0

        logger.info(
            "packet_simulator_initialized",
            sample_rate=sample_rate,
            heart_rate_bpm=heart_rate_bpm,
            bands=list(self.band_profile)
        )

    def set_heart_rate(self, bpm: float) -> None:
        """Change the ECG impulse rate."""
        self.heart_rate_bpm = bpm
        logger.debug("simulated_heart_rate_set", bpm=bpm)

    def generate_chunk(self, n_samples: int) -> NDArray[np.int64]:
        """
        Generate raw ADC values.

        Args:
            n_samples: Number of samples to generate

        Returns:
            Array of shape (n_samples, 3): EEG0, EEG1, ECG
        """
        idx = np.arange(self.sample_index, self.sample_index + n_samples)
        t = idx / self.sample_rate

        eeg = np.zeros((n_samples, 2))
        for band_freq, amplitude in self.band_profile.values():
            eeg[:, 0] += amplitude * np.sin(2 * np.pi * band_freq * t)
            # Second channel lags slightly so the two are not identical
            eeg[:, 1] += amplitude * np.sin(2 * np.pi * band_freq * t + 0.3)
        eeg += self.rng.normal(0.0, self.noise_level, eeg.shape)

        ecg = self._ecg_wave(idx) + self.rng.normal(0.0, self.noise_level, n_samples)

        data = np.column_stack([eeg, ecg]) + self.adc_midpoint
        self.sample_index += n_samples

        return np.clip(np.rint(data), 0, 4095).astype(np.int64)

    def _ecg_wave(self, idx: NDArray[np.int64]) -> NDArray[np.float64]:
        """Narrow Gaussian R-wave once per beat period."""
        period = self.sample_rate * 60.0 / self.heart_rate_bpm
        phase = np.mod(idx, period)
        distance = np.minimum(phase, period - phase)
        width = max(1.0, 0.01 * self.sample_rate)
        return self.ecg_amplitude * np.exp(-0.5 * (distance / width) ** 2)

    def next_packet(self, n_records: int = 10) -> bytes:
        """
        Generate the next encoded payload.

        Args:
            n_records: Records per payload

        Returns:
            Payload bytes, 7 bytes per record
        """
        values = self.generate_chunk(n_records)
        counters = [(self.counter + i) % COUNTER_MODULO for i in range(n_records)]
        self.counter = (self.counter + n_records) % COUNTER_MODULO
        return encode_records(counters, values)

    def skip(self, n_records: int) -> None:
        """Drop records from the stream, leaving a counter gap."""
        self.generate_chunk(n_records)
        self.counter = (self.counter + n_records) % COUNTER_MODULO
        logger.debug("simulated_packet_loss", records=n_records)

    def get_info(self) -> Dict:
        """
        Get simulator information.

        Returns:
            Dictionary with simulator info
        """
        return {
            'device_type': 'simulator',
            'sample_rate': self.sample_rate,
            'heart_rate_bpm': self.heart_rate_bpm,
            'samples_generated': self.sample_index,
        }

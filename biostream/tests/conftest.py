"""
Shared fixtures.
"""

import numpy as np
import pytest

from biostream.acquisition.simulator import PacketSimulator
from biostream.core.config import Settings


@pytest.fixture
def config():
    """Default pipeline settings (500 Hz, 256-point FFT)."""
    return Settings()


@pytest.fixture
def simulator():
    """Deterministic packet simulator at 60 BPM."""
    return PacketSimulator(sample_rate=500, heart_rate_bpm=60.0, noise_level=0.5, seed=42)


@pytest.fixture
def impulse_train():
    """Factory for zero signals with impulses every `period` samples from `offset`."""
    def make(length: int, period: int, offset: int, amplitude: float = 1.0) -> np.ndarray:
        x = np.zeros(length)
        x[offset::period] = amplitude
        return x
    return make

"""
Unit tests for filtering and windowing.

Tests:
- Per-channel filter chain (notch, normalization, band-pass)
- Order sensitivity of filter state
- Window ring buffer
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from biostream.acquisition.packet_decoder import RawSample
from biostream.core.exceptions import ProcessingError
from biostream.signal_processing.buffer import WindowBuffer
from biostream.signal_processing.preprocessing import (
    ChannelFilter,
    FilterChain,
    design_bandpass,
    design_notch,
)


def raw_block(n_samples: int, seed: int = 0) -> np.ndarray:
    """Random 12-bit samples for three channels."""
    rng = np.random.RandomState(seed)
    return rng.randint(0, 4096, size=(n_samples, 3)).astype(np.float64)


class TestFilterChain:
    """Test the per-channel filter chain."""

    @pytest.fixture
    def chain(self, config):
        return FilterChain(config)

    def test_deterministic_with_fresh_state(self, config):
        raw = raw_block(1000)

        _, eeg_a, ecg_a = FilterChain(config).process_array(raw)
        _, eeg_b, ecg_b = FilterChain(config).process_array(raw)

        assert_array_equal(eeg_a, eeg_b)
        assert_array_equal(ecg_a, ecg_b)

    def test_chunked_matches_single_pass(self, config):
        """Splitting the stream across calls does not change the output."""
        raw = raw_block(700, seed=3)

        _, eeg_whole, ecg_whole = FilterChain(config).process_array(raw)

        chain = FilterChain(config)
        parts = [chain.process_array(raw[i:i + 7]) for i in range(0, 700, 7)]
        eeg_parts = np.concatenate([p[1] for p in parts])
        ecg_parts = np.concatenate([p[2] for p in parts])

        assert_array_equal(eeg_whole, eeg_parts)
        assert_array_equal(ecg_whole, ecg_parts)

    def test_reordered_input_differs(self, config):
        """Filter state depends on sample order."""
        raw = raw_block(500, seed=5)
        perm = np.random.RandomState(9).permutation(len(raw))

        _, eeg_ordered, ecg_ordered = FilterChain(config).process_array(raw)
        _, eeg_shuffled, ecg_shuffled = FilterChain(config).process_array(raw[perm])

        # Put the shuffled outputs back at their original sample positions
        eeg_restored = np.empty_like(eeg_shuffled)
        eeg_restored[perm] = eeg_shuffled
        ecg_restored = np.empty_like(ecg_shuffled)
        ecg_restored[perm] = ecg_shuffled

        assert not np.array_equal(eeg_ordered, eeg_restored)
        assert not np.array_equal(ecg_ordered, ecg_restored)

    def test_ecg_normalization(self, chain):
        """Constant input settles to (raw - 2048) * 2 / 4096."""
        raw = np.full((5000, 3), 3072.0)

        _, _, ecg = chain.process_array(raw)

        assert_allclose(ecg[-100:], 0.5, atol=1e-3)

    def test_eeg_bandpass_removes_dc(self, chain):
        raw = np.full((5000, 3), 3072.0)

        _, eeg, _ = chain.process_array(raw)

        assert_allclose(eeg[-100:], 0.0, atol=1e-3)

    def test_notch_attenuates_mains(self, chain, config):
        t = np.arange(5000) / config.sample_rate
        mains = 2048 + 500 * np.sin(2 * np.pi * config.notch_freq * t)
        raw = np.column_stack([mains, mains, mains])

        _, eeg, ecg = chain.process_array(raw)

        input_amplitude = 500 * 2 / 4096
        assert np.max(np.abs(ecg[-500:])) < 0.05 * input_amplitude
        assert np.max(np.abs(eeg[-500:, 0])) < 0.05 * input_amplitude

    def test_passband_signal_survives(self, chain, config):
        t = np.arange(5000) / config.sample_rate
        alpha = 2048 + 500 * np.sin(2 * np.pi * 10 * t)
        raw = np.column_stack([alpha, alpha, alpha])

        _, eeg, _ = chain.process_array(raw)

        input_amplitude = 500 * 2 / 4096
        assert np.max(np.abs(eeg[-500:, 0])) > 0.8 * input_amplitude

    def test_filtered_samples_indexed_in_order(self, chain):
        samples = [RawSample(counter=i % 256, channels=(2048, 2048, 2048)) for i in range(300)]

        first = chain.process(samples[:100])
        second = chain.process(samples[100:])

        indices = [s.index for s in first + second]
        assert indices == list(range(300))

    def test_reset(self, chain):
        raw = raw_block(200)
        _, eeg_a, _ = chain.process_array(raw)

        chain.reset()
        indices, eeg_b, _ = chain.process_array(raw)

        assert indices[0] == 0
        assert_array_equal(eeg_a, eeg_b)

    def test_rejects_narrow_block(self, chain):
        with pytest.raises(ProcessingError):
            chain.process_array(np.zeros((10, 2)))


class TestFilterDesign:
    """Test coefficient derivation."""

    def test_notch_is_single_section(self):
        assert design_notch(500, 50.0, 30.0).shape == (1, 6)

    def test_notch_above_nyquist(self):
        with pytest.raises(ProcessingError):
            design_notch(80, 50.0)

    def test_invalid_bandpass(self):
        with pytest.raises(ProcessingError):
            design_bandpass(500, 45.0, 0.5)

    def test_channel_filter_without_bandpass(self):
        flt = ChannelFilter(design_notch(500))
        assert flt.bp_zi is None
        assert flt.process([]).size == 0


class TestWindowBuffer:
    """Test the analysis window ring buffer."""

    def test_fills_then_reports_full(self):
        buf = WindowBuffer(4)
        buf.extend([1.0, 2.0, 3.0])

        assert len(buf) == 3
        assert not buf.is_full
        assert_array_equal(buf.snapshot(), [1.0, 2.0, 3.0])

        buf.append(4.0)
        assert buf.is_full

    def test_overwrites_oldest(self):
        buf = WindowBuffer(4)
        for value in range(1, 8):
            buf.append(float(value))

        assert len(buf) == 4
        assert_array_equal(buf.snapshot(), [4.0, 5.0, 6.0, 7.0])

    def test_extend_with_wraparound(self):
        buf = WindowBuffer(5)
        buf.extend([1.0, 2.0, 3.0])
        buf.extend([4.0, 5.0, 6.0, 7.0])

        assert_array_equal(buf.snapshot(), [3.0, 4.0, 5.0, 6.0, 7.0])

    def test_extend_longer_than_capacity(self):
        buf = WindowBuffer(3)
        buf.extend(np.arange(10, dtype=float))

        assert_array_equal(buf.snapshot(), [7.0, 8.0, 9.0])

    def test_snapshot_is_a_copy(self):
        buf = WindowBuffer(3)
        buf.extend([1.0, 2.0, 3.0])
        snap = buf.snapshot()
        buf.append(4.0)

        assert_array_equal(snap, [1.0, 2.0, 3.0])

    def test_clear(self):
        buf = WindowBuffer(3)
        buf.extend([1.0, 2.0, 3.0])
        buf.clear()

        assert len(buf) == 0
        assert buf.snapshot().size == 0

    def test_invalid_capacity(self):
        with pytest.raises(ProcessingError):
            WindowBuffer(0)

"""
Fixed-capacity ring buffer holding the analysis window for one channel.
"""

from typing import Sequence, Union

import numpy as np
from numpy.typing import NDArray

from biostream.core.exceptions import ProcessingError
from biostream.core.logging import get_logger

logger = get_logger(__name__)


class WindowBuffer:
    """
    Ring of the most recent N filtered values for one channel.

    Uses a fixed-size numpy array with write pointer tracking. The oldest
    value is overwritten on overflow; the buffer never resizes.
    """

    def __init__(self, capacity: int) -> None:
        """
        Initialize window buffer.

        Args:
            capacity: Number of samples held
        """
        if capacity <= 0:
            raise ProcessingError(f"Buffer capacity must be positive, got {capacity}")

        self.capacity = capacity
        self.buffer = np.zeros(capacity, dtype=np.float64)
        self.write_idx = 0
        self.is_full = False

        logger.debug("window_buffer_initialized", capacity=capacity)

    def append(self, value: float) -> None:
        """Append one sample."""
        self.buffer[self.write_idx] = value
        self.write_idx += 1
        if self.write_idx == self.capacity:
            self.write_idx = 0
            self.is_full = True

    def extend(self, values: Union[Sequence[float], NDArray[np.float64]]) -> None:
        """
        Append samples in order.

        Args:
            values: Samples, oldest first
        """
        data = np.asarray(values, dtype=np.float64).ravel()
        n_new = data.shape[0]
        if n_new == 0:
            return

        if n_new >= self.capacity:
            # Only the newest `capacity` samples survive
            self.buffer[:] = data[-self.capacity:]
            self.write_idx = 0
            self.is_full = True
            return

        if self.write_idx + n_new <= self.capacity:
            # No wraparound needed
            self.buffer[self.write_idx:self.write_idx + n_new] = data
        else:
            # Need to wrap around
            part1_size = self.capacity - self.write_idx
            part2_size = n_new - part1_size

            self.buffer[self.write_idx:] = data[:part1_size]
            self.buffer[:part2_size] = data[part1_size:]

        end = self.write_idx + n_new
        if end >= self.capacity:
            self.is_full = True
        self.write_idx = end % self.capacity

    def snapshot(self) -> NDArray[np.float64]:
        """
        Copy of the valid samples in chronological order.

        Returns:
            Array of shape (len(self),)
        """
        if not self.is_full:
            return self.buffer[:self.write_idx].copy()

        return np.concatenate([
            self.buffer[self.write_idx:],
            self.buffer[:self.write_idx]
        ])

    def clear(self) -> None:
        """Clear the buffer."""
        self.buffer.fill(0)
        self.write_idx = 0
        self.is_full = False

    def __len__(self) -> int:
        return self.capacity if self.is_full else self.write_idx

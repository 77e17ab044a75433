"""
Decoder for sensor notification payloads.

Each payload is a run of fixed-size records::

    [counter: u8][ch0: u16 LE][ch1: u16 LE] ... [chN-1: u16 LE]

With the default three channels (two EEG, one ECG) a record is 7 bytes.
The counter increments by one per record and wraps at 256; gaps are counted
as packet loss but never interrupt decoding.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from biostream.core.exceptions import DecodeError
from biostream.core.logging import get_logger

logger = get_logger(__name__)

COUNTER_MODULO = 256


@dataclass(frozen=True)
class RawSample:
    """
    One decoded record.

    Attributes:
        counter: Transport sequence counter (0-255, wraps)
        channels: Raw ADC value per channel, in wire order
    """
    counter: int
    channels: Tuple[int, ...]


def record_dtype(n_channels: int) -> np.dtype:
    """Numpy layout of a single wire record."""
    return np.dtype([
        ("counter", "u1"),
        ("channels", "<u2", (n_channels,)),
    ])


def encode_records(
    counters: Sequence[int],
    values: Sequence[Sequence[int]]
) -> bytes:
    """
    Pack counters and per-channel ADC values into a wire payload.

    Args:
        counters: Sequence counter per record
        values: Per-record channel values, shape (n_records, n_channels)

    Returns:
        Encoded payload bytes
    """
    values_arr = np.asarray(values, dtype=np.int64)
    if values_arr.ndim != 2 or values_arr.shape[0] != len(counters):
        raise DecodeError(
            f"Expected one row of channel values per counter, "
            f"got shape {values_arr.shape} for {len(counters)} counters"
        )

    records = np.zeros(len(counters), dtype=record_dtype(values_arr.shape[1]))
    records["counter"] = np.asarray(counters, dtype=np.int64) % COUNTER_MODULO
    records["channels"] = np.clip(values_arr, 0, 0xFFFF)
    return records.tobytes()


class PacketDecoder:
    """
    Turns raw notification payloads into ordered RawSamples.

    Tracks framing errors (payloads that are not a whole number of records)
    and sequence-counter discontinuities across calls. Both are counted, not
    raised.
    """

    def __init__(self, n_channels: int = 3) -> None:
        """
        Initialize decoder.

        Args:
            n_channels: Number of 16-bit channel values per record
        """
        if n_channels < 1:
            raise DecodeError(f"n_channels must be positive, got {n_channels}")

        self.n_channels = n_channels
        self.dtype = record_dtype(n_channels)
        self.record_size = self.dtype.itemsize

        self.previous_counter: Optional[int] = None
        self.framing_errors = 0
        self.lost_events = 0
        self.lost_samples = 0
        self.decoded_samples = 0

    def decode(self, payload: bytes) -> List[RawSample]:
        """
        Decode a payload.

        Args:
            payload: Raw notification bytes

        Returns:
            RawSamples in received order; empty if the payload is malformed
        """
        if len(payload) == 0:
            return []

        if len(payload) % self.record_size != 0:
            self.framing_errors += 1
            logger.debug(
                "payload_rejected",
                payload_len=len(payload),
                record_size=self.record_size,
                framing_errors=self.framing_errors
            )
            return []

        records = np.frombuffer(payload, dtype=self.dtype)
        counters = records["counter"].tolist()
        channels = records["channels"].tolist()

        self._track_sequence(counters)
        self.decoded_samples += len(counters)

        return [
            RawSample(counter=counter, channels=tuple(values))
            for counter, values in zip(counters, channels)
        ]

    def _track_sequence(self, counters: Iterable[int]) -> None:
        """Count discontinuities against the expected next counter."""
        previous = self.previous_counter
        for counter in counters:
            if previous is not None:
                expected = (previous + 1) % COUNTER_MODULO
                if counter != expected:
                    gap = (counter - expected) % COUNTER_MODULO
                    self.lost_events += 1
                    self.lost_samples += gap
                    logger.debug(
                        "sequence_gap_detected",
                        expected=expected,
                        received=counter,
                        gap=gap
                    )
            previous = counter
        self.previous_counter = previous

    def reset(self) -> None:
        """Forget the last counter and zero all statistics."""
        self.previous_counter = None
        self.framing_errors = 0
        self.lost_events = 0
        self.lost_samples = 0
        self.decoded_samples = 0

    @property
    def stats(self) -> Dict[str, int]:
        """Decoder counters."""
        return {
            "decoded_samples": self.decoded_samples,
            "framing_errors": self.framing_errors,
            "lost_events": self.lost_events,
            "lost_samples": self.lost_samples,
        }

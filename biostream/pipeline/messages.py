"""
Result events published by the realtime pipeline.
"""

import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from biostream.signal_processing.heart_rate import HeartRateResult
from biostream.signal_processing.hrv import HeartState, HrvMetrics


@dataclass
class BandPowerEvent:
    """
    Smoothed relative band power for both EEG channels.

    Attributes:
        session: Session generation the result belongs to
        sample_index: Newest sample index in the analysed window
        ch0: {band: smoothed relative power} for EEG channel 0
        ch1: {band: smoothed relative power} for EEG channel 1
        timestamp: Unix timestamp when the event was published
    """
    session: int
    sample_index: int
    ch0: Dict[str, float]
    ch1: Dict[str, float]
    timestamp: float = field(default_factory=time.time)

    type: str = field(default="band_power", init=False)

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'type': self.type,
            'sample_index': self.sample_index,
            'ch0': {k: float(v) for k, v in self.ch0.items()},
            'ch1': {k: float(v) for k, v in self.ch1.items()},
            'timestamp': self.timestamp,
        }


@dataclass
class HeartRateEvent:
    """
    Heart-rate statistics for the latest ECG window.

    Attributes:
        session: Session generation the result belongs to
        sample_index: Newest sample index in the analysed window
        result: Raw window statistics
        displayed_bpm: Smoothed, step-limited BPM (None when unknown)
        hrv: HRV metrics from the window's beats
        state: Coarse state label derived from HRV
        timestamp: Unix timestamp when the event was published
    """
    session: int
    sample_index: int
    result: HeartRateResult
    displayed_bpm: Optional[int] = None
    hrv: HrvMetrics = field(default_factory=HrvMetrics)
    state: Optional[HeartState] = None
    timestamp: float = field(default_factory=time.time)

    type: str = field(default="heart_rate", init=False)

    @property
    def peaks(self) -> List[int]:
        return self.result.peaks

    def to_dict(self) -> Dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'type': self.type,
            'sample_index': self.sample_index,
            **self.result.to_dict(),
            'displayed_bpm': self.displayed_bpm,
            **self.hrv.to_dict(),
            'state': self.state,
            'timestamp': self.timestamp,
        }


PipelineEvent = Union[BandPowerEvent, HeartRateEvent]

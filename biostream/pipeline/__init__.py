"""
Real-time processing pipeline components.
"""

from biostream.pipeline.messages import BandPowerEvent, HeartRateEvent, PipelineEvent
from biostream.pipeline.realtime_pipeline import RealtimePipeline

__all__ = [
    "RealtimePipeline",
    "BandPowerEvent",
    "HeartRateEvent",
    "PipelineEvent",
]
